from __future__ import annotations

from prdigest_core.providers.base import BaseReportGenerator


class AnthropicReportGenerator(BaseReportGenerator):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.5

    def __init__(self, api_key: str):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError("AnthropicReportGenerator needs the 'anthropic' package: pip install anthropic")
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        # Safe here: __init__ has already imported the SDK.
        from anthropic.types import TextBlock

        message = self.client.messages.create(
            model=self.MODEL,
            max_tokens=self.MAX_TOKENS,
            temperature=self.TEMPERATURE,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        report = "".join(block.text for block in message.content if isinstance(block, TextBlock)).strip()
        if not report:
            raise ValueError("Anthropic returned no text content")
        return report
