"""Tests for report generator implementations.

Shared behaviour (_clean, _build_system_prompt, _build_user_prompt,
_call_with_retry) lives in BaseReportGenerator and is tested once via a
lightweight stub. Provider-specific tests cover only the SDK client setup
and _call_api.
"""

from unittest.mock import MagicMock, patch

from prdigest_core.cancel import CancelToken
from prdigest_core.models import (
    CommentRecord,
    CommitRecord,
    DiffSummary,
    FileChange,
    PullRequestRecord,
    ReviewDrivenChangeSet,
    ReviewRecord,
)
from prdigest_core.providers.anthropic import AnthropicReportGenerator
from prdigest_core.providers.base import BaseReportGenerator, ReportContext
from prdigest_core.providers.openai import OpenAIReportGenerator

REPORT = "# PR Report\n## PR Snapshot\n- Repo/PR: octo/widgets#7"


class _StubGenerator(BaseReportGenerator):
    MODEL = "stub"

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        return REPORT


def _context(**overrides):
    pull = PullRequestRecord(
        org="octo",
        repo="widgets",
        pr_number=7,
        title="Add widget cache",
        description="Caches widgets between requests.",
        author="alice",
        state="open",
        created_at="2024-05-01",
        updated_at="2024-05-02",
    )
    values = dict(
        pull=pull,
        comments=[CommentRecord(1, "carol", "Nice work", "2024-05-01")],
        reviews=[ReviewRecord(2, "bob", "CHANGES_REQUESTED", "Please add tests", "2024-05-01")],
        commits=[CommitRecord("abcdef1234", "Add cache\n\nLong body", "alice", "2024-05-01", 10, 2)],
        diff_summary=DiffSummary(
            first_commit_sha="abcdef1234",
            last_commit_sha="123456abcd",
            total_additions=10,
            total_deletions=2,
            total_changed_files=1,
            files=[FileChange("src/cache.py", 10, 2, "added", "+class Cache: ...")],
        ),
        review_changes=ReviewDrivenChangeSet(
            has_changes=True,
            total_commits=2,
            review_commit_count=1,
            diff=DiffSummary(files=[FileChange("tests/test_cache.py", 20, 0, "added")], total_changed_files=1),
        ),
    )
    values.update(overrides)
    return ReportContext(**values)


# ---------------------------------------------------------------------------
# Shared behaviour, exercised through the stub provider
# ---------------------------------------------------------------------------


class TestBaseGeneratorClean:
    def test_plain_markdown_untouched(self):
        assert _StubGenerator()._clean(REPORT) == REPORT

    def test_strips_outer_markdown_fence(self):
        assert _StubGenerator()._clean(f"```markdown\n{REPORT}\n```") == REPORT

    def test_strips_bare_fence(self):
        assert _StubGenerator()._clean(f"```\n{REPORT}\n```") == REPORT

    def test_preserves_inner_code_blocks(self):
        raw = "# PR Report\n```python\nfoo()\n```\nDone."
        assert "```python" in _StubGenerator()._clean(raw)


class TestBaseGeneratorPrompts:
    def test_system_prompt_lists_sections(self):
        prompt = _StubGenerator()._build_system_prompt()
        assert "# PR Report" in prompt
        assert "## Requested Changes vs What Changed" in prompt
        assert "Unknown / not stated in the PR discussion." in prompt

    def test_user_prompt_contains_pr_details(self):
        prompt = _StubGenerator()._build_user_prompt(_context())
        assert "Repo/PR: octo/widgets#7" in prompt
        assert "Add widget cache" in prompt
        assert "@alice" in prompt
        assert "Caches widgets between requests." in prompt

    def test_user_prompt_contains_discussion(self):
        prompt = _StubGenerator()._build_user_prompt(_context())
        assert "### Review 1 by @bob" in prompt
        assert "CHANGES_REQUESTED" in prompt
        assert "Please add tests" in prompt
        assert "### Comment 1 by @carol" in prompt

    def test_user_prompt_lists_commit_subjects_only(self):
        prompt = _StubGenerator()._build_user_prompt(_context())
        assert "abcdef1 Add cache (+10/-2)" in prompt
        assert "Long body" not in prompt

    def test_user_prompt_contains_both_diffs(self):
        prompt = _StubGenerator()._build_user_prompt(_context())
        assert "## Overall Changes" in prompt
        assert "src/cache.py" in prompt
        assert "+class Cache: ..." in prompt
        assert "## Review-Driven Changes" in prompt
        assert "tests/test_cache.py" in prompt

    def test_no_review_driven_changes_stated(self):
        prompt = _StubGenerator()._build_user_prompt(_context(review_changes=ReviewDrivenChangeSet()))
        assert "no code changed in response to review" in prompt

    def test_empty_sections_omitted(self):
        prompt = _StubGenerator()._build_user_prompt(
            _context(comments=[], reviews=[], commits=[], diff_summary=None, review_changes=None)
        )
        assert "## Reviews" not in prompt
        assert "## Comments" not in prompt
        assert "## Overall Changes" not in prompt
        assert "## Review-Driven Changes" not in prompt


class TestBaseGeneratorRetry:
    def test_generate_returns_cleaned_report(self):
        assert _StubGenerator().generate(_context()) == REPORT

    def test_returns_none_after_max_retries(self):
        class _AlwaysFail(BaseReportGenerator):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                raise RuntimeError("network error")

        # Back-off waits on the cancel token; skip the real wait.
        with patch("prdigest_core.providers.base.CancelToken.wait", return_value=False):
            assert _AlwaysFail().generate(_context()) is None

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseReportGenerator):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return REPORT

        with patch("prdigest_core.providers.base.CancelToken.wait", return_value=False):
            result = _FailOnceThenSucceed().generate(_context())
        assert result == REPORT
        assert call_count == 2

    def test_cancelled_token_skips_api(self):
        calls = []

        class _Recording(BaseReportGenerator):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                calls.append(1)
                return REPORT

        cancel = CancelToken.never()
        cancel.cancel()
        assert _Recording().generate(_context(), cancel) is None
        assert calls == []

    def test_cancel_during_backoff_stops_retrying(self):
        calls = []

        class _AlwaysFail(BaseReportGenerator):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                calls.append(1)
                raise RuntimeError("503")

        cancel = CancelToken.never()
        with patch.object(CancelToken, "wait", return_value=True):
            assert _AlwaysFail().generate(_context(), cancel) is None
        assert len(calls) == 1


# ---------------------------------------------------------------------------
# Provider-specific behaviour
# ---------------------------------------------------------------------------


class TestAnthropicReportGenerator:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            try:
                AnthropicReportGenerator(api_key="key")
                assert False, "Expected ImportError"
            except ImportError:
                pass

    def test_model_is_claude(self):
        assert "claude" in AnthropicReportGenerator.MODEL

    def test_call_api_joins_text_blocks(self):
        from anthropic.types import TextBlock

        generator = AnthropicReportGenerator(api_key="key")
        generator.client = MagicMock()
        generator.client.messages.create.return_value.content = [
            TextBlock(type="text", text="# PR Report\n"),
            TextBlock(type="text", text="Body"),
        ]

        assert generator._call_api("system", "user") == "# PR Report\nBody"
        kwargs = generator.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["max_tokens"] == AnthropicReportGenerator.MAX_TOKENS

    def test_call_api_rejects_empty_response(self):
        generator = AnthropicReportGenerator(api_key="key")
        generator.client = MagicMock()
        generator.client.messages.create.return_value.content = []
        try:
            generator._call_api("system", "user")
            assert False, "Expected ValueError"
        except ValueError:
            pass


class TestOpenAIReportGenerator:
    def test_raises_import_error_without_sdk(self):
        import prdigest_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            OpenAIReportGenerator(api_key="key")
            assert False, "Expected ImportError"
        except ImportError:
            pass
        finally:
            openai_mod._OpenAI = real_openai

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIReportGenerator.MODEL

    def test_call_api_returns_message_content(self):
        generator = OpenAIReportGenerator(api_key="key")
        generator.client = MagicMock()
        choice = MagicMock()
        choice.message.content = REPORT
        generator.client.chat.completions.create.return_value.choices = [choice]

        assert generator._call_api("system", "user") == REPORT
        messages = generator.client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "system"}

    def test_call_api_rejects_empty_choices(self):
        generator = OpenAIReportGenerator(api_key="key")
        generator.client = MagicMock()
        generator.client.chat.completions.create.return_value.choices = []
        try:
            generator._call_api("system", "user")
            assert False, "Expected ValueError"
        except ValueError:
            pass
