"""Wiring: build a ready-to-run coordinator from a config dict.

This is the only place that picks concrete collaborators. Everything below
it receives them through constructors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prdigest_core.coordinator import BatchCoordinator
from prdigest_core.gh.pull_request import GitHubFetcher
from prdigest_core.pipeline import ItemPipeline
from prdigest_core.providers.anthropic import AnthropicReportGenerator
from prdigest_core.providers.openai import OpenAIReportGenerator
from prdigest_core.scheduler import BoundedScheduler

if TYPE_CHECKING:
    from prdigest_core.providers.base import BaseReportGenerator


def get_generator(config: dict) -> BaseReportGenerator:
    model = config["model"]
    if model == "anthropic":
        return AnthropicReportGenerator(api_key=config["anthropic_api_key"])
    if model == "openai":
        return OpenAIReportGenerator(api_key=config["openai_api_key"])
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def build_coordinator(config: dict, store, fetcher=None, generator=None) -> BatchCoordinator:
    """Assemble pipeline, scheduler and coordinator around one store.

    ``store`` must implement both BaseStore and BaseProgressStore. ``fetcher``
    and ``generator`` default to the GitHub and configured LLM clients.
    """
    pipeline = ItemPipeline(
        fetcher=fetcher if fetcher is not None else GitHubFetcher(config.get("github_token")),
        generator=generator if generator is not None else get_generator(config),
        store=store,
    )
    scheduler = BoundedScheduler(
        pipeline,
        store,
        concurrency_limit=config["concurrency_limit"],
        item_timeout=config["item_timeout"],
        batch_timeout=config["batch_timeout"],
    )
    return BatchCoordinator(store, scheduler, max_batch_size=config["max_batch_size"])
