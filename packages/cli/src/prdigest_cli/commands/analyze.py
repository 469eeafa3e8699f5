"""analyze command — run a batch of pull requests in the foreground."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from prdigest_cli.commands.status import render_status
from prdigest_core.config import validate_config
from prdigest_core.engine import build_coordinator
from prdigest_core.errors import InvalidBatchError, StoreUnavailableError
from prdigest_core.models import BatchStatus

console = Console()


def _read_refs_file(path: str) -> list[str]:
    """One reference per line; blank lines and # comments are skipped."""
    lines = Path(path).read_text().splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def _print_wave(index: int, wave_count: int, results: list) -> None:
    failed = sum(1 for r in results if not r.ok)
    console.print(
        f"  [[{index}/{wave_count}]] {len(results)} PR(s) done" + (f", [red]{failed} failed[/red]" if failed else "")
    )


@click.command("analyze")
@click.argument("refs", nargs=-1)
@click.option(
    "--file",
    "refs_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File with one PR reference per line (owner/repo#123 or a PR URL).",
)
@click.option("--concurrency", type=int, default=None, help="PRs processed in parallel per wave.")
@click.option("--item-timeout", type=float, default=None, help="Seconds allowed per PR.")
@click.option("--batch-timeout", type=float, default=None, help="Seconds allowed for the whole batch.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.pass_context
def analyze_cmd(
    ctx,
    refs: tuple[str, ...],
    refs_file: str | None,
    concurrency: int | None,
    item_timeout: float | None,
    batch_timeout: float | None,
    model: str | None,
):
    """Analyze pull requests REFS and generate a review digest for each.

    Already-analyzed PRs are served from the store without calling GitHub
    or the model again.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    config = dict(ctx.obj["config"])
    overrides = {
        "concurrency_limit": concurrency,
        "item_timeout": item_timeout,
        "batch_timeout": batch_timeout,
        "model": model,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    try:
        validate_config(config)
    except ValueError as e:
        raise click.UsageError(str(e))

    if not config.get("github_token"):
        raise click.UsageError(
            "GitHub token missing: set GITHUB_TOKEN (or GH_TOKEN), or sign in with `gh auth login`.\n"
            "Tokens can be created at https://github.com/settings/tokens"
        )
    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    inputs = list(refs)
    if refs_file:
        inputs += _read_refs_file(refs_file)

    coordinator = build_coordinator(config, ctx.obj["store"])
    try:
        created = coordinator.create(inputs)
    except InvalidBatchError as e:
        for detail in e.details:
            console.print(f"  [yellow]{detail}[/yellow]")
        raise click.UsageError(str(e))
    except StoreUnavailableError as e:
        raise click.ClickException(str(e))

    for rejected in created.rejected:
        console.print(f"[yellow]Skipping {rejected}[/yellow]")
    console.print(
        f"[cyan]Batch {created.token}: {len(created.accepted)} PR(s), "
        f"{config['concurrency_limit']} at a time[/cyan]"
    )

    view = coordinator.run(created.token, on_wave=_print_wave)
    console.print()
    render_status(view)

    if view.status == BatchStatus.FAILED:
        ctx.exit(1)
