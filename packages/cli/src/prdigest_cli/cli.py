"""CLI entry point for prdigest.

Commands:
  analyze  — run a batch of pull requests through fetch, diff and report
  status   — show the progress row of a batch
  report   — print the cached report for one pull request
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from prdigest_cli.commands.analyze import analyze_cmd
from prdigest_cli.commands.report import report_cmd
from prdigest_cli.commands.status import status_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prdigest.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .prdigest.db)
      store: memory → MemoryStore (process lifetime only)

    A store that cannot be opened is fatal: no batch can be created without one.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "memory":
        from prdigest_store.memory import MemoryStore

        return MemoryStore()

    if store_type == "sqlite":
        import sqlite3

        from prdigest_store.sqlite import SQLiteStore

        db_path = config.get("store_path", ".prdigest.db")
        try:
            return SQLiteStore(db_path=db_path)
        except sqlite3.Error as e:
            raise click.ClickException(f"Could not open store at {db_path}: {e}")

    raise click.UsageError(f"Unknown store {store_type!r}. Use 'sqlite' or 'memory'.")


@click.group()
@click.version_option(
    version=importlib.metadata.version("prdigest"),
    prog_name="prdigest",
)
@click.option(
    "--config",
    "config_path",
    default=".prdigest.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRDIGEST_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Batch pull-request review digests powered by an LLM."""
    from prdigest_cli.auth import resolve_github_token
    from prdigest_core.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)

    config = load_config(config_path)

    # gh CLI session counts as a token source as well as the environment.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(analyze_cmd)
main.add_command(status_cmd)
main.add_command(report_cmd)
