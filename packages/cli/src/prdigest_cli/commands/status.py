"""status command — show the progress row of a batch."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prdigest_core.coordinator import BatchStatusView, batch_status
from prdigest_core.errors import BatchNotFoundError
from prdigest_core.models import BatchStatus, Success

console = Console()

_STATUS_STYLE = {
    BatchStatus.PENDING: "dim",
    BatchStatus.PROCESSING: "cyan",
    BatchStatus.COMPLETED: "green",
    BatchStatus.FAILED: "red",
}


def render_status(view: BatchStatusView) -> None:
    """Print the status line and a per-PR result table."""
    style = _STATUS_STYLE.get(view.status, "white")
    console.print(
        f"Batch [bold]{view.token}[/bold]: [{style}]{view.status.value}[/{style}], "
        f"{view.completed}/{view.total} PR(s) ({view.progress_percentage}%)"
    )
    if view.error_message:
        console.print(f"[red]Error: {view.error_message}[/red]")
    if not view.results:
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold")
    table.add_column("Result", width=10)
    table.add_column("Title / Reason", max_width=60)
    for result in view.results:
        if isinstance(result, Success):
            label = "[green]cached[/green]" if result.cached else "[green]ok[/green]"
            detail = result.pr.title if result.pr is not None else ""
        else:
            label = "[red]failed[/red]"
            detail = result.reason
        table.add_row(result.ref.key, label, detail)
    console.print(table)


@click.command("status")
@click.argument("token")
@click.pass_context
def status_cmd(ctx, token: str):
    """Show progress and results for a batch TOKEN."""
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured.")
    try:
        view = batch_status(store, token)
    except BatchNotFoundError as e:
        raise click.ClickException(str(e))
    render_status(view)
