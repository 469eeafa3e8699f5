"""report command — print the stored report for one pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from prdigest_core.refs import parse_ref

console = Console()


def _diff_table(title: str, files) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("File", max_width=60)
    table.add_column("Status", width=10)
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    for f in files:
        table.add_row(f.filename, f.status, str(f.additions), str(f.deletions))
    return table


@click.command("report")
@click.argument("ref")
@click.option(
    "--diff/--no-diff",
    default=True,
    show_default=True,
    help="Also show the diff summaries and the last commit's files.",
)
@click.pass_context
def report_cmd(ctx, ref: str, diff: bool):
    """Print the stored digest for REF (owner/repo#123 or a PR URL)."""
    parsed = parse_ref(ref)
    if parsed is None:
        raise click.UsageError(f'Invalid format "{ref}". Use owner/repo#123 or a pull request URL.')

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured.")

    cached = store.get_cached(parsed)
    if cached is None:
        console.print(f"[yellow]No report stored for {parsed}. Run `prdigest analyze {parsed}` first.[/yellow]")
        return

    pull, report = cached
    console.print(f"[bold]{parsed}[/bold]: {pull.title}  [dim](generated {report.generated_at[:19]})[/dim]\n")
    console.print(Markdown(report.content))

    if not diff:
        return

    summary = store.get_diff_summary(pull.id)
    if summary is not None and summary.files:
        console.print()
        console.print(
            _diff_table(
                f"Overall changes +{summary.total_additions}/-{summary.total_deletions} "
                f"({summary.total_changed_files} file(s))",
                summary.files,
            )
        )

    changes = store.get_review_driven_changes(pull.id)
    if changes is not None:
        console.print()
        if changes.has_changes and changes.diff.files:
            console.print(
                _diff_table(
                    f"Review-driven changes ({changes.review_commit_count} follow-up commit(s))",
                    changes.diff.files,
                )
            )
        else:
            console.print("[dim]No review-driven changes.[/dim]")

    commits = store.get_commits(pull.id)
    if commits:
        last = commits[-1]
        headline = escape(last.message.splitlines()[0]) if last.message else ""
        console.print()
        if last.files:
            console.print(
                _diff_table(
                    f"Last commit {last.sha[:7]} {headline} "
                    f"+{last.additions}/-{last.deletions} ({len(last.files)} file(s))",
                    last.files,
                )
            )
        else:
            console.print(f"[dim]Last commit {last.sha[:7]} changed no files.[/dim]")
