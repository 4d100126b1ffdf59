"""Rich rendering for check results, apply results and classified errors."""
from __future__ import annotations

from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .errors import ProvisioningError
from .facets.models import ApplyOutcome, ApplyResult, CheckResult, FacetId, FacetStatus

STATUS_MARKS: Mapping[FacetStatus, str] = {
    FacetStatus.CONFIGURED: "[✓]",
    FacetStatus.PARTIAL: "[!]",
    FacetStatus.UNCONFIGURED: "[ ]",
    FacetStatus.ERROR: "[✗]",
}

STATUS_STYLES: Mapping[FacetStatus, str] = {
    FacetStatus.CONFIGURED: "green",
    FacetStatus.PARTIAL: "yellow",
    FacetStatus.UNCONFIGURED: "dim",
    FacetStatus.ERROR: "red",
}

OUTCOME_STYLES: Mapping[ApplyOutcome, str] = {
    ApplyOutcome.APPLIED: "green",
    ApplyOutcome.UNCHANGED: "green",
    ApplyOutcome.SKIPPED: "yellow",
    ApplyOutcome.INVALID: "red",
    ApplyOutcome.PRECONDITION_FAILED: "red",
    ApplyOutcome.FAILED: "red",
    ApplyOutcome.ABORTED: "yellow",
}


def print_info(console: Console, text: str) -> None:
    """Print an ``[INFO]`` line."""
    console.print(f"[green]\\[INFO][/green] {escape(text)}")


def print_warning(console: Console, text: str) -> None:
    """Print a ``[WARN]`` line."""
    console.print(f"[yellow]\\[WARN][/yellow] {escape(text)}")


def print_error(console: Console, error: ProvisioningError | str) -> None:
    """Print a classified ``[ERROR]`` line followed by any diagnostics."""
    if isinstance(error, ProvisioningError):
        console.print(f"[red]\\[ERROR][/red] {error.category}: {escape(error.message)}")
        for line in error.diagnostics:
            console.print(f"  [dim]{escape(line)}[/dim]")
        return
    console.print(f"[red]\\[ERROR][/red] {escape(error)}")


def render_status(
    console: Console,
    results: Iterable[CheckResult],
    labels: Mapping[FacetId, str],
) -> None:
    """Print one status line per facet in menu order."""
    for result in results:
        style = STATUS_STYLES[result.status]
        mark = escape(STATUS_MARKS[result.status])
        label = labels.get(result.facet, result.facet.value)
        console.print(f"[{style}]{mark}[/{style}] {escape(label)} [dim]({escape(result.detail)})[/dim]")
        if result.status is FacetStatus.ERROR:
            for line in result.diagnostics:
                console.print(f"    [dim]{escape(line)}[/dim]")


def status_table(results: Iterable[CheckResult], labels: Mapping[FacetId, str]) -> Table:
    """Return a table summarising *results*."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Facet")
    table.add_column("Status")
    table.add_column("Detail")
    for result in results:
        style = STATUS_STYLES[result.status]
        table.add_row(
            escape(labels.get(result.facet, result.facet.value)),
            f"[{style}]{escape(STATUS_MARKS[result.status])} {result.status.value}[/{style}]",
            escape(result.detail),
        )
    return table


def render_apply_result(console: Console, result: ApplyResult, labels: Mapping[FacetId, str]) -> None:
    """Print the outcome of one apply with notes and diagnostics."""
    style = OUTCOME_STYLES[result.outcome]
    label = labels.get(result.facet, result.facet.value)
    console.print(
        f"[{style}]{result.outcome.value:>20}[/{style}]  {escape(label)}: {escape(result.message)}"
    )
    for note in result.notes:
        print_info(console, note)
    for line in result.diagnostics:
        console.print(f"    [dim]{escape(line)}[/dim]")


__all__ = [
    "OUTCOME_STYLES",
    "STATUS_MARKS",
    "STATUS_STYLES",
    "print_error",
    "print_info",
    "print_warning",
    "render_apply_result",
    "render_status",
    "status_table",
]
