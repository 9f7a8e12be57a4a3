"""Rich-based display functions for Signup Scanner."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import ScanResult
from .platforms import Platform

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through Rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # googleapiclient is chatty at INFO
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def create_progress() -> Progress:
    """Create a Rich Progress bar whose rows show their task description."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def _confidence_color(confidence: int) -> str:
    """Return a Rich color name based on the confidence value."""
    if confidence >= 85:
        return "green"
    if confidence >= 40:
        return "yellow"
    return "red"


def display_scan_results(scan_result: ScanResult, min_confidence: int = 0) -> None:
    """Display detected services in first-seen order."""
    services = [s for s in scan_result.services if s.confidence >= min_confidence]

    table = Table(title="Detected Services")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Platform")
    table.add_column("Domain")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")
    table.add_column("Method")
    table.add_column("Subject", overflow="ellipsis", max_width=40)

    for idx, service in enumerate(services, start=1):
        color = _confidence_color(service.confidence)
        table.add_row(
            str(idx),
            f"[bold]{service.platform}[/bold]",
            service.domain,
            service.category.value,
            f"[{color}]{service.confidence}[/{color}]",
            service.detection_method.value,
            service.subject,
        )

    console.print(table)
    console.print(
        Panel(
            f"Services shown: {len(services)}  |  "
            f"Messages listed: {scan_result.total_messages}  |  "
            f"Skipped: {scan_result.skipped}",
            title="Summary",
        )
    )


def display_platforms(rows: list[tuple[str, Platform]], title: str = "Known Platforms") -> None:
    table = Table(title=title)
    table.add_column("Domain")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")
    table.add_column("Unsubscribe")

    for domain, platform in rows:
        table.add_row(
            domain,
            platform.name,
            platform.category.value,
            str(platform.confidence),
            platform.unsubscribe_support,
        )

    console.print(table)


def display_categories(rows: list[dict]) -> None:
    table = Table(title="Categories")
    table.add_column("Key")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Platforms", justify="right")
    table.add_column("Description", style="dim")

    for row in rows:
        table.add_row(
            row["key"],
            row["name"],
            str(row["priority"]),
            str(row["platform_count"]),
            row["description"],
        )

    console.print(table)
