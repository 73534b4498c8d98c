"""Run progress and result display with Rich console output."""

import logging
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from llm_vetting.models.enums import ClassificationLabel, ResponseStatus
from llm_vetting.models.reference import Classification, ReferenceText
from llm_vetting.models.run import Run

logger = logging.getLogger("llm_vetting.orchestration.progress")

STATUS_STYLES = {
    ResponseStatus.QUEUED: "dim",
    ResponseStatus.IN_PROGRESS: "cyan",
    ResponseStatus.DONE: "green",
    ResponseStatus.ERROR: "red",
    ResponseStatus.CANCELED: "yellow",
}

LABEL_STYLES = {
    ClassificationLabel.RED: "bold red",
    ClassificationLabel.YELLOW: "yellow",
    ClassificationLabel.GREEN: "green",
}


def _truncate(text: str, width: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


class RunProgress:
    """Tracks a run through engine updates and renders its results."""

    def __init__(
        self,
        console: Optional[Console] = None,
        show_progress: bool = True,
    ):
        """Initialize the display.

        Args:
            console: Rich console for output (created if not provided).
            show_progress: Whether to show a live progress bar.
        """
        self._console = console or Console()
        self._show_progress = show_progress
        self._progress: Optional[Progress] = None
        self._task_id: Optional[TaskID] = None

    def update(self, run: Run) -> None:
        """Engine observer: refresh the bar from the run's derived stats."""
        if not self._show_progress:
            return

        stats = run.stats
        finished = sum(1 for r in run.responses if r.status.is_terminal)
        in_progress = sum(1 for r in run.responses if r.status == ResponseStatus.IN_PROGRESS)

        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("•"),
                TimeElapsedColumn(),
                console=self._console,
                transient=False,
            )
            self._progress.start()
            self._task_id = self._progress.add_task("Querying models", total=stats.total)

        description = f"Querying models ({in_progress} streaming"
        if stats.errors:
            description += f", [red]{stats.errors} failed[/]"
        description += ")"
        self._progress.update(
            self._task_id,
            total=stats.total,
            completed=finished,
            description=description,
        )

    def finish(self) -> None:
        """Stop the progress bar."""
        if self._progress:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    def display_summary_table(self, run: Run) -> None:
        """Display per-response results and run totals.

        Args:
            run: Finished run.
        """
        if not run.responses:
            self._console.print("[yellow]No responses to display[/]")
            return

        table = Table(title="Responses")
        table.add_column("Model", style="cyan")
        table.add_column("#", justify="right")
        table.add_column("Status", justify="center")
        table.add_column("Latency", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Similar", justify="right")
        table.add_column("Text", max_width=50)

        for response in run.responses:
            style = STATUS_STYLES[response.status]
            similar = run.similarity.similar_count(response.id) if run.similarity else 0
            text = response.error_message if response.status == ResponseStatus.ERROR else response.text
            table.add_row(
                response.model_label,
                str(response.loop_index),
                f"[{style}]{response.status.value}[/]",
                f"{response.latency_ms} ms" if response.latency_ms is not None else "",
                str(response.total_tokens) if response.total_tokens is not None else "",
                f"[magenta]{similar}[/]" if similar else "0",
                _truncate(text or "", 50),
            )

        self._console.print(table)

        stats = run.stats
        self._console.print(
            f"[bold green]✓ Completed:[/] {stats.completed}/{stats.total}"
            + (f"  [bold red]✗ Errors:[/] {stats.errors}" if stats.errors else "")
            + (f"  [yellow]Canceled:[/] {stats.canceled}" if stats.canceled else "")
            + (f"  Avg latency: {stats.avg_latency_ms} ms" if stats.avg_latency_ms is not None else "")
        )

    def display_clusters(self, run: Run) -> None:
        """Display groups of near-duplicate responses.

        Args:
            run: Run with similarity attached.
        """
        if run.similarity is None or not run.similarity.clusters:
            self._console.print("[green]No near-duplicate responses found[/]")
            return

        table = Table(title="Similar Response Clusters")
        table.add_column("Cluster", justify="right")
        table.add_column("Responses", style="cyan")

        for index, cluster in enumerate(run.similarity.clusters, start=1):
            members = []
            for response_id in cluster.ids:
                response = run.get_response(response_id)
                if response is not None:
                    members.append(f"{response.model_label} #{response.loop_index}")
            table.add_row(str(index), ", ".join(members))

        self._console.print(table)

    def display_classifications(
        self,
        references: list[ReferenceText],
        classifications: dict[str, Classification],
    ) -> None:
        """Display the verdict for each reference text.

        Args:
            references: Reference texts in input order.
            classifications: Verdicts keyed by reference id.
        """
        table = Table(title="Reference Classification")
        table.add_column("Reference", max_width=40)
        table.add_column("Verdict", justify="center")
        table.add_column("Confidence", justify="right")
        table.add_column("Likely Model", style="cyan")

        for reference in references:
            result = classifications.get(reference.id)
            if result is None:
                continue
            style = LABEL_STYLES[result.classification]
            table.add_row(
                _truncate(reference.text, 40),
                f"[{style}]{result.classification.display_name}[/]",
                f"{result.confidence:.0%}",
                result.likely_model or "",
            )

        self._console.print(table)

    def print_status(self, message: str, style: str = "") -> None:
        """Print a status message.

        Args:
            message: Message to print.
            style: Rich style string.
        """
        if style:
            self._console.print(f"[{style}]{message}[/]")
        else:
            self._console.print(message)

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self._console.print(f"[bold red]Error:[/] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self._console.print(f"[bold yellow]Warning:[/] {message}")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self._console.print(f"[bold green]✓[/] {message}")
