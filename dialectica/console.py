"""Console UI for terminal output using Rich."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dialectica.models.analysis import AnalysisResult, FollowUp, UsageStats
from dialectica.models.paper import Paper

LOG_FORMAT = "%(name)s: %(message)s"


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Route stdlib logging through a RichHandler.

    INFO and up by default; DEBUG (stage transitions, request sizes)
    with *verbose*.  Third-party HTTP chatter is kept at WARNING.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    for noisy in ("httpx", "httpcore", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _truncate(text: str, limit: int = 140) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


class ConsoleUI:
    """Rich-based console UI for review tables, analyses and notifications."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def info(self, message: str) -> None:
        """Print an info message."""
        self._console.print(message)

    def success(self, message: str) -> None:
        """Print a success message in green."""
        self._console.print(f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning message in yellow."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Print an error message in red."""
        self._console.print(f"[red]Error:[/red] {message}")

    def display_review(
        self,
        papers: list[Paper],
        selection: set[str],
        final_query: Optional[str] = None,
        per_source_counts: Optional[dict[str, int]] = None,
    ) -> None:
        """Display the assessed corpus with its current selection.

        Args:
            papers: Papers in display order
            selection: DOIs currently selected for synthesis
            final_query: Query that produced the corpus
            per_source_counts: Papers contributed by each source
        """
        title = f"Review ({len(selection)} of {len(papers)} selected)"
        table = Table(title=title)
        table.add_column("#", justify="right")
        table.add_column("✓", width=1)
        table.add_column("Score", justify="right")
        table.add_column("Year", width=4)
        table.add_column("Title", overflow="fold")
        table.add_column("Why", overflow="fold")

        for index, paper in enumerate(papers, start=1):
            table.add_row(
                str(index),
                "x" if paper.doi in selection else "",
                f"{paper.score:g}" if paper.score is not None else "-",
                str(paper.year or "-"),
                paper.title,
                _truncate(paper.relevance_justification or ""),
            )

        self._console.print(table)
        if final_query:
            self._console.print(f"Query: [italic]{final_query}[/italic]")
        if per_source_counts:
            counts = ", ".join(f"{k}={v}" for k, v in sorted(per_source_counts.items()))
            self._console.print(f"Sources: {counts}")

    def display_analysis(self, result: AnalysisResult) -> None:
        """Print summary, contention points, gaps and key papers."""
        score = result.disagreement_score
        header = f"Disagreement {score.score:g}/10 ({score.qualitative})"
        if result.synthesis_time:
            header += f"  ·  {result.synthesis_time:.1f}s"
        self._console.print(Panel(result.summary, title=header))

        for index, point in enumerate(result.contention_points, start=1):
            self._console.print(f"\n[bold]{index}. {point.topic}[/bold]")
            for stance in point.stances:
                who = stance.paper.authors[0] if stance.paper.authors else stance.paper.doi
                self._console.print(f"  • {stance.summary} [dim]({who}, {stance.paper.year})[/dim]")
                self._console.print(f'    [italic]"{_truncate(stance.quote, 200)}"[/italic]')

        if result.research_gaps:
            self._console.print("\n[bold]Research gaps[/bold]")
            for gap in result.research_gaps:
                self._console.print(f"  - {gap}")

        if result.key_papers:
            table = Table(title="Key papers")
            table.add_column("Year", width=4)
            table.add_column("Title", overflow="fold")
            table.add_column("Rationale", overflow="fold")
            for kp in result.key_papers:
                table.add_row(str(kp.paper.year or "-"), kp.paper.title, kp.rationale)
            self._console.print(table)

        if result.excluded_papers:
            self._console.print(f"\n[dim]{len(result.excluded_papers)} papers excluded.[/dim]")

    def display_follow_up(self, follow_up: FollowUp) -> None:
        self._console.print(Panel(follow_up.answer, title=follow_up.question))
        for paper in follow_up.sources:
            self._console.print(f"  [dim]- {paper.title} ({paper.doi})[/dim]")

    def display_usage(self, stats: UsageStats) -> None:
        """Print cumulative estimated usage."""
        self._console.print(
            f"Usage: {stats.total_input_tokens:,} in / {stats.total_output_tokens:,} out "
            f"tokens, ≈ ${stats.total_cost:.4f}"
        )

    def exported(self, filepath: Path) -> None:
        """Print export confirmation."""
        self._console.print(f"[green]Exported[/green]: {filepath}")
