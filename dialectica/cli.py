"""Command-line interface handlers."""

import argparse
import asyncio
from datetime import date
from typing import Optional

from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Prompt

from dialectica.config import Settings
from dialectica.console import ConsoleUI, setup_logging
from dialectica.errors import DialecticaError, InvalidTransitionError
from dialectica.models.paper import DEFAULT_START_YEAR, OPENALEX, SEMANTIC_SCHOLAR, FilterSet
from dialectica.pipeline import PipelineController, PipelineStage
from dialectica.services.export_service import AnalysisExporter


class DialecticaCLI:
    """CLI application for Dialectica."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        controller: Optional[PipelineController] = None,
        ui: Optional[ConsoleUI] = None,
    ):
        """Initialize CLI with settings.

        Args:
            settings: Application settings (loads from .metadata if not provided)
            controller: Pipeline to drive (built from settings if not provided)
            ui: Console output
        """
        self.settings = settings or Settings.load()
        self.ui = ui or ConsoleUI()
        self.controller = controller or PipelineController.from_settings(self.settings)

    def _review(self, auto: bool) -> None:
        """Show the corpus and let the user toggle papers by number."""
        session = self.controller.session
        if session is None:
            raise InvalidTransitionError("There are no papers to review yet.")
        papers = self.controller.review_papers("relevance")
        while True:
            self.ui.display_review(
                papers, session.selection, session.final_query, session.per_source_counts
            )
            if auto:
                return
            answer = Prompt.ask(
                "Toggle papers by number (e.g. 1 4 7), Enter to analyze",
                default="",
                console=self.ui.console,
            ).strip()
            if not answer:
                return
            for token in answer.replace(",", " ").split():
                if token.isdigit() and 1 <= int(token) <= len(papers):
                    self.controller.toggle(papers[int(token) - 1].doi)
                else:
                    self.ui.warning(f"Ignoring '{token}'")

    async def _run_search(
        self,
        question: str,
        filters: FilterSet,
        auto: bool,
        follow_ups: list[str],
    ) -> None:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=self.ui.console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def show_stage(stage: PipelineStage, message: str) -> None:
                if message:
                    progress.update(task, description=message)

            self.controller.on_stage_change(show_stage)
            session = await self.controller.search(question, filters)

        self.ui.info(
            f"Found {len(session.corpus)} papers, {len(session.selection)} pre-selected as relevant"
        )
        self._review(auto)

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=self.ui.console,
            transient=True,
        ) as progress:
            progress.add_task(f"Analyzing {len(self.controller.session.selection)} papers...", total=None)
            result = await self.controller.synthesize()
        self.ui.success(f"Analyzed {len(result.papers)} papers")
        self.ui.display_analysis(result)

        for question_text in follow_ups:
            answer = await self.controller.ask_follow_up(question_text)
            self.ui.display_follow_up(answer)

    def cmd_search(
        self,
        question: str,
        filters: FilterSet,
        auto: bool = False,
        follow_ups: Optional[list[str]] = None,
        export_json: bool = False,
        export_markdown: bool = False,
    ) -> int:
        """Run the full pipeline for *question*; returns a process exit code."""
        try:
            asyncio.run(self._run_search(question, filters, auto, follow_ups or []))
        except (DialecticaError, ValueError) as e:
            self.ui.error(getattr(e, "message", str(e)))
            return 1
        finally:
            self.ui.display_usage(self.controller.usage_stats)

        session = self.controller.session
        if session is None or session.result is None:
            return 1
        if export_json or export_markdown:
            exporter = AnalysisExporter(self.settings.export_dir)
            if export_json:
                self.ui.exported(exporter.export_json(session.result, session.question))
            if export_markdown:
                self.ui.exported(
                    exporter.export_markdown(session.result, session.question, session.follow_ups)
                )
        return 0


def build_filters(args: argparse.Namespace) -> FilterSet:
    sources = set()
    if not args.no_openalex:
        sources.add(OPENALEX)
    if not args.no_semantic_scholar:
        sources.add(SEMANTIC_SCHOLAR)
    return FilterSet(
        start_year=args.start_year,
        end_year=args.end_year,
        open_access_only=args.open_access,
        min_citations=args.min_citations,
        sources=frozenset(sources),
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="dialectica",
        description="Research question → OpenAlex + Semantic Scholar → Gemini disagreement map",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # search command
    search_parser = subparsers.add_parser("search", help="Search, review and synthesize")
    search_parser.add_argument("question", help="Research question in natural language")
    search_parser.add_argument(
        "--start-year",
        type=int,
        default=DEFAULT_START_YEAR,
        help=f"First publication year (default: {DEFAULT_START_YEAR})",
    )
    search_parser.add_argument(
        "--end-year",
        type=int,
        default=date.today().year,
        help="Last publication year (default: current year)",
    )
    search_parser.add_argument(
        "--open-access",
        action="store_true",
        help="Only open-access papers",
    )
    search_parser.add_argument(
        "--min-citations",
        type=int,
        default=0,
        help="Minimum citation count (default: 0)",
    )
    search_parser.add_argument("--no-openalex", action="store_true", help="Skip OpenAlex")
    search_parser.add_argument(
        "--no-semantic-scholar",
        action="store_true",
        help="Skip Semantic Scholar",
    )
    search_parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Analyze the pre-selected papers without prompting",
    )
    search_parser.add_argument(
        "--ask",
        action="append",
        default=[],
        metavar="QUESTION",
        help="Follow-up question to ask after the analysis (repeatable)",
    )
    search_parser.add_argument("--export", action="store_true", help="Export the analysis as JSON")
    search_parser.add_argument(
        "--markdown",
        action="store_true",
        help="Export the analysis as a Markdown report",
    )
    search_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the JSON API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    return parser


def run_cli(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        setup_logging()
        uvicorn.run("dialectica.gui.app:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    setup_logging(args.verbose)
    try:
        filters = build_filters(args)
    except ValueError as e:
        parser.error(str(e))

    cli = DialecticaCLI()
    return cli.cmd_search(
        args.question,
        filters,
        auto=args.yes,
        follow_ups=args.ask,
        export_json=args.export,
        export_markdown=args.markdown,
    )
