"""Retrieval-and-synthesis pipeline.

``PipelineController`` drives one analysis session at a time through an
explicit state machine::

    IDLE → STANDARDIZING → RETRIEVING ⇄ BROADENING → ASSESSING
         → REVIEWING → SYNTHESIZING → RESULTS

Any stage may fall back to IDLE (a new search supersedes the old one).
Failures pass through ERROR and recover to IDLE (nothing retrieved yet)
or REVIEWING (synthesis failed; the curated corpus is kept).

Only one session is current.  Every ``await`` is followed by a check
that the session is still current; a response for a superseded session
is dropped and reported with :class:`SearchSupersededError`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import httpx

from dialectica.config import PipelineConfig, Settings
from dialectica.errors import (
    DialecticaError,
    InvalidTransitionError,
    NoResultsError,
    SearchSupersededError,
)
from dialectica.models.analysis import AnalysisResult, FollowUp, UsageStats
from dialectica.models.paper import FilterSet, Paper
from dialectica.services.gemini_service import GeminiService, LanguageService
from dialectica.services.openalex_service import OpenAlexSource
from dialectica.services.query_service import QueryRefiner
from dialectica.services.relevance_service import RelevanceAssessor
from dialectica.services.retrieval_service import RetrievalResult, Retriever
from dialectica.services.semantic_scholar_service import SemanticScholarSource
from dialectica.services.synthesis_service import SynthesisOrchestrator
from dialectica.services.usage_service import UsageEstimator, UsageTracker, usage_tracker

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = (
    "No relevant papers could be found, even after broadening the search. "
    "Please try a different query or adjust the filters."
)

SORT_KEYS = ("relevance", "year")


class PipelineStage(str, Enum):
    IDLE = "idle"
    STANDARDIZING = "standardizing"
    RETRIEVING = "retrieving"
    BROADENING = "broadening"
    ASSESSING = "assessing"
    REVIEWING = "reviewing"
    SYNTHESIZING = "synthesizing"
    RESULTS = "results"
    ERROR = "error"


_S = PipelineStage

# Legal moves out of each stage; IDLE is always reachable
TRANSITIONS: dict[PipelineStage, frozenset[PipelineStage]] = {
    _S.IDLE: frozenset({_S.IDLE, _S.STANDARDIZING}),
    _S.STANDARDIZING: frozenset({_S.IDLE, _S.RETRIEVING, _S.ERROR}),
    _S.RETRIEVING: frozenset({_S.IDLE, _S.BROADENING, _S.ASSESSING, _S.ERROR}),
    _S.BROADENING: frozenset({_S.IDLE, _S.RETRIEVING, _S.ERROR}),
    _S.ASSESSING: frozenset({_S.IDLE, _S.REVIEWING, _S.ERROR}),
    _S.REVIEWING: frozenset({_S.IDLE, _S.SYNTHESIZING}),
    _S.SYNTHESIZING: frozenset({_S.IDLE, _S.RESULTS, _S.ERROR}),
    _S.RESULTS: frozenset({_S.IDLE}),
    _S.ERROR: frozenset({_S.IDLE, _S.REVIEWING}),
}

StageListener = Callable[[PipelineStage, str], None]


def can_transition(current: PipelineStage, target: PipelineStage) -> bool:
    return target in TRANSITIONS[current]


@dataclass
class SearchSession:
    """Everything one search produced, discarded when the next one starts."""

    question: str
    filters: FilterSet
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    refined_query: Optional[str] = None
    final_query: Optional[str] = None
    attempts: int = 0
    per_source_counts: dict[str, int] = field(default_factory=dict)
    corpus: list[Paper] = field(default_factory=list)
    selection: set[str] = field(default_factory=set)
    result: Optional[AnalysisResult] = None
    follow_ups: list[FollowUp] = field(default_factory=list)

    @property
    def relevant_papers(self) -> list[Paper]:
        return [p for p in self.corpus if p.is_relevant]

    @property
    def selected_papers(self) -> list[Paper]:
        """Selected papers in corpus order."""
        return [p for p in self.corpus if p.doi in self.selection]

    def paper(self, doi: str) -> Optional[Paper]:
        return next((p for p in self.corpus if p.doi == doi), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "filters": self.filters.to_dict(),
            "refinedQuery": self.refined_query,
            "finalQuery": self.final_query,
            "attempts": self.attempts,
            "perSourceCounts": dict(self.per_source_counts),
            "corpusSize": len(self.corpus),
            "relevantCount": len(self.relevant_papers),
            "selection": sorted(self.selection),
            "hasResult": self.result is not None,
            "followUps": [f.to_dict() for f in self.follow_ups],
        }


def sort_papers(papers: Iterable[Paper], sort_by: str = "relevance") -> list[Paper]:
    """Score descending, or year descending; ties keep corpus order."""
    if sort_by == "relevance":
        return sorted(papers, key=lambda p: p.score or 0, reverse=True)
    if sort_by == "year":
        return sorted(papers, key=lambda p: p.year or 0, reverse=True)
    raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")


class PipelineController:
    """Owns the current search session and the pipeline stage."""

    def __init__(
        self,
        llm: LanguageService,
        retriever: Retriever,
        refiner: Optional[QueryRefiner] = None,
        assessor: Optional[RelevanceAssessor] = None,
        synthesizer: Optional[SynthesisOrchestrator] = None,
        usage: Optional[UsageTracker] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig()
        self.llm = llm
        self.retriever = retriever
        self.refiner = refiner or QueryRefiner(llm)
        self.assessor = assessor or RelevanceAssessor(llm, self.config.relevance_threshold)
        self.synthesizer = synthesizer or SynthesisOrchestrator(
            llm,
            UsageEstimator(
                self.config.chars_per_token,
                self.config.input_price_per_million,
                self.config.output_price_per_million,
            ),
        )
        self.usage = usage if usage is not None else usage_tracker

        self.stage = PipelineStage.IDLE
        self.status_message = ""
        self.error: Optional[str] = None
        self.session: Optional[SearchSession] = None
        self._listeners: list[StageListener] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "PipelineController":
        """Wire the Gemini service and both bibliographic sources from settings."""
        settings = settings or Settings.load()
        config = settings.pipeline
        llm = GeminiService(settings.gemini_api_key, settings.llm_model)
        retriever = Retriever(
            [
                OpenAlexSource(
                    contact_email=settings.contact_email,
                    per_page=config.results_per_source,
                    client=client,
                ),
                SemanticScholarSource(
                    api_key=settings.semantic_scholar_api_key,
                    limit=config.results_per_source,
                    client=client,
                ),
            ],
            max_corpus_size=config.max_corpus_size,
        )
        return cls(llm, retriever, config=config)

    # ── Observers ─────────────────────────────────────────────────────

    def on_stage_change(self, listener: StageListener) -> StageListener:
        """Register *listener*; called with ``(stage, message)`` on every move."""
        self._listeners.append(listener)
        return listener

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.stage, self.status_message)
            except Exception:
                logger.exception("Stage listener failed")

    # ── State machine ─────────────────────────────────────────────────

    def _transition(self, target: PipelineStage, message: str = "") -> None:
        if not can_transition(self.stage, target):
            raise InvalidTransitionError(
                f"Cannot move from {self.stage.value} to {target.value}."
            )
        logger.debug("Stage %s -> %s", self.stage.value, target.value)
        self.stage = target
        self.status_message = message
        self._notify()

    def _fail(self, message: str, recover_to: PipelineStage) -> None:
        """Record *message*, pass through ERROR and land on *recover_to*."""
        self.error = message
        self._transition(PipelineStage.ERROR, message)
        self._transition(recover_to, message)

    def _require(self, *stages: PipelineStage) -> SearchSession:
        if self.stage not in stages or self.session is None:
            allowed = " or ".join(s.value for s in stages)
            raise InvalidTransitionError(
                f"This action is only available while {allowed} (current stage: {self.stage.value})."
            )
        return self.session

    def _check_current(self, session: SearchSession) -> None:
        if self.session is not session:
            logger.info("Dropping response for superseded search %s", session.id)
            raise SearchSupersededError("This search was replaced by a newer one.")

    def reset(self) -> None:
        """Abandon the current session and return to IDLE."""
        self.session = None
        self.error = None
        self._transition(PipelineStage.IDLE)

    # ── Search ────────────────────────────────────────────────────────

    async def search(self, question: str, filters: Optional[FilterSet] = None) -> SearchSession:
        """Standardize, retrieve (broadening on empty results) and assess.

        Returns the new session in REVIEWING with relevant papers
        pre-selected.

        Raises:
            ValueError: Blank question or no enabled source
            ConfigurationError: No language-service credential
            NoResultsError: Nothing found after every attempt
            SearchSupersededError: A newer search started meanwhile
        """
        question = (question or "").strip()
        filters = filters or FilterSet()
        if not question:
            raise ValueError("Please enter a research question.")
        if not filters.has_enabled_source or not self.retriever.enabled_sources(filters):
            raise ValueError("At least one bibliographic source must be enabled.")
        self.llm.ensure_configured()

        session = SearchSession(question=question, filters=filters)
        self.session = session
        self.error = None
        if self.stage is not PipelineStage.IDLE:
            self._transition(PipelineStage.IDLE, "Starting a new search")
        logger.info("Search %s: %s", session.id, question)

        try:
            retrieval = await self._retrieve(session)
            self._transition(
                PipelineStage.ASSESSING,
                f"Fetched {len(retrieval.papers)} papers. Assessing relevance...",
            )
            corpus = await self.assessor.assess(retrieval.papers, question)
            self._check_current(session)
        except SearchSupersededError:
            raise
        except DialecticaError as e:
            self._check_current(session)
            self.session = None
            self._fail(e.message, PipelineStage.IDLE)
            raise

        session.corpus = corpus
        session.selection = {p.doi for p in corpus if p.is_relevant}
        self._transition(PipelineStage.REVIEWING, session.final_query or "")
        logger.info(
            "Search %s ready for review: %d papers, %d pre-selected",
            session.id, len(corpus), len(session.selection),
        )
        return session

    async def _retrieve(self, session: SearchSession) -> RetrievalResult:
        """Standardize once, then retrieve with up to N-1 broadenings."""
        max_attempts = max(1, self.config.max_search_attempts)

        self._transition(PipelineStage.STANDARDIZING, "Standardizing your research question...")
        query = await self.refiner.standardize(session.question)
        self._check_current(session)
        session.refined_query = query

        retrieval = RetrievalResult()
        for attempt in range(1, max_attempts + 1):
            session.attempts = attempt
            self._transition(
                PipelineStage.RETRIEVING,
                f'Searching databases with query: "{query}"',
            )
            retrieval = await self.retriever.fetch_all(query, session.filters)
            self._check_current(session)
            if retrieval.papers or attempt == max_attempts:
                break

            self._transition(
                PipelineStage.BROADENING,
                "No results found. Broadening query and trying again...",
            )
            broader = await self.refiner.broaden(query)
            self._check_current(session)
            if broader == query:
                logger.info("Broadened query is unchanged; giving up after %d attempts", attempt)
                break
            query = broader

        session.final_query = query
        session.per_source_counts = retrieval.per_source_counts
        if not retrieval.papers:
            raise NoResultsError(NO_RESULTS_MESSAGE)
        return retrieval

    # ── Curation ──────────────────────────────────────────────────────

    def _known_doi(self, session: SearchSession, doi: str) -> str:
        if session.paper(doi) is None:
            raise ValueError(f"Unknown paper: {doi}")
        return doi

    def select(self, doi: str) -> None:
        session = self._require(PipelineStage.REVIEWING)
        session.selection.add(self._known_doi(session, doi))

    def deselect(self, doi: str) -> None:
        session = self._require(PipelineStage.REVIEWING)
        session.selection.discard(self._known_doi(session, doi))

    def toggle(self, doi: str) -> bool:
        """Flip one paper's selection; returns whether it is now selected."""
        session = self._require(PipelineStage.REVIEWING)
        self._known_doi(session, doi)
        if doi in session.selection:
            session.selection.discard(doi)
            return False
        session.selection.add(doi)
        return True

    def set_selection(self, dois: Iterable[str]) -> None:
        session = self._require(PipelineStage.REVIEWING)
        selection = {self._known_doi(session, doi) for doi in dois}
        session.selection = selection

    def review_papers(self, sort_by: str = "relevance") -> list[Paper]:
        if self.session is None or not self.session.corpus:
            raise InvalidTransitionError("There are no papers to review yet.")
        return sort_papers(self.session.corpus, sort_by)

    # ── Synthesis ─────────────────────────────────────────────────────

    async def synthesize(self, selected_dois: Optional[Iterable[str]] = None) -> AnalysisResult:
        """Synthesize the current selection (or *selected_dois*).

        On failure the session stays in REVIEWING with its selection so
        the user can retry.
        """
        session = self._require(PipelineStage.REVIEWING)
        if selected_dois is not None:
            self.set_selection(selected_dois)
        selected = session.selected_papers

        self.error = None
        self._transition(
            PipelineStage.SYNTHESIZING,
            f"Analyzing {len(selected)} papers...",
        )
        try:
            result = await self.synthesizer.synthesize(
                selected,
                session.question,
                corpus=session.corpus,
                final_query=session.final_query,
                per_source_counts=session.per_source_counts,
            )
        except DialecticaError as e:
            self._check_current(session)
            self._fail(e.message, PipelineStage.REVIEWING)
            raise

        # The call was paid for even if its answer is now stale
        if result.usage is not None:
            self.usage.add(result.usage)
        self._check_current(session)

        session.result = result
        session.follow_ups = []
        self._transition(PipelineStage.RESULTS)
        return result

    async def ask_follow_up(self, question: str) -> FollowUp:
        """Answer a question from the analyzed papers; stage stays RESULTS."""
        session = self._require(PipelineStage.RESULTS)
        question = (question or "").strip()
        if not question:
            raise ValueError("Please enter a follow-up question.")
        if session.result is None:
            raise InvalidTransitionError("There is no analysis to ask about yet.")

        self.error = None
        try:
            answer, estimate = await self.synthesizer.follow_up(
                question, session.question, session.result.papers
            )
        except DialecticaError as e:
            self._check_current(session)
            self.error = e.message
            raise

        self.usage.add(estimate)
        self._check_current(session)
        session.follow_ups.append(answer)
        return answer

    # ── Usage ─────────────────────────────────────────────────────────

    @property
    def usage_stats(self) -> UsageStats:
        return self.usage.snapshot()

    def reset_usage(self) -> None:
        self.usage.reset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message": self.status_message,
            "error": self.error,
            "session": self.session.to_dict() if self.session else None,
            "usage": self.usage_stats.to_dict(),
        }
