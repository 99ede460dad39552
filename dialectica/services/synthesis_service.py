"""Structured synthesis of a curated corpus, and follow-up questions over it."""

import json
import logging
import time
from typing import Optional, Sequence

from dialectica.errors import MalformedResponseError
from dialectica.models.analysis import (
    AnalysisResult,
    DisagreementScore,
    FollowUp,
    UsageEstimate,
)
from dialectica.models.paper import Paper
from dialectica.services.gemini_service import LanguageService, ParseFailure, translate_error
from dialectica.services.schemas import FollowUpResponse, SynthesisResponse
from dialectica.services.usage_service import UsageEstimator

logger = logging.getLogger(__name__)

EMPTY_SELECTION_SUMMARY = (
    "Analysis could not be completed because no papers were selected for the "
    "final synthesis."
)
MALFORMED_SYNTHESIS_MESSAGE = (
    "The AI model returned a malformed analysis that could not be read. This is "
    "often a temporary issue. Please try your analysis again."
)
MALFORMED_FOLLOW_UP_MESSAGE = (
    "The AI model returned a malformed answer that could not be read. Please try "
    "your follow-up question again."
)
DESELECTED_JUSTIFICATION = "Manually excluded by user during review."

SYNTHESIS_INSTRUCTION = (
    "You are a world-class research analyst specializing in meta-analysis of academic "
    "literature. Your task is to analyze a corpus of provided paper abstracts based on a "
    "user's research question. Synthesize the information from ONLY the provided "
    "abstracts to produce a structured analysis. Focus on identifying the primary "
    "points of contention, key papers, and different stances taken by researchers. For "
    "each point of contention, you MUST evaluate every single paper from the provided "
    "corpus and include a list in 'relatedPapers' of all relevant papers, each with its "
    "DOI and a relevance score from 1 (tangential) to 5 (highly relevant). Do NOT use "
    "external knowledge. Your entire analysis must be grounded in the text of the "
    "abstracts provided. The final output must be a JSON object that strictly adheres "
    "to the provided schema. Do not output anything other than the JSON object. "
    "CRITICAL: Pay very close attention to JSON formatting. Ensure that all string "
    "values are valid JSON strings. Specifically, any double quotes (\") that appear "
    "inside a string value, such as in a direct quote from a paper, MUST be properly "
    'escaped with a backslash (e.g., "some text with \\"a quote\\" inside"). Failure '
    "to do so will result in an invalid JSON object."
)

FOLLOW_UP_INSTRUCTION = (
    "You are a research assistant continuing a conversation about an academic topic. "
    "The user has already received an initial analysis and is now asking a follow-up "
    "question. Your task is to answer this question based *only* on the provided list "
    "of academic papers. Do not introduce outside information. If the papers do not "
    "contain the answer, state that clearly. The final output must be a JSON object "
    "that strictly adheres to the provided schema."
)


def build_papers_context(papers: Sequence[Paper]) -> str:
    return "\n\n---\n\n".join(
        f"Title: {p.title}\nAuthors: {', '.join(p.authors)}\nYear: {p.year}\n"
        f"Abstract: {p.abstract}\nDOI: {p.doi}"
        for p in papers
    )


def compute_excluded(corpus: Sequence[Paper], selected: Sequence[Paper]) -> list[Paper]:
    """Papers left out of the synthesis.

    ``(corpus - relevant) + (relevant - selected)``: everything the
    assessor judged not relevant, followed by the relevant papers the
    reviewer deselected (tagged as such).
    """
    selected_dois = {p.doi for p in selected}
    seen: set[str] = set()
    not_relevant: list[Paper] = []
    deselected: list[Paper] = []
    for paper in corpus:
        if paper.doi in seen:
            continue
        seen.add(paper.doi)
        if not paper.is_relevant:
            not_relevant.append(paper)
        elif paper.doi not in selected_dois:
            deselected.append(
                paper.with_assessment(
                    is_relevant=True,
                    score=paper.score if paper.score is not None else 0.0,
                    justification=DESELECTED_JUSTIFICATION,
                )
            )
    return not_relevant + deselected


def empty_result() -> AnalysisResult:
    """Well-formed result for an empty selection; no service call involved."""
    return AnalysisResult(
        summary=EMPTY_SELECTION_SUMMARY,
        disagreement_score=DisagreementScore(score=0, qualitative="N/A"),
        synthesis_time=0.0,
    )


class SynthesisOrchestrator:
    """Requests the structured disagreement map for a curated corpus."""

    def __init__(self, llm: LanguageService, estimator: Optional[UsageEstimator] = None):
        self.llm = llm
        self.estimator = estimator or UsageEstimator()

    async def synthesize(
        self,
        selected: Sequence[Paper],
        question: str,
        corpus: Optional[Sequence[Paper]] = None,
        final_query: Optional[str] = None,
        per_source_counts: Optional[dict[str, int]] = None,
    ) -> AnalysisResult:
        """Synthesize *selected* papers against *question*.

        Args:
            selected: Papers the reviewer kept
            question: The user's original research question
            corpus: Whole assessed corpus, used to compute excluded papers
            final_query: Query that produced the corpus
            per_source_counts: Source contribution counts, passed through

        Raises:
            MalformedResponseError: Unreadable structured payload (retryable)
            ConfigurationError / ServiceUnavailableError / SynthesisError
        """
        corpus = list(corpus) if corpus is not None else list(selected)
        if not selected:
            result = empty_result()
        else:
            contents = (
                f'Research Query: "{question}"\n\n'
                f"Paper Abstracts Corpus:\n{build_papers_context(selected)}"
            )
            logger.info("Synthesizing %d papers", len(selected))
            started = time.perf_counter()
            try:
                parsed = await self.llm.generate_structured(
                    system=SYNTHESIS_INSTRUCTION,
                    contents=contents,
                    schema=SynthesisResponse,
                    temperature=0.2,
                )
            except Exception as e:
                logger.error("Error in synthesis call: %s", e)
                raise translate_error(e, "Failed to get analysis from Gemini API") from e
            elapsed = time.perf_counter() - started

            if isinstance(parsed, ParseFailure):
                logger.error("Malformed synthesis payload: %s", parsed.reason)
                raise MalformedResponseError(MALFORMED_SYNTHESIS_MESSAGE)

            result = parsed.value.to_result()
            result.synthesis_time = elapsed
            result.papers = list(selected)
            result.usage = self.estimator.estimate(
                contents, json.dumps(result.to_dict(include_bookkeeping=False))
            )
            logger.info(
                "Synthesis done in %.1fs: %d contention points, %d gaps",
                elapsed, len(result.contention_points), len(result.research_gaps),
            )

        result.final_query = final_query
        result.excluded_papers = compute_excluded(corpus, selected)
        result.per_source_counts = dict(per_source_counts or {})
        return result

    async def follow_up(
        self,
        question: str,
        original_question: str,
        papers: Sequence[Paper],
    ) -> tuple[FollowUp, UsageEstimate]:
        """Answer *question* from *papers* only."""
        contents = (
            f'Original Query: "{original_question}"\n\n'
            f'Follow-up Question: "{question}"\n\n'
            f"Available Papers:\n{build_papers_context(papers)}"
        )
        try:
            parsed = await self.llm.generate_structured(
                system=FOLLOW_UP_INSTRUCTION,
                contents=contents,
                schema=FollowUpResponse,
            )
        except Exception as e:
            logger.error("Error in follow-up call: %s", e)
            raise translate_error(e, "Failed to get follow-up answer from Gemini API") from e

        if isinstance(parsed, ParseFailure):
            logger.error("Malformed follow-up payload: %s", parsed.reason)
            raise MalformedResponseError(MALFORMED_FOLLOW_UP_MESSAGE)

        answer = parsed.value.to_follow_up(question)
        usage = self.estimator.estimate(contents, json.dumps(answer.to_dict()))
        return answer, usage
