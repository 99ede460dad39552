"""Batched relevance screening of a retrieved corpus."""

import logging
from typing import Sequence

from dialectica.errors import ConfigurationError
from dialectica.models.paper import Paper
from dialectica.services.gemini_service import LanguageService, ParseFailure
from dialectica.services.schemas import RelevanceAssessment, RelevanceAssessmentResponse
from dialectica.utils.text import normalize_doi

logger = logging.getLogger(__name__)

RELEVANCE_THRESHOLD = 3.0
FALLBACK_SCORE = 3.0
MISSING_SCORE = 1.0
MISSING_JUSTIFICATION = "AI assessment was not provided for this paper."
FALLBACK_JUSTIFICATION = "Automatic relevance assessment failed. Included by default."

ASSESS_INSTRUCTION = (
    "You are a meticulous research assistant. Your task is to evaluate a list of "
    "academic papers based on a user's research query and determine their direct "
    "relevance. For each paper, assess if its abstract directly addresses the user's "
    "query. Return a relevance score from 1 (not relevant) to 5 (highly relevant) and "
    "a brief justification for the score in the 'relevanceJustification' field. "
    "Papers with a score below 3 should be marked as not relevant. Your entire output "
    "must be a single JSON object conforming to the provided schema, containing an "
    "assessment for every paper provided."
)


def build_corpus_context(papers: Sequence[Paper]) -> str:
    return "\n\n---\n\n".join(f"DOI: {p.doi}\nAbstract: {p.abstract}" for p in papers)


def clamp_score(score: float) -> float:
    return max(1.0, min(5.0, float(score)))


class RelevanceAssessor:
    """Scores every paper 1-5 against the question and flags the relevant ones.

    The whole corpus is always returned, relevant or not, so the reviewer
    can still pull excluded papers back in.
    """

    def __init__(self, llm: LanguageService, threshold: float = RELEVANCE_THRESHOLD):
        self.llm = llm
        self.threshold = threshold

    async def assess(self, papers: Sequence[Paper], question: str) -> list[Paper]:
        if not papers:
            return []
        try:
            result = await self.llm.generate_structured(
                system=ASSESS_INSTRUCTION,
                contents=f'User Query: "{question}"\n\nPaper Corpus:\n{build_corpus_context(papers)}',
                schema=RelevanceAssessmentResponse,
                temperature=0.1,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(
                "Error assessing paper relevance; marking all %d papers relevant: %s",
                len(papers), e,
            )
            return self.fallback(papers)

        if isinstance(result, ParseFailure):
            logger.warning(
                "Unreadable relevance assessment; marking all %d papers relevant",
                len(papers),
            )
            return self.fallback(papers)

        return self.apply(papers, result.value.assessments)

    def apply(
        self,
        papers: Sequence[Paper],
        assessments: Sequence[RelevanceAssessment],
    ) -> list[Paper]:
        """Merge service assessments into *papers* (input order kept)."""
        by_doi: dict[str, RelevanceAssessment] = {}
        for item in assessments:
            by_doi.setdefault(normalize_doi(item.doi), item)

        assessed: list[Paper] = []
        missing = 0
        for paper in papers:
            item = by_doi.get(normalize_doi(paper.doi))
            if item is None:
                missing += 1
                assessed.append(
                    paper.with_assessment(
                        is_relevant=False,
                        score=MISSING_SCORE,
                        justification=MISSING_JUSTIFICATION,
                    )
                )
                continue
            score = clamp_score(item.score)
            assessed.append(
                paper.with_assessment(
                    is_relevant=score >= self.threshold,
                    score=score,
                    justification=item.relevanceJustification,
                )
            )

        if missing:
            logger.warning("No assessment returned for %d of %d papers", missing, len(papers))
        relevant = sum(1 for p in assessed if p.is_relevant)
        logger.info("Relevance: %d of %d papers relevant", relevant, len(assessed))
        return assessed

    @staticmethod
    def fallback(papers: Sequence[Paper]) -> list[Paper]:
        return [
            p.with_assessment(
                is_relevant=True,
                score=FALLBACK_SCORE,
                justification=FALLBACK_JUSTIFICATION,
            )
            for p in papers
        ]
