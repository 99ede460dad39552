"""Wire schemas for the language service.

Field names follow the JSON contract sent to Gemini as ``response_schema``,
so they are camelCase on purpose.  Every response is validated against
these models before any field is read.
"""

from typing import Optional

from pydantic import BaseModel, Field

from dialectica.models.analysis import (
    AnalysisResult,
    ContentionPoint,
    DisagreementScore,
    FollowUp,
    KeyPaper,
    RelatedPaper,
    Stance,
)
from dialectica.models.paper import Paper
from dialectica.utils.text import normalize_doi


class PaperPayload(BaseModel):
    title: str
    authors: list[str]
    year: int
    abstract: str
    doi: str
    primaryInstitution: Optional[str] = None

    def to_paper(self) -> Paper:
        return Paper(
            title=self.title,
            doi=normalize_doi(self.doi),
            authors=list(self.authors),
            year=self.year,
            abstract=self.abstract,
            primary_institution=self.primaryInstitution,
        )


class StandardizeQueryResponse(BaseModel):
    refinedQuery: str = Field(
        description="A concise, keyword-based search query for academic databases, "
        "using boolean operators and quotes."
    )


class BroadenQueryResponse(BaseModel):
    broadenedQuery: str = Field(
        description="A broader, simplified version of the input query, designed to "
        "increase the likelihood of returning search results from academic databases."
    )


class RelevanceAssessment(BaseModel):
    doi: str
    isRelevant: bool
    score: float
    relevanceJustification: str = Field(
        description="A brief justification for the relevance score, explaining why "
        "the paper is or isn't relevant to the query."
    )


class RelevanceAssessmentResponse(BaseModel):
    assessments: list[RelevanceAssessment]


class DisagreementScorePayload(BaseModel):
    score: float = Field(
        description="A numerical score from 1 (total consensus) to 10 (total disagreement)."
    )
    qualitative: str = Field(
        description="A qualitative label for the score (e.g., 'Low Disagreement', "
        "'High Contention')."
    )


class KeyPaperPayload(BaseModel):
    paper: PaperPayload
    rationale: str = Field(
        description="Explanation for why this paper is considered key to the debate."
    )


class StancePayload(BaseModel):
    id: str = Field(
        description="A unique identifier for this stance, combining paper DOI and a "
        "short hash of the quote."
    )
    summary: str = Field(description="A summary of this specific viewpoint or finding.")
    quote: str = Field(description="A direct, concise quote from the paper supporting this stance.")
    paper: PaperPayload


class RelatedPaperPayload(BaseModel):
    doi: str
    relevance: float = Field(
        description="Relevance of this paper to this specific contention point, "
        "from 1 (low) to 5 (high)."
    )


class ContentionPointPayload(BaseModel):
    topic: str = Field(description="The specific topic or sub-question where there is disagreement.")
    stances: list[StancePayload]
    relatedPapers: list[RelatedPaperPayload] = Field(
        description="A list of ALL papers from the corpus that relate to this "
        "contention point, with a relevance score."
    )


class SynthesisResponse(BaseModel):
    summary: str = Field(
        description="A high-level summary of the academic discourse, disagreement, "
        "and consensus on the topic."
    )
    disagreementScore: DisagreementScorePayload
    keyPapers: list[KeyPaperPayload]
    contentionPoints: list[ContentionPointPayload] = Field(
        description="A list of at least 3-5 major points of contention found in the literature."
    )
    researchGaps: list[str] = Field(
        description="A list of at least 3 identified gaps in the current research or "
        "unanswered questions that logically follow from the points of contention."
    )
    papers: list[PaperPayload] = Field(
        description="A list of all papers that were analyzed to generate this "
        "synthesis. This list MUST include every paper provided in the input."
    )

    def to_result(self) -> AnalysisResult:
        return AnalysisResult(
            summary=self.summary,
            disagreement_score=DisagreementScore(
                score=self.disagreementScore.score,
                qualitative=self.disagreementScore.qualitative,
            ),
            key_papers=[
                KeyPaper(paper=kp.paper.to_paper(), rationale=kp.rationale)
                for kp in self.keyPapers
            ],
            contention_points=[
                ContentionPoint(
                    topic=cp.topic,
                    stances=[
                        Stance(
                            id=s.id,
                            summary=s.summary,
                            quote=s.quote,
                            paper=s.paper.to_paper(),
                        )
                        for s in cp.stances
                    ],
                    related_papers=[
                        RelatedPaper(doi=normalize_doi(rp.doi), relevance=rp.relevance)
                        for rp in cp.relatedPapers
                    ],
                )
                for cp in self.contentionPoints
            ],
            research_gaps=list(self.researchGaps),
            papers=[p.to_paper() for p in self.papers],
        )


class FollowUpResponse(BaseModel):
    question: str
    answer: str = Field(
        description="A clear, concise answer to the user's follow-up question, "
        "synthesized from the provided papers."
    )
    sources: list[PaperPayload] = Field(
        description="A list of the specific papers used to formulate the answer."
    )

    def to_follow_up(self, question: str) -> FollowUp:
        return FollowUp(
            question=question,
            answer=self.answer,
            sources=[p.to_paper() for p in self.sources],
        )
