"""Synthesis result data models."""

from dataclasses import dataclass, field
from typing import Any, Optional

from dialectica.models.paper import Paper


@dataclass
class Stance:
    """One paper's position on a contention point."""

    id: str
    summary: str
    quote: str
    paper: Paper

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "quote": self.quote,
            "paper": self.paper.to_dict(),
        }


@dataclass
class RelatedPaper:
    """A corpus paper evaluated against a contention point."""

    doi: str
    relevance: float


@dataclass
class ContentionPoint:
    """A topic on which the retrieved papers disagree."""

    topic: str
    stances: list[Stance] = field(default_factory=list)
    related_papers: list[RelatedPaper] = field(default_factory=list)

    @property
    def related_dois(self) -> list[str]:
        return [rp.doi for rp in self.related_papers]

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "stances": [s.to_dict() for s in self.stances],
            "relatedPapers": [
                {"doi": rp.doi, "relevance": rp.relevance}
                for rp in self.related_papers
            ],
        }


@dataclass
class KeyPaper:
    paper: Paper
    rationale: str


@dataclass
class DisagreementScore:
    """1 (total consensus) to 10 (total disagreement), with a label."""

    score: float
    qualitative: str


@dataclass
class UsageEstimate:
    """Estimated token usage and cost of a single language-service call."""

    input_tokens: int
    output_tokens: int
    cost: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cost": self.cost,
        }


@dataclass
class AnalysisResult:
    """Structured synthesis of a curated paper corpus."""

    summary: str
    disagreement_score: DisagreementScore
    key_papers: list[KeyPaper] = field(default_factory=list)
    contention_points: list[ContentionPoint] = field(default_factory=list)
    research_gaps: list[str] = field(default_factory=list)
    papers: list[Paper] = field(default_factory=list)

    # Bookkeeping attached after the service call
    synthesis_time: Optional[float] = None
    final_query: Optional[str] = None
    excluded_papers: list[Paper] = field(default_factory=list)
    per_source_counts: dict[str, int] = field(default_factory=dict)
    usage: Optional[UsageEstimate] = None

    def sorted_papers(self) -> list[Paper]:
        """Papers newest first, then by first author's last name."""

        def last_name(paper: Paper) -> str:
            first = paper.authors[0] if paper.authors else ""
            parts = first.split(" ")
            return parts[-1] if parts else ""

        by_name = sorted(self.papers, key=last_name)
        return sorted(by_name, key=lambda p: p.year or 0, reverse=True)

    def to_dict(self, include_bookkeeping: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "summary": self.summary,
            "disagreementScore": {
                "score": self.disagreement_score.score,
                "qualitative": self.disagreement_score.qualitative,
            },
            "keyPapers": [
                {"paper": kp.paper.to_dict(), "rationale": kp.rationale}
                for kp in self.key_papers
            ],
            "contentionPoints": [cp.to_dict() for cp in self.contention_points],
            "researchGaps": list(self.research_gaps),
            "papers": [p.to_dict() for p in self.papers],
        }
        if not include_bookkeeping:
            return data
        data["synthesisTime"] = self.synthesis_time
        data["finalQuery"] = self.final_query
        data["excludedPapers"] = [p.to_dict() for p in self.excluded_papers]
        data["perSourceCounts"] = dict(self.per_source_counts)
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        return data


@dataclass
class FollowUp:
    """A follow-up question answered from the analyzed corpus."""

    question: str
    answer: str
    sources: list[Paper] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "sources": [p.to_dict() for p in self.sources],
        }


@dataclass
class UsageStats:
    """Cumulative estimated usage for the whole process."""

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalTokens": self.total_input_tokens + self.total_output_tokens,
            "totalCost": self.total_cost,
        }
