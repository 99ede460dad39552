"""Paper and search-filter data models."""

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Optional

OPENALEX = "openalex"
SEMANTIC_SCHOLAR = "semantic_scholar"
ALL_SOURCES = frozenset({OPENALEX, SEMANTIC_SCHOLAR})

DEFAULT_START_YEAR = 2010


@dataclass
class Paper:
    """Represents a research paper with metadata.

    Identity is the DOI: two records with the same DOI describe the same
    paper, and only the first one encountered is kept.
    """

    title: str
    doi: str
    authors: list[str] = field(default_factory=list)
    year: Optional[int] = None
    abstract: str = ""
    primary_institution: Optional[str] = None
    source: Optional[str] = None

    # Relevance assessment (set by the relevance assessor)
    score: Optional[float] = None
    relevance_justification: Optional[str] = None
    is_relevant: Optional[bool] = None

    def with_assessment(
        self,
        *,
        is_relevant: bool,
        score: float,
        justification: str,
    ) -> "Paper":
        """Return a copy carrying the given relevance assessment."""
        return replace(
            self,
            is_relevant=is_relevant,
            score=score,
            relevance_justification=justification,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise using the camelCase keys of the JSON payloads."""
        data: dict[str, Any] = {
            "title": self.title,
            "authors": list(self.authors),
            "year": self.year,
            "abstract": self.abstract,
            "doi": self.doi,
        }
        if self.primary_institution:
            data["primaryInstitution"] = self.primary_institution
        if self.source:
            data["source"] = self.source
        if self.score is not None:
            data["score"] = self.score
        if self.relevance_justification is not None:
            data["relevanceJustification"] = self.relevance_justification
        if self.is_relevant is not None:
            data["isRelevant"] = self.is_relevant
        return data


@dataclass(frozen=True)
class FilterSet:
    """Search filters chosen before a search starts.

    Frozen: once a search begins its filters cannot change underneath it.
    """

    start_year: Optional[int] = DEFAULT_START_YEAR
    end_year: Optional[int] = field(default_factory=lambda: date.today().year)
    open_access_only: bool = False
    min_citations: int = 0
    sources: frozenset[str] = ALL_SOURCES

    def __post_init__(self) -> None:
        if self.min_citations < 0:
            raise ValueError("min_citations must be >= 0")
        if (
            self.start_year is not None
            and self.end_year is not None
            and self.start_year > self.end_year
        ):
            raise ValueError("start_year must not be after end_year")
        # Accept any iterable of source ids
        sources = frozenset(self.sources)
        unknown = sources - ALL_SOURCES
        if unknown:
            raise ValueError(f"Unknown source(s): {', '.join(sorted(unknown))}")
        object.__setattr__(self, "sources", sources)

    @property
    def has_enabled_source(self) -> bool:
        return bool(self.sources)

    def is_enabled(self, source_id: str) -> bool:
        return source_id in self.sources

    def to_dict(self) -> dict[str, Any]:
        return {
            "startYear": self.start_year,
            "endYear": self.end_year,
            "isOpenAccess": self.open_access_only,
            "minCitations": self.min_citations,
            "sources": sorted(self.sources),
        }
