"""Fan-out retrieval across bibliographic sources."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from dialectica.models.paper import FilterSet, Paper

logger = logging.getLogger(__name__)

MAX_CORPUS_SIZE = 100


class SourceAdapter(Protocol):
    """A bibliographic source.

    ``search`` must return ``[]`` rather than raise on transport, parsing
    or rate-limit failures, and must drop papers without DOI or abstract.
    """

    source_id: str
    display_name: str

    async def search(self, query: str, filters: FilterSet) -> list[Paper]: ...


@dataclass
class RetrievalResult:
    """Merged corpus plus how many papers each source contributed.

    Counts are taken after the source's own filtering and before
    cross-source deduplication.
    """

    papers: list[Paper] = field(default_factory=list)
    per_source_counts: dict[str, int] = field(default_factory=dict)


def dedupe_by_doi(papers: Sequence[Paper]) -> list[Paper]:
    """Keep the first paper seen for every DOI, preserving order."""
    seen: set[str] = set()
    unique: list[Paper] = []
    for paper in papers:
        if paper.doi in seen:
            continue
        seen.add(paper.doi)
        unique.append(paper)
    return unique


class Retriever:
    """Queries every enabled source concurrently and merges the results."""

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        max_corpus_size: int = MAX_CORPUS_SIZE,
    ):
        self.sources = list(sources)
        self.max_corpus_size = max_corpus_size

    def enabled_sources(self, filters: FilterSet) -> list[SourceAdapter]:
        """Registered adapters that *filters* switches on, in registration order."""
        return [s for s in self.sources if filters.is_enabled(s.source_id)]

    async def fetch_all(self, query: str, filters: FilterSet) -> RetrievalResult:
        """Fetch from all enabled sources, dedupe by DOI, truncate."""
        enabled = self.enabled_sources(filters)
        if not enabled:
            raise ValueError("At least one bibliographic source must be enabled.")

        results = await asyncio.gather(
            *(self._search_isolated(source, query, filters) for source in enabled)
        )

        counts = {s.source_id: 0 for s in self.sources}
        merged: list[Paper] = []
        for source, papers in zip(enabled, results):
            counts[source.source_id] = len(papers)
            merged.extend(papers)

        unique = dedupe_by_doi(merged)
        logger.info(
            "Retrieved %d papers (%d unique) for %r: %s",
            len(merged), len(unique), query, counts,
        )
        return RetrievalResult(
            papers=unique[: self.max_corpus_size],
            per_source_counts=counts,
        )

    @staticmethod
    async def _search_isolated(
        source: SourceAdapter, query: str, filters: FilterSet
    ) -> list[Paper]:
        """Run one source, turning a contract breach into an empty result."""
        try:
            return await source.search(query, filters)
        except Exception:
            logger.exception("%s failed unexpectedly; skipping source", source.display_name)
            return []
