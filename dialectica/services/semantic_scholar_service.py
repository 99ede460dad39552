"""Semantic Scholar Graph API client for keyword paper search."""

import logging
from typing import Any, Optional

import httpx

from dialectica.models.paper import SEMANTIC_SCHOLAR, FilterSet, Paper
from dialectica.utils.text import clean_abstract, clean_title, normalize_doi

logger = logging.getLogger(__name__)

S2_SEARCH_URL = "https://api.semanticscholar.org/graph/v1/paper/search"
S2_FIELDS = "title,authors,year,abstract,externalIds,authors.affiliations"
TIMEOUT = 20.0


def build_year_range(filters: FilterSet) -> Optional[str]:
    """``2010-2024``, ``2010-`` or ``-2024``; None when unbounded."""
    start, end = filters.start_year, filters.end_year
    if start is None and end is None:
        return None
    return f"{start if start is not None else ''}-{end if end is not None else ''}"


def parse_paper(item: dict[str, Any]) -> Optional[Paper]:
    """Map one search hit to a Paper; None when DOI or abstract is missing."""
    external_ids = item.get("externalIds") or {}
    doi = normalize_doi(external_ids.get("DOI"))
    abstract = clean_abstract(item.get("abstract"))
    if not doi or not abstract:
        return None

    raw_authors = item.get("authors") or []
    authors = [a.get("name", "") for a in raw_authors if a.get("name")]

    institution = None
    if raw_authors:
        affiliations = raw_authors[0].get("affiliations") or []
        if affiliations:
            institution = affiliations[0] or None

    return Paper(
        title=clean_title(item.get("title")),
        doi=doi,
        authors=authors,
        year=item.get("year"),
        abstract=abstract,
        primary_institution=institution,
        source=SEMANTIC_SCHOLAR,
    )


class SemanticScholarSource:
    """SourceAdapter for Semantic Scholar.

    The public endpoint is aggressively rate-limited; a 429 or a
    "too many requests" body is treated like any other failure and the
    source is skipped for this search.
    """

    source_id = SEMANTIC_SCHOLAR
    display_name = "Semantic Scholar"

    def __init__(
        self,
        api_key: Optional[str] = None,
        limit: int = 50,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.limit = limit
        self._client = client
        self._headers = {"x-api-key": api_key} if api_key else {}

    def _build_params(self, query: str, filters: FilterSet) -> dict[str, Any]:
        params: dict[str, Any] = {
            "query": query,
            "limit": self.limit,
            "fields": S2_FIELDS,
        }
        year = build_year_range(filters)
        if year:
            params["year"] = year
        if filters.min_citations > 0:
            params["minCitationCount"] = filters.min_citations
        if filters.open_access_only:
            params["openAccessPdf"] = ""
        return params

    async def search(self, query: str, filters: FilterSet) -> list[Paper]:
        params = self._build_params(query, filters)
        try:
            if self._client is not None:
                response = await self._client.get(
                    S2_SEARCH_URL, params=params, headers=self._headers
                )
            else:
                async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                    response = await client.get(
                        S2_SEARCH_URL, params=params, headers=self._headers
                    )

            if response.status_code == 429 or "too many requests" in response.text.lower():
                logger.warning("Semantic Scholar is rate-limited; skipping source")
                return []
            if response.status_code != 200:
                logger.warning(
                    "Semantic Scholar returned %s; skipping source", response.status_code
                )
                return []

            data = response.json()
        except httpx.TimeoutException:
            logger.warning("Semantic Scholar request timed out; skipping source")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not fetch or parse Semantic Scholar data: %s", e)
            return []

        if not isinstance(data, dict):
            logger.warning("Unexpected Semantic Scholar payload; skipping source")
            return []

        papers: list[Paper] = []
        for item in data.get("data") or []:
            try:
                paper = parse_paper(item)
            except (AttributeError, TypeError) as e:
                logger.debug("Skipping unparsable Semantic Scholar hit: %s", e)
                continue
            if paper is not None:
                papers.append(paper)

        logger.info("Semantic Scholar: %d papers for %r", len(papers), query)
        return papers
