"""OpenAlex API client: keyword search over works with year/OA/citation filters."""

import logging
from typing import Any, Optional

import httpx

from dialectica.models.paper import OPENALEX, FilterSet, Paper
from dialectica.utils.text import clean_abstract, clean_title, normalize_doi, reconstruct_abstract

logger = logging.getLogger(__name__)

OPENALEX_WORKS_URL = "https://api.openalex.org/works"
SELECT_FIELDS = "title,authorships,publication_year,abstract_inverted_index,doi,primary_location"
TIMEOUT = 20.0


def build_filter(filters: FilterSet) -> str:
    """Translate a FilterSet into OpenAlex's ``filter=`` syntax."""
    parts: list[str] = []
    start, end = filters.start_year, filters.end_year
    if start is not None and end is not None:
        parts.append(f"publication_year:{start}-{end}")
    elif start is not None:
        parts.append(f"publication_year:>{start - 1}")
    elif end is not None:
        parts.append(f"publication_year:<{end + 1}")
    parts.append("has_abstract:true")
    if filters.open_access_only:
        parts.append("is_oa:true")
    if filters.min_citations > 0:
        parts.append(f"cited_by_count:>{filters.min_citations - 1}")
    return ",".join(parts)


def parse_work(item: dict[str, Any]) -> Optional[Paper]:
    """Map one OpenAlex work to a Paper; None when DOI or abstract is missing."""
    doi = normalize_doi(item.get("doi"))
    abstract = clean_abstract(reconstruct_abstract(item.get("abstract_inverted_index")))
    if not doi or not abstract:
        return None

    authorships = item.get("authorships") or []
    authors = [
        (a.get("author") or {}).get("display_name", "")
        for a in authorships
    ]
    authors = [a for a in authors if a]

    institution = None
    if authorships:
        institutions = authorships[0].get("institutions") or []
        if institutions:
            institution = institutions[0].get("display_name") or None

    return Paper(
        title=clean_title(item.get("title")),
        doi=doi,
        authors=authors,
        year=item.get("publication_year"),
        abstract=abstract,
        primary_institution=institution,
        source=OPENALEX,
    )


class OpenAlexSource:
    """SourceAdapter for OpenAlex.

    Never raises: transport, status and parsing failures all yield ``[]``
    so that one unavailable source cannot stop a search.
    """

    source_id = OPENALEX
    display_name = "OpenAlex"

    def __init__(
        self,
        contact_email: Optional[str] = None,
        per_page: int = 50,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize OpenAlex source.

        Args:
            contact_email: Email for polite pool access (recommended by OpenAlex)
            per_page: Number of works requested per search
            client: Shared HTTP client; a short-lived one is used when omitted
        """
        self.contact_email = contact_email
        self.per_page = per_page
        self._client = client

    def _build_params(self, query: str, filters: FilterSet) -> dict[str, Any]:
        params: dict[str, Any] = {
            "search": query,
            "filter": build_filter(filters),
            "per_page": self.per_page,
            "sort": "relevance_score:desc",
            "select": SELECT_FIELDS,
        }
        if self.contact_email:
            params["mailto"] = self.contact_email
        return params

    async def search(self, query: str, filters: FilterSet) -> list[Paper]:
        params = self._build_params(query, filters)
        try:
            if self._client is not None:
                response = await self._client.get(OPENALEX_WORKS_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                    response = await client.get(OPENALEX_WORKS_URL, params=params)

            if response.status_code != 200:
                logger.warning("OpenAlex returned %s; skipping source", response.status_code)
                return []

            data = response.json()
        except httpx.TimeoutException:
            logger.warning("OpenAlex request timed out; skipping source")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Error fetching from OpenAlex: %s", e)
            return []

        if not isinstance(data, dict):
            logger.warning("Unexpected OpenAlex payload; skipping source")
            return []

        papers: list[Paper] = []
        for item in data.get("results") or []:
            try:
                paper = parse_work(item)
            except (AttributeError, TypeError) as e:
                logger.debug("Skipping unparsable OpenAlex work: %s", e)
                continue
            if paper is not None:
                papers.append(paper)

        logger.info("OpenAlex: %d papers for %r", len(papers), query)
        return papers
