"""Tests for the OpenAlex and Semantic Scholar source adapters (httpx.MockTransport)."""
import asyncio

import httpx
import pytest

from dialectica.models.paper import OPENALEX, SEMANTIC_SCHOLAR, FilterSet
from dialectica.services.openalex_service import OpenAlexSource, build_filter, parse_work
from dialectica.services.semantic_scholar_service import (
    SemanticScholarSource,
    build_year_range,
    parse_paper,
)


def run_search(source_cls, handler, filters=None, **kw):
    """Run one search against a mock transport; returns (papers, requests)."""
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    async def go():
        transport = httpx.MockTransport(recording)
        async with httpx.AsyncClient(transport=transport) as client:
            source = source_cls(client=client, **kw)
            return await source.search("sleep memory", filters or FilterSet(2010, 2020))

    return asyncio.run(go()), requests


OPENALEX_WORK = {
    "title": "Sleep &amp; <i>memory</i>",
    "doi": "https://doi.org/10.1000/ABC",
    "publication_year": 2018,
    "abstract_inverted_index": {"Sleep": [0], "helps": [1], "memory": [2]},
    "authorships": [
        {
            "author": {"display_name": "Ada Lovelace"},
            "institutions": [{"display_name": "University of London"}],
        },
        {"author": {"display_name": "Alan Turing"}, "institutions": []},
    ],
}

S2_HIT = {
    "title": "Naps and recall",
    "year": 2019,
    "abstract": "Naps improve recall.",
    "externalIds": {"DOI": "10.2000/XYZ"},
    "authors": [{"name": "Grace Hopper", "affiliations": ["Yale"]}, {"name": "Kay"}],
}


# --- OpenAlex ---

def test_build_filter_year_range_and_flags():
    filters = FilterSet(2010, 2020, open_access_only=True, min_citations=5)
    assert build_filter(filters) == (
        "publication_year:2010-2020,has_abstract:true,is_oa:true,cited_by_count:>4"
    )


def test_build_filter_minimum_citations_is_inclusive():
    assert build_filter(FilterSet(None, None, min_citations=1)) == (
        "has_abstract:true,cited_by_count:>0"
    )
    assert "cited_by_count" not in build_filter(FilterSet(None, None, min_citations=0))


def test_build_filter_open_ended_years():
    assert build_filter(FilterSet(2010, None)).startswith("publication_year:>2009,")
    assert build_filter(FilterSet(None, 2020)).startswith("publication_year:<2021,")
    assert build_filter(FilterSet(None, None)) == "has_abstract:true"


def test_parse_work_maps_fields():
    paper = parse_work(OPENALEX_WORK)
    assert paper.doi == "10.1000/abc"
    assert paper.title == "Sleep & memory"
    assert paper.abstract == "Sleep helps memory"
    assert paper.authors == ["Ada Lovelace", "Alan Turing"]
    assert paper.primary_institution == "University of London"
    assert paper.year == 2018
    assert paper.source == OPENALEX


def test_parse_work_drops_missing_doi_or_abstract():
    assert parse_work({**OPENALEX_WORK, "doi": None}) is None
    assert parse_work({**OPENALEX_WORK, "abstract_inverted_index": None}) is None


def test_openalex_search_sends_filters_and_email():
    papers, requests = run_search(
        OpenAlexSource,
        lambda r: httpx.Response(200, json={"results": [OPENALEX_WORK, {"doi": None}]}),
        contact_email="me@example.org",
    )
    assert [p.doi for p in papers] == ["10.1000/abc"]
    params = requests[0].url.params
    assert params["search"] == "sleep memory"
    assert params["mailto"] == "me@example.org"
    assert params["filter"] == "publication_year:2010-2020,has_abstract:true"
    assert params["per_page"] == "50"


@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(500, text="boom"),
        lambda r: httpx.Response(200, text="not json"),
        lambda r: httpx.Response(200, json=["unexpected"]),
    ],
)
def test_openalex_failures_yield_empty(handler):
    papers, _ = run_search(OpenAlexSource, handler)
    assert papers == []


def test_openalex_transport_errors_yield_empty():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    def time_out(request):
        raise httpx.ReadTimeout("slow", request=request)

    assert run_search(OpenAlexSource, refuse)[0] == []
    assert run_search(OpenAlexSource, time_out)[0] == []


# --- Semantic Scholar ---

def test_build_year_range():
    assert build_year_range(FilterSet(2010, 2024)) == "2010-2024"
    assert build_year_range(FilterSet(2010, None)) == "2010-"
    assert build_year_range(FilterSet(None, 2024)) == "-2024"
    assert build_year_range(FilterSet(None, None)) is None


def test_parse_paper_maps_fields():
    paper = parse_paper(S2_HIT)
    assert paper.doi == "10.2000/xyz"
    assert paper.authors == ["Grace Hopper", "Kay"]
    assert paper.primary_institution == "Yale"
    assert paper.source == SEMANTIC_SCHOLAR


def test_parse_paper_drops_missing_doi_or_abstract():
    assert parse_paper({**S2_HIT, "externalIds": {}}) is None
    assert parse_paper({**S2_HIT, "abstract": None}) is None


def test_semantic_scholar_search_params_and_key():
    filters = FilterSet(2010, 2020, open_access_only=True, min_citations=3)
    papers, requests = run_search(
        SemanticScholarSource,
        lambda r: httpx.Response(200, json={"data": [S2_HIT]}),
        filters=filters,
        api_key="secret",
    )
    assert [p.doi for p in papers] == ["10.2000/xyz"]
    request = requests[0]
    assert request.headers["x-api-key"] == "secret"
    params = request.url.params
    assert params["query"] == "sleep memory"
    assert params["year"] == "2010-2020"
    assert params["minCitationCount"] == "3"
    assert params["openAccessPdf"] == ""


def test_semantic_scholar_without_key_sends_no_header():
    _, requests = run_search(
        SemanticScholarSource,
        lambda r: httpx.Response(200, json={"data": []}),
    )
    assert "x-api-key" not in requests[0].headers
    assert "minCitationCount" not in requests[0].url.params


@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(429, text="Too Many Requests"),
        lambda r: httpx.Response(200, text="Too many requests, slow down"),
        lambda r: httpx.Response(503, text="unavailable"),
    ],
)
def test_semantic_scholar_rate_limit_and_errors_yield_empty(handler):
    papers, _ = run_search(SemanticScholarSource, handler)
    assert papers == []
