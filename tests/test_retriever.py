"""Tests for fan-out retrieval: dedup, per-source counts, isolation, truncation."""
import asyncio

import pytest

from conftest import FakeSource, make_paper
from dialectica.models.paper import OPENALEX, SEMANTIC_SCHOLAR, FilterSet
from dialectica.services.retrieval_service import Retriever, dedupe_by_doi


def fetch(retriever, filters=None, query="q"):
    return asyncio.run(retriever.fetch_all(query, filters or FilterSet()))


def test_dedupe_keeps_first_occurrence():
    a = make_paper(1, title="from openalex")
    b = make_paper(1, title="from s2")
    c = make_paper(2)
    assert [p.title for p in dedupe_by_doi([a, c, b])] == ["from openalex", "Paper 2"]


def test_merges_sources_with_unique_dois_and_counts():
    oa = FakeSource(OPENALEX, [make_paper(1), make_paper(2)])
    s2 = FakeSource(SEMANTIC_SCHOLAR, [make_paper(2, title="dup"), make_paper(3)])
    result = fetch(Retriever([oa, s2]))

    assert [p.doi for p in result.papers] == ["10.1000/p1", "10.1000/p2", "10.1000/p3"]
    assert result.papers[1].title == "Paper 2"
    # Counts are taken before cross-source deduplication
    assert result.per_source_counts == {OPENALEX: 2, SEMANTIC_SCHOLAR: 2}


def test_failing_source_does_not_fail_the_search():
    oa = FakeSource(OPENALEX, error=RuntimeError("contract breach"))
    s2 = FakeSource(SEMANTIC_SCHOLAR, [make_paper(1)])
    result = fetch(Retriever([oa, s2]))

    assert [p.doi for p in result.papers] == ["10.1000/p1"]
    assert result.per_source_counts == {OPENALEX: 0, SEMANTIC_SCHOLAR: 1}


def test_disabled_source_is_not_queried_but_counted():
    oa = FakeSource(OPENALEX, [make_paper(1)])
    s2 = FakeSource(SEMANTIC_SCHOLAR, [make_paper(2)])
    result = fetch(Retriever([oa, s2]), FilterSet(sources={OPENALEX}))

    assert s2.queries == []
    assert oa.queries == ["q"]
    assert result.per_source_counts == {OPENALEX: 1, SEMANTIC_SCHOLAR: 0}


def test_no_enabled_source_is_rejected():
    with pytest.raises(ValueError):
        fetch(Retriever([FakeSource(OPENALEX)]), FilterSet(sources=set()))


def test_corpus_is_truncated_after_dedup():
    oa = FakeSource(OPENALEX, [make_paper(i) for i in range(80)])
    s2 = FakeSource(SEMANTIC_SCHOLAR, [make_paper(i) for i in range(40, 120)])
    result = fetch(Retriever([oa, s2], max_corpus_size=100))

    assert len(result.papers) == 100
    assert len({p.doi for p in result.papers}) == 100
    assert result.papers[0].doi == "10.1000/p0"
    assert result.per_source_counts == {OPENALEX: 80, SEMANTIC_SCHOLAR: 80}
