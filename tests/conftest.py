"""Shared pytest fixtures: fake language service, fake sources, paper factory."""
import json
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from dialectica.config import PipelineConfig, Settings
from dialectica.models.paper import OPENALEX, SEMANTIC_SCHOLAR, FilterSet, Paper
from dialectica.services.gemini_service import LanguageService
from dialectica.services.retrieval_service import Retriever
from dialectica.services.schemas import BroadenQueryResponse, StandardizeQueryResponse
from dialectica.services.usage_service import UsageTracker


@dataclass
class Call:
    schema: type
    system: str
    contents: str
    temperature: Optional[float]


class FakeLanguageService(LanguageService):
    """Scripted replies per response schema.

    A reply may be a dict (sent as JSON), a str (sent verbatim), an
    exception instance (raised), or a callable taking the request
    contents.  A list of replies is consumed in order; its last entry
    repeats.
    """

    def __init__(self, replies: Optional[dict[type, Any]] = None, configured: bool = True):
        self.replies = dict(replies or {})
        self.configured = configured
        self.calls: list[Call] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def calls_for(self, schema: type) -> list[Call]:
        return [c for c in self.calls if c.schema is schema]

    async def generate(self, *, system, contents, schema, temperature=None) -> str:
        self.calls.append(Call(schema, system, contents, temperature))
        if schema not in self.replies:
            raise AssertionError(f"unexpected {schema.__name__} request")
        reply = self.replies[schema]
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if callable(reply):
            reply = reply(contents)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


class FakeSource:
    """SourceAdapter returning scripted papers per query (default: all queries)."""

    def __init__(self, source_id: str, papers=None, by_query=None, error=None):
        self.source_id = source_id
        self.display_name = source_id
        self.papers = list(papers or [])
        self.by_query = dict(by_query or {})
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, filters: FilterSet) -> list[Paper]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.by_query.get(query, self.papers))


def make_paper(i: int, **kw) -> Paper:
    defaults = dict(
        title=f"Paper {i}",
        doi=f"10.1000/p{i}",
        authors=[f"Author {i}"],
        year=2015 + i % 8,
        abstract=f"Abstract of paper {i}.",
    )
    defaults.update(kw)
    return Paper(**defaults)


def paper_payload(paper: Paper) -> dict:
    return {
        "title": paper.title,
        "authors": paper.authors,
        "year": paper.year or 2020,
        "abstract": paper.abstract,
        "doi": paper.doi,
    }


def assessment_reply(scores: dict[str, float]) -> dict:
    return {
        "assessments": [
            {
                "doi": doi,
                "isRelevant": score >= 3,
                "score": score,
                "relevanceJustification": f"scored {score}",
            }
            for doi, score in scores.items()
        ]
    }


def synthesis_reply(papers: list[Paper], gaps: Optional[list[str]] = None) -> dict:
    first = papers[0]
    return {
        "summary": "The field is split.",
        "disagreementScore": {"score": 7, "qualitative": "High Contention"},
        "keyPapers": [{"paper": paper_payload(first), "rationale": "Most cited"}],
        "contentionPoints": [
            {
                "topic": "Effect size",
                "stances": [
                    {
                        "id": f"{first.doi}-1",
                        "summary": "Large effect",
                        "quote": 'We observed a "large" effect.',
                        "paper": paper_payload(first),
                    }
                ],
                "relatedPapers": [{"doi": p.doi, "relevance": 4} for p in papers],
            }
        ],
        "researchGaps": gaps if gaps is not None else ["Long-term effect studies"],
        "papers": [paper_payload(p) for p in papers],
    }


# --- Fixtures ---

@pytest.fixture
def papers():
    return [make_paper(i) for i in range(1, 11)]


@pytest.fixture
def fake_llm():
    return FakeLanguageService({
        StandardizeQueryResponse: {"refinedQuery": '"sleep" AND "memory"'},
        BroadenQueryResponse: {"broadenedQuery": "sleep memory"},
    })


@pytest.fixture
def tracker():
    return UsageTracker()


@pytest.fixture
def make_controller(tracker):
    """Factory: controller over fake sources with its own usage tracker."""
    from dialectica.pipeline import PipelineController

    def factory(llm, sources=None, **config):
        sources = sources or [FakeSource(OPENALEX), FakeSource(SEMANTIC_SCHOLAR)]
        return PipelineController(
            llm,
            Retriever(sources),
            usage=tracker,
            config=PipelineConfig(**config),
        )

    return factory


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """A fresh Settings singleton rooted in a temp directory."""
    for var in ("GEMINI_API_KEY", "API_KEY", "SEMANTIC_SCHOLAR_API_KEY", "DIALECTICA_HOME"):
        monkeypatch.delenv(var, raising=False)
    Settings.reset()
    try:
        yield Settings.load(tmp_path)
    finally:
        Settings.reset()
