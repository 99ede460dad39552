"""Tests for query standardization and broadening fallbacks."""
import asyncio

import pytest

from conftest import FakeLanguageService
from dialectica.errors import ConfigurationError
from dialectica.services.query_service import QueryRefiner
from dialectica.services.schemas import BroadenQueryResponse, StandardizeQueryResponse

QUESTION = "does sleep help memory?"


def standardize(reply, **kw):
    llm = FakeLanguageService({StandardizeQueryResponse: reply}, **kw)
    return asyncio.run(QueryRefiner(llm).standardize(QUESTION)), llm


def broaden(reply, query='"sleep spindles" AND "declarative memory"'):
    llm = FakeLanguageService({BroadenQueryResponse: reply})
    return asyncio.run(QueryRefiner(llm).broaden(query)), llm


def test_standardize_strips_dangling_operator():
    refined, llm = standardize({"refinedQuery": ' ("sleep" OR "nap") AND "memory" AND '})
    assert refined == '("sleep" OR "nap") AND "memory"'
    assert llm.calls[0].temperature == 0.1
    assert QUESTION in llm.calls[0].contents


@pytest.mark.parametrize(
    "reply",
    [
        RuntimeError("network down"),
        "this is not json",
        {"unexpected": "shape"},
        {"refinedQuery": "   "},
    ],
)
def test_standardize_falls_back_to_question(reply):
    refined, _ = standardize(reply)
    assert refined == QUESTION


def test_standardize_without_credential_raises():
    with pytest.raises(ConfigurationError):
        standardize({"refinedQuery": "x"}, configured=False)


def test_broaden_returns_service_query():
    broader, llm = broaden({"broadenedQuery": "sleep memory"})
    assert broader == "sleep memory"
    assert llm.calls[0].temperature == 0.5


@pytest.mark.parametrize("reply", [RuntimeError("boom"), "{", {"broadenedQuery": ""}])
def test_broaden_falls_back_to_unquoted_query(reply):
    broader, _ = broaden(reply)
    assert broader == "sleep spindles AND declarative memory"
