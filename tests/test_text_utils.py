"""Tests for DOI, query and abstract text helpers."""
import pytest

from dialectica.utils.text import (
    clean_abstract,
    clean_title,
    normalize_doi,
    reconstruct_abstract,
    strip_code_fences,
    strip_quotes,
    strip_trailing_operator,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://doi.org/10.1000/ABC.1", "10.1000/abc.1"),
        ("http://dx.doi.org/10.1000/x", "10.1000/x"),
        ("  10.1000/Y  ", "10.1000/y"),
        (None, ""),
        ("", ""),
    ],
)
def test_normalize_doi(raw, expected):
    assert normalize_doi(raw) == expected


@pytest.mark.parametrize(
    "query, expected",
    [
        ('("sleep" OR "rest") AND "memory" AND', '("sleep" OR "rest") AND "memory"'),
        ("sleep memory or ", "sleep memory"),
        ("sleep NOT", "sleep"),
        ("android", "android"),
        ("sleep AND memory", "sleep AND memory"),
    ],
)
def test_strip_trailing_operator(query, expected):
    assert strip_trailing_operator(query) == expected


def test_strip_quotes_removes_every_double_quote():
    assert strip_quotes('"hebrew bible" AND "tanakh"') == "hebrew bible AND tanakh"


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences(' {"a": 1} ') == '{"a": 1}'


def test_reconstruct_abstract_orders_by_position():
    index = {"world": [1], "Hello": [0], "again": [3], "hello": [2]}
    assert reconstruct_abstract(index) == "Hello world hello again"
    assert reconstruct_abstract(None) == ""


def test_clean_abstract_strips_markup_prefix_and_entities():
    raw = "<jats:p>Abstract: Sleep &amp; memory\n  consolidation</jats:p>"
    assert clean_abstract(raw) == "Sleep & memory consolidation"


def test_clean_abstract_plain_text():
    assert clean_abstract("ABSTRACT - Results &lt;0.05") == "Results <0.05"
    assert clean_abstract(None) == ""


def test_clean_title():
    assert clean_title("A <i>study</i>  of &amp; sleep") == "A study of & sleep"
    assert clean_title(None) == "(no title)"
    assert clean_title("<b></b>") == "(no title)"
