"""Text processing utilities for DOIs, abstracts and search queries."""

import html
import re
from typing import Optional

from bs4 import BeautifulSoup

# A boolean operator left dangling at the end of a generated query
_TRAILING_OPERATOR_RE = re.compile(r"\s+(AND|OR|NOT)\s*$", re.IGNORECASE)

# ```json ... ``` wrappers some models put around JSON payloads
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def normalize_doi(doi: Optional[str]) -> str:
    """Normalize DOI by removing URL prefixes and converting to lowercase."""
    if not doi:
        return ""
    doi = doi.strip()
    doi = doi.replace("https://doi.org/", "").replace("http://doi.org/", "")
    doi = doi.replace("https://dx.doi.org/", "").replace("http://dx.doi.org/", "")
    return doi.strip().lower()


def strip_trailing_operator(query: str) -> str:
    """Drop a dangling ``AND``/``OR``/``NOT`` at the end of *query*."""
    return _TRAILING_OPERATOR_RE.sub("", query.strip()).strip()


def strip_quotes(query: str) -> str:
    """Remove every double quote from *query*."""
    return query.replace('"', "")


def strip_code_fences(text: str) -> str:
    """Unwrap a payload wrapped in Markdown code fences."""
    text = text.strip()
    match = _CODE_FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def reconstruct_abstract(inverted_index: Optional[dict[str, list[int]]]) -> str:
    """Rebuild an OpenAlex abstract from its ``abstract_inverted_index``."""
    if not inverted_index:
        return ""
    word_at: dict[int, str] = {}
    for word, positions in inverted_index.items():
        for pos in positions:
            word_at[pos] = word
    return " ".join(word_at[i] for i in sorted(word_at))


def clean_abstract(text: Optional[str]) -> str:
    """Clean abstract text.

    1. Strip JATS/HTML/MathML markup, keeping the text content.
    2. Unescape HTML entities.
    3. Strip leading "Abstract" / "ABSTRACT" prefix (with optional colon/dash).
    4. Normalise whitespace.
    """
    if not text:
        return ""

    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")

    text = html.unescape(text)
    text = re.sub(r"^\s*abstract[\s.:;—–-]*", "", text, flags=re.IGNORECASE)
    return " ".join(text.split()).strip()


def clean_title(text: Optional[str]) -> str:
    """Clean title by removing HTML tags and normalizing whitespace."""
    if not text:
        return "(no title)"
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    text = " ".join(text.split()).strip()
    return text or "(no title)"
