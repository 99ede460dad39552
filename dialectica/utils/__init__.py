"""Utility functions."""

from dialectica.utils.text import (
    clean_abstract,
    clean_title,
    normalize_doi,
    reconstruct_abstract,
    strip_code_fences,
    strip_quotes,
    strip_trailing_operator,
)

__all__ = [
    "clean_abstract",
    "clean_title",
    "normalize_doi",
    "reconstruct_abstract",
    "strip_code_fences",
    "strip_quotes",
    "strip_trailing_operator",
]
