"""Dialectica - map where the literature disagrees.

Turns a research question into a synthesis of academic disagreement:
papers are retrieved from OpenAlex and Semantic Scholar, screened for
relevance and curated, then synthesized by Gemini into contention points
and research gaps that can be laid out as a three-column graph.
"""

__version__ = "1.0.0"

from dialectica.config import Settings
from dialectica.models.paper import FilterSet, Paper

__all__ = ["FilterSet", "Paper", "Settings", "__version__"]
