"""Service layer."""

from dialectica.services.export_service import AnalysisExporter
from dialectica.services.gemini_service import GeminiService, LanguageService
from dialectica.services.graph_layout_service import GraphLayoutEngine, GraphView
from dialectica.services.openalex_service import OpenAlexSource
from dialectica.services.query_service import QueryRefiner
from dialectica.services.relevance_service import RelevanceAssessor
from dialectica.services.retrieval_service import Retriever, SourceAdapter
from dialectica.services.semantic_scholar_service import SemanticScholarSource
from dialectica.services.synthesis_service import SynthesisOrchestrator
from dialectica.services.usage_service import UsageEstimator, UsageTracker, usage_tracker

__all__ = [
    "AnalysisExporter",
    "GeminiService",
    "GraphLayoutEngine",
    "GraphView",
    "LanguageService",
    "OpenAlexSource",
    "QueryRefiner",
    "RelevanceAssessor",
    "Retriever",
    "SemanticScholarSource",
    "SourceAdapter",
    "SynthesisOrchestrator",
    "UsageEstimator",
    "UsageTracker",
    "usage_tracker",
]
