"""Retrieval pipeline, citation extraction and clause analysis."""

from counsel.retrieval.citations import extract_citations, format_citations_for_llm
from counsel.retrieval.clauses import ClauseAnalyzer
from counsel.retrieval.search import RetrievalPipeline, build_context


__all__ = [
    "ClauseAnalyzer",
    "RetrievalPipeline",
    "build_context",
    "extract_citations",
    "format_citations_for_llm",
]
