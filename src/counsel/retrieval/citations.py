"""Citation extraction: exact quotes located by extractive QA."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from counsel.retrieval.search import document_name
from counsel.schemas import AgentFailure, Citation, CitationResult, SearchResult


if TYPE_CHECKING:
    from counsel.services.refinement import RelevanceRefiner


logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 50

_SENTENCE_END = re.compile(r"[.!?]\s")


def first_sentence(text: str) -> str:
    """Leading sentence of a chunk, cut near 200 characters when there is none."""

    cleaned = text.strip()
    match = _SENTENCE_END.search(cleaned)
    if match and 0 < match.start() < 300:
        return cleaned[: match.start() + 1]
    if len(cleaned) <= 200:
        return cleaned
    space = cleaned.rfind(" ", 0, 200)
    return cleaned[: space if space > 100 else 200] + "..."


def _relevance(result: SearchResult) -> float:
    return result.rerank_score if result.rerank_score is not None else result.similarity_score


def _chunk_offset(result: SearchResult) -> int | None:
    start = result.metadata.get("start_char")
    return start if isinstance(start, int) else None


def fallback_citations(results: list[SearchResult], max_citations: int) -> CitationResult:
    """Unverified citations built from each result's leading sentence."""

    citations = []
    for result in results[:max_citations]:
        quote = first_sentence(result.content)
        citations.append(
            Citation(
                document_name=document_name(result),
                chunk_id=result.chunk_id,
                chunk_index=result.chunk_index,
                exact_quote=quote,
                start_char=0,
                end_char=len(quote),
                document_start_char=_chunk_offset(result),
                confidence=FALLBACK_CONFIDENCE,
                relevance_score=_relevance(result),
                full_context=result.content,
            )
        )
    return CitationResult(
        citations=citations, verified=False, documents_processed=len(results)
    )


async def extract_citations(
    query: str,
    results: list[SearchResult],
    refiner: RelevanceRefiner | None,
    *,
    max_citations: int = 5,
) -> CitationResult:
    """Keep the best extracted answer per chunk, strongest citations first."""

    if not results:
        return CitationResult()
    if refiner is None or not refiner.is_configured:
        return fallback_citations(results, max_citations)

    to_process = results[:max_citations]
    outputs = await asyncio.gather(
        *(refiner.extract_answer(query, result.content) for result in to_process)
    )

    citations: list[Citation] = []
    for result, output in zip(to_process, outputs):
        if isinstance(output, AgentFailure):
            logger.warning(
                "Citation extraction failed",
                extra={"agent_id": "citations", "chunk_id": result.chunk_id},
            )
            continue
        if not output.answers:
            continue
        best = max(output.answers, key=lambda answer: answer.confidence)
        offset = _chunk_offset(result)
        citations.append(
            Citation(
                document_name=document_name(result),
                chunk_id=result.chunk_id,
                chunk_index=result.chunk_index,
                exact_quote=best.text,
                start_char=best.start_offset,
                end_char=best.end_offset,
                document_start_char=offset + best.start_offset if offset is not None else None,
                confidence=best.confidence,
                relevance_score=_relevance(result),
                full_context=result.content,
            )
        )

    citations.sort(key=lambda citation: citation.confidence, reverse=True)
    return CitationResult(
        citations=citations, verified=True, documents_processed=len(to_process)
    )


def format_citations_for_llm(citations: list[Citation]) -> str:
    if not citations:
        return ""
    formatted = "\n\n".join(
        f'[Citation {position}]\nSource: {citation.document_name}\n'
        f'Quote: "{citation.exact_quote}"\nConfidence: {citation.confidence}%'
        for position, citation in enumerate(citations, start=1)
    )
    return (
        "## Verified Citations\n\n"
        "The following exact quotes were extracted from the source documents:\n\n"
        f"{formatted}\n\n"
        "When referencing these sources, use the exact quotes provided above."
    )
