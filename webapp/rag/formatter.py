"""Renders retrieved items into the prioritized context block for the generator."""

import logging

from schemas.retrieval import RetrievedItem, SourceType
from scrapers.utils import sanitize_text

logger = logging.getLogger(__name__)

NO_CONTEXT = "No relevant context found."

WELL_COVERED_DOCUMENTS = 3


class ContextFormatter:
    """Documents first, then web results, then sports data, then instructions."""

    def format(self, items: list[RetrievedItem]) -> str:
        if not items:
            return NO_CONTEXT

        documents = [i for i in items if i.source_type == SourceType.DOCUMENT]
        web = [i for i in items if i.source_type == SourceType.WEB_CONTENT]
        sports = [i for i in items if i.source_type == SourceType.SPORTS_DATA]

        parts: list[str] = []

        if documents:
            parts.append("=== UPLOADED DOCUMENTS (HIGHEST PRIORITY) ===\n\n")
            parts.append(
                "The following information comes from documents that have been uploaded "
                "to your knowledge base. This content should be prioritized when answering "
                "the user's question.\n\n"
            )
            for n, item in enumerate(documents, start=1):
                title = item.origin_title or f"Document {item.origin_id[:8]}"
                parts.append(f"[UPLOADED DOCUMENT {n}: {title}] ({round(item.similarity * 100)}% match)\n")
                parts.append(f"Content: {sanitize_text(item.content)}\n\n")
            parts.append("=== END UPLOADED DOCUMENTS ===\n\n")

        if web:
            parts.append("=== CURRENT WEB SEARCH RESULTS (SUPPLEMENTARY) ===\n\n")
            parts.append(
                "The following information comes from recent web searches and should be "
                "used to supplement the uploaded document content.\n\n"
            )
            for n, item in enumerate(web, start=1):
                parts.append(f"[WEB RESULT {n}: {item.origin_title or 'Web Result'}] "
                             f"({round(item.similarity * 100)}% match)\n")
                parts.append(f"URL: {item.source or 'Unknown URL'}\n")
                parts.append(f"Content: {sanitize_text(item.content)}\n\n")
            parts.append("=== END WEB RESULTS ===\n\n")

        if sports:
            parts.append("=== SPORTS DATA (SUPPLEMENTARY) ===\n\n")
            for n, item in enumerate(sports, start=1):
                parts.append(f"[SPORTS DATA {n}] ({round(item.similarity * 100)}% match): "
                             f"{sanitize_text(item.content)}\n\n")
            parts.append("=== END SPORTS DATA ===\n\n")

        parts.append(self._instructions(len(documents), len(web)))
        return "".join(parts)

    @staticmethod
    def _instructions(documents: int, web: int) -> str:
        if documents:
            text = (
                "CRITICAL INSTRUCTION: The UPLOADED DOCUMENTS section contains the most "
                "relevant and authoritative information for answering this question. "
                "Prioritize this content in your response and cite these documents. "
            )
            if web:
                text += (
                    "Use the web search results only to supplement or provide additional "
                    "current context that complements the uploaded documents. "
                )
            if documents >= WELL_COVERED_DOCUMENTS:
                text += "Multiple relevant uploaded documents were found, so the question is well covered by them.\n\n"
            else:
                text += "If the uploaded documents don't fully answer the question, you may supplement with other sources.\n\n"
            return text
        if web:
            return (
                "INSTRUCTION: No relevant uploaded documents were found for this query. "
                "Use the web search results to provide current, accurate information.\n\n"
            )
        return ""
