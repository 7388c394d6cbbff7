from schemas.retrieval import RetrievedItem, SourceType
from webapp.rag.formatter import NO_CONTEXT, ContextFormatter


def _item(item_id, source_type, similarity, title=None, content="text", source=None):
    return RetrievedItem(
        id=item_id,
        content=content,
        similarity=similarity,
        source_type=source_type,
        origin_id=f"origin-{item_id}",
        origin_title=title,
        source=source,
    )


def test_empty_items_render_sentinel():
    assert ContextFormatter().format([]) == NO_CONTEXT


def test_sections_are_ordered_documents_web_sports():
    items = [
        _item("s", SourceType.SPORTS_DATA, 1.0, content="Game Schedule: The Odds API"),
        _item("w", SourceType.WEB_CONTENT, 0.6, title="News", source="https://example.com/a"),
        _item("d", SourceType.DOCUMENT, 0.82, title="Q3 report", content="revenue was $4.2M"),
    ]

    text = ContextFormatter().format(items)

    docs = text.index("=== UPLOADED DOCUMENTS (HIGHEST PRIORITY) ===")
    web = text.index("=== CURRENT WEB SEARCH RESULTS (SUPPLEMENTARY) ===")
    sports = text.index("=== SPORTS DATA (SUPPLEMENTARY) ===")
    assert docs < web < sports
    assert "[UPLOADED DOCUMENT 1: Q3 report] (82% match)" in text
    assert "URL: https://example.com/a" in text
    assert text.rstrip().endswith("you may supplement with other sources.")
    assert "CRITICAL INSTRUCTION" in text
    assert "Use the web search results only to supplement" in text


def test_untitled_document_uses_origin_prefix():
    text = ContextFormatter().format([_item("abc", SourceType.DOCUMENT, 0.5)])
    assert "[UPLOADED DOCUMENT 1: Document origin-a]" in text


def test_web_only_instruction():
    text = ContextFormatter().format([_item("w", SourceType.WEB_CONTENT, 0.7, title="Fresh")])

    assert "UPLOADED DOCUMENTS" not in text
    assert "INSTRUCTION: No relevant uploaded documents were found" in text
    assert "[WEB RESULT 1: Fresh] (70% match)" in text


def test_many_documents_are_reported_as_well_covered():
    items = [_item(f"d{i}", SourceType.DOCUMENT, 0.9) for i in range(3)]
    text = ContextFormatter().format(items)
    assert "well covered" in text


def test_content_is_sanitized():
    text = ContextFormatter().format([
        _item("d", SourceType.DOCUMENT, 0.9, title="T", content="“Quoted” — café"),
    ])
    assert 'Content: "Quoted" - caf?' in text
