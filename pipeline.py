#!/usr/bin/env python3
"""Command line entry point for the RAG chat service.

Usage:
  python pipeline.py ingest --file notes.txt --title "Q3 report"   # Chunk + embed + store text
  python pipeline.py ingest --rows standings.csv --title "Table"   # Store JSON/CSV rows
  python pipeline.py ingest --file notes.txt --reset               # Wipe & re-ingest

  python pipeline.py retrieve "season ticket prices"               # Show the context mix
  python pipeline.py retrieve "latest transfer news" --web
  python pipeline.py ask "Who will win Lakers vs Celtics tonight?"  # Full chat answer

  python pipeline.py web-search "premier league table" --engine brave --content
  python pipeline.py cache-stats                                   # Web cache statistics
  python pipeline.py cache-cleanup                                 # Drop expired cache rows
  python pipeline.py vector-status                                 # ChromaDB stats

  python pipeline.py serve --port 8000                             # Launch the chat API
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from config import PROJECT_ROOT, Settings, configure_logging

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# INGEST
# ---------------------------------------------------------------------------

def cmd_ingest(args, settings: Settings):
    """Chunk, embed and store a text file or a JSON/CSV row file."""
    from vectorstore.embedder import Embedder
    from vectorstore.ingest import ingest_rows, ingest_text, load_rows
    from vectorstore.store import VectorStore
    from vectorstore.chunker import Chunker

    if not args.file and not args.rows:
        raise ValueError("Pass --file or --rows")

    store = VectorStore(settings.chroma_path)
    embedder = Embedder(settings)
    if args.reset:
        logger.info("Resetting vector store at %s", settings.chroma_path)
        store.reset()

    if args.file:
        path = Path(args.file)
        text = path.read_text(encoding="utf-8", errors="replace")
        result = ingest_text(
            args.title or path.stem,
            text,
            embedder,
            store,
            chunker=Chunker(args.chunk_tokens, args.overlap_tokens),
        )
    else:
        path = Path(args.rows)
        result = ingest_rows(args.title or path.stem, load_rows(path), embedder, store)

    print(json.dumps(result, indent=2))


# ---------------------------------------------------------------------------
# QUERY
# ---------------------------------------------------------------------------

def cmd_retrieve(args, settings: Settings):
    """Run retrieval only and print the prioritized context items."""
    from webapp.app import build_services

    services = build_services(settings)
    items = services.retriever.retrieve(
        args.query,
        limit=args.limit,
        threshold=args.threshold,
        allow_web_search=args.web,
    )

    print(f"\nQuery: \"{args.query}\"")
    print(f"Results: {len(items)}")
    print("-" * 50)
    for i, item in enumerate(items, start=1):
        print(f"\n[{i}] {item.similarity:.3f} | {item.source_type.value} | {item.origin_title or item.origin_id}")
        if item.source:
            print(f"    Source: {item.source}")
        preview = item.content[:200].replace("\n", " ")
        print(f"    Text: {preview}...")
    print()


def cmd_ask(args, settings: Settings):
    """Answer a question end to end, streaming to stdout."""
    from schemas.retrieval import ChatRequest
    from webapp.app import build_services

    services = build_services(settings)
    request = ChatRequest(message=args.question, use_web_search=args.web, session_id=args.session)
    prepared = services.engine.prepare(request)

    for chunk in services.engine.stream(prepared):
        sys.stdout.write(chunk)
        sys.stdout.flush()
    print("\n")

    if prepared.sources:
        print("Sources:")
        for item in prepared.sources:
            print(f"  - [{item.source_type.value}] {item.origin_title or item.source or item.origin_id}")
    print(f"Session: {prepared.session_id}")


# ---------------------------------------------------------------------------
# WEB SEARCH + CACHE
# ---------------------------------------------------------------------------

def _web_search_client(settings: Settings):
    from scrapers.web_search import WebSearchClient
    from storage.web_cache import WebSearchCache

    cache = WebSearchCache(
        settings.web_cache_db,
        query_ttl_minutes=settings.query_cache_ttl_minutes,
        content_ttl_minutes=settings.content_cache_ttl_minutes,
    )
    return WebSearchClient(settings, cache), cache


def cmd_web_search(args, settings: Settings):
    client, _ = _web_search_client(settings)
    results = client.search(
        args.query,
        max_results=args.max_results,
        include_content=args.content,
        time_range=args.time_range,
        search_engine=args.engine,
        bypass_cache=args.no_cache,
    )

    print(f"\nQuery: \"{args.query}\" ({len(results)} results)")
    print("-" * 50)
    for i, r in enumerate(results, start=1):
        flag = " (cached)" if r.cached else ""
        print(f"\n[{i}] {r.title}{flag}")
        print(f"    URL: {r.url}")
        print(f"    {r.best_text[:200]}")
    print()


def cmd_cache_stats(args, settings: Settings):
    _, cache = _web_search_client(settings)
    stats = cache.stats()

    print("\n" + "=" * 70)
    print("WEB SEARCH CACHE")
    print("=" * 70)
    print(f"  Cached queries:  {stats['total_queries']}")
    print(f"  Total searches:  {stats['total_searches']}")
    print(f"  Cached pages:    {stats['total_cached_pages']}")
    if stats["top_domains"]:
        print("  Top domains:")
        for entry in stats["top_domains"]:
            print(f"    {entry['domain']:<40} {entry['count']}")
    print("=" * 70)


def cmd_cache_cleanup(args, settings: Settings):
    client, cache = _web_search_client(settings)
    if args.all:
        deleted = cache.clear()
    else:
        deleted = client.cleanup_expired_cache()
    print(f"Deleted {deleted} cache rows")


def cmd_vector_status(args, settings: Settings):
    """Show vector store statistics."""
    from vectorstore.store import VectorStore

    stats = VectorStore(settings.chroma_path).get_stats()

    print("\n" + "=" * 70)
    print("VECTOR STORE STATUS")
    print("=" * 70)
    print(f"  Path: {stats['db_path']}")
    for name, count in stats["collections"].items():
        print(f"\n  Collection: {name}")
        print(f"    Vectors stored: {count}")
    print(f"\n  Total: {stats['total']}")
    print("=" * 70)


# ---------------------------------------------------------------------------
# SERVE
# ---------------------------------------------------------------------------

def cmd_serve(args, settings: Settings):
    """Launch the chat API."""
    import uvicorn

    logger.info("=" * 60)
    logger.info("LAUNCHING CHAT API")
    logger.info("  http://localhost:%d", args.port)
    logger.info("=" * 60)

    uvicorn.run(
        "webapp.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Document-priority RAG chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Ingest
    ingest_parser = subparsers.add_parser("ingest", help="Chunk, embed, and store a document")
    source = ingest_parser.add_mutually_exclusive_group()
    source.add_argument("--file", help="Plain text file to ingest")
    source.add_argument("--rows", help="JSON array or CSV file of rows")
    ingest_parser.add_argument("--title", default=None, help="Document title (default: file name)")
    ingest_parser.add_argument(
        "--reset",
        action="store_true",
        help="Wipe existing vector store before ingesting",
    )
    ingest_parser.add_argument(
        "--chunk-tokens",
        type=int,
        default=400,
        help="Target chunk size in tokens (default: 400)",
    )
    ingest_parser.add_argument(
        "--overlap-tokens",
        type=int,
        default=60,
        help="Token overlap between chunks (default: 60)",
    )

    # Retrieve
    retrieve_parser = subparsers.add_parser("retrieve", help="Show retrieved context for a query")
    retrieve_parser.add_argument("query", help="Query text")
    retrieve_parser.add_argument("--limit", type=int, default=5, help="Number of results")
    retrieve_parser.add_argument("--threshold", type=float, default=0.3, help="Similarity threshold")
    retrieve_parser.add_argument("--web", action="store_true", help="Allow web supplementation")

    # Ask
    ask_parser = subparsers.add_parser("ask", help="Answer a question end to end")
    ask_parser.add_argument("question", help="Question text")
    ask_parser.add_argument("--web", action="store_true", help="Allow web supplementation")
    ask_parser.add_argument("--session", default=None, help="Continue an existing session id")

    # Web search
    ws_parser = subparsers.add_parser("web-search", help="Run a cached web search")
    ws_parser.add_argument("query", help="Query text")
    ws_parser.add_argument("--engine", default=None, choices=["duckduckgo", "brave", "serper"])
    ws_parser.add_argument("--max-results", type=int, default=5)
    ws_parser.add_argument("--time-range", default=None, choices=["day", "week", "month", "year"])
    ws_parser.add_argument("--content", action="store_true", help="Fetch and extract page content")
    ws_parser.add_argument("--no-cache", action="store_true", help="Bypass the cache lookup")

    # Cache maintenance
    subparsers.add_parser("cache-stats", help="Show web search cache statistics")
    cleanup_parser = subparsers.add_parser("cache-cleanup", help="Delete expired web cache rows")
    cleanup_parser.add_argument("--all", action="store_true", help="Delete every cached row")

    # Vector status
    subparsers.add_parser("vector-status", help="Show vector store statistics")

    # Serve
    serve_parser = subparsers.add_parser("serve", help="Launch the chat API")
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port (default: 8000)"
    )
    serve_parser.add_argument(
        "--host", default="0.0.0.0", help="Host (default: 0.0.0.0)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Auto-reload on code changes"
    )
    return parser


COMMANDS = {
    "ingest": cmd_ingest,
    "retrieve": cmd_retrieve,
    "ask": cmd_ask,
    "web-search": cmd_web_search,
    "cache-stats": cmd_cache_stats,
    "cache-cleanup": cmd_cache_cleanup,
    "vector-status": cmd_vector_status,
    "serve": cmd_serve,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings = Settings.from_env()
    configure_logging(settings.log_level, PROJECT_ROOT / "pipeline.log")

    try:
        COMMANDS[args.command](args, settings)
    except Exception as e:
        logger.exception("Pipeline error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
