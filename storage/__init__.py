"""Persistent caches backing the web search client."""
from storage.web_cache import WebSearchCache
