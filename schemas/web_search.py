"""Pydantic models for web search results and their cached rows."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SearchEngine(str, Enum):
    DUCKDUCKGO = "duckduckgo"
    BRAVE = "brave"
    SERPER = "serper"


class TimeRange(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class WebSearchResult(BaseModel):
    title: str
    url: str
    snippet: str = ""
    content: Optional[str] = Field(None, description="Full extracted page text, if fetched")
    published_date: Optional[str] = None
    source: Optional[str] = None
    cached: bool = False

    @property
    def best_text(self) -> str:
        return self.content or self.snippet


class CachedSearchQuery(BaseModel):
    id: int
    query_text: str
    query_hash: str
    search_engine: str
    max_results: int
    time_range: Optional[str] = None
    results_count: int = 0
    search_count: int = 1
    last_searched_at: datetime
    cache_expires_at: datetime


class CachedWebContent(BaseModel):
    id: int
    url: str
    title: Optional[str] = None
    extracted_content: Optional[str] = None
    snippet: Optional[str] = None
    source: Optional[str] = None
    published_date: Optional[str] = None
    last_fetched_at: datetime
    cache_expires_at: datetime
    content_hash: str
    fetch_count: int = 1

    def to_result(self) -> WebSearchResult:
        return WebSearchResult(
            title=self.title or "No Title",
            url=self.url,
            snippet=self.snippet or "",
            content=self.extracted_content,
            published_date=self.published_date,
            source=self.source,
            cached=True,
        )
