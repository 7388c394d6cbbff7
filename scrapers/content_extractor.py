"""Main-text extraction from fetched HTML pages.

Two strategies, tried in order:
  1. Readability-style article detection (trafilatura) on the cleaned DOM.
  2. Selector-based extraction: every candidate container is scored by length,
     sentence count, paragraph structure, and vocabulary repetition; the best
     candidate wins, with the page body as the last resort.

Both strategies strip scripts, styles, navigation, ads, social widgets, and
comment threads first. Output is whitespace-normalized and capped.
"""

import logging
import re
from typing import Optional

import trafilatura
from bs4 import BeautifulSoup

from scrapers.utils import MAX_CONTENT_CHARS, normalize_whitespace

logger = logging.getLogger(__name__)

MIN_ARTICLE_CHARS = 200
MIN_CANDIDATE_CHARS = 100

NOISE_SELECTORS = [
    "script", "style", "noscript", "iframe", "nav", "header", "footer", "aside",
    "form", ".advertisement", ".ads", ".ad", ".social-share", ".share", ".comments",
    "#comments", ".related-articles", ".sidebar", ".menu", ".navigation",
    ".cookie", ".newsletter",
]

# Highest priority first
CONTENT_SELECTORS = [
    'article[role="main"]',
    'div[role="main"] article',
    '[data-module="ArticleBody"]',
    ".post-content article",
    ".entry-content article",
    "article",
    '[role="main"]',
    "main article",
    "main .content",
    ".main-content article",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".story-content",
    ".news-article",
    "main",
    ".content",
    ".main-content",
    "#content",
    ".article-body",
    ".story-body",
    ".text-content",
    ".container .content",
    ".wrapper .content",
    "body .content",
]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def score_content(text: str) -> int:
    """Heuristic quality score for a candidate block of text."""
    score = 0

    if len(text) > 500:
        score += 10
    if len(text) > 1000:
        score += 10
    if len(text) > 2000:
        score += 5

    sentences = [s for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > 10]
    score += min(len(sentences), 20)

    words = text.lower().split()
    if words:
        unique_ratio = len(set(words)) / len(words)
        if unique_ratio < 0.3:
            score -= 10

    paragraphs = [p for p in text.split("\n") if len(p.strip()) > 50]
    score += min(len(paragraphs) * 2, 10)

    return score


class ContentExtractor:
    """Extracts readable article text from raw HTML."""

    def __init__(self, max_chars: int = MAX_CONTENT_CHARS):
        self.max_chars = max_chars

    def extract(self, html: str, url: str = "") -> str:
        """Return the page's main text, never raising on malformed input."""
        if not html or not html.strip():
            return ""

        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as e:
            logger.warning("Could not parse HTML from %s: %s", url or "<inline>", e)
            return ""
        self._strip_noise(soup)

        try:
            article = self._extract_article(str(soup), url)
            if article and len(article) > MIN_ARTICLE_CHARS:
                return article[: self.max_chars]
        except Exception as e:
            logger.warning("Readability extraction failed for %s: %s", url or "<inline>", e)

        return self._extract_by_selectors(soup)[: self.max_chars]

    def _strip_noise(self, soup: BeautifulSoup):
        for selector in NOISE_SELECTORS:
            for tag in soup.select(selector):
                tag.decompose()

    def _extract_article(self, html: str, url: str) -> Optional[str]:
        text = trafilatura.extract(
            html,
            url=url or None,
            include_comments=False,
            include_tables=True,
        )
        if not text:
            return None
        return normalize_whitespace(text)

    def _extract_by_selectors(self, soup: BeautifulSoup) -> str:
        best_text = ""
        best_score = 0

        for selector in CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = element.get_text("\n")
            score = score_content(text)
            if score > best_score and len(text.strip()) > MIN_CANDIDATE_CHARS:
                best_text = text
                best_score = score

        content = normalize_whitespace(best_text)
        if len(content) < MIN_ARTICLE_CHARS:
            body = soup.body or soup
            content = normalize_whitespace(body.get_text(" "))
        return content
