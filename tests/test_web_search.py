import pytest

from conftest import FakeClock, FakeResponse, FakeSession
from errors import NotConfiguredError, SearchExhaustedError
from scrapers.web_search import BRAVE_URL, DUCKDUCKGO_URL, SERPER_URL, WebSearchClient
from storage.web_cache import WebSearchCache

DDG_PAYLOAD = {
    "RelatedTopics": [
        {"FirstURL": "https://duckduckgo.com/Premier_League", "Text": "Premier League - English top flight"},
        {"Topics": []},
        {"FirstURL": "https://duckduckgo.com/EFL_Cup", "Text": "EFL Cup - Knockout competition"},
    ],
    "Abstract": "",
}


class StubExtractor:
    def __init__(self):
        self.calls = []

    def extract(self, html, url=""):
        self.calls.append(url)
        return f"extracted from {url}"


def _route(ddg=None, pages=None):
    pages = pages or {}

    def handler(method, url, **kwargs):
        if url == DUCKDUCKGO_URL:
            return ddg if isinstance(ddg, FakeResponse) else FakeResponse(ddg if ddg is not None else DDG_PAYLOAD)
        if url in pages:
            page = pages[url]
            if isinstance(page, Exception):
                raise page
            return page
        raise AssertionError(f"unexpected request to {url}")

    return handler


@pytest.fixture
def cache(tmp_path, clock):
    return WebSearchCache(str(tmp_path / "cache.db"), clock=clock)


def _client(settings, cache, handler, extractor=None):
    session = FakeSession(handler)
    return WebSearchClient(settings, cache, extractor or StubExtractor(), session=session), session


def test_second_identical_search_is_served_from_cache(settings, cache):
    client, session = _client(settings, cache, _route())

    first = client.search("premier league", max_results=5)
    second = client.search("premier league", max_results=5)

    assert session.count("duckduckgo") == 1
    assert [r.cached for r in first] == [False, False]
    assert [r.cached for r in second] == [True, True]
    assert [(r.title, r.url, r.snippet) for r in second] == [(r.title, r.url, r.snippet) for r in first]


def test_cache_key_normalizes_case_and_whitespace(settings, cache):
    client, session = _client(settings, cache, _route())

    client.search("Premier League ")
    client.search("premier league")

    assert session.count("duckduckgo") == 1


def test_bypass_cache_hits_engine_again(settings, cache):
    client, session = _client(settings, cache, _route())

    client.search("premier league")
    results = client.search("premier league", bypass_cache=True)

    assert session.count("duckduckgo") == 2
    assert not any(r.cached for r in results)


def test_cache_max_age_bounds_reuse(settings, tmp_path):
    clock = FakeClock()
    cache = WebSearchCache(str(tmp_path / "aged.db"), clock=clock)
    client, session = _client(settings, cache, _route())

    client.search("premier league")
    clock.advance(minutes=20)
    client.search("premier league", cache_max_age=10)

    assert session.count("duckduckgo") == 2


def test_duckduckgo_topics_map_to_results(settings, cache):
    client, _ = _client(settings, cache, _route())

    results = client.search("premier league", max_results=1)

    assert len(results) == 1
    assert results[0].title == "Premier League"
    assert results[0].url == "https://duckduckgo.com/Premier_League"
    assert results[0].source == "DuckDuckGo"


def test_duckduckgo_abstract_fallback(settings, cache):
    payload = {"RelatedTopics": [], "Abstract": "Python is a language.",
               "AbstractURL": "https://python.org", "Heading": "Python"}
    client, _ = _client(settings, cache, _route(ddg=payload))

    results = client.search("python")

    assert [(r.title, r.url) for r in results] == [("Python", "https://python.org")]


def test_empty_duckduckgo_answer_uses_heuristic_results(settings, cache):
    client, _ = _client(settings, cache, _route(ddg={"RelatedTopics": [], "Abstract": ""}))

    results = client.search("world cup football favourites", max_results=5)

    assert len(results) == 2
    assert results[0].source == "FIFA Official"


def test_blocked_duckduckgo_uses_heuristic_results(settings, cache):
    client, _ = _client(settings, cache, _route(ddg=FakeResponse(status_code=403)))

    results = client.search("stock forecast", max_results=3)

    assert len(results) == 1
    assert results[0].title == "Making Accurate Predictions - Expert Analysis"


def test_malformed_duckduckgo_response_falls_back(settings, cache):
    client, _ = _client(settings, cache, _route(ddg=FakeResponse(json_error=ValueError("bad json"))))

    results = client.search("office opening hours")

    assert results[0].title == "Search Results for: office opening hours"


def test_exhaustion_raises_combined_error(settings, cache, monkeypatch):
    client, _ = _client(settings, cache, _route(ddg=FakeResponse(json_error=ValueError("bad json"))))

    def broken(query, max_results):
        raise RuntimeError("no canned data")

    monkeypatch.setattr(client, "_heuristic_search", broken)

    with pytest.raises(SearchExhaustedError) as excinfo:
        client.search("anything")

    assert "bad json" in str(excinfo.value)
    assert "no canned data" in str(excinfo.value)
    assert isinstance(excinfo.value.primary_error, ValueError)


def test_unknown_engine_is_rejected(settings, cache):
    client, _ = _client(settings, cache, _route())
    with pytest.raises(ValueError):
        client.search("q", search_engine="altavista")


def test_brave_requires_key(settings, cache):
    client, _ = _client(settings, cache, _route())
    with pytest.raises(NotConfiguredError):
        client.search("q", search_engine="brave")


def test_brave_request_and_mapping(settings, cache):
    settings = settings.model_copy(update={"brave_api_key": "brave-key"})
    payload = {"web": {"results": [
        {"title": "Match report", "url": "https://bbc.co.uk/sport/1", "description": "A tight game", "age": "2 hours ago"},
        {"title": "No url"},
    ]}}

    def handler(method, url, **kwargs):
        assert url == BRAVE_URL
        return FakeResponse(payload)

    client, session = _client(settings, cache, handler)
    results = client.search("match report", search_engine="brave", time_range="week", max_results=3)

    _, _, kwargs = session.calls[0]
    assert kwargs["params"]["freshness"] == "pw"
    assert kwargs["params"]["count"] == 3
    assert kwargs["headers"]["X-Subscription-Token"] == "brave-key"
    assert [(r.title, r.source, r.published_date) for r in results] == [
        ("Match report", "Brave Search", "2 hours ago"),
    ]


def test_non_default_engine_failure_is_raised(settings, cache):
    settings = settings.model_copy(update={"brave_api_key": "brave-key"})
    client, _ = _client(settings, cache, lambda method, url, **kw: FakeResponse(status_code=500))

    with pytest.raises(Exception) as excinfo:
        client.search("q", search_engine="brave")

    assert not isinstance(excinfo.value, SearchExhaustedError)


def test_serper_request_and_mapping(settings, cache):
    settings = settings.model_copy(update={"serper_api_key": "serper-key"})
    payload = {"organic": [{"title": "Standings", "link": "https://espn.com/table", "snippet": "Table", "date": "1 day ago"}]}

    def handler(method, url, **kwargs):
        assert (method, url) == ("POST", SERPER_URL)
        return FakeResponse(payload)

    client, session = _client(settings, cache, handler)
    results = client.search("league table", search_engine="serper", time_range="day")

    _, _, kwargs = session.calls[0]
    assert kwargs["json"] == {"q": "league table", "num": 5, "tbs": "qdr:d1"}
    assert kwargs["headers"]["X-API-KEY"] == "serper-key"
    assert results[0].url == "https://espn.com/table"
    assert results[0].source == "Google (via Serper)"


def test_include_content_extracts_pages(settings, cache):
    html = FakeResponse(text="<html><body><p>page</p></body></html>", headers={"Content-Type": "text/html"})
    pages = {
        "https://duckduckgo.com/Premier_League": html,
        "https://duckduckgo.com/EFL_Cup": FakeResponse(status_code=404),
    }
    extractor = StubExtractor()
    client, _ = _client(settings, cache, _route(pages=pages), extractor=extractor)

    results = client.search("premier league", include_content=True)

    assert results[0].content == "extracted from https://duckduckgo.com/Premier_League"
    assert results[1].content is None
    assert results[1].best_text == "EFL Cup - Knockout competition"


def test_cached_results_keep_extracted_content(settings, cache):
    html = FakeResponse(text="<p>x</p>", headers={"Content-Type": "text/html; charset=utf-8"})
    pages = {"https://duckduckgo.com/Premier_League": html, "https://duckduckgo.com/EFL_Cup": html}
    client, _ = _client(settings, cache, _route(pages=pages))

    client.search("premier league", include_content=True)
    cached = client.search("premier league", include_content=True)

    assert cached[0].cached
    assert cached[0].content == "extracted from https://duckduckgo.com/Premier_League"
    assert client.get_cached_content("https://duckduckgo.com/EFL_Cup").fetch_count == 1


def test_page_content_is_reused_across_queries(settings, cache):
    html = FakeResponse(text="<p>x</p>", headers={"Content-Type": "text/html"})
    pages = {"https://duckduckgo.com/Premier_League": html, "https://duckduckgo.com/EFL_Cup": html}
    extractor = StubExtractor()
    client, session = _client(settings, cache, _route(pages=pages), extractor=extractor)

    client.search("premier league", include_content=True)
    results = client.search("english football", include_content=True)

    assert session.count("duckduckgo.com/Premier_League") == 1
    assert session.count("duckduckgo.com/EFL_Cup") == 1
    assert len(extractor.calls) == 2
    assert results[0].content == "extracted from https://duckduckgo.com/Premier_League"


def test_cache_write_failure_does_not_fail_search(settings, cache, monkeypatch):
    client, _ = _client(settings, cache, _route())

    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(cache, "store_results", broken)

    assert len(client.search("premier league")) == 2


def test_cleanup_expired_cache_delegates(settings, tmp_path):
    clock = FakeClock()
    cache = WebSearchCache(str(tmp_path / "cleanup.db"), clock=clock)
    client, _ = _client(settings, cache, _route())

    client.search("premier league")
    clock.advance(minutes=90)

    assert client.cleanup_expired_cache() == 3
