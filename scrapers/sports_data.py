"""Structured sports data from The Odds API (v4), plus web-backed news.

Schedules and odds come straight from the provider. Team statistics are
derived from the provider's completed-game scores, which only reach back a
few days, so records describe recent form rather than a full season.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional, Protocol

import requests

from config import Settings
from errors import NotConfiguredError
from schemas.sports import Bookmaker, Game, GameScore, SportsNewsItem, TeamStats
from scrapers.utils import API_HEADERS, http_get

if TYPE_CHECKING:
    from scrapers.web_search import WebSearchClient

logger = logging.getLogger(__name__)

ODDS_API_BASE = "https://api.the-odds-api.com/v4"
DEFAULT_MARKETS = "h2h,spreads,totals"
MAX_SCORE_DAYS = 3
RECENT_FORM_GAMES = 5


class TeamMatcher(Protocol):
    """Decides whether a provider team name refers to a user-supplied team."""

    def matches(self, provider_name: str, query_team: str) -> bool: ...


class SubstringTeamMatcher:
    """Case-insensitive containment: 'Lakers' matches 'Los Angeles Lakers'.

    Short or shared nicknames can match the wrong club.
    """

    def matches(self, provider_name: str, query_team: str) -> bool:
        query_team = query_team.strip().lower()
        return bool(query_team) and query_team in (provider_name or "").lower()


# ---------------------------------------------------------------------------
# Odds helpers
# ---------------------------------------------------------------------------

def format_odds(price: float, odds_format: str = "american") -> str:
    """Render American odds as '+150' / '-120', or convert to decimal."""
    if odds_format == "american":
        value = int(price) if float(price).is_integer() else price
        return f"+{value}" if price > 0 else f"{value}"
    if odds_format == "decimal":
        decimal = price / 100 + 1 if price > 0 else 100 / abs(price) + 1
        return f"{decimal:.2f}"
    raise ValueError(f"Unknown odds format: {odds_format}")


def odds_to_implied_probability(price: float) -> float:
    """American odds to the bookmaker's implied win probability (0-1)."""
    if price > 0:
        return 100 / (price + 100)
    return abs(price) / (abs(price) + 100)


def analyze_markets(bookmakers: list[Bookmaker]) -> dict:
    """Best available price per outcome, per market, across bookmakers."""
    best: dict = defaultdict(dict)
    for bookmaker in bookmakers:
        for market in bookmaker.markets:
            for outcome in market.outcomes:
                current = best[market.key].get(outcome.name)
                if current is None or outcome.price > current["price"]:
                    best[market.key][outcome.name] = {
                        "bookmaker": bookmaker.title,
                        "price": outcome.price,
                        "point": outcome.point,
                        "implied_probability": round(odds_to_implied_probability(outcome.price), 4),
                    }
    return dict(best)


def news_relevance(text: str, query: str) -> float:
    """Fraction of query words that appear in the text."""
    words = query.lower().split()
    if not words:
        return 0.0
    lowered = text.lower()
    return sum(1 for w in words if w in lowered) / len(words)


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SportsDataClient:
    """Client for The Odds API with derived team statistics."""

    def __init__(
        self,
        settings: Settings,
        web_search: Optional["WebSearchClient"] = None,
        session: Optional[requests.Session] = None,
        matcher: Optional[TeamMatcher] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings
        self.web_search = web_search
        self.session = session or requests.Session()
        self.matcher = matcher or SubstringTeamMatcher()
        self._clock = clock

    def _get(self, path: str, **params) -> list | dict:
        if not self.settings.odds_api_key:
            raise NotConfiguredError("THE_ODDS_API_KEY is not configured")
        params["apiKey"] = self.settings.odds_api_key
        response = http_get(self.session, f"{ODDS_API_BASE}{path}", params=params, headers=API_HEADERS)
        return response.json()

    # ------------------------------------------------------------------
    # Provider endpoints
    # ------------------------------------------------------------------

    def get_available_sports(self) -> list[dict]:
        return self._get("/sports")

    def get_game_schedule(self, sport: str, date_hint: Optional[str] = None, regions: str = "us") -> list[Game]:
        """Upcoming games for a sport, filtered to ``date_hint`` when it is recognised.

        ``date_hint`` accepts 'today', 'tonight', 'tomorrow' or 'YYYY-MM-DD';
        anything else returns the full upcoming schedule.
        """
        data = self._get(f"/sports/{sport}/odds", regions=regions, markets="h2h", oddsFormat="american")
        games = [Game(**g) for g in data]

        target = self._resolve_date(date_hint)
        if target is None:
            return games

        late_window = date_hint.strip().lower() == "tonight"
        return [g for g in games if self._on_date(g.commence_time, target, late_window)]

    def get_game_odds(
        self,
        sport: str,
        game_id: Optional[str] = None,
        markets: str = DEFAULT_MARKETS,
        regions: str = "us",
        odds_format: str = "american",
    ) -> list[Game]:
        params = {"regions": regions, "markets": markets, "oddsFormat": odds_format}
        if game_id:
            params["eventIds"] = game_id
        return [Game(**g) for g in self._get(f"/sports/{sport}/odds", **params)]

    def get_scores(self, sport: str, days_from: int = MAX_SCORE_DAYS) -> list[GameScore]:
        days_from = max(1, min(days_from, MAX_SCORE_DAYS))
        return [GameScore(**g) for g in self._get(f"/sports/{sport}/scores", daysFrom=days_from)]

    # ------------------------------------------------------------------
    # Derived data
    # ------------------------------------------------------------------

    def get_team_stats(self, team: str, sport: str) -> TeamStats:
        """Record, scoring averages and recent form from completed games.

        Raises LookupError when the provider has no completed games for the team.
        """
        games = sorted(
            (g for g in self.get_scores(sport) if g.completed),
            key=lambda g: g.commence_time,
        )

        wins = losses = draws = 0
        scored: list[float] = []
        allowed: list[float] = []
        form: list[str] = []

        for game in games:
            if self.matcher.matches(game.home_team, team):
                own, other = game.home_team, game.away_team
            elif self.matcher.matches(game.away_team, team):
                own, other = game.away_team, game.home_team
            else:
                continue

            points_for = game.points_for(own)
            points_against = game.points_for(other)
            if points_for is None or points_against is None:
                continue

            scored.append(points_for)
            allowed.append(points_against)
            if points_for > points_against:
                wins += 1
                form.append("W")
            elif points_for < points_against:
                losses += 1
                form.append("L")
            else:
                draws += 1
                form.append("D")

        if not form:
            raise LookupError(f"No completed games found for {team} in {sport}")

        played = len(form)
        return TeamStats(
            team=team,
            sport=sport,
            games_played=played,
            wins=wins,
            losses=losses,
            draws=draws,
            points_per_game=round(sum(scored) / played, 1),
            points_allowed_per_game=round(sum(allowed) / played, 1),
            recent_form="-".join(form[-RECENT_FORM_GAMES:]),
        )

    def get_sports_news(
        self,
        query: str,
        sport: Optional[str] = None,
        team: Optional[str] = None,
        max_results: int = 5,
    ) -> list[SportsNewsItem]:
        if self.web_search is None:
            raise NotConfiguredError("Sports news requires a web search client")

        search_query = " ".join(p for p in (query, sport, team, "latest news") if p)
        results = self.web_search.search(
            search_query,
            max_results=max_results,
            include_content=False,
            time_range="week",
        )
        now = self._clock().isoformat()
        return [
            SportsNewsItem(
                title=r.title,
                summary=r.snippet,
                url=r.url,
                published_date=r.published_date or now,
                source=r.source or "Web Search",
                relevance_score=news_relevance(f"{r.title} {r.snippet}", query),
            )
            for r in results
        ]

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def _resolve_date(self, hint: Optional[str]) -> Optional[date]:
        if not hint:
            return None
        hint = hint.strip().lower()
        today = self._clock().date()
        if hint in ("today", "tonight"):
            return today
        if hint == "tomorrow":
            return today + timedelta(days=1)
        try:
            return date.fromisoformat(hint)
        except ValueError:
            logger.debug("Unrecognised date hint %r, not filtering schedule", hint)
            return None

    @staticmethod
    def _on_date(commence_time: str, target: date, late_window: bool = False) -> bool:
        try:
            start = _parse_time(commence_time).astimezone(timezone.utc)
        except ValueError:
            return False
        if start.date() == target:
            return True
        # Evening games in the Americas start after midnight UTC
        return late_window and start.date() == target + timedelta(days=1) and start.hour < 12
