"""Sports prediction context assembly.

Runs schedule, odds, team stats, news, and a supplementary web search in
that order, appending a labeled section for each step that returns data.
Every step is independent: a failing provider is logged and skipped.
Requests are issued sequentially to keep bursts to the providers small.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from errors import best_effort
from schemas.intent import ExtractedQueryIntent
from schemas.retrieval import RetrievedItem, SourceType
from schemas.sports import Game, TeamStats
from scrapers.sports_data import (
    SportsDataClient,
    SubstringTeamMatcher,
    TeamMatcher,
    analyze_markets,
    format_odds,
)
from scrapers.web_search import WebSearchClient

logger = logging.getLogger(__name__)

MAX_ODDS_GAMES = 2
MAX_BOOKMAKERS = 3
MAX_STATS_TEAMS = 2
MAX_NEWS_ITEMS = 3
MAX_WEB_RESULTS = 2


@dataclass
class SportsContext:
    context_text: str = ""
    sources: list[str] = field(default_factory=list)

    def add_section(self, heading: str, lines: list[str]):
        self.context_text += f"\n\n**{heading}:**\n" + "\n".join(lines) + "\n"

    def to_items(self) -> list[RetrievedItem]:
        """Provenance strings as sports_data items for the response metadata."""
        return [
            RetrievedItem(
                id=f"sports-{i}",
                content=source,
                similarity=1.0,
                source_type=SourceType.SPORTS_DATA,
                origin_id=f"sports-data-{i}",
                position_hint=i,
                source=source,
            )
            for i, source in enumerate(self.sources)
        ]


def _format_kickoff(commence_time: str) -> str:
    try:
        return datetime.fromisoformat(commence_time.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M UTC")
    except ValueError:
        return commence_time


def format_game_odds(game: Game, max_bookmakers: int = MAX_BOOKMAKERS) -> list[str]:
    lines = []
    for bookmaker in game.bookmakers[:max_bookmakers]:
        lines.append(f"  {bookmaker.title}:")
        for market in bookmaker.markets:
            outcomes = " ".join(
                f"{o.name}: {o.price:g}" + (f" ({o.point:+g})" if o.point is not None else "")
                for o in market.outcomes
            )
            lines.append(f"    {market.key}: {outcomes}")
    return lines


def format_best_prices(game: Game) -> list[str]:
    """Best price per outcome across every bookmaker, with implied probability."""
    lines = []
    for market_key, outcomes in analyze_markets(game.bookmakers).items():
        lines.append(f"  Best {market_key}:")
        for name, best in outcomes.items():
            point = f" ({best['point']:+g})" if best["point"] is not None else ""
            lines.append(
                f"    {name}{point}: {format_odds(best['price'])} at {best['bookmaker']}"
                f" (implied {best['implied_probability']:.1%})"
            )
    return lines


def format_team_stats(stats: TeamStats) -> list[str]:
    record = f"{stats.wins}-{stats.losses}" + (f"-{stats.draws}" if stats.draws else "")
    return [
        f"Record (last {stats.games_played} games): {record}",
        f"Points per game: {stats.points_per_game}",
        f"Points allowed: {stats.points_allowed_per_game}",
        f"Recent form: {stats.recent_form}",
    ]


class SportsOrchestrator:
    """Builds the prediction context for an actionable sports intent."""

    def __init__(
        self,
        sports: SportsDataClient,
        web_search: Optional[WebSearchClient] = None,
        matcher: Optional[TeamMatcher] = None,
    ):
        self.sports = sports
        self.web_search = web_search
        self.matcher = matcher or SubstringTeamMatcher()

    def orchestrate(self, intent: ExtractedQueryIntent) -> SportsContext:
        sport = intent.sport
        teams = [t for t in intent.teams if t.strip()]
        ctx = SportsContext()

        games = self._schedule(ctx, sport, teams, intent.date or "today")
        for game in games[:MAX_ODDS_GAMES]:
            self._odds(ctx, sport, game)
        for team in teams[:MAX_STATS_TEAMS]:
            self._team_stats(ctx, sport, team)
        self._news(ctx, sport, teams)
        self._web(ctx, sport, teams)

        logger.info("Sports context for %s %s: %d sources", sport, teams, len(ctx.sources))
        return ctx

    def _schedule(self, ctx: SportsContext, sport: str, teams: list[str], date_hint: str) -> list[Game]:
        schedule = best_effort(
            self.sports.get_game_schedule, sport, date_hint,
            default=None, label="Game schedule", log=logger,
        )
        if schedule is None:
            ctx.context_text += "\n\nCould not retrieve current game schedule."
            return []

        games = [
            g for g in schedule
            if any(self.matcher.matches(g.home_team, t) or self.matcher.matches(g.away_team, t) for t in teams)
        ]
        if games:
            ctx.add_section("Game Schedule", [
                f"{g.home_team} vs {g.away_team} - {_format_kickoff(g.commence_time)}" for g in games
            ])
            ctx.sources.append("Game Schedule: The Odds API")
        return games

    def _odds(self, ctx: SportsContext, sport: str, game: Game):
        odds = best_effort(
            self.sports.get_game_odds, sport, game.id,
            default=[], label=f"Odds for game {game.id}", log=logger,
        )
        if not odds:
            return
        game_odds = odds[0]
        lines = format_game_odds(game_odds) + format_best_prices(game_odds)
        ctx.add_section(f"Betting Odds for {game.home_team} vs {game.away_team}", lines)
        ctx.sources.append(f"Betting Odds: {game_odds.sport_title or sport} (The Odds API)")

    def _team_stats(self, ctx: SportsContext, sport: str, team: str):
        stats = best_effort(
            self.sports.get_team_stats, team, sport,
            default=None, label=f"Team stats for {team}", log=logger,
        )
        if stats is None:
            return
        ctx.add_section(f"{team} Team Statistics", format_team_stats(stats))
        ctx.sources.append(f"Team Stats: {team} (The Odds API scores)")

    def _news(self, ctx: SportsContext, sport: str, teams: list[str]):
        query = f"{' vs '.join(teams)} {sport} game prediction analysis injury report"
        news = best_effort(
            self.sports.get_sports_news, query, max_results=MAX_NEWS_ITEMS,
            default=[], label="Sports news", log=logger,
        )
        if not news:
            return
        lines = []
        for item in news[:MAX_NEWS_ITEMS]:
            lines.append(f"- {item.title}: {item.summary}")
            if item.url:
                lines.append(f"  Source: {item.url}")
                ctx.sources.append(f"News: {item.source} ({item.url})")
        ctx.add_section("Recent News & Expert Analysis", lines)

    def _web(self, ctx: SportsContext, sport: str, teams: list[str]):
        if self.web_search is None:
            return
        query = f"{' vs '.join(teams)} {sport} prediction expert analysis latest news"
        results = best_effort(
            self.web_search.search, query,
            max_results=MAX_WEB_RESULTS, include_content=True, time_range="day",
            default=[], label="Supplementary sports web search", log=logger,
        )
        if not results:
            return
        ctx.add_section("Additional Web Analysis", [f"- {r.title}: {r.snippet}" for r in results])
        for r in results:
            ctx.sources.append(f"Web: {r.title} ({r.url})")
