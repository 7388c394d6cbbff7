"""Pydantic models for The Odds API payloads and derived team statistics."""

from typing import List, Optional

from pydantic import BaseModel, Field


class Outcome(BaseModel):
    name: str
    price: float
    point: Optional[float] = None


class Market(BaseModel):
    key: str = Field(description="'h2h' (moneyline), 'spreads', or 'totals'")
    last_update: Optional[str] = None
    outcomes: List[Outcome] = Field(default_factory=list)


class Bookmaker(BaseModel):
    key: str
    title: str
    last_update: Optional[str] = None
    markets: List[Market] = Field(default_factory=list)


class Game(BaseModel):
    id: str
    sport_key: str
    sport_title: Optional[str] = None
    commence_time: str
    home_team: str
    away_team: str
    bookmakers: List[Bookmaker] = Field(default_factory=list)


class TeamScore(BaseModel):
    name: str
    score: Optional[str] = None


class GameScore(BaseModel):
    id: str
    sport_key: str
    commence_time: str
    completed: bool = False
    home_team: str
    away_team: str
    scores: Optional[List[TeamScore]] = None
    last_update: Optional[str] = None

    def points_for(self, team: str) -> Optional[float]:
        for s in self.scores or []:
            if s.name == team and s.score not in (None, ""):
                return float(s.score)
        return None


class TeamStats(BaseModel):
    team: str
    sport: str
    games_played: int
    wins: int
    losses: int
    draws: int = 0
    points_per_game: float
    points_allowed_per_game: float
    recent_form: str = Field(description="Most recent last, e.g. 'W-L-W'")


class SportsNewsItem(BaseModel):
    title: str
    summary: str
    url: str
    published_date: Optional[str] = None
    source: str = "Web Search"
    relevance_score: float = 0.0
