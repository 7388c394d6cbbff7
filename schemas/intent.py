"""Query intent produced by the classifier."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class QueryIntent(str, Enum):
    PREDICTION = "prediction"
    GENERAL_QUERY = "general_query"


class ExtractedQueryIntent(BaseModel):
    intent: QueryIntent = QueryIntent.GENERAL_QUERY
    sport: Optional[str] = None
    teams: List[str] = Field(default_factory=list)
    date: Optional[str] = None
    factors: List[str] = Field(default_factory=list)

    @property
    def is_actionable_prediction(self) -> bool:
        """True when the sports path can run: a prediction naming a sport and a team."""
        return (
            self.intent == QueryIntent.PREDICTION
            and bool(self.sport)
            and any(t.strip() for t in self.teams)
        )

    @classmethod
    def general(cls) -> "ExtractedQueryIntent":
        return cls(intent=QueryIntent.GENERAL_QUERY)
