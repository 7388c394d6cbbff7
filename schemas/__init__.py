from schemas.retrieval import (
    SourceType,
    ContentType,
    PredictionType,
    RetrievedItem,
    StoreMatch,
    ChatMessage,
    ChatRequest,
    ChatResponse,
)
from schemas.intent import QueryIntent, ExtractedQueryIntent
from schemas.web_search import (
    SearchEngine,
    TimeRange,
    WebSearchResult,
    CachedSearchQuery,
    CachedWebContent,
)
from schemas.sports import (
    Outcome,
    Market,
    Bookmaker,
    Game,
    TeamScore,
    GameScore,
    TeamStats,
    SportsNewsItem,
)
