"""Query intent classification.

An LLM decides whether a question asks for a sports prediction and extracts
sport, teams, date and factors. Any malformed answer degrades to a general
query so the cheaper document path runs instead. Keyword heuristics cover
prediction-style questions that are not about a specific game.
"""

import json
import logging
from typing import TYPE_CHECKING, Iterable

from errors import NotConfiguredError
from schemas.intent import ExtractedQueryIntent, QueryIntent
from schemas.retrieval import PredictionType
from webapp.rag.prompts import INTENT_EXTRACTION_SYSTEM, INTENT_EXTRACTION_USER

if TYPE_CHECKING:
    from webapp.rag.query_engine import LLMClient

logger = logging.getLogger(__name__)

PREDICTION_KEYWORDS = (
    "predict", "prediction", "forecast", "who will win", "what will happen",
    "outcome", "result", "likely", "chances", "probability", "odds",
    "future", "next", "upcoming", "expect", "anticipate", "will be",
    "going to", "trend", "projection", "estimate",
)

# Placeholder values the model sometimes echoes back from the prompt
_EMPTY_VALUES = {"", "...", "null", "none", "n/a", "unknown"}


def _extract_json_object(raw: str) -> dict:
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned.rsplit("```", 1)[0]

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object in classifier output")

    data = json.loads(cleaned[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError("Classifier output is not a JSON object")
    return data


def _clean_str(value) -> str | None:
    if not isinstance(value, str) or value.strip().lower() in _EMPTY_VALUES:
        return None
    return value.strip()


def _clean_list(value) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [v for v in (_clean_str(item) for item in value) if v]


def parse_intent(raw: str) -> ExtractedQueryIntent:
    """Parse classifier output. Raises ValueError on anything unusable."""
    data = _extract_json_object(raw)

    try:
        intent = QueryIntent(str(data.get("intent", "")).strip().lower())
    except ValueError:
        intent = QueryIntent.GENERAL_QUERY

    if intent == QueryIntent.GENERAL_QUERY:
        return ExtractedQueryIntent.general()

    sport = _clean_str(data.get("sport"))
    return ExtractedQueryIntent(
        intent=intent,
        sport=sport.lower() if sport else None,
        teams=_clean_list(data.get("teams")),
        date=_clean_str(data.get("date")),
        factors=_clean_list(data.get("factors")),
    )


class QueryIntentClassifier:
    """LLM-backed prediction detector with fail-open parsing."""

    def __init__(self, llm: "LLMClient"):
        self.llm = llm

    def classify(self, query: str) -> ExtractedQueryIntent:
        try:
            raw = self.llm.chat(
                system=INTENT_EXTRACTION_SYSTEM,
                user=INTENT_EXTRACTION_USER.format(query=query),
                temperature=0.0,
                max_tokens=300,
                json_mode=True,
            )
            intent = parse_intent(raw)
        except NotConfiguredError:
            raise
        except Exception as e:
            logger.warning("Intent extraction failed, treating as general query: %s", e)
            return ExtractedQueryIntent.general()

        logger.info(
            "Intent: %s (sport=%s, teams=%s, date=%s)",
            intent.intent.value, intent.sport, intent.teams, intent.date,
        )
        return intent


class KeywordPredictionDetector:
    """Flags prediction-style wording ("who will win", "forecast", ...)."""

    def __init__(self, keywords: Iterable[str] = PREDICTION_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords)

    def is_prediction(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(k in lowered for k in self.keywords)


def infer_prediction_type(text: str) -> PredictionType:
    lowered = (text or "").lower()
    if any(k in lowered for k in ("win", "winner", "beat")):
        return PredictionType.WINNER
    if any(k in lowered for k in ("score", "points", "goals")):
        return PredictionType.SCORE
    if any(k in lowered for k in ("trend", "direction", "movement")):
        return PredictionType.TREND
    if any(k in lowered for k in ("outcome", "result", "happen")):
        return PredictionType.OUTCOME
    return PredictionType.GENERAL
