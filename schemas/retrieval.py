"""Pydantic models for retrieved context items and chat requests/responses."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SourceType(str, Enum):
    DOCUMENT = "document"
    WEB_CONTENT = "web_content"
    SPORTS_DATA = "sports_data"


class ContentType(str, Enum):
    CHUNK = "chunk"
    STRUCTURED = "structured"


class PredictionType(str, Enum):
    WINNER = "winner"
    SCORE = "score"
    OUTCOME = "outcome"
    TREND = "trend"
    GENERAL = "general"


class RetrievedItem(BaseModel):
    """One unit of context handed to the generator for a single chat turn.

    ``similarity`` is a real cosine similarity for documents and a fixed
    confidence proxy for web and sports items; both sort on the same scale.
    """

    id: str = Field(description="Unique within one retrieval batch")
    content: str
    similarity: float = Field(ge=0.0, le=1.0)
    source_type: SourceType
    origin_id: str = Field(description="Originating document id, page URL, or dataset id")
    origin_title: Optional[str] = None
    position_hint: int = Field(-1, description="Chunk index within the origin, -1 if n/a")
    source: Optional[str] = Field(None, description="URL or provenance label")

    @field_validator("similarity", mode="before")
    @classmethod
    def _clip_similarity(cls, value):
        return min(1.0, max(0.0, float(value)))


class StoreMatch(BaseModel):
    """A nearest-neighbour hit returned by the vector similarity store."""

    id: str
    content: str
    similarity: float
    document_id: str
    document_title: Optional[str] = None
    content_type: ContentType = ContentType.CHUNK
    chunk_index: int = 0
    metadata: dict = Field(default_factory=dict)

    def to_item(self) -> RetrievedItem:
        return RetrievedItem(
            id=self.id,
            content=self.content,
            similarity=self.similarity,
            source_type=SourceType.DOCUMENT,
            origin_id=self.document_id,
            origin_title=self.document_title,
            position_hint=self.chunk_index if self.content_type == ContentType.CHUNK else -1,
            source="uploaded_document",
        )


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    """Chat wire contract. Accepts both the plain and the AI-SDK message shape."""

    message: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    session_id: Optional[str] = Field(None, alias="sessionId")
    use_web_search: bool = Field(False, alias="useWebSearch")
    prediction_type: Optional[PredictionType] = Field(None, alias="predictionType")
    confidence_level: bool = Field(False, alias="confidenceLevel")
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)

    model_config = {"populate_by_name": True}

    def user_message(self) -> str:
        """The user's question: ``message`` or the last user entry of ``messages``."""
        if self.message and self.message.strip():
            return self.message
        if self.messages:
            last = self.messages[-1]
            if last.role == "user" and last.content.strip():
                return last.content
        raise ValueError("Request must carry a non-empty user message")


class ChatResponse(BaseModel):
    id: str
    message: str
    sources: List[RetrievedItem] = Field(default_factory=list)
    session_id: str
    timestamp: datetime
