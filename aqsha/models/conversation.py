"""
Conversation Models

Models for the AI assistant: persisted conversations and messages,
the per-turn context snapshot, and the AI request log.

DESIGN DECISION: The conversation id doubles as the client-facing
context id. Context itself is never stored; it is rebuilt every turn
from the current state of the user's data.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import Field

from aqsha.models.finance import (
    Account,
    AqshaModel,
    Category,
    Goal,
    StatisticsResult,
    Transaction,
)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# PERSISTED ENTITIES
# =============================================================================

class Conversation(AqshaModel):
    """A multi-turn thread between a user and the assistant."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ChatMessage(AqshaModel):
    """
    One message in a conversation.

    sequence is assigned by the store and strictly increases within a
    conversation; it is the authoritative ordering.
    """

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    role: MessageRole
    content: str = Field(..., min_length=1)
    sequence: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AIRequestLog(AqshaModel):
    """Record of one exchange with the AI gateway, successful or not."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    conversation_id: Optional[UUID] = None
    prompt: str
    response: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None
    context_snapshot_id: Optional[str] = None
    latency_ms: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# CONTEXT
# =============================================================================

class ContextSnapshot(AqshaModel):
    """
    Bounded, serializable summary of a user's financial state.

    Ephemeral: built per request, never persisted.
    """

    snapshot_id: str = Field(default="", description="Content hash of the snapshot")
    user_id: UUID
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    window_start: date
    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    statistics: StatisticsResult = Field(default_factory=StatisticsResult)
    truncated: bool = False

    def content_dict(self) -> dict:
        """Everything the model sees, minus identity and timing fields."""
        return self.model_dump(
            mode="json",
            exclude={"snapshot_id", "user_id", "generated_at"},
        )

    def to_prompt_json(self) -> str:
        return json.dumps(self.content_dict(), ensure_ascii=False, sort_keys=True)


# =============================================================================
# REQUEST / RESPONSE SHAPES
# =============================================================================

class ChatRequest(AqshaModel):
    message: str
    context_id: Optional[UUID] = None


class ConversationResponse(AqshaModel):
    """Reply to one chat turn."""

    id: UUID = Field(..., description="Id of the assistant message")
    message: str
    context_id: UUID
    history: list[ChatMessage] = Field(default_factory=list)


class ConversationSummary(AqshaModel):
    id: UUID
    title: Optional[str] = None
    last_message: Optional[str] = None
    message_count: int = 0
    created_at: datetime
    updated_at: datetime


class ConversationList(AqshaModel):
    conversations: list[ConversationSummary] = Field(default_factory=list)
    total: int = 0


class ConversationDetail(AqshaModel):
    id: UUID
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessage] = Field(default_factory=list)
