"""
Conversation Manager

Runs multi-turn conversations between a user and the finance assistant.

FLOW (one turn):
1. Resolve the conversation from context_id (or start a new one)
2. Persist the user's message
3. Build fresh context from current data
4. Ask the assistant agent for a reply
5. Persist the reply and record the exchange in the AI request log

DESIGN DECISION: The user message is persisted BEFORE the gateway call.
If the gateway fails, the message survives and a retry with the same
context_id picks up from persisted history.

A missing, unknown or foreign context_id is never an error; it starts a
new conversation.
"""

import time
from typing import Optional
from uuid import UUID

import structlog

from aqsha.agents import FinanceAssistantAgent
from aqsha.assistant.context import ContextBuilder
from aqsha.audit import AuditLogger
from aqsha.config import AppSettings, get_settings
from aqsha.errors import NotFoundError, UpstreamError
from aqsha.models.conversation import (
    AIRequestLog,
    ChatMessage,
    Conversation,
    ConversationDetail,
    ConversationList,
    ConversationResponse,
    ConversationSummary,
    MessageRole,
)
from aqsha.queries.executor import resolve_user
from aqsha.services.storage import (
    ConversationStorageInterface,
    FinanceStorageInterface,
)
from aqsha.validation.validator import validate_message


logger = structlog.get_logger(__name__)

LAST_MESSAGE_PREVIEW_CHARS = 100


class ConversationManager:
    """
    Owns conversation state transitions: NEW -> ACTIVE -> ACTIVE ...

    There is no terminal state; any conversation can be resumed.
    """

    def __init__(
        self,
        finance_storage: FinanceStorageInterface,
        conversation_storage: ConversationStorageInterface,
        context_builder: ContextBuilder,
        agent: FinanceAssistantAgent,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._finance = finance_storage
        self._conversations = conversation_storage
        self._context = context_builder
        self._agent = agent
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    # =========================================================================
    # Turns
    # =========================================================================

    async def send_message(
        self,
        user_id: UUID,
        message: str,
        context_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ConversationResponse:
        """
        Run one conversation turn.

        Raises:
            ValidationError: If the message is empty
            NotFoundError: If the user does not exist
            UpstreamError: If the AI gateway fails (user message kept)
        """
        message = validate_message(message)
        await resolve_user(self._finance, user_id)

        conversation = await self._resolve_conversation(
            user_id, context_id, message, correlation_id
        )

        user_message = await self._append(
            user_id, conversation.id, MessageRole.USER, message, correlation_id
        )

        snapshot = await self._context.build_context(user_id, correlation_id)
        history = await self._conversations.list_messages(conversation.id)

        started = time.monotonic()
        try:
            reply = await self._agent.reply(snapshot, history)
        except Exception as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            await self._record_exchange(
                user_id=user_id,
                conversation_id=conversation.id,
                prompt=user_message.content,
                response=None,
                snapshot_id=snapshot.snapshot_id,
                latency_ms=latency_ms,
                error=e,
                correlation_id=correlation_id,
            )
            if isinstance(e, UpstreamError):
                raise
            raise UpstreamError(f"AI gateway failed: {e}") from e

        latency_ms = int((time.monotonic() - started) * 1000)
        assistant_message = await self._append(
            user_id, conversation.id, MessageRole.ASSISTANT, reply, correlation_id
        )
        await self._record_exchange(
            user_id=user_id,
            conversation_id=conversation.id,
            prompt=user_message.content,
            response=reply,
            snapshot_id=snapshot.snapshot_id,
            latency_ms=latency_ms,
            error=None,
            correlation_id=correlation_id,
        )

        return ConversationResponse(
            id=assistant_message.id,
            message=reply,
            context_id=conversation.id,
            history=[*history, assistant_message],
        )

    async def _resolve_conversation(
        self,
        user_id: UUID,
        context_id: Optional[UUID],
        first_message: str,
        correlation_id: Optional[UUID],
    ) -> Conversation:
        stale_id = None
        if context_id is not None:
            existing = await self._conversations.get_conversation(context_id)
            if existing is not None and existing.user_id == user_id:
                return existing
            logger.warning(
                "stale_context_id",
                user_id=str(user_id),
                context_id=str(context_id),
                reason="unknown" if existing is None else "foreign",
            )
            stale_id = context_id

        conversation = await self._conversations.create_conversation(Conversation(
            user_id=user_id,
            title=self._title_for(first_message),
        ))
        await self._audit.log_conversation_started(
            user_id=user_id,
            conversation_id=conversation.id,
            stale_context_id=stale_id,
            correlation_id=correlation_id,
        )
        return conversation

    def _title_for(self, message: str) -> str:
        limit = self._settings.conversation_title_length
        if len(message) <= limit:
            return message
        return message[:limit] + "..."

    async def _append(
        self,
        user_id: UUID,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        correlation_id: Optional[UUID],
    ) -> ChatMessage:
        message = await self._conversations.append_message(conversation_id, role, content)
        await self._audit.log_message_persisted(
            user_id=user_id,
            conversation_id=conversation_id,
            message_id=message.id,
            role=role.value,
            sequence=message.sequence,
            correlation_id=correlation_id,
        )
        return message

    async def _record_exchange(
        self,
        user_id: UUID,
        conversation_id: UUID,
        prompt: str,
        response: Optional[str],
        snapshot_id: str,
        latency_ms: int,
        error: Optional[Exception],
        correlation_id: Optional[UUID],
    ) -> None:
        await self._conversations.append_ai_request(AIRequestLog(
            user_id=user_id,
            conversation_id=conversation_id,
            prompt=prompt,
            response=response,
            success=error is None,
            error_message=str(error) if error else None,
            context_snapshot_id=snapshot_id,
            latency_ms=latency_ms,
        ))
        await self._audit.log_ai_request(
            user_id=user_id,
            conversation_id=conversation_id,
            success=error is None,
            latency_ms=latency_ms,
            error_message=str(error) if error else None,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_conversations(self, user_id: UUID) -> ConversationList:
        """The user's conversations, most recently active first."""
        await resolve_user(self._finance, user_id)
        conversations = await self._conversations.list_conversations(user_id)

        summaries = []
        for conversation in conversations:
            if conversation.user_id != user_id:
                continue
            messages = await self._conversations.list_messages(conversation.id)
            last = messages[-1].content[:LAST_MESSAGE_PREVIEW_CHARS] if messages else None
            summaries.append(ConversationSummary(
                id=conversation.id,
                title=conversation.title,
                last_message=last,
                message_count=len(messages),
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
            ))
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return ConversationList(conversations=summaries, total=len(summaries))

    async def get_conversation(
        self,
        user_id: UUID,
        conversation_id: UUID,
    ) -> ConversationDetail:
        """
        Raises:
            NotFoundError: If absent or owned by someone else
        """
        conversation = await self._conversations.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise NotFoundError(
                f"Conversation not found: {conversation_id}",
                {"conversation_id": str(conversation_id)},
            )
        messages = await self._conversations.list_messages(conversation_id)
        return ConversationDetail(
            id=conversation.id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            messages=messages,
        )

    async def list_ai_requests(
        self,
        user_id: UUID,
        limit: int = 100,
    ) -> list[AIRequestLog]:
        await resolve_user(self._finance, user_id)
        return await self._conversations.list_ai_requests(user_id, limit)
