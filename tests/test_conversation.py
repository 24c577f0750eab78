"""
Tests for the conversation manager.

The AI gateway is always a scripted fake; no real API calls.
"""

from uuid import uuid4

import pytest

from aqsha.errors import NotFoundError, UpstreamError, UpstreamTimeoutError, ValidationError
from aqsha.models.conversation import MessageRole
from aqsha.models.audit import AuditEventType
from aqsha.orchestrator import UnavailableGateway, create_app_components

from conftest import FakeGateway


def manager_with(dataset, settings, gateway):
    return create_app_components(
        storage=dataset.storage,
        gateway=gateway,
        settings=settings,
    ).conversations


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_first_message_starts_conversation(self, dataset, components, gateway):
        response = await components.conversations.send_message(
            dataset.alice.id, "How much did I spend?"
        )

        assert response.message == gateway.replies[0]
        assert [m.role for m in response.history] == [MessageRole.USER, MessageRole.ASSISTANT]

        detail = await components.conversations.get_conversation(
            dataset.alice.id, response.context_id
        )
        assert [m.content for m in detail.messages] == [
            "How much did I spend?",
            gateway.replies[0],
        ]
        assert [m.sequence for m in detail.messages] == [1, 2]

    @pytest.mark.asyncio
    async def test_context_id_continues_conversation(self, dataset, settings):
        gateway = FakeGateway(replies=["first answer", "second answer"])
        manager = manager_with(dataset, settings, gateway)

        first = await manager.send_message(dataset.alice.id, "question one")
        second = await manager.send_message(
            dataset.alice.id, "question two", first.context_id
        )

        assert second.context_id == first.context_id
        detail = await manager.get_conversation(dataset.alice.id, first.context_id)
        assert [m.content for m in detail.messages] == [
            "question one",
            "first answer",
            "question two",
            "second answer",
        ]
        # The gateway saw the full history ending with the new user message
        _, messages = gateway.calls[1]
        assert [m.content for m in messages] == ["question one", "first answer", "question two"]

    @pytest.mark.asyncio
    async def test_unknown_context_id_starts_fresh(self, dataset, components):
        unknown = uuid4()
        response = await components.conversations.send_message(
            dataset.alice.id, "hello", unknown
        )

        assert response.context_id != unknown
        listing = await components.conversations.list_conversations(dataset.alice.id)
        assert listing.total == 1

        events = await dataset.storage.get_recent_events()
        started = [e for e in events if e.event_type == AuditEventType.CONVERSATION_STARTED]
        assert started[0].details["stale_context_id"] == str(unknown)

    @pytest.mark.asyncio
    async def test_foreign_context_id_starts_fresh(self, dataset, components):
        bobs = await components.conversations.send_message(dataset.bob.id, "bob here")

        response = await components.conversations.send_message(
            dataset.alice.id, "alice here", bobs.context_id
        )

        assert response.context_id != bobs.context_id
        bob_detail = await components.conversations.get_conversation(
            dataset.bob.id, bobs.context_id
        )
        assert len(bob_detail.messages) == 2

    @pytest.mark.asyncio
    async def test_prompt_contains_only_callers_context(self, dataset, components, gateway):
        await components.conversations.send_message(dataset.alice.id, "hi")

        system_prompt, _ = gateway.calls[0]
        assert str(dataset.bob.id) not in system_prompt
        assert "Salary from ACME" not in system_prompt

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, dataset, components):
        with pytest.raises(ValidationError):
            await components.conversations.send_message(dataset.alice.id, "   ")

    @pytest.mark.asyncio
    async def test_unknown_user(self, components):
        with pytest.raises(NotFoundError):
            await components.conversations.send_message(uuid4(), "hi")


class TestGatewayFailure:
    """A failed turn keeps the user's message."""

    @pytest.mark.asyncio
    async def test_user_message_survives_failure(self, dataset, settings):
        manager = manager_with(
            dataset, settings, FakeGateway(error=UpstreamError("provider down"))
        )

        with pytest.raises(UpstreamError):
            await manager.send_message(dataset.alice.id, "Am I on track?")

        listing = await manager.list_conversations(dataset.alice.id)
        assert listing.total == 1
        assert listing.conversations[0].message_count == 1
        assert listing.conversations[0].last_message == "Am I on track?"

        detail = await manager.get_conversation(dataset.alice.id, listing.conversations[0].id)
        assert [(m.role, m.content) for m in detail.messages] == [
            (MessageRole.USER, "Am I on track?"),
        ]

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, dataset, settings):
        manager = manager_with(
            dataset, settings, FakeGateway(error=UpstreamTimeoutError("too slow"))
        )

        with pytest.raises(UpstreamTimeoutError):
            await manager.send_message(dataset.alice.id, "hello")

        requests = await manager.list_ai_requests(dataset.alice.id)
        assert len(requests) == 1
        assert requests[0].success is False
        assert requests[0].error_message == "too slow"
        assert requests[0].response is None

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_upstream(self, dataset, settings):
        manager = manager_with(dataset, settings, FakeGateway(error=RuntimeError("boom")))

        with pytest.raises(UpstreamError):
            await manager.send_message(dataset.alice.id, "hello")

    @pytest.mark.asyncio
    async def test_unconfigured_gateway(self, dataset, settings):
        manager = manager_with(dataset, settings, UnavailableGateway("no api key"))

        with pytest.raises(UpstreamError, match="not configured"):
            await manager.send_message(dataset.alice.id, "hello")

    @pytest.mark.asyncio
    async def test_retry_resumes_from_persisted_history(self, dataset, settings):
        gateway = FakeGateway(error=UpstreamError("provider down"))
        manager = manager_with(dataset, settings, gateway)

        with pytest.raises(UpstreamError):
            await manager.send_message(dataset.alice.id, "first try")
        conversation_id = (await manager.list_conversations(dataset.alice.id)).conversations[0].id

        gateway.error = None
        response = await manager.send_message(dataset.alice.id, "second try", conversation_id)

        assert response.context_id == conversation_id
        assert [m.content for m in response.history] == [
            "first try",
            "second try",
            gateway.replies[0],
        ]


class TestConversationReads:

    @pytest.mark.asyncio
    async def test_other_users_conversation_not_found(self, dataset, components):
        response = await components.conversations.send_message(dataset.alice.id, "mine")

        with pytest.raises(NotFoundError):
            await components.conversations.get_conversation(dataset.bob.id, response.context_id)

    @pytest.mark.asyncio
    async def test_listing_only_own_conversations(self, dataset, components):
        await components.conversations.send_message(dataset.alice.id, "alice one")
        await components.conversations.send_message(dataset.alice.id, "alice two")
        await components.conversations.send_message(dataset.bob.id, "bob one")

        listing = await components.conversations.list_conversations(dataset.alice.id)

        assert listing.total == 2
        assert {c.title for c in listing.conversations} == {"alice one", "alice two"}

    @pytest.mark.asyncio
    async def test_long_title_is_shortened(self, dataset, components):
        response = await components.conversations.send_message(
            dataset.alice.id, "What was my biggest expense in February?"
        )

        detail = await components.conversations.get_conversation(
            dataset.alice.id, response.context_id
        )
        assert detail.title == "What was my biggest ..."

    @pytest.mark.asyncio
    async def test_successful_exchange_logged(self, dataset, components, gateway):
        response = await components.conversations.send_message(dataset.alice.id, "hi")

        requests = await components.conversations.list_ai_requests(dataset.alice.id)
        assert len(requests) == 1
        assert requests[0].success is True
        assert requests[0].response == gateway.replies[0]
        assert requests[0].conversation_id == response.context_id
        assert requests[0].context_snapshot_id
