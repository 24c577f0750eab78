"""
In-Memory Storage Implementation

Default backend for development and tests. Implements all three storage
interfaces over plain dicts.

DESIGN DECISION: A single asyncio.Lock guards every write, so sequence
numbers assigned by append_message are strictly increasing even when
turns for the same conversation interleave.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional
from uuid import UUID

from aqsha.models.audit import AuditEvent
from aqsha.models.conversation import (
    AIRequestLog,
    ChatMessage,
    Conversation,
    MessageRole,
)
from aqsha.models.finance import (
    Account,
    Category,
    DebtStatus,
    Goal,
    Profile,
    Transaction,
    TransactionCriteria,
    User,
)
from aqsha.services.storage.interface import (
    AuditStorageInterface,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    StorageError,
    filter_transactions,
)


class InMemoryStorage(
    FinanceStorageInterface,
    ConversationStorageInterface,
    AuditStorageInterface,
):
    """Process-local store. Data is lost on restart."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._users: dict[UUID, User] = {}
        self._profiles: dict[UUID, Profile] = {}
        self._accounts: dict[UUID, Account] = {}
        self._categories: dict[UUID, Category] = {}
        self._goals: dict[UUID, Goal] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._conversations: dict[UUID, Conversation] = {}
        self._messages: dict[UUID, list[ChatMessage]] = {}
        self._ai_requests: list[AIRequestLog] = []
        self._events: list[AuditEvent] = []

    # =========================================================================
    # Finance
    # =========================================================================

    async def save_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user
        return user

    async def get_user(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_token_hash(self, token_hash: str) -> Optional[User]:
        for user in self._users.values():
            if user.token_hash and user.token_hash == token_hash:
                return user
        return None

    async def save_profile(self, profile: Profile) -> Profile:
        async with self._lock:
            self._profiles[profile.id] = profile
        return profile

    async def list_profiles(self, user_id: UUID) -> list[Profile]:
        return [p for p in self._profiles.values() if p.user_id == user_id]

    async def save_account(self, account: Account) -> Account:
        async with self._lock:
            self._accounts[account.id] = account
        return account

    async def list_accounts(self, user_id: UUID) -> list[Account]:
        return [a for a in self._accounts.values() if a.user_id == user_id]

    async def save_category(self, category: Category) -> Category:
        async with self._lock:
            self._categories[category.id] = category
        return category

    async def list_categories(self, user_id: UUID) -> list[Category]:
        return [c for c in self._categories.values() if c.user_id == user_id]

    async def save_goal(self, goal: Goal) -> Goal:
        async with self._lock:
            self._goals[goal.id] = goal
        return goal

    async def list_goals(self, user_id: UUID) -> list[Goal]:
        return [g for g in self._goals.values() if g.user_id == user_id]

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        async with self._lock:
            if transaction.id in self._transactions:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            self._transactions[transaction.id] = transaction
        return transaction

    async def record_transaction(
        self,
        transaction: Transaction,
        balance_changes: Mapping[UUID, Decimal],
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> Transaction:
        async with self._lock:
            if transaction.id in self._transactions:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            self._check_targets(transaction.user_id, balance_changes, debt_updates)
            self._transactions[transaction.id] = transaction
            self._apply_effects(balance_changes, debt_updates)
        return transaction

    def _check_targets(
        self,
        user_id: UUID,
        balance_changes: Optional[Mapping[UUID, Decimal]],
        debt_updates: Optional[Mapping[UUID, DebtStatus]],
    ) -> None:
        for account_id in balance_changes or {}:
            account = self._accounts.get(account_id)
            if account is None or account.user_id != user_id:
                raise StorageError(f"Account not found: {account_id}")
        for debt_id in debt_updates or {}:
            debt = self._transactions.get(debt_id)
            if debt is None or debt.user_id != user_id:
                raise StorageError(f"Debt not found: {debt_id}")

    def _apply_effects(
        self,
        balance_changes: Optional[Mapping[UUID, Decimal]],
        debt_updates: Optional[Mapping[UUID, DebtStatus]],
    ) -> None:
        # Caller holds the lock and has run _check_targets
        for account_id, delta in (balance_changes or {}).items():
            account = self._accounts[account_id]
            self._accounts[account_id] = account.model_copy(
                update={"balance": account.balance + delta}
            )
        for debt_id, status in (debt_updates or {}).items():
            self._transactions[debt_id] = self._transactions[debt_id].model_copy(
                update={"debt_status": status}
            )

    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            return None
        return transaction

    async def delete_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
        balance_changes: Optional[Mapping[UUID, Decimal]] = None,
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> bool:
        async with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None or transaction.user_id != user_id:
                return False
            self._check_targets(user_id, balance_changes, debt_updates)
            del self._transactions[transaction_id]
            self._apply_effects(balance_changes, debt_updates)
            return True

    async def list_transactions(
        self,
        user_id: UUID,
        criteria: Optional[TransactionCriteria] = None,
    ) -> list[Transaction]:
        return filter_transactions(self._transactions.values(), user_id, criteria)

    # =========================================================================
    # Conversations
    # =========================================================================

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            if conversation.id in self._conversations:
                raise DuplicateError(f"Conversation already exists: {conversation.id}")
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    async def append_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
    ) -> ChatMessage:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise StorageError(f"Conversation not found: {conversation_id}")

            messages = self._messages[conversation_id]
            sequence = messages[-1].sequence + 1 if messages else 1
            message = ChatMessage(
                conversation_id=conversation_id,
                role=role,
                content=content,
                sequence=sequence,
            )
            messages.append(message)
            conversation.updated_at = max(datetime.utcnow(), conversation.updated_at)
            return message

    async def list_messages(self, conversation_id: UUID) -> list[ChatMessage]:
        return list(self._messages.get(conversation_id, []))

    async def append_ai_request(self, entry: AIRequestLog) -> AIRequestLog:
        async with self._lock:
            self._ai_requests.append(entry)
        return entry

    async def list_ai_requests(
        self,
        user_id: UUID,
        limit: int = 100,
    ) -> list[AIRequestLog]:
        owned = [r for r in self._ai_requests if r.user_id == user_id]
        return list(reversed(owned))[:limit]

    # =========================================================================
    # Audit
    # =========================================================================

    async def append_event(self, event: AuditEvent) -> bool:
        async with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
