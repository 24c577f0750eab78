"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every read is scoped by user id; callers still re-check ownership.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, Mapping, Optional
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
    transaction_sort_key,
)


class FinanceStorageInterface(ABC):
    """
    Abstract interface for the user's financial records.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # Users ------------------------------------------------------------------

    @abstractmethod
    async def save_user(self, user: User) -> User:
        pass

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def get_user_by_token_hash(self, token_hash: str) -> Optional[User]:
        """Resolve a bearer token's sha256 digest to its user."""
        pass

    # Reference data ---------------------------------------------------------

    @abstractmethod
    async def save_profile(self, profile: Profile) -> Profile:
        pass

    @abstractmethod
    async def list_profiles(self, user_id: UUID) -> list[Profile]:
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    async def list_accounts(self, user_id: UUID) -> list[Account]:
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def list_categories(self, user_id: UUID) -> list[Category]:
        pass

    @abstractmethod
    async def save_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    async def list_goals(self, user_id: UUID) -> list[Goal]:
        pass

    # Transactions -----------------------------------------------------------

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Save a transaction row as-is, with no effect on balances.

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def record_transaction(
        self,
        transaction: Transaction,
        balance_changes: Mapping[UUID, Decimal],
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> Transaction:
        """
        Save a transaction together with its effects on the user's data.

        Args:
            transaction: The new row
            balance_changes: Signed delta to add to each account's balance
            debt_updates: New status for each affected debt transaction

        Every account and debt named must belong to transaction.user_id;
        nothing is written when one does not.

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If a target is missing or the write fails
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
        balance_changes: Optional[Mapping[UUID, Decimal]] = None,
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> bool:
        """
        Delete a transaction, applying the given effects with it.

        Returns True if a row owned by user_id was deleted. When it
        returns False nothing was changed.
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: UUID,
        criteria: Optional[TransactionCriteria] = None,
    ) -> list[Transaction]:
        """
        List the user's transactions matching the criteria.

        Returns:
            Matching transactions, newest first (see transaction_sort_key)
        """
        pass


class ConversationStorageInterface(ABC):
    """
    Abstract interface for assistant conversations and the AI request log.
    """

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Fetch by id regardless of owner; callers check ownership."""
        pass

    @abstractmethod
    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        """Newest updated_at first."""
        pass

    @abstractmethod
    async def append_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
    ) -> ChatMessage:
        """
        Append a message, assigning the next sequence number and bumping
        the conversation's updated_at.
        """
        pass

    @abstractmethod
    async def list_messages(self, conversation_id: UUID) -> list[ChatMessage]:
        """Messages in sequence order."""
        pass

    @abstractmethod
    async def append_ai_request(self, entry: AIRequestLog) -> AIRequestLog:
        pass

    @abstractmethod
    async def list_ai_requests(
        self,
        user_id: UUID,
        limit: int = 100,
    ) -> list[AIRequestLog]:
        """Newest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Related events in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Newest first."""
        pass


def filter_transactions(
    transactions: Iterable[Transaction],
    user_id: UUID,
    criteria: Optional[TransactionCriteria] = None,
) -> list[Transaction]:
    """
    Shared filter used by backends that cannot query natively:
    owner check, criteria match, then the standard ordering.
    """
    matched = [
        t for t in transactions
        if t.user_id == user_id and (criteria is None or criteria.matches(t))
    ]
    return sorted(matched, key=transaction_sort_key)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
