"""
Transaction Query Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
Given the same stored data and criteria it returns the same list in
the same order: date descending, then created_at descending, then id
ascending.

The engine never trusts the store blindly. Rows are requested by user
id, and every returned row is re-checked for ownership and criteria
before it reaches the caller.
"""

from typing import Optional
from uuid import UUID

import structlog

from aqsha.audit import AuditLogger
from aqsha.errors import NotFoundError
from aqsha.models.finance import (
    Transaction,
    TransactionCriteria,
    User,
    transaction_sort_key,
)
from aqsha.services.storage import FinanceStorageInterface
from aqsha.validation.validator import validate_criteria


logger = structlog.get_logger(__name__)


async def resolve_user(storage: FinanceStorageInterface, user_id: UUID) -> User:
    """
    Look up a user or fail.

    Raises:
        NotFoundError: If the id does not resolve to a user
    """
    user = await storage.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}", {"user_id": str(user_id)})
    return user


class TransactionQueryEngine:
    """
    Filters a user's transactions by composable criteria.

    GUARANTEES:
    - Only the caller's rows, even if the store misbehaves
    - Every supplied criterion holds for every returned row
    - Empty list (not an error) when nothing matches
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def query(
        self,
        user_id: UUID,
        criteria: Optional[TransactionCriteria] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Execute a transaction query.

        Raises:
            ValidationError: If the criteria contradict each other
            NotFoundError: If the user does not exist
        """
        criteria = validate_criteria(criteria or TransactionCriteria())
        await resolve_user(self._storage, user_id)

        rows = await self._storage.list_transactions(user_id, criteria)

        results = []
        for transaction in rows:
            if transaction.user_id != user_id:
                logger.warning(
                    "foreign_row_dropped",
                    user_id=str(user_id),
                    transaction_id=str(transaction.id),
                )
                continue
            if criteria.matches(transaction):
                results.append(transaction)
        results.sort(key=transaction_sort_key)

        await self._audit.log_query_executed(
            user_id=user_id,
            result_count=len(results),
            criteria=criteria.model_dump(mode="json", exclude_none=True),
            correlation_id=correlation_id,
        )
        return results

    async def get(self, user_id: UUID, transaction_id: UUID) -> Transaction:
        """
        Fetch one of the user's transactions.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        await resolve_user(self._storage, user_id)
        transaction = await self._storage.get_transaction(user_id, transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise NotFoundError(
                f"Transaction not found: {transaction_id}",
                {"transaction_id": str(transaction_id)},
            )
        return transaction
