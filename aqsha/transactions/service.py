"""
Transaction Write Service

Create and delete transactions on behalf of a user.

DESIGN DECISION: Shape rules (transfer accounts, debt counterparty,
required category) are enforced by TransactionCreate; ownership of
every referenced account, category and profile is checked against the
store before anything is written.

A transaction moves money, so writing one also moves account balances:

    income, debt_take     +amount on account
    expense, debt_give    -amount on account
    transfer              -amount on from account, +amount on to account
    debt_repay            +amount if the debt was given, -amount if taken

A repayment marks its debt as repaid. Deleting a transaction applies
the opposite balance changes, and deleting the last repayment of a debt
makes the debt active again.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from aqsha.audit import AuditLogger
from aqsha.errors import NotFoundError, ValidationError
from aqsha.models.finance import (
    DebtStatus,
    Transaction,
    TransactionCreate,
    TransactionCriteria,
    TransactionType,
    ValidationIssue,
)
from aqsha.queries.executor import resolve_user
from aqsha.services.storage import FinanceStorageInterface
from aqsha.validation.validator import RequestValidator


LOAN_TYPES = (TransactionType.DEBT_GIVE, TransactionType.DEBT_TAKE)


def balance_changes(
    transaction: Transaction,
    debt: Optional[Transaction] = None,
) -> dict[UUID, Decimal]:
    """
    Signed per-account deltas a transaction applies.

    Args:
        transaction: The transaction being written
        debt: The repaid debt, required for debt_repay
    """
    amount = transaction.amount
    if transaction.type == TransactionType.TRANSFER:
        return {
            transaction.from_account_id: -amount,
            transaction.to_account_id: amount,
        }
    if transaction.type == TransactionType.DEBT_REPAY:
        if debt.type == TransactionType.DEBT_GIVE:
            return {transaction.account_id: amount}
        return {transaction.account_id: -amount}
    if transaction.type in (TransactionType.INCOME, TransactionType.DEBT_TAKE):
        return {transaction.account_id: amount}
    return {transaction.account_id: -amount}


class TransactionService:

    def __init__(
        self,
        storage: FinanceStorageInterface,
        validator: Optional[RequestValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or RequestValidator(storage)
        self._audit = audit_logger or AuditLogger()

    async def create(
        self,
        user_id: UUID,
        payload: TransactionCreate,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Raises:
            ValidationError: If a referenced id is not the caller's, or the
                             category does not fit the transaction type
            NotFoundError: If the user or the repaid debt does not exist
        """
        await resolve_user(self._storage, user_id)
        await self._validator.validate_transaction_refs(user_id, payload)

        debt = None
        if payload.type == TransactionType.DEBT_REPAY:
            debt = await self._find_debt(user_id, payload.related_debt_id)

        debt_status = DebtStatus.ACTIVE if payload.type in LOAN_TYPES else None
        transaction = Transaction(
            user_id=user_id,
            debt_status=debt_status,
            **payload.model_dump(),
        )
        await self._storage.record_transaction(
            transaction,
            balance_changes(transaction, debt),
            {debt.id: DebtStatus.REPAID} if debt else None,
        )

        await self._audit.log_transaction_changed(
            user_id=user_id,
            transaction_id=transaction.id,
            created=True,
            correlation_id=correlation_id,
        )
        return transaction

    async def delete(
        self,
        user_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            NotFoundError: If absent or owned by someone else
            ValidationError: If the transaction is a debt with repayments
        """
        await resolve_user(self._storage, user_id)
        transaction = await self._storage.get_transaction(user_id, transaction_id)
        if transaction is None:
            raise self._not_found(transaction_id)

        debt = None
        debt_updates = None
        if transaction.type in LOAN_TYPES:
            if await self._repayments_of(user_id, transaction.id):
                raise ValidationError(
                    "Debt has repayments",
                    issues=[ValidationIssue(
                        field="id",
                        issue_type="has_repayments",
                        message="Delete the repayments of this debt first",
                    )],
                )
        elif transaction.type == TransactionType.DEBT_REPAY:
            debt = await self._find_debt(user_id, transaction.related_debt_id)
            remaining = [
                r for r in await self._repayments_of(user_id, debt.id)
                if r.id != transaction.id
            ]
            if not remaining:
                debt_updates = {debt.id: DebtStatus.ACTIVE}

        reversal = {
            account_id: -delta
            for account_id, delta in balance_changes(transaction, debt).items()
        }
        deleted = await self._storage.delete_transaction(
            user_id, transaction_id, reversal, debt_updates
        )
        if not deleted:
            raise self._not_found(transaction_id)

        await self._audit.log_transaction_changed(
            user_id=user_id,
            transaction_id=transaction_id,
            created=False,
            correlation_id=correlation_id,
        )

    async def _find_debt(self, user_id: UUID, debt_id: Optional[UUID]) -> Transaction:
        debt = None
        if debt_id is not None:
            debt = await self._storage.get_transaction(user_id, debt_id)
        if debt is None or debt.type not in LOAN_TYPES:
            raise NotFoundError(
                f"Debt not found: {debt_id}",
                {"related_debt_id": str(debt_id)},
            )
        return debt

    async def _repayments_of(self, user_id: UUID, debt_id: UUID) -> list[Transaction]:
        repayments = await self._storage.list_transactions(
            user_id, TransactionCriteria(type=TransactionType.DEBT_REPAY)
        )
        return [r for r in repayments if r.related_debt_id == debt_id]

    @staticmethod
    def _not_found(transaction_id: UUID) -> NotFoundError:
        return NotFoundError(
            f"Transaction not found: {transaction_id}",
            {"transaction_id": str(transaction_id)},
        )
