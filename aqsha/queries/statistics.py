"""
Statistics Aggregator

Income/expense totals over a user's transactions, optionally grouped by
category.

DESIGN DECISION: Only income and expense count. Transfers move money
between the user's own accounts and debts are liabilities, so neither
is earning or spending. All arithmetic is Decimal; nothing is rounded.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Optional
from uuid import UUID

from aqsha.audit import AuditLogger
from aqsha.models.finance import (
    STATISTICS_TYPES,
    Category,
    CategoryTotal,
    DateRange,
    StatisticsResult,
    Transaction,
    TransactionCriteria,
    TransactionType,
)
from aqsha.queries.executor import TransactionQueryEngine
from aqsha.services.storage import FinanceStorageInterface
from aqsha.validation.validator import validate_date_range


UNCATEGORIZED = "Uncategorized"


def summarize_transactions(
    transactions: Iterable[Transaction],
    categories: Optional[Iterable[Category]] = None,
    by_category: bool = False,
    date_range: Optional[DateRange] = None,
) -> StatisticsResult:
    """
    Pure aggregation over an already-filtered transaction set.

    Rows of other types are ignored, so callers may pass a mixed list.
    """
    names = {c.id: c.name for c in categories or []}

    total_income = Decimal("0")
    total_expense = Decimal("0")
    count = 0
    groups: dict[tuple[Optional[UUID], TransactionType], CategoryTotal] = {}

    for transaction in transactions:
        if transaction.type not in STATISTICS_TYPES:
            continue
        count += 1
        if transaction.type == TransactionType.INCOME:
            total_income += transaction.amount
        else:
            total_expense += transaction.amount

        if by_category:
            key = (transaction.category_id, transaction.type)
            group = groups.get(key)
            if group is None:
                group = groups[key] = CategoryTotal(
                    category_id=transaction.category_id,
                    category_name=names.get(transaction.category_id, UNCATEGORIZED),
                    type=transaction.type,
                )
            group.total += transaction.amount
            group.count += 1

    result = StatisticsResult(
        total_income=total_income,
        total_expense=total_expense,
        net=total_income - total_expense,
        transaction_count=count,
        start_date=date_range.start_date if date_range else None,
        end_date=date_range.end_date if date_range else None,
    )
    if by_category:
        result.categories = sorted(
            groups.values(),
            key=lambda g: (-g.total, g.category_name),
        )
    return result


class StatisticsAggregator:
    """Computes StatisticsResult for a user over an optional date range."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        query_engine: Optional[TransactionQueryEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._engine = query_engine or TransactionQueryEngine(storage, self._audit)

    async def aggregate(
        self,
        user_id: UUID,
        date_range: Optional[DateRange] = None,
        by_category: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> StatisticsResult:
        """
        Raises:
            ValidationError: If start_date is after end_date
            NotFoundError: If the user does not exist
        """
        validate_date_range(date_range)
        criteria = date_range.to_criteria() if date_range else TransactionCriteria()

        transactions = await self._engine.query(user_id, criteria, correlation_id)
        categories = await self._storage.list_categories(user_id) if by_category else None

        result = summarize_transactions(
            transactions,
            categories=categories,
            by_category=by_category,
            date_range=date_range,
        )

        await self._audit.log_statistics_computed(
            user_id=user_id,
            transaction_count=result.transaction_count,
            by_category=by_category,
            correlation_id=correlation_id,
        )
        return result
