"""
Context Builder

Assembles the bounded snapshot of a user's finances that the assistant
sees on each turn.

DESIGN DECISION: The snapshot has a hard size limit (context_max_chars
of serialized JSON). When over the limit we drop, in order: the oldest
transactions, then categories, then accounts, then goals. Totals are
computed before trimming so they always describe the whole window.
"""

import hashlib
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from aqsha.audit import AuditLogger
from aqsha.config import AppSettings, get_settings
from aqsha.models.conversation import ContextSnapshot
from aqsha.models.finance import GoalStatus, TransactionCriteria
from aqsha.queries.executor import TransactionQueryEngine, resolve_user
from aqsha.queries.statistics import summarize_transactions
from aqsha.services.storage import FinanceStorageInterface


class ContextBuilder:
    """
    Read-only. Never mutates the store.
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        query_engine: Optional[TransactionQueryEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._engine = query_engine or TransactionQueryEngine(storage, self._audit)
        self._settings = settings or get_settings().app

    async def build_context(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ContextSnapshot:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        await resolve_user(self._storage, user_id)

        today = today or date.today()
        window_start = today - timedelta(days=self._settings.context_window_days)

        window = await self._engine.query(
            user_id,
            TransactionCriteria(start_date=window_start, end_date=today),
            correlation_id,
        )
        accounts = await self._storage.list_accounts(user_id)
        categories = await self._storage.list_categories(user_id)
        goals = [
            g for g in await self._storage.list_goals(user_id)
            if g.status == GoalStatus.ONGOING
        ]

        limit = self._settings.context_transaction_limit
        snapshot = ContextSnapshot(
            user_id=user_id,
            generated_at=datetime.utcnow(),
            window_start=window_start,
            accounts=sorted(accounts, key=lambda a: a.name),
            transactions=window[:limit],
            goals=sorted(goals, key=lambda g: g.title),
            categories=sorted(categories, key=lambda c: c.name),
            statistics=summarize_transactions(window),
            truncated=len(window) > limit,
        )

        self._enforce_bound(snapshot)
        snapshot.snapshot_id = hashlib.sha256(
            snapshot.to_prompt_json().encode("utf-8")
        ).hexdigest()

        await self._audit.log_context_built(
            user_id=user_id,
            snapshot_id=snapshot.snapshot_id,
            transaction_count=len(snapshot.transactions),
            truncated=snapshot.truncated,
            correlation_id=correlation_id,
        )
        return snapshot

    def _enforce_bound(self, snapshot: ContextSnapshot) -> None:
        """Trim in place until the serialized snapshot fits."""
        max_chars = self._settings.context_max_chars
        # Transactions are newest first, so pop() drops the oldest
        trim_order = (
            snapshot.transactions,
            snapshot.categories,
            snapshot.accounts,
            snapshot.goals,
        )
        for items in trim_order:
            while items and len(snapshot.to_prompt_json()) > max_chars:
                items.pop()
                snapshot.truncated = True
