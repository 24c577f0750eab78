"""
Tests for the transaction query engine.

Runs against the in-memory store seeded with the example dataset.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from aqsha.errors import NotFoundError, ValidationError
from aqsha.models.finance import TransactionCriteria, TransactionType
from aqsha.queries import TransactionQueryEngine
from aqsha.validation import parse_criteria


def descriptions(transactions):
    return [t.description for t in transactions]


class TestQueryFilters:
    """Each criterion on its own and in combination."""

    @pytest.mark.asyncio
    async def test_no_criteria_returns_all_newest_first(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(dataset.alice.id)

        assert len(results) == 7
        assert [t.date for t in results] == sorted((t.date for t in results), reverse=True)
        assert results[0].description == "Annual bonus"

    @pytest.mark.asyncio
    async def test_january_range_returns_salary_and_grocery(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(dataset.alice.id, TransactionCriteria(
            start_date=date(2023, 1, 1),
            end_date=date(2023, 1, 31),
        ))

        assert descriptions(results) == ["Salary January", "Grocery store"]

    @pytest.mark.asyncio
    async def test_date_bounds_are_inclusive(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(dataset.alice.id, TransactionCriteria(
            start_date=date(2023, 1, 5),
            end_date=date(2023, 1, 15),
        ))

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_min_amount_is_type_agnostic(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id, TransactionCriteria(min_amount=Decimal("500"))
        )

        expected = {
            dataset.transactions[key].id
            for key in ("salary", "freelance", "bonus", "rent", "transfer")
        }
        assert {t.id for t in results} == expected

    @pytest.mark.asyncio
    async def test_min_amount_with_type(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(dataset.alice.id, TransactionCriteria(
            min_amount=Decimal("500"),
            type=TransactionType.INCOME,
        ))

        assert descriptions(results) == ["Annual bonus", "Freelance project", "Salary January"]

    @pytest.mark.asyncio
    async def test_max_amount_inclusive(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id, TransactionCriteria(max_amount=Decimal("200"))
        )

        assert {t.amount for t in results} == {Decimal("200"), Decimal("100")}

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id, TransactionCriteria(search="RENT")
        )

        assert descriptions(results) == ["Rent payment"]

    @pytest.mark.asyncio
    async def test_account_matches_transfer_legs(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id,
            TransactionCriteria(account_id=dataset.accounts["cash"].id),
        )

        assert [t.type for t in results] == [TransactionType.TRANSFER]

    @pytest.mark.asyncio
    async def test_no_match_is_empty_not_error(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id, TransactionCriteria(search="nothing like this")
        )

        assert results == []


class TestTenantIsolation:
    """Another user's rows never leak."""

    @pytest.mark.asyncio
    async def test_search_matching_other_users_description(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(
            dataset.alice.id, TransactionCriteria(search="salary")
        )

        assert descriptions(results) == ["Salary January"]
        assert all(t.user_id == dataset.alice.id for t in results)

    @pytest.mark.asyncio
    async def test_other_user_sees_only_own_rows(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        results = await engine.query(dataset.bob.id)

        assert [t.id for t in results] == [dataset.bob_transaction.id]

    @pytest.mark.asyncio
    async def test_misbehaving_store_rows_are_dropped(self, dataset):
        class LeakyStorage:
            """Returns every row regardless of owner."""

            def __init__(self, inner):
                self._inner = inner

            async def get_user(self, user_id):
                return await self._inner.get_user(user_id)

            async def list_transactions(self, user_id, criteria=None):
                own = await self._inner.list_transactions(dataset.alice.id)
                other = await self._inner.list_transactions(dataset.bob.id)
                return own + other

        engine = TransactionQueryEngine(LeakyStorage(dataset.storage))
        results = await engine.query(dataset.alice.id)

        assert len(results) == 7
        assert dataset.bob_transaction.id not in {t.id for t in results}

    @pytest.mark.asyncio
    async def test_get_other_users_transaction_is_not_found(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)

        with pytest.raises(NotFoundError):
            await engine.get(dataset.alice.id, dataset.bob_transaction.id)


class TestQueryErrors:

    @pytest.mark.asyncio
    async def test_inverted_dates(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)

        with pytest.raises(ValidationError) as exc_info:
            await engine.query(dataset.alice.id, TransactionCriteria(
                start_date=date(2023, 2, 1),
                end_date=date(2023, 1, 1),
            ))
        assert exc_info.value.issues[0].issue_type == "inverted_range"

    @pytest.mark.asyncio
    async def test_inverted_amounts(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)

        with pytest.raises(ValidationError):
            await engine.query(dataset.alice.id, TransactionCriteria(
                min_amount=Decimal("900"),
                max_amount=Decimal("100"),
            ))

    def test_unknown_type_in_raw_params(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_criteria({"type": "gift"})
        assert exc_info.value.issues[0].field == "type"

    def test_blank_params_are_ignored(self):
        criteria = parse_criteria({"type": "", "search": "", "minAmount": "500"})

        assert criteria.type is None
        assert criteria.search is None
        assert criteria.min_amount == Decimal("500")

    @pytest.mark.asyncio
    async def test_unknown_user(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)

        with pytest.raises(NotFoundError):
            await engine.query(uuid4())


class TestDeterminism:

    @pytest.mark.asyncio
    async def test_repeated_query_is_identical(self, dataset):
        engine = TransactionQueryEngine(dataset.storage)
        criteria = TransactionCriteria(min_amount=Decimal("100"))

        first = await engine.query(dataset.alice.id, criteria)
        second = await engine.query(dataset.alice.id, criteria)

        assert [t.id for t in first] == [t.id for t in second]
        assert first == second
