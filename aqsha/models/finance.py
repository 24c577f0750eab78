"""
Core Data Models for Aqsha Tracker

These models define the strict schemas for all financial data flowing
through the system. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Keep money exact (Decimal everywhere, never float)

DESIGN DECISION: Field names are snake_case in Python and camelCase on
the wire. Every model accepts both spellings on input.
"""

import hashlib
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class AqshaModel(BaseModel):
    """Base model: camelCase aliases, population by field name allowed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Supported transaction types.

    Only INCOME and EXPENSE count towards statistics. Transfers and debt
    operations move money between places; they are not earnings or spending.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    DEBT_GIVE = "debt_give"      # Lent money to someone
    DEBT_TAKE = "debt_take"      # Borrowed money from someone
    DEBT_REPAY = "debt_repay"    # Repayment of either kind of debt


# Types whose amounts enter income/expense totals
STATISTICS_TYPES = frozenset({TransactionType.INCOME, TransactionType.EXPENSE})

DEBT_TYPES = frozenset({
    TransactionType.DEBT_GIVE,
    TransactionType.DEBT_TAKE,
    TransactionType.DEBT_REPAY,
})


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    DEBT = "debt"


class DebtStatus(str, Enum):
    ACTIVE = "active"
    REPAID = "repaid"


class GoalStatus(str, Enum):
    """Derived goal status."""
    ONGOING = "ongoing"
    COMPLETED = "completed"


# =============================================================================
# OWNERSHIP ROOTS
# =============================================================================

class User(AqshaModel):
    """
    An account holder.

    The bearer token itself is never stored, only its sha256 hash.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(..., min_length=3, max_length=254)
    name: Optional[str] = Field(default=None, max_length=200)
    token_hash: Optional[str] = Field(
        default=None,
        exclude=True,
        description="sha256 hex digest of the user's API token"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()


class Profile(AqshaModel):
    """A financial profile (e.g. personal, family) owned by a user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)


class Account(AqshaModel):
    """A place money lives: card, cash, deposit."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    profile_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=100)
    account_type: Optional[str] = Field(default=None, max_length=50)
    balance: Decimal = Field(default=Decimal("0"))


class Category(AqshaModel):
    """User-defined transaction category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    category_type: CategoryType


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(AqshaModel):
    """
    A single money movement.

    Shape depends on type:
    - transfer: from_account_id + to_account_id, no account_id
    - debt_give / debt_take: counterparty contact fields
    - everything else: a single account_id (and category for income/expense)

    The shape rules are enforced on creation (TransactionCreate).
    Stored rows are trusted as-is.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    profile_id: Optional[UUID] = None
    type: TransactionType
    amount: Decimal = Field(..., gt=0, description="Positive monetary amount")
    description: Optional[str] = Field(default=None, max_length=500)
    date: date

    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None

    # Debt counterparty
    contact_name: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    debt_status: Optional[DebtStatus] = None
    related_debt_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransactionCreate(AqshaModel):
    """Payload for creating a transaction. Validates the per-type shape."""
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: date
    profile_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    contact_name: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    related_debt_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_shape(self) -> 'TransactionCreate':
        """Enforce the account/counterparty shape for each type."""
        if self.type == TransactionType.TRANSFER:
            if not self.from_account_id or not self.to_account_id:
                raise ValueError(
                    "fromAccountId and toAccountId are required for transfer"
                )
            if self.from_account_id == self.to_account_id:
                raise ValueError("fromAccountId and toAccountId must be different")
            if self.account_id:
                raise ValueError("transfer uses fromAccountId/toAccountId, not accountId")
            return self

        if not self.account_id:
            raise ValueError(f"accountId is required for {self.type.value}")

        if self.type in (TransactionType.INCOME, TransactionType.EXPENSE):
            if not self.category_id:
                raise ValueError(f"categoryId is required for {self.type.value}")

        if self.type in (TransactionType.DEBT_GIVE, TransactionType.DEBT_TAKE):
            if not self.contact_name or not self.contact_phone:
                raise ValueError(
                    "contactName and contactPhone are required for debt transactions"
                )

        if self.type == TransactionType.DEBT_REPAY and not self.related_debt_id:
            raise ValueError("relatedDebtId is required for debt_repay")

        return self


class TransactionCriteria(AqshaModel):
    """
    Optional filters narrowing a transaction query.

    All fields are independently optional and combine with logical AND.
    Contradictions (start after end, min above max) are checked by the
    request validator, not here, so they surface as ValidationError.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[TransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = Field(default=None, max_length=200)

    profile_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None

    @field_validator('search')
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def matches(self, transaction: Transaction) -> bool:
        """Check a single transaction against every supplied criterion."""
        if self.type is not None and transaction.type != self.type:
            return False
        if self.start_date is not None and transaction.date < self.start_date:
            return False
        if self.end_date is not None and transaction.date > self.end_date:
            return False
        if self.min_amount is not None and transaction.amount < self.min_amount:
            return False
        if self.max_amount is not None and transaction.amount > self.max_amount:
            return False
        if self.profile_id is not None and transaction.profile_id != self.profile_id:
            return False
        if self.category_id is not None and transaction.category_id != self.category_id:
            return False
        if self.account_id is not None and self.account_id not in (
            transaction.account_id,
            transaction.from_account_id,
            transaction.to_account_id,
        ):
            return False
        if self.search is not None:
            needle = self.search.casefold()
            haystacks = (transaction.description, transaction.contact_name)
            if not any(h and needle in h.casefold() for h in haystacks):
                return False
        return True


def transaction_sort_key(transaction: Transaction):
    """
    Default ordering for query results: newest date first, then newest
    created_at, then id ascending. Use with sorted(..., key=...).
    """
    return (
        -transaction.date.toordinal(),
        -transaction.created_at.timestamp(),
        str(transaction.id),
    )


class DateRange(AqshaModel):
    """Optional inclusive date range."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def to_criteria(self) -> TransactionCriteria:
        return TransactionCriteria(start_date=self.start_date, end_date=self.end_date)


# =============================================================================
# STATISTICS
# =============================================================================

class CategoryTotal(AqshaModel):
    """Sum of one category's transactions within a statistics set."""

    category_id: Optional[UUID] = None
    category_name: str = "Uncategorized"
    type: TransactionType
    total: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)


class StatisticsResult(AqshaModel):
    """
    Income/expense totals over a transaction set.

    net = total_income - total_expense. Transfers and debts never
    contribute.
    """

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    categories: Optional[list[CategoryTotal]] = None


# =============================================================================
# GOALS
# =============================================================================

class Goal(AqshaModel):
    """A savings goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    target: Decimal = Field(..., gt=0)
    saved: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def status(self) -> GoalStatus:
        if self.saved >= self.target:
            return GoalStatus.COMPLETED
        return GoalStatus.ONGOING


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_value', 'inverted_range', 'not_owned')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="What the caller can change to fix it"
    )
