"""
Two-Stage Request Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking and parsing of raw parameters (query strings, JSON bodies)
- Unknown enum values (transaction type, report type, format)
- Handled by the pydantic models; failures are converted here

STAGE 2 - SEMANTIC VALIDATION:
- Inverted date or amount ranges
- Ids that do not belong to the caller
- Categories whose type does not fit the transaction type
- Empty chat messages

Every failure surfaces as aqsha.errors.ValidationError carrying the full
list of issues, never as a framework-specific error.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them back to the caller.
"""

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

import pydantic

from aqsha.errors import ValidationError
from aqsha.models.conversation import ChatRequest
from aqsha.models.finance import (
    DEBT_TYPES,
    AqshaModel,
    Category,
    CategoryType,
    DateRange,
    TransactionCreate,
    TransactionCriteria,
    TransactionType,
    ValidationIssue,
)
from aqsha.models.report import ReportRequest
from aqsha.services.storage import FinanceStorageInterface


ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


class StatisticsParams(AqshaModel):
    """Raw parameters of a statistics request."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    by_category: bool = False

    @property
    def date_range(self) -> DateRange:
        return DateRange(start_date=self.start_date, end_date=self.end_date)


# =============================================================================
# STAGE 1 - SCHEMA
# =============================================================================

def issues_from_pydantic(exc: pydantic.ValidationError) -> list[ValidationIssue]:
    """Flatten a pydantic error into our issue list."""
    issues = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "request"
        issues.append(ValidationIssue(
            field=location,
            issue_type=error["type"],
            message=error["msg"],
        ))
    return issues


def _clean(raw: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Drop absent values; empty query parameters mean 'not supplied'."""
    if raw is None:
        return {}
    return {
        key: value
        for key, value in raw.items()
        if value is not None and value != ""
    }


def parse_model(
    model_cls: Type[ModelT],
    raw: Optional[Mapping[str, Any]],
    what: str,
) -> ModelT:
    """
    Parse raw input into a model.

    Raises:
        ValidationError: With one issue per failing field
    """
    try:
        return model_cls.model_validate(_clean(raw))
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {what}", issues=issues_from_pydantic(e))


# =============================================================================
# STAGE 2 - SEMANTIC
# =============================================================================

def check_date_range(
    start_date: Optional[date],
    end_date: Optional[date],
) -> list[ValidationIssue]:
    if start_date and end_date and start_date > end_date:
        return [ValidationIssue(
            field="startDate",
            issue_type="inverted_range",
            message=f"startDate ({start_date}) is after endDate ({end_date})",
            suggested_fix="Swap the dates or widen the range",
        )]
    return []


def check_amount_range(
    min_amount: Optional[Decimal],
    max_amount: Optional[Decimal],
) -> list[ValidationIssue]:
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        return [ValidationIssue(
            field="minAmount",
            issue_type="inverted_range",
            message=f"minAmount ({min_amount}) is greater than maxAmount ({max_amount})",
        )]
    return []


def validate_criteria(criteria: TransactionCriteria) -> TransactionCriteria:
    """Reject contradictory criteria. Returns the criteria unchanged."""
    issues = check_date_range(criteria.start_date, criteria.end_date)
    issues += check_amount_range(criteria.min_amount, criteria.max_amount)
    if issues:
        raise ValidationError("Contradictory transaction filters", issues=issues)
    return criteria


def validate_date_range(date_range: Optional[DateRange]) -> Optional[DateRange]:
    if date_range is None:
        return None
    issues = check_date_range(date_range.start_date, date_range.end_date)
    if issues:
        raise ValidationError("Invalid date range", issues=issues)
    return date_range


def check_ownership(
    field: str,
    requested: Iterable[UUID],
    owned: Iterable[UUID],
) -> list[ValidationIssue]:
    """One issue per requested id the caller does not own."""
    owned_set = set(owned)
    return [
        ValidationIssue(
            field=field,
            issue_type="not_owned",
            message=f"Unknown id {requested_id}",
        )
        for requested_id in requested
        if requested_id not in owned_set
    ]


def check_category_type(
    category: Category,
    transaction_type: TransactionType,
) -> list[ValidationIssue]:
    """Income and expense need a category of their own kind, debts a debt category."""
    if transaction_type == TransactionType.TRANSFER:
        return []
    if transaction_type in DEBT_TYPES:
        expected = CategoryType.DEBT
    else:
        expected = CategoryType(transaction_type.value)
    if category.category_type == expected:
        return []
    return [ValidationIssue(
        field="categoryId",
        issue_type="category_type_mismatch",
        message=(
            f"Category '{category.name}' is a {category.category_type.value} "
            f"category and cannot be used for {transaction_type.value}"
        ),
        suggested_fix=f"Pick a {expected.value} category",
    )]


# =============================================================================
# ENTRY POINTS
# =============================================================================

def parse_criteria(raw: Optional[Mapping[str, Any]]) -> TransactionCriteria:
    """Raw query parameters -> validated TransactionCriteria."""
    criteria = parse_model(TransactionCriteria, raw, "transaction filters")
    return validate_criteria(criteria)


def parse_statistics_params(raw: Optional[Mapping[str, Any]]) -> StatisticsParams:
    params = parse_model(StatisticsParams, raw, "statistics parameters")
    validate_date_range(params.date_range)
    return params


def parse_chat_request(raw: Optional[Mapping[str, Any]]) -> ChatRequest:
    request = parse_model(ChatRequest, raw, "chat request")
    request.message = validate_message(request.message)
    return request


def validate_message(message: Optional[str]) -> str:
    """Chat messages must contain something other than whitespace."""
    if message is None or not message.strip():
        raise ValidationError(
            "Message must not be empty",
            issues=[ValidationIssue(
                field="message",
                issue_type="empty",
                message="Message must not be empty",
            )],
        )
    return message.strip()


def parse_report_request(raw: Optional[Mapping[str, Any]]) -> ReportRequest:
    request = parse_model(ReportRequest, raw, "report request")
    issues = check_date_range(request.start_date, request.end_date)
    if issues:
        raise ValidationError("Invalid report period", issues=issues)
    return request


def parse_transaction_create(raw: Optional[Mapping[str, Any]]) -> TransactionCreate:
    return parse_model(TransactionCreate, raw, "transaction")


class RequestValidator:
    """
    Semantic checks that need the caller's data.

    Verifies that ids referenced by a request belong to the caller.
    """

    def __init__(self, storage: FinanceStorageInterface):
        self._storage = storage

    async def validate_report_scope(
        self,
        user_id: UUID,
        request: ReportRequest,
    ) -> list[ValidationIssue]:
        issues = []
        if request.category_ids:
            categories = await self._storage.list_categories(user_id)
            issues += check_ownership(
                "categoryIds", request.category_ids, (c.id for c in categories)
            )
        if request.goal_ids:
            goals = await self._storage.list_goals(user_id)
            issues += check_ownership(
                "goalIds", request.goal_ids, (g.id for g in goals)
            )
        if request.profile_ids:
            profiles = await self._storage.list_profiles(user_id)
            issues += check_ownership(
                "profileIds", request.profile_ids, (p.id for p in profiles)
            )
        if issues:
            raise ValidationError("Report references unknown ids", issues=issues)
        return issues

    async def validate_transaction_refs(
        self,
        user_id: UUID,
        payload: TransactionCreate,
    ) -> list[ValidationIssue]:
        """
        Accounts, category and profile on a new transaction must be the
        caller's, and the category must fit the transaction type.
        """
        accounts = {a.id for a in await self._storage.list_accounts(user_id)}
        issues = []
        for field, value in (
            ("accountId", payload.account_id),
            ("fromAccountId", payload.from_account_id),
            ("toAccountId", payload.to_account_id),
        ):
            if value is not None:
                issues += check_ownership(field, [value], accounts)

        if payload.category_id is not None:
            categories = {
                c.id: c for c in await self._storage.list_categories(user_id)
            }
            category = categories.get(payload.category_id)
            if category is None:
                issues += check_ownership("categoryId", [payload.category_id], categories)
            else:
                issues += check_category_type(category, payload.type)
        if payload.profile_id is not None:
            profiles = await self._storage.list_profiles(user_id)
            issues += check_ownership(
                "profileId", [payload.profile_id], (p.id for p in profiles)
            )
        if issues:
            raise ValidationError("Invalid transaction references", issues=issues)
        return issues
