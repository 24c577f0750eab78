"""
Report Models

Each report type has its own payload model tagged with a literal
`report_type`. ReportPayload is the union of all of them.

DESIGN DECISION: Payloads hold only JSON-friendly scalars (Decimal,
date, UUID, str, int, bool) in nested objects and lists. That keeps
every rendering (JSON, CSV, PDF) reversible into the same model.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import Field

from aqsha.models.finance import AqshaModel, GoalStatus, TransactionType


class ReportType(str, Enum):
    MONTHLY_SPENDING = "MONTHLY_SPENDING"
    INCOME_VS_EXPENSES = "INCOME_VS_EXPENSES"
    CASH_FLOW = "CASH_FLOW"
    GOAL_PROGRESS = "GOAL_PROGRESS"
    CATEGORY_TRENDS = "CATEGORY_TRENDS"


class ReportFormat(str, Enum):
    JSON = "JSON"    # Structured data
    CSV = "CSV"      # Delimited text
    PDF = "PDF"      # Printable document


class ReportRequest(AqshaModel):
    """What the caller asks for. Dates default to the last 30 days."""

    type: ReportType
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_ids: list[UUID] = Field(default_factory=list)
    goal_ids: list[UUID] = Field(default_factory=list)
    profile_ids: list[UUID] = Field(default_factory=list)
    format: ReportFormat = ReportFormat.JSON


class ReportPeriod(AqshaModel):
    start_date: date
    end_date: date


# =============================================================================
# MONTHLY_SPENDING
# =============================================================================

class SpendingCategory(AqshaModel):
    category_id: Optional[UUID] = None
    category_name: str
    amount: Decimal
    percentage: Decimal
    count: int = 0


class MonthlySpendingReport(AqshaModel):
    report_type: Literal["MONTHLY_SPENDING"] = "MONTHLY_SPENDING"
    period: ReportPeriod
    total_spending: Decimal = Decimal("0")
    categories: list[SpendingCategory] = Field(default_factory=list)


# =============================================================================
# INCOME_VS_EXPENSES
# =============================================================================

class MonthlyIncomeExpense(AqshaModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    net: Decimal = Decimal("0")


class IncomeVsExpensesReport(AqshaModel):
    report_type: Literal["INCOME_VS_EXPENSES"] = "INCOME_VS_EXPENSES"
    period: ReportPeriod
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_savings: Decimal = Decimal("0")
    savings_rate: Decimal = Field(default=Decimal("0"), description="Percent of income saved")
    months: list[MonthlyIncomeExpense] = Field(default_factory=list)


# =============================================================================
# CASH_FLOW
# =============================================================================

class DailyCashFlow(AqshaModel):
    date: date
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    transfers: Decimal = Decimal("0")
    net_flow: Decimal = Decimal("0")


class CashFlowReport(AqshaModel):
    report_type: Literal["CASH_FLOW"] = "CASH_FLOW"
    period: ReportPeriod
    total_accounts: int = 0
    total_balance: Decimal = Decimal("0")
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    total_transfers: Decimal = Decimal("0")
    net_flow: Decimal = Decimal("0")
    days: list[DailyCashFlow] = Field(default_factory=list)


# =============================================================================
# GOAL_PROGRESS
# =============================================================================

class GoalProgress(AqshaModel):
    goal_id: UUID
    title: str
    target: Decimal
    saved: Decimal
    remaining: Decimal
    percent_complete: Decimal
    status: GoalStatus
    deadline: Optional[date] = None
    days_remaining: Optional[int] = None
    is_on_track: bool = True
    required_daily_saving: Optional[Decimal] = None
    required_monthly_saving: Optional[Decimal] = None


class GoalProgressReport(AqshaModel):
    report_type: Literal["GOAL_PROGRESS"] = "GOAL_PROGRESS"
    as_of: date
    total_goals: int = 0
    goals_on_track: int = 0
    goals_behind: int = 0
    total_target: Decimal = Decimal("0")
    total_saved: Decimal = Decimal("0")
    goals: list[GoalProgress] = Field(default_factory=list)


# =============================================================================
# CATEGORY_TRENDS
# =============================================================================

class CategoryAmount(AqshaModel):
    category_id: Optional[UUID] = None
    category_name: str
    amount: Decimal


class MonthlyCategoryTotals(AqshaModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    categories: list[CategoryAmount] = Field(default_factory=list)


class MonthAmount(AqshaModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    amount: Decimal


class CategoryTrend(AqshaModel):
    category_id: Optional[UUID] = None
    category_name: str
    type: TransactionType
    total: Decimal = Decimal("0")
    series: list[MonthAmount] = Field(default_factory=list)


class CategoryTrendsReport(AqshaModel):
    report_type: Literal["CATEGORY_TRENDS"] = "CATEGORY_TRENDS"
    period: ReportPeriod
    months: list[MonthlyCategoryTotals] = Field(default_factory=list)
    categories: list[CategoryTrend] = Field(default_factory=list)


ReportPayload = Union[
    MonthlySpendingReport,
    IncomeVsExpensesReport,
    CashFlowReport,
    GoalProgressReport,
    CategoryTrendsReport,
]

# Tag -> payload model, used when parsing rendered reports back
REPORT_PAYLOADS: dict[ReportType, type] = {
    ReportType.MONTHLY_SPENDING: MonthlySpendingReport,
    ReportType.INCOME_VS_EXPENSES: IncomeVsExpensesReport,
    ReportType.CASH_FLOW: CashFlowReport,
    ReportType.GOAL_PROGRESS: GoalProgressReport,
    ReportType.CATEGORY_TRENDS: CategoryTrendsReport,
}


class ReportResponse(AqshaModel):
    """A generated report with its structured payload."""

    id: UUID = Field(default_factory=uuid4)
    type: ReportType
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    format: ReportFormat = ReportFormat.JSON
    data: ReportPayload
    url: Optional[str] = None
