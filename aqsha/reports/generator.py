"""
Report Generator

Builds one of five structured reports over a period of the user's data.

DESIGN DECISION: Report builders work on plain lists fetched once per
request (transactions in the period, accounts, goals, categories) and
reuse summarize_transactions for every income/expense total, so report
numbers always agree with the statistics endpoint.

When dates are omitted the period is the last report_default_days days
ending today.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from aqsha.audit import AuditLogger
from aqsha.config import AppSettings, get_settings
from aqsha.errors import UpstreamError, ValidationError
from aqsha.models.finance import (
    Category,
    Goal,
    GoalStatus,
    Transaction,
    TransactionCriteria,
    TransactionType,
    ValidationIssue,
)
from aqsha.models.report import (
    CashFlowReport,
    CategoryAmount,
    CategoryTrend,
    CategoryTrendsReport,
    DailyCashFlow,
    GoalProgress,
    GoalProgressReport,
    IncomeVsExpensesReport,
    MonthAmount,
    MonthlyCategoryTotals,
    MonthlyIncomeExpense,
    MonthlySpendingReport,
    ReportFormat,
    ReportPayload,
    ReportPeriod,
    ReportRequest,
    ReportResponse,
    ReportType,
    SpendingCategory,
)
from aqsha.queries.executor import TransactionQueryEngine, resolve_user
from aqsha.queries.statistics import UNCATEGORIZED, summarize_transactions
from aqsha.reports.renderers import RenderedReport, render_report
from aqsha.services.publishing import CloudinaryReportPublisher, ReportPublishError
from aqsha.services.storage import FinanceStorageInterface
from aqsha.validation.validator import RequestValidator, check_date_range


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def percent(part: Decimal, whole: Decimal) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (part / whole * HUNDRED).quantize(CENT)


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def months_between(start: date, end: date) -> list[str]:
    """Every YYYY-MM from start's month through end's month."""
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


class ReportGenerator:
    """
    Dispatches a ReportRequest to the builder for its type.

    Publishing (Cloudinary) happens only for CSV/PDF and only when a
    publisher is supplied and publish_reports is enabled.
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        query_engine: Optional[TransactionQueryEngine] = None,
        validator: Optional[RequestValidator] = None,
        publisher: Optional[CloudinaryReportPublisher] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._engine = query_engine or TransactionQueryEngine(storage, self._audit)
        self._validator = validator or RequestValidator(storage)
        self._publisher = publisher
        self._settings = settings or get_settings().app

        self._builders = {
            ReportType.MONTHLY_SPENDING: self._monthly_spending,
            ReportType.INCOME_VS_EXPENSES: self._income_vs_expenses,
            ReportType.CASH_FLOW: self._cash_flow,
            ReportType.GOAL_PROGRESS: self._goal_progress,
            ReportType.CATEGORY_TRENDS: self._category_trends,
        }

    async def generate(
        self,
        user_id: UUID,
        request: ReportRequest,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ReportResponse:
        """
        Raises:
            ValidationError: Inverted period, unknown type or foreign ids
            NotFoundError: If the user does not exist
            UpstreamError: If publishing to Cloudinary fails
        """
        await resolve_user(self._storage, user_id)

        today = today or date.today()
        period = self._resolve_period(request, today)
        # Checked after defaulting: a lone future startDate inverts the period
        issues = check_date_range(period.start_date, period.end_date)
        if issues:
            raise ValidationError("Invalid report period", issues=issues)
        await self._validator.validate_report_scope(user_id, request)

        builder = self._builders.get(request.type)
        if builder is None:
            raise ValidationError(
                f"Unsupported report type: {request.type}",
                issues=[ValidationIssue(
                    field="type",
                    issue_type="invalid_value",
                    message=f"Unsupported report type: {request.type}",
                )],
            )

        payload = await builder(user_id, request, period, today, correlation_id)

        response = ReportResponse(
            type=request.type,
            format=request.format,
            data=payload,
        )
        await self._audit.log_report_generated(
            user_id=user_id,
            report_id=response.id,
            report_type=request.type.value,
            report_format=request.format.value,
            correlation_id=correlation_id,
        )

        if self._should_publish(request.format):
            rendered = self.render(response)
            try:
                response.url = await self._publisher.publish(
                    user_id=user_id,
                    report_id=response.id,
                    content=rendered.content,
                    extension=rendered.extension,
                )
            except ReportPublishError as e:
                await self._audit.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise UpstreamError(f"Report publishing failed: {e}") from e
            await self._audit.log_report_published(
                user_id=user_id,
                report_id=response.id,
                url=response.url,
                correlation_id=correlation_id,
            )
        return response

    def render(self, response: ReportResponse) -> RenderedReport:
        return render_report(response.data, response.format)

    def _should_publish(self, report_format: ReportFormat) -> bool:
        return (
            report_format != ReportFormat.JSON
            and self._publisher is not None
            and self._settings.publish_reports
        )

    def _resolve_period(self, request: ReportRequest, today: date) -> ReportPeriod:
        default_days = self._settings.report_default_days
        end = request.end_date or today
        start = request.start_date or (end - timedelta(days=default_days))
        return ReportPeriod(start_date=start, end_date=end)

    # =========================================================================
    # Data access
    # =========================================================================

    async def _transactions(
        self,
        user_id: UUID,
        request: ReportRequest,
        period: ReportPeriod,
        correlation_id: Optional[UUID],
    ) -> list[Transaction]:
        transactions = await self._engine.query(
            user_id,
            TransactionCriteria(start_date=period.start_date, end_date=period.end_date),
            correlation_id,
        )
        if request.category_ids:
            wanted = set(request.category_ids)
            transactions = [t for t in transactions if t.category_id in wanted]
        if request.profile_ids:
            wanted = set(request.profile_ids)
            transactions = [t for t in transactions if t.profile_id in wanted]
        return transactions

    async def _categories(self, user_id: UUID) -> list[Category]:
        return await self._storage.list_categories(user_id)

    # =========================================================================
    # Builders
    # =========================================================================

    async def _monthly_spending(self, user_id, request, period, today, correlation_id) -> ReportPayload:
        transactions = await self._transactions(user_id, request, period, correlation_id)
        stats = summarize_transactions(
            [t for t in transactions if t.type == TransactionType.EXPENSE],
            await self._categories(user_id),
            by_category=True,
        )
        total = stats.total_expense
        return MonthlySpendingReport(
            period=period,
            total_spending=total,
            categories=[
                SpendingCategory(
                    category_id=group.category_id,
                    category_name=group.category_name,
                    amount=group.total,
                    percentage=percent(group.total, total),
                    count=group.count,
                )
                for group in stats.categories or []
            ],
        )

    async def _income_vs_expenses(self, user_id, request, period, today, correlation_id) -> ReportPayload:
        transactions = await self._transactions(user_id, request, period, correlation_id)
        stats = summarize_transactions(transactions)

        by_month = defaultdict(list)
        for transaction in transactions:
            by_month[month_key(transaction.date)].append(transaction)

        months = []
        for month in months_between(period.start_date, period.end_date):
            month_stats = summarize_transactions(by_month.get(month, []))
            months.append(MonthlyIncomeExpense(
                month=month,
                income=month_stats.total_income,
                expenses=month_stats.total_expense,
                net=month_stats.net,
            ))

        return IncomeVsExpensesReport(
            period=period,
            total_income=stats.total_income,
            total_expenses=stats.total_expense,
            net_savings=stats.net,
            savings_rate=percent(stats.net, stats.total_income),
            months=months,
        )

    async def _cash_flow(self, user_id, request, period, today, correlation_id) -> ReportPayload:
        transactions = await self._transactions(user_id, request, period, correlation_id)
        accounts = await self._storage.list_accounts(user_id)
        if request.profile_ids:
            wanted = set(request.profile_ids)
            accounts = [a for a in accounts if a.profile_id in wanted]

        days: dict[date, DailyCashFlow] = {}
        for transaction in transactions:
            day = days.setdefault(transaction.date, DailyCashFlow(date=transaction.date))
            if transaction.type == TransactionType.INCOME:
                day.income += transaction.amount
            elif transaction.type == TransactionType.EXPENSE:
                day.expenses += transaction.amount
            elif transaction.type == TransactionType.TRANSFER:
                day.transfers += transaction.amount
        for day in days.values():
            day.net_flow = day.income - day.expenses

        rows = sorted(days.values(), key=lambda d: d.date)
        total_income = sum((d.income for d in rows), Decimal("0"))
        total_expenses = sum((d.expenses for d in rows), Decimal("0"))
        return CashFlowReport(
            period=period,
            total_accounts=len(accounts),
            total_balance=sum((a.balance for a in accounts), Decimal("0")),
            total_income=total_income,
            total_expenses=total_expenses,
            total_transfers=sum((d.transfers for d in rows), Decimal("0")),
            net_flow=total_income - total_expenses,
            days=rows,
        )

    async def _goal_progress(self, user_id, request, period, today, correlation_id) -> ReportPayload:
        goals = await self._storage.list_goals(user_id)
        if request.goal_ids:
            wanted = set(request.goal_ids)
            goals = [g for g in goals if g.id in wanted]

        progress = [self._progress_for(goal, today) for goal in goals]
        progress.sort(key=lambda p: (p.deadline is None, p.deadline or today, p.title))
        on_track = sum(1 for p in progress if p.is_on_track)
        return GoalProgressReport(
            as_of=today,
            total_goals=len(progress),
            goals_on_track=on_track,
            goals_behind=len(progress) - on_track,
            total_target=sum((g.target for g in goals), Decimal("0")),
            total_saved=sum((g.saved for g in goals), Decimal("0")),
            goals=progress,
        )

    @staticmethod
    def _progress_for(goal: Goal, today: date) -> GoalProgress:
        remaining = max(goal.target - goal.saved, Decimal("0"))
        percent_complete = percent(goal.saved, goal.target)

        days_remaining = None
        is_on_track = True
        daily = monthly = None
        if goal.deadline is not None:
            days_remaining = max((goal.deadline - today).days, 0)
            total_days = (goal.deadline - goal.created_at.date()).days
            elapsed_days = (today - goal.created_at.date()).days
            time_elapsed = percent(Decimal(elapsed_days), Decimal(total_days)) if total_days > 0 else HUNDRED
            is_on_track = goal.status == GoalStatus.COMPLETED or percent_complete >= time_elapsed
            if remaining and days_remaining:
                daily = (remaining / days_remaining).quantize(CENT)
                monthly = (remaining * 30 / days_remaining).quantize(CENT)

        return GoalProgress(
            goal_id=goal.id,
            title=goal.title,
            target=goal.target,
            saved=goal.saved,
            remaining=remaining,
            percent_complete=percent_complete,
            status=goal.status,
            deadline=goal.deadline,
            days_remaining=days_remaining,
            is_on_track=is_on_track,
            required_daily_saving=daily,
            required_monthly_saving=monthly,
        )

    async def _category_trends(self, user_id, request, period, today, correlation_id) -> ReportPayload:
        transactions = await self._transactions(user_id, request, period, correlation_id)
        categories = await self._categories(user_id)
        names = {c.id: c.name for c in categories}
        months = months_between(period.start_date, period.end_date)

        # (category_id, type) -> month -> amount
        totals: dict[tuple, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        for transaction in transactions:
            if transaction.type not in (TransactionType.INCOME, TransactionType.EXPENSE):
                continue
            key = (transaction.category_id, transaction.type)
            totals[key][month_key(transaction.date)] += transaction.amount

        trends = []
        for (category_id, tx_type), per_month in totals.items():
            trends.append(CategoryTrend(
                category_id=category_id,
                category_name=names.get(category_id, UNCATEGORIZED),
                type=tx_type,
                total=sum(per_month.values(), Decimal("0")),
                series=[
                    MonthAmount(month=month, amount=per_month.get(month, Decimal("0")))
                    for month in months
                ],
            ))
        trends.sort(key=lambda t: (-t.total, t.category_name))

        monthly_rows = []
        for month in months:
            amounts = [
                CategoryAmount(
                    category_id=trend.category_id,
                    category_name=trend.category_name,
                    amount=point.amount,
                )
                for trend in trends
                for point in trend.series
                if point.month == month and point.amount
            ]
            amounts.sort(key=lambda a: (-a.amount, a.category_name))
            monthly_rows.append(MonthlyCategoryTotals(month=month, categories=amounts))

        return CategoryTrendsReport(period=period, months=monthly_rows, categories=trends)
