"""
Tests for report generation and rendering.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from aqsha.audit import AuditLogger
from aqsha.config import AppSettings
from aqsha.errors import UpstreamError, ValidationError
from aqsha.models.audit import AuditEventType
from aqsha.models.finance import DateRange, GoalStatus
from aqsha.models.report import (
    IncomeVsExpensesReport,
    ReportFormat,
    ReportRequest,
    ReportType,
)
from aqsha.queries import StatisticsAggregator
from aqsha.reports import ReportGenerator, parse_report, render_report
from aqsha.reports.generator import months_between, percent
from aqsha.reports.renderers import flatten, unflatten
from aqsha.services.publishing import ReportPublishError

from conftest import FakePublisher


Q1 = {"start_date": date(2023, 1, 1), "end_date": date(2023, 3, 31)}


def generator_for(dataset, publisher=None, **overrides):
    settings = AppSettings(_env_file=None, **overrides)
    return ReportGenerator(dataset.storage, publisher=publisher, settings=settings)


class TestHelpers:

    def test_percent_rounds_to_cents(self):
        assert percent(Decimal("800"), Decimal("1100")) == Decimal("72.73")

    def test_percent_of_zero(self):
        assert percent(Decimal("5"), Decimal("0")) == Decimal("0.00")

    def test_months_between_crosses_year(self):
        assert months_between(date(2022, 11, 20), date(2023, 2, 1)) == [
            "2022-11", "2022-12", "2023-01", "2023-02",
        ]

    def test_flatten_and_unflatten(self):
        data = {"a": {"b": [{"c": "1"}, {"c": "2"}]}, "d": None, "e": True}

        pairs = flatten(data)

        assert pairs == [("a.b.0.c", "1"), ("a.b.1.c", "2"), ("e", "true")]
        assert unflatten(pairs) == {"a": {"b": [{"c": "1"}, {"c": "2"}]}, "e": "true"}


class TestReportTypes:

    @pytest.mark.asyncio
    async def test_monthly_spending(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.MONTHLY_SPENDING, **Q1),
        )

        data = report.data
        assert data.report_type == "MONTHLY_SPENDING"
        assert data.total_spending == Decimal("1100")
        assert [(c.category_name, c.amount, c.percentage) for c in data.categories] == [
            ("Rent", Decimal("800"), Decimal("72.73")),
            ("Groceries", Decimal("200"), Decimal("18.18")),
            ("Utilities", Decimal("100"), Decimal("9.09")),
        ]

    @pytest.mark.asyncio
    async def test_income_vs_expenses(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.INCOME_VS_EXPENSES, **Q1),
        )

        data = report.data
        assert data.total_income == Decimal("3500")
        assert data.total_expenses == Decimal("1100")
        assert data.net_savings == Decimal("2400")
        assert data.savings_rate == Decimal("68.57")
        assert [(m.month, m.income, m.expenses) for m in data.months] == [
            ("2023-01", Decimal("1000"), Decimal("200")),
            ("2023-02", Decimal("500"), Decimal("800")),
            ("2023-03", Decimal("2000"), Decimal("100")),
        ]

    @pytest.mark.asyncio
    async def test_cash_flow(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.CASH_FLOW, **Q1),
        )

        data = report.data
        assert data.total_accounts == 2
        assert data.total_balance == Decimal("2550")
        assert data.total_transfers == Decimal("500")
        assert data.net_flow == Decimal("2400")
        assert len(data.days) == 7
        assert data.days[0].date == date(2023, 1, 5)
        transfer_day = next(d for d in data.days if d.date == date(2023, 3, 15))
        assert transfer_day.transfers == Decimal("500")
        assert transfer_day.net_flow == Decimal("0")

    @pytest.mark.asyncio
    async def test_goal_progress(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.GOAL_PROGRESS),
            today=date(2023, 4, 1),
        )

        data = report.data
        assert [g.title for g in data.goals] == ["Laptop", "Vacation", "Emergency fund"]
        assert data.total_goals == 3
        assert data.goals_on_track == 2
        assert data.goals_behind == 1

        laptop, vacation, emergency = data.goals
        assert laptop.is_on_track is False
        assert laptop.days_remaining == 29
        assert vacation.is_on_track is True
        assert vacation.percent_complete == Decimal("50.00")
        assert vacation.required_daily_saving == (Decimal("600") / 274).quantize(Decimal("0.01"))
        assert emergency.status == GoalStatus.COMPLETED
        assert emergency.required_daily_saving is None

    @pytest.mark.asyncio
    async def test_goal_ids_narrow_report(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(
                type=ReportType.GOAL_PROGRESS,
                goal_ids=[dataset.goals["vacation"].id],
            ),
            today=date(2023, 4, 1),
        )

        assert [g.title for g in report.data.goals] == ["Vacation"]

    @pytest.mark.asyncio
    async def test_category_trends(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.CATEGORY_TRENDS, **Q1),
        )

        data = report.data
        assert [m.month for m in data.months] == ["2023-01", "2023-02", "2023-03"]
        salary = next(t for t in data.categories if t.category_name == "Salary")
        assert salary.total == Decimal("3000")
        assert [p.amount for p in salary.series] == [
            Decimal("1000"), Decimal("0"), Decimal("2000"),
        ]

    @pytest.mark.asyncio
    async def test_category_ids_filter(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(
                type=ReportType.MONTHLY_SPENDING,
                category_ids=[dataset.categories["rent"].id],
                **Q1,
            ),
        )

        assert report.data.total_spending == Decimal("800")

    @pytest.mark.asyncio
    async def test_default_period(self, dataset):
        report = await generator_for(dataset, report_default_days=30).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.INCOME_VS_EXPENSES),
            today=date(2023, 3, 31),
        )

        assert report.data.period.start_date == date(2023, 3, 1)
        assert report.data.period.end_date == date(2023, 3, 31)
        assert report.data.total_income == Decimal("2000")


class TestReportValidation:

    @pytest.mark.asyncio
    async def test_foreign_category_rejected(self, dataset):
        with pytest.raises(ValidationError) as exc_info:
            await generator_for(dataset).generate(
                dataset.alice.id,
                ReportRequest(
                    type=ReportType.MONTHLY_SPENDING,
                    category_ids=[dataset.bob_category.id],
                ),
            )
        assert exc_info.value.issues[0].field == "categoryIds"

    @pytest.mark.asyncio
    async def test_unknown_goal_rejected(self, dataset):
        with pytest.raises(ValidationError):
            await generator_for(dataset).generate(
                dataset.alice.id,
                ReportRequest(type=ReportType.GOAL_PROGRESS, goal_ids=[uuid4()]),
            )

    @pytest.mark.asyncio
    async def test_inverted_period_rejected(self, dataset):
        with pytest.raises(ValidationError):
            await generator_for(dataset).generate(
                dataset.alice.id,
                ReportRequest(
                    type=ReportType.CASH_FLOW,
                    start_date=date(2023, 3, 1),
                    end_date=date(2023, 1, 1),
                ),
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("report_type", list(ReportType))
    async def test_future_start_without_end_rejected(self, dataset, report_type):
        with pytest.raises(ValidationError, match="Invalid report period") as exc_info:
            await generator_for(dataset).generate(
                dataset.alice.id,
                ReportRequest(type=report_type, start_date=date(2023, 6, 1)),
                today=date(2023, 4, 1),
            )
        assert exc_info.value.issues[0].issue_type == "inverted_range"


class TestRendering:
    """Every format parses back to the same payload."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("report_type", list(ReportType))
    @pytest.mark.parametrize("report_format", list(ReportFormat))
    async def test_round_trip(self, dataset, report_type, report_format):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=report_type, format=report_format, **Q1),
            today=date(2023, 4, 1),
        )

        rendered = render_report(report.data, report_format)
        parsed = parse_report(rendered.content, report_format)

        assert type(parsed) is type(report.data)
        assert parsed.model_dump() == report.data.model_dump()

    @pytest.mark.asyncio
    async def test_structured_report_matches_aggregate(self, dataset):
        report = await generator_for(dataset).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.INCOME_VS_EXPENSES, **Q1),
        )
        parsed = parse_report(render_report(report.data, ReportFormat.JSON).content, "JSON")

        stats = await StatisticsAggregator(dataset.storage).aggregate(
            dataset.alice.id, DateRange(**Q1)
        )
        assert isinstance(parsed, IncomeVsExpensesReport)
        assert parsed.total_income == stats.total_income
        assert parsed.total_expenses == stats.total_expense
        assert parsed.net_savings == stats.net

    def test_csv_is_field_value_listing(self):
        payload = IncomeVsExpensesReport(
            period={"start_date": date(2023, 1, 1), "end_date": date(2023, 1, 31)},
            total_income=Decimal("1000"),
        )

        text = render_report(payload, ReportFormat.CSV).content.decode("utf-8")

        lines = text.splitlines()
        assert lines[0] == "field,value"
        assert "reportType,INCOME_VS_EXPENSES" in lines
        assert "period.startDate,2023-01-01" in lines
        assert "totalIncome,1000" in lines

    def test_pdf_is_a_pdf(self):
        payload = IncomeVsExpensesReport(
            period={"start_date": date(2023, 1, 1), "end_date": date(2023, 1, 31)},
        )

        rendered = render_report(payload, ReportFormat.PDF)

        assert rendered.content.startswith(b"%PDF")
        assert rendered.media_type == "application/pdf"

    def test_garbage_does_not_parse(self):
        with pytest.raises(ValidationError):
            parse_report(b'{"reportType": "NOPE"}', ReportFormat.JSON)


class TestPublishing:

    @pytest.mark.asyncio
    async def test_csv_published_when_enabled(self, dataset):
        publisher = FakePublisher()
        report = await generator_for(dataset, publisher, publish_reports=True).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.CASH_FLOW, format=ReportFormat.CSV, **Q1),
        )

        assert report.url.endswith(f"{report.id}.csv")
        assert publisher.uploads[0][3] == "csv"

    @pytest.mark.asyncio
    async def test_json_never_published(self, dataset):
        publisher = FakePublisher()
        report = await generator_for(dataset, publisher, publish_reports=True).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.CASH_FLOW, **Q1),
        )

        assert report.url is None
        assert publisher.uploads == []

    @pytest.mark.asyncio
    async def test_publishing_off_by_default(self, dataset):
        publisher = FakePublisher()
        report = await generator_for(dataset, publisher).generate(
            dataset.alice.id,
            ReportRequest(type=ReportType.CASH_FLOW, format=ReportFormat.PDF, **Q1),
        )

        assert report.url is None
        assert publisher.uploads == []

    @pytest.mark.asyncio
    async def test_publish_failure_is_upstream_error(self, dataset):
        class FailingPublisher(FakePublisher):
            async def publish(self, user_id, report_id, content, extension):
                raise ReportPublishError("quota exceeded")

        generator = ReportGenerator(
            dataset.storage,
            publisher=FailingPublisher(),
            audit_logger=AuditLogger(dataset.storage),
            settings=AppSettings(_env_file=None, publish_reports=True),
        )

        with pytest.raises(UpstreamError, match="quota exceeded"):
            await generator.generate(
                dataset.alice.id,
                ReportRequest(type=ReportType.CASH_FLOW, format=ReportFormat.CSV, **Q1),
            )

        events = await dataset.storage.get_recent_events()
        assert events[0].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert events[0].details == {"service": "cloudinary"}
