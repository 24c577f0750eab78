"""
HTTP surface tests.

The app is built over a seeded in-memory store and a fake gateway, and
driven through FastAPI's TestClient.
"""

import asyncio
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from aqsha.config import AppSettings
from aqsha.errors import UpstreamError
from aqsha.models.report import ReportFormat
from aqsha.orchestrator import create_app_components
from aqsha.reports import parse_report
from aqsha.services.storage import InMemoryStorage

from conftest import ALICE_TOKEN, FakeGateway, seed_dataset


AUTH = {"Authorization": f"Bearer {ALICE_TOKEN}"}


@pytest.fixture
def seeded():
    return asyncio.run(seed_dataset(InMemoryStorage()))


@pytest.fixture
def api_gateway():
    return FakeGateway(replies=["Your net for Q1 is 2400."])


@pytest.fixture
def client(seeded, api_gateway):
    components = create_app_components(
        storage=seeded.storage,
        gateway=api_gateway,
        settings=AppSettings(_env_file=None),
    )
    return TestClient(create_app(components))


class TestAuth:

    def test_health_needs_no_token(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_token(self, client):
        response = client.get("/transactions")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_unknown_token(self, client):
        response = client.get("/transactions", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401


class TestTransactionEndpoints:

    def test_january_query(self, client):
        response = client.get(
            "/transactions",
            params={"startDate": "2023-01-01", "endDate": "2023-01-31"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert [t["description"] for t in response.json()] == [
            "Salary January",
            "Grocery store",
        ]

    def test_min_amount_query(self, client):
        response = client.get("/transactions", params={"minAmount": "500"}, headers=AUTH)

        assert response.status_code == 200
        assert len(response.json()) == 5

    def test_search_never_leaks(self, client, seeded):
        response = client.get("/transactions", params={"search": "salary"}, headers=AUTH)

        ids = {t["id"] for t in response.json()}
        assert str(seeded.bob_transaction.id) not in ids
        assert len(ids) == 1

    def test_inverted_range_is_400(self, client):
        response = client.get(
            "/transactions",
            params={"startDate": "2023-02-01", "endDate": "2023-01-01"},
            headers=AUTH,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["issues"][0]["issue_type"] == "inverted_range"

    def test_unknown_type_is_400(self, client):
        response = client.get("/transactions", params={"type": "gift"}, headers=AUTH)

        assert response.status_code == 400

    def test_statistics(self, client):
        response = client.get("/transactions/statistics", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert Decimal(str(body["totalIncome"])) == Decimal("3500")
        assert Decimal(str(body["totalExpense"])) == Decimal("1100")
        assert Decimal(str(body["net"])) == Decimal("2400")

    def test_statistics_by_category(self, client):
        response = client.get(
            "/transactions/statistics",
            params={"byCategory": "true"},
            headers=AUTH,
        )

        names = [c["categoryName"] for c in response.json()["categories"]]
        assert names[0] == "Salary"

    def test_other_users_transaction_is_404(self, client, seeded):
        response = client.get(f"/transactions/{seeded.bob_transaction.id}", headers=AUTH)

        assert response.status_code == 404

    def test_bad_id_is_400(self, client):
        response = client.get("/transactions/not-an-id", headers=AUTH)

        assert response.status_code == 400

    def test_create_and_delete(self, client, seeded):
        created = client.post("/transactions", headers=AUTH, json={
            "type": "expense",
            "amount": "15.00",
            "date": "2023-04-01",
            "accountId": str(seeded.accounts["card"].id),
            "categoryId": str(seeded.categories["groceries"].id),
        })
        assert created.status_code == 201
        transaction_id = created.json()["id"]

        deleted = client.delete(f"/transactions/{transaction_id}", headers=AUTH)
        assert deleted.status_code == 204

        again = client.delete(f"/transactions/{transaction_id}", headers=AUTH)
        assert again.status_code == 404

    def test_income_under_expense_category_is_400(self, client, seeded):
        response = client.post("/transactions", headers=AUTH, json={
            "type": "income",
            "amount": "10.00",
            "date": "2023-04-01",
            "accountId": str(seeded.accounts["card"].id),
            "categoryId": str(seeded.categories["rent"].id),
        })

        assert response.status_code == 400
        assert response.json()["issues"][0]["issue_type"] == "category_type_mismatch"


class TestAssistantEndpoints:

    def test_chat_round_trip(self, client):
        response = client.post("/ai-assistant/chat", headers=AUTH, json={"message": "Summary?"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Your net for Q1 is 2400."
        context_id = body["contextId"]

        detail = client.get(f"/ai-assistant/conversations/{context_id}", headers=AUTH)
        assert [m["role"] for m in detail.json()["messages"]] == ["user", "assistant"]

    def test_empty_message_is_400(self, client):
        response = client.post("/ai-assistant/chat", headers=AUTH, json={"message": "  "})

        assert response.status_code == 400

    def test_gateway_failure_is_502_and_message_kept(self, client, api_gateway):
        api_gateway.error = UpstreamError("provider down")

        response = client.post("/ai-assistant/chat", headers=AUTH, json={"message": "Help"})
        assert response.status_code == 502
        assert response.json()["error"] == "upstream_error"

        listing = client.get("/ai-assistant/conversations", headers=AUTH).json()
        assert listing["total"] == 1
        conversation_id = listing["conversations"][0]["id"]

        detail = client.get(f"/ai-assistant/conversations/{conversation_id}", headers=AUTH)
        assert [m["content"] for m in detail.json()["messages"]] == ["Help"]

        log = client.get("/ai-assistant/requests", headers=AUTH).json()
        assert log[0]["success"] is False

    def test_unknown_conversation_is_404(self, client, seeded):
        response = client.get(
            f"/ai-assistant/conversations/{seeded.bob.id}", headers=AUTH
        )

        assert response.status_code == 404


class TestReportEndpoint:

    def test_structured_report(self, client):
        response = client.post("/ai-assistant/reports", headers=AUTH, json={
            "type": "INCOME_VS_EXPENSES",
            "startDate": "2023-01-01",
            "endDate": "2023-03-31",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["format"] == "JSON"
        assert body["data"]["reportType"] == "INCOME_VS_EXPENSES"
        assert Decimal(str(body["data"]["totalIncome"])) == Decimal("3500")

    def test_csv_report_body(self, client):
        response = client.post("/ai-assistant/reports", headers=AUTH, json={
            "type": "MONTHLY_SPENDING",
            "startDate": "2023-01-01",
            "endDate": "2023-03-31",
            "format": "CSV",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        payload = parse_report(response.content, ReportFormat.CSV)
        assert payload.total_spending == Decimal("1100")

    def test_unknown_report_type_is_400(self, client):
        response = client.post("/ai-assistant/reports", headers=AUTH, json={"type": "TAXES"})

        assert response.status_code == 400

    def test_foreign_category_is_400(self, client, seeded):
        response = client.post("/ai-assistant/reports", headers=AUTH, json={
            "type": "MONTHLY_SPENDING",
            "categoryIds": [str(seeded.bob_category.id)],
        })

        assert response.status_code == 400
        assert response.json()["issues"][0]["issue_type"] == "not_owned"
