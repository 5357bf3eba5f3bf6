"""
Tests for expense tracking.
"""
from datetime import datetime

import pytest

from database.models import Expense


@pytest.fixture
def expenses(client, user_headers):
    rows = [
        {"description": "Shop rent", "category": "Rent", "amount": 500, "date": "2026-03-01T09:00:00"},
        {"description": "Power bill", "category": "Utilities", "amount": 80.25, "date": "2026-03-05T09:00:00"},
        {"description": "Water bill", "category": "Utilities", "amount": 19.75, "date": "2026-04-02T09:00:00"},
    ]
    return [client.post("/api/expenses", headers=user_headers, json=row).json()["data"] for row in rows]


class TestExpenses:
    def test_create_expense(self, client, user_headers):
        response = client.post("/api/expenses", headers=user_headers, json={
            "description": "Receipt paper", "category": "Supplies", "amount": 12.5,
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["amount"] == 12.5
        assert data["date"]

    def test_required_fields(self, client, user_headers):
        missing = client.post("/api/expenses", headers=user_headers, json={"description": "x", "category": "y"})
        negative = client.post("/api/expenses", headers=user_headers, json={"description": "x", "category": "y", "amount": -5})

        assert missing.status_code == 400
        assert negative.status_code == 400

    def test_list_filters(self, client, user_headers, expenses):
        utilities = client.get("/api/expenses?category=Utilities", headers=user_headers).json()
        march = client.get(
            "/api/expenses?start_date=2026-03-01T00:00:00&end_date=2026-03-31T23:59:59", headers=user_headers
        ).json()

        assert utilities["total"] == 2
        assert march["total"] == 2
        assert march["data"][0]["description"] == "Power bill"

    def test_update_and_delete(self, client, user_headers, expenses):
        expense_id = expenses[0]["id"]

        updated = client.put(f"/api/expenses/{expense_id}", headers=user_headers, json={"amount": 550})
        assert updated.json()["data"]["amount"] == 550
        assert updated.json()["data"]["description"] == "Shop rent"

        assert client.delete(f"/api/expenses/{expense_id}", headers=user_headers).status_code == 200
        assert client.get(f"/api/expenses/{expense_id}", headers=user_headers).status_code == 404

    def test_report(self, client, user_headers, expenses):
        data = client.get(
            "/api/expenses/report?start_date=2026-01-01T00:00:00&end_date=2026-12-31T00:00:00", headers=user_headers
        ).json()["data"]

        assert data["summary"]["total_expenses"] == 600.0
        assert data["summary"]["transaction_count"] == 3
        assert data["categories"] == {"Rent": 500.0, "Utilities": 100.0}
        assert data["monthly_trends"]["2026-03"]["count"] == 2
        assert len(data["expenses"]) == 3

    def test_monthly_category_totals_are_rounded(self, client, user_headers):
        for amount in (0.1, 0.2):
            client.post("/api/expenses", headers=user_headers, json={
                "description": "Tape", "category": "Supplies", "amount": amount, "date": "2026-05-03T10:00:00",
            })

        data = client.get(
            "/api/expenses/report?start_date=2026-05-01T00:00:00&end_date=2026-05-31T00:00:00", headers=user_headers
        ).json()["data"]

        assert data["monthly_trends"]["2026-05"]["categories"] == {"Supplies": 0.3}
        assert data["categories"] == {"Supplies": 0.3}

    def test_naive_timestamps_are_stored(self, session):
        """Dates are kept in server local time without tzinfo."""
        expense = Expense(description="Float", category="Cash", amount=20, date=datetime(2026, 5, 3, 8, 30))
        session.add(expense)
        session.commit()
        session.refresh(expense)

        assert expense.date == datetime(2026, 5, 3, 8, 30)
        assert expense.created_at.tzinfo is None
