"""
Tests for sales: totals, stock movement and atomicity.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func

from database.models import Product, Sale, SaleItem
from database.schemas import SaleItemInput
from main import app
from services.stock_service import StockService


def stock(session, product_id):
    session.expire_all()
    return session.get(Product, product_id).quantity


def count(session, model):
    return session.exec(select(func.count(model.id))).one()


class TestCreateSale:
    def test_total_is_items_plus_tax_minus_discount(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "customer_id": shop["customer"].id,
            "items": [
                {"product_id": shop["rice"].id, "quantity": 2, "price": 10.0},
                {"product_id": shop["soap"].id, "quantity": 1, "price": 5.5},
            ],
            "tax": 2.0,
            "discount": 1.5,
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["total"] == pytest.approx(26.0)
        assert [i["total"] for i in data["items"]] == [20.0, 5.5]
        assert data["payment_method"] == "Cash"
        assert data["customer"]["name"] == "Jane Doe"

    def test_stock_is_decremented(self, client, user_headers, session, shop):
        client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["rice"].id, "quantity": 3}],
        })
        assert stock(session, shop["rice"].id) == 17

    def test_price_defaults_to_sell_price(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["soap"].id, "quantity": 2}],
        })

        item = response.json()["data"]["items"][0]
        assert item["price"] == 5.5
        assert item["total"] == 11.0

    def test_line_totals_are_rounded(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["rice"].id, "quantity": 3, "price": 0.1}],
        })

        data = response.json()["data"]
        assert data["items"][0]["total"] == 0.3
        assert data["total"] == 0.3

    def test_empty_items(self, client, user_headers, session, shop):
        response = client.post("/api/sales", headers=user_headers, json={"items": []})

        assert response.status_code == 400
        assert count(session, Sale) == 0
        assert count(session, SaleItem) == 0

    def test_insufficient_stock_changes_nothing(self, client, user_headers, session, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [
                {"product_id": shop["rice"].id, "quantity": 1},
                {"product_id": shop["soap"].id, "quantity": 6},
            ],
        })

        assert response.status_code == 400
        assert "Insufficient stock" in response.json()["message"]
        assert stock(session, shop["rice"].id) == 20
        assert stock(session, shop["soap"].id) == 5
        assert count(session, Sale) == 0

    def test_repeated_lines_are_checked_together(self, client, user_headers, session, shop):
        """Two lines of 3 soaps each exceed a stock of 5."""
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [
                {"product_id": shop["soap"].id, "quantity": 3},
                {"product_id": shop["soap"].id, "quantity": 3},
            ],
        })

        assert response.status_code == 400
        assert stock(session, shop["soap"].id) == 5

    def test_unknown_product(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": 999, "quantity": 1}],
        })
        assert response.status_code == 400

    def test_unknown_customer(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "customer_id": 999, "items": [{"product_id": shop["rice"].id, "quantity": 1}],
        })
        assert response.status_code == 404

    def test_zero_quantity(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["rice"].id, "quantity": 0}],
        })
        assert response.status_code == 400

    def test_discount_larger_than_sale(self, client, user_headers, session, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["soap"].id, "quantity": 1}], "discount": 100,
        })

        assert response.status_code == 400
        assert stock(session, shop["soap"].id) == 5

    def test_failed_commit_rolls_back(self, client, session, user_headers, shop, monkeypatch):
        """A database failure mid-sale leaves stock and sales untouched."""
        def broken_commit():
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(session, "commit", broken_commit)
        failing_client = TestClient(app, raise_server_exceptions=False)
        response = failing_client.post("/api/sales", headers=user_headers, json={
            "items": [{"product_id": shop["rice"].id, "quantity": 4}],
        })
        monkeypatch.undo()

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert stock(session, shop["rice"].id) == 20
        assert count(session, Sale) == 0


class TestSaleLifecycle:
    @pytest.fixture
    def sale(self, client, user_headers, shop):
        response = client.post("/api/sales", headers=user_headers, json={
            "customer_id": shop["customer"].id,
            "items": [
                {"product_id": shop["rice"].id, "quantity": 2},
                {"product_id": shop["soap"].id, "quantity": 1},
            ],
        })
        return response.json()["data"]

    def test_get_sale(self, client, user_headers, sale):
        response = client.get(f"/api/sales/{sale['id']}", headers=user_headers)

        assert response.status_code == 200
        assert len(response.json()["data"]["items"]) == 2
        assert response.json()["data"]["items"][0]["product"]["name"] == "Rice 1kg"

    def test_list_filters(self, client, user_headers, shop, sale):
        mine = client.get(f"/api/sales?customer_id={shop['customer'].id}", headers=user_headers).json()
        card = client.get("/api/sales?payment_method=Card", headers=user_headers).json()

        assert mine["total"] == 1
        assert card["total"] == 0

    def test_update_recomputes_total(self, client, user_headers, sale):
        response = client.put(f"/api/sales/{sale['id']}", headers=user_headers, json={
            "tax": 3.0, "discount": 0.5, "payment_method": "Card",
        })

        data = response.json()["data"]
        assert data["total"] == pytest.approx(25.5 + 3.0 - 0.5)
        assert data["payment_method"] == "Card"

    def test_update_rejects_negative_total(self, client, user_headers, sale):
        response = client.put(f"/api/sales/{sale['id']}", headers=user_headers, json={"discount": 1000})
        assert response.status_code == 400

    def test_delete_restores_stock_and_items(self, client, user_headers, session, shop, sale):
        assert stock(session, shop["rice"].id) == 18

        response = client.delete(f"/api/sales/{sale['id']}", headers=user_headers)

        assert response.status_code == 200
        assert stock(session, shop["rice"].id) == 20
        assert stock(session, shop["soap"].id) == 5
        assert count(session, Sale) == 0
        assert count(session, SaleItem) == 0

    def test_delete_missing_sale(self, client, user_headers):
        assert client.delete("/api/sales/999", headers=user_headers).status_code == 404

    def test_sales_report(self, client, user_headers, sale):
        summary = client.get("/api/sales/report", headers=user_headers).json()["data"]["summary"]

        assert summary["total_sales"] == 1
        assert summary["total_revenue"] == 25.5
        assert summary["total_items_sold"] == 3
        assert summary["total_profit"] == pytest.approx(2 * (10.0 - 6.0) + (5.5 - 1.0))


class TestConcurrentTills:
    def test_deleting_a_sale_keeps_a_concurrent_sale(self, session, shop):
        """Restoring stock adds to the current row instead of writing back a stale count."""
        service = StockService()
        rice_id = shop["rice"].id
        sale = service.process_sale(session, [SaleItemInput(product_id=rice_id, quantity=2)])
        assert session.get(Product, rice_id).quantity == 18

        with Session(session.get_bind()) as other_till:
            service.process_sale(other_till, [SaleItemInput(product_id=rice_id, quantity=3)])

        service.delete_sale(session, sale)
        assert stock(session, rice_id) == 17

    def test_products_are_locked_in_id_order(self, session, shop, monkeypatch):
        service = StockService()
        real_lock = service.lock_product
        locked = []

        def recording_lock(s, product_id):
            locked.append(product_id)
            return real_lock(s, product_id)

        monkeypatch.setattr(service, "lock_product", recording_lock)
        ids = sorted([shop["rice"].id, shop["soap"].id], reverse=True)
        service.process_sale(session, [SaleItemInput(product_id=i, quantity=1) for i in ids])

        assert locked == sorted(ids)
