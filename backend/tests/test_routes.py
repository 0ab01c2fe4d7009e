"""
API behaviour tests: status codes and response shapes for the ledger routes.
"""

import pytest

from shopledger.models import Sale, StockMovement


class TestInventoryRoutes:
    def test_create_and_fetch(self, client, db_session, manager_headers, product, shop):
        resp = client.post(
            "/api/inventory",
            json={
                "product_id": product.id,
                "shop_id": shop.id,
                "quantity": 8,
                "cost_price_cents": 250,
                "selling_price_cents": 400,
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        record = resp.get_json()["inventory"]
        assert record["quantity"] == 8
        assert record["product"]["sku"] == "P-001"

        resp = client.get(f"/api/inventory/{record['id']}", headers=manager_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["inventory"]["id"] == record["id"]
        assert [m["reason"] for m in data["recent_movements"]] == ["Initial stock"]

    def test_duplicate_pair(self, client, manager_headers, inventory, product, shop):
        resp = client.post(
            "/api/inventory",
            json={"product_id": product.id, "shop_id": shop.id},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_missing_record(self, client, manager_headers, db_session):
        resp = client.get("/api/inventory/424242", headers=manager_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Inventory record not found"

    def test_update_rejects_quantity(self, client, manager_headers, inventory):
        resp = client.put(
            f"/api/inventory/{inventory.id}",
            json={"quantity": 999},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "quantity"

    def test_update_prices(self, client, manager_headers, inventory):
        resp = client.put(
            f"/api/inventory/{inventory.id}",
            json={"selling_price_cents": 900},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        record = resp.get_json()["inventory"]
        assert record["selling_price_cents"] == 900
        assert record["quantity"] == 10

    def test_delete(self, client, manager_headers, inventory):
        resp = client.delete(f"/api/inventory/{inventory.id}", headers=manager_headers)
        assert resp.status_code == 200

        resp = client.get(f"/api/inventory/{inventory.id}", headers=manager_headers)
        assert resp.status_code == 404

    def test_list_pagination(self, client, manager_headers, inventory):
        resp = client.get("/api/inventory?page=1&limit=5", headers=manager_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["count"] == 1
        assert data["pagination"] == {
            "page": 1,
            "per_page": 5,
            "total": 1,
            "total_pages": 1,
            "has_next": False,
            "has_prev": False,
        }

    def test_low_stock(self, client, manager_headers, inventory):
        client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "OUT", "quantity": 6, "reason": "Bulk order"},
            headers=manager_headers,
        )

        resp = client.get("/api/inventory/low-stock", headers=manager_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["summary"]["low_stock_count"] == 1
        assert data["items"][0]["current_stock"] == 4


class TestMovementRoutes:
    def test_out_movement(self, client, manager_headers, inventory):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "OUT", "quantity": 4, "reason": "Damaged in transit"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["inventory"]["quantity"] == 6
        assert data["stock_movement"]["balance_after"] == 6

    def test_oversell_is_400_with_details(self, client, manager_headers, inventory, db_session):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "OUT", "quantity": 11, "reason": "Bulk order"},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        data = resp.get_json()
        assert data["details"]["requested_quantity"] == 11
        assert data["details"]["on_hand"] == 10
        assert db_session.query(StockMovement).count() == 1

    def test_reason_required(self, client, manager_headers, inventory):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "IN", "quantity": 1},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "reason"

    @pytest.mark.parametrize("quantity", [1.5, True, "2e1", 0])
    def test_bad_quantity(self, client, manager_headers, inventory, quantity):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "IN", "quantity": quantity, "reason": "Count"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_missing_record(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/inventory/424242/movements",
            json={"type": "IN", "quantity": 1, "reason": "Count"},
            headers=manager_headers,
        )
        assert resp.status_code == 404

    def test_transfer_to_shop(self, client, manager_headers, inventory, other_shop):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={
                "type": "TRANSFER",
                "quantity": 3,
                "reason": "Restock branch",
                "destination_shop_id": other_shop.id,
            },
            headers=manager_headers,
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["inventory"]["quantity"] == 7
        assert data["destination_inventory"]["quantity"] == 3
        assert data["destination_movement"]["reference"] == str(data["stock_movement"]["id"])

    def test_destination_only_for_transfer(self, client, manager_headers, inventory, other_shop):
        resp = client.post(
            f"/api/inventory/{inventory.id}/movements",
            json={"type": "OUT", "quantity": 1, "reason": "Oops", "destination_shop_id": other_shop.id},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_movement_by_pair_and_listing(self, client, manager_headers, inventory, product, shop):
        resp = client.post(
            "/api/stock-movements",
            json={"type": "ADJUSTMENT", "quantity": 2, "product_id": product.id, "shop_id": shop.id},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["inventory"]["quantity"] == 2

        resp = client.get(f"/api/stock-movements?shop_id={shop.id}&type=ADJUSTMENT", headers=manager_headers)
        assert resp.status_code == 200
        items = resp.get_json()["items"]
        assert [m["quantity"] for m in items] == [2]

    def test_movement_by_pair_requires_ids(self, client, manager_headers, db_session):
        resp = client.post(
            "/api/stock-movements",
            json={"type": "IN", "quantity": 1},
            headers=manager_headers,
        )
        assert resp.status_code == 400


class TestSaleRoutes:
    def test_create_sale(self, client, cashier_headers, inventory, product, shop):
        resp = client.post(
            "/api/sales",
            json={
                "shop_id": shop.id,
                "payment_method": "CARD",
                "items": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 800}],
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 200
        sale = resp.get_json()["sale"]
        assert sale["sale_number"] == "SALE-000001"
        assert sale["final_amount_cents"] == 1600
        assert len(sale["items"]) == 1

        resp = client.get(f"/api/sales/{sale['id']}", headers=cashier_headers)
        assert resp.status_code == 200

    def test_insufficient_stock(self, client, cashier_headers, inventory, product, shop, db_session):
        resp = client.post(
            "/api/sales",
            json={
                "shop_id": shop.id,
                "payment_method": "CASH",
                "items": [{"product_id": product.id, "quantity": 50, "unit_price_cents": 800}],
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["product_id"] == product.id
        assert db_session.query(Sale).count() == 0

    def test_missing_fields(self, client, cashier_headers, db_session):
        resp = client.post("/api/sales", json={"payment_method": "CASH"}, headers=cashier_headers)
        assert resp.status_code == 400
        assert "shop_id" in resp.get_json()["details"]["fields"]

    def test_bad_date_filter(self, client, cashier_headers, db_session):
        resp = client.get("/api/sales?start_date=yesterday", headers=cashier_headers)
        assert resp.status_code == 400

    def test_missing_sale(self, client, cashier_headers, db_session):
        resp = client.get("/api/sales/777", headers=cashier_headers)
        assert resp.status_code == 404


class TestPurchaseRoutes:
    def test_lifecycle(self, client, manager_headers, supplier, shop, product):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "shop_id": shop.id,
                "items": [{"product_id": product.id, "quantity": 10, "unit_price_cents": 100}],
                "delivery_date": "2026-11-01",
            },
            headers=manager_headers,
        )
        assert resp.status_code == 200
        purchase = resp.get_json()["purchase"]
        assert purchase["status"] == "PENDING"
        assert purchase["final_amount_cents"] == 1165
        assert purchase["delivery_date"] == "2026-11-01T00:00:00Z"

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["purchase"]["status"] == "COMPLETED"

        resp = client.post(f"/api/purchases/{purchase['id']}/receive", headers=manager_headers)
        assert resp.status_code == 409

        resp = client.get(f"/api/inventory?shop_id={shop.id}", headers=manager_headers)
        assert resp.get_json()["items"][0]["quantity"] == 10

    def test_cancel(self, client, manager_headers, supplier, shop, product):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "shop_id": shop.id,
                "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
            },
            headers=manager_headers,
        )
        purchase_id = resp.get_json()["purchase"]["id"]

        resp = client.post(f"/api/purchases/{purchase_id}/cancel", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["purchase"]["status"] == "CANCELLED"

    def test_bad_status_filter(self, client, manager_headers, db_session):
        resp = client.get("/api/purchases?status=LOST", headers=manager_headers)
        assert resp.status_code == 400

    def test_unknown_field(self, client, manager_headers, supplier, shop, product):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "shop_id": shop.id,
                "status": "COMPLETED",
                "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
            },
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "status"


class TestHealth:
    def test_reports_counts_and_counters(self, client, cashier_headers, inventory, product, shop):
        client.post(
            "/api/sales",
            json={
                "shop_id": shop.id,
                "payment_method": "CASH",
                "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 800}],
            },
            headers=cashier_headers,
        )

        resp = client.get("/health")
        assert resp.status_code == 200
        checks = resp.get_json()["checks"]
        assert checks["database"]["details"]["inventory_records"] == 1
        assert checks["database"]["details"]["stock_movements"] == 2
        assert checks["numbering"]["details"] == {"SALE": 2}
        assert checks["session_service"]["details"] == {"reachable": True}

    def test_failed_check_is_rolled_back_and_others_still_run(self, client, db_session, monkeypatch):
        from sqlalchemy import literal_column

        from shopledger.extensions import db
        from shopledger.routes import system as system_routes

        rollbacks = []
        real_rollback = db.session.rollback

        def _rollback():
            rollbacks.append(1)
            real_rollback()

        monkeypatch.setattr(system_routes, "Shop", literal_column("missing_column"))
        monkeypatch.setattr(db.session, "rollback", _rollback)

        resp = client.get("/health")
        assert resp.status_code == 503
        checks = resp.get_json()["checks"]
        assert checks["database"]["status"] == "unhealthy"
        assert checks["numbering"]["status"] == "healthy"
        assert checks["session_service"]["status"] == "healthy"
        assert rollbacks == [1]
