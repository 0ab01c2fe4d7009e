"""Inventory record store: creation, atomic quantity primitives, prices, deletion, listings."""

import pytest

from shopledger.errors import (
    DuplicateRecordError,
    InsufficientStockError,
    NotFoundError,
    RecordInUseError,
    ValidationError,
)
from shopledger.models import InventoryRecord, StockMovement
from shopledger.services import inventory_service, sales_service
from shopledger.services.concurrency import run_in_transaction


class TestCreateInventoryRecord:
    def test_initial_quantity_is_posted_as_in_movement(self, db_session, inventory, admin_user):
        assert inventory.quantity == 10
        assert inventory.cost_price_cents == 500
        assert inventory.selling_price_cents == 800

        movements = db_session.query(StockMovement).all()
        assert len(movements) == 1
        assert movements[0].type == "IN"
        assert movements[0].quantity == 10
        assert movements[0].balance_after == 10
        assert movements[0].reason == "Initial stock"
        assert movements[0].user_id == admin_user.id

    def test_zero_quantity_writes_no_movement(self, db_session, product, shop):
        record = inventory_service.create_inventory_record(product_id=product.id, shop_id=shop.id)

        assert record.quantity == 0
        assert db_session.query(StockMovement).count() == 0

    def test_duplicate_pair_rejected(self, db_session, inventory, product, shop):
        with pytest.raises(DuplicateRecordError):
            inventory_service.create_inventory_record(product_id=product.id, shop_id=shop.id, quantity=5)

        assert db_session.query(InventoryRecord).count() == 1
        assert db_session.query(StockMovement).count() == 1

    def test_unknown_product_or_shop(self, db_session, product, shop):
        with pytest.raises(NotFoundError):
            inventory_service.create_inventory_record(product_id=product.id + 999, shop_id=shop.id)
        with pytest.raises(NotFoundError):
            inventory_service.create_inventory_record(product_id=product.id, shop_id=shop.id + 999)

    def test_negative_initial_quantity_rejected(self, db_session, product, shop):
        with pytest.raises(ValidationError):
            inventory_service.create_inventory_record(product_id=product.id, shop_id=shop.id, quantity=-1)


class TestQuantityPrimitives:
    def test_adjust_quantity_increment_and_decrement(self, db_session, inventory):
        record = run_in_transaction(lambda: inventory_service.adjust_quantity(inventory.id, 5))
        assert record.quantity == 15

        record = run_in_transaction(lambda: inventory_service.adjust_quantity(inventory.id, -15))
        assert record.quantity == 0

    def test_decrement_below_zero_changes_nothing(self, db_session, inventory):
        before = inventory.last_updated

        with pytest.raises(InsufficientStockError) as exc_info:
            run_in_transaction(lambda: inventory_service.adjust_quantity(inventory.id, -11))

        assert exc_info.value.requested == 11
        assert exc_info.value.on_hand == 10
        record = inventory_service.get_inventory_record(inventory.id)
        assert record.quantity == 10
        assert record.last_updated == before

    def test_set_quantity_overwrites(self, db_session, inventory):
        record = run_in_transaction(lambda: inventory_service.set_quantity(inventory.id, 3))
        assert record.quantity == 3

    def test_set_quantity_rejects_negative(self, db_session, inventory):
        with pytest.raises(ValidationError):
            run_in_transaction(lambda: inventory_service.set_quantity(inventory.id, -1))

    def test_missing_record(self, db_session):
        with pytest.raises(NotFoundError):
            run_in_transaction(lambda: inventory_service.set_quantity(123456, 1))
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_record(123456)

    def test_lookup_by_pair(self, db_session, inventory, product, shop, other_shop):
        assert inventory_service.get_inventory_record_for(product.id, shop.id).id == inventory.id
        assert inventory_service.find_inventory_record(product.id, other_shop.id) is None
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_record_for(product.id, other_shop.id)


class TestPricesAndDeletion:
    def test_update_prices_leaves_quantity_alone(self, db_session, inventory):
        record = inventory_service.update_prices(inventory.id, selling_price_cents=950)

        assert record.selling_price_cents == 950
        assert record.cost_price_cents == 500
        assert record.quantity == 10

    def test_delete_unreferenced_record(self, db_session, inventory):
        inventory_service.delete_inventory_record(inventory.id)

        assert db_session.query(InventoryRecord).count() == 0
        # History stays
        assert db_session.query(StockMovement).count() == 1

    def test_delete_blocked_while_sale_lines_reference_pair(self, db_session, inventory, product, shop, cashier_user):
        sales_service.create_sale(
            shop_id=shop.id,
            items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 800}],
            payment_method="CASH",
            actor_id=cashier_user.id,
        )

        with pytest.raises(RecordInUseError):
            inventory_service.delete_inventory_record(inventory.id)
        assert db_session.query(InventoryRecord).count() == 1


class TestListings:
    def test_list_inventory_filters(self, db_session, inventory, product, other_product, shop, other_shop):
        inventory_service.create_inventory_record(product_id=other_product.id, shop_id=other_shop.id, quantity=1)

        everything = inventory_service.list_inventory()
        assert everything["pagination"]["total"] == 2

        main_only = inventory_service.list_inventory(shop_id=shop.id)
        assert [row["id"] for row in main_only["items"]] == [inventory.id]

        by_search = inventory_service.list_inventory(search="oil")
        assert [row["product_id"] for row in by_search["items"]] == [other_product.id]

        low = inventory_service.list_inventory(low_stock=True)
        assert [row["product_id"] for row in low["items"]] == [other_product.id]

    def test_low_stock_orders_out_of_stock_first(self, db_session, product, other_product, shop):
        low = inventory_service.create_inventory_record(product_id=product.id, shop_id=shop.id, quantity=4)
        empty = inventory_service.create_inventory_record(product_id=other_product.id, shop_id=shop.id, quantity=0)

        result = inventory_service.list_low_stock(shop_id=shop.id)

        assert [row["id"] for row in result["items"]] == [empty.id, low.id]
        assert result["items"][0]["stock_status"] == "OUT_OF_STOCK"
        assert result["items"][1]["stock_status"] == "LOW_STOCK"
        assert result["summary"] == {
            "total_low_stock_items": 2,
            "out_of_stock_count": 1,
            "low_stock_count": 1,
        }
