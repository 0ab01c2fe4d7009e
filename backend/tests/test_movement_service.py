"""Movement applier: delta policy per type, audit rows, transfers and the ledger listing."""

import pytest

from shopledger.errors import InsufficientStockError, NotFoundError, ValidationError
from shopledger.models import InventoryRecord, StockMovement
from shopledger.services import movement_service


def _movement_count(db_session):
    return db_session.query(StockMovement).count()


class TestApplyMovement:
    def test_out_decrements_and_records_balance(self, db_session, inventory, admin_user):
        movement, record = movement_service.apply_movement(
            inventory.id,
            movement_type="OUT",
            quantity=4,
            reason="Counter sale",
            user_id=admin_user.id,
        )

        assert record.quantity == 6
        assert movement.type == "OUT"
        assert movement.quantity == 4
        assert movement.balance_after == 6
        assert movement.product_id == inventory.product_id
        assert movement.shop_id == inventory.shop_id
        assert _movement_count(db_session) == 2

    def test_out_more_than_on_hand_writes_nothing(self, db_session, inventory):
        with pytest.raises(InsufficientStockError) as exc_info:
            movement_service.apply_movement(inventory.id, movement_type="OUT", quantity=11)

        details = exc_info.value.to_dict()["details"]
        assert details["requested_quantity"] == 11
        assert details["on_hand"] == 10
        assert db_session.get(InventoryRecord, inventory.id).quantity == 10
        assert _movement_count(db_session) == 1

    def test_in_then_out_returns_to_start(self, db_session, inventory):
        movement_service.apply_movement(inventory.id, movement_type="IN", quantity=7)
        _, record = movement_service.apply_movement(inventory.id, movement_type="OUT", quantity=7)

        assert record.quantity == 10

    def test_return_increments_damage_decrements(self, db_session, inventory):
        _, record = movement_service.apply_movement(inventory.id, movement_type="return", quantity=2)
        assert record.quantity == 12

        _, record = movement_service.apply_movement(inventory.id, movement_type="DAMAGE", quantity=12)
        assert record.quantity == 0

    def test_adjustment_sets_literal_target(self, db_session, inventory):
        movement, record = movement_service.apply_movement(
            inventory.id, movement_type="ADJUSTMENT", quantity=3, reason="Stock count"
        )

        assert record.quantity == 3
        assert movement.quantity == 3
        assert movement.balance_after == 3

    def test_adjustment_to_zero_allowed(self, db_session, inventory):
        _, record = movement_service.apply_movement(inventory.id, movement_type="ADJUSTMENT", quantity=0)
        assert record.quantity == 0

    def test_adjustment_to_negative_rejected(self, db_session, inventory):
        with pytest.raises(ValidationError):
            movement_service.apply_movement(inventory.id, movement_type="ADJUSTMENT", quantity=-1)
        assert _movement_count(db_session) == 1

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, True, "1e3", "4.0", None])
    def test_bad_quantities_rejected(self, db_session, inventory, quantity):
        with pytest.raises(ValidationError):
            movement_service.apply_movement(inventory.id, movement_type="IN", quantity=quantity)
        assert db_session.get(InventoryRecord, inventory.id).quantity == 10
        assert _movement_count(db_session) == 1

    def test_numeric_string_quantity_accepted(self, db_session, inventory):
        _, record = movement_service.apply_movement(inventory.id, movement_type="IN", quantity="5")
        assert record.quantity == 15

    def test_unknown_type_rejected(self, db_session, inventory):
        with pytest.raises(ValidationError):
            movement_service.apply_movement(inventory.id, movement_type="GIFT", quantity=1)

    def test_missing_record(self, db_session):
        with pytest.raises(NotFoundError):
            movement_service.apply_movement(999999, movement_type="IN", quantity=1)
        assert _movement_count(db_session) == 0

    def test_record_movement_by_pair(self, db_session, inventory, product, shop, other_shop):
        movement, record = movement_service.record_movement(
            product_id=product.id, shop_id=shop.id, movement_type="OUT", quantity=1, reference="INV-7"
        )
        assert record.id == inventory.id
        assert record.quantity == 9
        assert movement.reference == "INV-7"

        with pytest.raises(NotFoundError):
            movement_service.record_movement(
                product_id=product.id, shop_id=other_shop.id, movement_type="IN", quantity=1
            )


class TestTransfers:
    def test_transfer_without_destination_only_decrements_source(self, db_session, inventory):
        movement, record = movement_service.apply_movement(
            inventory.id, movement_type="TRANSFER", quantity=4, reason="Sent out"
        )

        assert record.quantity == 6
        assert movement.type == "TRANSFER"
        assert db_session.query(InventoryRecord).count() == 1

    def test_transfer_to_shop_conserves_total(self, db_session, inventory, other_shop, admin_user):
        result = movement_service.transfer_stock(
            inventory.id,
            quantity=4,
            destination_shop_id=other_shop.id,
            reason="Restock branch",
            user_id=admin_user.id,
        )

        assert result.source_inventory.quantity == 6
        assert result.destination_inventory.quantity == 4
        assert result.destination_inventory.shop_id == other_shop.id
        assert result.destination_inventory.cost_price_cents == inventory.cost_price_cents
        assert result.source_movement.type == "TRANSFER"
        assert result.destination_movement.type == "IN"
        assert result.destination_movement.reference == str(result.source_movement.id)

        total = sum(r.quantity for r in db_session.query(InventoryRecord).all())
        assert total == 10

    def test_transfer_adds_to_existing_destination(self, db_session, inventory, product, other_shop):
        from shopledger.services import inventory_service

        existing = inventory_service.create_inventory_record(
            product_id=product.id, shop_id=other_shop.id, quantity=2
        )
        result = movement_service.transfer_stock(inventory.id, quantity=3, destination_shop_id=other_shop.id)

        assert result.destination_inventory.id == existing.id
        assert result.destination_inventory.quantity == 5

    def test_transfer_beyond_stock_changes_neither_shop(self, db_session, inventory, other_shop):
        with pytest.raises(InsufficientStockError):
            movement_service.transfer_stock(inventory.id, quantity=50, destination_shop_id=other_shop.id)

        assert db_session.query(InventoryRecord).count() == 1
        assert db_session.get(InventoryRecord, inventory.id).quantity == 10
        assert _movement_count(db_session) == 1

    def test_transfer_to_same_shop_rejected(self, db_session, inventory, shop):
        with pytest.raises(ValidationError):
            movement_service.transfer_stock(inventory.id, quantity=1, destination_shop_id=shop.id)

    def test_transfer_to_unknown_shop(self, db_session, inventory):
        with pytest.raises(NotFoundError):
            movement_service.transfer_stock(inventory.id, quantity=1, destination_shop_id=424242)


class TestLedgerListing:
    def test_newest_first_with_filters(self, db_session, inventory):
        movement_service.apply_movement(inventory.id, movement_type="OUT", quantity=1, reason="Breakage check")
        movement_service.apply_movement(inventory.id, movement_type="IN", quantity=2, reference="GRN-12")

        listing = movement_service.list_stock_movements(shop_id=inventory.shop_id)
        assert [m["type"] for m in listing["items"]] == ["IN", "OUT", "IN"]
        assert listing["pagination"]["total"] == 3

        outs = movement_service.list_stock_movements(movement_type="out")
        assert outs["count"] == 1

        by_reference = movement_service.list_stock_movements(search="GRN")
        assert [m["reference"] for m in by_reference["items"]] == ["GRN-12"]

    def test_unknown_type_filter_rejected(self, db_session):
        with pytest.raises(ValidationError):
            movement_service.list_stock_movements(movement_type="GIFT")

    def test_recent_movements_limit(self, db_session, inventory):
        for _ in range(12):
            movement_service.apply_movement(inventory.id, movement_type="IN", quantity=1)

        recent = movement_service.recent_movements(inventory.product_id, inventory.shop_id)
        assert len(recent) == 10
        assert recent[0].balance_after == 22
