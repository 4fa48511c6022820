# Overview: Pytest coverage for stock adjustments, transfers, warehouses and the stock ledger.

import pytest

from stockroom.errors import (
    AccessDeniedError,
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockroom.models import ProductStock, StockMovement
from stockroom.services.products_service import add_product
from stockroom.services.stock_service import adjust_stock, list_stock_movements, transfer_stock
from stockroom.services.warehouse_service import (
    create_warehouse,
    list_warehouses,
    require_warehouse_in_org,
)

from conftest import add_member


@pytest.fixture
def widget(db_session, org_id, alice):
    """Product with 10 units in the default warehouse."""
    result = add_product(org_id, alice, {"name": "Widget", "sku": "W-1", "stock": 10, "price": 5})
    return {"product_id": result["product_id"], "warehouse_id": result["data"]["warehouse_id"]}


@pytest.fixture
def backroom(db_session, org_id, alice, widget):
    return create_warehouse(org_id, "Backroom", "12 Side St", alice)["id"]


def _quantity(db_session, product_id, warehouse_id):
    stock = (
        db_session.query(ProductStock)
        .filter_by(product_id=int(product_id), warehouse_id=int(warehouse_id))
        .first()
    )
    if stock is None:
        return None
    db_session.refresh(stock)
    return stock.quantity


class TestWarehouses:

    def test_create_and_list(self, db_session, org_id, alice, widget, backroom):
        warehouses = list_warehouses(org_id, alice)
        assert [w["name"] for w in warehouses] == ["Default Warehouse", "Backroom"]
        assert warehouses[1]["address"] == "12 Side St"

    def test_duplicate_name(self, db_session, org_id, alice, backroom):
        with pytest.raises(ConflictError):
            create_warehouse(org_id, "backroom", None, alice)

    def test_reader_cannot_create(self, db_session, org_id, bob):
        add_member(org_id, bob, "reader")
        with pytest.raises(AccessDeniedError):
            create_warehouse(org_id, "Annex", None, bob)

    def test_foreign_warehouse_not_found(self, db_session, org_id, other_org_id, carol):
        foreign = create_warehouse(other_org_id, "Beta WH", None, carol)["id"]
        with pytest.raises(NotFoundError):
            require_warehouse_in_org(foreign, int(org_id))


class TestAdjustStock:

    def test_increase(self, db_session, org_id, alice, widget):
        result = adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], 5, alice)

        assert result["previous_quantity"] == 10
        assert result["new_quantity"] == 15
        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 15

        movement = db_session.query(StockMovement).one()
        assert movement.type == "in"
        assert movement.quantity == 5
        assert movement.reason == "Stock increase"

    def test_decrease(self, db_session, org_id, alice, widget):
        adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], "-4", alice)

        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 6
        movement = db_session.query(StockMovement).one()
        assert movement.type == "out"
        assert movement.quantity == 4
        assert movement.reason == "Stock decrease"

    def test_decrease_to_zero_allowed(self, db_session, org_id, alice, widget):
        result = adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], -10, alice)
        assert result["new_quantity"] == 0

    def test_cannot_go_negative(self, db_session, org_id, alice, widget):
        with pytest.raises(InsufficientStockError):
            adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], -11, alice)

        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 10
        assert db_session.query(StockMovement).count() == 0

    def test_creates_row_in_new_warehouse(self, db_session, org_id, alice, widget, backroom):
        adjust_stock(org_id, widget["product_id"], backroom, 3, alice)
        assert _quantity(db_session, widget["product_id"], backroom) == 3

    @pytest.mark.parametrize("adjustment", [0, "0", 1.5, "abc", None])
    def test_invalid_adjustment(self, db_session, org_id, alice, widget, adjustment):
        with pytest.raises(ValidationError):
            adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], adjustment, alice)

    def test_reader_denied(self, db_session, org_id, bob, widget):
        add_member(org_id, bob, "reader")
        with pytest.raises(AccessDeniedError):
            adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], 1, bob)

    def test_foreign_warehouse_rejected(self, db_session, org_id, other_org_id, alice, carol, widget):
        foreign = create_warehouse(other_org_id, "Beta WH", None, carol)["id"]
        with pytest.raises(NotFoundError):
            adjust_stock(org_id, widget["product_id"], foreign, 1, alice)


class TestTransferStock:

    def test_moves_stock_and_writes_paired_ledger(self, db_session, org_id, alice, widget, backroom):
        result = transfer_stock(
            org_id, widget["product_id"], widget["warehouse_id"], backroom, 4, "Rebalance", "Weekly", alice,
        )

        assert result["source_quantity"] == 6
        assert result["destination_quantity"] == 4
        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 6
        assert _quantity(db_session, widget["product_id"], backroom) == 4

        movements = db_session.query(StockMovement).order_by(StockMovement.id.asc()).all()
        assert [(m.type, m.quantity, int(m.warehouse_id)) for m in movements] == [
            ("out", 4, int(widget["warehouse_id"])),
            ("in", 4, int(backroom)),
        ]
        assert movements[0].reason == f"Transfer to warehouse {backroom}: Rebalance"
        assert movements[1].reason == f"Transfer from warehouse {widget['warehouse_id']}: Rebalance"
        assert movements[0].notes == "Weekly"

    def test_total_stock_is_conserved(self, db_session, org_id, alice, widget, backroom):
        transfer_stock(org_id, widget["product_id"], widget["warehouse_id"], backroom, 7, "Move", None, alice)
        transfer_stock(org_id, widget["product_id"], backroom, widget["warehouse_id"], 2, "Back", None, alice)

        total = (
            _quantity(db_session, widget["product_id"], widget["warehouse_id"])
            + _quantity(db_session, widget["product_id"], backroom)
        )
        assert total == 10

    def test_insufficient_source(self, db_session, org_id, alice, widget, backroom):
        with pytest.raises(InsufficientStockError) as exc:
            transfer_stock(org_id, widget["product_id"], widget["warehouse_id"], backroom, 11, "Move", None, alice)
        assert str(exc.value) == "Insufficient stock in source warehouse"

        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 10
        assert _quantity(db_session, widget["product_id"], backroom) is None
        assert db_session.query(StockMovement).count() == 0

    def test_empty_source(self, db_session, org_id, alice, widget, backroom):
        with pytest.raises(InsufficientStockError):
            transfer_stock(org_id, widget["product_id"], backroom, widget["warehouse_id"], 1, "Move", None, alice)

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, "x"])
    def test_invalid_quantity(self, db_session, org_id, alice, widget, backroom, quantity):
        with pytest.raises(ValidationError):
            transfer_stock(org_id, widget["product_id"], widget["warehouse_id"], backroom, quantity, "Move", None, alice)

    def test_same_warehouse(self, db_session, org_id, alice, widget):
        with pytest.raises(ValidationError):
            transfer_stock(
                org_id, widget["product_id"], widget["warehouse_id"], widget["warehouse_id"], 1, "Move", None, alice,
            )

    def test_reason_required(self, db_session, org_id, alice, widget, backroom):
        with pytest.raises(ValidationError):
            transfer_stock(org_id, widget["product_id"], widget["warehouse_id"], backroom, 1, "  ", None, alice)

    def test_foreign_destination(self, db_session, org_id, other_org_id, alice, carol, widget):
        foreign = create_warehouse(other_org_id, "Beta WH", None, carol)["id"]
        with pytest.raises(NotFoundError):
            transfer_stock(org_id, widget["product_id"], widget["warehouse_id"], foreign, 1, "Move", None, alice)
        assert _quantity(db_session, widget["product_id"], widget["warehouse_id"]) == 10


class TestStockMovements:

    def test_newest_first(self, db_session, org_id, alice, widget):
        adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], 1, alice)
        adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], -2, alice)

        movements = list_stock_movements(org_id, widget["product_id"], alice)
        assert [m["type"] for m in movements] == ["out", "in"]

    def test_limit(self, db_session, org_id, alice, widget):
        for _ in range(3):
            adjust_stock(org_id, widget["product_id"], widget["warehouse_id"], 1, alice)

        assert len(list_stock_movements(org_id, widget["product_id"], alice, limit="2")) == 2

    def test_reader_can_view(self, db_session, org_id, bob, widget):
        add_member(org_id, bob, "reader")
        assert list_stock_movements(org_id, widget["product_id"], bob) == []


class TestEndToEnd:

    def test_create_add_details_adjust(self, db_session, alice):
        from stockroom.services.organization_service import create_organization
        from stockroom.services.products_service import get_product_details

        org = create_organization("Acme", alice)["org_id"]
        created = add_product(org, alice, {"name": "Anvil", "sku": "A-1", "stock": 5, "price": 9.99})
        product_id = created["product_id"]

        details = get_product_details(org, product_id, alice)
        assert details["total_stock"] == 5
        assert details["current_price"] == 9.99
        assert len(details["price_history"]) == 1
        assert [(w["name"], w["stock"]) for w in details["warehouses"]] == [("Default Warehouse", 5)]

        with pytest.raises(ConflictError):
            add_product(org, alice, {"name": "Anvil again", "sku": "A-1"})

        warehouse_id = created["data"]["warehouse_id"]
        adjust_stock(org, product_id, warehouse_id, -3, alice)
        assert _quantity(db_session, product_id, warehouse_id) == 2
        movement = db_session.query(StockMovement).one()
        assert (movement.type, movement.quantity) == ("out", 3)

        with pytest.raises(InsufficientStockError):
            adjust_stock(org, product_id, warehouse_id, -10, alice)
        assert _quantity(db_session, product_id, warehouse_id) == 2
