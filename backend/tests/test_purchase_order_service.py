# Overview: Pytest coverage for purchase-order creation, receiving and cancellation.

from datetime import datetime
from decimal import Decimal

import pytest

from retailops.errors import InvalidOrderStateError, InvalidRequestError, NotFoundError
from retailops.models import StockMovement, Supplier


USER_ID = 7


@pytest.fixture
def make_po(services, supplier_a, outlet_a, warehouse_a):
    def _make_po(lines, **kwargs):
        kwargs.setdefault("supplier_id", supplier_a.id)
        kwargs.setdefault("outlet_id", outlet_a.id)
        kwargs.setdefault("warehouse_id", warehouse_a.id)
        return services.purchase_orders.create(
            items=[
                {"product_id": product.id, "quantity_ordered": quantity, "unit_cost": unit_cost}
                for product, quantity, unit_cost in lines
            ],
            user_id=USER_ID,
            **kwargs,
        )
    return _make_po


def receive(services, po, *quantities):
    """Receive quantities against the PO's items in order."""
    return services.purchase_orders.receive(
        po.id,
        [
            {"item_id": item.id, "quantity": quantity}
            for item, quantity in zip(po.items, quantities)
            if quantity
        ],
        user_id=USER_ID,
    )


class TestCreatePurchaseOrder:
    def test_create_draft(self, make_po, product_x, product_y, supplier_a):
        po = make_po([(product_x, 10, "60.00"), (product_y, 4, "30.50")], notes="Weekly restock")

        assert po.status == "DRAFT"
        assert po.order_number == "PO-MAIN-20261019-0001"
        assert po.supplier_id == supplier_a.id
        assert po.total_amount == Decimal("722.00")
        assert po.notes == "Weekly restock"
        assert po.created_by_user_id == USER_ID
        assert [item.quantity_received for item in po.items] == [Decimal("0"), Decimal("0")]
        assert po.items[1].line_total == Decimal("122.00")

    def test_numbers_are_separate_from_pos_orders(self, services, make_po, product_y, outlet_a, warehouse_a):
        services.orders.create(
            outlet_id=outlet_a.id,
            warehouse_id=warehouse_a.id,
            items=[{"product_id": product_y.id, "quantity": 1}],
            user_id=USER_ID,
        )
        first = make_po([(product_y, 1, "10")])
        second = make_po([(product_y, 1, "10")])

        assert first.order_number == "PO-MAIN-20261019-0001"
        assert second.order_number == "PO-MAIN-20261019-0002"

    def test_no_stock_effect(self, make_po, product_x, warehouse_a, on_hand):
        make_po([(product_x, 10, "60.00")])

        assert on_hand(product_x, warehouse_a) == Decimal("0")

    @pytest.mark.parametrize("quantity,unit_cost", [(0, "1.00"), (-1, "1.00"), (1, "-0.01"), (1, None)])
    def test_invalid_lines(self, make_po, product_x, quantity, unit_cost):
        with pytest.raises(InvalidRequestError):
            make_po([(product_x, quantity, unit_cost)])

    def test_empty_items(self, make_po):
        with pytest.raises(InvalidRequestError):
            make_po([])

    def test_foreign_supplier(self, make_po, db_session, business_b, product_x):
        stranger = Supplier(business_id=business_b.id, name="Elsewhere Ltd")
        db_session.add(stranger)
        db_session.commit()

        with pytest.raises(NotFoundError):
            make_po([(product_x, 1, "1.00")], supplier_id=stranger.id)

    def test_warehouse_must_belong_to_outlet(self, make_po, product_x, warehouse_kiosk):
        with pytest.raises(InvalidRequestError):
            make_po([(product_x, 1, "1.00")], warehouse_id=warehouse_kiosk.id)


class TestUpdatePurchaseOrder:
    def test_update_header(self, services, make_po, product_x, warehouse_a2):
        po = make_po([(product_x, 5, "60.00")])

        updated = services.purchase_orders.update(po.id, {
            "notes": "Deliver to back door",
            "expected_date": "2026-10-25T09:00:00Z",
            "warehouse_id": warehouse_a2.id,
        })

        assert updated.notes == "Deliver to back door"
        assert updated.expected_date == datetime(2026, 10, 25, 9, 0, 0)
        assert updated.warehouse_id == warehouse_a2.id

    def test_items_are_not_updatable(self, services, make_po, product_x):
        po = make_po([(product_x, 5, "60.00")])

        with pytest.raises(InvalidRequestError):
            services.purchase_orders.update(po.id, {"items": []})
        with pytest.raises(InvalidRequestError):
            services.purchase_orders.update(po.id, {"status": "RECEIVED"})

    def test_only_draft_is_updatable(self, services, make_po, product_x):
        po = make_po([(product_x, 5, "60.00")])
        receive(services, po, 1)

        with pytest.raises(InvalidOrderStateError):
            services.purchase_orders.update(po.id, {"notes": "too late"})


class TestReceivePurchaseOrder:
    def test_partial_then_full_receipt(self, services, db_session, jobs, make_po, product_x, product_y, warehouse_a, on_hand):
        po = make_po([(product_x, 10, "60.00"), (product_y, 4, "30.00")])
        jobs.reset()

        partial = receive(services, po, 6, 4)

        assert partial.status == "PARTIALLY_RECEIVED"
        assert partial.received_by_user_id == USER_ID
        assert partial.received_at is not None
        assert on_hand(product_x, warehouse_a) == Decimal("6")
        assert on_hand(product_y, warehouse_a) == Decimal("4")

        full = receive(services, po, 4)

        assert full.status == "RECEIVED"
        assert on_hand(product_x, warehouse_a) == Decimal("10")
        assert [item.quantity_outstanding for item in full.items] == [0, 0]

        purchases = db_session.query(StockMovement).filter_by(type="PURCHASE").all()
        assert len(purchases) == 3
        assert {m.reference for m in purchases} == {po.order_number}
        assert {m.to_warehouse_id for m in purchases} == {warehouse_a.id}
        assert jobs.events() == ["PURCHASE_ORDER_RECEIVED", "PURCHASE_ORDER_RECEIVED"]
        assert services.inventory.reconcile(product_x.id, warehouse_a.id).consistent

    def test_over_receipt_is_accepted(self, services, make_po, product_x, warehouse_a, on_hand):
        po = make_po([(product_x, 10, "60.00")])

        received = receive(services, po, 12)

        assert received.status == "RECEIVED"
        assert received.items[0].quantity_received == Decimal("12")
        assert on_hand(product_x, warehouse_a) == Decimal("12")

    def test_receipt_adds_to_existing_stock(self, services, make_po, product_x, warehouse_a, stock_in, on_hand):
        stock_in(product_x, warehouse_a, 3)
        po = make_po([(product_x, 2, "60.00")])

        receive(services, po, 2)

        assert on_hand(product_x, warehouse_a) == Decimal("5")

    def test_cannot_receive_after_received(self, services, make_po, product_x):
        po = make_po([(product_x, 2, "60.00")])
        receive(services, po, 2)

        with pytest.raises(InvalidOrderStateError):
            receive(services, po, 1)

    def test_unknown_item_changes_nothing(self, services, db_session, make_po, product_x, product_y, warehouse_a, on_hand):
        po = make_po([(product_x, 2, "60.00")])
        other = make_po([(product_y, 2, "30.00")])

        with pytest.raises(NotFoundError):
            services.purchase_orders.receive(
                po.id,
                [
                    {"item_id": po.items[0].id, "quantity": 1},
                    {"item_id": other.items[0].id, "quantity": 1},
                ],
                user_id=USER_ID,
            )

        assert services.purchase_orders.get_purchase_order(po.id).status == "DRAFT"
        assert on_hand(product_x, warehouse_a) == Decimal("0")
        assert db_session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("entries", [[], None, [{"item_id": 1, "quantity": 0}], [{"quantity": 1}]])
    def test_invalid_receipt_payload(self, services, make_po, product_x, entries):
        po = make_po([(product_x, 2, "60.00")])

        with pytest.raises(InvalidRequestError):
            services.purchase_orders.receive(po.id, entries, user_id=USER_ID)


class TestCancelPurchaseOrder:
    def test_cancel_draft(self, services, jobs, make_po, product_x, outlet_a):
        po = make_po([(product_x, 2, "60.00")])
        jobs.reset()

        cancelled = services.purchase_orders.cancel(po.id, user_id=USER_ID)

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_by_user_id == USER_ID
        assert cancelled.cancelled_at is not None
        assert jobs.events() == ["PURCHASE_ORDER_CANCELLED"]
        audit = jobs.published[0][1]["payload"]
        assert audit["entity_id"] == po.id
        assert audit["outlet_id"] == outlet_a.id
        assert audit["payload"]["previous_status"] == "DRAFT"
        assert audit["payload"]["order_number"] == po.order_number

    def test_cancel_partial_keeps_received_stock(self, services, make_po, product_x, warehouse_a, on_hand):
        po = make_po([(product_x, 10, "60.00")])
        receive(services, po, 3)

        services.purchase_orders.cancel(po.id, user_id=USER_ID)

        assert on_hand(product_x, warehouse_a) == Decimal("3")

    def test_failed_cancel_publishes_nothing(self, services, jobs, make_po, product_x):
        po = make_po([(product_x, 1, "60.00")])
        services.purchase_orders.cancel(po.id, user_id=USER_ID)
        jobs.reset()

        with pytest.raises(InvalidOrderStateError):
            services.purchase_orders.cancel(po.id, user_id=USER_ID)
        assert jobs.published == []

    def test_cannot_cancel_received(self, services, make_po, product_x):
        po = make_po([(product_x, 1, "60.00")])
        receive(services, po, 1)

        with pytest.raises(InvalidOrderStateError):
            services.purchase_orders.cancel(po.id, user_id=USER_ID)

    def test_cannot_receive_cancelled(self, services, make_po, product_x):
        po = make_po([(product_x, 1, "60.00")])
        services.purchase_orders.cancel(po.id, user_id=USER_ID)

        with pytest.raises(InvalidOrderStateError):
            receive(services, po, 1)


class TestPurchaseOrderReads:
    def test_list_filters_by_status(self, services, make_po, product_x):
        draft = make_po([(product_x, 1, "60.00")])
        done = make_po([(product_x, 1, "60.00")])
        receive(services, done, 1)

        drafts = services.purchase_orders.list_purchase_orders({"status": "draft"})
        received = services.purchase_orders.list_purchase_orders({"status": "RECEIVED"})

        assert [p["id"] for p in drafts["purchase_orders"]] == [draft.id]
        assert [p["id"] for p in received["purchase_orders"]] == [done.id]

    def test_other_tenant_cannot_touch_po(self, services_b, make_po, product_x):
        po = make_po([(product_x, 1, "60.00")])

        with pytest.raises(NotFoundError):
            services_b.purchase_orders.get_purchase_order(po.id)
        with pytest.raises(NotFoundError):
            services_b.purchase_orders.receive(po.id, [{"item_id": po.items[0].id, "quantity": 1}], user_id=99)
        assert services_b.purchase_orders.list_purchase_orders()["purchase_orders"] == []
