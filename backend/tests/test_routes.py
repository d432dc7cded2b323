# Overview: Pytest coverage for the HTTP surface (auth headers, error mapping, end-to-end flows).

"""
API Route Tests

Domain errors map to HTTP as:
- NOT_FOUND -> 404
- INVALID_REQUEST -> 400
- INSUFFICIENT_STOCK, INVALID_INVENTORY_STATE, INVALID_ORDER_STATE,
  PAYMENT_INCOMPLETE -> 409
"""

import pytest

from retailops.errors import InsufficientStockError, NotFoundError
from retailops.routes.errors import status_for


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"


class TestActorHeaders:
    @pytest.mark.parametrize("headers", [
        {},
        {"X-User-Id": "7"},
        {"X-Business-Id": "1"},
        {"X-User-Id": "abc", "X-Business-Id": "1"},
    ])
    def test_missing_actor_is_401(self, client, db_session, headers):
        response = client.get("/api/inventory", headers=headers)

        assert response.status_code == 401


class TestErrorMapping:
    def test_status_for_kinds(self):
        assert status_for(NotFoundError("x")) == 404
        assert status_for(InsufficientStockError("x")) == 409

    def test_error_body(self, client, headers_a):
        response = client.get("/api/sales/orders/99999", headers=headers_a)

        assert response.status_code == 404
        body = response.get_json()
        assert body["kind"] == "NOT_FOUND"
        assert "99999" in body["error"]
        assert body["details"] == {}

    def test_unknown_route_is_plain_404(self, client, headers_a):
        response = client.get("/api/nothing-here", headers=headers_a)

        assert response.status_code == 404


class TestPricingRoutes:
    def test_resolve(self, client, headers_a, outlet_a, product_x):
        response = client.get(
            f"/api/pricing/resolve?product_id={product_x.id}&outlet_id={outlet_a.id}",
            headers=headers_a,
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["effective_price"] == "100.00"
        assert data["tier_source"] == "base"
        assert data["price_source"] == "base_price"

    def test_resolve_requires_product(self, client, headers_a, outlet_a):
        response = client.get(f"/api/pricing/resolve?outlet_id={outlet_a.id}", headers=headers_a)

        assert response.status_code == 400
        assert response.get_json()["kind"] == "INVALID_REQUEST"

    def test_tier_and_price_management(self, client, headers_a, outlet_a, product_x):
        created = client.post(
            "/api/pricing/tiers",
            json={"name": "Member", "code": "member", "is_default": True},
            headers=headers_a,
        )
        assert created.status_code == 201
        tier_id = created.get_json()["id"]

        price = client.put(
            f"/api/pricing/products/{product_x.id}/prices",
            json={"price_tier_id": tier_id, "outlet_id": outlet_a.id, "price": "80.00"},
            headers=headers_a,
        )
        assert price.status_code == 200
        assert price.get_json()["price"] == "80.00"

        quote = client.post(
            "/api/pricing/quote",
            json={"outlet_id": outlet_a.id, "items": [{"product_id": product_x.id}]},
            headers=headers_a,
        )
        assert quote.status_code == 200
        item = quote.get_json()["items"][0]
        assert item["effective_price"] == "80.00"
        assert item["tier_source"] == "default"
        assert item["price_source"] == "outlet_tier_price"

        renamed = client.patch(f"/api/pricing/tiers/{tier_id}", json={"name": "Members"}, headers=headers_a)
        assert renamed.status_code == 200
        assert renamed.get_json()["name"] == "Members"

        tiers = client.get("/api/pricing/tiers", headers=headers_a).get_json()
        assert tiers["count"] == 1

        prices = client.get(f"/api/pricing/products/{product_x.id}/prices", headers=headers_a).get_json()
        assert prices["items"][0]["outlet_id"] == outlet_a.id

    def test_duplicate_tier_code_is_bad_request(self, client, headers_a):
        first = client.post("/api/pricing/tiers", json={"name": "Staff", "code": "STAFF"}, headers=headers_a)
        second = client.post("/api/pricing/tiers", json={"name": "Staff Again", "code": "staff"}, headers=headers_a)

        assert first.status_code == 201
        assert second.status_code == 400
        assert second.get_json()["kind"] == "INVALID_REQUEST"


class TestInventoryRoutes:
    def test_adjust_and_list(self, client, headers_a, product_x, warehouse_a):
        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": product_x.id, "warehouse_id": warehouse_a.id, "quantity": 5, "direction": "IN"},
            headers=headers_a,
        )

        assert response.status_code == 201
        assert response.get_json()["inventory"]["quantity_on_hand"] == "5.000"

        listing = client.get(f"/api/inventory?warehouse_id={warehouse_a.id}", headers=headers_a).get_json()
        assert listing["pagination"]["total"] == 1

        movements = client.get("/api/inventory/movements?type=ADJUSTMENT_IN", headers=headers_a).get_json()
        assert movements["movements"][0]["created_by_user_id"] == 7

    def test_adjust_below_zero_is_409(self, client, headers_a, product_x, warehouse_a, stock_in):
        stock_in(product_x, warehouse_a, 5)

        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": product_x.id, "warehouse_id": warehouse_a.id, "quantity": 10, "direction": "OUT"},
            headers=headers_a,
        )

        assert response.status_code == 409
        assert response.get_json()["kind"] == "INVALID_INVENTORY_STATE"

    def test_transfer(self, client, headers_a, product_x, warehouse_a, warehouse_a2, stock_in):
        stock_in(product_x, warehouse_a, 5)

        response = client.post(
            "/api/inventory/transfer",
            json={
                "product_id": product_x.id,
                "from_warehouse_id": warehouse_a.id,
                "to_warehouse_id": warehouse_a2.id,
                "quantity": "2",
            },
            headers=headers_a,
        )

        assert response.status_code == 201
        data = response.get_json()
        assert data["source"]["quantity_on_hand"] == "3.000"
        assert data["destination"]["quantity_on_hand"] == "2.000"

        reconcile = client.get(
            f"/api/inventory/reconcile?product_id={product_x.id}&warehouse_id={warehouse_a2.id}",
            headers=headers_a,
        ).get_json()
        assert reconcile["consistent"] is True

    def test_transfer_same_warehouse_is_400(self, client, headers_a, product_x, warehouse_a, stock_in):
        stock_in(product_x, warehouse_a, 5)

        response = client.post(
            "/api/inventory/transfer",
            json={
                "product_id": product_x.id,
                "from_warehouse_id": warehouse_a.id,
                "to_warehouse_id": warehouse_a.id,
                "quantity": 1,
            },
            headers=headers_a,
        )

        assert response.status_code == 400

    def test_transfer_insufficient_is_409(self, client, headers_a, product_x, warehouse_a, warehouse_a2, stock_in):
        stock_in(product_x, warehouse_a, 1)

        response = client.post(
            "/api/inventory/transfer",
            json={
                "product_id": product_x.id,
                "from_warehouse_id": warehouse_a.id,
                "to_warehouse_id": warehouse_a2.id,
                "quantity": 3,
            },
            headers=headers_a,
        )

        assert response.status_code == 409
        assert response.get_json()["kind"] == "INSUFFICIENT_STOCK"


class TestSalesRoutes:
    def create_order(self, client, headers, outlet, warehouse, lines):
        return client.post(
            "/api/sales/orders",
            json={
                "outlet_id": outlet.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, "quantity": qty} for product, qty in lines],
            },
            headers=headers,
        )

    def test_full_sale(self, client, headers_a, outlet_a, warehouse_a, product_x, product_y, stock_in, on_hand):
        stock_in(product_x, warehouse_a, 5)
        stock_in(product_y, warehouse_a, 3)

        created = self.create_order(client, headers_a, outlet_a, warehouse_a, [(product_x, 2), (product_y, 1)])
        assert created.status_code == 201
        order = created.get_json()
        assert order["total_amount"] == "270.00"
        assert order["order_number"] == "MAIN-20261019-0001"
        assert len(order["items"]) == 2

        first = client.post(
            f"/api/sales/orders/{order['id']}/payments",
            json={"method": "CASH", "amount": "200.00"},
            headers=headers_a,
        )
        assert first.status_code == 201
        assert first.get_json()["order"]["payment_status"] == "PARTIAL"

        early = client.post(f"/api/sales/orders/{order['id']}/complete", headers=headers_a)
        assert early.status_code == 409
        assert early.get_json()["kind"] == "PAYMENT_INCOMPLETE"

        second = client.post(
            f"/api/sales/orders/{order['id']}/payments",
            json={"method": "CARD", "amount": "70.00", "reference": "AUTH-1"},
            headers=headers_a,
        )
        assert second.get_json()["order"]["payment_status"] == "PAID"

        completed = client.post(f"/api/sales/orders/{order['id']}/complete", headers=headers_a)
        assert completed.status_code == 200
        assert completed.get_json()["status"] == "COMPLETED"
        assert len(completed.get_json()["payments"]) == 2

        assert str(on_hand(product_x, warehouse_a)) == "3.000"
        assert str(on_hand(product_y, warehouse_a)) == "2.000"

        again = client.post(f"/api/sales/orders/{order['id']}/cancel", headers=headers_a)
        assert again.status_code == 409
        assert again.get_json()["kind"] == "INVALID_ORDER_STATE"

    def test_complete_without_stock_is_409(self, client, headers_a, outlet_a, warehouse_a, product_y):
        order = self.create_order(client, headers_a, outlet_a, warehouse_a, [(product_y, 1)]).get_json()
        client.post(
            f"/api/sales/orders/{order['id']}/payments",
            json={"method": "CASH", "amount": "50"},
            headers=headers_a,
        )

        response = client.post(f"/api/sales/orders/{order['id']}/complete", headers=headers_a)

        assert response.status_code == 409
        assert response.get_json()["kind"] == "INSUFFICIENT_STOCK"
        fetched = client.get(f"/api/sales/orders/{order['id']}", headers=headers_a).get_json()
        assert fetched["status"] == "OPEN"

    def test_list_orders(self, client, headers_a, outlet_a, warehouse_a, product_y):
        self.create_order(client, headers_a, outlet_a, warehouse_a, [(product_y, 1)])
        self.create_order(client, headers_a, outlet_a, warehouse_a, [(product_y, 2)])

        response = client.get("/api/sales/orders?status=OPEN&limit=1", headers=headers_a)

        data = response.get_json()
        assert response.status_code == 200
        assert len(data["orders"]) == 1
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["has_next"] is True

    def test_other_tenant_gets_404(self, client, headers_a, headers_b, outlet_a, warehouse_a, product_y):
        order = self.create_order(client, headers_a, outlet_a, warehouse_a, [(product_y, 1)]).get_json()

        response = client.get(f"/api/sales/orders/{order['id']}", headers=headers_b)

        assert response.status_code == 404
        assert client.get(f"/api/sales/orders/{order['id']}", headers=headers_a).status_code == 200


class TestPurchaseOrderRoutes:
    def test_receive_flow(self, client, headers_a, supplier_a, outlet_a, warehouse_a, product_x, on_hand):
        created = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier_a.id,
                "outlet_id": outlet_a.id,
                "warehouse_id": warehouse_a.id,
                "items": [{"product_id": product_x.id, "quantity_ordered": 10, "unit_cost": "60.00"}],
            },
            headers=headers_a,
        )
        assert created.status_code == 201
        po = created.get_json()
        assert po["order_number"] == "PO-MAIN-20261019-0001"
        item_id = po["items"][0]["id"]

        patched = client.patch(f"/api/purchase-orders/{po['id']}", json={"notes": "Rush"}, headers=headers_a)
        assert patched.get_json()["notes"] == "Rush"

        partial = client.post(
            f"/api/purchase-orders/{po['id']}/receive",
            json={"items": [{"item_id": item_id, "quantity": 4}]},
            headers=headers_a,
        )
        assert partial.status_code == 200
        assert partial.get_json()["status"] == "PARTIALLY_RECEIVED"
        assert partial.get_json()["items"][0]["quantity_outstanding"] == "6.000"

        locked = client.patch(f"/api/purchase-orders/{po['id']}", json={"notes": "Later"}, headers=headers_a)
        assert locked.status_code == 409

        cancelled = client.post(f"/api/purchase-orders/{po['id']}/cancel", headers=headers_a)
        assert cancelled.get_json()["status"] == "CANCELLED"
        assert str(on_hand(product_x, warehouse_a)) == "4.000"

        listing = client.get("/api/purchase-orders?status=CANCELLED", headers=headers_a).get_json()
        assert [p["id"] for p in listing["purchase_orders"]] == [po["id"]]

    def test_receive_unknown_item_is_404(self, client, headers_a, supplier_a, outlet_a, warehouse_a, product_x):
        po = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier_a.id,
                "outlet_id": outlet_a.id,
                "warehouse_id": warehouse_a.id,
                "items": [{"product_id": product_x.id, "quantity_ordered": 1, "unit_cost": "1"}],
            },
            headers=headers_a,
        ).get_json()

        response = client.post(
            f"/api/purchase-orders/{po['id']}/receive",
            json={"items": [{"item_id": 99999, "quantity": 1}]},
            headers=headers_a,
        )

        assert response.status_code == 404
