# backend/retailops/routes/sales.py
"""
POS order routes.

Lifecycle: OPEN -> COMPLETED (fully paid, stock decremented) | CANCELLED
"""
from flask import Blueprint, g, request

from ..decorators import require_actor
from ..services.registry import get_services


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/orders")
@require_actor
def create_order_route():
    """
    Create an OPEN order with prices resolved and frozen per line.

    Body: {outlet_id, warehouse_id, register_id?, customer_id?, notes?,
           items: [{product_id, quantity, discount_amount?}]}
    """
    payload = request.get_json(silent=True) or {}
    order = get_services().orders.create(
        outlet_id=payload.get("outlet_id"),
        warehouse_id=payload.get("warehouse_id"),
        register_id=payload.get("register_id"),
        customer_id=payload.get("customer_id"),
        items=payload.get("items"),
        notes=payload.get("notes"),
        user_id=g.user_id,
    )
    return order.to_dict(include_lines=True), 201


@sales_bp.get("/orders")
@require_actor
def list_orders_route():
    filters = {
        key: request.args.get(key)
        for key in (
            "outlet_id",
            "status",
            "payment_status",
            "customer_id",
            "cashier_user_id",
            "start_date",
            "end_date",
        )
    }
    result = get_services().orders.list_orders(
        filters,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return result, 200


@sales_bp.get("/orders/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    order = get_services().orders.get_order(order_id)
    return order.to_dict(include_lines=True), 200


@sales_bp.post("/orders/<int:order_id>/payments")
@require_actor
def add_payment_route(order_id: int):
    """
    Record a payment (split tender allowed).

    Body: {method: CASH|CARD|E_WALLET|BANK_TRANSFER, amount, reference?, paid_at?}
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().orders.add_payment(
        order_id,
        method=payload.get("method"),
        amount=payload.get("amount"),
        reference=payload.get("reference"),
        paid_at=payload.get("paid_at"),
    )
    return {
        "payment": result["payment"].to_dict(),
        "order": result["order"].to_dict(),
    }, 201


@sales_bp.post("/orders/<int:order_id>/complete")
@require_actor
def complete_order_route(order_id: int):
    order = get_services().orders.complete(order_id, user_id=g.user_id)
    return order.to_dict(include_lines=True), 200


@sales_bp.post("/orders/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    order = get_services().orders.cancel(order_id, user_id=g.user_id)
    return order.to_dict(), 200
