# backend/retailops/routes/purchase_orders.py
"""
Purchase order routes.

Lifecycle: DRAFT -> PARTIALLY_RECEIVED -> RECEIVED, or -> CANCELLED
"""
from flask import Blueprint, g, request

from ..decorators import require_actor
from ..services.registry import get_services


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@require_actor
def create_purchase_order_route():
    """
    Body: {supplier_id, warehouse_id, outlet_id, expected_date?, notes?,
           items: [{product_id, quantity_ordered, unit_cost}]}
    """
    payload = request.get_json(silent=True) or {}
    po = get_services().purchase_orders.create(
        supplier_id=payload.get("supplier_id"),
        warehouse_id=payload.get("warehouse_id"),
        outlet_id=payload.get("outlet_id"),
        expected_date=payload.get("expected_date"),
        notes=payload.get("notes"),
        items=payload.get("items"),
        user_id=g.user_id,
    )
    return po.to_dict(include_lines=True), 201


@purchase_orders_bp.get("")
@require_actor
def list_purchase_orders_route():
    filters = {
        key: request.args.get(key)
        for key in ("supplier_id", "warehouse_id", "outlet_id", "status")
    }
    result = get_services().purchase_orders.list_purchase_orders(
        filters,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return result, 200


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
def get_purchase_order_route(po_id: int):
    po = get_services().purchase_orders.get_purchase_order(po_id)
    return po.to_dict(include_lines=True), 200


@purchase_orders_bp.patch("/<int:po_id>")
@require_actor
def update_purchase_order_route(po_id: int):
    """DRAFT only. Body may contain supplier_id, warehouse_id, expected_date, notes."""
    payload = request.get_json(silent=True) or {}
    po = get_services().purchase_orders.update(po_id, payload)
    return po.to_dict(include_lines=True), 200


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_actor
def receive_purchase_order_route(po_id: int):
    """Body: {items: [{item_id, quantity}]}"""
    payload = request.get_json(silent=True) or {}
    po = get_services().purchase_orders.receive(
        po_id,
        payload.get("items"),
        user_id=g.user_id,
    )
    return po.to_dict(include_lines=True), 200


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_actor
def cancel_purchase_order_route(po_id: int):
    po = get_services().purchase_orders.cancel(po_id, user_id=g.user_id)
    return po.to_dict(), 200
