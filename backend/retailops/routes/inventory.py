# backend/retailops/routes/inventory.py
"""
Inventory routes.

Time semantics:
- start_date / end_date accept ISO-8601 with Z/offsets; the backend
  normalizes to UTC-naive internally. Both bounds are inclusive.
"""
from flask import Blueprint, g, request

from ..decorators import require_actor
from ..services.registry import get_services


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_actor
def list_inventory_route():
    """
    List inventory rows.

    Query: product_id, warehouse_id, outlet_id, low_stock=true, page, limit
    """
    filters = {
        key: request.args.get(key)
        for key in ("product_id", "warehouse_id", "outlet_id", "low_stock")
    }
    result = get_services().inventory.get_inventory(
        filters,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return result, 200


@inventory_bp.get("/movements")
@require_actor
def list_movements_route():
    """
    Stock movement history, newest first.

    Query: product_id, warehouse_id (either side), outlet_id, type,
    start_date, end_date, page, limit
    """
    filters = {
        key: request.args.get(key)
        for key in ("product_id", "warehouse_id", "outlet_id", "type", "start_date", "end_date")
    }
    result = get_services().inventory.get_stock_movements(
        filters,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
    )
    return result, 200


@inventory_bp.get("/reconcile")
@require_actor
def reconcile_route():
    result = get_services().inventory.reconcile(
        request.args.get("product_id"),
        request.args.get("warehouse_id"),
    )
    return result.to_dict(), 200


@inventory_bp.post("/adjust")
@require_actor
def adjust_inventory_route():
    """
    Manual stock correction.

    Body: {product_id, warehouse_id, quantity, direction: IN|OUT, notes?, outlet_id?}
    """
    payload = request.get_json(silent=True) or {}
    inventory = get_services().inventory.adjust(
        product_id=payload.get("product_id"),
        warehouse_id=payload.get("warehouse_id"),
        quantity=payload.get("quantity"),
        direction=payload.get("direction") or payload.get("type"),
        notes=payload.get("notes"),
        outlet_id=payload.get("outlet_id"),
        user_id=g.user_id,
    )
    return {"inventory": inventory.to_dict()}, 201


@inventory_bp.post("/transfer")
@require_actor
def transfer_inventory_route():
    """
    Move stock between warehouses.

    Body: {product_id, from_warehouse_id, to_warehouse_id, quantity, outlet_id?, notes?}
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().inventory.transfer(
        product_id=payload.get("product_id"),
        from_warehouse_id=payload.get("from_warehouse_id"),
        to_warehouse_id=payload.get("to_warehouse_id"),
        quantity=payload.get("quantity"),
        outlet_id=payload.get("outlet_id"),
        notes=payload.get("notes"),
        user_id=g.user_id,
    )
    return {
        "source": result["source"].to_dict(),
        "destination": result["destination"].to_dict(),
    }, 201
