# backend/retailops/routes/pricing.py
"""
Pricing routes.

- GET  /api/pricing/resolve?product_id=&outlet_id=&customer_id=
- POST /api/pricing/quote                      {outlet_id, customer_id?, items:[{product_id}]}
- GET  /api/pricing/tiers
- POST /api/pricing/tiers                      {name, code, description?, is_default?}
- PATCH /api/pricing/tiers/<id>
- GET  /api/pricing/products/<id>/prices
- PUT  /api/pricing/products/<id>/prices       {price_tier_id, outlet_id?, price}
"""
from flask import Blueprint, request

from ..decorators import require_actor
from ..services.registry import get_services


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.get("/resolve")
@require_actor
def resolve_price_route():
    services = get_services()
    quote = services.pricing.resolve_price(
        product_id=request.args.get("product_id"),
        outlet_id=request.args.get("outlet_id"),
        customer_id=request.args.get("customer_id"),
    )
    return quote.to_dict(), 200


@pricing_bp.post("/quote")
@require_actor
def price_quote_route():
    payload = request.get_json(silent=True) or {}
    services = get_services()
    quotes = services.pricing.get_price_quote(
        payload.get("items") or [],
        outlet_id=payload.get("outlet_id"),
        customer_id=payload.get("customer_id"),
    )
    return {"items": [q.to_dict() for q in quotes]}, 200


@pricing_bp.get("/tiers")
@require_actor
def list_price_tiers_route():
    tiers = get_services().pricing.list_price_tiers()
    return {"items": [t.to_dict() for t in tiers], "count": len(tiers)}, 200


@pricing_bp.post("/tiers")
@require_actor
def create_price_tier_route():
    payload = request.get_json(silent=True) or {}
    tier = get_services().pricing.create_price_tier(payload)
    return tier.to_dict(), 201


@pricing_bp.patch("/tiers/<int:tier_id>")
@require_actor
def update_price_tier_route(tier_id: int):
    payload = request.get_json(silent=True) or {}
    tier = get_services().pricing.update_price_tier(tier_id, payload)
    return tier.to_dict(), 200


@pricing_bp.get("/products/<int:product_id>/prices")
@require_actor
def product_prices_route(product_id: int):
    prices = get_services().pricing.get_product_prices(product_id)
    return {"items": [p.to_dict() for p in prices], "count": len(prices)}, 200


@pricing_bp.put("/products/<int:product_id>/prices")
@require_actor
def set_product_price_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    payload["product_id"] = product_id
    row = get_services().pricing.set_product_price(payload)
    return row.to_dict(), 200
