"""
Tenant Scoping Helpers

WHY: Every id arriving from a client must be checked against the acting
business before it is used. A row from another business is reported exactly
like a missing row (NotFoundError) so ids never leak across tenants.

USAGE:
    outlet = require_outlet(tx.session, business_id, outlet_id)
    warehouse = require_warehouse(tx.session, business_id, warehouse_id)
"""

from __future__ import annotations

import logging

from ..errors import NotFoundError
from ..models import Customer, Outlet, Product, Supplier, Warehouse


logger = logging.getLogger(__name__)


def _require(query, label: str, entity_id):
    row = query.first()
    if row is None:
        logger.debug("%s %s not found in tenant scope", label, entity_id)
        raise NotFoundError(f"{label} {entity_id} not found")
    return row


def require_product(session, business_id: int, product_id: int) -> Product:
    return _require(
        session.query(Product).filter_by(id=product_id, business_id=business_id),
        "Product", product_id,
    )


def require_outlet(session, business_id: int, outlet_id: int) -> Outlet:
    return _require(
        session.query(Outlet).filter_by(id=outlet_id, business_id=business_id),
        "Outlet", outlet_id,
    )


def require_warehouse(session, business_id: int, warehouse_id: int) -> Warehouse:
    # Warehouses belong to outlets; the outlet carries the business
    return _require(
        session.query(Warehouse)
        .join(Outlet, Warehouse.outlet_id == Outlet.id)
        .filter(Warehouse.id == warehouse_id, Outlet.business_id == business_id),
        "Warehouse", warehouse_id,
    )


def require_customer(session, business_id: int, customer_id: int) -> Customer:
    return _require(
        session.query(Customer).filter_by(id=customer_id, business_id=business_id),
        "Customer", customer_id,
    )


def require_supplier(session, business_id: int, supplier_id: int) -> Supplier:
    return _require(
        session.query(Supplier).filter_by(id=supplier_id, business_id=business_id),
        "Supplier", supplier_id,
    )
