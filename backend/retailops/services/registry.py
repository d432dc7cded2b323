# Overview: Per-request wiring of the core services around one UnitOfWork.

"""
Service registry

WHY: Services take their collaborators (UnitOfWork, Clock, JobSink, settings)
as constructor arguments instead of reaching for module globals. This module
is the single place that knows how to build them:

- build_services(): plain function, used by tests, the CLI and scripts.
- get_services(): Flask helper; builds once per request for g.business_id
  using db.session and the app's configured clock and job sink.

The clock and job sink live in app.extensions so tests can swap them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app, g

from ..config import ServiceSettings
from ..extensions import db
from ..time_utils import Clock
from .document_service import DocumentNumberGenerator
from .inventory_service import InventoryLedger
from .job_service import JobSink, LoggingJobSink
from .pricing_service import PriceResolver
from .purchase_order_service import PurchaseOrderLifecycle
from .sales_service import OrderLifecycle
from .unit_of_work import UnitOfWork


CLOCK_EXTENSION = "retailops.clock"
JOB_SINK_EXTENSION = "retailops.job_sink"


@dataclass
class Services:
    business_id: int
    uow: UnitOfWork
    pricing: PriceResolver
    inventory: InventoryLedger
    orders: OrderLifecycle
    purchase_orders: PurchaseOrderLifecycle


def build_services(
    session_factory: Callable,
    business_id: int,
    *,
    clock: Clock | None = None,
    jobs: JobSink | None = None,
    settings: ServiceSettings | None = None,
) -> Services:
    clock = clock or Clock()
    jobs = jobs or LoggingJobSink()
    settings = settings or ServiceSettings()

    uow = UnitOfWork(session_factory)
    documents = DocumentNumberGenerator(clock)
    pricing = PriceResolver(uow, business_id, settings)
    inventory = InventoryLedger(uow, business_id, clock=clock, jobs=jobs, settings=settings)
    orders = OrderLifecycle(
        uow,
        business_id,
        pricing=pricing,
        inventory=inventory,
        documents=documents,
        clock=clock,
        jobs=jobs,
        settings=settings,
    )
    purchase_orders = PurchaseOrderLifecycle(
        uow,
        business_id,
        inventory=inventory,
        documents=documents,
        clock=clock,
        jobs=jobs,
        settings=settings,
    )
    return Services(
        business_id=business_id,
        uow=uow,
        pricing=pricing,
        inventory=inventory,
        orders=orders,
        purchase_orders=purchase_orders,
    )


def get_services() -> Services:
    """Services for the acting business of the current request (requires @require_actor)."""
    services = getattr(g, "services", None)
    if services is None or services.business_id != g.business_id:
        app = current_app._get_current_object()
        services = build_services(
            lambda: db.session,
            g.business_id,
            clock=app.extensions.get(CLOCK_EXTENSION),
            jobs=app.extensions.get(JOB_SINK_EXTENSION),
            settings=ServiceSettings.from_mapping(app.config),
        )
        g.services = services
    return services
