"""
FastAPI Application Entry Point

Order Lifecycle Orchestrator - order service of the marketplace.
Uses in-memory collaborators in development and the sibling services over
HTTP in staging/production.

Endpoints:
    - POST   /orders: Place an order
    - GET    /orders: List enriched orders (by restaurant, by customer, or all)
    - GET    /orders/{id}: Enriched order
    - PUT    /orders/{id}: Status transition / partial update
    - DELETE /orders/{id}: Soft delete
    - GET    /orders/{id}/events: Outbox rows of an order
    - GET    /outbox/events: Outbox rows by status
    - POST   /outbox/reconcile: Retry failed side effects now
    - GET    /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.config import get_settings, setup_logging
from order_service.core.exceptions import OrderServiceError
from order_service.database import engine, get_db, init_db
from order_service.models import OrderEventStatus
from order_service.repository import SqlAlchemyOrderRepository
from order_service.schemas import (
    EnrichedOrderResponse,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderEventResponse,
    OrderListResponse,
    OrderResponse,
    OrderUpdate,
    OrderUpdateResponse,
    PartialFailureResponse,
    ReconcileResponse,
)
from order_service.services.directory import BaseDirectoryService, get_directory_service
from order_service.services.events import BaseEventPublisher, get_event_publisher
from order_service.services.ledger import BaseLedgerService, get_ledger_service
from order_service.services.notifications import get_notification_service
from order_service.services.orchestrator import OrderOrchestrator

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Transition policy: {settings.transition_policy.value}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    directory = get_directory_service()
    ledger = get_ledger_service()
    notifications = get_notification_service()
    publisher = get_event_publisher()
    logger.info(f"✅ Directory Service: {directory.provider_name}")
    logger.info(f"✅ Ledger Service: {ledger.provider_name}")
    logger.info(f"✅ Notification Service: {notifications.provider_name}")
    logger.info(f"✅ Event Publisher: {publisher.provider_name}")

    if settings.use_real_services:
        suspicious = settings.validate_production_config()
        if suspicious:
            logger.warning(f"⚠️ Collaborators still pointing at localhost: {suspicious}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await directory.close()
    await ledger.close()
    await notifications.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order lifecycle orchestrator: order state machine, delivery and "
        "notification side effects, enriched order views."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The API gateway restricts origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    directory: BaseDirectoryService = Depends(get_directory_service),
    ledger: BaseLedgerService = Depends(get_ledger_service),
    publisher: BaseEventPublisher = Depends(get_event_publisher),
) -> OrderOrchestrator:
    """Build a request-scoped orchestrator on the request's session."""
    return OrderOrchestrator(
        repository=SqlAlchemyOrderRepository(db),
        directory=directory,
        ledger=ledger,
        publisher=publisher,
        settings=settings,
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    directory: BaseDirectoryService = Depends(get_directory_service),
    ledger: BaseLedgerService = Depends(get_ledger_service),
) -> HealthResponse:
    """Verify the database and the sibling services."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    directory_status = "healthy" if await directory.health_check() else "unhealthy"
    ledger_status = "healthy" if await ledger.health_check() else "unhealthy"
    notification_status = "healthy" if await get_notification_service().health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, directory_status, ledger_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        directory_service=directory_status,
        delivery_service=ledger_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> OrderCreateResponse:
    """
    Place a new order.

    The restaurant is notified asynchronously; a notification problem never
    fails the request.
    """
    order = await orchestrator.create_order(
        customer_id=order_data.customer_id,
        restaurant_id=order_data.restaurant_id,
        total_price=order_data.total_price,
        items=order_data.items,
        status=order_data.status,
        address=order_data.address,
    )

    return OrderCreateResponse(
        message="Order created successfully",
        order_id=order.id,
        status=order.status,
    )


@app.get(
    "/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    restaurant_id: Optional[int] = Query(None, ge=1),
    customer_id: Optional[int] = Query(None, ge=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> OrderListResponse:
    """Enriched orders of a restaurant, of a customer, or all orders."""
    total, views = await orchestrator.list_enriched_orders(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        skip=skip,
        limit=limit,
    )
    return OrderListResponse(
        total=total,
        orders=[EnrichedOrderResponse(**view) for view in views],
    )


@app.get(
    "/orders/{order_id}",
    response_model=EnrichedOrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    include_deleted: bool = Query(False),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> EnrichedOrderResponse:
    """Get an order with its items, restaurant, customer and delivery."""
    view = await orchestrator.get_enriched_order(order_id, include_deleted=include_deleted)
    return EnrichedOrderResponse(**view)


@app.put(
    "/orders/{order_id}",
    response_model=OrderUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": PartialFailureResponse},
    },
    tags=["Orders"],
    summary="Transition Order",
)
async def update_order(
    order_id: int,
    update: OrderUpdate,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> OrderUpdateResponse:
    """
    Change status and/or price of an order.

    Moving to ``waiting_for_pickup`` with a ``courier_id`` assigns the
    courier on the Ledger; moving to ``cancelled`` with a ``courier_id``
    deactivates that courier's delivery. If the Ledger call fails the order
    keeps its new state and a 500 partial failure payload is returned.
    """
    order = await orchestrator.transition_order(
        order_id,
        status=update.status,
        total_price=update.total_price,
        courier_id=update.courier_id,
    )
    return OrderUpdateResponse(
        message="Order updated successfully",
        order=OrderResponse.model_validate(order),
    )


@app.delete(
    "/orders/{order_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def delete_order(
    order_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """Soft delete an order."""
    await orchestrator.delete_order(order_id)
    return MessageResponse(message="Order deleted successfully")


# =============================================================================
# OUTBOX ENDPOINTS
# =============================================================================

@app.get(
    "/orders/{order_id}/events",
    response_model=list[OrderEventResponse],
    tags=["Outbox"],
)
async def list_order_events(
    order_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> list[OrderEventResponse]:
    """Side effects recorded for an order."""
    events = await orchestrator.list_events(order_id=order_id)
    return [OrderEventResponse.model_validate(e) for e in events]


@app.get(
    "/outbox/events",
    response_model=list[OrderEventResponse],
    tags=["Outbox"],
)
async def list_outbox_events(
    status: Optional[OrderEventStatus] = Query(None),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> list[OrderEventResponse]:
    """Outbox rows, e.g. ``?status=abandoned`` for manual reconciliation."""
    events = await orchestrator.list_events(status=status)
    return [OrderEventResponse.model_validate(e) for e in events]


@app.post(
    "/outbox/reconcile",
    response_model=ReconcileResponse,
    tags=["Outbox"],
)
async def reconcile_outbox(
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
) -> ReconcileResponse:
    """Retry failed side effects now instead of waiting for the worker."""
    report = await orchestrator.reconcile_events()
    return ReconcileResponse(**report.to_dict())


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderServiceError)
async def order_service_exception_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    """Translate the error taxonomy into JSON responses."""
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are answered with 400, like service-level validation."""
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")

    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation Error",
            "message": f"{location}: {message}" if location else message,
            "details": errors,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "error": "Internal Server Error",
        "message": str(exc) if settings.debug else "An unexpected error occurred",
    }
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("order_service.main:app", host=settings.api_host, port=settings.api_port)
