"""
main.py — FastAPI Entry Point for the Order Service

This module provides the REST API of the order service and wires its
collaborators together.

Responsibilities:
    • Accept new orders via HTTP API (idempotent by Idempotency-Key header)
    • Serve stored orders
    • Start and stop the background thread consuming pricing cache updates
    • Provide system health information
"""

from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clients import MessageBroker, PaymentClient
from .config import Settings, load_settings
from .db import create_db_engine, make_session_factory
from .dispatcher import CacheUpdateDispatcher, CacheUpdateListener
from .errors import MissingIdempotencyKey, PricingLookupError, TransactionFailure
from .ledger import get_order_by_id, get_orders_by_customer_id
from .logging_config import get_logger, setup_logging
from .models import NewOrderRequest, OrderResponse
from .workflow import OrderIntakeDependencies, create_order

log = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, session_factory=None, payment_gateway=None,
               publisher=None, configure_logging: bool = True) -> FastAPI:
    """
    Builds the application.

    Every collaborator can be passed in (tests do); missing ones are built from `settings`.
    """
    settings = settings or load_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_file)

    if session_factory is None:
        session_factory = make_session_factory(create_db_engine(settings.database_url))
    if payment_gateway is None:
        payment_gateway = PaymentClient(base_url=settings.payment_service_url)
    if publisher is None:
        publisher = MessageBroker.from_settings(settings)

    app = FastAPI(title="Order Service")
    app.state.settings = settings
    app.state.deps = OrderIntakeDependencies(
        session_factory=session_factory,
        payment_gateway=payment_gateway,
        settings=settings,
        publisher=publisher,
    )
    app.state.dispatcher = CacheUpdateDispatcher(session_factory)
    app.state.listener = None

    # Startup Event: Launch Cache Update Listener
    @app.on_event("startup")
    def on_startup():
        """
        Starts the background thread consuming pricing cache updates.

        The thread runs as a daemon; it reconnects on its own after broker
        outages and is stopped on shutdown.
        """
        log.info("Order-Service startet...")
        if not settings.cache_listener_enabled:
            log.info("Cache Update Listener deaktiviert.")
            return
        listener = CacheUpdateListener(settings, app.state.dispatcher)
        listener.start_in_background()
        app.state.listener = listener
        log.info("Cache Update Listener Thread gestartet.")

    @app.on_event("shutdown")
    def on_shutdown():
        if app.state.listener is not None:
            app.state.listener.stop()
        if isinstance(publisher, MessageBroker):
            publisher.disconnect_producer()
        log.info("Order-Service beendet.")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": "Invalid request.", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(MissingIdempotencyKey)
    async def missing_key_handler(request: Request, exc: MissingIdempotencyKey):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @app.exception_handler(PricingLookupError)
    async def pricing_error_handler(request: Request, exc: PricingLookupError):
        return JSONResponse(
            status_code=400,
            content={
                "message": str(exc),
                "productId": exc.product_id,
                "group": exc.group,
                "option": exc.option,
            },
        )

    @app.exception_handler(TransactionFailure)
    async def transaction_error_handler(request: Request, exc: TransactionFailure):
        log.critical(f"Order konnte nicht gespeichert werden: {exc}")
        return JSONResponse(status_code=500, content={"message": "Internal server error while storing order."})

    # API Endpoint: Client → Order Service
    @app.post("/orders", status_code=201, response_model=OrderResponse)
    def submit_order(
            order: NewOrderRequest,
            idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ):
        """
        Creates an order exactly once per Idempotency-Key.

        Repeating the request with the same key returns the originally stored
        order, whatever the body says. For card payments the response carries
        the payment URL; if the gateway failed, `paymentError` explains why
        while the order itself is stored.
        """
        result = create_order(order, idempotency_key, app.state.deps)
        return OrderResponse(
            paymentUrl=result.payment_url,
            paymentError=result.payment_error,
            order=result.order,
        )

    @app.get("/orders/{order_id}")
    def read_order(order_id: str):
        with session_factory() as session:
            order = get_order_by_id(session, order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found.")
        return order.model_dump(mode="json", exclude={"cart"})

    @app.get("/customers/{customer_id}/orders")
    def read_customer_orders(customer_id: str):
        with session_factory() as session:
            orders = get_orders_by_customer_id(session, customer_id)
        return [order.model_dump(mode="json", exclude={"cart"}) for order in orders]

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint for monitoring systems and container orchestrators.
        """
        listener = app.state.listener
        return {"status": "ok", "cacheListener": "running" if listener is not None else "disabled"}

    return app


def jsonable_errors(exc: RequestValidationError):
    """Field errors as plain JSON (location, message, type)."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
