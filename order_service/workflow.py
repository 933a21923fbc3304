"""
workflow.py — Core Orchestration Logic for Order Intake

This module contains the order intake workflow. It coordinates pricing,
coupon resolution, the atomic order + idempotency write and the payment
session hand-off in the correct sequence.

Workflow Overview:
1. Reject requests without an idempotency key
2. Replay the stored order if the key was seen before (no pricing)
3. Otherwise price the cart from the pricing caches, apply coupon, taxes and
   delivery charge, and store order and idempotency record in one transaction
4. Create a payment session for card payments (outside the transaction)
5. Publish an order event (best effort)
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .coupons import resolve_discount
from .errors import DuplicateKey, GatewayError, MissingIdempotencyKey, TransactionFailure
from .ledger import create_order_with_key, find_idempotent_response
from .models import NewOrderRequest, Order, PaymentMode
from .pricing import compute_total, round_half_up

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderIntakeDependencies:
    """
    Everything the workflow talks to.

    Attributes:
        session_factory: Context-manager factory from `db.make_session_factory`.
        payment_gateway: Object with `create_session(...)` (e.g. `clients.PaymentClient`).
        settings (Settings): Tax rate, delivery charge, currency, order topic.
        publisher: Optional object with `send_message(topic, message)`.
    """
    session_factory: Callable
    payment_gateway: object
    settings: Settings
    publisher: Optional[object] = None


@dataclass(frozen=True)
class OrderIntakeResult:
    order: Order
    payment_url: Optional[str] = None
    payment_error: Optional[str] = None
    replayed: bool = False


@dataclass(frozen=True)
class PriceBreakdown:
    total: int
    discount: int
    taxes: int
    delivery_charge: int

    @property
    def final_price(self) -> int:
        return self.total - self.discount + self.taxes + self.delivery_charge


def price_order(session, order_request: NewOrderRequest, settings: Settings) -> PriceBreakdown:
    total = compute_total(session, order_request.cart, order_request.tenantId)

    discount_amount = 0
    if order_request.couponCode:
        discount_percent = resolve_discount(session, order_request.couponCode, order_request.tenantId)
        discount_amount = round_half_up(total * discount_percent / 100)

    taxes_amount = round_half_up((total - discount_amount) * settings.tax_rate)
    return PriceBreakdown(
        total=total,
        discount=discount_amount,
        taxes=taxes_amount,
        delivery_charge=settings.delivery_charge,
    )


def create_order(order_request: NewOrderRequest, idempotency_key: Optional[str],
                 deps: OrderIntakeDependencies) -> OrderIntakeResult:
    """
    Executes the order intake workflow for a single request.

    Args:
        order_request (NewOrderRequest): Validated request body.
        idempotency_key (str | None): Value of the Idempotency-Key header.
        deps (OrderIntakeDependencies): Collaborators.

    Returns:
        OrderIntakeResult: The order (new or replayed) and, for card payments,
        the payment URL or the reason it could not be created.

    Raises:
        MissingIdempotencyKey: If no key was supplied. Nothing is priced or stored.
        PricingLookupError: If a cached product lacks a requested option (new keys only).
        TransactionFailure: If storing the order failed; nothing was stored.

    Atomicity:
        Order and idempotency record are written in one transaction. The
        payment session is created after commit; its failure does not undo
        the order.
    """
    if not idempotency_key or not idempotency_key.strip():
        raise MissingIdempotencyKey()

    log_prefix = f"[Key: {idempotency_key}]"
    log.info(f"{log_prefix} Neue Bestellung für Tenant {order_request.tenantId} erhalten.")

    replayed = False
    try:
        with deps.session_factory() as session:
            # --- 1. Idempotenz-Prüfung ---
            # The stored order is the reply for its key, even if the cart no longer prices.
            order = find_idempotent_response(session, idempotency_key)
            if order is not None:
                replayed = True
                log.info(f"{log_prefix} Bekannter Idempotency-Key. Liefere Order {order.id} erneut aus.")
            else:
                # --- 2. Preisberechnung und atomarer Schreibvorgang ---
                prices = price_order(session, order_request, deps.settings)
                log.info(
                    f"{log_prefix} Preis berechnet: total={prices.total} discount={prices.discount} "
                    f"taxes={prices.taxes} delivery={prices.delivery_charge} final={prices.final_price}"
                )
                order = create_order_with_key(
                    session,
                    order_request,
                    idempotency_key,
                    total=prices.final_price,
                    discount=prices.discount,
                    taxes=prices.taxes,
                    delivery_charges=prices.delivery_charge,
                )
    except DuplicateKey:
        # Paralleler Request war schneller; dessen Ergebnis gilt.
        order = _load_existing(deps, idempotency_key)
        replayed = True
    except SQLAlchemyError as e:
        log.error(f"{log_prefix} Transaktion fehlgeschlagen, Rollback durchgeführt: {e}")
        raise TransactionFailure(f"Order could not be stored: {e}") from e

    if not replayed:
        log.info(f"[Order: {order.id}] Order gespeichert (Status: {order.orderStatus.value}).")
        _publish_order_created(deps, order)

    # --- 3. Payment Gateway ---
    payment_url = None
    payment_error = None
    if order.paymentMode == PaymentMode.CARD:
        try:
            session_data = deps.payment_gateway.create_session(
                idempotent_key=idempotency_key,
                amount=order.total,
                order_id=order.id,
                currency=deps.settings.currency,
                tenant_id=order.tenantId,
            )
            payment_url = session_data["paymentUrl"]
            log.info(f"[Order: {order.id}] Payment Session erstellt.")
        except GatewayError as e:
            # Order bleibt gültig; Zahlung kann mit demselben Key erneut angestoßen werden.
            log.error(f"[Order: {order.id}] Payment Session fehlgeschlagen: {e}")
            payment_error = str(e)

    return OrderIntakeResult(
        order=order,
        payment_url=payment_url,
        payment_error=payment_error,
        replayed=replayed,
    )


def _load_existing(deps: OrderIntakeDependencies, idempotency_key: str) -> Order:
    log_prefix = f"[Key: {idempotency_key}]"
    try:
        with deps.session_factory() as session:
            order = find_idempotent_response(session, idempotency_key)
    except SQLAlchemyError as e:
        raise TransactionFailure(f"Existing order could not be loaded: {e}") from e
    if order is None:
        raise TransactionFailure(f"Idempotency key '{idempotency_key}' conflicted but no record was found.")
    log.info(f"{log_prefix} Race verloren. Liefere Order {order.id} des parallelen Requests aus.")
    return order


def _publish_order_created(deps: OrderIntakeDependencies, order: Order):
    if deps.publisher is None:
        return
    message = json.dumps({"event_type": "ORDER_CREATE", "data": order.model_dump(mode="json")})
    try:
        deps.publisher.send_message(deps.settings.order_topic, message)
    except Exception as e:
        log.error(f"[Order: {order.id}] Order-Event konnte nicht veröffentlicht werden: {e}")
