"""
ledger.py — Order Ledger and Idempotency Ledger

The order ledger is the unit of truth for "has this order been created".
The idempotency ledger maps a client-supplied key to the snapshot of the
order created for it; the key column is the primary key, so the database
rejects a second record for the same key.

All functions take an open session; committing is the caller's business.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .db import IdempotencyRecord, OrderRecord, as_utc
from .errors import DuplicateKey
from .models import NewOrderRequest, Order, OrderStatus, PaymentStatus

log = logging.getLogger(__name__)


def order_snapshot(record: OrderRecord, include_cart: bool = True) -> Order:
    return Order(
        id=record.id,
        tenantId=record.tenant_id,
        customerId=record.customer_id,
        cart=record.cart if include_cart else None,
        address=record.address,
        comment=record.comment,
        deliveryCharges=record.delivery_charges,
        discount=record.discount,
        taxes=record.taxes,
        total=record.total,
        orderStatus=record.order_status,
        paymentMode=record.payment_mode,
        paymentStatus=record.payment_status,
        createdAt=as_utc(record.created_at),
    )


# --- Idempotency Ledger ---

def find_idempotent_response(session, key: str) -> Optional[Order]:
    """Returns the order snapshot stored for `key`, or None."""
    record = session.get(IdempotencyRecord, key)
    if record is None:
        return None
    return Order.model_validate(record.response)


def create_order_with_key(session, order_request: NewOrderRequest, key: str, *,
                          total: int, discount: int, taxes: int, delivery_charges: int) -> Order:
    """
    Inserts a new order and the idempotency record binding `key` to it.

    Both rows are flushed inside the caller's transaction; they become visible
    together on commit or not at all.

    Raises:
        DuplicateKey: If a record for `key` already exists (lost race).
    """
    record = OrderRecord(
        id=str(uuid.uuid4()),
        tenant_id=order_request.tenantId,
        customer_id=order_request.customerId,
        cart=[item.model_dump(mode="json") for item in order_request.cart],
        address=order_request.address,
        comment=order_request.comment,
        delivery_charges=delivery_charges,
        discount=discount,
        taxes=taxes,
        total=total,
        order_status=OrderStatus.RECEIVED.value,
        payment_mode=order_request.paymentMode.value,
        payment_status=PaymentStatus.PENDING.value,
    )
    session.add(record)
    session.flush()

    snapshot = order_snapshot(record)
    session.add(
        IdempotencyRecord(
            key=key,
            order_id=record.id,
            response=snapshot.model_dump(mode="json"),
        )
    )
    try:
        session.flush()
    except IntegrityError as e:
        log.warning(f"[Key: {key}] Idempotency-Key wurde parallel bereits gespeichert: {e.orig}")
        raise DuplicateKey(key) from e

    return snapshot


# --- Order Ledger ---

def get_order_by_id(session, order_id: str) -> Optional[Order]:
    record = session.get(OrderRecord, order_id)
    if record is None:
        return None
    return order_snapshot(record, include_cart=False)


def get_orders_by_customer_id(session, customer_id: str) -> List[Order]:
    records = session.execute(
        select(OrderRecord)
        .where(OrderRecord.customer_id == customer_id)
        .order_by(OrderRecord.created_at.desc())
    ).scalars()
    return [order_snapshot(record, include_cart=False) for record in records]


def update_order_payment_status(session, order_id: str, status: PaymentStatus) -> Optional[Order]:
    """Entry point for payment status changes reported by the gateway."""
    record = session.get(OrderRecord, order_id)
    if record is None:
        return None
    record.payment_status = PaymentStatus(status).value
    session.flush()
    log.info(f"[Order: {order_id}] Zahlungsstatus aktualisiert: {record.payment_status}")
    return order_snapshot(record, include_cart=False)
