"""
coupons.py — Coupon Resolver

Looks up a coupon by code and tenant and returns its discount percentage.
Coupons are created by another service; this module only reads them.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select

from .db import Coupon, as_utc

log = logging.getLogger(__name__)


def resolve_discount(session, code: str, tenant_id: str, now: Optional[datetime] = None) -> int:
    """
    Returns the discount percentage (0-100) of a coupon.

    Args:
        session: Open database session.
        code (str): Coupon code entered by the customer.
        tenant_id (str): Tenant the coupon must belong to.
        now (datetime, optional): Reference time, defaults to the current UTC time.

    Returns:
        int: The coupon's discount, or 0 if the coupon does not exist for this
        tenant or its validUpto lies strictly before `now`.
    """
    coupon = session.execute(
        select(Coupon).where(Coupon.code == code, Coupon.tenant_id == tenant_id)
    ).scalar_one_or_none()

    if coupon is None:
        log.info(f"[Tenant: {tenant_id}] Coupon '{code}' nicht gefunden.")
        return 0

    now = now or datetime.now(timezone.utc)
    if as_utc(coupon.valid_upto) < as_utc(now):
        log.info(f"[Tenant: {tenant_id}] Coupon '{code}' ist abgelaufen ({coupon.valid_upto}).")
        return 0

    return max(0, min(100, coupon.discount))
