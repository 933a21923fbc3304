"""
pricing.py — Price Computation Engine

Computes the authoritative cart price from the product and topping pricing
caches. The caches are eventually consistent projections fed by the cache
dispatcher; pricing only reads them.

Policies:
    • skip unpriced products: a cart item whose product has no cache entry
      contributes 0 to the total (logged, not an error).
    • client topping price fallback: a topping missing from the cache is
      priced with the price the client sent along with it.
    • a cached product that lacks the requested option group or option is a
      hard error (PricingLookupError).
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping

from sqlalchemy import select

from .db import ProductPricingCache, ToppingPricingCache
from .errors import PricingLookupError
from .models import CartItem, ToppingRef

log = logging.getLogger(__name__)


def round_half_up(value) -> int:
    """Rounds to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def topping_price(topping: ToppingRef, topping_prices: Mapping[str, int]) -> int:
    cached = topping_prices.get(topping.toppingId)
    if cached is None:
        return topping.price
    return cached


def item_total(item: CartItem, price_configuration: Mapping[str, Mapping[str, int]],
               topping_prices: Mapping[str, int]) -> int:
    """
    Price of a single unit of `item` (without quantity).

    Args:
        item (CartItem): The cart line.
        price_configuration (Mapping): Cached {group: {option: price}} of the product.
        topping_prices (Mapping): Cached topping prices by topping id.

    Raises:
        PricingLookupError: If the cached configuration lacks a requested group or option.
    """
    toppings_total = sum(
        topping_price(topping, topping_prices)
        for topping in item.chosenConfiguration.selectedToppings
    )

    product_total = 0
    for group, option in item.chosenConfiguration.priceConfiguration.items():
        options = price_configuration.get(group)
        if options is None or option not in options:
            raise PricingLookupError(item.productId, group, option)
        product_total += options[option]

    return toppings_total + product_total


def load_product_prices(session, product_ids: Iterable[str]) -> Dict[str, Dict[str, Dict[str, int]]]:
    ids = set(product_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(ProductPricingCache).where(ProductPricingCache.product_id.in_(ids))
    ).scalars()
    return {row.product_id: row.price_configuration for row in rows}


def load_topping_prices(session, topping_ids: Iterable[str]) -> Dict[str, int]:
    ids = set(topping_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(ToppingPricingCache).where(ToppingPricingCache.topping_id.in_(ids))
    ).scalars()
    return {row.topping_id: row.price for row in rows}


def compute_total(session, cart: List[CartItem], tenant_id: str) -> int:
    """
    Computes the cart total in minor currency units.

    total = Σ qty × (toppingsTotal + productTotal) over all items whose product
    is present in the pricing cache.
    """
    product_prices = load_product_prices(session, (item.productId for item in cart))
    topping_prices = load_topping_prices(
        session,
        (
            topping.toppingId
            for item in cart
            for topping in item.chosenConfiguration.selectedToppings
        ),
    )

    total = 0
    for item in cart:
        price_configuration = product_prices.get(item.productId)
        if price_configuration is None:
            log.warning(f"[Tenant: {tenant_id}] Kein Preis-Cache für Produkt {item.productId}. Position wird mit 0 bewertet.")
            continue
        total += item.qty * item_total(item, price_configuration, topping_prices)

    return total
