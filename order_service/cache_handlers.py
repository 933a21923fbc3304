"""
Pricing cache update handlers.

Each handler receives an open session and the raw message payload (a JSON
string) and upserts the matching cache row by its natural key. Messages are
full snapshots of an entity, so a handler overwrites whatever is cached;
delivering the same message twice leaves the same state behind.

Product payload:
    {"id": "p-1", "tenantId": "7",
     "priceConfiguration": {"Size": {"priceType": "base",
                                     "availableOptions": {"Small": 400, "Large": 600}}}}

Topping payload:
    {"id": "t-1", "tenantId": "7", "price": 50}
"""

import json
import logging
from typing import Dict

from .db import ProductPricingCache, ToppingPricingCache, utcnow
from .errors import CacheUpdateError

log = logging.getLogger(__name__)


def _parse(payload) -> dict:
    if payload is None:
        raise CacheUpdateError("Empty message payload.")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise CacheUpdateError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise CacheUpdateError("Payload must be a JSON object.")
    return data


def _require(data: dict, field: str):
    value = data.get(field)
    if value is None or value == "":
        raise CacheUpdateError(f"Payload is missing '{field}'.")
    return value


def _as_price(value, context: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise CacheUpdateError(f"Invalid price {value!r} for {context}.")
    return int(value)


def _flatten_price_configuration(raw) -> Dict[str, Dict[str, int]]:
    """{group: {"availableOptions": {option: price}}} -> {group: {option: price}}"""
    if not isinstance(raw, dict):
        raise CacheUpdateError("'priceConfiguration' must be an object.")
    flattened = {}
    for group, config in raw.items():
        options = config.get("availableOptions") if isinstance(config, dict) else None
        if not isinstance(options, dict):
            raise CacheUpdateError(f"Option group '{group}' has no 'availableOptions'.")
        flattened[group] = {
            option: _as_price(price, f"{group}/{option}") for option, price in options.items()
        }
    return flattened


def handle_product_update(session, payload):
    data = _parse(payload)
    product_id = str(_require(data, "id"))
    tenant_id = str(_require(data, "tenantId"))
    price_configuration = _flatten_price_configuration(_require(data, "priceConfiguration"))

    entry = session.get(ProductPricingCache, product_id)
    if entry is None:
        session.add(
            ProductPricingCache(
                product_id=product_id,
                tenant_id=tenant_id,
                price_configuration=price_configuration,
            )
        )
    else:
        entry.tenant_id = tenant_id
        entry.price_configuration = price_configuration
        entry.updated_at = utcnow()
    log.info(f"[CACHE] Produktpreise aktualisiert: {product_id} (Tenant: {tenant_id})")


def handle_topping_update(session, payload):
    data = _parse(payload)
    topping_id = str(_require(data, "id"))
    tenant_id = str(_require(data, "tenantId"))
    price = _as_price(data.get("price"), f"topping {topping_id}")

    entry = session.get(ToppingPricingCache, topping_id)
    if entry is None:
        session.add(ToppingPricingCache(topping_id=topping_id, tenant_id=tenant_id, price=price))
    else:
        entry.tenant_id = tenant_id
        entry.price = price
        entry.updated_at = utcnow()
    log.info(f"[CACHE] Topping-Preis aktualisiert: {topping_id} = {price} (Tenant: {tenant_id})")
