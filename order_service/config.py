"""
Runtime configuration for the order service.

All settings come from environment variables (a local `.env` file is loaded
first when present). `load_settings()` is called once by the application
factory; the resulting `Settings` value is passed explicitly to the parts
that need it.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Service-Adressen und Defaults (überschreibbar per Env Vars)
DEFAULT_DATABASE_URL = "sqlite:///data/orders.db"
DEFAULT_PAYMENT_SERVICE_URL = "http://payment_service:8001"
DEFAULT_RABBITMQ_HOST = "localhost"
DEFAULT_CACHE_TOPICS = "product,topping"
DEFAULT_TAX_RATE = 0.18
DEFAULT_DELIVERY_CHARGE = 100
DEFAULT_CURRENCY = "inr"


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    payment_service_url: str = DEFAULT_PAYMENT_SERVICE_URL
    rabbitmq_host: str = DEFAULT_RABBITMQ_HOST
    rabbitmq_user: str = "guest"
    rabbitmq_password: str = "guest"
    cache_topics: List[str] = field(default_factory=lambda: _parse_list(DEFAULT_CACHE_TOPICS))
    order_topic: str = "order"
    tax_rate: float = DEFAULT_TAX_RATE
    delivery_charge: int = DEFAULT_DELIVERY_CHARGE
    currency: str = DEFAULT_CURRENCY
    log_level: str = "INFO"
    log_file: str = "order_service.log"
    cache_listener_enabled: bool = True
    listener_retry_seconds: float = 10.0


def load_settings() -> Settings:
    """Builds `Settings` from the process environment."""
    tax_rate = float(os.getenv("TAX_RATE", DEFAULT_TAX_RATE))
    if not 0 <= tax_rate < 1:
        raise ValueError(f"TAX_RATE must be a fraction in [0, 1), got {tax_rate}")
    delivery_charge = int(os.getenv("DELIVERY_CHARGE", DEFAULT_DELIVERY_CHARGE))
    if delivery_charge < 0:
        raise ValueError(f"DELIVERY_CHARGE must not be negative, got {delivery_charge}")

    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        payment_service_url=os.getenv("PAYMENT_SERVICE_URL", DEFAULT_PAYMENT_SERVICE_URL),
        rabbitmq_host=os.getenv("RABBITMQ_HOST", DEFAULT_RABBITMQ_HOST),
        rabbitmq_user=os.getenv("RABBITMQ_USER", "guest"),
        rabbitmq_password=os.getenv("RABBITMQ_PASSWORD", "guest"),
        cache_topics=_parse_list(os.getenv("CACHE_TOPICS", DEFAULT_CACHE_TOPICS)),
        order_topic=os.getenv("ORDER_TOPIC", "order"),
        tax_rate=tax_rate,
        delivery_charge=delivery_charge,
        currency=os.getenv("CURRENCY", DEFAULT_CURRENCY).lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "order_service.log"),
        cache_listener_enabled=_parse_bool(os.getenv("CACHE_LISTENER_ENABLED", "true")),
        listener_retry_seconds=float(os.getenv("LISTENER_RETRY_SECONDS", "10")),
    )
