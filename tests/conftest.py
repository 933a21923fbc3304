from datetime import datetime, timedelta, timezone

import pytest

from order_service.config import Settings
from order_service.db import (
    Coupon,
    ProductPricingCache,
    ToppingPricingCache,
    create_db_engine,
    make_session_factory,
)
from order_service.errors import GatewayError
from order_service.workflow import OrderIntakeDependencies


class FakePaymentGateway:
    """Records create_session calls; fails with GatewayError when `fail` is set."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_session(self, idempotent_key, amount, order_id, currency, tenant_id):
        self.calls.append(
            {
                "idempotent_key": idempotent_key,
                "amount": amount,
                "order_id": order_id,
                "currency": currency,
                "tenant_id": tenant_id,
            }
        )
        if self.fail:
            raise GatewayError("Payment gateway returned HTTP 503")
        return {"paymentUrl": f"https://checkout.example.test/pay/{idempotent_key}"}


class FakePublisher:
    def __init__(self):
        self.messages = []

    def send_message(self, topic, message):
        self.messages.append((topic, message))


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'orders.db'}",
        cache_listener_enabled=False,
        log_file="",
        listener_retry_seconds=0,
    )


@pytest.fixture()
def engine(settings):
    engine = create_db_engine(settings.database_url)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture()
def publisher():
    return FakePublisher()


@pytest.fixture()
def deps(session_factory, payment_gateway, settings, publisher):
    return OrderIntakeDependencies(
        session_factory=session_factory,
        payment_gateway=payment_gateway,
        settings=settings,
        publisher=publisher,
    )


@pytest.fixture()
def add_product(session_factory):
    def _add(product_id, price_configuration, tenant_id="1"):
        with session_factory() as session:
            session.add(
                ProductPricingCache(
                    product_id=product_id,
                    tenant_id=tenant_id,
                    price_configuration=price_configuration,
                )
            )

    return _add


@pytest.fixture()
def add_topping(session_factory):
    def _add(topping_id, price, tenant_id="1"):
        with session_factory() as session:
            session.add(ToppingPricingCache(topping_id=topping_id, tenant_id=tenant_id, price=price))

    return _add


@pytest.fixture()
def add_coupon(session_factory):
    def _add(code, discount, valid_upto=None, tenant_id="1", title="Promo"):
        if valid_upto is None:
            valid_upto = datetime.now(timezone.utc) + timedelta(days=7)
        with session_factory() as session:
            session.add(
                Coupon(title=title, code=code, discount=discount, valid_upto=valid_upto, tenant_id=tenant_id)
            )

    return _add


@pytest.fixture()
def pizza_menu(add_product, add_topping, add_coupon):
    """A tenant with one pizza, one cached topping and a 10% coupon."""
    add_product(
        "pizza",
        {
            "Size": {"Small": 400, "Large": 600},
            "Crust": {"Thin": 0, "Thick": 50},
        },
    )
    add_topping("cheese", 50)
    add_coupon("SAVE10", 10)
