"""Tests for the price computation engine.

Covers:
- total equals direct summation of qty × (toppings + options)
- items without a cached product contribute 0
- toppings missing from the cache fall back to the client-supplied price
- a cached product lacking the requested group or option raises PricingLookupError
"""

import pytest

from order_service.errors import PricingLookupError
from order_service.models import CartItem
from order_service.pricing import compute_total, item_total, round_half_up, topping_price


def _item(product_id, qty=1, config=None, toppings=()):
    return CartItem(
        productId=product_id,
        qty=qty,
        chosenConfiguration={
            "priceConfiguration": config or {},
            "selectedToppings": [{"toppingId": t, "price": p} for t, p in toppings],
        },
    )


class TestComputeTotal:
    def test_total_is_sum_of_item_totals(self, session_factory, pizza_menu, add_product, add_topping):
        add_product("garlic-bread", {"Size": {"Regular": 150}})
        add_topping("olives", 30)
        cart = [
            _item("pizza", qty=2, config={"Size": "Large", "Crust": "Thick"}, toppings=[("cheese", 0), ("olives", 0)]),
            _item("garlic-bread", qty=3, config={"Size": "Regular"}),
        ]

        with session_factory() as session:
            total = compute_total(session, cart, "1")

        expected = 2 * ((50 + 30) + (600 + 50)) + 3 * (0 + 150)
        assert total == expected == 1910

    def test_item_without_cached_product_contributes_zero(self, session_factory, pizza_menu):
        cart = [
            _item("pizza", config={"Size": "Small", "Crust": "Thin"}),
            _item("unknown-product", qty=5, config={"Size": "Large"}, toppings=[("cheese", 50)]),
        ]

        with session_factory() as session:
            assert compute_total(session, cart, "1") == 400

    def test_cart_of_unknown_products_costs_nothing(self, session_factory):
        with session_factory() as session:
            assert compute_total(session, [_item("ghost", qty=3)], "1") == 0

    def test_uncached_topping_uses_client_price(self, session_factory, pizza_menu):
        cart = [_item("pizza", config={"Size": "Small"}, toppings=[("pineapple", 70)])]

        with session_factory() as session:
            assert compute_total(session, cart, "1") == 470

    def test_cached_topping_price_wins_over_client_price(self, session_factory, pizza_menu):
        cart = [_item("pizza", config={"Size": "Small"}, toppings=[("cheese", 1)])]

        with session_factory() as session:
            assert compute_total(session, cart, "1") == 450

    def test_unknown_option_raises(self, session_factory, pizza_menu):
        cart = [_item("pizza", config={"Size": "Gigantic"})]

        with session_factory() as session:
            with pytest.raises(PricingLookupError) as exc_info:
                compute_total(session, cart, "1")

        assert exc_info.value.product_id == "pizza"
        assert exc_info.value.group == "Size"
        assert exc_info.value.option == "Gigantic"

    def test_unknown_option_group_raises(self, session_factory, pizza_menu):
        cart = [_item("pizza", config={"Sauce": "Tomato"})]

        with session_factory() as session:
            with pytest.raises(PricingLookupError):
                compute_total(session, cart, "1")


class TestHelpers:
    def test_item_total_excludes_quantity(self):
        item = _item("pizza", qty=4, config={"Size": "Small"}, toppings=[("cheese", 10)])
        assert item_total(item, {"Size": {"Small": 400}}, {"cheese": 50}) == 450

    def test_topping_price_fallback(self):
        item = _item("pizza", toppings=[("olives", 25)])
        topping = item.chosenConfiguration.selectedToppings[0]
        assert topping_price(topping, {}) == 25
        assert topping_price(topping, {"olives": 30}) == 30

    @pytest.mark.parametrize(
        "value, expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (80.5, 81), (80.49, 80), (81.0, 81)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected
