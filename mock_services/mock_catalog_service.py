"""
mock_catalog_service.py — Mock Implementation of the Catalog Service (price publisher)

This module simulates the catalog service that owns product and topping prices.
It periodically publishes full pricing snapshots to the 'product' and 'topping'
topics, which the order service consumes to refresh its pricing caches.

Purpose:
    • Fill the pricing caches of a local order service
    • Test the cache update path end to end (publish → consume → upsert)

Communication Channels:
    - Output Topic: 'product'   → Product price configuration snapshots
    - Output Topic: 'topping'   → Topping price snapshots
"""

import json
import logging
import os
import time

import pika

from order_service.clients import MessageBroker

logging.basicConfig(level=logging.INFO)
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
PUBLISH_INTERVAL = float(os.environ.get("PUBLISH_INTERVAL", "30"))

# Demo-Daten eines Tenants (Preise in Paise)
DEMO_PRODUCTS = [
    {
        "id": "pizza-margherita",
        "tenantId": "1",
        "priceConfiguration": {
            "Size": {"priceType": "base", "availableOptions": {"Small": 400, "Medium": 600, "Large": 800}},
            "Crust": {"priceType": "additional", "availableOptions": {"Thin": 0, "Thick": 50}},
        },
    },
    {
        "id": "pizza-farmhouse",
        "tenantId": "1",
        "priceConfiguration": {
            "Size": {"priceType": "base", "availableOptions": {"Small": 500, "Medium": 700, "Large": 900}},
            "Crust": {"priceType": "additional", "availableOptions": {"Thin": 0, "Thick": 50}},
        },
    },
]

DEMO_TOPPINGS = [
    {"id": "cheese", "tenantId": "1", "price": 50},
    {"id": "jalapeno", "tenantId": "1", "price": 40},
    {"id": "olives", "tenantId": "1", "price": 30},
]


def publish_pricing_snapshots(broker, products=None, toppings=None):
    """
    Publishes one full snapshot message per product and topping.

    Args:
        broker: Object with `send_message(topic, message)`.
        products (list, optional): Product snapshots, defaults to DEMO_PRODUCTS.
        toppings (list, optional): Topping snapshots, defaults to DEMO_TOPPINGS.

    Returns:
        int: Number of messages sent.
    """
    products = DEMO_PRODUCTS if products is None else products
    toppings = DEMO_TOPPINGS if toppings is None else toppings

    for product in products:
        broker.send_message("product", json.dumps(product))
    for topping in toppings:
        broker.send_message("topping", json.dumps(topping))

    sent = len(products) + len(toppings)
    logging.info(f"[CATALOG] {sent} Preis-Snapshots veröffentlicht.")
    return sent


def main():
    """
        Publishes the demo pricing snapshots every PUBLISH_INTERVAL seconds.

        Behavior:
            - Retries the connection every 5 seconds if the broker is unavailable.
            - Stops gracefully on keyboard interrupt (Ctrl+C).
    """
    logging.info("Mock Catalog Service (MQ) startet...")
    while True:
        try:
            with MessageBroker(host=RABBITMQ_HOST) as broker:
                broker.connect_producer()
                while True:
                    publish_pricing_snapshots(broker)
                    time.sleep(PUBLISH_INTERVAL)
        except pika.exceptions.AMQPError as e:
            logging.warning(f"MQ-Verbindung fehlgeschlagen, versuche erneut in 5s... {e}")
            time.sleep(5)
        except KeyboardInterrupt:
            break


if __name__ == '__main__':
    main()
