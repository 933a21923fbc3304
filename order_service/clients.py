"""
This module provides communication clients for external systems used by the order service:
- Payment Gateway (REST API)
- Message Broker (RabbitMQ): pricing cache updates in, order events out
Each class encapsulates its protocol logic, error handling, and connection management.
Instances are created explicitly and passed to the parts that need them.
"""

import logging
import threading
from typing import Callable, Iterable, Optional

import httpx
import pika

from .config import DEFAULT_PAYMENT_SERVICE_URL, DEFAULT_RABBITMQ_HOST
from .errors import GatewayError

log = logging.getLogger(__name__)


# --- Payment Client (REST) ---
class PaymentClient:
    """
    Client for the Payment Gateway (REST API).
    Creates hosted payment sessions; the gateway deduplicates by Idempotency-Key.

    Args:
        base_url (str): Base URL of the payment gateway.
        client (httpx.Client, optional): Preconfigured HTTP client (tests pass a TestClient here).
    """
    def __init__(self, base_url: str = DEFAULT_PAYMENT_SERVICE_URL, client: Optional[httpx.Client] = None):
        if client is None:
            timeout_config = httpx.Timeout(5.0, read=8.0)
            client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = client

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def create_session(self, idempotent_key: str, amount: int, order_id: str, currency: str, tenant_id: str) -> dict:
        """
        Creates a payment session via the Payment Gateway REST API.
        Args:
            idempotent_key (str): The client's idempotency key of the order request.
            amount (int): Amount to charge in minor currency units.
            order_id (str): Order the payment belongs to.
            currency (str): ISO currency code (e.g. 'inr').
            tenant_id (str): Tenant of the order.
        Returns:
            dict: JSON response containing at least 'paymentUrl'.
        Raises:
            GatewayError: On timeouts, transport errors, error status codes (4xx or 5xx)
                or a response without a payment URL.
        """
        payload = {
            "amount": amount,
            "currency": currency,
            "orderId": order_id,
            "tenantId": tenant_id,
        }
        headers = {"Idempotency-Key": idempotent_key}

        try:
            response = self.client.post("/v1/sessions", json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            log.error(f"[Order: {order_id}] Payment Gateway Timeout. Status unbekannt.")
            # Ein Retry mit demselben Idempotency-Key ist sicher.
            raise GatewayError(f"Payment gateway timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            log.error(f"[Order: {order_id}] HTTP-Fehler beim Payment Gateway: {e.response.status_code}")
            raise GatewayError(f"Payment gateway returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"[Order: {order_id}] Payment Gateway nicht erreichbar: {e}")
            raise GatewayError(f"Payment gateway unavailable: {e}") from e

        if not data.get("paymentUrl"):
            log.error(f"[Order: {order_id}] Antwort des Payment Gateway ohne paymentUrl: {data}")
            raise GatewayError("Payment gateway response did not contain a paymentUrl.")
        return data


# --- Message Broker (MQ) ---
class MessageBroker:
    """
    Client for the message broker (RabbitMQ).

    Every topic maps to a durable queue of the same name on the default
    exchange. Consumer and producer have separate connections with an
    explicit connect/disconnect lifecycle; used as a context manager, both
    are closed on exit.
    """
    def __init__(self, host: str = DEFAULT_RABBITMQ_HOST, user: str = "guest", password: str = "guest",
                 heartbeat: int = 60):
        credentials = pika.PlainCredentials(user, password)
        self._parameters = pika.ConnectionParameters(host=host, credentials=credentials, heartbeat=heartbeat)
        self._consumer_connection = None
        self._consumer_channel = None
        self._producer_connection = None
        self._producer_channel = None
        self._declared_topics = set()
        self._producer_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            host=settings.rabbitmq_host,
            user=settings.rabbitmq_user,
            password=settings.rabbitmq_password,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect_consumer()
        self.disconnect_producer()
        return False

    # consumer methods below

    def connect_consumer(self):
        """
        Raises:
            pika.exceptions.AMQPConnectionError: If the connection fails.
        """
        try:
            self._consumer_connection = pika.BlockingConnection(self._parameters)
            self._consumer_channel = self._consumer_connection.channel()
            log.info("Consumer mit RabbitMQ verbunden.")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Kann Consumer nicht zu RabbitMQ verbinden: {e}")
            raise

    def disconnect_consumer(self):
        if self._consumer_connection and self._consumer_connection.is_open:
            self._consumer_connection.close()
        self._consumer_connection = None
        self._consumer_channel = None

    def consume_messages(self, topics: Iterable[str], on_message: Callable[[str, Optional[str]], object]):
        """
        Subscribes to `topics` and blocks, calling `on_message(topic, payload)` per message.

        Messages are acknowledged after `on_message` returns. If it raises, the
        message is rejected without requeue (dead-lettered if configured).
        Returns once `request_stop()` is called.
        """
        if self._consumer_channel is None:
            self.connect_consumer()
        channel = self._consumer_channel

        def callback(ch, method, properties, body):
            topic = method.routing_key
            payload = body.decode("utf-8", errors="replace") if body is not None else None
            try:
                on_message(topic, payload)
                ch.basic_ack(delivery_tag=method.delivery_tag)
            except Exception as e:
                log.error(f"[MQ] Nachricht auf '{topic}' abgelehnt: {e}")
                ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

        for topic in topics:
            channel.queue_declare(queue=topic, durable=True)
            channel.basic_consume(queue=topic, on_message_callback=callback)
        channel.start_consuming()

    def request_stop(self):
        """Stops `consume_messages` from any thread."""
        connection = self._consumer_connection
        channel = self._consumer_channel
        if connection is not None and channel is not None and connection.is_open:
            connection.add_callback_threadsafe(channel.stop_consuming)

    # producer methods below

    def connect_producer(self):
        try:
            self._producer_connection = pika.BlockingConnection(self._parameters)
            self._producer_channel = self._producer_connection.channel()
            self._declared_topics = set()
            log.info("Producer mit RabbitMQ verbunden.")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Kann Producer nicht zu RabbitMQ verbinden: {e}")
            raise

    def disconnect_producer(self):
        with self._producer_lock:
            self._drop_producer()

    def _drop_producer(self):
        connection = self._producer_connection
        self._producer_connection = None
        self._producer_channel = None
        if connection is not None and connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as e:
                log.warning(f"Producer-Verbindung ließ sich nicht sauber schließen: {e}")

    def _ensure_producer(self):
        connection = self._producer_connection
        if connection is not None and connection.is_open:
            try:
                # Idle connections miss heartbeats; a dead one raises here.
                connection.process_data_events(time_limit=0)
                return
            except pika.exceptions.AMQPError as e:
                log.warning(f"Producer-Verbindung zu RabbitMQ verloren, verbinde neu: {e}")
                self._drop_producer()
        self.connect_producer()

    def send_message(self, topic: str, message: str):
        """
        Publishes `message` to `topic`. Fire-and-forget: no delivery confirmation.

        The producer connection is reused between calls and replaced when it
        has gone stale.
        Raises:
            pika.exceptions.AMQPError: If publishing fails.
        """
        with self._producer_lock:
            try:
                self._ensure_producer()

                if topic not in self._declared_topics:
                    self._producer_channel.queue_declare(queue=topic, durable=True)
                    self._declared_topics.add(topic)

                self._producer_channel.basic_publish(
                    exchange='',
                    routing_key=topic,
                    body=message,
                    properties=pika.BasicProperties(delivery_mode=2)  # Macht Nachricht persistent
                )
            except pika.exceptions.AMQPError as e:
                log.error(f"[MQ] FEHLER beim Senden an Topic '{topic}': {e}")
                # Next call starts from a fresh connection.
                self._drop_producer()
                raise
