"""
dispatcher.py — Cache Update Dispatcher

Routes pricing-change messages from the broker to the handler registered for
their topic and applies each message in its own transaction. A failing
message is logged and skipped; it never stops the consume loop and never
reaches request-serving code.

`CacheUpdateListener` runs the unbounded consume loop (normally in a daemon
thread started by the API) and reconnects after broker outages.
"""

import logging
import threading
from typing import Callable, Dict, Optional

import pika

from .cache_handlers import handle_product_update, handle_topping_update
from .clients import MessageBroker

log = logging.getLogger(__name__)

Handler = Callable[[object, str], None]


class CacheUpdateDispatcher:
    """
    Topic -> handler registry.

    Args:
        session_factory: Context-manager factory from `db.make_session_factory`.
        handlers (dict, optional): Initial registry. Defaults to the product and topping handlers.
    """

    def __init__(self, session_factory, handlers: Optional[Dict[str, Handler]] = None):
        self._session_factory = session_factory
        if handlers is None:
            handlers = {
                "product": handle_product_update,
                "topping": handle_topping_update,
            }
        self._handlers = dict(handlers)

    @property
    def topics(self):
        return sorted(self._handlers)

    def register(self, topic: str, handler: Handler):
        self._handlers[topic] = handler

    def dispatch(self, topic: str, payload) -> bool:
        """
        Applies one message. Returns True if a handler processed it successfully.
        """
        handler = self._handlers.get(topic)
        if handler is None:
            log.info(f"[CACHE] Nachricht von Topic '{topic}' ohne Handler ignoriert: {payload}")
            return False

        try:
            with self._session_factory() as session:
                handler(session, payload)
            return True
        except Exception as e:
            log.error(f"[CACHE] Nachricht auf Topic '{topic}' konnte nicht verarbeitet werden: {e}. Payload: {payload}")
            return False


class CacheUpdateListener:
    """
    Consume loop for pricing cache updates.

    Args:
        settings (Settings): Broker address, topics and retry delay.
        dispatcher (CacheUpdateDispatcher): Receives every message.
        broker_factory (callable, optional): Builds a `MessageBroker` from settings.
    """

    def __init__(self, settings, dispatcher: CacheUpdateDispatcher, broker_factory=None):
        self.settings = settings
        self.dispatcher = dispatcher
        self.broker_factory = broker_factory or MessageBroker.from_settings
        self._stop_event = threading.Event()
        self._broker = None

    def run(self):
        log.info("Cache Update Listener startet...")
        while not self._stop_event.is_set():
            try:
                with self.broker_factory(self.settings) as broker:
                    self._broker = broker
                    broker.connect_consumer()
                    log.info(f"[CACHE] Listener ist aktiv auf Topics: {self.settings.cache_topics}")
                    broker.consume_messages(self.settings.cache_topics, self.dispatcher.dispatch)
            except pika.exceptions.AMQPConnectionError:
                log.warning(f"Cache Listener: Verbindung zum Broker verloren. Reconnect in {self.settings.listener_retry_seconds}s...")
                self._stop_event.wait(self.settings.listener_retry_seconds)
            except Exception as e:
                log.error(f"Cache Listener: Kritischer Fehler. {e}. Neustart in {self.settings.listener_retry_seconds}s.")
                self._stop_event.wait(self.settings.listener_retry_seconds)
            finally:
                self._broker = None
        log.info("Cache Update Listener beendet.")

    def stop(self):
        self._stop_event.set()
        broker = self._broker
        if broker is not None:
            broker.request_stop()

    def start_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="cache-listener", daemon=True)
        thread.start()
        return thread
