import json
import logging
import threading
from pathlib import Path
from typing import Optional

import boto3
import pika
from jsonschema import validate as jsonschema_validate
from pika.exceptions import AMQPError

from .config import Settings
from .domain import Order, Product

logger = logging.getLogger(__name__)

ORDERS_TOPIC = "orders"
ORDER_CREATED = "ORDER_CREATED"

_SCHEMA_CACHE = None


def _repo_root() -> Path:
    # publisher.py -> app -> orders_service -> services -> repo root
    return Path(__file__).resolve().parents[3]


def _load_schema() -> dict:
    global _SCHEMA_CACHE
    if _SCHEMA_CACHE is None:
        schema_path = _repo_root() / "events" / "order-created.schema.json"
        _SCHEMA_CACHE = json.loads(schema_path.read_text(encoding="utf-8"))
    return _SCHEMA_CACHE


def build_order_created_event(order: Order, product: Product) -> dict:
    event = {
        "event": ORDER_CREATED,
        "orderId": order.id,
        "productId": product.id,
        "productName": product.name,
        "quantity": order.quantity,
        "status": order.status,
        "createdAt": order.created_at.isoformat(),
    }
    jsonschema_validate(instance=event, schema=_load_schema())
    return event


class EventPublisher:
    """Broadcasts domain events. ``publish`` raises on failure."""

    def connect(self) -> None:
        pass

    def publish(self, topic: str, payload: dict) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class RabbitMqPublisher(EventPublisher):
    def __init__(self, url: str, exchange: str, connect_attempts: int = 10, retry_delay: float = 0.5):
        self.url = url
        self.exchange = exchange
        self.connect_attempts = connect_attempts
        self.retry_delay = retry_delay
        self._conn: Optional[pika.BlockingConnection] = None
        self._channel = None
        # BlockingConnection is not thread safe and handlers run on a thread pool.
        # Only swapping and using the connection happens under the lock, never dialing.
        self._lock = threading.Lock()
        self._stopping = threading.Event()

    def _dial(self, attempts: int = 1):
        params = pika.URLParameters(self.url)

        last = None
        for attempt in range(attempts):
            if self._stopping.is_set():
                raise RuntimeError("RabbitMQ publisher is closed")
            try:
                conn = pika.BlockingConnection(params)
                break
            except Exception as e:
                last = e
                if attempt + 1 < attempts:
                    self._stopping.wait(self.retry_delay)
        else:
            raise RuntimeError(f"Unable to connect to RabbitMQ at {self.url}: {last!r}")

        try:
            ch = conn.channel()
            ch.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=True)
        except Exception:
            _close_quietly(conn)
            raise
        return conn, ch

    def _usable(self) -> bool:
        if self._conn is None:
            return False
        try:
            # heartbeats are only serviced inside blocking calls
            self._conn.process_data_events(time_limit=0)
        except AMQPError as e:
            logger.warning("RabbitMQ connection lost: %r", e)
        if self._conn.is_open and self._channel.is_open:
            return True
        _close_quietly(self._conn)
        self._conn, self._channel = None, None
        return False

    def _adopt(self, conn, ch) -> bool:
        # caller holds the lock
        if self._stopping.is_set() or self._usable():
            _close_quietly(conn)
            return False
        self._conn, self._channel = conn, ch
        return True

    def connect(self) -> None:
        try:
            conn, ch = self._dial(self.connect_attempts)
        except Exception as e:
            logger.error("Broker init error: %s", e)
            return
        with self._lock:
            adopted = self._adopt(conn, ch)
        if adopted:
            logger.info("Connected to RabbitMQ exchange %s", self.exchange)

    def _basic_publish(self, topic: str, payload: dict) -> None:
        self._channel.basic_publish(
            exchange=self.exchange,
            routing_key=topic,
            body=json.dumps(payload).encode("utf-8"),
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )

    def publish(self, topic: str, payload: dict) -> None:
        with self._lock:
            if self._usable():
                self._basic_publish(topic, payload)
                return

        conn, ch = self._dial()
        with self._lock:
            self._adopt(conn, ch)
            if self._conn is None:
                raise RuntimeError("RabbitMQ publisher is closed")
            self._basic_publish(topic, payload)

    def close(self) -> None:
        self._stopping.set()
        with self._lock:
            conn, self._conn, self._channel = self._conn, None, None
        if conn is not None:
            _close_quietly(conn)


def _close_quietly(conn) -> None:
    if not conn.is_open:
        return
    try:
        conn.close()
    except Exception as e:
        logger.warning("Error closing RabbitMQ connection: %s", e)


class SnsPublisher(EventPublisher):
    def __init__(self, topic_arn: str, region: Optional[str] = None):
        self.topic_arn = topic_arn
        self.region = region
        self._client = None

    def connect(self) -> None:
        try:
            self._client = boto3.client("sns", region_name=self.region)
        except Exception as e:
            logger.error("Broker init error: %s", e)

    def publish(self, topic: str, payload: dict) -> None:
        if self._client is None:
            self._client = boto3.client("sns", region_name=self.region)
        self._client.publish(
            TopicArn=self.topic_arn,
            Message=json.dumps(payload),
            MessageAttributes={"topic": {"DataType": "String", "StringValue": topic}},
        )


def build_publisher(settings: Settings) -> EventPublisher:
    if settings.message_backend == "sns":
        if not settings.order_events_topic_arn:
            raise ValueError("ORDER_EVENTS_TOPIC_ARN is required when MESSAGE_BACKEND=sns")
        return SnsPublisher(settings.order_events_topic_arn, settings.aws_region)
    if settings.message_backend == "rabbitmq":
        return RabbitMqPublisher(settings.rabbitmq_url, settings.rabbitmq_exchange)
    raise ValueError(f"Unknown MESSAGE_BACKEND: {settings.message_backend!r}")


def publish_best_effort(publisher: EventPublisher, topic: str, payload: dict) -> bool:
    """Publish without ever failing the caller.

    Delivery is at most once: a failure is logged and reported as ``False``,
    nothing is retried.
    """
    try:
        publisher.publish(topic, payload)
    except Exception as e:
        logger.error("Failed to publish message to broker: %s", e)
        return False
    return True
