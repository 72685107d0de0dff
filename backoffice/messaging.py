from __future__ import annotations

from typing import Protocol

import pika
from pika.exceptions import AMQPError

from .config import EVENTS_EXCHANGE, PUBLISH_TIMEOUT_SECONDS, RABBITMQ_URL
from .errors import TransientFailure


class Publisher(Protocol):
    def publish(self, topic: str, payload: str) -> None:
        ...


class RabbitPublisher:
    """Publishes opaque string payloads to a durable topic exchange.

    The topic name is used as the routing key, so consumers bind queues to
    `order-notifications` or `stock-updates`.
    """

    def __init__(
        self,
        url: str = RABBITMQ_URL,
        exchange: str = EVENTS_EXCHANGE,
        timeout: float = PUBLISH_TIMEOUT_SECONDS,
    ) -> None:
        self.url = url
        self.exchange = exchange
        self.timeout = timeout

    def _connect(self) -> pika.BlockingConnection:
        params = pika.URLParameters(self.url)
        params.heartbeat = 30
        params.blocked_connection_timeout = self.timeout
        params.socket_timeout = self.timeout
        params.connection_attempts = 1
        return pika.BlockingConnection(params)

    def publish(self, topic: str, payload: str) -> None:
        try:
            connection = self._connect()
        except (AMQPError, OSError, ValueError) as e:
            raise TransientFailure(f"broker unavailable: {e}") from e
        try:
            ch = connection.channel()
            ch.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=True)
            ch.basic_publish(
                exchange=self.exchange,
                routing_key=topic,
                body=payload.encode("utf-8"),
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,  # persistent
                ),
            )
        except (AMQPError, OSError) as e:
            raise TransientFailure(f"publish to {topic} failed: {e}") from e
        finally:
            if connection.is_open:
                connection.close()
