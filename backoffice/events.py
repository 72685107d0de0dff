"""Change events and their best-effort delivery.

Delivery is a side channel: a failed publish is retried, then parked in the
outbox and reported back as a warning. It never undoes the store write that
produced the event.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from . import outbox
from .config import (
    ORDER_NOTIFICATIONS_TOPIC,
    OUTBOX_ENABLED,
    PUBLISH_BACKOFF_SECONDS,
    PUBLISH_MAX_ATTEMPTS,
    STOCK_UPDATES_TOPIC,
)
from .entities import Order, Product, utc_now
from .errors import TransientFailure
from .messaging import Publisher

logger = logging.getLogger(__name__)


class ChangeAction(str, Enum):
    CREATED = "Created"
    UPDATED = "Updated"
    DELETED = "Deleted"
    STOCK_UPDATED = "StockUpdated"
    STOCK_RESTORED = "StockRestored"


class ChangeEvent(BaseModel):
    entity_id: str
    entity_type: str
    action: ChangeAction
    fields: Dict[str, Any] = Field(default_factory=dict)
    timestamp: dt.datetime = Field(default_factory=utc_now)

    def to_payload(self) -> str:
        return self.model_dump_json()


def order_event(order: Order, action: ChangeAction) -> ChangeEvent:
    fields = order.model_dump(
        mode="json",
        include={
            "customer_id",
            "customer_display_name",
            "product_id",
            "product_display_name",
            "quantity",
            "unit_price",
            "total_price",
            "status",
            "order_date",
        },
    )
    return ChangeEvent(entity_id=order.id, entity_type=Order.partition, action=action, fields=fields)


def stock_event(product: Product, action: ChangeAction) -> ChangeEvent:
    fields = product.model_dump(mode="json", include={"name", "unit_price", "stock_available"})
    return ChangeEvent(entity_id=product.id, entity_type=Product.partition, action=action, fields=fields)


class EventEmitter:
    def __init__(
        self,
        publisher: Publisher,
        *,
        db: Optional[Session] = None,
        max_attempts: int = PUBLISH_MAX_ATTEMPTS,
        backoff_seconds: float = PUBLISH_BACKOFF_SECONDS,
        use_outbox: bool = OUTBOX_ENABLED,
    ) -> None:
        self.publisher = publisher
        self.db = db
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.use_outbox = use_outbox and db is not None

    def emit(self, topic: str, event: ChangeEvent) -> bool:
        """Publish `event`; False means it was not delivered (yet)."""
        payload = event.to_payload()

        if self.use_outbox and self._backlog(topic):
            # Earlier events for this topic are still parked; queue behind them.
            return self._park(topic, payload, "queued behind outbox backlog")

        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.publisher.publish(topic, payload)
                return True
            except TransientFailure as e:
                last_error = str(e)
                logger.warning(
                    "publish %s %s/%s to %s failed (attempt %s/%s): %s",
                    event.action.value, event.entity_type, event.entity_id, topic,
                    attempt, self.max_attempts, e,
                )
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
            except Exception as e:
                # not transient; no retry
                last_error = str(e)
                logger.exception(
                    "publish %s %s/%s to %s failed", event.action.value, event.entity_type, event.entity_id, topic
                )
                break

        logger.error(
            "event %s for %s/%s not delivered to %s: %s",
            event.action.value, event.entity_type, event.entity_id, topic, last_error,
        )
        if self.use_outbox:
            self._park(topic, payload, last_error)
        return False

    def emit_order(self, order: Order, action: ChangeAction) -> bool:
        return self.emit(ORDER_NOTIFICATIONS_TOPIC, order_event(order, action))

    def emit_stock(self, product: Product, action: ChangeAction) -> bool:
        return self.emit(STOCK_UPDATES_TOPIC, stock_event(product, action))

    def _backlog(self, topic: str) -> bool:
        try:
            return outbox.has_backlog(self.db, topic)
        except DBAPIError:
            self.db.rollback()
            logger.exception("could not check outbox backlog for %s", topic)
            return False

    def _park(self, topic: str, payload: str, error: str) -> bool:
        try:
            outbox.enqueue(self.db, topic, payload, error)
        except DBAPIError:
            self.db.rollback()
            logger.exception("could not park event for %s in the outbox; event dropped", topic)
        return False
