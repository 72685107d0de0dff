from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from .messaging import Publisher
from .models import OutboxMessage

logger = logging.getLogger(__name__)


def has_backlog(db: Session, topic: str) -> bool:
    return (
        db.query(OutboxMessage.id)
        .filter(OutboxMessage.topic == topic)
        .first()
        is not None
    )


def enqueue(db: Session, topic: str, payload: str, error: str | None = None) -> OutboxMessage:
    message = OutboxMessage(topic=topic, payload=payload, attempts=0, last_error=error)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_pending(db: Session, limit: int = 100) -> List[OutboxMessage]:
    return (
        db.query(OutboxMessage)
        .order_by(OutboxMessage.id)
        .limit(limit)
        .all()
    )


def relay_pending(db: Session, publisher: Publisher, limit: int = 100) -> int:
    """Republish pending messages oldest first; stop at the first failure.

    Stopping keeps later messages behind the one that failed, so consumers
    still see each topic in emission order. Relayed messages are removed.
    Returns the number published.
    """
    published = 0
    for message in get_pending(db, limit=limit):
        message.attempts = (message.attempts or 0) + 1
        try:
            publisher.publish(message.topic, message.payload)
        except Exception as e:
            message.last_error = str(e)
            db.commit()
            logger.warning("outbox relay stopped at message %s (%s): %s", message.id, message.topic, e)
            break
        db.delete(message)
        db.commit()
        published += 1
    return published


def start_outbox_relay_in_thread(
    *,
    session_factory: Callable[[], Session],
    publisher: Publisher,
    interval_seconds: float,
    daemon: bool = True,
) -> threading.Thread:
    def _run() -> None:
        while True:
            db = session_factory()
            try:
                count = relay_pending(db, publisher)
                if count:
                    logger.info("outbox relay published %s message(s)", count)
            except DBAPIError:
                logger.exception("outbox relay could not read the store")
                db.rollback()
            finally:
                db.close()
            time.sleep(interval_seconds)

    t = threading.Thread(target=_run, name="outbox-relay", daemon=daemon)
    t.start()
    return t
