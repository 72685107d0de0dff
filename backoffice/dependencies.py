from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .events import EventEmitter
from .messaging import Publisher, RabbitPublisher
from .orders import OrderLifecycleManager
from .repository import EntityRepository
from .uploads import BlobStore, LocalBlobStore

_publisher = RabbitPublisher()
_blob_store = LocalBlobStore()


def get_publisher() -> Publisher:
    return _publisher


def get_blob_store() -> BlobStore:
    return _blob_store


def get_repository(db: Session = Depends(get_db)) -> EntityRepository:
    return EntityRepository(db)


def get_emitter(
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
) -> EventEmitter:
    return EventEmitter(publisher, db=db)


def get_order_manager(
    repo: EntityRepository = Depends(get_repository),
    emitter: EventEmitter = Depends(get_emitter),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(repo, emitter)
