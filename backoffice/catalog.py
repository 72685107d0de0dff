"""Plain CRUD for products and customers.

Direct product edits may set stock outright; they still go through the
version check so an edit never silently overwrites a concurrent order's stock
change.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from .config import PRODUCT_IMAGES_CONTAINER, STOCK_UPDATES_TOPIC
from .entities import Customer, Product
from .events import ChangeAction, EventEmitter, stock_event
from .repository import EntityRepository
from .uploads import BlobStore

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("name", "description", "unit_price", "stock_available")
CUSTOMER_FIELDS = ("name", "surname", "username", "shipping_address", "email")


def _store_image(blob_store: Optional[BlobStore], image: Optional[Tuple[bytes, str]]) -> Optional[str]:
    if blob_store is None or not image or not image[0]:
        return None
    content, filename = image
    return blob_store.upload(content, PRODUCT_IMAGES_CONTAINER, filename)


def create_product(
    repo: EntityRepository,
    product_data: Dict[str, Any],
    *,
    image: Optional[Tuple[bytes, str]] = None,
    blob_store: Optional[BlobStore] = None,
) -> Product:
    data = {k: v for k, v in product_data.items() if v is not None}
    image_url = _store_image(blob_store, image)
    if image_url:
        data["image_ref"] = image_url
    product = Product(**data)
    return repo.insert(product)


def update_product(
    repo: EntityRepository,
    emitter: EventEmitter,
    product_id: str,
    update_data: Dict[str, Any],
    *,
    expected_version: Optional[int] = None,
    image: Optional[Tuple[bytes, str]] = None,
    blob_store: Optional[BlobStore] = None,
) -> Optional[Product]:
    existing = repo.get(Product, product_id)
    if existing is None:
        return None

    changes = {k: v for k, v in update_data.items() if k in PRODUCT_FIELDS and v is not None}
    image_url = _store_image(blob_store, image)
    if image_url:
        changes["image_ref"] = image_url

    updated = Product.model_validate({**existing.model_dump(), **changes})
    saved = repo.update(updated, expected_version=expected_version or existing.version)

    if not emitter.emit(STOCK_UPDATES_TOPIC, stock_event(saved, ChangeAction.UPDATED)):
        logger.warning("Updated event for product %s was not delivered", saved.id)
    return saved


def delete_product(repo: EntityRepository, product_id: str) -> Optional[Product]:
    existing = repo.get(Product, product_id)
    if existing is None:
        return None
    repo.delete(Product, product_id)
    return existing


def create_customer(repo: EntityRepository, customer_data: Dict[str, Any]) -> Customer:
    customer = Customer(**{k: v for k, v in customer_data.items() if v is not None})
    return repo.insert(customer)


def update_customer(
    repo: EntityRepository,
    customer_id: str,
    update_data: Dict[str, Any],
    *,
    expected_version: Optional[int] = None,
) -> Optional[Customer]:
    existing = repo.get(Customer, customer_id)
    if existing is None:
        return None
    changes = {k: v for k, v in update_data.items() if k in CUSTOMER_FIELDS and v is not None}
    updated = Customer.model_validate({**existing.model_dump(), **changes})
    return repo.update(updated, expected_version=expected_version or existing.version)


def delete_customer(repo: EntityRepository, customer_id: str) -> Optional[Customer]:
    existing = repo.get(Customer, customer_id)
    if existing is None:
        return None
    repo.delete(Customer, customer_id)
    return existing
