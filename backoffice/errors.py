from __future__ import annotations


class BackofficeError(Exception):
    """Base class for every failure the reconciliation engine reports."""


class EntityNotFound(BackofficeError):
    def __init__(self, partition: str, key: str) -> None:
        super().__init__(f"{partition} with id {key} not found")
        self.partition = partition
        self.key = key


class ReferenceNotFound(EntityNotFound):
    """A customer or product referenced by an order does not exist."""


class OrderNotFound(EntityNotFound):
    def __init__(self, key: str) -> None:
        super().__init__("Order", key)


class InsufficientStock(BackofficeError):
    def __init__(self, product_id: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, Requested: {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ConcurrencyConflict(BackofficeError):
    pass


class StaleVersion(ConcurrencyConflict):
    """The stored version no longer matches the one the caller read."""

    def __init__(self, partition: str, key: str, expected_version: int | None) -> None:
        super().__init__(f"{partition} {key} changed since version {expected_version} was read")
        self.partition = partition
        self.key = key
        self.expected_version = expected_version


class DuplicateKey(ConcurrencyConflict):
    def __init__(self, partition: str, key: str) -> None:
        super().__init__(f"{partition} with id {key} already exists")
        self.partition = partition
        self.key = key


class TransientFailure(BackofficeError):
    """Store or broker unavailable; the caller may retry later."""
