"""Order lifecycle: keeps product stock in step with order create/edit/delete.

The store has no multi-entity transactions, so each operation is a sequence of
single-record writes. Stock adjustments are written first and remembered in a
unit of work; if the order write that follows fails, the adjustments are
undone. A stale version anywhere restarts the whole read-validate-write
sequence, up to `max_conflict_retries` attempts.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from . import results
from .config import (
    COMPLETED_ORDER_STATUS,
    CONFLICT_BACKOFF_SECONDS,
    DEFAULT_ORDER_STATUS,
    MAX_CONFLICT_RETRIES,
    ORDER_STATUSES,
    STOCK_UPDATES_TOPIC,
    SYMMETRIC_PRODUCT_SWITCH,
)
from .entities import Customer, Order, Product, new_key, to_utc, utc_now
from .errors import (
    BackofficeError,
    DuplicateKey,
    EntityNotFound,
    InsufficientStock,
    OrderNotFound,
    ReferenceNotFound,
    StaleVersion,
    TransientFailure,
)
from .events import ChangeAction, EventEmitter
from .ledger import StockAdjustment, apply_delta, compute_delta, plan_edit, validate_reservation
from .repository import EntityRepository

logger = logging.getLogger(__name__)


@dataclass
class _AppliedAdjustment:
    adjustment: StockAdjustment
    announced: bool = False


@dataclass
class _UnitOfWork:
    order_id: str
    applied: List[_AppliedAdjustment] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    # set once the order write went through; nothing is undone after that
    committed: bool = False


class OrderLifecycleManager:
    def __init__(
        self,
        repo: EntityRepository,
        emitter: EventEmitter,
        *,
        max_conflict_retries: int = MAX_CONFLICT_RETRIES,
        conflict_backoff_seconds: float = CONFLICT_BACKOFF_SECONDS,
        symmetric_product_switch: bool = SYMMETRIC_PRODUCT_SWITCH,
        allowed_statuses: Sequence[str] = ORDER_STATUSES,
    ) -> None:
        self.repo = repo
        self.emitter = emitter
        self.max_attempts = max(1, max_conflict_retries)
        self.conflict_backoff_seconds = conflict_backoff_seconds
        self.symmetric_product_switch = symmetric_product_switch
        self.allowed_statuses = tuple(allowed_statuses)

    # -----------------------------
    # Operations
    # -----------------------------

    def create(
        self,
        customer_id: str,
        product_id: str,
        quantity: int,
        order_date: Optional[dt.datetime] = None,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> results.OperationResult:
        errors = self._validate_input(
            customer_id=customer_id or "", product_id=product_id, quantity=quantity, status=status
        )
        if errors:
            return results.ValidationFailed(field_errors=errors)

        key = order_id.strip() if order_id and order_id.strip() else new_key()
        return self._run(
            "create",
            key,
            lambda uow: self._create(uow, customer_id, product_id, quantity, order_date, status),
        )

    def edit(
        self,
        order_id: str,
        product_id: str,
        quantity: int,
        order_date: Optional[dt.datetime] = None,
        status: Optional[str] = None,
    ) -> results.OperationResult:
        errors = self._validate_input(product_id=product_id, quantity=quantity, status=status)
        if not order_id or not order_id.strip():
            errors["id"] = "Order Id is required."
        if errors:
            return results.ValidationFailed(field_errors=errors)

        return self._run(
            "edit",
            order_id,
            lambda uow: self._edit(uow, product_id, quantity, order_date, status),
        )

    def delete(self, order_id: str) -> results.OperationResult:
        if not order_id or not order_id.strip():
            return results.ValidationFailed(field_errors={"id": "Order Id is required."})
        return self._run("delete", order_id, self._delete)

    def complete(self, order_id: str) -> results.OperationResult:
        """Mark an order as completed (proof of payment received)."""
        if not order_id or not order_id.strip():
            return results.ValidationFailed(field_errors={"id": "Order Id is required."})
        return self._run("complete", order_id, self._complete)

    # -----------------------------
    # Steps
    # -----------------------------

    def _create(
        self,
        uow: _UnitOfWork,
        customer_id: str,
        product_id: str,
        quantity: int,
        order_date: Optional[dt.datetime],
        status: Optional[str],
    ) -> Order:
        customer = self.repo.get(Customer, customer_id)
        if customer is None:
            raise ReferenceNotFound(Customer.partition, customer_id)
        product = self.repo.get(Product, product_id)
        if product is None:
            raise ReferenceNotFound(Product.partition, product_id)

        delta = compute_delta(None, quantity)
        validate_reservation(product.stock_available, delta, product.id)

        order = Order(
            id=uow.order_id,
            customer_id=customer.id,
            product_id=product.id,
            customer_display_name=customer.display_name,
            product_display_name=product.name,
            unit_price=product.unit_price,
            quantity=quantity,
            status=status.strip() if status and status.strip() else DEFAULT_ORDER_STATUS,
            order_date=to_utc(order_date) if order_date else utc_now(),
        )

        product = self._adjust_stock(uow, product, delta)
        order = self.repo.insert(order)
        uow.committed = True

        self._announce_stock(uow, product, ChangeAction.STOCK_UPDATED)
        self._announce_order(uow, order, ChangeAction.CREATED)
        return order

    def _edit(
        self,
        uow: _UnitOfWork,
        product_id: str,
        quantity: int,
        order_date: Optional[dt.datetime],
        status: Optional[str],
    ) -> Order:
        existing = self.repo.get(Order, uow.order_id)
        if existing is None:
            raise OrderNotFound(uow.order_id)
        product = self.repo.get(Product, product_id)
        if product is None:
            raise ReferenceNotFound(Product.partition, product_id)

        changes = {
            "product_id": product.id,
            "product_display_name": product.name,
            "unit_price": product.unit_price,
            "quantity": quantity,
        }
        if order_date is not None:
            changes["order_date"] = to_utc(order_date)
        if status and status.strip():
            changes["status"] = status.strip()
        updated = Order.model_validate({**existing.model_dump(), **changes})

        plan = plan_edit(
            existing.product_id,
            existing.quantity,
            product.id,
            quantity,
            symmetric_switch=self.symmetric_product_switch,
        )
        products: Dict[str, Optional[Product]] = {product.id: product}
        for adj in plan:
            if adj.product_id not in products:
                products[adj.product_id] = self.repo.get(Product, adj.product_id)

        # Every adjustment is validated before the first write.
        for adj in plan:
            target = products[adj.product_id]
            if target is not None:
                validate_reservation(target.stock_available, adj.delta, target.id)

        for adj in plan:
            target = products[adj.product_id]
            if target is None:
                logger.warning(
                    "Product %s of order %s no longer exists; %s unit(s) not restored",
                    adj.product_id, uow.order_id, -adj.delta,
                )
                continue
            saved = self._adjust_stock(uow, target, adj.delta)
            action = ChangeAction.STOCK_UPDATED if adj.product_id == product.id else ChangeAction.STOCK_RESTORED
            self._announce_stock(uow, saved, action)

        order = self.repo.update(updated, expected_version=existing.version)
        uow.committed = True
        self._announce_order(uow, order, ChangeAction.UPDATED)
        return order

    def _delete(self, uow: _UnitOfWork) -> Optional[Order]:
        order = self.repo.get(Order, uow.order_id)
        if order is None:
            logger.warning("Order %s not found; nothing to delete", uow.order_id)
            uow.warnings.append(f"Order {uow.order_id} not found.")
            uow.committed = True
            return None

        restored = None
        product = self.repo.get(Product, order.product_id)
        if product is not None:
            restored = self._adjust_stock(uow, product, compute_delta(order.quantity, 0))

        try:
            self.repo.delete(Order, order.id, expected_version=order.version)
        except EntityNotFound:
            # Someone else deleted it between our read and delete, and restored
            # the stock already; take our restoration back.
            if not self._compensate(uow):
                raise TransientFailure(self._reconciliation_message(uow))
            logger.warning("Order %s was deleted concurrently", uow.order_id)
            uow.warnings.append(f"Order {uow.order_id} not found.")
            uow.committed = True
            return None
        uow.committed = True

        if restored is not None:
            self._announce_stock(uow, restored, ChangeAction.STOCK_RESTORED)
        self._announce_order(uow, order, ChangeAction.DELETED)
        return order

    def _complete(self, uow: _UnitOfWork) -> Order:
        order = self.repo.get(Order, uow.order_id)
        if order is None:
            raise OrderNotFound(uow.order_id)
        completed = Order.model_validate({**order.model_dump(), "status": COMPLETED_ORDER_STATUS})
        saved = self.repo.update(completed, expected_version=order.version)
        uow.committed = True
        self._announce_order(uow, saved, ChangeAction.UPDATED)
        return saved

    # -----------------------------
    # Stock writes and compensation
    # -----------------------------

    def _adjust_stock(self, uow: _UnitOfWork, product: Product, delta: int) -> Product:
        new_stock = apply_delta(product.stock_available, delta, product.id)
        saved = self.repo.update(product.model_copy(update={"stock_available": new_stock}))
        uow.applied.append(_AppliedAdjustment(StockAdjustment(product.id, delta)))
        return saved

    def _compensate(self, uow: _UnitOfWork) -> bool:
        ok = True
        while uow.applied:
            if not self._undo(uow, uow.applied.pop()):
                ok = False
        return ok

    def _undo(self, uow: _UnitOfWork, applied: _AppliedAdjustment) -> bool:
        adj = applied.adjustment
        for _ in range(self.max_attempts):
            try:
                product = self.repo.get(Product, adj.product_id)
                if product is None:
                    break
                new_stock = apply_delta(product.stock_available, -adj.delta, product.id)
                saved = self.repo.update(product.model_copy(update={"stock_available": new_stock}))
            except StaleVersion:
                continue
            except BackofficeError as e:
                logger.error("Undo of stock change %s on product %s failed: %s", adj.delta, adj.product_id, e)
                break
            if applied.announced:
                action = ChangeAction.STOCK_RESTORED if adj.delta > 0 else ChangeAction.STOCK_UPDATED
                self._announce_stock(uow, saved, action)
            return True

        logger.warning(
            "Manual reconciliation required: order %s / product %s, stock change of %s could not be undone",
            uow.order_id, adj.product_id, -adj.delta,
        )
        return False

    def _reconciliation_message(self, uow: _UnitOfWork) -> str:
        return (
            f"Order {uow.order_id} and its product stock may be out of sync; "
            "manual reconciliation required."
        )

    # -----------------------------
    # Events
    # -----------------------------

    def _announce_stock(self, uow: _UnitOfWork, product: Product, action: ChangeAction) -> None:
        for applied in uow.applied:
            if applied.adjustment.product_id == product.id:
                applied.announced = True
        if not self.emitter.emit_stock(product, action):
            uow.warnings.append(
                f"{action.value} event for product {product.id} was not delivered to {STOCK_UPDATES_TOPIC}."
            )

    def _announce_order(self, uow: _UnitOfWork, order: Order, action: ChangeAction) -> None:
        if not self.emitter.emit_order(order, action):
            uow.warnings.append(f"{action.value} event for order {order.id} was not delivered.")

    # -----------------------------
    # Driver
    # -----------------------------

    def _run(self, name: str, order_id: str, step: Callable[[_UnitOfWork], Optional[Order]]) -> results.OperationResult:
        attempt = 0
        while True:
            attempt += 1
            uow = _UnitOfWork(order_id=order_id)
            try:
                order = step(uow)
            except StaleVersion as e:
                if not self._rollback(uow):
                    return results.TransientFailure(cause=self._reconciliation_message(uow))
                if attempt < self.max_attempts:
                    logger.info("%s order %s: %s; retrying (%s/%s)", name, order_id, e, attempt, self.max_attempts)
                    time.sleep(self.conflict_backoff_seconds * attempt)
                    continue
                logger.warning("%s order %s gave up after %s conflicting attempts", name, order_id, attempt)
                return results.Conflict(detail=str(e))
            except BackofficeError as e:
                if not self._rollback(uow):
                    return results.TransientFailure(cause=self._reconciliation_message(uow))
                return self._failure(name, order_id, e)
            except ValidationError as e:
                if not self._rollback(uow):
                    return results.TransientFailure(cause=self._reconciliation_message(uow))
                return results.ValidationFailed(field_errors=results.field_errors_from(e))

            logger.info("%s order %s succeeded", name, order_id)
            return results.Ok(entity=order, warnings=uow.warnings)

    def _rollback(self, uow: _UnitOfWork) -> bool:
        if uow.committed:
            return True
        return self._compensate(uow)

    def _failure(self, name: str, order_id: str, e: BackofficeError) -> results.OperationResult:
        if isinstance(e, InsufficientStock):
            return results.InsufficientStock(available=e.available, requested=e.requested, product_id=e.product_id)
        if isinstance(e, EntityNotFound):
            return results.NotFound(detail=str(e))
        if isinstance(e, DuplicateKey):
            return results.Conflict(detail=str(e))
        logger.error("%s order %s failed: %s", name, order_id, e)
        return results.TransientFailure(cause=str(e))

    def _validate_input(
        self,
        *,
        product_id: str,
        quantity: int,
        status: Optional[str],
        customer_id: Optional[str] = None,
    ) -> Dict[str, str]:
        """Field checks done before touching the store; customer_id=None skips the customer check."""
        errors: Dict[str, str] = {}
        if customer_id is not None and not customer_id.strip():
            errors["customer_id"] = "Customer is required."
        if not product_id or not product_id.strip():
            errors["product_id"] = "Product is required."
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors["quantity"] = "Quantity must be at least 1"
        if status and status.strip() and status.strip() not in self.allowed_statuses:
            errors["status"] = f"Status must be one of: {', '.join(self.allowed_statuses)}"
        return errors
