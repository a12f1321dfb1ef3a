"""
Order Transition Service.

Every transition runs as one unit of work:

1. re-read the order (``SELECT ... FOR UPDATE`` where supported)
2. check the move against ``ALLOWED_TRANSITIONS`` from that exact status
3. compare-and-set ``UPDATE orders ... WHERE status = <status read in 1>``
4. inventory side effects and the audit entry
5. commit, then fan out

Step 3 matches zero rows when a concurrent request moved the order first,
which turns a duplicated or retried request into an InvalidTransitionError
before any side effect runs. Inventory is therefore consumed at most once
per order even on databases without row locks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import AuditAction, OrderStatus, PaymentMethod, PaymentStatus
from shared.config.logging import get_logger
from shared.infrastructure.events import (
    KITCHEN_ACK,
    ORDER_CANCELLED,
    ORDER_PAID,
    ORDER_UPDATED,
    PAYMENT_UPDATED,
)
from rest_api.models import Order, Payment
from rest_api.services.audit import EntityRef
from rest_api.services.collaborators import Collaborators
from rest_api.services.domain.clock import Clock, next_updated_at, utc_now
from rest_api.services.domain.errors import (
    InvalidTransitionError,
    OrderConflictError,
    OrderLifecycleError,
    OrderNotFoundError,
    OrderPersistenceError,
    OrderValidationError,
)
from rest_api.services.domain.inventory_service import InventoryService
from rest_api.services.domain.order_service import OrderService, actor_user_id
from rest_api.services.domain.state_machine import (
    can_confirm_on_payment,
    can_transition,
    consumes_stock,
    is_terminal,
    restores_stock,
)
from rest_api.services.events import EventFanout, build_order_event, publish_committed

logger = get_logger("rest_api.orders")
kitchen_logger = get_logger("rest_api.kitchen")


@dataclass
class _UnitOfWork:
    """What one locked operation changed; drives the post-commit events."""

    event_types: list[str] = field(default_factory=list)
    changed: bool = True


class OrderTransitionService:
    """
    Domain service for status transitions and payment settlement.

    Usage:
        service = OrderTransitionService(db, fanout=fanout)
        order = service.transition_status(order_id, OrderStatus.CONFIRMED, actor=actor)
    """

    def __init__(
        self,
        db: Session,
        fanout: EventFanout | None = None,
        collaborators: Collaborators | None = None,
        clock: Clock = utc_now,
    ):
        self._db = db
        self._fanout = fanout
        self._collaborators = collaborators or Collaborators.for_session(db)
        self._clock = clock
        self._inventory = InventoryService(db, self._collaborators)
        self._orders = OrderService(db, collaborators=self._collaborators, clock=clock)

    # =========================================================================
    # Public operations
    # =========================================================================

    def transition_status(
        self,
        order_id: int,
        target_status: str,
        actor: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> Order:
        """
        Move an order to ``target_status``.

        Raises:
            OrderValidationError: unknown status name
            InvalidTransitionError: move not allowed from the current status
            OrderNotFoundError: no such order
        """
        if target_status not in OrderStatus.ALL:
            raise OrderValidationError(f"unknown status {target_status}")

        action = AuditAction.ORDER_CANCEL if target_status == OrderStatus.CANCELLED else AuditAction.ORDER_STATUS_UPDATE

        def operation(order: Order) -> _UnitOfWork:
            self._transition(order, target_status, actor, action, reason=reason)
            events = [ORDER_UPDATED]
            if target_status == OrderStatus.CANCELLED:
                events.insert(0, ORDER_CANCELLED)
            return _UnitOfWork(events)

        return self._run(order_id, operation, actor)

    def cancel_order(self, order_id: int, reason: str, actor: dict[str, Any] | None = None) -> Order:
        """Cancel with a reason; restores stock if the order was confirmed."""
        if not reason or not reason.strip():
            raise OrderValidationError("cancellation reason required")
        return self.transition_status(order_id, OrderStatus.CANCELLED, actor=actor, reason=reason.strip())

    def acknowledge_kitchen(self, order_id: int, actor: dict[str, Any] | None = None) -> Order:
        """Kitchen accepted the ticket: CONFIRMED -> PREPARING plus ``kitchen.ack``."""

        def operation(order: Order) -> _UnitOfWork:
            if order.status != OrderStatus.CONFIRMED:
                raise InvalidTransitionError(
                    order.status,
                    OrderStatus.PREPARING,
                    f"kitchen can only acknowledge CONFIRMED orders, order is {order.status}",
                )
            self._transition(order, OrderStatus.PREPARING, actor, AuditAction.ORDER_KITCHEN_ACK)
            return _UnitOfWork([KITCHEN_ACK, ORDER_UPDATED])

        order = self._run(order_id, operation, actor)
        kitchen_logger.info("Kitchen acknowledged order", order_id=order.id, order_code=order.order_code)
        return order

    def mark_paid(
        self,
        order_id: int,
        payment_method: str,
        transaction_ref: str,
        actor: dict[str, Any] | None = None,
    ) -> Order:
        """
        Record a settled payment.

        AWAITING_PAYMENT/PENDING orders are confirmed in the same transaction
        (consuming stock) and ``order.paid`` sends the ticket to the kitchen.
        A SERVED order is completed. Replaying the same ``transaction_ref``
        returns the order unchanged.

        Raises:
            OrderConflictError: already paid under a different transaction
            InvalidTransitionError: order is CANCELLED or COMPLETED
        """
        if payment_method not in PaymentMethod.ALL:
            raise OrderValidationError(f"unsupported payment method {payment_method}")
        if not transaction_ref:
            raise OrderValidationError("transaction reference required")

        def operation(order: Order) -> _UnitOfWork:
            if order.payment_status == PaymentStatus.PAID:
                replay = self._db.scalar(
                    select(Payment.id).where(
                        Payment.order_id == order.id,
                        Payment.transaction_ref == transaction_ref,
                    )
                )
                if replay is not None:
                    return _UnitOfWork(changed=False)
                raise OrderConflictError(f"order {order.order_code} is already paid")

            if is_terminal(order.status):
                raise InvalidTransitionError(
                    order.status,
                    OrderStatus.PAID,
                    f"cannot record payment for a {order.status} order",
                )

            payment_values = {
                "payment_status": PaymentStatus.PAID,
                "payment_method": payment_method,
            }
            events = [PAYMENT_UPDATED]
            if order.status in OrderStatus.PAYABLE_BEFORE_CONFIRMATION:
                self._transition(
                    order,
                    OrderStatus.CONFIRMED,
                    actor,
                    AuditAction.ORDER_STATUS_UPDATE,
                    extra_values=payment_values,
                    guard=can_confirm_on_payment,
                )
                events.append(ORDER_PAID)
            elif order.status == OrderStatus.SERVED:
                self._transition(order, OrderStatus.COMPLETED, actor, AuditAction.ORDER_STATUS_UPDATE, extra_values=payment_values)
            else:
                self._compare_and_set(order, order.status, payment_values)
            events.append(ORDER_UPDATED)

            self._db.add(
                Payment(
                    order_id=order.id,
                    method=payment_method,
                    amount_cents=order.total_cents,
                    transaction_ref=transaction_ref,
                    paid_at=self._clock(),
                    recorded_by_id=actor_user_id(actor),
                )
            )
            self._collaborators.audit.record_audit(
                actor_user_id(actor),
                AuditAction.PAYMENT_RECORD,
                EntityRef("order", order.id),
                {
                    "branch_id": order.branch_id,
                    "method": payment_method,
                    "amount_cents": order.total_cents,
                    "transaction_ref": transaction_ref,
                },
            )
            self._db.flush()
            return _UnitOfWork(events)

        return self._run(order_id, operation, actor)

    # =========================================================================
    # Unit of work
    # =========================================================================

    def _lock_order(self, order_id: int) -> Order:
        order = self._db.scalar(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _run(
        self,
        order_id: int,
        operation: Callable[[Order], _UnitOfWork],
        actor: dict[str, Any] | None,
    ) -> Order:
        try:
            order = self._lock_order(order_id)
            unit = operation(order)
            self._db.commit()
        except OrderLifecycleError:
            self._db.rollback()
            raise
        except IntegrityError as e:
            self._db.rollback()
            logger.warning("Order transition conflict", order_id=order_id, error=str(e.orig))
            raise OrderConflictError("order was modified concurrently, please retry") from e
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error("Order transition failed", order_id=order_id, error=str(e), exc_info=True)
            raise OrderPersistenceError("order transition failed") from e

        order = self._orders.get_order(order_id)
        if unit.changed:
            publish_committed(
                self._fanout,
                [build_order_event(event_type, order, actor) for event_type in unit.event_types],
            )
        return order

    def _transition(
        self,
        order: Order,
        target_status: str,
        actor: dict[str, Any] | None,
        audit_action: str,
        reason: str | None = None,
        extra_values: dict[str, Any] | None = None,
        guard: Callable[[str, str], bool] = can_transition,
    ) -> None:
        """
        Guarded status change plus side effects; caller commits.

        ``guard`` decides legality from the locked status; payment settlement
        passes its own rule, everything else uses the transition table.
        """
        current = order.status
        if not guard(current, target_status):
            raise InvalidTransitionError(current, target_status)

        values = dict(extra_values or {})
        values["status"] = target_status
        if target_status == OrderStatus.CANCELLED and reason:
            values["cancel_reason"] = reason
        self._compare_and_set(order, current, values)

        actor_id = actor_user_id(actor)
        if consumes_stock(current, target_status):
            self._inventory.consume_for_order(order, actor_id)
        elif restores_stock(current, target_status):
            self._inventory.restore_for_order(order, actor_id)

        meta = {"branch_id": order.branch_id, "from": current, "to": target_status}
        if reason:
            meta["reason"] = reason
        self._collaborators.audit.record_audit(actor_id, audit_action, EntityRef("order", order.id), meta)

        logger.info(
            "Order status changed",
            order_id=order.id,
            order_code=order.order_code,
            from_status=current,
            to_status=target_status,
            user_id=actor_id,
        )

    def _compare_and_set(self, order: Order, expected_status: str, values: dict[str, Any]) -> None:
        """
        Write ``values`` only if the stored status is still ``expected_status``
        (and, when payment is being settled, the order is not already paid).
        """
        conditions = [Order.id == order.id, Order.status == expected_status]
        if values.get("payment_status") == PaymentStatus.PAID:
            conditions.append(Order.payment_status != PaymentStatus.PAID)

        values = {**values, "updated_at": next_updated_at(self._clock(), order.updated_at)}
        result = self._db.execute(
            update(Order)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            stored, payment_status = self._db.execute(
                select(Order.status, Order.payment_status).where(Order.id == order.id)
            ).one()
            if stored == expected_status and payment_status == PaymentStatus.PAID:
                raise OrderConflictError(f"order {order.order_code} is already paid")
            raise InvalidTransitionError(
                stored or expected_status,
                values.get("status", expected_status),
                f"order {order.order_code} changed concurrently (now {stored})",
            )
