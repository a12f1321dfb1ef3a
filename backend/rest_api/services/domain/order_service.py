"""
Order Domain Service.

Creates orders atomically: catalog resolution, snapshot pricing, sequence
allocation and the order/item/modifier inserts form one transaction.
Sequence or unique-key collisions are retried a bounded number of times;
``order.created`` is published only after the commit succeeds.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import (
    AuditAction,
    Limits,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.config.logging import get_logger, mask_reference
from shared.config.settings import settings
from shared.infrastructure.events import ORDER_CREATED
from shared.utils.schemas import CreateOrderRequest
from rest_api.models import Order, OrderItem, OrderItemModifier
from rest_api.services.audit import EntityRef
from rest_api.services.collaborators import BranchRates, Collaborators
from rest_api.services.domain.clock import Clock, business_date, utc_now
from rest_api.services.domain.errors import (
    CatalogReferenceError,
    OrderConflictError,
    OrderLifecycleError,
    OrderNotFoundError,
    OrderPersistenceError,
    OrderValidationError,
)
from rest_api.services.domain.pricing import PricedLine, price_order
from rest_api.services.domain.sequence_allocator import SequenceAllocator
from rest_api.services.events import EventFanout, build_order_event, publish_committed

logger = get_logger("rest_api.orders")

MENU_ITEM_UNAVAILABLE = "menu item not found or unavailable"
MODIFIER_UNAVAILABLE = "modifier not found or unavailable"

INITIAL_STATE: dict[str, tuple[str, str]] = {
    PaymentMethod.CASH: (OrderStatus.SUBMITTED, PaymentStatus.UNPAID),
    PaymentMethod.CARD: (OrderStatus.AWAITING_PAYMENT, PaymentStatus.PENDING),
}


@dataclass
class _ResolvedLine:
    menu_item_id: int
    item_name: str
    quantity: int
    note: str | None
    priced: PricedLine
    modifiers: list[tuple[int, str, int]]  # (modifier_id, name, extra_price_cents)


@dataclass
class OrderFilters:
    """Filters for ``list_orders``. Lists of statuses are OR-ed."""

    branch_ids: list[int] | None = None
    statuses: list[str] = field(default_factory=list)
    payment_status: str | None = None
    table_id: int | None = None
    business_date: date | None = None
    limit: int = 50
    offset: int = 0


class OrderService:
    """
    Domain service for order creation and retrieval.

    Usage:
        service = OrderService(db, fanout=fanout)
        order, created = service.create_order(request, idempotency_key=key)
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

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(
        self,
        request: CreateOrderRequest,
        idempotency_key: str | None = None,
        actor: dict[str, Any] | None = None,
    ) -> tuple[Order, bool]:
        """
        Create an order in one transaction.

        Returns:
            ``(order, created)``; ``created`` is False when the idempotency
            key matched an existing order, which is returned unchanged.

        Raises:
            OrderValidationError: empty or malformed input
            CatalogReferenceError: unknown/unavailable branch, table, item or modifier
            OrderConflictError: collisions persisted through every retry
            OrderPersistenceError: any other database failure
        """
        self._validate(request)

        existing = self._find_by_idempotency_key(request.branch_id, idempotency_key)
        if existing is not None:
            logger.info(
                "Order creation replayed",
                order_id=existing.id,
                order_code=existing.order_code,
                branch_id=request.branch_id,
            )
            return existing, False

        max_attempts = max(1, settings.order_create_max_retries)
        for attempt in range(1, max_attempts + 1):
            try:
                order = self._insert_order(request, idempotency_key, actor)
                self._db.commit()
                break
            except IntegrityError as e:
                self._db.rollback()
                # A concurrent request with the same key won the race
                existing = self._find_by_idempotency_key(request.branch_id, idempotency_key)
                if existing is not None:
                    return existing, False
                logger.warning(
                    "Order creation conflict, retrying",
                    branch_id=request.branch_id,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e.orig),
                )
            except OrderLifecycleError:
                self._db.rollback()
                raise
            except SQLAlchemyError as e:
                self._db.rollback()
                logger.error(
                    "Order creation failed",
                    branch_id=request.branch_id,
                    error=str(e),
                    exc_info=True,
                )
                raise OrderPersistenceError("order creation failed") from e
        else:
            logger.error(
                "Order creation gave up after conflicts",
                branch_id=request.branch_id,
                attempts=max_attempts,
            )
            raise OrderConflictError("could not allocate a unique order code, please retry")

        order = self.get_order(order.id)
        logger.info(
            "Order created",
            order_id=order.id,
            order_code=order.order_code,
            branch_id=order.branch_id,
            status=order.status,
            total_cents=order.total_cents,
            payment_reference=mask_reference(order.payment_reference),
        )
        publish_committed(self._fanout, [build_order_event(ORDER_CREATED, order, actor)])
        return order, True

    def _validate(self, request: CreateOrderRequest) -> None:
        if not request.items:
            raise OrderValidationError("at least one item required")
        if len(request.items) > Limits.MAX_ITEMS_PER_ORDER:
            raise OrderValidationError(
                f"an order may contain at most {Limits.MAX_ITEMS_PER_ORDER} items"
            )
        if request.payment_method not in INITIAL_STATE:
            raise OrderValidationError(f"unsupported payment method {request.payment_method}")
        for item in request.items:
            if item.quantity < 1:
                raise OrderValidationError("quantity must be at least 1")

    def _find_by_idempotency_key(self, branch_id: int, idempotency_key: str | None) -> Order | None:
        if not idempotency_key:
            return None
        order_id = self._db.scalar(
            select(Order.id).where(
                Order.branch_id == branch_id,
                Order.idempotency_key == idempotency_key,
            )
        )
        return self.get_order(order_id) if order_id is not None else None

    def _resolve_branch(self, request: CreateOrderRequest) -> BranchRates:
        branches = self._collaborators.branches
        rates = branches.get_branch_rates(request.branch_id)
        if rates is None:
            raise CatalogReferenceError("branch not found", reference=f"branch:{request.branch_id}")
        if request.table_id is not None and not branches.has_table(request.branch_id, request.table_id):
            raise CatalogReferenceError("table not found", reference=f"table:{request.table_id}")
        return rates

    def _resolve_lines(self, request: CreateOrderRequest) -> list[_ResolvedLine]:
        catalog = self._collaborators.catalog
        lines = []
        for item in request.items:
            menu_item = catalog.resolve_menu_item(item.menu_item_id)
            if menu_item is None or not menu_item.available or menu_item.branch_id != request.branch_id:
                raise CatalogReferenceError(
                    MENU_ITEM_UNAVAILABLE, reference=f"menu_item:{item.menu_item_id}"
                )

            modifiers = []
            for modifier_id in item.modifier_ids:
                modifier = catalog.resolve_modifier(modifier_id)
                if (
                    modifier is None
                    or not modifier.available
                    or modifier.branch_id != request.branch_id
                    or modifier.menu_item_id not in (None, menu_item.id)
                ):
                    raise CatalogReferenceError(
                        MODIFIER_UNAVAILABLE, reference=f"modifier:{modifier_id}"
                    )
                modifiers.append((modifier.id, modifier.name, modifier.extra_price_cents))

            lines.append(
                _ResolvedLine(
                    menu_item_id=menu_item.id,
                    item_name=menu_item.name,
                    quantity=item.quantity,
                    note=item.note,
                    priced=PricedLine(
                        unit_price_cents=menu_item.price_cents,
                        modifier_prices_cents=tuple(price for _, _, price in modifiers),
                        quantity=item.quantity,
                    ),
                    modifiers=modifiers,
                )
            )
        return lines

    def _insert_order(
        self,
        request: CreateOrderRequest,
        idempotency_key: str | None,
        actor: dict[str, Any] | None,
    ) -> Order:
        rates = self._resolve_branch(request)
        lines = self._resolve_lines(request)
        totals = price_order([line.priced for line in lines], rates.tax_rate, rates.service_rate)

        now = self._clock()
        local_date = business_date(now, rates.timezone)
        status, payment_status = INITIAL_STATE[request.payment_method]

        # Late in the transaction so the counter row is held briefly
        order_code = SequenceAllocator(self._db).allocate_code(rates.branch_id, rates.code, local_date)

        order = Order(
            branch_id=request.branch_id,
            table_id=request.table_id,
            order_code=order_code,
            payment_reference=secrets.token_urlsafe(16),
            idempotency_key=idempotency_key,
            customer_name=request.customer_name,
            status=status,
            payment_status=payment_status,
            payment_method=request.payment_method,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            service_charge_cents=totals.service_charge_cents,
            total_cents=totals.total_cents,
            business_date=local_date,
            created_at=now,
            updated_at=now,
        )
        self._db.add(order)
        self._db.flush()

        for line in lines:
            order_item = OrderItem(
                order_id=order.id,
                menu_item_id=line.menu_item_id,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price_cents=line.priced.unit_price_cents,
                line_total_cents=line.priced.line_total_cents,
                note=line.note,
            )
            self._db.add(order_item)
            self._db.flush()
            for modifier_id, name, extra_price_cents in line.modifiers:
                self._db.add(
                    OrderItemModifier(
                        order_item_id=order_item.id,
                        modifier_id=modifier_id,
                        modifier_name=name,
                        extra_price_cents=extra_price_cents,
                    )
                )

        self._collaborators.audit.record_audit(
            actor_user_id(actor),
            AuditAction.ORDER_CREATE,
            EntityRef("order", order.id),
            {
                "branch_id": order.branch_id,
                "order_code": order_code,
                "status": status,
                "total_cents": totals.total_cents,
            },
        )
        self._db.flush()
        return order

    # =========================================================================
    # Retrieval
    # =========================================================================

    def _order_query(self):
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.modifiers),
            selectinload(Order.payments),
        ).execution_options(populate_existing=True)

    def get_order(self, order_id: int) -> Order:
        """Full order with items, modifiers and payments."""
        order = self._db.scalar(self._order_query().where(Order.id == order_id))
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def get_order_by_reference(self, payment_reference: str) -> Order:
        """Customer lookup by the token issued at creation."""
        order = self._db.scalar(
            self._order_query().where(Order.payment_reference == payment_reference)
        )
        if order is None:
            raise OrderNotFoundError(mask_reference(payment_reference))
        return order

    def list_orders(self, filters: OrderFilters) -> list[Order]:
        """Orders matching the filters, newest first."""
        limit = min(max(filters.limit, 1), settings.order_list_max_limit)
        query = self._order_query()

        if filters.branch_ids is not None:
            query = query.where(Order.branch_id.in_(filters.branch_ids))
        if filters.statuses:
            unknown = set(filters.statuses) - set(OrderStatus.ALL)
            if unknown:
                raise OrderValidationError(f"unknown status {sorted(unknown)}")
            query = query.where(Order.status.in_(filters.statuses))
        if filters.payment_status:
            query = query.where(Order.payment_status == filters.payment_status)
        if filters.table_id is not None:
            query = query.where(Order.table_id == filters.table_id)
        if filters.business_date is not None:
            query = query.where(Order.business_date == filters.business_date)

        query = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(
            max(filters.offset, 0)
        )
        return list(self._db.scalars(query).all())


def actor_user_id(actor: dict[str, Any] | None) -> int | None:
    if not actor or actor.get("user_id") is None:
        return None
    return int(actor["user_id"])
