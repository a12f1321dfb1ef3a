"""
Inventory Domain Service.

Stock consumption and restoration run inside the transaction of the status
transition that triggers them: a failed stock write rolls the transition
back, so an order is CONFIRMED if and only if its stock effects committed.

Every quantity change is an atomic ``quantity = quantity + change`` UPDATE
paired with a StockMovement row. Negative stock is allowed; low stock is
reported by ``low_stock_alerts``.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import AuditAction, StockMovementReason
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from rest_api.models import Order, StockItem, StockMovement
from rest_api.services.audit import EntityRef
from rest_api.services.collaborators import Collaborators, RecipeProvider
from rest_api.services.domain.errors import (
    OrderPersistenceError,
    OrderValidationError,
    StockItemNotFoundError,
)

logger = get_logger("rest_api.inventory")


class InventoryService:
    """Stock ledger operations for one database session."""

    def __init__(self, db: Session, collaborators: Collaborators | None = None):
        self._db = db
        self._collaborators = collaborators or Collaborators.for_session(db)

    @property
    def _recipes(self) -> RecipeProvider:
        return self._collaborators.recipes

    # =========================================================================
    # Order side effects (caller owns the transaction)
    # =========================================================================

    def consume_for_order(self, order: Order, actor_id: int | None = None) -> list[StockMovement]:
        """
        Decrement stock for every recipe line of every order item.

        ``qty_per_serving * item.quantity`` per line, aggregated per stock item.
        Does not commit.
        """
        required: dict[int, Decimal] = defaultdict(Decimal)
        for item in order.items:
            for line in self._recipes.get_recipe(item.menu_item_id):
                required[line.stock_item_id] += line.qty_per_serving * item.quantity

        movements = self._apply_changes(
            order,
            {stock_item_id: -qty for stock_item_id, qty in required.items()},
            StockMovementReason.CONSUMPTION,
            actor_id,
        )
        logger.info(
            "Stock consumed for order",
            order_id=order.id,
            order_code=order.order_code,
            stock_items=len(movements),
        )
        self._warn_low_stock(order, [m.stock_item_id for m in movements])
        return movements

    def _warn_low_stock(self, order: Order, stock_item_ids: list[int]) -> None:
        if not stock_item_ids:
            return
        low = self._db.execute(
            select(StockItem.id, StockItem.name, StockItem.quantity).where(
                StockItem.id.in_(stock_item_ids),
                StockItem.quantity <= StockItem.min_threshold,
            )
        ).all()
        for stock_item_id, name, quantity in low:
            logger.warning(
                "Stock at or below threshold",
                stock_item_id=stock_item_id,
                name=name,
                quantity=str(quantity),
                order_code=order.order_code,
            )

    def restore_for_order(self, order: Order, actor_id: int | None = None) -> list[StockMovement]:
        """
        Give back exactly what the order consumed.

        Magnitudes come from the order's recorded movements, not from the
        current recipes, so a recipe edited after confirmation cannot skew
        the ledger. Does not commit.
        """
        net_rows = self._db.execute(
            select(StockMovement.stock_item_id, func.sum(StockMovement.change))
            .where(
                StockMovement.order_id == order.id,
                StockMovement.reason.in_(
                    [StockMovementReason.CONSUMPTION, StockMovementReason.RESTORATION]
                ),
            )
            .group_by(StockMovement.stock_item_id)
        ).all()

        changes = {
            stock_item_id: -Decimal(net)
            for stock_item_id, net in net_rows
            if net is not None and Decimal(net) != 0
        }
        movements = self._apply_changes(order, changes, StockMovementReason.RESTORATION, actor_id)
        logger.info(
            "Stock restored for cancelled order",
            order_id=order.id,
            order_code=order.order_code,
            stock_items=len(movements),
        )
        return movements

    def _apply_changes(
        self,
        order: Order,
        changes: dict[int, Decimal],
        reason: str,
        actor_id: int | None,
    ) -> list[StockMovement]:
        movements = []
        # Fixed update order keeps concurrent confirmations from deadlocking
        for stock_item_id in sorted(changes):
            change = changes[stock_item_id]
            if change == 0:
                continue
            self._increment(stock_item_id, change)
            movement = StockMovement(
                stock_item_id=stock_item_id,
                change=change,
                reason=reason,
                order_id=order.id,
                order_reference=order.order_code,
                created_by_id=actor_id,
            )
            self._db.add(movement)
            movements.append(movement)
        self._db.flush()
        return movements

    def _increment(self, stock_item_id: int, change: Decimal) -> None:
        result = self._db.execute(
            update(StockItem)
            .where(StockItem.id == stock_item_id)
            .values(quantity=StockItem.quantity + change)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StockItemNotFoundError(stock_item_id)

    # =========================================================================
    # Manual adjustments and read side
    # =========================================================================

    def get_stock_item(self, stock_item_id: int) -> StockItem:
        item = self._db.get(StockItem, stock_item_id)
        if item is None:
            raise StockItemNotFoundError(stock_item_id)
        return item

    def adjust_stock(
        self,
        stock_item_id: int,
        delta: Decimal,
        reason: str = StockMovementReason.ADJUSTMENT,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> StockItem:
        """
        Apply a manual signed correction and commit it.

        Raises:
            OrderValidationError: zero delta or non-manual reason
            StockItemNotFoundError: unknown stock item
        """
        if delta == 0:
            raise OrderValidationError("adjustment delta must be non-zero")
        if reason not in StockMovementReason.MANUAL:
            raise OrderValidationError(f"reason must be one of {StockMovementReason.MANUAL}")

        item = self.get_stock_item(stock_item_id)
        try:
            self._increment(stock_item_id, delta)
            self._db.add(
                StockMovement(
                    stock_item_id=stock_item_id,
                    change=delta,
                    reason=reason,
                    note=note,
                    created_by_id=actor_id,
                )
            )
            self._collaborators.audit.record_audit(
                actor_id,
                AuditAction.STOCK_ADJUST,
                EntityRef("stock_item", stock_item_id),
                {"branch_id": item.branch_id, "delta": str(delta), "reason": reason, "note": note},
            )
            safe_commit(self._db)
        except StockItemNotFoundError:
            self._db.rollback()
            raise
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error("Stock adjustment failed", stock_item_id=stock_item_id, error=str(e))
            raise OrderPersistenceError("stock adjustment failed") from e

        self._db.refresh(item)
        logger.info(
            "Stock adjusted",
            stock_item_id=stock_item_id,
            delta=str(delta),
            reason=reason,
            quantity=str(item.quantity),
        )
        return item

    def low_stock_alerts(self, branch_id: int) -> list[StockItem]:
        """Stock items at or below their threshold, most depleted first."""
        return list(
            self._db.scalars(
                select(StockItem)
                .where(
                    StockItem.branch_id == branch_id,
                    StockItem.quantity <= StockItem.min_threshold,
                )
                .order_by((StockItem.quantity - StockItem.min_threshold).asc(), StockItem.id)
            ).all()
        )

    def list_movements(self, stock_item_id: int, limit: int = 50, offset: int = 0) -> list[StockMovement]:
        """Movement history of one stock item, newest first."""
        self.get_stock_item(stock_item_id)
        return list(
            self._db.scalars(
                select(StockMovement)
                .where(StockMovement.stock_item_id == stock_item_id)
                .order_by(StockMovement.id.desc())
                .limit(limit)
                .offset(offset)
            ).all()
        )
