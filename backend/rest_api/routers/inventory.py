"""
Inventory router.

Read side of the stock ledger (low-stock alerts, movement history) and
manual adjustments. Order-driven consumption and restoration happen inside
the order transitions, never here.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from shared.config.constants import ALL_STAFF_ROLES, MANAGEMENT_ROLES
from shared.config.logging import inventory_logger as logger
from shared.security.auth import require_branch, require_roles
from shared.utils.schemas import (
    LowStockAlert,
    StockAdjustmentRequest,
    StockItemOutput,
    StockMovementOutput,
)
from rest_api.core.dependencies import get_actor, get_inventory_service
from rest_api.routers._common.pagination import Pagination, get_pagination
from rest_api.services.domain import InventoryService

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("/alerts/low-stock", response_model=list[LowStockAlert])
def get_low_stock_alerts(
    branch_id: int = Query(gt=0),
    actor: dict[str, Any] = Depends(get_actor),
    service: InventoryService = Depends(get_inventory_service),
) -> list[LowStockAlert]:
    """
    Stock items at or below their minimum threshold, negative stock included.

    Confirmation never blocks on stock; this is where shortfalls surface.
    """
    require_roles(actor, ALL_STAFF_ROLES)
    require_branch(actor, branch_id)

    alerts = [
        LowStockAlert(
            stock_item=StockItemOutput.model_validate(item),
            shortfall=item.min_threshold - item.quantity,
        )
        for item in service.low_stock_alerts(branch_id)
    ]
    if alerts:
        logger.info("Low stock reported", branch_id=branch_id, count=len(alerts))
    return alerts


@router.get("/stock/{stock_item_id}/movements", response_model=list[StockMovementOutput])
def list_stock_movements(
    stock_item_id: int,
    pagination: Pagination = Depends(get_pagination),
    actor: dict[str, Any] = Depends(get_actor),
    service: InventoryService = Depends(get_inventory_service),
) -> list[StockMovementOutput]:
    require_roles(actor, ALL_STAFF_ROLES)
    require_branch(actor, service.get_stock_item(stock_item_id).branch_id)
    movements = service.list_movements(stock_item_id, limit=pagination.limit, offset=pagination.offset)
    return [StockMovementOutput.model_validate(m) for m in movements]


@router.post("/stock/{stock_item_id}/adjust", response_model=StockItemOutput)
def adjust_stock(
    stock_item_id: int,
    body: StockAdjustmentRequest,
    actor: dict[str, Any] = Depends(get_actor),
    service: InventoryService = Depends(get_inventory_service),
) -> StockItemOutput:
    """Manual count correction, purchase or waste (ADMIN/MANAGER)."""
    require_roles(actor, MANAGEMENT_ROLES)
    require_branch(actor, service.get_stock_item(stock_item_id).branch_id)
    item = service.adjust_stock(
        stock_item_id,
        body.delta,
        reason=body.reason,
        note=body.note,
        actor_id=actor["user_id"],
    )
    return StockItemOutput.model_validate(item)
