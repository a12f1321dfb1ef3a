"""
Orders router.

Public endpoints for table-side customers (place an order, look it up by
its payment reference) and staff endpoints for the order lifecycle.
"""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from shared.config.constants import (
    ALL_STAFF_ROLES,
    CASHIER_ACCESS_ROLES,
    KITCHEN_ACCESS_ROLES,
    OrderStatus,
)
from shared.config.settings import settings
from shared.security.auth import require_branch, require_roles
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    CancelOrderRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    MarkPaidRequest,
    OrderOutput,
    OrderStatusLiteral,
    PaymentStatusLiteral,
    UpdateOrderStatusRequest,
)
from rest_api.core.dependencies import get_actor, get_order_service, get_transition_service
from rest_api.routers._common.pagination import Pagination, get_pagination
from rest_api.services.domain import OrderFilters, OrderService, OrderTransitionService

router = APIRouter(
    prefix="/api/orders",
    tags=["orders"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)

# Statuses the kitchen may set on its own; everything else is front-of-house
KITCHEN_TARGETS = frozenset({OrderStatus.PREPARING, OrderStatus.READY})


# =============================================================================
# Public
# =============================================================================


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_create_rate_limit)
def create_order(
    request: Request,
    response: Response,
    body: CreateOrderRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key", max_length=128),
    service: OrderService = Depends(get_order_service),
) -> CreateOrderResponse:
    """
    Place an order from the table-side menu.

    Returns 201 for a new order. Replaying the same ``Idempotency-Key`` for
    the same branch returns the original order with 200.
    """
    order, created = service.create_order(body, idempotency_key=idempotency_key)
    if not created:
        response.status_code = status.HTTP_200_OK
    return CreateOrderResponse(
        order_id=order.id,
        order_code=order.order_code,
        payment_reference=order.payment_reference,
        status=order.status,
        total_cents=order.total_cents,
    )


@router.get("/reference/{payment_reference}", response_model=OrderOutput)
def get_order_by_reference(
    payment_reference: str,
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Current state of an order for a customer reconnecting to the menu."""
    return OrderOutput.model_validate(service.get_order_by_reference(payment_reference))


# =============================================================================
# Staff
# =============================================================================


@router.get("", response_model=list[OrderOutput])
def list_orders(
    branch_id: int | None = Query(default=None, gt=0),
    order_status: list[OrderStatusLiteral] = Query(default=[], alias="status"),
    payment_status: PaymentStatusLiteral | None = None,
    table_id: int | None = Query(default=None, gt=0),
    business_date: date | None = None,
    pagination: Pagination = Depends(get_pagination),
    actor: dict[str, Any] = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> list[OrderOutput]:
    """
    Orders in the caller's branches, newest first.

    ``status`` may be repeated to match several statuses.
    """
    require_roles(actor, ALL_STAFF_ROLES)
    if branch_id is not None:
        require_branch(actor, branch_id)
        branch_ids = [branch_id]
    else:
        branch_ids = actor["branch_ids"]
    if not branch_ids:
        return []

    orders = service.list_orders(
        OrderFilters(
            branch_ids=branch_ids,
            statuses=list(order_status),
            payment_status=payment_status,
            table_id=table_id,
            business_date=business_date,
            limit=pagination.limit,
            offset=pagination.offset,
        )
    )
    return [OrderOutput.model_validate(order) for order in orders]


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    actor: dict[str, Any] = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    require_roles(actor, ALL_STAFF_ROLES)
    order = service.get_order(order_id)
    require_branch(actor, order.branch_id)
    return OrderOutput.model_validate(order)


@router.patch("/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    actor: dict[str, Any] = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
    transitions: OrderTransitionService = Depends(get_transition_service),
) -> OrderOutput:
    """
    Move an order to another status.

    Kitchen staff may only set PREPARING and READY; cashiers and managers
    may set any status the state machine allows.
    """
    if body.status in KITCHEN_TARGETS:
        require_roles(actor, ALL_STAFF_ROLES)
    else:
        require_roles(actor, CASHIER_ACCESS_ROLES)
    _check_order_branch(orders, actor, order_id)

    order = transitions.transition_status(order_id, body.status, actor=actor)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderOutput)
def cancel_order(
    order_id: int,
    body: CancelOrderRequest,
    actor: dict[str, Any] = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
    transitions: OrderTransitionService = Depends(get_transition_service),
) -> OrderOutput:
    """Cancel an order. Stock consumed by a confirmed order is restored."""
    require_roles(actor, CASHIER_ACCESS_ROLES)
    _check_order_branch(orders, actor, order_id)
    order = transitions.cancel_order(order_id, body.reason, actor=actor)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/kitchen-ack", response_model=OrderOutput)
def acknowledge_kitchen(
    order_id: int,
    actor: dict[str, Any] = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
    transitions: OrderTransitionService = Depends(get_transition_service),
) -> OrderOutput:
    """Kitchen accepted the ticket; the order moves to PREPARING."""
    require_roles(actor, KITCHEN_ACCESS_ROLES)
    _check_order_branch(orders, actor, order_id)
    order = transitions.acknowledge_kitchen(order_id, actor=actor)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/payments", response_model=OrderOutput)
def mark_paid(
    order_id: int,
    body: MarkPaidRequest,
    actor: dict[str, Any] = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
    transitions: OrderTransitionService = Depends(get_transition_service),
) -> OrderOutput:
    """
    Record a settled payment.

    A card order waiting for payment is confirmed and sent to the kitchen.
    Replaying the same ``transaction_ref`` returns the order unchanged.
    """
    require_roles(actor, CASHIER_ACCESS_ROLES)
    _check_order_branch(orders, actor, order_id)
    order = transitions.mark_paid(
        order_id,
        body.payment_method,
        body.transaction_ref,
        actor=actor,
    )
    return OrderOutput.model_validate(order)


def _check_order_branch(orders: OrderService, actor: dict[str, Any], order_id: int) -> None:
    order = orders.get_order(order_id)
    require_branch(actor, order.branch_id)
