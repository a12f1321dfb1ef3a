"""
Concurrent creation and transitions against a file-backed database.

Each worker uses its own session, as concurrent requests do.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from sqlalchemy import select

from rest_api.models import Order, Payment, StockItem, StockMovement
from rest_api.services.domain import (
    InvalidTransitionError,
    OrderLifecycleError,
    OrderService,
    OrderTransitionService,
)
from rest_api.services.events import LocalEventFanout
from shared.infrastructure.events import ORDER_CREATED, ORDER_PAID, ORDER_UPDATED
from tests.conftest import BEEF_ID, PISCO_ID, PISCO_SOUR_ID, FakeClock, make_order_request

WORKERS = 8


def run_concurrently(count, task):
    """Start ``count`` workers at the same instant; return results or raised errors."""
    barrier = threading.Barrier(count)

    def worker(index):
        barrier.wait()
        try:
            return task(index)
        except OrderLifecycleError as e:
            return e

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


class TestConcurrentCreation:
    """Simultaneous orders in one branch."""

    def test_codes_are_unique_and_gapless(self, file_session_factory):
        fanout = LocalEventFanout()
        clock = FakeClock()

        def create(_index):
            with file_session_factory() as session:
                order, _ = OrderService(session, fanout=fanout, clock=clock).create_order(
                    make_order_request()
                )
                return order.order_code

        codes = run_concurrently(WORKERS, create)

        assert all(isinstance(code, str) for code in codes), codes
        assert sorted(codes) == [f"CAS-20251028-{n:04d}" for n in range(1, WORKERS + 1)]
        assert len(fanout.events_of_type(ORDER_CREATED)) == WORKERS

    def test_same_idempotency_key_creates_one_order(self, file_session_factory):
        clock = FakeClock()

        def create(_index):
            with file_session_factory() as session:
                order, _ = OrderService(session, clock=clock).create_order(
                    make_order_request(), idempotency_key="retry-me"
                )
                return order.id

        ids = run_concurrently(4, create)

        assert len(set(ids)) == 1
        with file_session_factory() as session:
            assert session.query(Order).count() == 1


class TestConcurrentTransitions:
    """Duplicate confirmations racing each other."""

    def test_only_one_confirmation_wins(self, file_session_factory):
        clock = FakeClock()
        with file_session_factory() as session:
            order, _ = OrderService(session, clock=clock).create_order(make_order_request())
            order_id = order.id

        fanout = LocalEventFanout()

        def confirm(_index):
            with file_session_factory() as session:
                service = OrderTransitionService(session, fanout=fanout, clock=clock)
                return service.transition_status(order_id, "CONFIRMED").status

        results = run_concurrently(4, confirm)

        assert results.count("CONFIRMED") == 1
        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 3
        assert len(fanout.events_of_type(ORDER_UPDATED)) == 1
        with file_session_factory() as session:
            beef = session.scalar(select(StockItem.quantity).where(StockItem.id == BEEF_ID))
            consumed = session.query(StockMovement).filter_by(order_id=order_id).count()
        assert beef == Decimal("9.5")
        assert consumed == 2

    def test_payment_and_confirmation_race_consumes_once(self, file_session_factory):
        """Settling payment and a manual confirm both enter CONFIRMED; only one may."""
        clock = FakeClock()
        with file_session_factory() as session:
            order, _ = OrderService(session, clock=clock).create_order(
                make_order_request(
                    items=[{"menu_item_id": PISCO_SOUR_ID, "quantity": 1}],
                    payment_method="CARD",
                )
            )
            order_id = order.id
            OrderTransitionService(session, clock=clock).transition_status(order_id, "PENDING")

        fanout = LocalEventFanout()

        def pay_or_confirm(index):
            with file_session_factory() as session:
                service = OrderTransitionService(session, fanout=fanout, clock=clock)
                if index % 2 == 0:
                    return ("paid", service.mark_paid(order_id, "CARD", "tx-1").status)
                return ("confirmed", service.transition_status(order_id, "CONFIRMED").status)

        results = run_concurrently(4, pay_or_confirm)

        manual_confirms = [r for r in results if isinstance(r, tuple) and r[0] == "confirmed"]
        assert len(manual_confirms) + len(fanout.events_of_type(ORDER_PAID)) == 1
        assert all(isinstance(r, (tuple, OrderLifecycleError)) for r in results)
        with file_session_factory() as session:
            stored = session.get(Order, order_id)
            pisco = session.scalar(select(StockItem.quantity).where(StockItem.id == PISCO_ID))
            consumed = session.query(StockMovement).filter_by(order_id=order_id).count()
            payments = session.query(Payment).filter_by(order_id=order_id).count()
        assert stored.status == "CONFIRMED"
        assert pisco == Decimal("0.875")
        assert consumed == 1
        assert payments <= 1
        assert (stored.payment_status == "PAID") == (payments == 1)
