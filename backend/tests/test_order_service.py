"""
Tests for OrderService: creation, idempotency and retrieval.
"""

import json
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rest_api.models import AuditLog, MenuItem, Order, OrderSequence, StockMovement
from rest_api.services.domain import (
    CatalogReferenceError,
    OrderConflictError,
    OrderFilters,
    OrderNotFoundError,
    OrderPersistenceError,
    OrderValidationError,
)
from rest_api.services.domain.sequence_allocator import SequenceAllocator
from shared.infrastructure.events import ORDER_CREATED
from tests.conftest import (
    BRANCH_ID,
    DOUBLE_PISCO_ID,
    EXTRA_CHEESE_ID,
    LOMO_ID,
    OTHER_BRANCH_ID,
    PISCO_SOUR_ID,
    SOLD_OUT_ID,
    make_order_request,
)


class TestCreateOrder:
    """Happy-path creation."""

    def test_cash_order_is_submitted_and_unpaid(self, order_service):
        """2 x Lomo with extra cheese, paid in cash later."""
        order, created = order_service.create_order(make_order_request())

        assert created is True
        assert order.status == "SUBMITTED"
        assert order.payment_status == "UNPAID"
        assert order.payment_method == "CASH"
        assert order.subtotal_cents == 20000
        assert order.tax_cents == 2000
        assert order.service_charge_cents == 1000
        assert order.total_cents == 23000
        assert order.order_code == "CAS-20251028-0001"
        assert order.business_date == date(2025, 10, 28)

    def test_card_order_awaits_payment(self, order_service):
        order, _ = order_service.create_order(make_order_request(payment_method="CARD"))

        assert order.status == "AWAITING_PAYMENT"
        assert order.payment_status == "PENDING"

    def test_items_and_modifiers_are_snapshotted(self, order_service):
        """Names and prices are copied onto the order lines."""
        order, _ = order_service.create_order(
            make_order_request(
                items=[
                    {"menu_item_id": LOMO_ID, "quantity": 2, "modifier_ids": [EXTRA_CHEESE_ID]},
                    {
                        "menu_item_id": PISCO_SOUR_ID,
                        "quantity": 1,
                        "modifier_ids": [DOUBLE_PISCO_ID],
                        "note": "sin hielo",
                    },
                ]
            )
        )

        lomo, pisco = order.items
        assert lomo.item_name == "Lomo a lo pobre"
        assert lomo.unit_price_cents == 9500
        assert lomo.line_total_cents == 20000
        assert [m.modifier_name for m in lomo.modifiers] == ["Extra queso"]
        assert pisco.note == "sin hielo"
        assert pisco.line_total_cents == 6500
        assert order.subtotal_cents == 26500

    def test_later_price_change_does_not_touch_order(self, order_service, seed_data):
        order, _ = order_service.create_order(make_order_request())

        seed_data.get(MenuItem, LOMO_ID).price_cents = 12000
        seed_data.commit()

        reloaded = order_service.get_order(order.id)
        assert reloaded.items[0].unit_price_cents == 9500
        assert reloaded.total_cents == 23000

    def test_stored_total_is_rounded_subtotal_with_charges(self, order_service):
        order, _ = order_service.create_order(
            make_order_request(items=[{"menu_item_id": PISCO_SOUR_ID, "quantity": 3}])
        )

        assert order.subtotal_cents == 13500
        assert (order.tax_cents, order.service_charge_cents) == (1350, 675)
        assert order.total_cents == 15525

    def test_table_is_optional(self, order_service):
        """POS orders have no table."""
        order, _ = order_service.create_order(make_order_request(table_id=None))

        assert order.table_id is None

    def test_payment_reference_is_unguessable_and_unique(self, order_service):
        first, _ = order_service.create_order(make_order_request())
        second, _ = order_service.create_order(make_order_request())

        assert len(first.payment_reference) >= 20
        assert first.payment_reference != second.payment_reference

    def test_creation_does_not_touch_stock(self, order_service, seed_data):
        """Stock is consumed at confirmation, not at creation."""
        order_service.create_order(make_order_request())

        assert seed_data.query(StockMovement).count() == 0

    def test_creation_is_audited(self, order_service, seed_data):
        order, _ = order_service.create_order(make_order_request(), actor={"user_id": 7, "roles": ["CASHIER"]})

        entry = seed_data.query(AuditLog).filter_by(entity_id=order.id, action="ORDER_CREATE").one()
        assert entry.user_id == 7
        assert entry.branch_id == BRANCH_ID
        assert json.loads(entry.meta)["total_cents"] == 23000

    def test_created_event_published_after_commit(self, order_service, fanout):
        order, _ = order_service.create_order(make_order_request())

        events = fanout.events_of_type(ORDER_CREATED)
        assert len(events) == 1
        assert events[0].order_id == order.id
        assert events[0].order["order_code"] == order.order_code
        assert events[0].order["status"] == "SUBMITTED"

    def test_created_at_and_updated_at_match(self, order_service, clock):
        order, _ = order_service.create_order(make_order_request())

        assert order.created_at.replace(tzinfo=timezone.utc) == clock.now
        assert order.updated_at == order.created_at


class TestCreateOrderRejections:
    """Invalid input leaves nothing behind."""

    def test_empty_items_rejected(self, order_service, seed_data, fanout):
        with pytest.raises(OrderValidationError, match="at least one item required"):
            order_service.create_order(make_order_request(items=[]))

        assert seed_data.query(Order).count() == 0
        assert fanout.published == []

    def test_unavailable_item_rejected(self, order_service, seed_data):
        with pytest.raises(CatalogReferenceError) as exc_info:
            order_service.create_order(
                make_order_request(items=[{"menu_item_id": SOLD_OUT_ID, "quantity": 1}])
            )

        assert exc_info.value.reference == f"menu_item:{SOLD_OUT_ID}"
        assert seed_data.query(Order).count() == 0

    def test_unknown_item_rejected(self, order_service):
        with pytest.raises(CatalogReferenceError):
            order_service.create_order(
                make_order_request(items=[{"menu_item_id": 999, "quantity": 1}])
            )

    def test_item_from_another_branch_rejected(self, order_service):
        with pytest.raises(CatalogReferenceError):
            order_service.create_order(make_order_request(branch_id=OTHER_BRANCH_ID, table_id=None))

    def test_modifier_for_another_dish_rejected(self, order_service):
        """The double pisco modifier only applies to pisco sour."""
        with pytest.raises(CatalogReferenceError) as exc_info:
            order_service.create_order(
                make_order_request(
                    items=[{"menu_item_id": LOMO_ID, "quantity": 1, "modifier_ids": [DOUBLE_PISCO_ID]}]
                )
            )

        assert exc_info.value.reference == f"modifier:{DOUBLE_PISCO_ID}"

    def test_unknown_table_rejected(self, order_service):
        with pytest.raises(CatalogReferenceError, match="table"):
            order_service.create_order(make_order_request(table_id=42))

    def test_unknown_branch_rejected(self, order_service):
        with pytest.raises(CatalogReferenceError, match="branch"):
            order_service.create_order(make_order_request(branch_id=77, table_id=None))

    def test_rejected_order_does_not_consume_a_sequence_number(self, order_service):
        with pytest.raises(CatalogReferenceError):
            order_service.create_order(
                make_order_request(
                    items=[
                        {"menu_item_id": LOMO_ID, "quantity": 1},
                        {"menu_item_id": SOLD_OUT_ID, "quantity": 1},
                    ]
                )
            )

        order, _ = order_service.create_order(make_order_request())
        assert order.order_code.endswith("-0001")


class TestCreateOrderFailures:
    """Conflicts and database failures."""

    def test_conflicts_retried_then_reported(self, order_service, seed_data, fanout):
        """Persistent unique collisions end in OrderConflictError."""
        collision = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        with patch.object(SequenceAllocator, "allocate_code", side_effect=collision) as allocate:
            with pytest.raises(OrderConflictError):
                order_service.create_order(make_order_request())

        assert allocate.call_count == 5
        assert seed_data.query(Order).count() == 0
        assert fanout.published == []

    def test_transient_conflict_is_retried(self, order_service):
        collision = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        real_allocate = SequenceAllocator.allocate_code
        calls = []

        def flaky(self, *args):
            calls.append(args)
            if len(calls) == 1:
                raise collision
            return real_allocate(self, *args)

        with patch.object(SequenceAllocator, "allocate_code", flaky):
            order, created = order_service.create_order(make_order_request())

        assert created is True
        assert len(calls) == 2
        assert order.order_code == "CAS-20251028-0001"

    def test_database_failure_is_persistence_error(self, order_service, seed_data, fanout):
        failure = OperationalError("UPDATE", {}, Exception("disk I/O error"))

        with patch.object(SequenceAllocator, "allocate_code", side_effect=failure):
            with pytest.raises(OrderPersistenceError):
                order_service.create_order(make_order_request())

        assert seed_data.query(Order).count() == 0
        assert seed_data.query(OrderSequence).count() == 0
        assert fanout.published == []


class TestIdempotency:
    """Idempotency-Key replays."""

    def test_same_key_returns_original_order(self, order_service, seed_data, fanout):
        first, created_first = order_service.create_order(make_order_request(), idempotency_key="abc-123")
        second, created_second = order_service.create_order(make_order_request(), idempotency_key="abc-123")

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert seed_data.query(Order).count() == 1
        assert len(fanout.events_of_type(ORDER_CREATED)) == 1

    def test_different_keys_create_different_orders(self, order_service):
        first, _ = order_service.create_order(make_order_request(), idempotency_key="a")
        second, _ = order_service.create_order(make_order_request(), idempotency_key="b")

        assert first.id != second.id

    def test_keys_are_scoped_per_branch(self, order_service, seed_data):
        """The same key in another branch is a different order."""
        seed_data.add(MenuItem(id=10, branch_id=OTHER_BRANCH_ID, name="Empanada", price_cents=2500))
        seed_data.commit()

        first, _ = order_service.create_order(make_order_request(), idempotency_key="k")
        second, created = order_service.create_order(
            make_order_request(
                branch_id=OTHER_BRANCH_ID,
                table_id=None,
                items=[{"menu_item_id": 10, "quantity": 1}],
            ),
            idempotency_key="k",
        )

        assert created is True
        assert second.id != first.id
        assert second.order_code.startswith("VIN-")


class TestRetrieval:
    """get_order, get_order_by_reference and list_orders."""

    def test_get_missing_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            order_service.get_order(404)

    def test_get_by_reference(self, order_service):
        order, _ = order_service.create_order(make_order_request())

        found = order_service.get_order_by_reference(order.payment_reference)

        assert found.id == order.id

    def test_unknown_reference_is_masked_in_error(self, order_service):
        with pytest.raises(OrderNotFoundError) as exc_info:
            order_service.get_order_by_reference("abcdefghijklmnopqrstuvwxyz")

        assert "abcdefghijklmnopqrstuvwxyz" not in str(exc_info.value)

    def test_list_is_newest_first(self, order_service, clock):
        first, _ = order_service.create_order(make_order_request())
        clock.advance(minutes=5)
        second, _ = order_service.create_order(make_order_request())

        orders = order_service.list_orders(OrderFilters(branch_ids=[BRANCH_ID]))

        assert [o.id for o in orders] == [second.id, first.id]

    def test_list_filters_by_status(self, order_service):
        cash, _ = order_service.create_order(make_order_request())
        card, _ = order_service.create_order(make_order_request(payment_method="CARD"))

        awaiting = order_service.list_orders(
            OrderFilters(branch_ids=[BRANCH_ID], statuses=["AWAITING_PAYMENT"])
        )
        both = order_service.list_orders(
            OrderFilters(branch_ids=[BRANCH_ID], statuses=["AWAITING_PAYMENT", "SUBMITTED"])
        )

        assert [o.id for o in awaiting] == [card.id]
        assert {o.id for o in both} == {cash.id, card.id}

    def test_list_filters_by_payment_status_and_table(self, order_service):
        at_table, _ = order_service.create_order(make_order_request())
        order_service.create_order(make_order_request(table_id=None, payment_method="CARD"))

        unpaid = order_service.list_orders(OrderFilters(branch_ids=[BRANCH_ID], payment_status="UNPAID"))
        table = order_service.list_orders(OrderFilters(branch_ids=[BRANCH_ID], table_id=1))

        assert [o.id for o in unpaid] == [at_table.id]
        assert [o.id for o in table] == [at_table.id]

    def test_list_filters_by_business_date(self, order_service, clock):
        order_service.create_order(make_order_request())
        clock.advance(days=1)
        tomorrow, _ = order_service.create_order(make_order_request())

        orders = order_service.list_orders(
            OrderFilters(branch_ids=[BRANCH_ID], business_date=date(2025, 10, 29))
        )

        assert [o.id for o in orders] == [tomorrow.id]

    def test_list_is_scoped_to_branches(self, order_service):
        order_service.create_order(make_order_request())

        assert order_service.list_orders(OrderFilters(branch_ids=[OTHER_BRANCH_ID])) == []

    def test_list_paginates(self, order_service, clock):
        for _ in range(3):
            order_service.create_order(make_order_request())
            clock.advance(seconds=1)

        page = order_service.list_orders(OrderFilters(branch_ids=[BRANCH_ID], limit=2, offset=2))

        assert len(page) == 1
        assert page[0].order_code.endswith("-0001")

    def test_unknown_status_filter_rejected(self, order_service):
        with pytest.raises(OrderValidationError):
            order_service.list_orders(OrderFilters(statuses=["LOST"]))
