"""
Property-based tests with Hypothesis.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import given, settings, strategies as st

from rest_api.services.domain import (
    ALLOWED_TRANSITIONS,
    PricedLine,
    can_transition,
    price_order,
    rate_from_bps,
    round_half_up_cents,
)
from rest_api.services.domain.clock import business_date, next_updated_at
from shared.config.constants import OrderStatus

priced_lines = st.lists(
    st.builds(
        PricedLine,
        unit_price_cents=st.integers(min_value=0, max_value=1_000_000),
        modifier_prices_cents=st.lists(
            st.integers(min_value=0, max_value=50_000), max_size=5
        ).map(tuple),
        quantity=st.integers(min_value=1, max_value=99),
    ),
    min_size=1,
    max_size=20,
)
rates = st.integers(min_value=0, max_value=5000).map(rate_from_bps)


class TestPricingProperties:
    """Invariants of price_order."""

    @given(lines=priced_lines, tax_rate=rates, service_rate=rates)
    @settings(max_examples=200)
    def test_total_is_single_rounding_of_unrounded_sum(self, lines, tax_rate, service_rate):
        totals = price_order(lines, tax_rate, service_rate)
        subtotal = Decimal(totals.subtotal_cents)

        assert totals.total_cents == round_half_up_cents(
            subtotal + subtotal * tax_rate + subtotal * service_rate
        )

    @given(lines=priced_lines, tax_rate=rates, service_rate=rates)
    @settings(max_examples=200)
    def test_displayed_parts_within_a_cent_of_total(self, lines, tax_rate, service_rate):
        totals = price_order(lines, tax_rate, service_rate)

        assert abs(
            totals.total_cents - (totals.subtotal_cents + totals.tax_cents + totals.service_charge_cents)
        ) <= 1

    @given(lines=priced_lines, tax_rate=rates, service_rate=rates)
    @settings(max_examples=200)
    def test_components_within_half_cent(self, lines, tax_rate, service_rate):
        """Rounding never moves a component by more than half a cent."""
        totals = price_order(lines, tax_rate, service_rate)

        assert abs(Decimal(totals.tax_cents) - totals.subtotal_cents * tax_rate) <= Decimal("0.5")
        assert abs(Decimal(totals.service_charge_cents) - totals.subtotal_cents * service_rate) <= Decimal("0.5")

    @given(lines=priced_lines)
    def test_subtotal_is_sum_of_lines(self, lines):
        totals = price_order(lines, Decimal("0"), Decimal("0"))

        assert totals.subtotal_cents == sum(
            (line.unit_price_cents + sum(line.modifier_prices_cents)) * line.quantity for line in lines
        )


class TestStateMachineProperties:
    """Invariants of the transition table."""

    @given(
        path=st.lists(st.sampled_from(OrderStatus.ALL), min_size=1, max_size=12),
    )
    def test_terminal_states_are_absorbing(self, path):
        """Once COMPLETED or CANCELLED, no sequence of requests moves the order."""
        status = OrderStatus.SUBMITTED
        for target in path:
            if can_transition(status, target):
                status = target
            if status in OrderStatus.TERMINAL:
                assert all(not can_transition(status, other) for other in OrderStatus.ALL)

    @given(current=st.sampled_from(OrderStatus.ALL))
    def test_no_self_transitions(self, current):
        assert current not in ALLOWED_TRANSITIONS[current]


class TestClockProperties:
    """Timestamps and business dates."""

    @given(
        previous_offset_us=st.integers(min_value=-10_000_000, max_value=10_000_000),
    )
    def test_next_updated_at_is_strictly_later(self, previous_offset_us):
        now = datetime(2025, 10, 28, 15, 0, tzinfo=timezone.utc)
        previous = now + timedelta(microseconds=previous_offset_us)

        result = next_updated_at(now, previous)

        assert result > previous
        assert result >= now

    @given(minutes=st.integers(min_value=0, max_value=60 * 24 * 366))
    def test_business_date_is_local_date(self, minutes):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)

        assert business_date(now, "UTC") == now.date()
