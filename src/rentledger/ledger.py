"""Derived money fields of booking items and their booking-level rollups.

Both functions are pure. Every write path (create, update, complete payment)
routes through ``recompute`` so the formulas live in exactly one place, and
recomputation always starts from the raw item inputs.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import fields

from .domain import BookingItem, BookingTotals, ItemInput
from .errors import EmptyBookingError

_RAW_FIELDS = tuple(f.name for f in fields(ItemInput))


def _n(value) -> int:
    return value or 0


def compute_item(raw: ItemInput) -> BookingItem:
    # A BookingItem is accepted as well; only its raw fields are read.
    price = _n(raw.price_after_bargain)

    discount = max(0, _n(raw.original_price) - price)
    total_paid = _n(raw.booking_amount) + _n(raw.advance) + _n(raw.final_payment)
    pending = max(0, price - total_paid)
    additional_costs_total = sum(_n(c.amount) for c in (raw.additional_costs or ()))
    total_cost = (
        _n(raw.transport_cost)
        + _n(raw.dry_cleaning_cost)
        + _n(raw.repair_cost)
        + additional_costs_total
    )
    profit = total_paid - total_cost

    return BookingItem(
        **{name: getattr(raw, name) for name in _RAW_FIELDS},
        discount=discount,
        total_paid=total_paid,
        pending=pending,
        additional_costs_total=additional_costs_total,
        total_cost=total_cost,
        profit=profit,
    )


def aggregate(items: Sequence[BookingItem]) -> BookingTotals:
    if not items:
        raise EmptyBookingError()

    total_price = sum(_n(i.price_after_bargain) for i in items)
    total_paid = sum(i.total_paid for i in items)
    total_operational_cost = sum(i.total_cost for i in items)
    gross_profit = total_paid - total_price

    return BookingTotals(
        total_price=total_price,
        total_discount=sum(i.discount for i in items),
        total_booking_amount=sum(_n(i.booking_amount) for i in items),
        total_advance=sum(_n(i.advance) for i in items),
        total_final_payment=sum(_n(i.final_payment) for i in items),
        total_paid=total_paid,
        total_pending=sum(i.pending for i in items),
        total_security=sum(_n(i.security_amount) for i in items),
        total_transport_cost=sum(_n(i.transport_cost) for i in items),
        total_dry_cleaning_cost=sum(_n(i.dry_cleaning_cost) for i in items),
        total_repair_cost=sum(_n(i.repair_cost) for i in items),
        total_additional_costs=sum(i.additional_costs_total for i in items),
        total_operational_cost=total_operational_cost,
        gross_profit=gross_profit,
        net_profit=gross_profit - total_operational_cost,
    )


def recompute(raw_items: Iterable[ItemInput]) -> tuple[tuple[BookingItem, ...], BookingTotals]:
    items = tuple(compute_item(r) for r in raw_items)
    return items, aggregate(items)
