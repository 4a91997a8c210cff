"""Booking lifecycle: create, update, complete payment, cancel.

A booking starts ``active``; ``completed`` and ``canceled`` are terminal.
Every mutation is one read-compute-write against a single booking record,
written back with an optimistic version check. Write paths lock the booking
row before any customer row; aggregate increments run in customer id
order. The caller owns the database transaction and decides whether to
retry on ``ConcurrentModificationError``; nothing here retries on its own.
"""
from __future__ import annotations

import random
import string
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import structlog
from psycopg import Connection

from ..config import BusinessConfig
from ..domain import BOOKING_STATUSES, TERMINAL_STATUSES, Booking, Customer, ItemInput
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..ledger import compute_item, recompute
from ..payloads import (
    field_value,
    has_value,
    parse_contact,
    parse_details,
    parse_items,
)
from ..repositories.booking_repo import BookingRepository
from ..repositories.customer_repo import CustomerRepository
from ..repositories.product_repo import ProductRepository
from .customer_resolver import CustomerResolver, snapshot

logger = structlog.get_logger(__name__)

BOOKING_CODE_ATTEMPTS = 10


@dataclass(frozen=True)
class AggregateDelta:
    customer_id: int
    bookings: int
    spent: int
    last_booking_date: datetime | None = None


def make_booking_code(prefix: str) -> str:
    return f"{prefix}-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    def __init__(
        self,
        *,
        booking_repo: BookingRepository,
        customer_repo: CustomerRepository,
        product_repo: ProductRepository,
        customer_resolver: CustomerResolver,
        booking_code_prefix: str = "BK",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.booking_repo = booking_repo
        self.customer_repo = customer_repo
        self.product_repo = product_repo
        self.customer_resolver = customer_resolver
        self.booking_code_prefix = booking_code_prefix
        self.clock = clock

    # reads

    def get_booking(self, conn: Connection, booking_id: int) -> Booking:
        booking = self.booking_repo.load(conn, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found.")
        return booking

    def list_bookings(self, conn: Connection, *, status: str | None = None, limit: int = 50) -> list[dict]:
        if status is not None and status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown booking status: {status}", "status")
        return self.booking_repo.list(conn, status=status, limit=limit)

    def search_customers_by_partial_mobile(self, conn: Connection, prefix: str) -> list[Customer]:
        return self.customer_resolver.search_by_partial_mobile(conn, prefix)

    # writes

    def save_customer(self, conn: Connection, payload: Any) -> tuple[Customer, bool]:
        """Create or update a customer outside of any booking; aggregates are untouched."""
        customer_id, is_new = self.customer_resolver.resolve(conn, parse_contact(payload))
        return self._customer(conn, customer_id), is_new

    def create_booking(self, conn: Connection, payload: Mapping[str, Any]) -> Booking:
        payload = _require_mapping(payload)
        requested = field_value(payload, "status")
        if requested not in (None, "", "active"):
            raise InvalidTransitionError(f"A new booking starts active; cannot create it as {requested!r}.")

        contact = parse_contact(payload.get("customer"))
        raw_items = self._parse_items(conn, field_value(payload, "items"))
        items, totals = recompute(raw_items)
        details = parse_details(payload)

        customer_id, is_new = self.customer_resolver.resolve(conn, contact)
        customer = self._customer(conn, customer_id)
        now = self.clock()

        booking = Booking(
            id=None,
            booking_code=self._new_booking_code(conn),
            customer_id=customer_id,
            customer=snapshot(customer),
            items=items,
            totals=totals,
            status="active",
            details=details,
            customer_contribution=totals.total_price,
        )
        booking_id = self.booking_repo.create(conn, booking)
        self._apply_deltas(conn, [AggregateDelta(customer_id, 1, totals.total_price, now)])

        logger.info(
            "booking created",
            booking_id=booking_id,
            booking_code=booking.booking_code,
            customer_id=customer_id,
            new_customer=is_new,
            items=len(items),
            total_price=totals.total_price,
        )
        return self.get_booking(conn, booking_id)

    def update_booking(self, conn: Connection, booking_id: int, payload: Mapping[str, Any]) -> Booking:
        """Apply an edit to an active booking.

        ``items``, when present, replaces the whole item list; there is no
        per-item merge. ``customer`` re-runs resolution. Pass-through fields
        change only when supplied. ``status`` may request ``completed`` or
        ``canceled`` in the same write.
        """
        payload = _require_mapping(payload)
        current = self._lock_booking(conn, booking_id)
        _ensure_active(current)

        requested = field_value(payload, "status") or "active"
        if requested not in BOOKING_STATUSES:
            raise InvalidTransitionError(f"Unknown booking status: {requested!r}")

        if field_value(payload, "items") is not None:
            raw_items = self._parse_items(conn, field_value(payload, "items"))
        else:
            raw_items = [item.raw() for item in current.items]
        items, totals = recompute(raw_items)
        details = parse_details(payload, current.details)

        updated = replace(current, items=items, totals=totals, details=details)
        deltas: list[AggregateDelta] = []

        if payload.get("customer") is not None:
            contact = parse_contact(payload["customer"])
            customer_id, _ = self.customer_resolver.resolve(conn, contact)
            updated = replace(updated, customer_id=customer_id, customer=snapshot(self._customer(conn, customer_id)))
            if customer_id != current.customer_id:
                # the booking's contribution follows it to the new customer
                deltas.append(AggregateDelta(current.customer_id, -1, -current.customer_contribution))
                deltas.append(AggregateDelta(customer_id, 1, current.customer_contribution, self.clock()))

        if requested == "completed":
            updated, completion = self._complete(updated)
            deltas.extend(completion)
        elif requested == "canceled":
            reason = field_value(payload, "cancel_reason")
            updated, cancellation = self._cancel(updated, reason)
            deltas.extend(cancellation)

        self.booking_repo.save(conn, updated, expected_version=current.version)
        self._apply_deltas(conn, deltas)

        logger.info(
            "booking updated",
            booking_id=booking_id,
            status=updated.status,
            items_replaced=field_value(payload, "items") is not None,
            total_price=updated.totals.total_price,
        )
        return self.get_booking(conn, booking_id)

    def complete_booking_payment(self, conn: Connection, booking_id: int) -> Booking:
        current = self._lock_booking(conn, booking_id)
        _ensure_active(current)

        updated, deltas = self._complete(current)
        self.booking_repo.save(conn, updated, expected_version=current.version)
        self._apply_deltas(conn, deltas)

        logger.info(
            "booking payment completed",
            booking_id=booking_id,
            settled=updated.totals.total_final_payment - current.totals.total_final_payment,
            total_paid=updated.totals.total_paid,
        )
        return self.get_booking(conn, booking_id)

    def cancel_booking(self, conn: Connection, booking_id: int, reason: str | None = None) -> Booking:
        current = self._lock_booking(conn, booking_id)
        _ensure_active(current)

        updated, deltas = self._cancel(current, reason)
        self.booking_repo.save(conn, updated, expected_version=current.version)
        self._apply_deltas(conn, deltas)

        logger.info("booking canceled", booking_id=booking_id, reason=updated.cancel_reason)
        return self.get_booking(conn, booking_id)

    # transitions

    def _complete(self, booking: Booking) -> tuple[Booking, list[AggregateDelta]]:
        raw_items = []
        for item in booking.items:
            raw = item.raw()
            raw_items.append(replace(raw, final_payment=raw.final_payment + compute_item(raw).pending))
        items, totals = recompute(raw_items)

        completed = replace(
            booking,
            items=items,
            totals=totals,
            status="completed",
            customer_contribution=totals.total_price,
        )
        delta = AggregateDelta(
            booking.customer_id, 0, totals.total_price - booking.customer_contribution, self.clock()
        )
        return completed, [delta]

    def _cancel(self, booking: Booking, reason: Any) -> tuple[Booking, list[AggregateDelta]]:
        reason = str(reason).strip() if reason is not None else ""
        canceled = replace(
            booking,
            status="canceled",
            canceled_at=self.clock(),
            cancel_reason=reason or None,
            customer_contribution=0,
        )
        return canceled, [AggregateDelta(booking.customer_id, -1, -booking.customer_contribution)]

    # helpers

    def _parse_items(self, conn: Connection, payload: Any) -> list[ItemInput]:
        if isinstance(payload, (list, tuple)):
            payload = [
                self._prefill_from_catalog(conn, p) if isinstance(p, Mapping) else p for p in payload
            ]
        return parse_items(payload)

    def _prefill_from_catalog(self, conn: Connection, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        if not has_value(payload, "dress_id"):
            return payload
        if has_value(payload, "original_price") and has_value(payload, "price_after_bargain"):
            return payload

        product = self.product_repo.get(conn, str(field_value(payload, "dress_id")))
        if product is None:
            return payload

        filled = dict(payload)
        list_price = product.get("original_price") or product.get("price") or 0
        if not has_value(payload, "original_price"):
            filled["original_price"] = list_price
        if not has_value(payload, "price_after_bargain"):
            price = product.get("price")
            filled["price_after_bargain"] = price if price is not None else list_price
        images = product.get("images") or []
        if images and not has_value(payload, "dress_image"):
            filled["dress_image"] = images[0]
        return filled

    def _lock_booking(self, conn: Connection, booking_id: int) -> Booking:
        # booking row first, customer rows after, on every write path
        booking = self.booking_repo.load(conn, booking_id, for_update=True)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found.")
        return booking

    def _customer(self, conn: Connection, customer_id: int) -> Customer:
        customer = self.customer_repo.get(conn, customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return customer

    def _new_booking_code(self, conn: Connection) -> str:
        for _ in range(BOOKING_CODE_ATTEMPTS):
            code = make_booking_code(self.booking_code_prefix)
            if not self.booking_repo.code_exists(conn, code):
                return code
        raise RuntimeError("could not allocate a booking code")

    def _apply_deltas(self, conn: Connection, deltas: list[AggregateDelta]) -> None:
        for d in sorted(deltas, key=lambda d: d.customer_id):
            if d.bookings == 0 and d.spent == 0 and d.last_booking_date is None:
                continue
            self.customer_repo.increment_aggregates(
                conn,
                d.customer_id,
                bookings=d.bookings,
                spent=d.spent,
                last_booking_date=d.last_booking_date,
            )


def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object.")
    return payload


def _ensure_active(booking: Booking) -> None:
    if booking.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Booking {booking.booking_code} is {booking.status}; no further changes are allowed."
        )


def build_booking_service(business: BusinessConfig) -> BookingService:
    customer_repo = CustomerRepository()
    resolver = CustomerResolver(
        customer_repo=customer_repo,
        min_search_digits=business.customer_search_min_digits,
        search_limit=business.customer_search_limit,
    )
    return BookingService(
        booking_repo=BookingRepository(),
        customer_repo=customer_repo,
        product_repo=ProductRepository(),
        customer_resolver=resolver,
        booking_code_prefix=business.booking_code_prefix,
    )
