from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from rentledger.domain import Booking, Customer
from rentledger.errors import ConcurrentModificationError, NotFoundError
from rentledger.services.booking_service import BookingService
from rentledger.services.customer_resolver import CustomerResolver

FIXED_NOW = datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc)


class FakeCustomerRepository:
    def __init__(self, journal: list | None = None) -> None:
        self.rows: dict[int, Customer] = {}
        self.increments: list[tuple] = []
        self.journal = journal if journal is not None else []

    def create(self, conn, *, mobile, name, email, location, measurements, emergency_contact) -> int:
        assert all(c.mobile != mobile for c in self.rows.values()), "duplicate mobile"
        customer_id = len(self.rows) + 1
        self.rows[customer_id] = Customer(
            id=customer_id,
            mobile=mobile,
            name=name,
            email=email,
            location=location,
            measurements=dict(measurements),
            emergency_contact=dict(emergency_contact),
            total_bookings=0,
            total_spent=0,
            last_booking_date=None,
            created_at=FIXED_NOW,
        )
        return customer_id

    def get(self, conn, customer_id):
        return self.rows.get(customer_id)

    def get_by_mobile(self, conn, mobile, *, for_update=False):
        if for_update:
            self.journal.append(("lock customer", mobile))
        return next((c for c in self.rows.values() if c.mobile == mobile), None)

    def update_contact(self, conn, customer_id, *, name, email, location, measurements, emergency_contact):
        self.rows[customer_id] = replace(
            self.rows[customer_id],
            name=name,
            email=email,
            location=location,
            measurements=measurements,
            emergency_contact=emergency_contact,
        )

    def increment_aggregates(self, conn, customer_id, *, bookings, spent, last_booking_date=None):
        if customer_id not in self.rows:
            raise NotFoundError(f"Customer {customer_id} not found.")
        self.journal.append(("lock customer", self.rows[customer_id].mobile))
        self.increments.append((customer_id, bookings, spent, last_booking_date))
        c = self.rows[customer_id]
        self.rows[customer_id] = replace(
            c,
            total_bookings=max(c.total_bookings + bookings, 0),
            total_spent=max(c.total_spent + spent, 0),
            last_booking_date=last_booking_date or c.last_booking_date,
        )

    def search_by_mobile_prefix(self, conn, prefix, limit=20):
        found = sorted((c for c in self.rows.values() if c.mobile.startswith(prefix)), key=lambda c: c.mobile)
        return found[:limit]


class FakeBookingRepository:
    def __init__(self, journal: list | None = None) -> None:
        self.rows: dict[int, Booking] = {}
        self.saves = 0
        self.journal = journal if journal is not None else []

    def code_exists(self, conn, booking_code):
        return any(b.booking_code == booking_code for b in self.rows.values())

    def create(self, conn, booking):
        booking_id = len(self.rows) + 1
        self.rows[booking_id] = replace(booking, id=booking_id, version=1, created_at=FIXED_NOW, updated_at=FIXED_NOW)
        return booking_id

    def load(self, conn, booking_id, *, for_update=False):
        if for_update:
            self.journal.append(("lock booking", booking_id))
        return self.rows.get(booking_id)

    def save(self, conn, booking, expected_version):
        stored = self.rows[booking.id]
        if stored.version != expected_version:
            raise ConcurrentModificationError(f"Booking {booking.id} was modified concurrently.")
        self.saves += 1
        self.rows[booking.id] = replace(booking, version=expected_version + 1)
        return expected_version + 1

    def list(self, conn, status=None, limit=50):
        rows = [b for b in self.rows.values() if status is None or b.status == status]
        return [
            {"id": b.id, "booking_code": b.booking_code, "status": b.status, "total_price": b.totals.total_price}
            for b in rows[:limit]
        ]


class FakeProductRepository:
    def __init__(self, products: dict | None = None) -> None:
        self.products = products or {}

    def get(self, conn, product_id):
        return self.products.get(product_id)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def journal():
    return []


@pytest.fixture
def customer_repo(journal):
    return FakeCustomerRepository(journal)


@pytest.fixture
def booking_repo(journal):
    return FakeBookingRepository(journal)


@pytest.fixture
def product_repo():
    return FakeProductRepository(
        {
            "gown-01": {"id": "gown-01", "name": "Red gown", "price": 4200, "original_price": 5000, "images": ["gown.jpg"]},
        }
    )


@pytest.fixture
def resolver(customer_repo):
    return CustomerResolver(customer_repo=customer_repo, min_search_digits=3, search_limit=20)


@pytest.fixture
def service(booking_repo, customer_repo, product_repo, resolver):
    return BookingService(
        booking_repo=booking_repo,
        customer_repo=customer_repo,
        product_repo=product_repo,
        customer_resolver=resolver,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def item_one():
    return {
        "dressId": "d-1",
        "originalPrice": 5000,
        "priceAfterBargain": 4500,
        "bookingAmount": 1000,
        "advance": 2000,
        "finalPayment": 0,
        "securityAmount": 500,
        "transportCost": 200,
        "dryCleaningCost": 400,
        "repairCost": 0,
        "additionalCosts": [
            {"reason": "Alteration", "amount": 300},
            {"reason": "Special packaging", "amount": 150},
        ],
    }


@pytest.fixture
def item_two():
    return {
        "dressId": "d-2",
        "originalPrice": 3000,
        "priceAfterBargain": 2800,
        "bookingAmount": 500,
        "advance": 1500,
        "finalPayment": 0,
        "securityAmount": 300,
        "transportCost": 150,
        "dryCleaningCost": 250,
        "repairCost": 0,
        "additionalCosts": [{"reason": "Express delivery", "amount": 250}],
    }


@pytest.fixture
def booking_payload(item_one, item_two):
    return {
        "customer": {"name": "Test Customer", "mobile": "98765 43210", "email": "test@example.com"},
        "items": [item_one, item_two],
        "rentalDuration": 3,
        "paymentMethod": "online",
    }
