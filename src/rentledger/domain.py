from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Literal, Optional

BookingStatus = Literal["active", "completed", "canceled"]
ItemStatus = Literal[
    "booked",
    "paid",
    "sent",
    "delivered",
    "in_use",
    "returned",
    "processing",
    "completed",
    "damaged",
    "lost",
]

BOOKING_STATUSES: tuple[str, ...] = ("active", "completed", "canceled")
TERMINAL_STATUSES: tuple[str, ...] = ("completed", "canceled")
ITEM_STATUSES: tuple[str, ...] = (
    "booked",
    "paid",
    "sent",
    "delivered",
    "in_use",
    "returned",
    "processing",
    "completed",
    "damaged",
    "lost",
)


@dataclass(frozen=True)
class AdditionalCost:
    reason: str
    amount: int


@dataclass(frozen=True)
class ItemInput:
    """Raw, caller-editable fields of one rented item. Money is in minor units."""

    dress_id: Optional[str] = None
    original_price: int = 0
    price_after_bargain: int = 0
    booking_amount: int = 0
    advance: int = 0
    final_payment: int = 0
    security_amount: int = 0
    additional_costs: tuple[AdditionalCost, ...] = ()
    transport_cost: int = 0
    dry_cleaning_cost: int = 0
    repair_cost: int = 0
    status: ItemStatus = "booked"
    booking_date: Optional[date] = None
    send_date: Optional[date] = None
    receive_date: Optional[date] = None
    use_dress_date: Optional[date] = None
    use_dress: Optional[str] = None
    use_dress_time: Optional[str] = None
    delivery_method: Optional[str] = None
    transport_paid_by: Optional[str] = None
    condition_on_return: Optional[str] = None
    damage_description: Optional[str] = None
    is_repairable: bool = True
    dress_image: Optional[str] = None


@dataclass(frozen=True)
class BookingItem(ItemInput):
    # derived, filled by ledger.compute_item
    discount: int = 0
    total_paid: int = 0
    pending: int = 0
    additional_costs_total: int = 0
    total_cost: int = 0
    profit: int = 0

    def raw(self) -> ItemInput:
        return ItemInput(**{f.name: getattr(self, f.name) for f in fields(ItemInput)})


@dataclass(frozen=True)
class BookingTotals:
    total_price: int = 0
    total_discount: int = 0
    total_booking_amount: int = 0
    total_advance: int = 0
    total_final_payment: int = 0
    total_paid: int = 0
    total_pending: int = 0
    total_security: int = 0
    total_transport_cost: int = 0
    total_dry_cleaning_cost: int = 0
    total_repair_cost: int = 0
    total_additional_costs: int = 0
    total_operational_cost: int = 0
    gross_profit: int = 0
    net_profit: int = 0


@dataclass(frozen=True)
class ContactInput:
    """Inbound customer payload. None means the field was not supplied."""

    mobile: str
    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    measurements: Optional[dict] = None
    emergency_contact: Optional[dict] = None


@dataclass(frozen=True)
class Customer:
    id: int
    mobile: str
    name: str
    email: Optional[str]
    location: Optional[str]
    measurements: dict
    emergency_contact: dict
    total_bookings: int
    total_spent: int
    last_booking_date: Optional[datetime]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class BookingDetails:
    """Pass-through booking fields; stored as given, never recomputed."""

    rental_duration: Optional[int] = None
    return_deadline: Optional[date] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    delivery_address: Optional[str] = None
    special_instructions: Optional[str] = None
    reference_customer: Optional[str] = None
    admin_notes: Optional[str] = None
    customer_notes: Optional[str] = None


@dataclass(frozen=True)
class Booking:
    id: Optional[int]
    booking_code: str
    customer_id: int
    customer: dict
    items: tuple[BookingItem, ...]
    totals: BookingTotals
    status: BookingStatus = "active"
    details: BookingDetails = field(default_factory=BookingDetails)
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    customer_contribution: int = 0
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
