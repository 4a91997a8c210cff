"""Parsing of inbound booking/customer payloads into domain inputs.

Payloads come from JSON bodies, the CLI and importers, so keys are accepted
both in snake_case and in the camelCase used by the booking API
(``priceAfterBargain``). Nothing here is partially applied: the first bad
field raises ``ValidationError`` naming it.
"""
from __future__ import annotations

import re
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Mapping

from .domain import ITEM_STATUSES, AdditionalCost, BookingDetails, ContactInput, ItemInput
from .errors import EmptyBookingError, ValidationError

_NON_DIGITS = re.compile(r"\D+")
_TRUE = {"1", "true", "yes", "on", "y"}

# largest single amount in minor units
MAX_AMOUNT = 2**31

ITEM_MONEY_FIELDS = (
    "original_price",
    "price_after_bargain",
    "booking_amount",
    "advance",
    "final_payment",
    "security_amount",
    "transport_cost",
    "dry_cleaning_cost",
    "repair_cost",
)
ITEM_DATE_FIELDS = ("booking_date", "send_date", "receive_date", "use_dress_date")
ITEM_TEXT_FIELDS = (
    "use_dress",
    "use_dress_time",
    "delivery_method",
    "transport_paid_by",
    "condition_on_return",
    "damage_description",
    "dress_image",
)
DETAIL_TEXT_FIELDS = (
    "payment_method",
    "notes",
    "delivery_address",
    "special_instructions",
    "reference_customer",
    "admin_notes",
    "customer_notes",
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def has_value(payload: Mapping[str, Any], name: str) -> bool:
    for key in (name, _camel(name)):
        value = payload.get(key)
        if value is not None and value != "":
            return True
    return False


def field_value(payload: Mapping[str, Any], name: str) -> Any:
    if name in payload:
        return payload[name]
    return payload.get(_camel(name))


def _supplied(payload: Mapping[str, Any], name: str) -> bool:
    return name in payload or _camel(name) in payload


def normalize_mobile(value: Any) -> str:
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def parse_amount(value: Any, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.", field)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = int(value)
        except ValueError:
            raise ValidationError(f"{field} must be a whole number.", field) from None
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number of minor units.", field)
        value = int(value)
    elif not isinstance(value, int):
        raise ValidationError(f"{field} must be a number.", field)

    if value < 0:
        raise ValidationError(f"{field} cannot be negative.", field)
    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}.", field)
    return value


def parse_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD).", field) from None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _flag(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    return bool(value)


def parse_additional_costs(value: Any, field: str) -> tuple[AdditionalCost, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list.", field)

    costs = []
    for n, entry in enumerate(value):
        if not isinstance(entry, Mapping):
            raise ValidationError(f"{field}[{n}] must be an object.", f"{field}[{n}]")
        amount = parse_amount(entry.get("amount"), f"{field}[{n}].amount")
        costs.append(AdditionalCost(reason=_text(entry.get("reason")) or "", amount=amount or 0))
    return tuple(costs)


def parse_item(payload: Any, index: int = 0) -> ItemInput:
    prefix = f"items[{index}]"
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{prefix} must be an object.", prefix)

    values: dict[str, Any] = {}
    for name in ITEM_MONEY_FIELDS:
        values[name] = parse_amount(field_value(payload, name), f"{prefix}.{name}") or 0
    for name in ITEM_DATE_FIELDS:
        values[name] = parse_date(field_value(payload, name), f"{prefix}.{name}")
    for name in ITEM_TEXT_FIELDS:
        values[name] = _text(field_value(payload, name))

    status = _text(field_value(payload, "status")) or "booked"
    if status not in ITEM_STATUSES:
        raise ValidationError(f"{prefix}.status must be one of {', '.join(ITEM_STATUSES)}.", f"{prefix}.status")

    dress_id = field_value(payload, "dress_id")
    return ItemInput(
        dress_id=_text(dress_id),
        additional_costs=parse_additional_costs(field_value(payload, "additional_costs"), f"{prefix}.additional_costs"),
        status=status,
        is_repairable=_flag(field_value(payload, "is_repairable"), True),
        **values,
    )


def parse_items(payload: Any) -> list[ItemInput]:
    if payload is None:
        raise EmptyBookingError()
    if not isinstance(payload, (list, tuple)):
        raise ValidationError("items must be a list.", "items")
    if not payload:
        raise EmptyBookingError()
    return [parse_item(p, i) for i, p in enumerate(payload)]


def parse_contact(payload: Any) -> ContactInput:
    if not isinstance(payload, Mapping):
        raise ValidationError("customer is required.", "customer")

    mobile = normalize_mobile(payload.get("mobile"))
    if not mobile:
        raise ValidationError("Customer mobile is required.", "customer.mobile")
    # a known mobile alone is enough; the resolver requires a name for new customers
    name = _text(payload.get("name"))

    measurements = payload.get("measurements")
    if measurements is not None and not isinstance(measurements, Mapping):
        raise ValidationError("customer.measurements must be an object.", "customer.measurements")
    emergency = field_value(payload, "emergency_contact")
    if emergency is not None and not isinstance(emergency, Mapping):
        raise ValidationError("customer.emergency_contact must be an object.", "customer.emergency_contact")

    return ContactInput(
        mobile=mobile,
        name=name,
        email=_text(payload.get("email")),
        location=_text(payload.get("location")),
        measurements=dict(measurements) if measurements else None,
        emergency_contact=dict(emergency) if emergency else None,
    )


def parse_details(payload: Mapping[str, Any], base: BookingDetails | None = None) -> BookingDetails:
    """Apply the pass-through fields present in ``payload`` on top of ``base``."""
    details = base or BookingDetails()
    changes: dict[str, Any] = {}

    if _supplied(payload, "rental_duration"):
        changes["rental_duration"] = parse_amount(field_value(payload, "rental_duration"), "rental_duration")
    if _supplied(payload, "return_deadline"):
        changes["return_deadline"] = parse_date(field_value(payload, "return_deadline"), "return_deadline")
    for name in DETAIL_TEXT_FIELDS:
        if _supplied(payload, name):
            changes[name] = _text(field_value(payload, name))

    return replace(details, **changes) if changes else details
