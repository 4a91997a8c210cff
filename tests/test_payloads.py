from datetime import date

import pytest

from rentledger.domain import BookingDetails
from rentledger.errors import EmptyBookingError, ValidationError
from rentledger.payloads import (
    MAX_AMOUNT,
    normalize_mobile,
    parse_amount,
    parse_contact,
    parse_details,
    parse_item,
    parse_items,
)


def test_camel_and_snake_case_keys_are_equivalent():
    camel = parse_item({"priceAfterBargain": 1200, "dryCleaningCost": "80", "useDressDate": "2026-05-01T00:00:00Z"})
    snake = parse_item({"price_after_bargain": 1200, "dry_cleaning_cost": 80, "use_dress_date": "2026-05-01"})
    assert camel == snake
    assert camel.use_dress_date == date(2026, 5, 1)


def test_negative_amount_is_rejected_with_field():
    with pytest.raises(ValidationError) as exc:
        parse_items([{"advance": 100}, {"advance": -5}])
    assert exc.value.field == "items[1].advance"


def test_negative_additional_cost_is_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_item({"additionalCosts": [{"reason": "x", "amount": -1}]})
    assert exc.value.field == "items[0].additional_costs[0].amount"


@pytest.mark.parametrize("value", [12.5, "abc", True, [1]])
def test_non_integer_amounts_are_rejected(value):
    with pytest.raises(ValidationError):
        parse_amount(value, "advance")


def test_amount_above_currency_limit_is_rejected():
    assert parse_amount(MAX_AMOUNT, "advance") == MAX_AMOUNT
    with pytest.raises(ValidationError) as exc:
        parse_item({"advance": 10**19})
    assert exc.value.field == "items[0].advance"


def test_whole_float_and_blank_amounts():
    assert parse_amount(1500.0, "advance") == 1500
    assert parse_amount(" ", "advance") is None
    assert parse_amount(None, "advance") is None


def test_unknown_item_status_is_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_item({"status": "shipped"})
    assert exc.value.field == "items[0].status"


def test_bad_date_is_rejected():
    with pytest.raises(ValidationError):
        parse_item({"sendDate": "next tuesday"})


@pytest.mark.parametrize("items", [None, []])
def test_empty_item_list(items):
    with pytest.raises(EmptyBookingError):
        parse_items(items)


def test_normalize_mobile_strips_everything_but_digits():
    assert normalize_mobile("+91 (987) 654-3210") == "919876543210"
    assert normalize_mobile(None) == ""


def test_contact_requires_mobile():
    with pytest.raises(ValidationError) as exc:
        parse_contact({"name": "Asha"})
    assert exc.value.field == "customer.mobile"


def test_contact_name_may_be_left_out():
    assert parse_contact({"mobile": "9999999999", "name": "  "}).name is None


def test_contact_blank_optional_fields_are_absent():
    contact = parse_contact({"mobile": "999-999-9999", "name": "Asha", "email": "", "emergencyContact": {"phone": "1"}})
    assert contact.mobile == "9999999999"
    assert contact.email is None
    assert contact.emergency_contact == {"phone": "1"}


def test_details_only_change_supplied_fields():
    base = BookingDetails(rental_duration=3, payment_method="cash", notes="fragile")
    details = parse_details({"paymentMethod": "online", "returnDeadline": "2026-06-01"}, base)

    assert details.payment_method == "online"
    assert details.return_deadline == date(2026, 6, 1)
    assert details.rental_duration == 3
    assert details.notes == "fragile"
