import json

import pytest

from rentledger.importers import ImportFileError, import_bookings_json, import_customers_csv


def test_customer_csv_merges_repeated_mobiles(tmp_path, resolver, customer_repo):
    path = tmp_path / "customers.csv"
    path.write_text(
        "name,mobile,email\n"
        "Asha,98765 43210,asha@example.com\n"
        ",1112223333,\n"
        "Asha Rao,9876543210,\n",
        encoding="utf-8",
    )

    assert import_customers_csv(None, path, resolver) == 2
    (customer,) = customer_repo.rows.values()
    assert customer.name == "Asha Rao"
    assert customer.email == "asha@example.com"


def test_customer_csv_requires_columns(tmp_path, resolver):
    path = tmp_path / "customers.csv"
    path.write_text("name,email\nAsha,a@example.com\n", encoding="utf-8")
    with pytest.raises(ImportFileError):
        import_customers_csv(None, path, resolver)


def test_booking_json_creates_each_booking(tmp_path, service, booking_repo, booking_payload):
    path = tmp_path / "bookings.json"
    path.write_text(json.dumps([booking_payload, "skip me", booking_payload]), encoding="utf-8")

    assert import_bookings_json(None, path, service) == 2
    assert len(booking_repo.rows) == 2


def test_booking_json_must_be_a_list(tmp_path, service):
    path = tmp_path / "bookings.json"
    path.write_text('{"items": []}', encoding="utf-8")
    with pytest.raises(ImportFileError):
        import_bookings_json(None, path, service)
