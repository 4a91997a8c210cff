from contextlib import contextmanager, nullcontext

import pytest
from psycopg import errors as pg_errors

import web_app
from rentledger.config import DbConfig
from rentledger.db import Db
from rentledger.errors import ConcurrentModificationError


class FakeDb:
    @contextmanager
    def session(self):
        yield None

    def write(self, fn):
        return fn(None)


class FakeConnection:
    def transaction(self):
        return nullcontext()

    def close(self):
        pass


@pytest.fixture
def client(monkeypatch, service):
    monkeypatch.setattr(web_app, "db", FakeDb())
    monkeypatch.setattr(web_app, "booking_service", service)
    web_app.app.config["TESTING"] = True
    return web_app.app.test_client()


def test_create_returns_recomputed_booking(client, booking_payload):
    resp = client.post("/bookings", json=booking_payload)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["success"] is True
    booking = body["data"]["booking"]
    assert booking["totals"]["total_price"] == 7300
    assert booking["totals"]["total_pending"] == 2300
    assert booking["status"] == "active"
    assert booking["created_at"].startswith("2026-03-14")


def test_get_and_list_bookings(client, booking_payload):
    booking_id = client.post("/bookings", json=booking_payload).get_json()["data"]["booking"]["id"]

    got = client.get(f"/bookings/{booking_id}")
    listed = client.get("/bookings?status=active")

    assert got.status_code == 200
    assert got.get_json()["data"]["booking"]["booking_code"].startswith("BK-")
    assert [b["id"] for b in listed.get_json()["data"]["bookings"]] == [booking_id]


def test_validation_error_names_the_field(client, booking_payload):
    booking_payload["items"][0]["advance"] = -1

    resp = client.post("/bookings", json=booking_payload)

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "items[0].advance"


def test_non_object_body_is_rejected(client):
    resp = client.post("/bookings", json=[1, 2])
    assert resp.status_code == 400


def test_cancel_twice_conflicts(client, booking_payload):
    booking_id = client.post("/bookings", json=booking_payload).get_json()["data"]["booking"]["id"]

    first = client.put(f"/bookings/{booking_id}/cancel", json={"reason": "changed plans"})
    second = client.put(f"/bookings/{booking_id}/cancel", json={})

    assert first.status_code == 200
    assert first.get_json()["data"]["booking"]["cancel_reason"] == "changed plans"
    assert second.status_code == 409


def test_complete_payment_route(client, booking_payload):
    booking_id = client.post("/bookings", json=booking_payload).get_json()["data"]["booking"]["id"]

    resp = client.put(f"/bookings/{booking_id}/complete-payment")

    assert resp.status_code == 200
    totals = resp.get_json()["data"]["booking"]["totals"]
    assert totals["total_pending"] == 0
    assert totals["total_paid"] == totals["total_price"]


def test_missing_booking_is_404(client):
    assert client.get("/bookings/999").status_code == 404
    assert client.put("/bookings/999", json={"notes": "x"}).status_code == 404


def test_customer_search(client, booking_payload):
    client.post("/bookings", json=booking_payload)

    found = client.get("/customers/search/98765")
    too_short = client.get("/customers/search/98")

    assert found.status_code == 200
    assert [c["mobile"] for c in found.get_json()["data"]["customers"]] == ["9876543210"]
    assert too_short.status_code == 400
    assert too_short.get_json()["errors"][0]["field"] == "mobile"


def test_stats_rejects_unknown_filter(client):
    resp = client.get("/bookings/stats/summary?filter=decade")
    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "filter"


@pytest.mark.parametrize("body", [["oops"], "oops", 3])
def test_cancel_rejects_non_object_body(client, booking_payload, booking_repo, body):
    booking_id = client.post("/bookings", json=booking_payload).get_json()["data"]["booking"]["id"]

    resp = client.put(f"/bookings/{booking_id}/cancel", json=body)

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False
    assert booking_repo.rows[booking_id].status == "active"


def test_cancel_without_body_has_no_reason(client, booking_payload):
    booking_id = client.post("/bookings", json=booking_payload).get_json()["data"]["booking"]["id"]

    resp = client.put(f"/bookings/{booking_id}/cancel")

    assert resp.status_code == 200
    assert resp.get_json()["data"]["booking"]["cancel_reason"] is None


def test_write_conflict_is_409_json(client, monkeypatch, booking_payload):
    def conflict(fn):
        raise ConcurrentModificationError("Another write touched the same booking or customer.")

    monkeypatch.setattr(web_app.db, "write", conflict)

    resp = client.post("/bookings", json=booking_payload)

    assert resp.status_code == 409
    assert resp.get_json() == {
        "success": False,
        "message": "Another write touched the same booking or customer.",
    }


def test_create_and_update_customer(client):
    created = client.post("/customers", json={"mobile": "99999 99999", "name": "Asha"})
    updated = client.post("/customers", json={"mobile": "9999999999", "location": "Goa"})
    nameless = client.post("/customers", json={"mobile": "1112223333"})

    assert created.status_code == 201
    assert updated.status_code == 200
    customer = updated.get_json()["data"]["customer"]
    assert customer["id"] == created.get_json()["data"]["customer"]["id"]
    assert (customer["name"], customer["location"]) == ("Asha", "Goa")
    assert nameless.status_code == 400
    assert nameless.get_json()["errors"][0]["field"] == "customer.name"


def test_server_deadlock_on_create_is_409_json(client, monkeypatch, service, booking_payload):
    monkeypatch.setattr(Db, "connect", lambda self: FakeConnection())
    monkeypatch.setattr(web_app, "db", Db(DbConfig(host="h", port=5432, name="r", user="u", password="p")))

    def deadlock(conn, payload):
        raise pg_errors.DeadlockDetected("deadlock detected")

    monkeypatch.setattr(service, "create_booking", deadlock)

    resp = client.post("/bookings", json=booking_payload)

    assert resp.status_code == 409
    assert resp.get_json()["success"] is False
