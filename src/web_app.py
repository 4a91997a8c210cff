from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal

import structlog
from flask import Flask, jsonify, request

from rentledger.config import ConfigError, load_config
from rentledger.db import Db, DbError
from rentledger.domain import Booking, Customer
from rentledger.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from rentledger.logs import configure_logging
from rentledger.reports import booking_stats, customer_summary, period_bounds
from rentledger.services.booking_service import BookingService, build_booking_service

app = Flask(__name__)
logger = structlog.get_logger(__name__)

db: Db = None
cfg = None
booking_service: BookingService = None


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _booking_json(b: Booking) -> dict:
    return _jsonable(asdict(b))


def _customer_json(c: Customer) -> dict:
    return _jsonable(asdict(c))


def _ok(message: str, data: dict, status: int = 200):
    return jsonify({"success": True, "message": message, "data": _jsonable(data)}), status


def _fail(message: str, status: int, field: str | None = None):
    body = {"success": False, "message": message}
    if field:
        body["errors"] = [{"field": field, "message": message}]
    return jsonify(body), status


@app.errorhandler(LedgerError)
def handle_ledger_error(e: LedgerError):
    if isinstance(e, ValidationError):
        return _fail(str(e), 400, e.field)
    if isinstance(e, NotFoundError):
        return _fail(str(e), 404)
    if isinstance(e, (InvalidTransitionError, ConcurrentModificationError)):
        return _fail(str(e), 409)
    return _fail(str(e), 400)


@app.errorhandler(DbError)
def handle_db_error(e: DbError):
    return _fail(f"DB error: {e}", 503)


def _body(required: bool = True) -> dict:
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


@app.route("/bookings", methods=["GET"])
def bookings_list():
    status = request.args.get("status") or None
    limit = request.args.get("limit", 50, type=int)
    with db.session() as conn:
        rows = booking_service.list_bookings(conn, status=status, limit=limit)
    return _ok("Bookings retrieved", {"bookings": rows})


@app.route("/bookings", methods=["POST"])
def bookings_create():
    payload = _body()
    booking = db.write(lambda conn: booking_service.create_booking(conn, payload))
    return _ok("Booking created", {"booking": _booking_json(booking)}, 201)


@app.route("/bookings/<int:booking_id>", methods=["GET"])
def bookings_get(booking_id: int):
    with db.session() as conn:
        booking = booking_service.get_booking(conn, booking_id)
    return _ok("Booking retrieved", {"booking": _booking_json(booking)})


@app.route("/bookings/<int:booking_id>", methods=["PUT"])
def bookings_update(booking_id: int):
    payload = _body()
    booking = db.write(lambda conn: booking_service.update_booking(conn, booking_id, payload))
    return _ok("Booking updated", {"booking": _booking_json(booking)})


@app.route("/bookings/<int:booking_id>/complete-payment", methods=["PUT"])
def bookings_complete_payment(booking_id: int):
    booking = db.write(lambda conn: booking_service.complete_booking_payment(conn, booking_id))
    return _ok("Payment completed", {"booking": _booking_json(booking)})


@app.route("/bookings/<int:booking_id>/cancel", methods=["PUT"])
def bookings_cancel(booking_id: int):
    data = _body(required=False)
    booking = db.write(lambda conn: booking_service.cancel_booking(conn, booking_id, data.get("reason")))
    return _ok("Booking canceled", {"booking": _booking_json(booking)})


@app.route("/customers", methods=["POST"])
def customers_save():
    payload = _body()
    customer, is_new = db.write(lambda conn: booking_service.save_customer(conn, payload))
    if is_new:
        return _ok("Customer created", {"customer": _customer_json(customer)}, 201)
    return _ok("Customer updated", {"customer": _customer_json(customer)})


@app.route("/customers/search/<mobile>", methods=["GET"])
def customers_search(mobile: str):
    with db.session() as conn:
        customers = booking_service.search_customers_by_partial_mobile(conn, mobile)
    return _ok("Customers found", {"customers": [_customer_json(c) for c in customers]})


@app.route("/bookings/stats/summary", methods=["GET"])
def bookings_stats():
    d1, d2 = period_bounds(
        request.args.get("filter", "all"),
        month=request.args.get("month", type=int),
        year=request.args.get("year", type=int),
    )
    with db.session() as conn:
        stats = booking_stats(conn, d1, d2)
    return _ok("Booking statistics", {"stats": stats})


@app.route("/customers/stats/summary", methods=["GET"])
def customers_stats():
    with db.session() as conn:
        summary = customer_summary(conn, limit=10)
    return _ok("Customer statistics", {"summary": summary})


if __name__ == "__main__":
    try:
        cfg = load_config("config.toml")
        configure_logging(cfg.log_level, cfg.log_format)
        db = Db(cfg.db)
        booking_service = build_booking_service(cfg.business)
        logger.info("starting web app", name=cfg.name)
        app.run(debug=False, host="127.0.0.1", port=5000)
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        raise SystemExit(2)
