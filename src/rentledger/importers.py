from __future__ import annotations

import csv
import json
from pathlib import Path

import structlog
from psycopg import Connection

from .payloads import parse_contact
from .services.booking_service import BookingService
from .services.customer_resolver import CustomerResolver

logger = structlog.get_logger(__name__)


class ImportFileError(Exception):
    pass


def import_customers_csv(conn: Connection, path: str | Path, resolver: CustomerResolver) -> int:
    """Resolve every row as a contact; existing mobiles are merged, not duplicated."""
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    count = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"name", "mobile"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ImportFileError(f"CSV must contain columns: {sorted(required)}")

        for row in reader:
            if not (row.get("name") or "").strip() or not (row.get("mobile") or "").strip():
                continue
            contact = parse_contact(
                {
                    "name": row.get("name"),
                    "mobile": row.get("mobile"),
                    "email": row.get("email"),
                    "location": row.get("location"),
                }
            )
            resolver.resolve(conn, contact)
            count += 1

    logger.info("customers imported", path=str(p), count=count)
    return count


def import_bookings_json(conn: Connection, path: str | Path, service: BookingService) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ImportFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFileError("JSON must be a list of booking objects")

    count = 0
    for obj in data:
        if not isinstance(obj, dict):
            continue
        service.create_booking(conn, obj)
        count += 1

    logger.info("bookings imported", path=str(p), count=count)
    return count
