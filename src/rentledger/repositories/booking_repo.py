from __future__ import annotations

from dataclasses import asdict, fields

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..db import fetch_all, fetch_one
from ..domain import AdditionalCost, Booking, BookingDetails, BookingItem, BookingTotals
from ..errors import ConcurrentModificationError

TOTAL_COLUMNS = [f.name for f in fields(BookingTotals)]
DETAIL_COLUMNS = [f.name for f in fields(BookingDetails)]
ITEM_COLUMNS = [f.name for f in fields(BookingItem)]

_BOOKING_COLUMNS = [
    "customer_id",
    "customer_snapshot",
    "status",
    "canceled_at",
    "cancel_reason",
    "customer_contribution",
    *TOTAL_COLUMNS,
    *DETAIL_COLUMNS,
]


def _booking_values(booking: Booking) -> list:
    return [
        booking.customer_id,
        Jsonb(booking.customer),
        booking.status,
        booking.canceled_at,
        booking.cancel_reason,
        booking.customer_contribution,
        *(getattr(booking.totals, c) for c in TOTAL_COLUMNS),
        *(getattr(booking.details, c) for c in DETAIL_COLUMNS),
    ]


def _item_values(item: BookingItem) -> list:
    values = []
    for c in ITEM_COLUMNS:
        v = getattr(item, c)
        if c == "additional_costs":
            v = Jsonb([asdict(ac) for ac in v])
        values.append(v)
    return values


def _item_from_row(row: dict) -> BookingItem:
    data = {c: row[c] for c in ITEM_COLUMNS}
    data["additional_costs"] = tuple(
        AdditionalCost(reason=ac.get("reason", ""), amount=int(ac.get("amount", 0)))
        for ac in (row["additional_costs"] or [])
    )
    return BookingItem(**data)


def _booking_from_row(row: dict, items: tuple[BookingItem, ...]) -> Booking:
    return Booking(
        id=row["id"],
        booking_code=row["booking_code"],
        customer_id=row["customer_id"],
        customer=dict(row["customer_snapshot"] or {}),
        items=items,
        totals=BookingTotals(**{c: int(row[c]) for c in TOTAL_COLUMNS}),
        status=row["status"],
        details=BookingDetails(**{c: row[c] for c in DETAIL_COLUMNS}),
        canceled_at=row["canceled_at"],
        cancel_reason=row["cancel_reason"],
        customer_contribution=int(row["customer_contribution"]),
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class BookingRepository:
    def code_exists(self, conn: Connection, booking_code: str) -> bool:
        cur = conn.execute("SELECT 1 FROM booking WHERE booking_code = %s;", (booking_code,))
        return cur.fetchone() is not None

    def create(self, conn: Connection, booking: Booking) -> int:
        cols = ", ".join(["booking_code", *_BOOKING_COLUMNS])
        marks = ", ".join(["%s"] * (len(_BOOKING_COLUMNS) + 1))
        cur = conn.execute(
            f"INSERT INTO booking({cols}) VALUES ({marks}) RETURNING id;",
            (booking.booking_code, *_booking_values(booking)),
        )
        booking_id = int(cur.fetchone()[0])
        self._insert_items(conn, booking_id, booking.items)
        return booking_id

    def load(self, conn: Connection, booking_id: int, *, for_update: bool = False) -> Booking | None:
        lock = " FOR UPDATE" if for_update else ""
        cur = conn.execute(f"SELECT * FROM booking WHERE id = %s{lock};", (booking_id,))
        row = fetch_one(cur)
        if row is None:
            return None
        cur = conn.execute(
            "SELECT * FROM booking_item WHERE booking_id = %s ORDER BY position;",
            (booking_id,),
        )
        items = tuple(_item_from_row(r) for r in fetch_all(cur))
        return _booking_from_row(row, items)

    def save(self, conn: Connection, booking: Booking, expected_version: int) -> int:
        """Write the whole record back if nobody changed it since ``expected_version`` was read.

        Returns the new version. Item rows are replaced, never merged.
        """
        assignments = ", ".join(f"{c} = %s" for c in _BOOKING_COLUMNS)
        cur = conn.execute(
            f"""
            UPDATE booking
            SET {assignments}, version = version + 1, updated_at = now()
            WHERE id = %s AND version = %s
            RETURNING version;
            """,
            (*_booking_values(booking), booking.id, expected_version),
        )
        row = cur.fetchone()
        if cur.rowcount != 1 or row is None:
            raise ConcurrentModificationError(
                f"Booking {booking.id} was modified concurrently (expected version {expected_version})."
            )

        conn.execute("DELETE FROM booking_item WHERE booking_id = %s;", (booking.id,))
        self._insert_items(conn, booking.id, booking.items)
        return int(row[0])

    def list(self, conn: Connection, status: str | None = None, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT b.id, b.booking_code, b.status, b.customer_id,
                   b.customer_snapshot->>'name' AS customer_name,
                   b.customer_snapshot->>'mobile' AS customer_mobile,
                   b.total_price, b.total_paid, b.total_pending, b.net_profit,
                   b.created_at
            FROM booking b
            WHERE (%s::text IS NULL OR b.status = %s::text)
            ORDER BY b.id DESC
            LIMIT %s;
            """,
            (status, status, limit),
        )
        return fetch_all(cur)

    def _insert_items(self, conn: Connection, booking_id: int, items: tuple[BookingItem, ...]) -> None:
        cols = ", ".join(["booking_id", "position", *ITEM_COLUMNS])
        marks = ", ".join(["%s"] * (len(ITEM_COLUMNS) + 2))
        with conn.cursor() as cur:
            cur.executemany(
                f"INSERT INTO booking_item({cols}) VALUES ({marks});",
                [(booking_id, pos, *_item_values(item)) for pos, item in enumerate(items)],
            )
