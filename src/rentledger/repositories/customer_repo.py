from __future__ import annotations

from datetime import datetime

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..db import fetch_all, fetch_one
from ..domain import Customer
from ..errors import NotFoundError

_COLUMNS = """
    id, mobile, name, email, location, measurements, emergency_contact,
    total_bookings, total_spent, last_booking_date, created_at
"""


def _customer_from_row(row: dict) -> Customer:
    return Customer(
        id=row["id"],
        mobile=row["mobile"],
        name=row["name"],
        email=row["email"],
        location=row["location"],
        measurements=dict(row["measurements"] or {}),
        emergency_contact=dict(row["emergency_contact"] or {}),
        total_bookings=int(row["total_bookings"]),
        total_spent=int(row["total_spent"]),
        last_booking_date=row["last_booking_date"],
        created_at=row["created_at"],
    )


class CustomerRepository:
    def create(
        self,
        conn: Connection,
        *,
        mobile: str,
        name: str,
        email: str | None,
        location: str | None,
        measurements: dict,
        emergency_contact: dict,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO customer(mobile, name, email, location, measurements, emergency_contact)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (mobile, name, email, location, Jsonb(measurements), Jsonb(emergency_contact)),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, customer_id: int) -> Customer | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM customer WHERE id = %s;", (customer_id,))
        row = fetch_one(cur)
        return _customer_from_row(row) if row else None

    def get_by_mobile(self, conn: Connection, mobile: str, *, for_update: bool = False) -> Customer | None:
        lock = " FOR UPDATE" if for_update else ""
        cur = conn.execute(f"SELECT {_COLUMNS} FROM customer WHERE mobile = %s{lock};", (mobile,))
        row = fetch_one(cur)
        return _customer_from_row(row) if row else None

    def update_contact(
        self,
        conn: Connection,
        customer_id: int,
        *,
        name: str,
        email: str | None,
        location: str | None,
        measurements: dict,
        emergency_contact: dict,
    ) -> None:
        conn.execute(
            """
            UPDATE customer
            SET name = %s, email = %s, location = %s,
                measurements = %s, emergency_contact = %s, updated_at = now()
            WHERE id = %s;
            """,
            (name, email, location, Jsonb(measurements), Jsonb(emergency_contact), customer_id),
        )

    def increment_aggregates(
        self,
        conn: Connection,
        customer_id: int,
        *,
        bookings: int,
        spent: int,
        last_booking_date: datetime | None = None,
    ) -> None:
        # applied in SQL so concurrent bookings for one customer never lose an update
        cur = conn.execute(
            """
            UPDATE customer
            SET total_bookings = GREATEST(total_bookings + %s, 0),
                total_spent = GREATEST(total_spent + %s, 0),
                last_booking_date = COALESCE(%s, last_booking_date),
                updated_at = now()
            WHERE id = %s;
            """,
            (bookings, spent, last_booking_date, customer_id),
        )
        if cur.rowcount != 1:
            raise NotFoundError(f"Customer {customer_id} not found.")

    def search_by_mobile_prefix(self, conn: Connection, prefix: str, limit: int = 20) -> list[Customer]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM customer
            WHERE mobile LIKE %s
            ORDER BY mobile
            LIMIT %s;
            """,
            (prefix + "%", limit),
        )
        return [_customer_from_row(r) for r in fetch_all(cur)]

    def list(self, conn: Connection, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT id, mobile, name, email, location, total_bookings, total_spent, last_booking_date
            FROM customer
            ORDER BY id DESC
            LIMIT %s;
            """,
            (limit,),
        )
        return fetch_all(cur)
