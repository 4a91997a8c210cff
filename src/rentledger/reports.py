from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from psycopg import Connection

from .db import fetch_all, fetch_one
from .errors import ValidationError

PERIODS = ("all", "week", "month", "year")


def period_bounds(
    period: str = "all",
    *,
    month: int | None = None,
    year: int | None = None,
    today: date | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Half-open [from, to) UTC range for a dashboard filter; (None, None) means unbounded."""
    if period not in PERIODS:
        raise ValidationError(f"period must be one of {', '.join(PERIODS)}", "filter")
    today = today or datetime.now(timezone.utc).date()

    if period == "all":
        return None, None
    if period == "week":
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=7)
    elif period == "month":
        y = year or today.year
        m = month or today.month
        if not 1 <= m <= 12:
            raise ValidationError("month must be between 1 and 12", "month")
        start = date(y, m, 1)
        end = date(y + 1, 1, 1) if m == 12 else date(y, m + 1, 1)
    else:
        y = year or today.year
        start = date(y, 1, 1)
        end = date(y + 1, 1, 1)

    def _ts(d: date) -> datetime:
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)

    return _ts(start), _ts(end)


def booking_stats(conn: Connection, date_from: datetime | None, date_to: datetime | None) -> dict:
    # reads the persisted rollup columns; nothing is recomputed here
    cur = conn.execute(
        """
        SELECT
          COUNT(*) AS total_bookings,
          COUNT(*) FILTER (WHERE b.status = 'active') AS active_bookings,
          COUNT(*) FILTER (WHERE b.status = 'completed') AS completed_bookings,
          COUNT(*) FILTER (WHERE b.status = 'canceled') AS canceled_bookings,
          COUNT(*) FILTER (WHERE b.status = 'active' AND b.total_pending > 0) AS pending_bookings,
          COALESCE(SUM(b.total_price) FILTER (WHERE b.status <> 'canceled'), 0) AS total_price,
          COALESCE(SUM(b.total_advance) FILTER (WHERE b.status <> 'canceled'), 0) AS total_advance,
          COALESCE(SUM(b.total_pending) FILTER (WHERE b.status = 'active'), 0) AS total_pending,
          COALESCE(SUM(b.total_security) FILTER (WHERE b.status <> 'canceled'), 0) AS total_security,
          COALESCE(SUM(b.total_paid) FILTER (WHERE b.status = 'completed'), 0) AS total_paid,
          COALESCE(SUM(b.total_operational_cost) FILTER (WHERE b.status <> 'canceled'), 0)
            AS total_operational_cost,
          COALESCE(SUM(b.net_profit) FILTER (WHERE b.status <> 'canceled'), 0) AS net_profit,
          COUNT(DISTINCT b.customer_id) AS total_customers
        FROM booking b
        WHERE (%s::timestamptz IS NULL OR b.created_at >= %s::timestamptz)
          AND (%s::timestamptz IS NULL OR b.created_at < %s::timestamptz);
        """,
        (date_from, date_from, date_to, date_to),
    )
    stats = fetch_one(cur) or {}

    cur = conn.execute(
        """
        SELECT
          COUNT(*) FILTER (WHERE c.total_bookings <= 1) AS new_customers,
          COUNT(*) FILTER (WHERE c.total_bookings > 1) AS repeat_customers
        FROM customer c
        WHERE EXISTS (
          SELECT 1 FROM booking b
          WHERE b.customer_id = c.id
            AND (%s::timestamptz IS NULL OR b.created_at >= %s::timestamptz)
            AND (%s::timestamptz IS NULL OR b.created_at < %s::timestamptz)
        );
        """,
        (date_from, date_from, date_to, date_to),
    )
    stats.update(fetch_one(cur) or {})
    return stats


def top_customers(conn: Connection, limit: int = 10) -> list[dict]:
    cur = conn.execute(
        """
        SELECT id, name, mobile, total_bookings, total_spent, last_booking_date
        FROM customer
        WHERE total_bookings > 0
        ORDER BY total_spent DESC, total_bookings DESC
        LIMIT %s;
        """,
        (limit,),
    )
    return fetch_all(cur)


def customer_summary(conn: Connection, limit: int = 10) -> dict:
    cur = conn.execute(
        """
        SELECT
          COUNT(*) AS total_customers,
          COUNT(*) FILTER (WHERE total_bookings > 0) AS active_customers
        FROM customer;
        """
    )
    summary = fetch_one(cur) or {}
    summary["top_customers"] = top_customers(conn, limit=limit)
    return summary
