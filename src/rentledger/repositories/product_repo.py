from __future__ import annotations

from psycopg import Connection

from ..db import fetch_one


class ProductRepository:
    """Read-only view of the dress catalog, used to pre-fill item prices."""

    def get(self, conn: Connection, product_id: str) -> dict | None:
        cur = conn.execute(
            """
            SELECT id, name, price, original_price, images
            FROM product WHERE id = %s;
            """,
            (product_id,),
        )
        return fetch_one(cur)
