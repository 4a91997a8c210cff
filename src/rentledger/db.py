from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, TypeVar

import psycopg
import structlog
from psycopg import Connection
from psycopg import errors as pg_errors

from .config import DbConfig
from .errors import ConcurrentModificationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DbError(Exception):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    def connect(self) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                application_name="rentledger",
                autocommit=True,
            )
        except psycopg.Error as e:
            logger.error("db connect failed", host=self.cfg.host, dbname=self.cfg.name, error=str(e))
            raise DbError(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @contextmanager
    def session(self) -> Connection:
        """Autocommit connection for reads."""
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Connection:
        """One booking mutation: every statement commits together or not at all.

        Lock conflicts the server resolves by aborting us surface as
        ``ConcurrentModificationError``, same as a lost version check.
        """
        with self.session() as conn:
            try:
                with conn.transaction():
                    yield conn
            except (pg_errors.DeadlockDetected, pg_errors.SerializationFailure) as e:
                logger.warning("transaction aborted by server", error=type(e).__name__)
                raise ConcurrentModificationError(
                    "Another write touched the same booking or customer; transaction rolled back."
                ) from e

    def write(self, fn: Callable[[Connection], T]) -> T:
        """Run ``fn`` in its own transaction, up to ``cfg.write_attempts`` times on conflict.

        With the default of one attempt the conflict goes straight to the caller.
        ``fn`` must re-read whatever it modifies; each attempt starts from fresh state.
        """
        attempt = 1
        while True:
            try:
                with self.transaction() as conn:
                    return fn(conn)
            except ConcurrentModificationError as e:
                if attempt >= self.cfg.write_attempts:
                    raise
                logger.warning("write conflict, retrying", attempt=attempt, error=str(e))
                attempt += 1


def fetch_one(cur) -> dict | None:
    row = cur.fetchone()
    if not row:
        return None
    cols = [d.name for d in cur.description]
    return dict(zip(cols, row))


def fetch_all(cur) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]
