from __future__ import annotations

import structlog
from psycopg import Connection
from psycopg import errors as pg_errors

from ..domain import ContactInput, Customer
from ..errors import ConcurrentModificationError, ValidationError
from ..payloads import normalize_mobile
from ..repositories.customer_repo import CustomerRepository

logger = structlog.get_logger(__name__)


def merge_contact(stored: Customer, contact: ContactInput) -> dict:
    """Contact fields after applying ``contact`` on top of ``stored``.

    Supplied fields win, absent ones (None) keep the stored value. The two
    dict fields are merged key by key.
    """
    return {
        "name": contact.name or stored.name,
        "email": contact.email if contact.email is not None else stored.email,
        "location": contact.location if contact.location is not None else stored.location,
        "measurements": {**stored.measurements, **(contact.measurements or {})},
        "emergency_contact": {**stored.emergency_contact, **(contact.emergency_contact or {})},
    }


def snapshot(customer: Customer) -> dict:
    """Denormalized copy embedded in a booking."""
    return {
        "id": customer.id,
        "name": customer.name,
        "mobile": customer.mobile,
        "email": customer.email,
        "location": customer.location,
        "measurements": dict(customer.measurements),
        "emergency_contact": dict(customer.emergency_contact),
    }


class CustomerResolver:
    def __init__(
        self,
        *,
        customer_repo: CustomerRepository,
        min_search_digits: int = 3,
        search_limit: int = 20,
    ) -> None:
        self.customer_repo = customer_repo
        self.min_search_digits = min_search_digits
        self.search_limit = search_limit

    def resolve(self, conn: Connection, contact: ContactInput) -> tuple[int, bool]:
        mobile = normalize_mobile(contact.mobile)
        if not mobile:
            raise ValidationError("Customer mobile is required.", "customer.mobile")

        stored = self.customer_repo.get_by_mobile(conn, mobile, for_update=True)
        if stored is not None:
            self.customer_repo.update_contact(conn, stored.id, **merge_contact(stored, contact))
            logger.info("customer matched", customer_id=stored.id)
            return stored.id, False

        if not contact.name:
            raise ValidationError("Customer name is required.", "customer.name")
        try:
            customer_id = self.customer_repo.create(
                conn,
                mobile=mobile,
                name=contact.name,
                email=contact.email,
                location=contact.location,
                measurements=contact.measurements or {},
                emergency_contact=contact.emergency_contact or {},
            )
        except pg_errors.UniqueViolation as e:
            raise ConcurrentModificationError(
                f"Customer with mobile {mobile} was created concurrently; retry."
            ) from e
        logger.info("customer created", customer_id=customer_id)
        return customer_id, True

    def search_by_partial_mobile(self, conn: Connection, prefix: str) -> list[Customer]:
        digits = normalize_mobile(prefix)
        if len(digits) < self.min_search_digits:
            raise ValidationError(
                f"Enter at least {self.min_search_digits} digits to search by mobile.", "mobile"
            )
        return self.customer_repo.search_by_mobile_prefix(conn, digits, limit=self.search_limit)
