from __future__ import annotations


class LedgerError(Exception):
    pass


class ValidationError(LedgerError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class EmptyBookingError(ValidationError):
    def __init__(self, message: str = "A booking must contain at least one item.") -> None:
        super().__init__(message, field="items")


class InvalidTransitionError(LedgerError):
    pass


class ConcurrentModificationError(LedgerError):
    """Raised when an optimistic write lost the race; re-read and retry."""


class NotFoundError(LedgerError):
    pass
