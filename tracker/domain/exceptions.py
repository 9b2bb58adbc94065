class InvalidInput(Exception):
    """Raised when a request carries a missing or malformed field."""

    def __init__(self, message, field=None):
        self.field = field
        super().__init__(message)


class InvalidAmount(InvalidInput):
    """Raised when a fund amount is missing, non-positive, or not a valid money value."""

    def __init__(self, amount, reason="amount must be a positive number"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}", field="amount")


class InvalidStatus(InvalidInput):
    """Raised when a status value is not one of the allowed transitions."""

    def __init__(self, status, allowed):
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid status {status!r}; expected one of: {', '.join(self.allowed)}",
            field="status",
        )


class InvariantViolation(Exception):
    """Raised when an operation would break a ledger invariant."""


class OverRelease(InvariantViolation):
    """Raised when a release would push utilized funds above the allocated total."""

    def __init__(self, project_id, requested, available):
        self.project_id = project_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Project {project_id}: utilized amount cannot exceed allocated amount "
            f"(requested {requested}, available {available})"
        )


class Conflict(Exception):
    """Raised when a unique key collides and the merge logic could not resolve it."""


class Transient(Exception):
    """Raised when the store is unavailable or a lock wait timed out; safe to retry."""


class IdempotencyReplay(Exception):
    """Raised when an insert collides with an already processed client_id."""

    def __init__(self, client_id):
        self.client_id = client_id
        super().__init__(
            f"Idempotency replay detected for client_id: {client_id}"
        )
