"""
Fund ledger reducer.

A project's running totals are a fold over its FundTransaction log:
allocations add to allocated, releases add to utilized. The application
layer keeps the folded totals cached on the Project row and advances them
one entry (or one edit delta) at a time under a row lock; replay() rebuilds
them from scratch for consistency checks.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from tracker.domain.exceptions import InvalidAmount

ALLOCATION = "allocation"
RELEASE = "release"
TRANSACTION_TYPES = (ALLOCATION, RELEASE)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest value a DecimalField(max_digits=15, decimal_places=2) column holds
MAX_AMOUNT = Decimal("9999999999999.99")


def parse_amount(value):
    """
    Coerce a request value into a positive money Decimal.

    Floats are converted through their string form so 0.1 stays 0.1.
    More than two decimal places is rejected rather than rounded.
    """
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidAmount(value, "amount is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(value, "amount must be a number")
    if not amount.is_finite():
        raise InvalidAmount(value, "amount must be a finite number")
    if amount <= 0:
        raise InvalidAmount(value, "amount must be greater than zero")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(value, f"amount cannot exceed {MAX_AMOUNT}")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidAmount(value, "amount must be a number")
    if amount != quantized:
        raise InvalidAmount(value, "amount must have at most two decimal places")
    return quantized


@dataclass(frozen=True)
class LedgerTotals:
    allocated: Decimal = ZERO
    utilized: Decimal = ZERO

    @classmethod
    def of(cls, project):
        return cls(allocated=project.allocated_amount, utilized=project.utilized_amount)

    @property
    def remaining(self):
        return self.allocated - self.utilized

    @property
    def is_overdrawn(self):
        return self.utilized > self.allocated or self.allocated < 0 or self.utilized < 0

    @property
    def exceeds_capacity(self):
        return self.allocated > MAX_AMOUNT or self.utilized > MAX_AMOUNT

    def apply(self, transaction_type, amount):
        """Totals after appending one ledger entry."""
        return self.adjust(transaction_type, amount)

    def adjust(self, transaction_type, delta):
        """Totals after changing an existing entry of ``transaction_type`` by ``delta``."""
        if transaction_type == ALLOCATION:
            return LedgerTotals(self.allocated + delta, self.utilized)
        if transaction_type == RELEASE:
            return LedgerTotals(self.allocated, self.utilized + delta)
        raise ValueError(f"Unknown transaction type: {transaction_type!r}")


def replay(entries):
    """Fold (transaction_type, amount) pairs into totals, in any order."""
    totals = LedgerTotals()
    for transaction_type, amount in entries:
        totals = totals.apply(transaction_type, amount)
    return totals


def pro_rata_share(allocated, checkpoint_count):
    """Per-checkpoint share of an allocation, truncated to whole cents."""
    share = Decimal(allocated) / max(int(checkpoint_count or 0), 1)
    return share.quantize(CENT, rounding=ROUND_DOWN)
