from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Union

Number = Union[int, float, Decimal]

HUNDRED = Decimal(100)


def percentage_difference(authority_value: Decimal, book_value: Decimal) -> Decimal:
    """|authority - book| as a percentage of the authority value."""
    authority_value = Decimal(authority_value)
    book_value = Decimal(book_value)
    if authority_value == 0:
        return Decimal(0) if book_value == 0 else HUNDRED
    return abs(authority_value - book_value) / authority_value * HUNDRED


def day_difference(authority_date: date, book_date: date) -> int:
    """Signed difference in whole days, authority minus book."""
    return (authority_date - book_date).days


@dataclass(frozen=True)
class ToleranceCheck:
    """
    A difference measured against a tolerance.

    Matcher and surveyor share this comparison and differ only in the
    tolerance they pass and in which boundary they read.
    """
    difference: Decimal
    tolerance: Decimal

    @classmethod
    def of(cls, difference: Number, tolerance: Number) -> "ToleranceCheck":
        return cls(abs(Decimal(str(difference))), Decimal(str(tolerance)))

    @property
    def within(self) -> bool:
        return self.difference <= self.tolerance

    @property
    def reached(self) -> bool:
        # The boundary itself counts.
        return self.difference >= self.tolerance

    @property
    def exceeded(self) -> bool:
        return self.difference > self.tolerance

    def decayed_similarity(self, scale: Number = 10) -> float:
        """1.0 inside tolerance, then linear decay to 0 over `scale` units."""
        if self.within:
            return 1.0
        overshoot = (self.difference - self.tolerance) / Decimal(str(scale))
        return float(max(Decimal(0), Decimal(1) - overshoot))
