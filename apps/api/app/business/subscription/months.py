from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Protocol


_MONTH_YEAR_RE = re.compile(r"^(\d{2})-(\d{4})$")


@dataclass(frozen=True, order=True, slots=True)
class Month:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be within 1..12, got {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year must be within 1..9999, got {self.year}")

    @classmethod
    def parse(cls, raw: str) -> Month:
        """Parse the external ``MM-YYYY`` representation."""
        match = _MONTH_YEAR_RE.match(raw.strip()) if isinstance(raw, str) else None
        if match is None:
            raise ValueError(f"invalid month '{raw}', expected MM-YYYY")
        return cls(year=int(match.group(2)), month=int(match.group(1)))

    @classmethod
    def from_date(cls, value: date) -> Month:
        return cls(year=value.year, month=value.month)

    @property
    def index(self) -> int:
        return self.year * 12 + (self.month - 1)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def format(self) -> str:
        return f"{self.month:02d}-{self.year:04d}"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True, slots=True)
class MonthWindow:
    """Inclusive range of whole months, ``start`` through ``end``."""

    start: Month
    end: Month

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError("`from` must be less than or equal to `to`")

    @property
    def length(self) -> int:
        return self.end.index - self.start.index + 1

    def contains(self, month: Month) -> bool:
        return self.start <= month <= self.end


class ActivePeriod(Protocol):
    start_date: date
    end_date: date | None


def normalize_month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def overlap_months(subscription: ActivePeriod, window: MonthWindow) -> int:
    """Count whole months shared by the subscription's active period and ``window``.

    A subscription without an end date is treated as ending at ``window.end``,
    so it never contributes months past what the caller asked about. Day
    components of the stored dates are ignored.
    """
    start = Month.from_date(subscription.start_date)
    effective_end = Month.from_date(subscription.end_date) if subscription.end_date is not None else window.end

    lo = max(start, window.start)
    hi = min(effective_end, window.end)
    if hi < lo:
        return 0
    return (hi.year - lo.year) * 12 + (hi.month - lo.month) + 1
