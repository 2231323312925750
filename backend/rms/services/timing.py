"""Kitchen timing derivations.

Pure functions over timestamps; nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, floored."""
    delta = as_utc(end) - as_utc(start)
    return int(delta.total_seconds() // 1)


def elapsed_seconds(received_at: datetime, now: datetime) -> int:
    return seconds_between(received_at, now)


def is_warning(elapsed: int, warning_minutes: int) -> bool:
    return elapsed >= warning_minutes * 60


def is_critical(elapsed: int, critical_minutes: int) -> bool:
    return elapsed >= critical_minutes * 60


@dataclass(frozen=True)
class TicketTiming:
    elapsed_seconds: int
    elapsed_minutes: int
    is_warning: bool
    is_critical: bool

    def to_dict(self) -> dict:
        return {
            "elapsed_seconds": self.elapsed_seconds,
            "elapsed_minutes": self.elapsed_minutes,
            "is_warning": self.is_warning,
            "is_critical": self.is_critical,
        }


def ticket_timing(
    received_at: datetime,
    now: datetime,
    warning_minutes: int = 10,
    critical_minutes: int = 15,
) -> TicketTiming:
    """Elapsed time and alert flags for a ticket on a station board."""
    elapsed = elapsed_seconds(received_at, now)
    return TicketTiming(
        elapsed_seconds=elapsed,
        elapsed_minutes=elapsed // 60,
        is_warning=is_warning(elapsed, warning_minutes),
        is_critical=is_critical(elapsed, critical_minutes),
    )


def average_seconds(values: Iterable[Optional[int]]) -> Optional[float]:
    """Mean of the non-null values, or None when there are none.

    Tickets that never reached a stage have a null duration and are left
    out rather than counted as zero.
    """
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def window_hours(start: datetime, end: datetime) -> float:
    """Length of a metrics window in hours, floored at 1."""
    hours = (as_utc(end) - as_utc(start)).total_seconds() / 3600
    return max(hours, 1.0)


def throughput_per_hour(completed_count: int, start: datetime, end: datetime) -> float:
    return completed_count / window_hours(start, end)
