# backend/lib/meter_core/chronology.py
from typing import Iterable, List, Optional
from .models import Period, Record


def sort_records(records: Iterable[Record]) -> List[Record]:
    """Records in ascending (year, month) order."""
    return sorted(records, key=lambda r: (r.year, r.month))


def find_by_period(records: Iterable[Record], period: Period) -> Optional[Record]:
    for r in records:
        if r.year == period.year and r.month == period.month:
            return r
    return None


def find_by_id(records: Iterable[Record], record_id: str) -> Optional[Record]:
    for r in records:
        if r.id == record_id:
            return r
    return None


def previous_reading(
    records: Iterable[Record],
    period: Period,
    state_field: str,
    exclude_id: Optional[str] = None,
) -> Optional[float]:
    """
    Value of state_field on the latest record strictly before period.

    The record with exclude_id is ignored so an edited record is never
    compared against itself. Returns None when there is no earlier reading.
    """
    earlier = [
        r for r in sort_records(r for r in records if r.id != exclude_id)
        if (r.year, r.month) < (period.year, period.month)
    ]
    if not earlier:
        return None
    return getattr(earlier[-1], state_field)
