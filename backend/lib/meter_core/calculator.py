# backend/lib/meter_core/calculator.py
from typing import Any, Optional


def to_number(value: Any) -> float:
    """
    Plain float for any input; blanks and non-numeric values become 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN and infinities are not meter values
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def calc_consumption(current_state: Optional[float], previous_state: Optional[float]) -> float:
    """
    Consumption between two cumulative meter states.

    Zero when either state is missing. Regressions (meter swap, typo)
    clamp to zero instead of going negative.
    """
    if previous_state is None or current_state is None or current_state == "":
        return 0.0
    return max(0.0, to_number(current_state) - to_number(previous_state))


def resolve_consumption(
    current_state: Optional[float],
    previous_state: Optional[float],
    override: Optional[float] = None,
) -> float:
    """An explicit override wins over the derived value."""
    if override is not None:
        return to_number(override)
    return calc_consumption(current_state, previous_state)
