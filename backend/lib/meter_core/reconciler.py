# backend/lib/meter_core/reconciler.py
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .calculator import resolve_consumption, to_number
from .chronology import find_by_id, find_by_period, previous_reading
from .errors import PeriodConflictError, RecordNotFoundError, ValidationError
from .models import DEFAULT_YEARS, Period, Preview, Record, SaveResult, Submission


def new_id() -> str:
    return uuid4().hex


def validate_period(period: Period, supported_years: Iterable[int] = DEFAULT_YEARS) -> None:
    if not 1 <= period.month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {period.month}")
    years = tuple(supported_years)
    if period.year not in years:
        raise ValidationError(
            f"Year {period.year} is not supported ({min(years)}-{max(years)})"
        )


def _derive(
    records: Sequence[Record],
    period: Period,
    household_state: Optional[float],
    car_state: Optional[float],
    submission: Submission,
    exclude_id: Optional[str] = None,
) -> Tuple[float, float]:
    prev_household = previous_reading(records, period, "householdState", exclude_id)
    prev_car = previous_reading(records, period, "carState", exclude_id)
    household = resolve_consumption(
        household_state, prev_household, submission.householdConsumptionOverride
    )
    car = resolve_consumption(car_state, prev_car, submission.carConsumptionOverride)
    return household, car


def _build(
    record_id: str,
    period: Period,
    household_state: Optional[float],
    car_state: Optional[float],
    bojler: Optional[float],
    household: float,
    car: float,
) -> Record:
    # bojler is tracked alongside but not part of the total
    return Record(
        id=record_id,
        year=period.year,
        month=period.month,
        householdState=to_number(household_state),
        householdConsumption=household,
        carState=to_number(car_state),
        carConsumption=car,
        bojlerConsumption=to_number(bojler),
        totalConsumption=household + car,
    )


def _keep(incoming: Optional[float], current: float) -> float:
    return current if incoming is None else incoming


def submit(
    records: Sequence[Record],
    submission: Submission,
    id_factory: Callable[[], str] = new_id,
) -> Tuple[List[Record], SaveResult]:
    """
    Insert a record for the submission's period, or merge into the existing one.

    Returns the new record list (the input is left untouched) and the saved
    record with merged=True when an existing period was updated in place.
    """
    period = submission.period
    existing = find_by_period(records, period)

    if existing is not None:
        household_state = _keep(submission.householdState, existing.householdState)
        car_state = _keep(submission.carState, existing.carState)
        bojler = _keep(submission.bojlerConsumption, existing.bojlerConsumption)
        household, car = _derive(
            records, period, household_state, car_state, submission, exclude_id=existing.id
        )
        merged = _build(existing.id, period, household_state, car_state, bojler, household, car)
        updated = [merged if r.id == existing.id else r for r in records]
        return updated, SaveResult(record=merged, merged=True)

    household, car = _derive(
        records, period, submission.householdState, submission.carState, submission
    )
    record = _build(
        id_factory(),
        period,
        submission.householdState,
        submission.carState,
        submission.bojlerConsumption,
        household,
        car,
    )
    return list(records) + [record], SaveResult(record=record, merged=False)


def update(
    records: Sequence[Record],
    record_id: str,
    submission: Submission,
) -> Tuple[List[Record], Record]:
    """
    Rewrite the record with record_id from a complete submission.

    The period may change; missing values count as zero and both
    consumptions are always re-derived.
    """
    if find_by_id(records, record_id) is None:
        raise RecordNotFoundError(record_id)

    period = submission.period
    owner = find_by_period(records, period)
    if owner is not None and owner.id != record_id:
        raise PeriodConflictError(period, owner.id)

    household, car = _derive(
        records, period, submission.householdState, submission.carState, submission,
        exclude_id=record_id,
    )
    record = _build(
        record_id,
        period,
        submission.householdState,
        submission.carState,
        submission.bojlerConsumption,
        household,
        car,
    )
    return [record if r.id == record_id else r for r in records], record


def delete(records: Sequence[Record], record_id: str) -> List[Record]:
    if find_by_id(records, record_id) is None:
        raise RecordNotFoundError(record_id)
    return [r for r in records if r.id != record_id]


def preview(
    records: Sequence[Record],
    submission: Submission,
    exclude_id: Optional[str] = None,
) -> Preview:
    """Consumption a save would produce, without touching the records."""
    period = submission.period
    prev_household = previous_reading(records, period, "householdState", exclude_id)
    prev_car = previous_reading(records, period, "carState", exclude_id)
    household, car = _derive(
        records, period, submission.householdState, submission.carState, submission,
        exclude_id=exclude_id,
    )
    return Preview(
        previousHousehold=prev_household,
        previousCar=prev_car,
        householdConsumption=household,
        carConsumption=car,
        merge=exclude_id is None and find_by_period(records, period) is not None,
    )
