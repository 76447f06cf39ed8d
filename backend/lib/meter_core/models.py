# backend/lib/meter_core/models.py
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

# Wire/storage field order: the spreadsheet header row and export documents
RECORD_FIELDS = (
    "id",
    "year",
    "month",
    "householdState",
    "householdConsumption",
    "carState",
    "carConsumption",
    "bojlerConsumption",
    "totalConsumption",
)

STATE_FIELDS = ("householdState", "carState")

CONSUMPTION_FIELDS = (
    "householdConsumption",
    "carConsumption",
    "bojlerConsumption",
    "totalConsumption",
)

MONTH_NAMES_CZ = (
    "Leden", "Únor", "Březen", "Duben", "Květen", "Červen",
    "Červenec", "Srpen", "Září", "Říjen", "Listopad", "Prosinec",
)

DEFAULT_YEARS = tuple(range(2023, 2031))


def clean_number(value: float):
    """Return an int for integral floats so documents read 100, not 100.0."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True, order=True)
class Period:
    year: int
    month: int

    def label(self) -> str:
        return f"{MONTH_NAMES_CZ[self.month - 1]} {self.year}"


@dataclass
class Record:
    id: str
    year: int
    month: int
    householdState: float = 0.0
    householdConsumption: float = 0.0
    carState: float = 0.0
    carConsumption: float = 0.0
    bojlerConsumption: float = 0.0
    totalConsumption: float = 0.0

    @property
    def period(self) -> Period:
        return Period(self.year, self.month)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {name: clean_number(data[name]) for name in RECORD_FIELDS}


@dataclass
class Submission:
    """
    An incoming save for one period.

    None means "not provided": keep the stored value when merging,
    zero when creating. 0.0 is an explicit zero.
    """
    year: int
    month: int
    householdState: Optional[float] = None
    carState: Optional[float] = None
    bojlerConsumption: Optional[float] = None
    householdConsumptionOverride: Optional[float] = None
    carConsumptionOverride: Optional[float] = None

    @property
    def period(self) -> Period:
        return Period(self.year, self.month)

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.householdState,
                self.carState,
                self.bojlerConsumption,
                self.householdConsumptionOverride,
                self.carConsumptionOverride,
            )
        )


@dataclass
class SaveResult:
    record: Record
    merged: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"record": self.record.to_dict(), "merged": self.merged}


@dataclass
class SyncStatus:
    backend: str
    remote: bool
    ok: bool = True
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Preview:
    previousHousehold: Optional[float]
    previousCar: Optional[float]
    householdConsumption: float
    carConsumption: float
    merge: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previousHousehold": clean_number(self.previousHousehold),
            "previousCar": clean_number(self.previousCar),
            "householdConsumption": clean_number(self.householdConsumption),
            "carConsumption": clean_number(self.carConsumption),
            "merge": self.merge,
        }
