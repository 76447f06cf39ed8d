# backend/lib/meter_core/io.py
import csv
import json
import math
from io import StringIO
from typing import Any, Callable, Dict, Iterable, List, Optional
from .calculator import to_number
from .errors import ImportDocumentError, ValidationError
from .models import RECORD_FIELDS, Record, Submission


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def is_blank_row(row: Any) -> bool:
    """A spreadsheet row whose cells are all empty (left behind by cleared rows)."""
    return isinstance(row, dict) and all(_is_blank(v) for v in row.values())


def parse_optional(value: Any) -> Optional[float]:
    """
    Meter state from user input. Blank or non-numeric means "not provided".
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_amount(value: Any) -> Optional[float]:
    """
    Directly entered amount (bojler, overrides). Blank means "not provided",
    anything else that is not a number counts as zero.
    """
    if _is_blank(value):
        return None
    return to_number(value)


def parse_int(value: Any, name: str) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number, got {value!r}")
    if isinstance(value, bool) or not number.is_integer():
        raise ValidationError(f"{name} must be a whole number, got {value!r}")
    return int(number)


def submission_from_dict(data: Dict[str, Any]) -> Submission:
    """
    Build a Submission from a form or JSON body using the wire field names.
    """
    return Submission(
        year=parse_int(data.get("year"), "year"),
        month=parse_int(data.get("month"), "month"),
        householdState=parse_optional(data.get("householdState")),
        carState=parse_optional(data.get("carState")),
        bojlerConsumption=parse_amount(data.get("bojlerConsumption")),
        householdConsumptionOverride=parse_amount(data.get("householdConsumptionOverride")),
        carConsumptionOverride=parse_amount(data.get("carConsumptionOverride")),
    )


def record_from_dict(data: Dict[str, Any], id_factory: Optional[Callable[[], str]] = None) -> Record:
    """
    Stored/imported row -> Record. Empty cells read as zero and the total is
    recomputed from household + car.
    """
    if not isinstance(data, dict):
        raise ImportDocumentError(f"Record must be an object, got {type(data).__name__}")
    try:
        year = parse_int(data.get("year"), "year")
        month = parse_int(data.get("month"), "month")
    except ValidationError as e:
        raise ImportDocumentError(str(e)) from e
    if not 1 <= month <= 12:
        raise ImportDocumentError(f"Month must be between 1 and 12, got {month}")

    record_id = data.get("id")
    if _is_blank(record_id):
        if id_factory is None:
            raise ImportDocumentError(f"Record for {year}-{month:02d} has no id")
        record_id = id_factory()

    household = to_number(data.get("householdConsumption"))
    car = to_number(data.get("carConsumption"))
    return Record(
        id=str(record_id),
        year=year,
        month=month,
        householdState=to_number(data.get("householdState")),
        householdConsumption=household,
        carState=to_number(data.get("carState")),
        carConsumption=car,
        bojlerConsumption=to_number(data.get("bojlerConsumption")),
        totalConsumption=household + car,
    )


def records_from_rows(rows: Iterable[Any], id_factory: Optional[Callable[[], str]] = None) -> List[Record]:
    records = []
    seen_ids = set()
    seen_periods = set()
    for row in rows:
        record = record_from_dict(row, id_factory)
        if record.id in seen_ids:
            raise ImportDocumentError(f"Duplicate record id: {record.id}")
        if (record.year, record.month) in seen_periods:
            raise ImportDocumentError(
                f"Duplicate period: {record.year}-{record.month:02d}"
            )
        seen_ids.add(record.id)
        seen_periods.add((record.year, record.month))
        records.append(record)
    return records


def parse_records_json(text: str, id_factory: Optional[Callable[[], str]] = None) -> List[Record]:
    """
    Parse an export document: a JSON array of records, or {"records": [...]}
    as returned by the spreadsheet web app.
    """
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ImportDocumentError(f"Invalid JSON: {e}") from e
    return records_from_document(document, id_factory)


def records_from_document(document: Any, id_factory: Optional[Callable[[], str]] = None) -> List[Record]:
    if isinstance(document, dict) and "records" in document:
        document = document["records"]
    if not isinstance(document, list):
        raise ImportDocumentError("Document must be a list of records")
    return records_from_rows(document, id_factory)


def parse_records_csv(text: str, id_factory: Optional[Callable[[], str]] = None) -> List[Record]:
    """
    Parse CSV with the spreadsheet header row:
    id,year,month,householdState,householdConsumption,carState,carConsumption,bojlerConsumption,totalConsumption
    """
    reader = csv.DictReader(StringIO(text.strip()))
    header = reader.fieldnames or []
    missing = [name for name in ("year", "month") if name not in header]
    if missing:
        raise ImportDocumentError(f"Missing column(s): {', '.join(missing)}")
    try:
        rows = list(reader)
    except csv.Error as e:
        raise ImportDocumentError(f"Invalid CSV: {e}") from e
    return records_from_rows(rows, id_factory)


def records_to_json(records: Iterable[Record]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)


def records_to_csv(records: Iterable[Record]) -> str:
    out = StringIO()
    writer = csv.DictWriter(out, fieldnames=RECORD_FIELDS, lineterminator="\n")
    writer.writeheader()
    for r in records:
        writer.writerow(r.to_dict())
    return out.getvalue()
