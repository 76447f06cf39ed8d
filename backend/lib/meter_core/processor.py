# backend/lib/meter_core/processor.py
from collections import defaultdict
from typing import Dict, List, Optional, Sequence
from .chronology import sort_records
from .models import CONSUMPTION_FIELDS, MONTH_NAMES_CZ, Record, clean_number


class ConsumptionAnalyzer:
    def __init__(self, records: Sequence[Record]):
        # Stored order is insertion order; views always sort on demand
        self.records = list(records)

    def years(self) -> List[int]:
        return sorted({r.year for r in self.records})

    def annual_totals(self) -> List[Dict]:
        """
        Household, car and bojler consumption summed per year, oldest first.
        """
        totals = defaultdict(lambda: {"household": 0.0, "car": 0.0, "bojler": 0.0})
        for r in self.records:
            year = totals[r.year]
            year["household"] += r.householdConsumption
            year["car"] += r.carConsumption
            year["bojler"] += r.bojlerConsumption
        return [
            {"year": y, **{k: clean_number(v) for k, v in totals[y].items()}}
            for y in sorted(totals)
        ]

    def monthly_comparison(self, field: str = "totalConsumption") -> List[Dict]:
        """
        Twelve rows (January..December) comparing field across the two most
        recent years in the data.

        Each row carries one key per year (as a string). A month without a
        record maps to None so charts can skip the gap instead of drawing 0.
        """
        if field not in CONSUMPTION_FIELDS:
            raise ValueError(f"Unknown consumption field: {field}")
        years = self.years()[-2:]
        by_period = {(r.year, r.month): r for r in self.records}
        rows = []
        for month, name in enumerate(MONTH_NAMES_CZ, start=1):
            row = {"month": month, "label": name[:3]}
            for y in years:
                record = by_period.get((y, month))
                row[str(y)] = clean_number(getattr(record, field)) if record else None
            rows.append(row)
        return rows

    def table_view(self, year: Optional[int] = None) -> Dict:
        """
        Sorted rows (optionally for one year) with column totals.
        """
        rows = sort_records(
            r for r in self.records if year is None or r.year == year
        )
        totals = {
            "household": sum(r.householdConsumption for r in rows),
            "car": sum(r.carConsumption for r in rows),
            "bojler": sum(r.bojlerConsumption for r in rows),
            "total": sum(r.totalConsumption for r in rows),
        }
        return {
            "year": year,
            "years": self.years(),
            "records": [r.to_dict() for r in rows],
            "totals": {k: clean_number(float(v)) for k, v in totals.items()},
        }


def annual_totals(records: Sequence[Record]) -> List[Dict]:
    return ConsumptionAnalyzer(records).annual_totals()


def monthly_comparison(records: Sequence[Record], field: str) -> List[Dict]:
    return ConsumptionAnalyzer(records).monthly_comparison(field)
