# backend/run_local.py
"""
Print a summary of an exported document:

    python -m backend.run_local spotreba_2024-12-31.json
"""
from backend.lib.meter_core.io import parse_records_csv, parse_records_json
from backend.lib.meter_core.models import MONTH_NAMES_CZ
from backend.lib.meter_core.processor import ConsumptionAnalyzer
import sys
from pathlib import Path


def load(path):
    text = Path(path).read_text(encoding="utf-8")
    if str(path).lower().endswith(".csv"):
        return parse_records_csv(text)
    return parse_records_json(text)


def main(path):
    records = load(path)
    analyzer = ConsumptionAnalyzer(records)
    table = analyzer.table_view()
    print(f"Parsed {len(records)} records:")
    for r in table["records"]:
        print(
            f" - {MONTH_NAMES_CZ[r['month'] - 1]:<9} {r['year']}: "
            f"house {r['householdConsumption']} kWh, car {r['carConsumption']} kWh, "
            f"bojler {r['bojlerConsumption']} kWh, total {r['totalConsumption']} kWh"
        )
    print("Annual totals:")
    for row in analyzer.annual_totals():
        print(f" - {row['year']}: house {row['household']}, car {row['car']}, bojler {row['bojler']}")


if __name__ == "__main__":
    doc = sys.argv[1] if len(sys.argv) > 1 else "tests/sample.json"
    main(doc)
