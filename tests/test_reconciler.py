from backend.lib.meter_core import reconciler
from backend.lib.meter_core.errors import PeriodConflictError, RecordNotFoundError, ValidationError
from backend.lib.meter_core.io import submission_from_dict
from backend.lib.meter_core.models import Period, Record, Submission
import itertools
import pytest


def ids():
    counter = itertools.count(1)
    return lambda: f"r{next(counter)}"


def assert_invariants(records):
    periods = [(r.year, r.month) for r in records]
    assert len(periods) == len(set(periods))
    for r in records:
        assert r.totalConsumption == r.householdConsumption + r.carConsumption


def test_scenario_a_first_record_has_no_consumption():
    records, result = reconciler.submit([], Submission(2024, 1, householdState=100), ids())
    assert result.merged is False
    assert result.record.householdState == 100
    assert result.record.householdConsumption == 0
    assert result.record.totalConsumption == 0
    assert records == [result.record]


def test_scenario_b_new_period_derives_from_previous():
    jan = Record("jan", 2024, 1, householdState=100)
    records, result = reconciler.submit([jan], Submission(2024, 2, householdState=150), ids())
    assert result.merged is False
    assert result.record.householdConsumption == 50
    assert result.record.totalConsumption == 50
    assert len(records) == 2


def test_scenario_c_resubmitting_period_merges_in_place():
    jan = Record("jan", 2024, 1, householdState=100)
    feb = Record("feb", 2024, 2, householdState=150, householdConsumption=50, totalConsumption=50)
    records, result = reconciler.submit([jan, feb], Submission(2024, 2, householdState=180), ids())
    assert result.merged is True
    assert result.record.id == "feb"
    assert result.record.householdConsumption == 80
    assert records[0] is jan
    assert records[1] == result.record
    assert len(records) == 2
    assert_invariants(records)


def test_scenario_d_override_wins():
    jan = Record("jan", 2024, 1, householdState=100)
    _, result = reconciler.submit(
        [jan],
        Submission(2024, 2, householdState=999, householdConsumptionOverride=25),
        ids(),
    )
    assert result.record.householdConsumption == 25
    assert result.record.householdState == 999
    assert result.record.totalConsumption == 25


def test_merge_keeps_values_not_provided():
    jan = Record("jan", 2024, 1, householdState=100, carState=10)
    feb = Record("feb", 2024, 2, householdState=150, householdConsumption=50,
                 carState=40, carConsumption=30, bojlerConsumption=12, totalConsumption=80)
    _, result = reconciler.submit([jan, feb], Submission(2024, 2, carState=60), ids())
    r = result.record
    assert (r.householdState, r.householdConsumption) == (150, 50)
    assert (r.carState, r.carConsumption) == (60, 50)
    assert r.bojlerConsumption == 12
    assert r.totalConsumption == 100


def test_merge_ignores_non_finite_state():
    jan = Record("jan", 2024, 1, householdState=100)
    feb = Record("feb", 2024, 2, householdState=150, householdConsumption=50, totalConsumption=50)
    submission = submission_from_dict({"year": 2024, "month": 2, "householdState": "Infinity"})
    records, result = reconciler.submit([jan, feb], submission, ids())
    assert result.merged is True
    assert (result.record.householdState, result.record.householdConsumption) == (150, 50)
    assert_invariants(records)


def test_merge_explicit_zero_replaces_value():
    feb = Record("feb", 2024, 2, bojlerConsumption=12)
    _, result = reconciler.submit([feb], Submission(2024, 2, bojlerConsumption=0), ids())
    assert result.record.bojlerConsumption == 0


def test_insert_blank_values_are_zero():
    _, result = reconciler.submit([], Submission(2024, 5, bojlerConsumption=20), ids())
    r = result.record
    assert (r.householdState, r.carState, r.bojlerConsumption) == (0, 0, 20)
    assert r.totalConsumption == 0


def test_bojler_is_not_part_of_total():
    jan = Record("jan", 2024, 1, householdState=100, carState=10)
    _, result = reconciler.submit(
        [jan], Submission(2024, 2, householdState=110, carState=15, bojlerConsumption=40), ids()
    )
    assert result.record.totalConsumption == 15


def test_submit_is_idempotent():
    jan = Record("jan", 2024, 1, householdState=100)
    submission = Submission(2024, 2, householdState=150, bojlerConsumption=5)
    first, r1 = reconciler.submit([jan], submission, ids())
    second, r2 = reconciler.submit(first, submission, ids())
    assert r2.merged is True
    assert r1.record == r2.record
    assert first == second


def test_out_of_order_insert_uses_calendar_predecessor():
    records = [Record("mar", 2024, 3, householdState=300), Record("jan", 2024, 1, householdState=100)]
    records, result = reconciler.submit(records, Submission(2024, 2, householdState=180), ids())
    # earlier records are not re-derived
    assert result.record.householdConsumption == 80
    assert [r.id for r in records] == ["mar", "jan", "r1"]


def test_submit_does_not_mutate_input():
    jan = Record("jan", 2024, 1, householdState=100)
    existing = [jan]
    reconciler.submit(existing, Submission(2024, 1, householdState=120), ids())
    assert existing == [Record("jan", 2024, 1, householdState=100)]


def test_many_submissions_keep_invariants():
    records = []
    make_id = ids()
    for month, state in [(1, 100), (3, 160), (2, 130), (3, 170), (1, 90), (2, 140)]:
        records, _ = reconciler.submit(records, Submission(2024, month, householdState=state), make_id)
        assert_invariants(records)
    assert len(records) == 3


def test_update_changes_period_and_rederives():
    jan = Record("jan", 2024, 1, householdState=100)
    feb = Record("feb", 2024, 2, householdState=150, householdConsumption=50, totalConsumption=50)
    records, record = reconciler.update([jan, feb], "feb", Submission(2024, 4, householdState=190))
    assert record.id == "feb"
    assert (record.year, record.month) == (2024, 4)
    assert record.householdConsumption == 90
    assert_invariants(records)


def test_update_blank_values_become_zero():
    jan = Record("jan", 2024, 1, householdState=100, bojlerConsumption=9)
    _, record = reconciler.update([jan], "jan", Submission(2024, 1))
    assert record.householdState == 0
    assert record.bojlerConsumption == 0


def test_update_unknown_id():
    with pytest.raises(RecordNotFoundError):
        reconciler.update([], "nope", Submission(2024, 1))


def test_update_onto_occupied_period():
    jan = Record("jan", 2024, 1)
    feb = Record("feb", 2024, 2)
    with pytest.raises(PeriodConflictError):
        reconciler.update([jan, feb], "feb", Submission(2024, 1))


def test_delete():
    jan = Record("jan", 2024, 1)
    assert reconciler.delete([jan], "jan") == []
    with pytest.raises(RecordNotFoundError):
        reconciler.delete([jan], "feb")


def test_preview_reports_previous_readings_and_merge():
    jan = Record("jan", 2024, 1, householdState=100, carState=20)
    feb = Record("feb", 2024, 2, householdState=150)
    p = reconciler.preview([jan, feb], Submission(2024, 2, householdState=170, carState=None))
    assert (p.previousHousehold, p.previousCar) == (100, 20)
    assert (p.householdConsumption, p.carConsumption) == (70, 0)
    assert p.merge is True
    p = reconciler.preview([jan, feb], Submission(2024, 2, householdState=170), exclude_id="feb")
    assert p.merge is False
    p = reconciler.preview([jan], Submission(2024, 1, householdState=170))
    assert p.previousHousehold is None


def test_validate_period():
    reconciler.validate_period(Period(2024, 12))
    with pytest.raises(ValidationError):
        reconciler.validate_period(Period(2024, 0))
    with pytest.raises(ValidationError):
        reconciler.validate_period(Period(2019, 5))
    reconciler.validate_period(Period(2019, 5), supported_years=[2019])
