from backend.lib.dynamodb_service import DynamoDBService
from backend.lib.meter_core.errors import SyncError
from backend.lib.meter_core.models import Record
from backend.lib.sheets_service import SheetsService
from botocore.exceptions import ClientError
from decimal import Decimal
import pytest
import requests


class FakeResponse:
    def __init__(self, payload=None, status=200, text_only=False):
        self.payload = payload
        self.status = status
        self.text_only = text_only

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Error")

    def json(self):
        if self.text_only:
            raise ValueError("Expecting value")
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def make_sheets(session):
    return SheetsService("https://sheets.example/exec", "secret", timeout=5, session=session)


def test_sheets_load_sends_token_and_reads_blank_cells():
    session = FakeSession(FakeResponse({"records": [
        {"id": "a", "year": 2024, "month": 1, "householdState": 100,
         "householdConsumption": "", "carState": "", "carConsumption": "",
         "bojlerConsumption": 3, "totalConsumption": ""},
    ]}))
    records = make_sheets(session).load()
    assert records == [Record("a", 2024, 1, householdState=100, bojlerConsumption=3)]
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert kwargs["params"] == {"token": "secret"}
    assert kwargs["timeout"] == 5


def test_sheets_load_skips_cleared_rows():
    blank = {"id": "", "year": "", "month": "", "householdState": "", "householdConsumption": "",
             "carState": "", "carConsumption": "", "bojlerConsumption": "", "totalConsumption": ""}
    session = FakeSession(FakeResponse({"records": [
        {"id": "a", "year": 2024, "month": 1, "householdState": 100},
        blank,
        {"id": "b", "year": 2024, "month": 2, "householdState": 150},
        dict(blank),
    ]}))
    records = make_sheets(session).load()
    assert [r.id for r in records] == ["a", "b"]


def test_sheets_save_posts_full_set():
    session = FakeSession(FakeResponse({"success": True}))
    make_sheets(session).save([Record("a", 2024, 1, householdState=100)])
    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"]["token"] == "secret"
    assert kwargs["json"]["records"][0]["householdState"] == 100
    assert list(kwargs["json"]["records"][0]) == [
        "id", "year", "month", "householdState", "householdConsumption",
        "carState", "carConsumption", "bojlerConsumption", "totalConsumption",
    ]


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.ConnectionError("no route")),
    FakeSession(FakeResponse(status=500)),
    FakeSession(FakeResponse(text_only=True)),
    FakeSession(FakeResponse({"error": "bad token"})),
    FakeSession(FakeResponse(["not", "an", "object"])),
])
def test_sheets_failures_raise_sync_error(session):
    with pytest.raises(SyncError):
        make_sheets(session).load()


def test_sheets_unacknowledged_save():
    with pytest.raises(SyncError):
        make_sheets(FakeSession(FakeResponse({}))).save([])


def test_sheets_invalid_contents():
    session = FakeSession(FakeResponse({"records": [{"id": "a", "year": 2024, "month": 0}]}))
    with pytest.raises(SyncError):
        make_sheets(session).load()


def test_sheets_requires_url(monkeypatch):
    monkeypatch.delenv("SHEETS_API_URL", raising=False)
    with pytest.raises(ValueError):
        SheetsService()


class FakeBatchWriter:
    def __init__(self, table):
        self.table = table

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def put_item(self, Item):
        self.table.items[Item["id"]] = Item

    def delete_item(self, Key):
        self.table.items.pop(Key["id"], None)


class FakeTable:
    """Scans return one item per page to exercise pagination."""

    def __init__(self, items=None, error=None):
        self.items = {item["id"]: item for item in (items or [])}
        self.error = error

    def scan(self, ExclusiveStartKey=None, ProjectionExpression=None):
        if self.error:
            raise self.error
        keys = sorted(self.items)
        start = keys.index(ExclusiveStartKey["id"]) + 1 if ExclusiveStartKey else 0
        page = keys[start:start + 1]
        items = [self.items[k] for k in page]
        if ProjectionExpression:
            items = [{"id": item["id"]} for item in items]
        response = {"Items": items}
        if start + 1 < len(keys):
            response["LastEvaluatedKey"] = {"id": page[-1]}
        return response

    def batch_writer(self):
        return FakeBatchWriter(self)


def make_dynamodb(table, monkeypatch):
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    service = DynamoDBService(table_name="TestRecords")
    service.table = table
    return service


def test_dynamodb_load_paginates_and_converts_decimals(monkeypatch):
    table = FakeTable([
        {"id": "a", "year": Decimal("2024"), "month": Decimal("1"), "householdState": Decimal("100.5")},
        {"id": "b", "year": Decimal("2024"), "month": Decimal("2"), "householdState": Decimal("150")},
    ])
    records = make_dynamodb(table, monkeypatch).load()
    assert [r.id for r in records] == ["a", "b"]
    assert records[0].householdState == 100.5
    assert isinstance(records[1].year, int)


def test_dynamodb_save_upserts_and_removes_stale(monkeypatch):
    table = FakeTable([{"id": "old", "year": Decimal("2023"), "month": Decimal("1")}])
    service = make_dynamodb(table, monkeypatch)
    service.save([Record("a", 2024, 1, householdState=100, bojlerConsumption=2.5)])
    assert set(table.items) == {"a"}
    assert table.items["a"]["householdState"] == Decimal("100")
    assert table.items["a"]["bojlerConsumption"] == Decimal("2.5")
    assert "updated_at" in table.items["a"]


def test_dynamodb_errors_raise_sync_error(monkeypatch):
    error = ClientError({"Error": {"Code": "ResourceNotFoundException", "Message": "gone"}}, "Scan")
    service = make_dynamodb(FakeTable(error=error), monkeypatch)
    with pytest.raises(SyncError):
        service.load()
    with pytest.raises(SyncError):
        service.save([])
