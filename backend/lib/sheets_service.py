"""
=============================================================================
SHEETS SERVICE - Google Sheets (Apps Script web app) Integration
=============================================================================
The spreadsheet holds one row per period with the header:

    id | year | month | householdState | householdConsumption |
    carState | carConsumption | bojlerConsumption | totalConsumption

It is exposed through an Apps Script web app deployed with
"Execute as: Me" and "Access: Anyone":

- GET  <url>?token=<token>          -> {"records": [...]}
- POST <url>  {"records": [...], "token": <token>}
                                     -> {"success": true}

POST replaces the sheet contents with the posted records, so every save
sends the full record set.
=============================================================================
"""

import logging
import os
from typing import List, Optional, Sequence

import requests

from backend.lib.meter_core.errors import ImportDocumentError, SyncError
from backend.lib.meter_core.io import is_blank_row, records_from_document
from backend.lib.meter_core.models import Record

logger = logging.getLogger(__name__)


class SheetsService:
    """
    Persistence gateway backed by a Google Sheets web app.

    Usage:
        sheets = SheetsService("https://script.google.com/macros/s/.../exec", "secret")
        records = sheets.load()
        sheets.save(records)
    """

    name = "sheets"

    def __init__(
        self,
        api_url: str = None,
        token: str = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            api_url: Web app deployment URL. Defaults to SHEETS_API_URL.
            token: Shared secret checked by the Apps Script. Defaults to SHEETS_TOKEN.
            timeout: Request timeout in seconds.
            session: Optional requests session (tests pass a fake one).
        """
        self.api_url = api_url or os.getenv("SHEETS_API_URL")
        if not self.api_url:
            raise ValueError("SHEETS_API_URL is not configured")
        self.token = token if token is not None else os.getenv("SHEETS_TOKEN", "")
        self.timeout = timeout
        self.session = session or requests.Session()

    def load(self) -> List[Record]:
        """
        Fetch every row of the sheet.

        Returns:
            list: Record objects in sheet order

        Raises:
            SyncError: network failure, HTTP error or an unreadable payload
        """
        payload = self._request("GET", params={"token": self.token})
        rows = payload.get("records")
        if isinstance(rows, list):
            rows = [row for row in rows if not is_blank_row(row)]
        try:
            records = records_from_document(rows)
        except ImportDocumentError as e:
            raise SyncError(self.name, f"unexpected sheet contents: {e}") from e
        logger.debug("Fetched %d records from sheet", len(records))
        return records

    def save(self, records: Sequence[Record]) -> None:
        """
        Replace the sheet contents with records.

        Raises:
            SyncError: network failure, HTTP error or a rejected write
        """
        body = {"records": [r.to_dict() for r in records], "token": self.token}
        payload = self._request("POST", json=body)
        if not payload.get("success"):
            raise SyncError(self.name, payload.get("error", "write was not acknowledged"))
        logger.debug("Wrote %d records to sheet", len(records))

    def _request(self, method: str, **kwargs) -> dict:
        try:
            response = self.session.request(
                method, self.api_url, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise SyncError(self.name, str(e)) from e
        except ValueError as e:
            # Apps Script answers with an HTML page on script errors
            raise SyncError(self.name, f"response is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise SyncError(self.name, "response is not a JSON object")
        if payload.get("error"):
            raise SyncError(self.name, str(payload["error"]))
        return payload
