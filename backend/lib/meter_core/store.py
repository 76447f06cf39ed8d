# backend/lib/meter_core/store.py
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from . import reconciler
from .chronology import find_by_id
from .errors import ImportDocumentError, SyncError
from .gateway import PersistenceGateway
from .io import parse_records_csv, parse_records_json, records_to_csv, records_to_json
from .models import DEFAULT_YEARS, Preview, Record, SaveResult, Submission, SyncStatus
from .processor import ConsumptionAnalyzer

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Owns the in-memory record set and is its only write path.

    Every mutation builds a new list, swaps it in, then writes it to the
    local cache (if any) and the primary gateway. Gateway failures never
    roll back the in-memory state; they are reported through ``status``.

    Usage:
        store = RecordStore(SheetsService(url, token), cache=LocalFileGateway(path))
        store.load()
        result = store.submit(Submission(year=2024, month=2, householdState=150))
    """

    def __init__(
        self,
        primary: PersistenceGateway,
        cache: Optional[PersistenceGateway] = None,
        supported_years: Iterable[int] = DEFAULT_YEARS,
        id_factory: Callable[[], str] = reconciler.new_id,
    ):
        self.primary = primary
        self.cache = cache
        self.supported_years = tuple(supported_years)
        self.id_factory = id_factory
        self.status = SyncStatus(backend=primary.name, remote=cache is not None)
        self._records: List[Record] = []

    @property
    def records(self) -> List[Record]:
        return list(self._records)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> List[Record]:
        """
        Fetch the record set from the primary gateway, falling back to the
        local snapshot when it cannot be reached.
        """
        try:
            records = self.primary.load()
        except SyncError as e:
            logger.warning("Load from %s failed: %s", self.primary.name, e)
            if self.cache is None:
                self._records = []
                self._set_status([f"Could not load records, starting empty: {e.reason}"])
                return self.records
            self._records = self._load_cache()
            self._set_status([f"Remote store unavailable, using local copy: {e.reason}"])
            return self.records

        self._records = list(records)
        problems = []
        if self.cache is not None:
            try:
                self.cache.save(self._records)
            except SyncError as e:
                logger.warning("Could not refresh local cache: %s", e)
                problems.append(f"Local cache write failed: {e.reason}")
        self._set_status(problems)
        logger.info("Loaded %d records from %s", len(self._records), self.primary.name)
        return self.records

    def _load_cache(self) -> List[Record]:
        if self.cache is None:
            return []
        try:
            records = self.cache.load()
        except SyncError as e:
            logger.warning("Local cache unreadable: %s", e)
            return []
        logger.info("Loaded %d records from local cache", len(records))
        return records

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit(self, submission: Submission) -> SaveResult:
        reconciler.validate_period(submission.period, self.supported_years)
        records, result = reconciler.submit(self._records, submission, self.id_factory)
        self._commit(records)
        logger.info(
            "%s record %s for %s",
            "Merged" if result.merged else "Inserted",
            result.record.id,
            submission.period.label(),
        )
        return result

    def update(self, record_id: str, submission: Submission) -> Record:
        reconciler.validate_period(submission.period, self.supported_years)
        records, record = reconciler.update(self._records, record_id, submission)
        self._commit(records)
        logger.info("Updated record %s (%s)", record_id, submission.period.label())
        return record

    def delete(self, record_id: str) -> None:
        records = reconciler.delete(self._records, record_id)
        self._commit(records)
        logger.info("Deleted record %s", record_id)

    def replace_all(self, records: Sequence[Record]) -> List[Record]:
        """Wholesale replace (import/restore). No merge with current data."""
        self._commit(list(records))
        logger.info("Imported %d records", len(records))
        return self.records

    def import_document(self, text: str, fmt: str = "json") -> List[Record]:
        """
        Parse a JSON or CSV document and replace the record set with it.

        The document is fully validated first; a malformed one raises
        ImportDocumentError and leaves the current records untouched.
        """
        if fmt == "json":
            records = parse_records_json(text, self.id_factory)
        elif fmt == "csv":
            records = parse_records_csv(text, self.id_factory)
        else:
            raise ImportDocumentError(f"Unsupported format: {fmt}")
        return self.replace_all(records)

    def _commit(self, records: List[Record]) -> None:
        self._records = records
        problems = []
        if self.cache is not None:
            try:
                self.cache.save(records)
            except SyncError as e:
                logger.warning("Local cache write failed: %s", e)
                problems.append(f"Local cache write failed: {e.reason}")
        try:
            self.primary.save(records)
        except SyncError as e:
            logger.warning("Sync to %s failed: %s", self.primary.name, e)
            if self.cache is not None:
                problems.append(f"Saved locally, remote sync failed: {e.reason}")
            else:
                problems.append(f"Save failed: {e.reason}")
        self._set_status(problems)

    def _set_status(self, problems: List[str]) -> None:
        self.status = SyncStatus(
            backend=self.primary.name,
            remote=self.cache is not None,
            ok=not problems,
            message="; ".join(problems) or None,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> Optional[Record]:
        return find_by_id(self._records, record_id)

    def preview(self, submission: Submission, exclude_id: Optional[str] = None) -> Preview:
        return reconciler.preview(self._records, submission, exclude_id)

    def export(self, fmt: str = "json") -> str:
        if fmt == "csv":
            return records_to_csv(self._records)
        return records_to_json(self._records)

    def analyzer(self) -> ConsumptionAnalyzer:
        return ConsumptionAnalyzer(self._records)

    def table_view(self, year: Optional[int] = None) -> Dict:
        return self.analyzer().table_view(year)
