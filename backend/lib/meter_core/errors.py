# backend/lib/meter_core/errors.py
class MeterTrackerError(Exception):
    """Base class for all meter tracker errors."""


class SyncError(MeterTrackerError):
    """Raised when a persistence gateway cannot load or save the record set."""

    def __init__(self, backend, reason):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend}: {reason}")


class ImportDocumentError(MeterTrackerError):
    """Raised when an import document cannot be turned into a record set."""


class ValidationError(MeterTrackerError):
    """Raised when a submission targets an unsupported year or an invalid month."""


class RecordNotFoundError(MeterTrackerError):
    """Raised when no record exists for the given id."""

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found")


class PeriodConflictError(MeterTrackerError):
    """Raised when an update would place two records in the same period."""

    def __init__(self, period, owner_id):
        self.period = period
        self.owner_id = owner_id
        super().__init__(
            f"Period {period.year}-{period.month:02d} already belongs to record {owner_id}"
        )
