"""
Runtime configuration, read from environment variables (and a .env file).

    STORAGE_BACKEND   sheets | dynamodb | local   (default: local)
    SHEETS_API_URL    Apps Script web app URL
    SHEETS_TOKEN      shared secret checked by the web app
    SHEETS_TIMEOUT    request timeout in seconds (default: 15)
    USE_S3_BACKUPS    true | false
    LOCAL_DATA_DIR    directory of the local snapshot (default: backend/data)
    SUPPORTED_YEARS   "2023-2030" or "2023,2024,2025"
    LOG_LEVEL         logging level name (default: INFO)

DYNAMODB_TABLE_NAME, S3_BUCKET_NAME and the AWS_* variables are read by the
AWS services themselves.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from backend.lib.meter_core.gateway import LocalFileGateway
from backend.lib.meter_core.models import DEFAULT_YEARS
from backend.lib.meter_core.store import RecordStore

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "records.jsonl"


def parse_years(text: Optional[str]) -> Tuple[int, ...]:
    """
    "2023-2030" -> (2023, ..., 2030); "2023,2025" -> (2023, 2025).
    Falls back to the default range when unset or unreadable.
    """
    if not text or not text.strip():
        return DEFAULT_YEARS
    try:
        if "-" in text:
            start, end = (int(part) for part in text.split("-", 1))
            years = tuple(range(start, end + 1))
        else:
            years = tuple(sorted(int(part) for part in text.split(",") if part.strip()))
    except ValueError:
        logger.warning("Invalid SUPPORTED_YEARS %r, using %d-%d", text, DEFAULT_YEARS[0], DEFAULT_YEARS[-1])
        return DEFAULT_YEARS
    return years or DEFAULT_YEARS


def _env_flag(name: str) -> bool:
    return os.getenv(name, 'false').lower() == 'true'


@dataclass
class Settings:
    storage_backend: str = "local"
    sheets_api_url: Optional[str] = None
    sheets_token: str = ""
    sheets_timeout: float = 15.0
    use_s3_backups: bool = False
    data_dir: Path = Path("backend/data")
    supported_years: Tuple[int, ...] = field(default=DEFAULT_YEARS)
    log_level: str = "INFO"

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / SNAPSHOT_FILENAME

    @classmethod
    def from_env(cls) -> "Settings":
        # Keep secrets like SHEETS_TOKEN out of the code
        load_dotenv()
        try:
            timeout = float(os.getenv('SHEETS_TIMEOUT', '15'))
        except ValueError:
            timeout = 15.0
        return cls(
            storage_backend=os.getenv('STORAGE_BACKEND', 'local').lower(),
            sheets_api_url=os.getenv('SHEETS_API_URL') or None,
            sheets_token=os.getenv('SHEETS_TOKEN', ''),
            sheets_timeout=timeout,
            use_s3_backups=_env_flag('USE_S3_BACKUPS'),
            data_dir=Path(os.getenv('LOCAL_DATA_DIR', 'backend/data')),
            supported_years=parse_years(os.getenv('SUPPORTED_YEARS')),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


def build_remote(settings: Settings):
    """
    The configured remote gateway, or None for local-only storage.

    A remote that fails to initialise is logged and skipped so the service
    still starts on the local snapshot.
    """
    backend = settings.storage_backend
    if backend == "sheets":
        if not settings.sheets_api_url:
            logger.warning("STORAGE_BACKEND=sheets but SHEETS_API_URL is empty. Using local storage.")
            return None
        from backend.lib.sheets_service import SheetsService
        return SheetsService(settings.sheets_api_url, settings.sheets_token, settings.sheets_timeout)

    if backend == "dynamodb":
        try:
            from backend.lib.dynamodb_service import DynamoDBService
            service = DynamoDBService()
            if not service.create_table_if_not_exists():
                raise RuntimeError(f"table {service.table_name} is not available")
        except Exception as e:
            logger.warning("DynamoDB initialization failed: %s. Using local storage.", e)
            return None
        return service

    if backend != "local":
        logger.warning("Unknown STORAGE_BACKEND %r. Using local storage.", backend)
    return None


def build_store(settings: Settings) -> RecordStore:
    """
    RecordStore wired for settings: the remote (if any) as primary with
    the local snapshot as cache, or the local snapshot alone.
    """
    local = LocalFileGateway(settings.snapshot_path)
    remote = build_remote(settings)
    if remote is None:
        return RecordStore(local, supported_years=settings.supported_years)
    return RecordStore(remote, cache=local, supported_years=settings.supported_years)


def build_backups(settings: Settings):
    """S3Service for export backups, or None when disabled or unavailable."""
    if not settings.use_s3_backups:
        return None
    try:
        from backend.lib.s3_service import S3Service
        s3 = S3Service()
        s3.create_bucket_if_not_exists()
    except Exception as e:
        logger.warning("S3 initialization failed: %s. Backups disabled.", e)
        return None
    logger.info("S3 backups enabled")
    return s3
