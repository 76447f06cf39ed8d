"""
=============================================================================
METER TRACKER - MAIN FLASK APPLICATION
=============================================================================
REST API for monthly meter readings of a household: the house meter, the
car charger meter and the water heater (bojler).

- Saving a period derives consumption from the previous cumulative reading
- A second save for the same month merges into the existing record
- Tables and chart series are computed on every request
- Records live in a Google Sheet (or DynamoDB) with a local snapshot as
  fallback when the remote store is unreachable

How to run:
    python -m backend.app

Then visit: http://127.0.0.1:5000/records
=============================================================================
"""

import logging
from datetime import date

from flask import Flask, Response, jsonify, request

from backend.config import Settings, build_backups, build_store
from backend.lib.meter_core.errors import (
    ImportDocumentError,
    PeriodConflictError,
    RecordNotFoundError,
    ValidationError,
)
from backend.lib.meter_core.io import parse_int, records_from_document, submission_from_dict
from backend.lib.meter_core.models import CONSUMPTION_FIELDS

logger = logging.getLogger(__name__)


def export_filename(fmt: str = "json", today: date = None) -> str:
    today = today or date.today()
    return f"spotreba_{today.isoformat()}.{fmt}"


def _request_data() -> dict:
    """JSON body if present, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# =============================================================================
# FLASK APPLICATION FACTORY
# =============================================================================

def create_app(store=None, backups=None, settings: Settings = None) -> Flask:
    """
    Build the Flask application around a RecordStore.

    Args:
        store: RecordStore to serve. Built from the environment when omitted
               and loaded immediately (with local fallback).
        backups: Optional S3Service for export backups.
        settings: Settings to build from; read from the environment if omitted.

    Returns:
        Flask: the configured application
    """
    if store is None:
        settings = settings or Settings.from_env()
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        store = build_store(settings)
        store.load()
        backups = backups or build_backups(settings)

    app = Flask(__name__)
    app.config["STORE"] = store
    app.config["BACKUPS"] = backups

    # -------------------------------------------------------------------------
    # ERROR HANDLERS
    # -------------------------------------------------------------------------
    # Sync problems never reach these: they are reported via /sync/status

    @app.errorhandler(ValidationError)
    @app.errorhandler(ImportDocumentError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(RecordNotFoundError)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(PeriodConflictError)
    def conflict(e):
        return jsonify({"error": str(e)}), 409

    # -------------------------------------------------------------------------
    # RECORDS
    # -------------------------------------------------------------------------

    @app.route("/records", methods=["GET"])
    def list_records():
        """
        Records in calendar order with column totals.

        Query Parameters:
            year (optional): only show this year

        Example Response:
            {
                "year": null,
                "years": [2023, 2024],
                "records": [{"id": "...", "year": 2024, "month": 1, ...}],
                "totals": {"household": 320, "car": 150, "bojler": 40, "total": 470}
            }
        """
        year = request.args.get("year")
        year = parse_int(year, "year") if year else None
        return jsonify(store.table_view(year))

    @app.route("/records", methods=["POST"])
    def save_record():
        """
        Save readings for a period; merges if the period already has a record.

        Request Body (JSON or form):
            {
                "year": 2024, "month": 2,
                "householdState": 150, "carState": "", "bojlerConsumption": 12,
                "householdConsumptionOverride": null, "carConsumptionOverride": null
            }

        HTTP Status Codes:
            201: Created - new record for the period
            200: OK - merged into the existing record
            400: Bad Request - invalid period or nothing to save
        """
        submission = submission_from_dict(_request_data())
        if submission.is_empty():
            return jsonify({"error": "Nothing to save: enter at least one value"}), 400
        result = store.submit(submission)
        return jsonify(result.to_dict()), 200 if result.merged else 201

    @app.route("/records/preview", methods=["POST"])
    def preview_record():
        """
        Consumption the save would produce, without saving.

        Request Body: same as POST /records, plus optional "editId" of the
        record being edited.
        """
        data = _request_data()
        submission = submission_from_dict(data)
        preview = store.preview(submission, exclude_id=data.get("editId") or None)
        return jsonify(preview.to_dict())

    @app.route("/records/<record_id>", methods=["PUT"])
    def update_record(record_id):
        """Replace every value of a record, including its period."""
        record = store.update(record_id, submission_from_dict(_request_data()))
        return jsonify({"record": record.to_dict()})

    @app.route("/records/<record_id>", methods=["DELETE"])
    def delete_record(record_id):
        store.delete(record_id)
        return jsonify({"deleted": record_id})

    # -------------------------------------------------------------------------
    # CHARTS
    # -------------------------------------------------------------------------

    @app.route("/charts/annual", methods=["GET"])
    def annual_chart():
        return jsonify({"data": store.analyzer().annual_totals()})

    @app.route("/charts/monthly", methods=["GET"])
    def monthly_chart():
        """
        Month-by-month comparison of the two most recent years.

        Query Parameters:
            field (optional): householdConsumption, carConsumption,
                bojlerConsumption or totalConsumption (default)

        Months without a record are null, not 0.
        """
        field = request.args.get("field", "totalConsumption")
        if field not in CONSUMPTION_FIELDS:
            return jsonify({"error": f"field must be one of {', '.join(CONSUMPTION_FIELDS)}"}), 400
        analyzer = store.analyzer()
        return jsonify({
            "field": field,
            "years": [str(y) for y in analyzer.years()[-2:]],
            "data": analyzer.monthly_comparison(field),
        })

    # -------------------------------------------------------------------------
    # IMPORT / EXPORT
    # -------------------------------------------------------------------------

    @app.route("/export", methods=["GET"])
    def export():
        fmt = request.args.get("format", "json").lower()
        if fmt not in ("json", "csv"):
            return jsonify({"error": "format must be 'json' or 'csv'"}), 400
        mimetype = "text/csv" if fmt == "csv" else "application/json"
        return Response(
            store.export(fmt),
            mimetype=mimetype,
            headers={"Content-Disposition": f"attachment; filename={export_filename(fmt)}"},
        )

    @app.route("/import", methods=["POST"])
    def import_records():
        """
        Replace all records with an uploaded document.

        Accepts an uploaded "file" (.json or .csv) or a JSON body (array of
        records or {"records": [...]}). A malformed document changes nothing.
        """
        if "file" in request.files:
            upload = request.files["file"]
            try:
                text = upload.read().decode("utf-8")
            except UnicodeDecodeError as e:
                raise ImportDocumentError(f"File is not UTF-8 text: {e}") from e
            fmt = "csv" if (upload.filename or "").lower().endswith(".csv") else "json"
            records = store.import_document(text, fmt)
        else:
            document = request.get_json(silent=True)
            if document is None:
                raise ImportDocumentError("Request body must be a JSON document")
            records = store.replace_all(records_from_document(document, store.id_factory))
        return jsonify({"imported": len(records), "sync": store.status.to_dict()})

    # -------------------------------------------------------------------------
    # SYNC STATUS
    # -------------------------------------------------------------------------

    @app.route("/sync/status", methods=["GET"])
    def sync_status():
        return jsonify(store.status.to_dict())

    @app.route("/sync/reload", methods=["POST"])
    def sync_reload():
        """Load again from the remote store (falls back to the local copy)."""
        records = store.load()
        return jsonify({"loaded": len(records), "sync": store.status.to_dict()})

    # -------------------------------------------------------------------------
    # S3 BACKUPS
    # -------------------------------------------------------------------------

    @app.route("/backups", methods=["GET"])
    def list_backups():
        if not backups:
            return jsonify({"error": "S3 backups not enabled"}), 400
        return jsonify({"backups": backups.list_backups(), "bucket": backups.bucket_name})

    @app.route("/backups", methods=["POST"])
    def create_backup():
        if not backups:
            return jsonify({"error": "S3 backups not enabled"}), 400
        key = backups.upload_backup(store.export("json").encode("utf-8"), export_filename("json"))
        if not key:
            return jsonify({"error": "Failed to upload backup"}), 500
        return jsonify({"key": key}), 201

    @app.route("/backups/restore", methods=["POST"])
    def restore_backup():
        """
        Request Body (JSON):
            {"key": "backups/20240229T183000Z_spotreba_2024-02-29.json"}
        """
        if not backups:
            return jsonify({"error": "S3 backups not enabled"}), 400
        data = request.get_json(silent=True) or {}
        key = data.get("key")
        if not key:
            return jsonify({"error": "key required"}), 400
        content = backups.download_backup(key)
        if content is None:
            return jsonify({"error": f"Backup {key} could not be downloaded"}), 404
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ImportDocumentError(f"Backup {key} is not UTF-8 text: {e}") from e
        records = store.import_document(text, "json")
        return jsonify({"restored": key, "imported": len(records)})

    return app


# =============================================================================
# RUN THE SERVER
# =============================================================================

if __name__ == "__main__":
    create_app().run(debug=True)
