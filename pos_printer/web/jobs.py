from __future__ import annotations

"""
Spooler job endpoints for the POS Printer service.

This blueprint exposes:
- GET /jobs/<job_id>: Spooler status for a submitted job (404 if unknown)
- POST /jobs/<job_id>/cancel: Ask the spooler to cancel a job
"""

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from pos_printer.core.errors import SpoolerError
from pos_printer.printing.spooler import SpoolerAdapter

jobs_bp = Blueprint("jobs", __name__)


def _spooler() -> SpoolerAdapter:
    return current_app.extensions["pos_printer"]["spooler"]


def _spooler_error(e: SpoolerError):
    return (
        jsonify(
            {
                "success": False,
                "outcome": "spooler_error",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        ),
        502,
    )


@jobs_bp.get("/jobs/<job_id>")
def job_status(job_id: str):
    try:
        status = _spooler().job_status(job_id)
    except SpoolerError as e:
        current_app.logger.error("GET /jobs/%s failed: %s", job_id, e)
        return _spooler_error(e)
    if status == "unknown":
        current_app.logger.info("GET /jobs/%s not found", job_id)
        return {"error": "not_found"}, 404
    current_app.logger.info("GET /jobs/%s ok status=%s", job_id, status)
    return {"jobId": job_id, "status": status}


@jobs_bp.post("/jobs/<job_id>/cancel")
def cancel_job(job_id: str):
    try:
        cancelled = _spooler().cancel_job(job_id)
    except SpoolerError as e:
        current_app.logger.error("Cancel job %s failed: %s", job_id, e)
        return _spooler_error(e)
    if not cancelled:
        return {"success": False, "jobId": job_id, "error": "Job could not be cancelled"}, 409
    return {"success": True, "jobId": job_id, "message": f"Job {job_id} cancelled"}
