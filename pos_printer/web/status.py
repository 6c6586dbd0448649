from __future__ import annotations

"""
Status endpoints for the POS Printer service.

This blueprint exposes:
- GET /         : Service info and endpoint map
- GET /status   : Printers, uptime, queue length/capacity, last print time
- GET /printers : Fresh printer listing from the spooler
- GET /queue    : Pending (offline-queued) jobs in FIFO order
- GET /healthz  : "ok" or "degraded" summary for monitoring
"""

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify

from pos_printer.core.errors import SpoolerError
from pos_printer.printing.manager import PrintJobManager

status_bp = Blueprint("status", __name__)

SERVICE_NAME = "POS Printer Service"

ENDPOINTS = {
    "print": "POST /print",
    "preview": "POST /preview",
    "status": "GET /status",
    "printers": "GET /printers",
    "queue": "GET /queue",
    "health": "GET /healthz",
    "jobStatus": "GET /jobs/<job_id>",
    "jobCancel": "POST /jobs/<job_id>/cancel",
    "testPrint": "POST /test-print",
    "testTransfer": "POST /test-transfer",
    "testShiftClosure": "POST /test-shift-closure",
    "testShiftHandoff": "POST /test-shift-handoff",
    "testCashExpense": "POST /test-cash-expense",
}


def _manager() -> PrintJobManager:
    return current_app.extensions["pos_printer"]["manager"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def service_version() -> str:
    try:
        return version("pos-printer-service")
    except PackageNotFoundError:
        return "0.0.0"


@status_bp.get("/")
def index():
    status = _manager().get_status()
    return jsonify(
        {
            "service": SERVICE_NAME,
            "version": service_version(),
            "status": "running",
            "uptime": round(status.uptime_seconds, 3),
            "endpoints": ENDPOINTS,
            "timestamp": _now_iso(),
        }
    )


@status_bp.get("/status")
def service_status():
    return jsonify(_manager().get_status().to_dict())


@status_bp.get("/printers")
def printers():
    try:
        found = _manager().spooler.list_printers(refresh=True)
    except SpoolerError as e:
        current_app.logger.error("Printer listing failed: %s", e)
        return jsonify({"success": False, "outcome": "spooler_error", "error": str(e), "timestamp": _now_iso()}), 503
    return jsonify({"printers": [p.to_dict() for p in found], "timestamp": _now_iso()})


@status_bp.get("/queue")
def queue():
    manager = _manager()
    jobs = manager.queued_jobs()
    return jsonify(
        {
            "queueLength": len(jobs),
            "maxQueueSize": manager.capacity,
            "draining": manager.draining,
            "jobs": jobs,
            "timestamp": _now_iso(),
        }
    )


@status_bp.get("/healthz")
def healthz():
    manager = _manager()
    snapshot = manager.get_status()
    status: Dict[str, Any] = {
        "status": "ok",
        "printers_total": len(snapshot.printers),
        "printers_online": sum(1 for p in snapshot.printers if p.is_online),
        "queue_length": snapshot.queue_length,
        "refresher_running": snapshot.refresher_running,
        "spooler_refreshed_at": manager.spooler.refreshed_at,
    }
    if status["printers_online"] == 0:
        status["status"] = "degraded"
        status["reason"] = "no_printer_online"
    elif snapshot.queue_length:
        status["status"] = "degraded"
        status["reason"] = "jobs_pending"
    return status, 200
