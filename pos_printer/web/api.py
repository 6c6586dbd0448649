from __future__ import annotations

"""
Print API for the POS Printer service.

Endpoints:
- POST /print               : Print a receipt now, or queue it if the printer is offline
- POST /preview             : Render a receipt without printing (transcript + codes)
- POST /test-print          : Print the sample sales receipt
- POST /test-transfer       : Print the sample cash transfer receipt
- POST /test-shift-closure  : Print the sample shift closure receipt
- POST /test-shift-handoff  : Print the sample shift handoff receipt
- POST /test-cash-expense   : Print the sample cash expense receipt

Payload shape (POST /print, POST /preview):
{
  "type": "sales|cash_transfer|shift_closure|shift_handoff|cash_expense",
  "receipt": {...fields for the type...},
  "printerName": "optional printer name"
}

Print service errors (no printers, unknown printer, full queue, failed
submission) are raised to the app-level handler, which answers with the
error's own HTTP status.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from pos_printer.printing.manager import PrintJobManager
from pos_printer.receipts.models import ReceiptType, parse_receipt
from pos_printer.receipts.samples import build_sample
from . import schemas

api_bp = Blueprint("api", __name__)


def _manager() -> PrintJobManager:
    return current_app.extensions["pos_printer"]["manager"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_error(msg: str, code: int = 400, outcome: str = "validation_error"):
    return jsonify({"success": False, "outcome": outcome, "error": msg, "timestamp": _now_iso()}), code


def _read_print_request():
    """
    Parse and validate the print/preview envelope and its receipt.
    Returns (request_model, type_tag, document) or an error response.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, _json_error("Expected a JSON object body with 'type' and 'receipt'")
    if data.get("receipt") is None:
        return None, _json_error("Missing receipt data")
    try:
        req = schemas.PrintRequest.model_validate(data)
    except ValidationError as e:
        return None, _json_error(schemas.format_validation_error("Invalid request", e))
    try:
        tag, document = parse_receipt(req.type, req.receipt)
    except ValidationError as e:
        current_app.logger.warning("Receipt validation failed type=%s errors=%d", req.type, e.error_count())
        return None, _json_error(schemas.format_validation_error("Invalid receipt data", e))
    return (req, tag, document), None


@api_bp.post("/print")
def print_receipt():
    """
    Validate the receipt and hand it to the job manager.
    Returns 200 for both printed and queued outcomes.
    """
    parsed, error = _read_print_request()
    if error is not None:
        return error
    req, tag, document = parsed
    current_app.logger.info(
        "Print request type=%s document=%s printer=%s", tag, document.document_id, req.printer_name or "-"
    )
    outcome = _manager().submit_print(document, tag, req.printer_name)
    body = schemas.PrintResponse.model_validate(outcome.to_dict())
    return jsonify(body.model_dump(by_alias=True, exclude_none=True)), 200


@api_bp.post("/preview")
def preview_receipt():
    parsed, error = _read_print_request()
    if error is not None:
        return error
    _, tag, document = parsed
    preview = _manager().preview_print(document, tag)
    body = schemas.PreviewResponse.model_validate({**preview.to_dict(), "timestamp": _now_iso()})
    return jsonify(body.model_dump(by_alias=True)), 200


def _print_sample(receipt_type: ReceiptType):
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return _json_error("Expected a JSON object body")
    try:
        req = schemas.SamplePrintRequest.model_validate(data)
    except ValidationError as e:
        return _json_error(schemas.format_validation_error("Invalid request", e))
    printer_name: Optional[str] = req.printer_name
    document = build_sample(receipt_type)
    current_app.logger.info("Test print type=%s printer=%s", receipt_type.value, printer_name or "-")
    outcome = _manager().submit_print(document, receipt_type.value, printer_name)
    body = schemas.PrintResponse.model_validate(outcome.to_dict())
    return jsonify(body.model_dump(by_alias=True, exclude_none=True)), 200


@api_bp.post("/test-print")
def test_print():
    return _print_sample(ReceiptType.SALES)


@api_bp.post("/test-transfer")
def test_transfer():
    return _print_sample(ReceiptType.CASH_TRANSFER)


@api_bp.post("/test-shift-closure")
def test_shift_closure():
    return _print_sample(ReceiptType.SHIFT_CLOSURE)


@api_bp.post("/test-shift-handoff")
def test_shift_handoff():
    return _print_sample(ReceiptType.SHIFT_HANDOFF)


@api_bp.post("/test-cash-expense")
def test_cash_expense():
    return _print_sample(ReceiptType.CASH_EXPENSE)
