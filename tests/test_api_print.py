import json

import pytest

from conftest import FakeSpooler, inline, sales_payload
from pos_printer import create_app
from pos_printer.core.errors import SpoolerUnavailable
from pos_printer.printing.spooler import PrinterInfo


def _post(client, path, payload=None, **kwargs):
    if payload is None:
        return client.post(path, **kwargs)
    return client.post(path, data=json.dumps(payload), headers={"Content-Type": "application/json"}, **kwargs)


def test_print_success(client, spooler):
    r = _post(client, "/print", {"type": "sales", "receipt": sales_payload()})
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body["success"] is True
    assert body["outcome"] == "printed"
    assert body["printerId"] == "Rongta"
    assert body["queued"] is False
    assert body["jobId"] == "Rongta-1"
    assert "timestamp" in body
    assert spooler.titles == ["sales-A-1001"]


def test_print_type_defaults_to_sales(client, spooler):
    r = _post(client, "/print", {"receipt": sales_payload("X-9")})
    assert r.status_code == 200
    assert spooler.titles == ["sales-X-9"]


def test_print_offline_is_queued(client, spooler):
    spooler.set_status("Rongta", "offline")
    r = _post(client, "/print", {"type": "sales", "receipt": sales_payload()})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is False
    assert body["queued"] is True
    assert body["position"] == 1
    assert body["printerId"] == "Rongta"
    assert body["message"] == "Printer offline, queued for printing. Queue position: 1"

    q = client.get("/queue").get_json()
    assert q["queueLength"] == 1
    assert q["maxQueueSize"] == 10
    assert q["jobs"][0]["documentId"] == "A-1001"


def test_print_missing_receipt(client):
    r = _post(client, "/print", {"type": "sales"})
    assert r.status_code == 400
    body = r.get_json()
    assert body["success"] is False
    assert body["outcome"] == "validation_error"
    assert body["error"] == "Missing receipt data"


def test_print_non_json_body(client):
    r = client.post("/print", data="hello", headers={"Content-Type": "text/plain"})
    assert r.status_code == 400


def test_print_invalid_receipt_lists_fields(client, spooler):
    data = sales_payload()
    del data["orderNumber"]
    data["total"] = "lots"
    r = _post(client, "/print", {"type": "sales", "receipt": data})
    assert r.status_code == 400
    error = r.get_json()["error"]
    assert error.startswith("Invalid receipt data: ")
    assert "orderNumber" in error
    assert "total" in error
    assert spooler.submitted == []


def test_print_unknown_type_falls_back_to_sales(client, spooler):
    r = _post(client, "/print", {"type": "loyalty_voucher", "receipt": sales_payload()})
    assert r.status_code == 200
    assert spooler.titles == ["loyalty_voucher-A-1001"]


def test_print_to_named_printer(client, spooler):
    spooler.add_printer(PrinterInfo("Bar", model="TM-T20"))
    r = _post(client, "/print", {"receipt": sales_payload(), "printerName": "Bar"})
    assert r.get_json()["printerId"] == "Bar"
    assert spooler.submitted[0][1] == "Bar"


def test_print_unknown_printer_is_500(client, spooler):
    r = _post(client, "/print", {"receipt": sales_payload(), "printerName": "Kitchen"})
    assert r.status_code == 500
    body = r.get_json()
    assert body["outcome"] == "printer_not_found"
    assert body["availablePrinters"] == ["Rongta"]
    assert client.get("/queue").get_json()["queueLength"] == 0


def test_print_without_printers_is_500():
    app = create_app(spooler=FakeSpooler([]), register_worker=False, run_async=inline)
    r = _post(app.test_client(), "/print", {"receipt": sales_payload()})
    assert r.status_code == 500
    body = r.get_json()
    assert body["outcome"] == "no_printers_available"
    assert body["error"] == "No printers available"


def test_print_queue_full_is_500(spooler):
    app = create_app(
        config_overrides={"TESTING": True, "queue": {"max_size": 1}},
        spooler=spooler,
        register_worker=False,
        run_async=inline,
    )
    client = app.test_client()
    spooler.set_status("Rongta", "offline")
    assert _post(client, "/print", {"receipt": sales_payload("Q-1")}).status_code == 200
    r = _post(client, "/print", {"receipt": sales_payload("Q-2")})
    assert r.status_code == 500
    assert r.get_json()["outcome"] == "queue_full"


def test_print_failure_is_500(client, spooler):
    spooler.fail_with = "lp: printer jammed"
    r = _post(client, "/print", {"receipt": sales_payload()})
    assert r.status_code == 500
    body = r.get_json()
    assert body["outcome"] == "print_failed"
    assert body["printerId"] == "Rongta"
    assert "printer jammed" in body["error"]
    assert client.get("/queue").get_json()["queueLength"] == 0


def test_preview(client, spooler):
    r = _post(client, "/preview", {"type": "sales", "receipt": sales_payload()})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["type"] == "sales"
    assert body["preview"].startswith("[INIT][NORMAL]")
    assert "INIT (ESC @)" in body["escPosCodes"]
    assert body["rawLength"] > 0
    assert spooler.submitted == []


def test_preview_validation_error(client):
    r = _post(client, "/preview", {"type": "cash_transfer", "receipt": {"transferId": "T-1"}})
    assert r.status_code == 400
    assert "senderName" in r.get_json()["error"]


@pytest.mark.parametrize(
    "path,title",
    [
        ("/test-print", "sales-TEST-001"),
        ("/test-transfer", "cash_transfer-TEST-TRANS-001"),
        ("/test-shift-closure", "shift_closure-TEST-SHIFT-001"),
        ("/test-shift-handoff", "shift_handoff-TEST-HAND-001"),
        ("/test-cash-expense", "cash_expense-TEST-CASH-001"),
    ],
)
def test_sample_endpoints(client, spooler, path, title):
    r = client.post(path)
    assert r.status_code == 200, r.get_data(as_text=True)
    assert r.get_json()["success"] is True
    assert spooler.titles == [title]


def test_sample_endpoint_with_printer_name(client, spooler):
    spooler.add_printer(PrinterInfo("Bar"))
    r = _post(client, "/test-transfer", {"printerName": "Bar"})
    assert r.get_json()["printerId"] == "Bar"


def test_request_id_is_echoed(client):
    r = _post(client, "/print", {"receipt": sales_payload()}, environ_base={"HTTP_X_REQUEST_ID": "pos-42"})
    assert r.headers["X-Request-ID"] == "pos-42"
    generated = client.get("/status").headers["X-Request-ID"]
    assert len(generated) == 32


def test_create_app_fails_without_spooler():
    class _Down(FakeSpooler):
        def initialize(self):
            raise SpoolerUnavailable("CUPS scheduler is not running")

    with pytest.raises(SpoolerUnavailable):
        create_app(spooler=_Down([]), register_worker=False)
