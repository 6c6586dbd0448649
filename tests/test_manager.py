import threading
import time

import pytest

from conftest import FakeSpooler, inline, sales_payload
from pos_printer.core.errors import NoPrintersAvailable, PrinterNotFound, PrintFailed, QueueFull, SpoolerError
from pos_printer.printing.manager import PRINTED, QUEUED, PrintJobManager
from pos_printer.printing.render import ReceiptRenderer
from pos_printer.printing.spooler import PrinterInfo
from pos_printer.receipts.models import parse_receipt


def _doc(order_number="A-1001", total=27.67):
    return parse_receipt("sales", sales_payload(order_number, total))[1]


def _manager(spooler, capacity=10):
    return PrintJobManager(spooler, ReceiptRenderer(), capacity=capacity, run_async=inline)


def test_prints_immediately_when_online(manager, spooler):
    outcome = manager.submit_print(_doc(), "sales")
    assert outcome.kind == PRINTED
    assert outcome.printer_name == "Rongta"
    assert outcome.job_id == "Rongta-1"
    assert spooler.titles == ["sales-A-1001"]
    assert spooler.submitted[0][2].startswith(b"\x1b@")
    body = outcome.to_dict()
    assert body["success"] is True
    assert body["queued"] is False
    assert body["printerId"] == "Rongta"
    assert body["message"] == "Receipt printed successfully on Rongta"
    assert manager.get_status().last_print_time == outcome.timestamp


def test_rongta_offline_then_recovers(manager, spooler):
    spooler.set_status("Rongta", "offline")
    outcome = manager.submit_print(_doc(total=27.67), "sales")
    assert outcome.kind == QUEUED
    assert outcome.position == 1
    body = outcome.to_dict()
    assert body["success"] is False
    assert body["queued"] is True
    assert body["message"] == "Printer offline, queued for printing. Queue position: 1"
    assert manager.queue_length == 1
    assert spooler.submitted == []

    spooler.set_status("Rongta", "online")
    manager.refresh_tick()
    assert manager.queue_length == 0
    assert spooler.titles == ["sales-A-1001"]
    assert spooler.submitted[0][1] == "Rongta"
    assert manager.get_status().last_print_time is not None


def test_no_printers_regardless_of_document():
    mgr = _manager(FakeSpooler([]))
    with pytest.raises(NoPrintersAvailable):
        mgr.submit_print({"not": "a receipt"}, "sales")
    assert mgr.queue_length == 0


def test_requested_printer_must_exist(manager, spooler):
    spooler.set_status("Rongta", "offline")
    with pytest.raises(PrinterNotFound) as exc:
        manager.submit_print(_doc(), "sales", printer_name="Kitchen")
    assert exc.value.available == ["Rongta"]
    assert exc.value.to_dict()["availablePrinters"] == ["Rongta"]
    assert manager.queue_length == 0


def test_requested_printer_is_used():
    sp = FakeSpooler([PrinterInfo("Rongta", is_default=True), PrinterInfo("Bar")])
    outcome = _manager(sp).submit_print(_doc(), "sales", printer_name="Bar")
    assert outcome.printer_name == "Bar"
    assert sp.submitted[0][1] == "Bar"


def test_default_then_first_printer_selection():
    sp = FakeSpooler([PrinterInfo("Bar"), PrinterInfo("Rongta", is_default=True)])
    assert _manager(sp).submit_print(_doc(), "sales").printer_name == "Rongta"
    sp = FakeSpooler([PrinterInfo("Bar", status="error"), PrinterInfo("Rongta", status="offline")])
    outcome = _manager(sp).submit_print(_doc(), "sales")
    # No default and nothing online: first in snapshot order, queued
    assert outcome.kind == QUEUED
    assert outcome.printer_name == "Bar"


def test_capacity_boundary(manager, spooler):
    spooler.set_status("Rongta", "offline")
    for i in range(1, 11):
        outcome = manager.submit_print(_doc(f"Q-{i}"), "sales")
        assert outcome.position == i
    with pytest.raises(QueueFull) as exc:
        manager.submit_print(_doc("Q-11"), "sales")
    assert exc.value.capacity == 10
    assert manager.queue_length == 10


def test_zero_capacity_rejects_offline_jobs(spooler):
    spooler.set_status("Rongta", "offline")
    with pytest.raises(QueueFull):
        _manager(spooler, capacity=0).submit_print(_doc(), "sales")


def test_submission_failure_is_reported_not_queued(manager, spooler, caplog):
    caplog.set_level("ERROR")
    spooler.fail_with = "printer removed"
    with pytest.raises(PrintFailed) as exc:
        manager.submit_print(_doc(), "sales")
    assert exc.value.printer_name == "Rongta"
    assert exc.value.document_id == "A-1001"
    assert "printer removed" in str(exc.value)
    assert manager.queue_length == 0
    assert manager.get_status().last_print_time is None
    assert "A-1001" in caplog.text


def test_drain_is_fifo(manager, spooler):
    spooler.set_status("Rongta", "offline")
    orders = [f"F-{i}" for i in range(5)]
    for order in orders:
        manager.submit_print(_doc(order), "sales")
    spooler.set_status("Rongta", "online")
    assert manager.drain() == 5
    assert spooler.titles == [f"sales-{o}" for o in orders]
    assert manager.queue_length == 0


def test_drain_stops_at_offline_job_and_keeps_order(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc("K-1"), "sales")
    manager.submit_print(_doc("K-2"), "sales")
    assert manager.drain() == 0
    assert [j["documentId"] for j in manager.queued_jobs()] == ["K-1", "K-2"]
    assert [j["position"] for j in manager.queued_jobs()] == [1, 2]


def test_drain_drops_failed_job_and_continues(manager, spooler, caplog):
    spooler.set_status("Rongta", "offline")
    for order in ("D-1", "D-2", "D-3"):
        manager.submit_print(_doc(order), "sales")
    spooler.set_status("Rongta", "online")
    spooler.fail_titles.add("sales-D-1")
    caplog.set_level("ERROR")
    assert manager.drain() == 2
    assert spooler.titles == ["sales-D-2", "sales-D-3"]
    assert manager.queue_length == 0
    assert "Dropping queued job" in caplog.text


def test_drain_drops_job_for_removed_printer():
    sp = FakeSpooler([PrinterInfo("Rongta", is_default=True), PrinterInfo("Bar", status="offline")])
    mgr = _manager(sp)
    mgr.submit_print(_doc("R-1"), "sales", printer_name="Bar")
    mgr.submit_print(_doc("R-2"), "sales", printer_name="Bar")
    sp.remove_printer("Bar")
    sp.add_printer(PrinterInfo("Bar2"))
    assert mgr.drain() == 0
    assert mgr.queue_length == 0
    assert sp.titles == []


def test_drain_keeps_job_when_printers_disappear(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc("N-1"), "sales")
    spooler.remove_printer("Rongta")
    assert manager.drain() == 0
    assert manager.queue_length == 1
    spooler.refresh_error = SpoolerError("lpstat exploded")
    assert manager.drain() == 0
    assert manager.queue_length == 1


def test_successful_print_drains_backlog(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc("B-1"), "sales")
    spooler.set_status("Rongta", "online")
    outcome = manager.submit_print(_doc("B-2"), "sales")
    assert outcome.kind == PRINTED
    assert spooler.titles == ["sales-B-2", "sales-B-1"]
    assert manager.queue_length == 0


def test_at_most_one_drain_pass(manager, spooler):
    spooler.set_status("Rongta", "offline")
    for order in ("C-1", "C-2", "C-3"):
        manager.submit_print(_doc(order), "sales")
    spooler.set_status("Rongta", "online")

    nested = []

    def _trigger_again(title):
        # A second trigger while a pass is running must be a no-op
        nested.append(manager.drain())

    spooler.on_submit = _trigger_again
    assert manager.drain() == 3
    assert nested == [0, 0, 0]
    assert spooler.titles == ["sales-C-1", "sales-C-2", "sales-C-3"]
    assert manager.draining is False


def test_concurrent_drains_do_not_reorder(spooler):
    mgr = _manager(spooler)
    spooler.set_status("Rongta", "offline")
    orders = [f"T-{i}" for i in range(8)]
    for order in orders:
        mgr.submit_print(_doc(order), "sales")
    spooler.set_status("Rongta", "online")

    start = threading.Barrier(4)

    def _drain():
        start.wait()
        mgr.drain()

    threads = [threading.Thread(target=_drain) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)
    # Stragglers that skipped may leave nothing behind; run once more to be sure
    mgr.drain()
    assert spooler.titles == [f"sales-{o}" for o in orders]
    assert mgr.queue_length == 0


def test_preview_has_no_side_effects(manager, spooler):
    first = manager.preview_print(_doc(), "sales")
    second = manager.preview_print(_doc(), "sales")
    assert first.raw == second.raw
    assert first.transcript == second.transcript
    assert spooler.submitted == []
    assert spooler.refresh_calls == 0
    assert manager.get_status().last_print_time is None


def test_status_snapshot(manager, spooler):
    spooler.refresh()
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc(), "sales")
    calls = spooler.refresh_calls
    status = manager.get_status()
    assert spooler.refresh_calls == calls
    body = status.to_dict()
    assert body["service"] == "online"
    assert body["queueLength"] == 1
    assert body["maxQueueSize"] == 10
    assert body["lastPrintTime"] is None
    assert body["uptime"] >= 0
    assert body["printers"][0]["name"] == "Rongta"
    assert body["printers"][0]["status"] == "offline"
    assert body["draining"] is False
    assert "timestamp" in body


def test_queued_jobs_summary(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc("S-1"), "sales", printer_name="Rongta")
    (job,) = manager.queued_jobs()
    assert job["documentId"] == "S-1"
    assert job["type"] == "sales"
    assert job["printerName"] == "Rongta"
    assert job["targetPrinter"] == "Rongta"
    assert job["position"] == 1


def test_refresh_tick_logs_errors(manager, spooler, caplog):
    caplog.set_level("WARNING")
    spooler.refresh_error = SpoolerError("cups went away")
    manager.refresh_tick()
    assert "Printer refresh failed" in caplog.text


def test_refresh_tick_skips_drain_when_nothing_online(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc(), "sales")
    manager.refresh_tick()
    assert manager.queue_length == 1


def test_refresher_thread_drains_queue(manager, spooler):
    spooler.set_status("Rongta", "offline")
    manager.submit_print(_doc("P-1"), "sales")
    manager.start_refresher(0.01)
    thread = manager._refresher
    manager.start_refresher(0.01)
    assert manager._refresher is thread
    assert manager.refresher_running
    try:
        spooler.set_status("Rongta", "online")
        deadline = time.monotonic() + 5
        while manager.queue_length and time.monotonic() < deadline:
            time.sleep(0.01)
        assert manager.queue_length == 0
        assert spooler.titles == ["sales-P-1"]
    finally:
        manager.stop_refresher()
    assert not manager.refresher_running


def test_negative_capacity_rejected(spooler):
    with pytest.raises(ValueError):
        PrintJobManager(spooler, ReceiptRenderer(), capacity=-1)
