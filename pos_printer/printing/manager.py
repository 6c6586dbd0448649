"""
Print-job lifecycle for the POS Printer service.

This module owns:
- Printer selection (requested name, else system default, else first)
- The immediate-print vs. enqueue decision and the bounded FIFO of pending jobs
- Drain passes that flush pending jobs once their printer is back online
- The periodic printer refresher thread
- Service status snapshots

It is Flask-agnostic; the web layer holds one PrintJobManager per app.
Queue state, the draining flag and the last-print timestamp are only touched
while holding the manager's lock, and at most one drain pass runs at a time.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

from pos_printer.core.errors import NoPrintersAvailable, PrinterNotFound, PrintFailed, QueueFull, SpoolerError
from pos_printer.printing.render import Preview, ReceiptRenderer
from pos_printer.printing.spooler import PrinterInfo, SpoolerAdapter
from pos_printer.receipts.models import ReceiptModel

PRINTED = "printed"
QUEUED = "queued"

Document = Union[ReceiptModel, Mapping[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _run_in_thread(fn: Callable[[], Any]) -> None:
    threading.Thread(target=fn, daemon=True, name="pos-printer-drain").start()


@dataclass(frozen=True)
class QueuedJob:
    job_id: str
    document: Document
    receipt_type: str
    printer_name: Optional[str]
    target_printer: str
    enqueued_at: datetime

    @property
    def document_id(self) -> str:
        return str(getattr(self.document, "document_id", "-"))

    def to_dict(self, position: int) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "type": self.receipt_type,
            "documentId": self.document_id,
            "printerName": self.printer_name,
            "targetPrinter": self.target_printer,
            "enqueuedAt": self.enqueued_at.isoformat(),
            "position": position,
        }


@dataclass(frozen=True)
class PrintOutcome:
    kind: str
    printer_name: str
    timestamp: datetime
    position: Optional[int] = None
    job_id: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.kind == QUEUED

    @property
    def message(self) -> str:
        if self.queued:
            return f"Printer offline, queued for printing. Queue position: {self.position}"
        return f"Receipt printed successfully on {self.printer_name}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": not self.queued,
            "outcome": self.kind,
            "message": self.message,
            "printerId": self.printer_name,
            "queued": self.queued,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.position is not None:
            data["position"] = self.position
        if self.job_id:
            data["jobId"] = self.job_id
        return data


@dataclass(frozen=True)
class ServiceStatus:
    printers: List[PrinterInfo]
    uptime_seconds: float
    queue_length: int
    max_queue_size: int
    last_print_time: Optional[datetime]
    draining: bool
    refresher_running: bool
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": "online",
            "printers": [p.to_dict() for p in self.printers],
            "lastPrintTime": self.last_print_time.isoformat() if self.last_print_time else None,
            "uptime": round(self.uptime_seconds, 3),
            "queueLength": self.queue_length,
            "maxQueueSize": self.max_queue_size,
            "draining": self.draining,
            "refresherRunning": self.refresher_running,
            "timestamp": self.timestamp.isoformat(),
        }


class PrintJobManager:
    """
    Decide where and when each receipt prints.

    ``run_async`` schedules the drain pass that follows a successful print; it
    defaults to a daemon thread. Tests pass ``lambda fn: fn()`` to drain inline.
    """

    def __init__(
        self,
        spooler: SpoolerAdapter,
        renderer: ReceiptRenderer,
        capacity: int = 10,
        logger: Optional[logging.Logger] = None,
        run_async: Optional[Callable[[Callable[[], Any]], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.spooler = spooler
        self.renderer = renderer
        self.capacity = capacity
        self.logger = logger or logging.getLogger(__name__)
        self._run_async = run_async or _run_in_thread
        self._clock = clock or _utc_now
        self._lock = threading.RLock()
        self._queue: Deque[QueuedJob] = deque()
        self._draining = False
        self._last_print: Optional[datetime] = None
        self._started = time.monotonic()
        self._refresher: Optional[threading.Thread] = None
        self._refresher_stop: Optional[threading.Event] = None

    # ----- Printing -----------------------------------------------------------

    def submit_print(
        self,
        document: Document,
        receipt_type: str = "sales",
        printer_name: Optional[str] = None,
    ) -> PrintOutcome:
        """
        Print ``document`` now, or queue it when the target printer is offline.

        Raises NoPrintersAvailable, PrinterNotFound, QueueFull or PrintFailed.
        """
        receipt_type = str(getattr(receipt_type, "value", receipt_type))
        target, outcome = self._dispatch(document, receipt_type, printer_name)
        if outcome is None:
            return self._enqueue(document, receipt_type, printer_name, target)
        self._schedule_drain()
        return outcome

    def preview_print(self, document: Document, receipt_type: str = "sales") -> Preview:
        return self.renderer.preview(document, receipt_type)

    def _resolve_printer(self, printer_name: Optional[str]) -> PrinterInfo:
        printers = self.spooler.list_printers(refresh=True)
        if not printers:
            raise NoPrintersAvailable()
        if printer_name:
            for p in printers:
                if p.name == printer_name:
                    return p
            raise PrinterNotFound(printer_name, [p.name for p in printers])
        for p in printers:
            if p.is_default:
                return p
        return printers[0]

    def _dispatch(
        self,
        document: Document,
        receipt_type: str,
        printer_name: Optional[str],
    ) -> Tuple[PrinterInfo, Optional[PrintOutcome]]:
        """
        Select the printer and, when it is online, render and submit.
        Returns (printer, None) when the printer is offline.
        """
        printer = self._resolve_printer(printer_name)
        if not printer.is_online:
            return printer, None

        document_id = str(getattr(document, "document_id", "-"))
        data = self.renderer.render(document, receipt_type)
        try:
            handle = self.spooler.submit(data, printer.name, job_name=f"{receipt_type}-{document_id}")
        except SpoolerError as e:
            self.logger.error(
                "Print failed printer=%s document=%s type=%s: %s",
                printer.name,
                document_id,
                receipt_type,
                e,
            )
            raise PrintFailed(str(e), printer_name=printer.name, document_id=document_id) from e

        now = self._clock()
        with self._lock:
            self._last_print = now
        self.logger.info("Receipt printed printer=%s document=%s job=%s", printer.name, document_id, handle.job_id)
        return printer, PrintOutcome(PRINTED, printer.name, now, job_id=handle.job_id)

    def _enqueue(
        self,
        document: Document,
        receipt_type: str,
        printer_name: Optional[str],
        target: PrinterInfo,
    ) -> PrintOutcome:
        now = self._clock()
        job = QueuedJob(
            job_id=uuid.uuid4().hex,
            document=document,
            receipt_type=receipt_type,
            printer_name=printer_name,
            target_printer=target.name,
            enqueued_at=now,
        )
        with self._lock:
            if len(self._queue) >= self.capacity:
                self.logger.warning("Queue full (%d), rejecting job for printer=%s", self.capacity, target.name)
                raise QueueFull(target.name, self.capacity)
            self._queue.append(job)
            position = len(self._queue)
        self.logger.info(
            "Printer %s is %s, job %s queued at position %d",
            target.name,
            target.status,
            job.job_id,
            position,
        )
        return PrintOutcome(QUEUED, target.name, now, position=position, job_id=job.job_id)

    # ----- Draining -----------------------------------------------------------

    def _schedule_drain(self) -> None:
        with self._lock:
            if not self._queue or self._draining:
                return
        self._run_async(self.drain)

    def _remove(self, job: QueuedJob) -> None:
        with self._lock:
            if self._queue and self._queue[0] is job:
                self._queue.popleft()
            else:
                try:
                    self._queue.remove(job)
                except ValueError:
                    pass

    def drain(self) -> int:
        """
        Flush pending jobs in FIFO order, stopping at the first job whose
        printer is still offline. Returns the number of jobs printed.
        A call made while another pass is running returns 0 immediately.
        """
        with self._lock:
            if self._draining:
                self.logger.debug("Drain already in progress, skipping")
                return 0
            if not self._queue:
                return 0
            self._draining = True
            pending = len(self._queue)

        self.logger.info("Processing print queue (%d jobs)", pending)
        printed = 0
        try:
            while True:
                with self._lock:
                    if not self._queue:
                        break
                    job = self._queue[0]
                try:
                    _, outcome = self._dispatch(job.document, job.receipt_type, job.printer_name)
                except (NoPrintersAvailable, SpoolerError) as e:
                    # Job stays at the front until a printer shows up
                    self.logger.warning("Drain stopped, job %s kept at front: %s", job.job_id, e)
                    break
                except (PrinterNotFound, PrintFailed) as e:
                    self.logger.error("Dropping queued job %s document=%s: %s", job.job_id, job.document_id, e)
                    self._remove(job)
                    continue
                except Exception:
                    self.logger.exception("Dropping queued job %s document=%s", job.job_id, job.document_id)
                    self._remove(job)
                    continue

                if outcome is None:
                    self.logger.info("Printer %s still offline, stopping drain", job.target_printer)
                    break
                self._remove(job)
                printed += 1
        finally:
            with self._lock:
                self._draining = False
        if printed:
            self.logger.info("Drain pass printed %d queued jobs", printed)
        return printed

    # ----- Periodic refresh ---------------------------------------------------

    def refresh_tick(self) -> None:
        """
        One refresher iteration: re-read printers and drain when something is
        pending and a printer is online. Errors are logged, never raised.
        """
        try:
            printers = self.spooler.refresh()
        except Exception as e:
            self.logger.warning("Printer refresh failed: %s", e)
            return
        if self.queue_length and any(p.is_online for p in printers):
            try:
                self.drain()
            except Exception:
                self.logger.exception("Drain after refresh failed")

    def _refresh_loop(self, interval: float, stop: threading.Event) -> None:
        while not stop.wait(interval):
            self.refresh_tick()

    def start_refresher(self, interval: float = 30) -> None:
        """
        Start the periodic refresher thread (idempotent).
        """
        with self._lock:
            if self._refresher and self._refresher.is_alive():
                return
            stop = threading.Event()
            t = threading.Thread(
                target=self._refresh_loop,
                args=(float(interval), stop),
                daemon=True,
                name="pos-printer-refresher",
            )
            t.start()
            self._refresher = t
            self._refresher_stop = stop
        self.logger.info("Printer refresher started (every %ss)", interval)

    def stop_refresher(self, timeout: Optional[float] = 5) -> None:
        with self._lock:
            t, stop = self._refresher, self._refresher_stop
            self._refresher = None
            self._refresher_stop = None
        if stop is not None:
            stop.set()
        if t is not None:
            t.join(timeout)
            self.logger.info("Printer refresher stopped")

    @property
    def refresher_running(self) -> bool:
        with self._lock:
            return bool(self._refresher and self._refresher.is_alive())

    # ----- Introspection ------------------------------------------------------

    @property
    def queue_length(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    def queued_jobs(self) -> List[Dict[str, Any]]:
        with self._lock:
            jobs = list(self._queue)
        return [job.to_dict(idx) for idx, job in enumerate(jobs, start=1)]

    def get_status(self) -> ServiceStatus:
        with self._lock:
            queue_length = len(self._queue)
            last_print = self._last_print
            draining = self._draining
        return ServiceStatus(
            printers=self.spooler.list_printers(refresh=False),
            uptime_seconds=time.monotonic() - self._started,
            queue_length=queue_length,
            max_queue_size=self.capacity,
            last_print_time=last_print,
            draining=draining,
            refresher_running=self.refresher_running,
            timestamp=self._clock(),
        )


__all__ = [
    "PRINTED",
    "PrintJobManager",
    "PrintOutcome",
    "QUEUED",
    "QueuedJob",
    "ServiceStatus",
]
