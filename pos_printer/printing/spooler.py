"""
Spooler adapters for the POS Printer service.

This module owns:
- PrinterInfo / JobHandle value types
- SpoolerAdapter: the contract the job manager talks to, with a cached,
  lock-guarded printer snapshot
- CupsSpooler: CUPS command-line tools (lpstat, lp, cancel) via subprocess
- SimulatedSpooler: in-memory printers for development and tests

Adapter failures raise SpoolerError; a print system that cannot be reached at
startup raises SpoolerUnavailable.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pos_printer.core.errors import SpoolerError, SpoolerUnavailable

ONLINE = "online"
OFFLINE = "offline"
ERROR = "error"

_PRINTER_LINE = re.compile(r"^printer\s+(\S+)\s+(.*)$")
_DEFAULT_LINE = re.compile(r"system default destination:\s*(\S+)")
_REQUEST_ID = re.compile(r"request id is (\S+)")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PrinterInfo:
    name: str
    status: str = ONLINE
    is_default: bool = False
    model: str = "Unknown"
    location: str = ""
    description: str = ""

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PrinterInfo":
        return cls(
            name=str(data["name"]),
            status=str(data.get("status", ONLINE)),
            is_default=bool(data.get("is_default", data.get("isDefault", False))),
            model=str(data.get("model") or "Unknown"),
            location=str(data.get("location") or ""),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "isDefault": self.is_default,
            "model": self.model,
            "location": self.location,
            "description": self.description,
        }


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    printer_name: str
    submitted_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "printer": self.printer_name, "submittedAt": self.submitted_at}


def parse_printer_status(state_text: str) -> str:
    """
    Map lpstat's free-form state text to online/offline/error.
    Busy/printing printers still accept jobs, so they count as online.
    """
    text = state_text.lower()
    if "idle" in text or "ready" in text:
        return ONLINE
    if "disabled" in text or "stopped" in text:
        return OFFLINE
    if "busy" in text or "printing" in text:
        return ONLINE
    return ERROR


def with_fallback_default(printers: Sequence[PrinterInfo]) -> List[PrinterInfo]:
    """
    Flag the first online printer as default when the system reports none.
    """
    result = list(printers)
    if any(p.is_default for p in result):
        return result
    for idx, p in enumerate(result):
        if p.is_online:
            result[idx] = replace(p, is_default=True)
            break
    return result


class SpoolerAdapter(ABC):
    """
    Contract between the job manager and the OS print system.

    Subclasses implement _query_printers() and the job operations; the base
    class keeps the latest printer snapshot and serializes refreshes so a
    periodic refresh and a request-time query never interleave.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._printers: List[PrinterInfo] = []
        self._refreshed_at: Optional[str] = None

    @abstractmethod
    def initialize(self) -> None:
        """Verify the print system is reachable. Raises SpoolerUnavailable."""

    @abstractmethod
    def _query_printers(self) -> List[PrinterInfo]:
        raise NotImplementedError

    @abstractmethod
    def submit(self, data: bytes, printer_name: str, job_name: Optional[str] = None) -> JobHandle:
        """Hand a rendered byte stream to the spooler. Raises SpoolerError."""

    @abstractmethod
    def job_status(self, job_id: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def cancel_job(self, job_id: str) -> bool:
        raise NotImplementedError

    def refresh(self) -> List[PrinterInfo]:
        with self._lock:
            printers = with_fallback_default(self._query_printers())
            self._printers = printers
            self._refreshed_at = _utc_now_iso()
            self.logger.debug(
                "Found %d printers: %s",
                len(printers),
                ", ".join(f"{p.name}={p.status}" for p in printers) or "-",
            )
            return list(printers)

    def list_printers(self, refresh: bool = True) -> List[PrinterInfo]:
        """
        Return the printer snapshot, re-querying the print system unless refresh=False.
        """
        if refresh:
            return self.refresh()
        with self._lock:
            return list(self._printers)

    @property
    def refreshed_at(self) -> Optional[str]:
        with self._lock:
            return self._refreshed_at


class CupsSpooler(SpoolerAdapter):
    """
    CUPS-backed spooler using the lpstat/lp/cancel command-line tools.

    Commands run with LC_ALL=C so lpstat output parses the same in any locale.
    Receipts are submitted as raw jobs with the ESC/POS bytes on stdin.
    """

    def __init__(
        self,
        *,
        lp_path: str = "lp",
        lpstat_path: str = "lpstat",
        lpoptions_path: str = "lpoptions",
        cancel_path: str = "cancel",
        timeout: float = 30,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(logger)
        self._lp_path = lp_path
        self._lpstat_path = lpstat_path
        self._lpoptions_path = lpoptions_path
        self._cancel_path = cancel_path
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], logger: Optional[logging.Logger] = None) -> "CupsSpooler":
        printers = settings.get("printers", {})
        return cls(
            lp_path=str(printers.get("lp_path") or "lp"),
            lpstat_path=str(printers.get("lpstat_path") or "lpstat"),
            lpoptions_path=str(printers.get("lpoptions_path") or "lpoptions"),
            cancel_path=str(printers.get("cancel_path") or "cancel"),
            timeout=float(printers.get("submit_timeout_seconds") or 30),
            logger=logger,
        )

    def _run(self, args: Sequence[str], data: Optional[bytes] = None) -> Tuple[int, str, str]:
        env = dict(os.environ, LC_ALL="C")
        try:
            proc = subprocess.run(
                list(args),
                input=data,
                capture_output=True,
                env=env,
                timeout=self._timeout,
            )
        except FileNotFoundError:
            raise SpoolerError(f"'{args[0]}' not found in PATH") from None
        except subprocess.TimeoutExpired:
            raise SpoolerError(f"'{args[0]}' timed out after {self._timeout}s") from None
        out = (proc.stdout or b"").decode("utf-8", errors="replace")
        err = (proc.stderr or b"").decode("utf-8", errors="replace")
        return proc.returncode, out, err

    def initialize(self) -> None:
        for tool in (self._lpstat_path, self._lp_path):
            if shutil.which(tool) is None:
                raise SpoolerUnavailable(f"CUPS not available: '{tool}' not found in PATH")
        try:
            _, out, err = self._run([self._lpstat_path, "-r"])
        except SpoolerError as e:
            raise SpoolerUnavailable(f"CUPS not available: {e}") from e
        if "scheduler is running" not in out.lower():
            raise SpoolerUnavailable(f"CUPS scheduler is not running: {(out or err).strip()}")
        try:
            printers = self.refresh()
        except SpoolerError as e:
            raise SpoolerUnavailable(f"CUPS printer listing failed: {e}") from e
        self.logger.info("CUPS is available and running (%d printers)", len(printers))

    def _default_printer(self) -> Optional[str]:
        rc, out, _ = self._run([self._lpstat_path, "-d"])
        if rc != 0:
            return None
        m = _DEFAULT_LINE.search(out)
        return m.group(1) if m else None

    def _printer_details(self, name: str) -> Dict[str, str]:
        details = {"model": "Unknown", "location": "", "description": ""}
        try:
            rc, out, _ = self._run([self._lpstat_path, "-l", "-p", name])
            if rc == 0:
                for line in out.splitlines():
                    stripped = line.strip()
                    if stripped.startswith("Description:"):
                        details["description"] = stripped.split(":", 1)[1].strip()
                    elif stripped.startswith("Location:"):
                        details["location"] = stripped.split(":", 1)[1].strip()
            rc, out, _ = self._run([self._lpoptions_path, "-p", name])
            if rc == 0:
                for token in shlex.split(out):
                    key, _, value = token.partition("=")
                    if key == "printer-make-and-model" and value:
                        details["model"] = value
        except (SpoolerError, ValueError) as e:
            # Details are cosmetic; a printer without them is still usable
            self.logger.debug("Printer details unavailable for %s: %s", name, e)
        return details

    def _query_printers(self) -> List[PrinterInfo]:
        rc, out, err = self._run([self._lpstat_path, "-p"])
        if rc != 0:
            if "no destinations" in (err or out).lower():
                return []
            raise SpoolerError(f"lpstat failed (rc={rc}): {(out + err).strip()}")
        default = self._default_printer()
        printers: List[PrinterInfo] = []
        for line in out.splitlines():
            m = _PRINTER_LINE.match(line)
            if not m:
                continue
            name, state = m.groups()
            printers.append(
                PrinterInfo(
                    name=name,
                    status=parse_printer_status(state),
                    is_default=(name == default),
                    **self._printer_details(name),
                )
            )
        return printers

    def submit(self, data: bytes, printer_name: str, job_name: Optional[str] = None) -> JobHandle:
        title = job_name or f"receipt-{int(time.time() * 1000)}"
        cmd = [self._lp_path, "-d", printer_name, "-o", "raw", "-t", title]
        rc, out, err = self._run(cmd, data=data)
        if rc != 0:
            raise SpoolerError(f"lp failed (rc={rc}): {(out + err).strip()}")
        m = _REQUEST_ID.search(out)
        job_id = m.group(1) if m else "unknown"
        self.logger.info("Print job submitted printer=%s job=%s bytes=%d", printer_name, job_id, len(data))
        return JobHandle(job_id=job_id, printer_name=printer_name, submitted_at=_utc_now_iso())

    def job_status(self, job_id: str) -> str:
        rc, out, err = self._run([self._lpstat_path, "-o"])
        if rc != 0:
            raise SpoolerError(f"lpstat failed (rc={rc}): {(out + err).strip()}")
        for line in out.splitlines():
            if line.split(" ", 1)[0] == job_id:
                return "queued"
        return "completed"

    def cancel_job(self, job_id: str) -> bool:
        rc, out, err = self._run([self._cancel_path, job_id])
        if rc != 0:
            self.logger.warning("Failed to cancel job %s: %s", job_id, (out + err).strip())
            return False
        self.logger.info("Print job cancelled: %s", job_id)
        return True


class SimulatedSpooler(SpoolerAdapter):
    """
    In-memory spooler for development mode: no CUPS, no hardware.

    Submitted jobs are logged and kept in ``submitted`` as (job_id, printer, data).
    Printer status can be flipped at runtime with set_status().
    """

    def __init__(
        self,
        printers: Optional[Iterable[Union[PrinterInfo, Mapping[str, Any]]]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(logger)
        if printers is None:
            printers = [PrinterInfo(name="Simulated", status=ONLINE, is_default=True, model="Virtual ESC/POS")]
        self._configured: List[PrinterInfo] = [
            p if isinstance(p, PrinterInfo) else PrinterInfo.from_mapping(p) for p in printers
        ]
        self.submitted: List[Tuple[str, str, bytes]] = []
        self._next_id = 1

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], logger: Optional[logging.Logger] = None) -> "SimulatedSpooler":
        return cls(settings.get("printers", {}).get("simulated_printers"), logger=logger)

    def initialize(self) -> None:
        printers = self.refresh()
        self.logger.info("Simulated spooler ready (%d printers); printing is simulated", len(printers))

    def _query_printers(self) -> List[PrinterInfo]:
        return list(self._configured)

    def set_status(self, name: str, status: str) -> None:
        with self._lock:
            for idx, p in enumerate(self._configured):
                if p.name == name:
                    self._configured[idx] = replace(p, status=status)
                    return
        raise SpoolerError(f"Printer '{name}' not found")

    def add_printer(self, printer: Union[PrinterInfo, Mapping[str, Any]]) -> None:
        info = printer if isinstance(printer, PrinterInfo) else PrinterInfo.from_mapping(printer)
        with self._lock:
            self._configured.append(info)

    def remove_printer(self, name: str) -> None:
        with self._lock:
            self._configured = [p for p in self._configured if p.name != name]

    def submit(self, data: bytes, printer_name: str, job_name: Optional[str] = None) -> JobHandle:
        with self._lock:
            printer = next((p for p in self._configured if p.name == printer_name), None)
            if printer is None:
                raise SpoolerError(f"Printer '{printer_name}' not found")
            if not printer.is_online:
                raise SpoolerError(f"Printer '{printer_name}' is {printer.status}")
            job_id = f"{printer_name}-{self._next_id}"
            self._next_id += 1
            self.submitted.append((job_id, printer_name, bytes(data)))
        self.logger.info("Simulated print job=%s printer=%s bytes=%d title=%s", job_id, printer_name, len(data), job_name or "-")
        return JobHandle(job_id=job_id, printer_name=printer_name, submitted_at=_utc_now_iso())

    def job_status(self, job_id: str) -> str:
        with self._lock:
            known = any(j[0] == job_id for j in self.submitted)
        return "completed" if known else "unknown"

    def cancel_job(self, job_id: str) -> bool:
        # Simulated jobs complete immediately; nothing left to cancel
        return False


def build_spooler(settings: Mapping[str, Any], logger: Optional[logging.Logger] = None) -> SpoolerAdapter:
    kind = str(settings.get("printers", {}).get("spooler") or "cups").lower()
    if kind == "simulated":
        return SimulatedSpooler.from_settings(settings, logger=logger)
    if kind == "cups":
        return CupsSpooler.from_settings(settings, logger=logger)
    raise ValueError(f"Unsupported spooler: {kind}")


__all__ = [
    "CupsSpooler",
    "ERROR",
    "JobHandle",
    "OFFLINE",
    "ONLINE",
    "PrinterInfo",
    "SimulatedSpooler",
    "SpoolerAdapter",
    "build_spooler",
    "parse_printer_status",
    "with_fallback_default",
]
