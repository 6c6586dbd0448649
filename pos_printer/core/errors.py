"""
Error taxonomy for the POS Printer service.

Each print-service error carries a stable machine-readable ``code`` and the
HTTP status the web layer answers with. Adapter-level failures are raised as
``SpoolerError`` and translated by the job manager.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class SpoolerError(RuntimeError):
    """Raised when the OS print system rejects or cannot perform an operation."""


class PrintServiceError(RuntimeError):
    code = "print_service_error"
    http_status = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.code, "error": str(self)}


class SpoolerUnavailable(PrintServiceError):
    """The print system is not installed or not running. Fatal at startup."""

    code = "spooler_unavailable"
    http_status = 503


class NoPrintersAvailable(PrintServiceError):
    code = "no_printers_available"
    http_status = 500

    def __init__(self, message: str = "No printers available") -> None:
        super().__init__(message)


class PrinterNotFound(PrintServiceError):
    code = "printer_not_found"
    http_status = 500

    def __init__(self, printer_name: str, available: Sequence[str] = ()) -> None:
        self.printer_name = printer_name
        self.available = list(available)
        listing = ", ".join(self.available) if self.available else "none configured"
        super().__init__(f"Printer '{printer_name}' not found. Available printers: {listing}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["availablePrinters"] = self.available
        return data


class QueueFull(PrintServiceError):
    code = "queue_full"
    http_status = 500

    def __init__(self, printer_name: str, capacity: int) -> None:
        self.printer_name = printer_name
        self.capacity = capacity
        super().__init__(f"Printer '{printer_name}' offline and queue is full ({capacity} jobs)")


class PrintFailed(PrintServiceError):
    code = "print_failed"
    http_status = 500

    def __init__(self, reason: str, *, printer_name: str, document_id: Optional[str] = None) -> None:
        self.reason = reason
        self.printer_name = printer_name
        self.document_id = document_id
        super().__init__(f"Print failed on '{printer_name}': {reason}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["printerId"] = self.printer_name
        return data


__all__ = [
    "NoPrintersAvailable",
    "PrintFailed",
    "PrintServiceError",
    "PrinterNotFound",
    "QueueFull",
    "SpoolerError",
    "SpoolerUnavailable",
]
