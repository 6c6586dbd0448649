from __future__ import annotations

"""
Pydantic schemas for the POS Printer HTTP API.

Request models validate the envelope only (type tag, receipt object, optional
printer name); the receipt body itself is validated by the per-type models in
pos_printer.receipts.models once the type is known.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class PrintRequest(BaseModel):
    """Body of POST /print and POST /preview."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(
        default="sales",
        description="Receipt type tag",
        examples=["sales", "cash_transfer", "shift_closure", "shift_handoff", "cash_expense"],
    )
    receipt: Dict[str, Any] = Field(description="Receipt document fields for the given type")
    printer_name: Optional[str] = Field(default=None, alias="printerName", description="Target printer name")

    @field_validator("type", mode="before")
    @classmethod
    def _type_default(cls, v: Any) -> Any:
        # null or blank type means sales, same as omitting it
        if v is None or (isinstance(v, str) and not v.strip()):
            return "sales"
        return v

    @field_validator("printer_name")
    @classmethod
    def _blank_printer_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class SamplePrintRequest(BaseModel):
    """Optional body of the POST /test-* endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    printer_name: Optional[str] = Field(default=None, alias="printerName")

    @field_validator("printer_name")
    @classmethod
    def _blank_printer_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PrintResponse(BaseModel):
    """Response for a resolved print attempt (printed or queued)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    outcome: str = Field(examples=["printed", "queued"])
    message: str
    printer_id: str = Field(alias="printerId")
    queued: bool = False
    position: Optional[int] = None
    job_id: Optional[str] = Field(default=None, alias="jobId")
    timestamp: str


class PreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    type: str
    preview: str
    esc_pos_codes: list[str] = Field(alias="escPosCodes")
    raw_length: int = Field(alias="rawLength")
    timestamp: str


def format_validation_error(prefix: str, err: ValidationError) -> str:
    """
    Flatten a pydantic ValidationError to "<prefix>: <loc>: <msg>, <loc>: <msg>".
    """
    parts = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        msg = item.get("msg") or "invalid"
        parts.append(f"{loc}: {msg}" if loc else msg)
    return f"{prefix}: {', '.join(parts)}" if parts else prefix


__all__ = [
    "PreviewResponse",
    "PrintRequest",
    "PrintResponse",
    "SamplePrintRequest",
    "format_validation_error",
]
