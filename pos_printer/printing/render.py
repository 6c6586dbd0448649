"""
Receipt rendering for the POS Printer service.

Turns a validated receipt document into a linear list of layout instructions
(init, bold, center, text lines, logo, cut) and encodes that list into an
ESC/POS byte stream using python-escpos's buffering Dummy printer. The same
instruction list produces the human-readable preview transcript, so the
transcript always describes exactly what is sent to the printer.

Rendering is pure: the only inputs are the document, its type tag and the
static receipt settings (paper width, header/footer text, optional logo).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from escpos.printer import Dummy
from PIL import Image

from pos_printer.core.config import DEFAULT_SETTINGS
from pos_printer.receipts.models import (
    RECEIPT_MODELS,
    CashExpenseReceipt,
    CashTransferReceipt,
    ReceiptModel,
    ReceiptType,
    SalesReceipt,
    ShiftClosureReceipt,
    ShiftHandoffReceipt,
    parse_receipt,
)

# Instruction kinds
INIT = "init"
NORMAL = "normal"
BOLD = "bold"
CENTER = "center"
TEXT = "text"
LOGO = "logo"
CUT = "cut"

DEFAULT_HEADERS = {
    ReceiptType.CASH_TRANSFER: "TRANSFER DE EFECTIVO",
    ReceiptType.SHIFT_CLOSURE: "CIERRE DE TURNO",
    ReceiptType.SHIFT_HANDOFF: "ENTREGA DE TURNO",
    ReceiptType.CASH_EXPENSE: "GASTO DE CAJA",
}

DEFAULT_FOOTERS = {
    ReceiptType.CASH_TRANSFER: "CONSERVAR PARA AUDITORIA",
    ReceiptType.SHIFT_CLOSURE: "CIERRE COMPLETADO",
    ReceiptType.SHIFT_HANDOFF: "CONSERVAR PARA AUDITORIA",
    ReceiptType.CASH_EXPENSE: "CONSERVAR PARA AUDITORIA",
}

PAYMENT_METHODS = {
    "cash": "Efectivo",
    "card": "Tarjeta",
    "transfer": "Transferencia",
    "credit": "Crédito",
    "debit": "Débito",
}

SIGNATURE = "____________________"

CODE_NAMES = {
    (INIT, None): "INIT (ESC @)",
    (NORMAL, None): "NORMAL_FONT (ESC ! 0)",
    (BOLD, True): "BOLD_ON (ESC E 1)",
    (BOLD, False): "BOLD_OFF (ESC E 0)",
    (CENTER, True): "CENTER_ON (ESC a 1)",
    (CENTER, False): "CENTER_OFF (ESC a 0)",
    (LOGO, None): "RASTER_IMAGE (GS v 0)",
    (CUT, None): "CUT_PAPER (GS V)",
}


@dataclass(frozen=True)
class Instruction:
    kind: str
    value: Any = None

    @property
    def marker(self) -> str:
        if self.kind == INIT:
            return "[INIT]"
        if self.kind == NORMAL:
            return "[NORMAL]"
        if self.kind == BOLD:
            return "[BOLD-ON]" if self.value else "[BOLD-OFF]"
        if self.kind == CENTER:
            return "[CENTER-ON]" if self.value else "[CENTER-OFF]"
        if self.kind == LOGO:
            return "[LOGO]\n"
        if self.kind == CUT:
            return "[CUT-PAPER]"
        return f"{self.value}\n"

    @property
    def code(self) -> Optional[str]:
        """Name and byte sequence of the control code, None for plain text."""
        if self.kind in (BOLD, CENTER):
            return CODE_NAMES.get((self.kind, bool(self.value)))
        return CODE_NAMES.get((self.kind, None))


@dataclass(frozen=True)
class Preview:
    raw: bytes
    transcript: str
    codes: List[str] = field(default_factory=list)
    type: str = ReceiptType.SALES.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "preview": self.transcript,
            "escPosCodes": list(self.codes),
            "rawLength": len(self.raw),
        }


class Layout:
    """
    Small builder that records layout instructions for one receipt.
    """

    def __init__(self, width: int) -> None:
        self.width = width
        self.instructions: List[Instruction] = []

    def emit(self, kind: str, value: Any = None) -> "Layout":
        self.instructions.append(Instruction(kind, value))
        return self

    def line(self, text: str = "") -> "Layout":
        return self.emit(TEXT, text)

    def pair(self, label: str, value: Any) -> "Layout":
        return self.line(format_line(label, value, self.width))

    def separator(self, char: str = "-") -> "Layout":
        return self.line(char * self.width)

    def bold(self, on: bool = True) -> "Layout":
        return self.emit(BOLD, on)

    def center(self, on: bool = True) -> "Layout":
        return self.emit(CENTER, on)


def format_line(label: str, value: Any, width: int) -> str:
    """
    Two-column line: label on the left, value right-aligned to ``width``.
    When both do not fit, the label is truncated and a single space is kept.
    """
    value_text = str(value)
    spaces = width - len(label) - len(value_text)
    if spaces > 0:
        return label + " " * spaces + value_text
    max_label = max(0, width - len(value_text) - 1)
    return label[:max_label] + " " + value_text


def format_currency(amount: Any) -> str:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return "$0"
    return f"${amount:.0f}"


def format_payment_method(method: str) -> str:
    return PAYMENT_METHODS.get(method.lower(), method)


def _parse_datetime(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class ReceiptRenderer:
    """
    Render receipt documents into ESC/POS bytes and preview transcripts.
    """

    def __init__(self, settings: Optional[Mapping[str, Any]] = None, logger: Optional[logging.Logger] = None) -> None:
        receipt = dict(DEFAULT_SETTINGS["receipt"])
        if settings:
            receipt.update(settings.get("receipt", settings))
        self.config = receipt
        self.paper_width = int(receipt.get("paper_width") or 48)
        self.logger = logger or logging.getLogger(__name__)
        self._bodies: Dict[ReceiptType, Callable[[Layout, Any], None]] = {
            ReceiptType.SALES: self._sales_body,
            ReceiptType.CASH_TRANSFER: self._cash_transfer_body,
            ReceiptType.SHIFT_CLOSURE: self._shift_closure_body,
            ReceiptType.SHIFT_HANDOFF: self._shift_handoff_body,
            ReceiptType.CASH_EXPENSE: self._cash_expense_body,
        }

    # ----- Public API ---------------------------------------------------------

    def layout(self, document: Union[ReceiptModel, Mapping[str, Any]], receipt_type: Any = "sales") -> List[Instruction]:
        """
        Build the instruction list for ``document``.

        Unknown type tags fall back to the sales layout with a warning so that
        callers sending newer tags keep printing.
        """
        rtype = ReceiptType.lookup(receipt_type)
        if rtype is None:
            self.logger.warning("Unknown receipt type: %s, falling back to sales format", receipt_type)
            rtype = ReceiptType.SALES
        if isinstance(document, Mapping):
            _, document = parse_receipt(rtype, document)
        expected = RECEIPT_MODELS[rtype]
        if not isinstance(document, expected):
            raise TypeError(f"{rtype.value} receipt expects {expected.__name__}, got {type(document).__name__}")

        out = Layout(self.paper_width)
        out.emit(INIT).emit(NORMAL)
        logo = self._load_logo()
        if logo is not None:
            out.center(True).emit(LOGO, logo).center(False)
        self._bodies[rtype](out, document)
        out.line().line().line()
        out.emit(CUT)
        return out.instructions

    def render(self, document: Union[ReceiptModel, Mapping[str, Any]], receipt_type: Any = "sales") -> bytes:
        instructions = self.layout(document, receipt_type)
        data = self.encode(instructions)
        self.logger.info(
            "Receipt formatted type=%s document=%s bytes=%d",
            receipt_type,
            getattr(document, "document_id", "-"),
            len(data),
        )
        return data

    def preview(self, document: Union[ReceiptModel, Mapping[str, Any]], receipt_type: Any = "sales") -> Preview:
        instructions = self.layout(document, receipt_type)
        codes: List[str] = []
        for ins in instructions:
            code = ins.code
            if code and code not in codes:
                codes.append(code)
        return Preview(
            raw=self.encode(instructions),
            transcript=transcript(instructions),
            codes=codes,
            type=str(getattr(receipt_type, "value", receipt_type)),
        )

    @staticmethod
    def encode(instructions: List[Instruction]) -> bytes:
        """
        Encode instructions with the buffering Dummy printer and return its bytes.
        """
        p = Dummy()
        for ins in instructions:
            if ins.kind == INIT:
                p.hw("INIT")
            elif ins.kind == NORMAL:
                p.set(normal_textsize=True)
            elif ins.kind == BOLD:
                p.set(bold=bool(ins.value))
            elif ins.kind == CENTER:
                p.set(align="center" if ins.value else "left")
            elif ins.kind == TEXT:
                p.text(f"{ins.value}\n")
            elif ins.kind == LOGO:
                p.image(ins.value)
            elif ins.kind == CUT:
                p.cut(mode="PART")
            else:
                raise ValueError(f"Unknown instruction: {ins.kind}")
        data = bytes(p.output)
        p.close()
        return data

    # ----- Formatting helpers -------------------------------------------------

    def format_date(self, value: str) -> str:
        parsed = _parse_datetime(value)
        if parsed is None:
            return value
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone()
        fmt = str(self.config.get("date_format") or "default").lower()
        if fmt == "short":
            return parsed.strftime("%d/%m/%Y")
        if fmt == "custom":
            return parsed.strftime("%Y-%m-%d %I:%M:%S %p")
        return parsed.strftime("%d/%m/%Y %H:%M:%S")

    def header_for(self, rtype: ReceiptType) -> str:
        overrides = (self.config.get("receipt_types") or {}).get(rtype.value) or {}
        return overrides.get("header") or DEFAULT_HEADERS.get(rtype, "")

    def footer_for(self, rtype: ReceiptType) -> str:
        overrides = (self.config.get("receipt_types") or {}).get(rtype.value) or {}
        return overrides.get("footer") or DEFAULT_FOOTERS.get(rtype, "")

    def _load_logo(self) -> Optional[Image.Image]:
        path = self.config.get("logo_path")
        if not path:
            return None
        try:
            with Image.open(path) as src:
                img = src.convert("L")
        except (OSError, ValueError) as e:
            self.logger.warning("Logo processing failed, skipping logo: %s", e)
            return None
        max_width = int(self.config.get("logo_width") or 384)
        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height))
        return img

    def _typed_header(self, out: Layout, rtype: ReceiptType) -> None:
        out.bold(True).center(True)
        out.separator("=")
        out.line(self.config.get("restaurant_name") or "RESTAURANT NAME")
        out.line(self.header_for(rtype))
        out.separator("=")
        out.bold(False).center(False)
        out.emit(NORMAL)

    def _typed_footer(self, out: Layout, rtype: ReceiptType) -> None:
        out.separator("=")
        out.center(True)
        out.line(self.footer_for(rtype))
        out.center(False)
        out.separator("=")

    # ----- Receipt bodies -----------------------------------------------------

    def _sales_body(self, out: Layout, receipt: SalesReceipt) -> None:
        out.bold(True).center(True)
        out.separator("=")
        out.line(self.config.get("restaurant_name") or "RESTAURANT NAME")
        if self.config.get("address"):
            out.line(self.config["address"])
        if self.config.get("phone"):
            out.line(self.config["phone"])
        out.separator("=")
        out.bold(False).center(False)
        out.emit(NORMAL)

        out.pair("Pedido #:", receipt.order_number)
        out.pair("Fecha:", self.format_date(receipt.date))
        if receipt.cashier:
            out.pair("Cajero:", receipt.cashier)
        out.separator("-")

        for item in receipt.items:
            out.pair(f"{item.name} x{item.quantity:g}", format_currency(item.total))
        out.separator("-")

        out.pair("Subtotal:", format_currency(receipt.subtotal))
        if receipt.tax > 0:
            out.pair(self.config.get("tax_label") or "IVA:", format_currency(receipt.tax))
        out.bold(True)
        out.pair("TOTAL:", format_currency(receipt.total))
        out.bold(False)
        out.emit(NORMAL)
        out.separator("-")

        out.pair("Pago:", format_payment_method(receipt.payment_method))
        method = receipt.payment_method.lower()
        if method == "cash" and receipt.tendered:
            out.pair("Recibido:", format_currency(receipt.tendered))
            if receipt.change:
                out.pair("Devuelta:", format_currency(receipt.change))
        if method == "transfer" and receipt.transfer_reference:
            out.pair("Referencia:", receipt.transfer_reference)
        out.separator("=")

        out.center(True)
        out.line(self.config.get("footer_message") or DEFAULT_SETTINGS["receipt"]["footer_message"])
        out.center(False)
        out.separator("=")

    def _cash_transfer_body(self, out: Layout, receipt: CashTransferReceipt) -> None:
        self._typed_header(out, ReceiptType.CASH_TRANSFER)
        out.pair("Transfer #:", receipt.transfer_id)
        if receipt.shift_info:
            out.pair("Turno:", receipt.shift_info)
        out.pair("Fecha:", self.format_date(receipt.date))
        out.separator("-")

        out.pair("Enviado por:", receipt.sender_name)
        out.pair("Firma:", SIGNATURE)
        out.line()
        out.pair("Recibido por:", receipt.receiver_name)
        out.pair("Firma:", SIGNATURE)
        out.separator("-")

        out.bold(True).center(True)
        out.line("Monto Transferido:")
        out.line(format_currency(receipt.amount))
        out.bold(False).center(False)
        out.separator("-")

        if receipt.notes:
            out.pair("Notas:", receipt.notes)
        self._typed_footer(out, ReceiptType.CASH_TRANSFER)

    def _shift_closure_body(self, out: Layout, receipt: ShiftClosureReceipt) -> None:
        self._typed_header(out, ReceiptType.SHIFT_CLOSURE)
        out.pair("Turno #:", receipt.shift_id)
        out.pair("Tipo:", receipt.shift_type)
        out.pair("Fecha:", receipt.shift_date)
        out.pair("Hora:", f"{receipt.start_time} - {receipt.end_time}")
        out.separator("-")

        out.pair("Cajero:", receipt.cashier_name)
        out.pair("Inicio:", format_currency(receipt.starting_cash))
        out.pair("Ventas Turno:", format_currency(receipt.shift_sales))
        out.pair("Efectivo Esperado:", format_currency(receipt.ending_cash_expected))
        out.pair("Efectivo Contado:", format_currency(receipt.ending_cash_counted))
        out.pair("Variacion:", format_currency(receipt.variance))
        out.separator("-")

        out.pair("Transferencias:", format_currency(receipt.transfers_out))
        self._typed_footer(out, ReceiptType.SHIFT_CLOSURE)

    def _shift_handoff_body(self, out: Layout, receipt: ShiftHandoffReceipt) -> None:
        self._typed_header(out, ReceiptType.SHIFT_HANDOFF)
        out.pair("Entrega #:", receipt.handoff_id)
        out.pair("Fecha:", self.format_date(receipt.handoff_date))
        out.separator("-")

        out.pair("Sale:", receipt.outgoing_cashier)
        out.pair("Firma:", SIGNATURE)
        out.line()
        out.pair("Recibe:", receipt.incoming_cashier)
        out.pair("Firma:", SIGNATURE)
        out.separator("-")

        out.pair("Efectivo Entregado:", format_currency(receipt.handoff_amount))
        out.pair("Efectivo Verificado:", format_currency(receipt.verified_amount))
        out.pair("Diferencia:", format_currency(receipt.variance))
        out.pair("Estado:", receipt.status)
        self._typed_footer(out, ReceiptType.SHIFT_HANDOFF)

    def _cash_expense_body(self, out: Layout, receipt: CashExpenseReceipt) -> None:
        self._typed_header(out, ReceiptType.CASH_EXPENSE)
        out.pair("Gasto #:", receipt.cash_expense_id)
        out.pair("Comprobante:", receipt.expense_id)
        out.pair("Turno:", receipt.shift_info)
        out.pair("Fecha:", self.format_date(receipt.date))
        out.separator("-")

        out.pair("Cajero:", receipt.cashier_name)
        out.pair("Categoría:", receipt.category)
        out.pair("Descripción:", receipt.description)
        out.pair("Monto:", format_currency(receipt.amount))
        out.separator("-")

        out.pair("Firma Cajero:", "________________")
        out.pair("Fecha:", "___________________")
        self._typed_footer(out, ReceiptType.CASH_EXPENSE)


def transcript(instructions: List[Instruction]) -> str:
    """
    Human-readable rendering of an instruction list with bracketed control markers.
    """
    return "".join(ins.marker for ins in instructions)


__all__ = [
    "Instruction",
    "Layout",
    "Preview",
    "ReceiptRenderer",
    "format_currency",
    "format_line",
    "format_payment_method",
    "transcript",
]
