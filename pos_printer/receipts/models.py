from __future__ import annotations

"""
Receipt document models.

One frozen pydantic model per receipt variant. Field names are snake_case in
Python and camelCase on the wire (the POS front-end sends ``orderNumber``,
``cashExpenseId`` and so on). Numeric fields are finite numbers (booleans and
numeric strings are rejected); required strings are stripped and non-empty.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalStr = Optional[Annotated[str, StringConstraints(strip_whitespace=True)]]
Amount = Annotated[float, Field(strict=True, allow_inf_nan=False)]
PositiveAmount = Annotated[float, Field(strict=True, allow_inf_nan=False, gt=0)]
NonNegativeAmount = Annotated[float, Field(strict=True, allow_inf_nan=False, ge=0)]


class ReceiptType(str, Enum):
    SALES = "sales"
    CASH_TRANSFER = "cash_transfer"
    SHIFT_CLOSURE = "shift_closure"
    SHIFT_HANDOFF = "shift_handoff"
    CASH_EXPENSE = "cash_expense"

    @classmethod
    def lookup(cls, value: Union[str, "ReceiptType", None]) -> Optional["ReceiptType"]:
        """Case-insensitive lookup; None for tags this service does not know."""
        if isinstance(value, ReceiptType):
            return value
        tag = str(value or cls.SALES.value).strip().lower()
        try:
            return cls(tag)
        except ValueError:
            return None


class ReceiptModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @property
    def document_id(self) -> str:
        # Line items and other nested parts have no identifier of their own
        return "-"


class SaleItem(ReceiptModel):
    name: RequiredStr
    quantity: Amount
    price: Amount
    total: Amount


class SalesReceipt(ReceiptModel):
    order_number: RequiredStr
    date: RequiredStr
    cashier: OptionalStr = None
    items: List[SaleItem] = Field(min_length=1)
    subtotal: Amount
    tax: Amount
    total: Amount
    payment_method: RequiredStr
    tendered: Optional[Amount] = None
    change: Optional[Amount] = None
    transfer_reference: OptionalStr = None

    @property
    def document_id(self) -> str:
        return self.order_number


class CashTransferReceipt(ReceiptModel):
    transfer_id: RequiredStr
    date: RequiredStr
    shift_info: OptionalStr = None
    sender_name: RequiredStr
    receiver_name: RequiredStr
    amount: PositiveAmount
    notes: OptionalStr = None
    location_name: RequiredStr
    print_time: RequiredStr

    @property
    def document_id(self) -> str:
        return self.transfer_id


class ShiftClosureReceipt(ReceiptModel):
    shift_id: RequiredStr
    shift_type: RequiredStr
    shift_date: RequiredStr
    cashier_name: RequiredStr
    start_time: RequiredStr
    end_time: RequiredStr
    starting_cash: Amount
    ending_cash_expected: Amount
    ending_cash_counted: Amount
    variance: Amount
    shift_sales: Amount
    transfers_out: Amount
    location_name: RequiredStr
    print_time: RequiredStr

    @property
    def document_id(self) -> str:
        return self.shift_id


class ShiftHandoffReceipt(ReceiptModel):
    handoff_id: RequiredStr
    handoff_date: RequiredStr
    outgoing_cashier: RequiredStr
    incoming_cashier: RequiredStr
    handoff_amount: NonNegativeAmount
    verified_amount: NonNegativeAmount
    variance: Amount
    status: RequiredStr
    location_name: RequiredStr
    print_time: RequiredStr

    @property
    def document_id(self) -> str:
        return self.handoff_id


class CashExpenseReceipt(ReceiptModel):
    expense_id: RequiredStr
    cash_expense_id: RequiredStr
    date: RequiredStr
    cashier_name: RequiredStr
    category: RequiredStr
    description: RequiredStr
    amount: PositiveAmount
    shift_info: RequiredStr
    location_name: RequiredStr
    print_time: RequiredStr

    @property
    def document_id(self) -> str:
        return self.cash_expense_id


ReceiptDocument = Union[
    SalesReceipt,
    CashTransferReceipt,
    ShiftClosureReceipt,
    ShiftHandoffReceipt,
    CashExpenseReceipt,
]

RECEIPT_MODELS: Dict[ReceiptType, Type[ReceiptModel]] = {
    ReceiptType.SALES: SalesReceipt,
    ReceiptType.CASH_TRANSFER: CashTransferReceipt,
    ReceiptType.SHIFT_CLOSURE: ShiftClosureReceipt,
    ReceiptType.SHIFT_HANDOFF: ShiftHandoffReceipt,
    ReceiptType.CASH_EXPENSE: CashExpenseReceipt,
}


def parse_receipt(receipt_type: Union[str, ReceiptType, None], data: Any) -> Tuple[str, ReceiptModel]:
    """
    Validate ``data`` against the model for ``receipt_type``.

    Returns the normalized type tag and the validated document. Unknown tags are
    validated as sales receipts (with a warning) and keep their original tag so
    the renderer can apply the same fallback.

    Raises pydantic.ValidationError when the document does not match.
    """
    known = ReceiptType.lookup(receipt_type)
    if known is None:
        tag = str(receipt_type).strip().lower()
        logger.warning("Unknown receipt type: %s, falling back to sales validation", receipt_type)
        model = RECEIPT_MODELS[ReceiptType.SALES]
    else:
        tag = known.value
        model = RECEIPT_MODELS[known]
    if isinstance(data, Mapping):
        data = dict(data)
    return tag, model.model_validate(data)


__all__ = [
    "CashExpenseReceipt",
    "CashTransferReceipt",
    "RECEIPT_MODELS",
    "ReceiptDocument",
    "ReceiptModel",
    "ReceiptType",
    "SaleItem",
    "SalesReceipt",
    "ShiftClosureReceipt",
    "ShiftHandoffReceipt",
    "parse_receipt",
]
