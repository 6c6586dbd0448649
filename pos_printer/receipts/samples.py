"""
Fixed sample documents for the per-type test endpoints.

Each builder takes the current time so the printed test receipt carries a real
date; pass ``now`` explicitly for reproducible output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .models import (
    CashExpenseReceipt,
    CashTransferReceipt,
    ReceiptModel,
    ReceiptType,
    SalesReceipt,
    ShiftClosureReceipt,
    ShiftHandoffReceipt,
)

SAMPLE_LOCATION = "Buñuelisimo - Test"


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def sample_sales(now: Optional[datetime] = None) -> SalesReceipt:
    return SalesReceipt(
        order_number="TEST-001",
        date=_now(now).isoformat(),
        cashier="Test Cashier",
        items=[
            {"name": "Test Item 1", "quantity": 2, "price": 10.00, "total": 20.00},
            {"name": "Test Item 2", "quantity": 1, "price": 5.50, "total": 5.50},
        ],
        subtotal=25.50,
        tax=2.17,
        total=27.67,
        payment_method="cash",
        tendered=30.00,
        change=2.33,
    )


def sample_cash_transfer(now: Optional[datetime] = None) -> CashTransferReceipt:
    stamp = _now(now).isoformat()
    return CashTransferReceipt(
        transfer_id="TEST-TRANS-001",
        date=stamp,
        shift_info="Turno de prueba",
        sender_name="Juan Pérez",
        receiver_name="María García",
        amount=1250000,
        notes="Transferencia de prueba",
        location_name=SAMPLE_LOCATION,
        print_time=stamp,
    )


def sample_shift_closure(now: Optional[datetime] = None) -> ShiftClosureReceipt:
    ts = _now(now)
    return ShiftClosureReceipt(
        shift_id="TEST-SHIFT-001",
        shift_type="Turno de prueba",
        shift_date=ts.date().isoformat(),
        cashier_name="Ana López",
        start_time="09:00",
        end_time="17:00",
        starting_cash=500000,
        ending_cash_expected=1350000,
        ending_cash_counted=1348000,
        variance=-2000,
        shift_sales=850000,
        transfers_out=800000,
        location_name=SAMPLE_LOCATION,
        print_time=ts.isoformat(),
    )


def sample_shift_handoff(now: Optional[datetime] = None) -> ShiftHandoffReceipt:
    stamp = _now(now).isoformat()
    return ShiftHandoffReceipt(
        handoff_id="TEST-HAND-001",
        handoff_date=stamp,
        outgoing_cashier="Carlos Ruiz",
        incoming_cashier="Laura Silva",
        handoff_amount=548000,
        verified_amount=548000,
        variance=0,
        status="VERIFICADO",
        location_name=SAMPLE_LOCATION,
        print_time=stamp,
    )


def sample_cash_expense(now: Optional[datetime] = None) -> CashExpenseReceipt:
    stamp = _now(now).isoformat()
    return CashExpenseReceipt(
        expense_id="TEST-EXP-001",
        cash_expense_id="TEST-CASH-001",
        date=stamp,
        cashier_name="Roberto Díaz",
        category="Pruebas",
        description="Gasto de prueba",
        amount=25000,
        shift_info="Turno de prueba",
        location_name=SAMPLE_LOCATION,
        print_time=stamp,
    )


SAMPLE_BUILDERS: Dict[ReceiptType, Callable[[Optional[datetime]], ReceiptModel]] = {
    ReceiptType.SALES: sample_sales,
    ReceiptType.CASH_TRANSFER: sample_cash_transfer,
    ReceiptType.SHIFT_CLOSURE: sample_shift_closure,
    ReceiptType.SHIFT_HANDOFF: sample_shift_handoff,
    ReceiptType.CASH_EXPENSE: sample_cash_expense,
}


def build_sample(receipt_type: ReceiptType, now: Optional[datetime] = None) -> ReceiptModel:
    return SAMPLE_BUILDERS[receipt_type](now)


__all__ = [
    "SAMPLE_BUILDERS",
    "build_sample",
    "sample_cash_expense",
    "sample_cash_transfer",
    "sample_sales",
    "sample_shift_closure",
    "sample_shift_handoff",
]
