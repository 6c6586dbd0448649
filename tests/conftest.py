# Ensure the repository root is on sys.path so `pos_printer` can be imported in tests.

import sys
from pathlib import Path


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

from typing import Any, Callable, Dict, List, Optional

import pytest

from pos_printer.core.errors import SpoolerError
from pos_printer.printing.manager import PrintJobManager
from pos_printer.printing.render import ReceiptRenderer
from pos_printer.printing.spooler import JobHandle, PrinterInfo, SimulatedSpooler

_ENV_VARS = (
    "POSPRINTER_CONFIG_PATH",
    "POSPRINTER_HOST",
    "POSPRINTER_PORT",
    "POSPRINTER_MAX_CONTENT_LENGTH",
    "POSPRINTER_SPOOLER",
    "POSPRINTER_REFRESH_SECONDS",
    "POSPRINTER_QUEUE_MAX",
    "POSPRINTER_LOG_DIR",
    "POSPRINTER_JSON_LOGS",
    "POSPRINTER_LOG_LEVEL",
)


class FakeSpooler(SimulatedSpooler):
    """
    Simulated spooler with knobs for tests: scripted failures, call
    recording and an on_submit hook.
    """

    def __init__(self, printers=None):
        super().__init__(printers if printers is not None else [])
        self.titles: List[str] = []
        self.fail_with: Optional[str] = None
        self.fail_titles: set = set()
        self.refresh_error: Optional[Exception] = None
        self.refresh_calls = 0
        self.on_submit: Optional[Callable[[str], None]] = None

    def refresh(self):
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        return super().refresh()

    def submit(self, data: bytes, printer_name: str, job_name: Optional[str] = None) -> JobHandle:
        title = job_name or "-"
        if self.fail_with is not None:
            raise SpoolerError(self.fail_with)
        if title in self.fail_titles:
            raise SpoolerError(f"rejected {title}")
        handle = super().submit(data, printer_name, job_name)
        self.titles.append(title)
        if self.on_submit is not None:
            self.on_submit(title)
        return handle


def inline(fn):
    fn()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POSPRINTER_CONFIG_PATH", str(tmp_path / "config.json"))
    yield


@pytest.fixture
def spooler() -> FakeSpooler:
    return FakeSpooler([PrinterInfo(name="Rongta", status="online", is_default=True, model="RP80")])


@pytest.fixture
def renderer() -> ReceiptRenderer:
    return ReceiptRenderer()


@pytest.fixture
def manager(spooler, renderer) -> PrintJobManager:
    return PrintJobManager(spooler, renderer, capacity=10, run_async=inline)


@pytest.fixture
def app(spooler):
    from pos_printer import create_app

    app = create_app(config_overrides={"TESTING": True}, spooler=spooler, register_worker=False, run_async=inline)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def sales_payload(order_number: str = "A-1001", total: float = 27.67) -> Dict[str, Any]:
    return {
        "orderNumber": order_number,
        "date": "2024-03-15T14:30:00",
        "cashier": "Ana",
        "items": [
            {"name": "Buñuelo", "quantity": 3, "price": 5.0, "total": 15.0},
            {"name": "Café", "quantity": 1, "price": 10.5, "total": 10.5},
        ],
        "subtotal": 25.5,
        "tax": 2.17,
        "total": total,
        "paymentMethod": "cash",
        "tendered": 30,
        "change": 2.33,
    }


@pytest.fixture
def sales_doc() -> Dict[str, Any]:
    return sales_payload()
