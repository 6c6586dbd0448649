"""
POS Printer package

This module provides the application factory:
- Builds settings (defaults, config file, POSPRINTER_* env, overrides) and configures logging
- Builds the spooler adapter (CUPS or simulated) and verifies it is reachable
- Wires the receipt renderer and the print-job manager into app.extensions
- Enables CORS, request ids and per-request logging, and JSON error handlers
- Registers the api, status and jobs blueprints
- Optionally starts the periodic printer refresher
"""

from __future__ import annotations

import importlib
import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from pos_printer.core.config import get_settings
from pos_printer.core.errors import PrintServiceError
from pos_printer.core.logging import configure_logging
from pos_printer.printing.manager import PrintJobManager
from pos_printer.printing.render import ReceiptRenderer
from pos_printer.printing.spooler import SpoolerAdapter, build_spooler

MAX_REQUEST_ID_LEN = 128

DEFAULT_BLUEPRINTS: Tuple[Tuple[str, str], ...] = (
    ("pos_printer.web.status", "status_bp"),  # service info, status, printers, queue, healthz
    ("pos_printer.web.api", "api_bp"),  # print, preview, test prints
    ("pos_printer.web.jobs", "jobs_bp"),  # spooler job status/cancel
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    mod = importlib.import_module(import_path)
    app.register_blueprint(getattr(mod, attr))
    app.logger.debug(f"Registered blueprint: {import_path}.{attr}")


def _set_request_id() -> None:
    """
    Use the caller's X-Request-ID when present so logs correlate across services.
    """
    inbound = (request.headers.get("X-Request-ID") or "").strip()
    g.request_id = inbound[:MAX_REQUEST_ID_LEN] if inbound else uuid.uuid4().hex
    g.request_started = time.perf_counter()


def _split_overrides(config_overrides: Optional[Mapping[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    # UPPER_CASE keys are Flask config, lower-case keys are service settings sections
    flask_cfg: Dict[str, Any] = {}
    settings: Dict[str, Any] = {}
    for key, value in (config_overrides or {}).items():
        (flask_cfg if key.isupper() else settings)[key] = value
    return flask_cfg, settings


def _register_error_handlers(app: Flask) -> None:
    from pos_printer.web.status import ENDPOINTS

    @app.errorhandler(PrintServiceError)
    def _print_service_error(e: PrintServiceError):
        body = {"success": False, **e.to_dict(), "timestamp": _now_iso()}
        return jsonify(body), e.http_status

    @app.errorhandler(404)
    def _not_found(e):
        return (
            jsonify(
                {
                    "success": False,
                    "outcome": "not_found",
                    "error": "Endpoint not found",
                    "availableEndpoints": list(ENDPOINTS.values()),
                    "timestamp": _now_iso(),
                }
            ),
            404,
        )

    @app.errorhandler(413)
    def _too_large(e):
        limit = app.config.get("MAX_CONTENT_LENGTH")
        return (
            jsonify(
                {
                    "success": False,
                    "outcome": "payload_too_large",
                    "error": f"Request body exceeds {limit} bytes",
                    "timestamp": _now_iso(),
                }
            ),
            413,
        )

    @app.errorhandler(500)
    def _internal_error(e):
        original = getattr(e, "original_exception", None)
        app.logger.error(f"Unhandled error: {original or e}", exc_info=original)
        return (
            jsonify(
                {
                    "success": False,
                    "outcome": "internal_error",
                    "error": "Internal server error",
                    "timestamp": _now_iso(),
                }
            ),
            500,
        )


def create_app(
    config_overrides: Optional[Mapping[str, Any]] = None,
    spooler: Optional[SpoolerAdapter] = None,
    register_worker: bool = True,
    settings_path: Optional[str] = None,
    blueprints: Optional[Sequence[Tuple[str, str]]] = None,
    run_async: Optional[Callable[[Callable[[], Any]], None]] = None,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: UPPER_CASE keys go to app.config (e.g. TESTING); other
      keys are merged into the service settings (e.g. {"queue": {"max_size": 5}})
    - spooler: use this adapter instead of building one from settings
    - register_worker: if True, starts the periodic printer refresher
    - settings_path: explicit JSON config path (default resolves via env/XDG)
    - blueprints: optional list of (import_path, attribute) tuples to register
    - run_async: runner for the drain pass after a successful print

    Raises SpoolerUnavailable when the print system cannot be reached.
    """
    flask_overrides, settings_overrides = _split_overrides(config_overrides)
    settings = get_settings(settings_path, overrides=settings_overrides)

    configure_logging(settings)

    app = Flask("pos_printer")
    app.config["MAX_CONTENT_LENGTH"] = int(settings["server"]["max_content_length"])
    app.json.sort_keys = False
    app.url_map.strict_slashes = False
    if flask_overrides:
        app.config.update(flask_overrides)

    # The POS front-end is a browser app on another origin
    CORS(app)

    if spooler is None:
        spooler = build_spooler(settings, logger=logging.getLogger("pos_printer.spooler"))
    spooler.initialize()

    renderer = ReceiptRenderer(settings, logger=logging.getLogger("pos_printer.render"))
    manager = PrintJobManager(
        spooler,
        renderer,
        capacity=int(settings["queue"]["max_size"]),
        logger=logging.getLogger("pos_printer.manager"),
        run_async=run_async,
    )
    app.extensions["pos_printer"] = {
        "settings": settings,
        "spooler": spooler,
        "renderer": renderer,
        "manager": manager,
    }

    @app.before_request
    def _before_request():
        _set_request_id()

    @app.after_request
    def _after_request(response):
        response.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        started = getattr(g, "request_started", None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
        app.logger.info(f"{request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    _register_error_handlers(app)
    for import_path, attr in blueprints or DEFAULT_BLUEPRINTS:
        _register_blueprint(app, import_path, attr)

    if register_worker:
        manager.start_refresher(float(settings["printers"]["refresh_interval_seconds"]))

    app.logger.info(
        f"POS Printer app created (spooler={type(spooler).__name__}, queue_max={manager.capacity})"
    )
    return app


__all__ = ["create_app"]
