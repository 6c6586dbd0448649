"""
Core utilities for the POS Printer service.

This package groups non-Flask helpers used across the service:
- config: config path resolution, JSON load/save, merged settings
- logging: Request ID aware logging filters/formatters and root logger config
- errors: print-service error taxonomy

Exports are explicit to keep static analyzers (e.g., Pyright) happy.
"""

from .config import (
    DEFAULT_SETTINGS,
    default_config_path,
    get_config_path,
    get_settings,
    load_config,
    save_config,
)
from .errors import (
    NoPrintersAvailable,
    PrintFailed,
    PrintServiceError,
    PrinterNotFound,
    QueueFull,
    SpoolerError,
    SpoolerUnavailable,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    configure_logging,
)

__all__ = [
    # config
    "DEFAULT_SETTINGS",
    "default_config_path",
    "get_config_path",
    "get_settings",
    "load_config",
    "save_config",
    # errors
    "NoPrintersAvailable",
    "PrintFailed",
    "PrintServiceError",
    "PrinterNotFound",
    "QueueFull",
    "SpoolerError",
    "SpoolerUnavailable",
    # logging
    "configure_logging",
    "RequestIdFilter",
    "JsonFormatter",
]
