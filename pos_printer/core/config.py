"""
Config utilities for the POS Printer service.

Responsibilities:
- Resolve the config path with environment and XDG support
- Provide JSON load/save helpers for the service config
- Merge defaults, the config file, environment overrides and explicit
  overrides into one settings dict
"""

from __future__ import annotations

import copy
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_SETTINGS: Dict[str, Any] = {
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
        "max_content_length": 10 * 1024 * 1024,
    },
    "receipt": {
        "paper_width": 48,
        "restaurant_name": "RESTAURANT NAME",
        "address": None,
        "phone": None,
        "tax_label": "IVA:",
        "footer_message": "Disfruta tu buñuelísimo!",
        "date_format": "default",
        "logo_path": None,
        "logo_width": 384,
        "receipt_types": {},
    },
    "queue": {
        "max_size": 10,
    },
    "printers": {
        "spooler": "cups",
        "refresh_interval_seconds": 30,
        "lp_path": "lp",
        "lpstat_path": "lpstat",
        "lpoptions_path": "lpoptions",
        "cancel_path": "cancel",
        "submit_timeout_seconds": 30,
        "simulated_printers": [
            {"name": "Simulated", "status": "online", "is_default": True, "model": "Virtual ESC/POS"},
        ],
    },
    "logging": {
        "directory": None,
    },
}


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/posprinter/config.json
    2) ~/.config/posprinter/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "posprinter" / "config.json")
    return str(Path.home() / ".config" / "posprinter" / "config.json")


def get_config_path() -> str:
    """
    Return the config path honoring POSPRINTER_CONFIG_PATH override.
    """
    return os.environ.get("POSPRINTER_CONFIG_PATH", default_config_path())


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


def _deep_merge(base: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in extra.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _env_overrides() -> Dict[str, Any]:
    env: Dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        if value is not None:
            env.setdefault(section, {})[key] = value

    put("server", "host", os.environ.get("POSPRINTER_HOST") or None)
    put("server", "port", _env_int("POSPRINTER_PORT"))
    put("server", "max_content_length", _env_int("POSPRINTER_MAX_CONTENT_LENGTH"))
    put("printers", "spooler", os.environ.get("POSPRINTER_SPOOLER") or None)
    put("printers", "refresh_interval_seconds", _env_int("POSPRINTER_REFRESH_SECONDS"))
    put("queue", "max_size", _env_int("POSPRINTER_QUEUE_MAX"))
    put("logging", "directory", os.environ.get("POSPRINTER_LOG_DIR") or None)
    return env


def get_settings(path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the effective settings.

    Precedence (lowest to highest): built-in defaults, the JSON config file,
    POSPRINTER_* environment variables, explicit overrides.
    """
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    file_cfg = load_config(path)
    if file_cfg:
        _deep_merge(settings, file_cfg)
    _deep_merge(settings, _env_overrides())
    if overrides:
        _deep_merge(settings, overrides)

    spooler = str(settings["printers"].get("spooler") or "cups").strip().lower()
    if spooler not in ("cups", "simulated"):
        raise ValueError(f"Unsupported spooler: {spooler}")
    settings["printers"]["spooler"] = spooler
    if int(settings["queue"]["max_size"]) < 0:
        raise ValueError("queue.max_size must be >= 0")
    return settings


__all__ = [
    "DEFAULT_SETTINGS",
    "default_config_path",
    "get_config_path",
    "get_settings",
    "load_config",
    "save_config",
]
