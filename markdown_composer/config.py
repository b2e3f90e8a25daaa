from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/markdown-composer/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "highlight_theme": "MARKDOWN_COMPOSER_HIGHLIGHT_THEME",
    "open_browser": "MARKDOWN_COMPOSER_OPEN_BROWSER",
    "browser": "MARKDOWN_COMPOSER_BROWSER",
    "preview_host": "MARKDOWN_COMPOSER_PREVIEW_HOST",
    "preview_port": "MARKDOWN_COMPOSER_PREVIEW_PORT",
    "connect_timeout_s": "MARKDOWN_COMPOSER_CONNECT_TIMEOUT_S",
    "log_level": "MARKDOWN_COMPOSER_LOG_LEVEL",
}

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("MARKDOWN_COMPOSER_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ComposerConfig:
    highlight_theme: str = "github"
    open_browser: bool = True
    browser: str | None = None
    preview_host: str = "127.0.0.1"
    # 0 lets the OS pick a free port.
    preview_port: int = 0
    connect_timeout_s: float = 5.0
    log_level: str = "WARNING"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_port(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if not 0 <= parsed <= 65535:
        warnings.warn(f"Invalid port for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_log_level(value: object, default: str, *, key: str) -> str:
    if value is None:
        return default
    if isinstance(value, str) and value.strip().upper() in LOG_LEVELS:
        return value.strip().upper()
    warnings.warn(f"Invalid log level for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_optional_str(value: object, *, key: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def load_config(path: Path | None = None) -> ComposerConfig:
    cfg = ComposerConfig()
    cfg = _apply_dict(cfg, read_config_file(path))
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: ComposerConfig, data: dict[str, Any]) -> ComposerConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key == "preview_port":
            cfg.preview_port = _parse_port(value, cfg.preview_port, key=key)
        elif key == "connect_timeout_s":
            cfg.connect_timeout_s = _parse_float(value, cfg.connect_timeout_s, key=key)
        elif key == "open_browser":
            cfg.open_browser = _coerce_bool(value, cfg.open_browser, key=key)
        elif key == "log_level":
            cfg.log_level = _coerce_log_level(value, cfg.log_level, key=key)
        elif key == "browser":
            cfg.browser = _coerce_optional_str(value, key=key)
        else:
            parsed = _coerce_optional_str(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
    return cfg
