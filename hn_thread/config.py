import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from hn_thread.constants import (
    CLI_BACKOFF_BASE,
    CLI_MAX_ATTEMPTS,
    EXTERNAL_REQUEST_SEMAPHORE,
    HTTP_TIMEOUT,
)

CONFIG_DIR = Path.home() / ".config" / "hn_thread"
CONFIG_FILE = CONFIG_DIR / "config.json"

ENV_PREFIX = "HN_THREAD_"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(key: str, value: Any):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


@dataclass(frozen=True)
class Settings:
    max_concurrency: int = EXTERNAL_REQUEST_SEMAPHORE
    max_attempts: Optional[int] = CLI_MAX_ATTEMPTS  # 0 or "none" in config = unbounded
    backoff: float = CLI_BACKOFF_BASE
    timeout: Optional[float] = None  # Overall deadline in seconds
    http_timeout: float = HTTP_TIMEOUT
    log_level: str = "WARNING"


def _coerce(name: str, raw: Any) -> Any:
    if name == "log_level":
        return str(raw).upper()
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in ("", "none")):
        return None
    if name in ("max_concurrency", "max_attempts"):
        value = int(raw)
        if name == "max_attempts" and value <= 0:
            return None
        return value
    return float(raw)


def get_settings(overrides: Optional[dict[str, Any]] = None) -> Settings:
    """Resolve settings: defaults < config file < HN_THREAD_* env < overrides."""
    values: dict[str, Any] = {}
    config = load_config()
    for name in Settings.__dataclass_fields__:
        raw: Any = config.get(name)
        env = os.environ.get(ENV_PREFIX + name.upper())
        if env is not None:
            raw = env
        if overrides and overrides.get(name) is not None:
            raw = overrides[name]
        if raw is None:
            continue
        try:
            values[name] = _coerce(name, raw)
        except (TypeError, ValueError):
            # Ignore malformed values and keep the default
            continue
    return Settings(**values)
