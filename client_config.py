"""Client configuration and logging helpers for batchtranslate."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional, Union


DEFAULT_ORIGIN = "https://translate.google.com"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36 Edg/126.0.0.0"
)
DEFAULT_LOCALE = "en-US"
BOOTSTRAP_TTL = 300.0  # Seconds a bootstrapped token bundle stays usable.
DEFAULT_TIMEOUT = 15.0

LOGGER_NAME = "batchtranslate"
LOG_MAX_BYTES = 2_097_152
LOG_BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


@dataclass(frozen=True)
class ClientConfig:
    origin: str = DEFAULT_ORIGIN
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = DEFAULT_LOCALE
    bootstrap_ttl: float = BOOTSTRAP_TTL
    timeout: Optional[float] = DEFAULT_TIMEOUT
    extra_headers: Mapping[str, str] = field(default_factory=dict)


def get_logger(component: Optional[str] = None) -> logging.Logger:
    name = LOGGER_NAME if not component else f"{LOGGER_NAME}.{component}"
    return logging.getLogger(name)


def enable_file_logging(path: Union[str, Path], level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating file handler and a console handler to the library logger.

    Calling this more than once is a no-op once handlers are attached.
    """

    logger = get_logger()
    if logger.handlers:
        return logger

    logger.setLevel(level)
    log_path = Path(path)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    handler = RotatingFileHandler(
        log_path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    formatter = logging.Formatter(LOG_FORMAT)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)
    return logger


def _load_preferences(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def load_client_config(path: Union[str, Path], base: Optional[ClientConfig] = None) -> ClientConfig:
    """Merge overrides from a JSON preferences file onto ``base``.

    Unknown keys and values of the wrong type are ignored, and a missing or
    malformed file yields ``base`` unchanged.
    """

    config = base if base is not None else ClientConfig()
    data = _load_preferences(Path(path))
    overrides: dict = {}

    for key in ("origin", "user_agent", "locale"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            overrides[key] = value.strip()
    if "origin" in overrides:
        overrides["origin"] = overrides["origin"].rstrip("/")

    ttl = data.get("bootstrap_ttl")
    if isinstance(ttl, (int, float)) and not isinstance(ttl, bool) and ttl >= 0:
        overrides["bootstrap_ttl"] = float(ttl)

    if "timeout" in data:
        timeout = data["timeout"]
        if timeout is None:
            overrides["timeout"] = None
        elif isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
            overrides["timeout"] = float(timeout)

    headers = data.get("extra_headers")
    if isinstance(headers, dict):
        overrides["extra_headers"] = {
            str(name): value for name, value in headers.items() if isinstance(value, str)
        }

    return replace(config, **overrides)
