"""
src/config.py

Runtime settings for the assistant core. Everything is read from the
environment once at import time; callers override per-instance where needed.
"""


import logging
import logging.handlers
import os
from enum import Enum
from pathlib import Path
from typing import Optional


class Backend(str, Enum):

    LOCAL = "local"
    REMOTE = "remote"


class TimeRange(str, Enum):

    WEEK = "7d"
    MONTH = "30d"
    ALL = "all"


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    """Read an integer env var; empty or "0" means unset."""

    raw = os.getenv(name)

    if raw is None or raw.strip() == "":
        return default
    value = int(raw)

    return value or None

def _env_float(name: str, default: Optional[float]) -> Optional[float]:

    raw = os.getenv(name)

    if raw is None or raw.strip() == "":
        return default
    value = float(raw)

    return value if value > 0 else None

def _env_flag(name: str, default: bool = False) -> bool:

    raw = os.getenv(name)

    if raw is None:
        return default

    return raw.strip().lower() in {"1", "true", "yes", "on"}


# --- Provider -------------------------------------------------------------------
OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")
DEFAULT_MODEL: str = os.getenv("ASSISTANT_MODEL", "gpt-5-nano")
MODEL_CHOICES = ["gpt-5-nano", "gpt-5-mini", "gpt-4o-mini", "gpt-4.1"]

# --- Workspace ------------------------------------------------------------------
DEFAULT_BACKEND: Backend = Backend(os.getenv("ASSISTANT_BACKEND", Backend.LOCAL.value))
PROJECT_ROOT: str = os.getenv("ASSISTANT_PROJECT_ROOT", "./")
REMOTE_URL: str = os.getenv("ASSISTANT_REMOTE_URL", "http://127.0.0.1:3000/api")
REMOTE_TOKEN: Optional[str] = os.getenv("ASSISTANT_REMOTE_TOKEN")
STORE_PATH: Path = Path(os.getenv("ASSISTANT_STORE_PATH", str(Path.home() / ".workbench" / "kv.json")))

# --- Orchestration --------------------------------------------------------------
MAX_TOOL_ROUNDS: Optional[int] = _env_int("ASSISTANT_MAX_ROUNDS", 25)   # None = unbounded
COMMAND_TIMEOUT: Optional[float] = _env_float("ASSISTANT_COMMAND_TIMEOUT", 120.0)
STRICT_PATCHES: bool = _env_flag("ASSISTANT_STRICT_PATCHES")

# --- Key-value namespaces -------------------------------------------------------
HISTORY_KEY = "ultimate_coder_history"
USAGE_KEY = "analytics:token_usage"
SUMMARY_PREFIX = "summary:"


def summary_key(path: str) -> str:

    return f"{SUMMARY_PREFIX}{path}"


# --- Logging --------------------------------------------------------------------
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "openai")


def setup_logging(
        level: int = logging.INFO,
        *,
        log_dir: Optional[Path] = None,
        console: bool = True,
        max_bytes: int = 1_000_000,
        backup_count: int = 3,
) -> Optional[Path]:
    """
    Configure root logging with an optional rotating file and a console handler.

    Args:
        level: Root log level.
        log_dir: Directory for assistant.log; no file handler when None.
        console: Also log to stderr.

    Returns: the log file path, or None when only console logging is active.
    """

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers = []
    log_path = None

    if log_dir is not None:
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "assistant.log"
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        handlers.append(file_handler)
    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Third-party clients are chatty at INFO
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return log_path
# EOF
