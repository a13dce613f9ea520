from __future__ import annotations

import json
import logging
import os
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict

from .config import ProxyConfig

_log = logging.getLogger(__name__)

_NO_REQUEST = ("-", "-")
_request_context: ContextVar[tuple[str, str]] = ContextVar(
    "answer_proxy_request", default=_NO_REQUEST
)
_installed_handlers: list[logging.Handler] = []


def bind_request(origin: str | None) -> str:
    """Tag log lines emitted while serving this request with an id and origin."""
    request_id = uuid.uuid4().hex[:12]
    _request_context.set((request_id, origin or "-"))
    return request_id


def current_request_id() -> str:
    return _request_context.get()[0]


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id, record.origin = _request_context.get()
        return True


def service_log_path(cfg: ProxyConfig) -> Path:
    """Process log sits beside the JSONL request log: logs/answer_proxy.log."""
    return Path(cfg.log_path).expanduser().with_suffix(".log")


def configure_logging(
    cfg: ProxyConfig, *, level: int = logging.INFO, include_console: bool = True
) -> Path:
    """Route root logging to the service log (and stderr), tagged per request.

    Handlers from an earlier call are replaced, not stacked.
    """
    log_path = service_log_path(cfg)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s %(origin)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if include_console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(RequestContextFilter())
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)

    logging.captureWarnings(True)
    return log_path


class JsonlLogger:
    """Append-only request log, one JSON object per completed stream."""

    def __init__(self, path: str, max_bytes: int = 25_000_000):
        self.path = path
        self.max_bytes = max_bytes
        # Skip mkdir("") when only a filename is given.
        log_dir = os.path.dirname(path)
        if log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as exc:
                _log.warning("Cannot create request log directory %s: %s", log_dir, exc)

    def _rotate_if_needed(self):
        try:
            if (
                os.path.exists(self.path)
                and os.path.getsize(self.path) > self.max_bytes
            ):
                ts = time.strftime("%Y%m%d-%H%M%S")
                rotated = f"{self.path}.{ts}"
                os.rename(self.path, rotated)
        except OSError as exc:
            _log.warning("Request log rotation failed: %s", exc)

    def log(self, record: Dict[str, Any]):
        self._rotate_if_needed()
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as exc:
            _log.warning("Request log write failed: %s", exc)
