from __future__ import annotations

import bisect
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import IO


def utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


_REQUEST_ID: ContextVar[str] = ContextVar("gopkgs_gen_request_id", default="")


def set_request_id(request_id: str | None = None) -> str:
    """Bind the id stamped on every log line and metric; a fresh one when omitted."""
    value = request_id or uuid.uuid4().hex
    _REQUEST_ID.set(value)
    return value


def get_request_id() -> str:
    return _REQUEST_ID.get() or set_request_id()


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record. Event fields never shadow the fixed keys."""

    def format(self, record: logging.LogRecord) -> str:
        extra = record.__dict__
        payload = dict(extra.get("fields") or {})
        payload.update(
            event=extra.get("event", record.getMessage()),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            request_id=extra.get("request_id") or get_request_id(),
            ts=utc_now_iso(),
        )
        return json.dumps(payload, sort_keys=True)


class _StderrHandler(logging.StreamHandler):
    """Resolves sys.stderr on every record instead of once at setup."""

    @property
    def stream(self) -> IO[str]:
        return sys.stderr

    @stream.setter
    def stream(self, value: IO[str]) -> None:
        pass


def setup_json_logger(name: str, *, stream: IO[str] | None = None) -> logging.Logger:
    """JSON logger writing to `stream` (stderr by default); stdout stays clean."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = _StderrHandler() if stream is None else logging.StreamHandler(stream)
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    **fields: object,
) -> None:
    extra = {"event": event, "fields": fields, "request_id": get_request_id()}
    logger.log(level, event, extra=extra)


# upper bounds, in ms, of the latency buckets a run is filed under
LATENCY_BUCKETS_MS = (100, 1000, 5000, 30000, 120000)


def latency_bucket(latency_ms: float) -> str:
    i = bisect.bisect_left(LATENCY_BUCKETS_MS, latency_ms)
    if i == len(LATENCY_BUCKETS_MS):
        return f"gt_{LATENCY_BUCKETS_MS[-1]}ms"
    return f"le_{LATENCY_BUCKETS_MS[i]}ms"


class MetricsEmitter:
    """Appends one JSON line per generator run to `path`."""

    def __init__(self, path: Path) -> None:
        self.path = path
        ensure_dir(path.parent)

    def emit(
        self,
        *,
        metric: str,
        status: str,
        latency_ms: float,
        descriptors_written: int = 0,
        error: str | None = None,
    ) -> None:
        line = json.dumps(
            {
                "descriptors_written": descriptors_written,
                "error": error,
                "latency_bucket": latency_bucket(latency_ms),
                "latency_ms": round(latency_ms, 3),
                "metric": metric,
                "request_id": get_request_id(),
                "status": status,
                "success": status == "success",
                "ts": utc_now_iso(),
            },
            sort_keys=True,
        )
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
