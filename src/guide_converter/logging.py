"""Structured, redacted logging shared by the pipeline, scheduler and API.

Every record goes to the standard library logger ``guide_converter.<scope>``.
Records bound to a run are additionally appended as JSON lines to that run's
``server.log`` so the log endpoint can replay them.
"""

from __future__ import annotations

import json
import logging
import re
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOGGER_ROOT = "guide_converter"

_SECRET_KEY_RE = re.compile(r"(key|token|authorization|apikey|api_key)", re.IGNORECASE)
_SECRET_QUERY_RE = re.compile(r"([?&])(key|token|access_token|api_key)=([^&#\s]+)", re.IGNORECASE)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def mask_secret(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    if len(trimmed) <= 8:
        return "***"
    return f"{trimmed[:3]}***{trimmed[-4:]}"


def scrub_url_secrets(text: str) -> str:
    return _SECRET_QUERY_RE.sub(lambda match: f"{match.group(1)}{match.group(2)}=***", text)


def sanitize(value: Any, key_hint: str | None = None) -> Any:
    if isinstance(value, str):
        if key_hint and _SECRET_KEY_RE.search(key_hint):
            return mask_secret(value)
        return scrub_url_secrets(value)
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    if isinstance(value, dict):
        return {str(key): sanitize(item, str(key)) for key, item in value.items()}
    if isinstance(value, Path):
        return str(value)
    return value


def error_to_dict(exc: BaseException | None) -> dict[str, Any]:
    if exc is None:
        return {"value": None}
    payload: dict[str, Any] = {
        "name": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    code = getattr(exc, "code", None)
    if code:
        payload["code"] = code
    cause = exc.__cause__ or exc.__context__
    if cause is not None and cause is not exc:
        payload["cause"] = {"name": type(cause).__name__, "message": str(cause)}
    return payload


@dataclass(slots=True)
class RunLogger:
    """Scope-bound structured logger, optionally mirrored to a run log file."""

    scope: str
    log_file: Path | None = None
    base: dict[str, Any] = field(default_factory=dict)

    def bind(self, scope: str | None = None, **fields: Any) -> "RunLogger":
        return RunLogger(
            scope=scope or self.scope,
            log_file=self.log_file,
            base={**self.base, **fields},
        )

    def debug(self, msg: str, **fields: Any) -> None:
        self._emit("debug", msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._emit("info", msg, fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self._emit("warn", msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._emit("error", msg, fields)

    def _emit(self, level: str, msg: str, fields: dict[str, Any]) -> None:
        payload = sanitize(
            {
                "ts": datetime.now(timezone.utc).isoformat(),
                "scope": self.scope,
                "level": level,
                "msg": msg,
                **self.base,
                **fields,
            }
        )
        line = json.dumps(payload, ensure_ascii=False, default=str)
        logging.getLogger(f"{LOGGER_ROOT}.{self.scope}").log(_LEVELS[level], line)
        if self.log_file is not None and payload.get("run_id"):
            self._append(line)

    def _append(self, line: str) -> None:
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with self.log_file.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            logging.getLogger(LOGGER_ROOT).warning("could not append run log line to %s", self.log_file)


def get_logger(scope: str, log_file: Path | None = None, **base: Any) -> RunLogger:
    return RunLogger(scope=scope, log_file=log_file, base=dict(base))


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)


def tail_lines(text: str, count: int) -> str:
    if count <= 0:
        return ""
    lines = text.splitlines()
    return "\n".join(lines[-count:])


def pretty_json_lines(text: str) -> str:
    blocks: list[str] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            blocks.append(json.dumps(json.loads(line), indent=2, ensure_ascii=False))
        except json.JSONDecodeError:
            blocks.append(line)
    return "\n\n".join(blocks)


__all__ = [
    "RunLogger",
    "error_to_dict",
    "get_logger",
    "mask_secret",
    "pretty_json_lines",
    "sanitize",
    "setup_logging",
    "tail_lines",
]
