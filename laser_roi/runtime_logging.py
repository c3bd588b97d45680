"""JSONL diagnostics log for calculator runs.

Each line is one ``RuntimeEvent``. The app writes input sanitization,
integrity failures, goal-seek failures, report builds and uncaught exceptions
here; the Diagnostics tab reads the tail back.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import os
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from streamlit.runtime.scriptrunner import get_script_run_ctx


STORAGE_ENV_VAR = "LASER_ROI_STORAGE_ROOT"
DEFAULT_LOG_DIR = Path(".local_store")
LOG_FILE_NAME = "runtime_events.jsonl"
MAX_LOGGED_FINDINGS = 25

LOG_DIR = DEFAULT_LOG_DIR
RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME

_EXCEPTION_HOOK_INSTALLED = False


@dataclass
class RuntimeEvent:
    level: str
    event: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp_utc: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    exception_type: str | None = None
    exception_message: str | None = None
    traceback: str | None = None

    @classmethod
    def from_exception(cls, level: str, event: str, message: str, context: dict | None, exc: BaseException) -> "RuntimeEvent":
        return cls(
            level=level,
            event=event,
            message=message,
            context=context or {},
            exception_type=type(exc).__name__,
            exception_message=str(exc),
            traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )

    def to_json(self) -> str:
        record = {k: v for k, v in asdict(self).items() if v is not None}
        record["level"] = str(self.level).upper()
        return json.dumps(record, default=_json_default, ensure_ascii=False)


def _json_default(value: Any):
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def configure_log_root(path_value: str | Path | None) -> Path:
    """Point the log at ``path_value`` (``~`` and ``$VARS`` expanded); blank means the default."""
    global LOG_DIR, RUNTIME_EVENTS_LOG_FILE
    text = "" if path_value is None else str(path_value).strip()
    LOG_DIR = Path(os.path.expandvars(os.path.expanduser(text))) if text else DEFAULT_LOG_DIR
    RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME
    return LOG_DIR


def runtime_log_path() -> str:
    return str(RUNTIME_EVENTS_LOG_FILE.resolve())


def write_event(event: RuntimeEvent) -> None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with RUNTIME_EVENTS_LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(event.to_json() + "\n")
    except OSError:
        # Logging never interrupts a calculation.
        pass


def append_runtime_event(
    level: str,
    event: str,
    message: str,
    context: dict[str, Any] | None = None,
    exc: BaseException | None = None,
) -> None:
    if exc is not None:
        write_event(RuntimeEvent.from_exception(level, event, message, context, exc))
    else:
        write_event(RuntimeEvent(level=level, event=event, message=message, context=context or {}))


def log_input_warnings(source: str, warnings: list[str], unknown_keys: list[str]) -> None:
    if not warnings and not unknown_keys:
        return
    append_runtime_event(
        level="WARNING",
        event="input_sanitized",
        message=f"{len(warnings)} input warning(s), {len(unknown_keys)} unknown key(s).",
        context={"source": source, "warnings": warnings, "unknown_keys": unknown_keys},
    )


def log_integrity_findings(findings: list[dict[str, Any]]) -> None:
    if not findings:
        return
    append_runtime_event(
        level="ERROR",
        event="integrity_checks_failed",
        message=f"{len(findings)} integrity check(s) failed.",
        context={
            "finding_count": len(findings),
            "checks": sorted({str(f.get("Check", "")) for f in findings}),
            "findings": findings[:MAX_LOGGED_FINDINGS],
        },
    )


def log_goal_seek_failure(status: str, message: str, iterations: int, **context: Any) -> None:
    append_runtime_event(
        level="WARNING",
        event="goal_seek_failed",
        message=message,
        context={"status": status, "iterations": iterations, **context},
    )


def _parse_line(line: str) -> dict[str, Any]:
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return asdict(
            RuntimeEvent(level="ERROR", event="log_parse_error", message="Malformed log line encountered.", context={"line": line})
        )


def read_runtime_events(limit: int = 200, events: Iterable[str] | None = None) -> list[dict[str, Any]]:
    """Last ``limit`` records, oldest first, optionally restricted to some event names."""
    if limit <= 0 or not RUNTIME_EVENTS_LOG_FILE.exists():
        return []
    try:
        lines = RUNTIME_EVENTS_LOG_FILE.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    records = [_parse_line(line) for line in lines if line.strip()]
    if events is not None:
        wanted = set(events)
        records = [r for r in records if r.get("event") in wanted]
    return records[-int(limit) :]


def install_global_exception_logging() -> None:
    """Record uncaught exceptions raised during Streamlit script runs."""
    global _EXCEPTION_HOOK_INSTALLED
    if _EXCEPTION_HOOK_INSTALLED:
        return
    previous_hook = sys.excepthook

    def _hook(exc_type, exc, exc_tb):
        if get_script_run_ctx() is not None:
            append_runtime_event("ERROR", "uncaught_exception", str(exc), exc=exc)
        previous_hook(exc_type, exc, exc_tb)

    sys.excepthook = _hook
    _EXCEPTION_HOOK_INSTALLED = True


configure_log_root(os.getenv(STORAGE_ENV_VAR, ""))
