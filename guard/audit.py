# QMR Guard - Audit logging (every authentication/authorization decision is recorded)
import copy
import json
import logging
import logging.handlers
import queue
import re
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .models import AuditCategory, AuditEntry, AuditLevel, Principal

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "guard.audit"
SENSITIVE_KEY = re.compile(r"pass(word)?|token|secret|authorization|credential", re.IGNORECASE)
BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9\-_.=]+")

_RECORD_LEVELS = {
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARNING: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
    AuditLevel.SECURITY: logging.CRITICAL,
}


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def sanitize_for_log(data: dict) -> dict:
    """Copy of data with credential-like keys and bearer tokens scrubbed."""
    sanitized = copy.deepcopy(data)

    def _scrub(obj):
        if isinstance(obj, dict):
            for key in list(obj.keys()):
                val = obj[key]
                if isinstance(key, str) and SENSITIVE_KEY.search(key):
                    obj[key] = "[REDACTED]"
                elif isinstance(val, str):
                    obj[key] = BEARER_PATTERN.sub("Bearer [REDACTED]", val)
                else:
                    _scrub(val)
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                if isinstance(item, str):
                    obj[i] = BEARER_PATTERN.sub("Bearer [REDACTED]", item)
                else:
                    _scrub(item)

    _scrub(sanitized)
    return sanitized


class AuditFileHandler(logging.Handler):
    """Durable sink: one JSON object per line."""

    def __init__(self, filepath: Path):
        super().__init__()
        self.filepath = Path(filepath)
        self.filepath.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, record):
        try:
            e = getattr(record, "audit_entry", None)
            if e:
                with open(self.filepath, "a", encoding="utf-8") as f:
                    f.write(json.dumps(e, default=str) + "\n")
        except Exception:
            self.handleError(record)


class AuditConsoleHandler(logging.StreamHandler):
    def __init__(self, stream=None):
        super().__init__(stream or sys.stderr)

    def format(self, record):
        e = getattr(record, "audit_entry", None) or {}
        outcome = "ok" if e.get("success") else "denied"
        return (
            f"[AUDIT] {str(e.get('level', '')).upper()}: {e.get('action')} "
            f"by {e.get('role')}({e.get('principal_id')}) on {e.get('resource')} -> {outcome}"
        )


class AuditLogger:
    """
    Append-only audit trail.

    Entries are kept in memory (filterable, prunable) and forwarded to the
    configured durable sinks through a QueueHandler -> QueueListener
    pipeline. Nothing here raises into the caller: failures are reported
    through the module logger.
    """

    def __init__(self, enabled: bool = True, log_file: Path | str | None = None, echo: bool = False):
        self.enabled = enabled
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        self._sink: logging.handlers.QueueHandler | None = None
        self._listener: logging.handlers.QueueListener | None = None

        handlers: list[logging.Handler] = []
        if log_file:
            handlers.append(AuditFileHandler(Path(log_file)))
        if echo:
            handlers.append(AuditConsoleHandler())
        if handlers:
            q: queue.Queue = queue.Queue(-1)
            self._sink = logging.handlers.QueueHandler(q)
            self._listener = logging.handlers.QueueListener(q, *handlers, respect_handler_level=True)
            self._listener.start()

    # --- core ---
    def log(self, entry: AuditEntry) -> AuditEntry | None:
        if not self.enabled:
            return None
        try:
            entry = entry.model_copy(update={"details": sanitize_for_log(entry.details)})
            with self._lock:
                self._entries.append(entry)
            if self._sink is not None:
                record = logging.LogRecord(
                    name=AUDIT_LOGGER_NAME, level=_RECORD_LEVELS[entry.level], pathname="", lineno=0,
                    msg="audit", args=(), exc_info=None,
                )
                record.audit_entry = entry.model_dump(mode="json")
                self._sink.handle(record)
            return entry
        except Exception:
            logger.exception("Audit logging error (action=%s)", getattr(entry, "action", None))
            return None

    def _entry(self, principal: Principal | None, **fields) -> AuditEntry | None:
        if not self.enabled:
            return None
        try:
            entry = AuditEntry(
                principal_id=principal.id if principal else None,
                role=principal.role.value if principal else None,
                **fields,
            )
        except Exception:
            logger.exception("Audit logging error (action=%s)", fields.get("action"))
            return None
        return self.log(entry)

    # --- convenience constructors ---
    def log_auth(self, principal: Principal | None, action: str, success: bool = True,
                 details: dict[str, Any] | None = None) -> AuditEntry | None:
        return self._entry(
            principal, action=action, resource="authentication",
            level=AuditLevel.INFO if success else AuditLevel.WARNING,
            category=AuditCategory.AUTHENTICATION, success=success, details=details or {},
        )

    def log_permission(self, principal: Principal | None, action: str, resource: str | None,
                       success: bool = True, details: dict[str, Any] | None = None,
                       resource_id: int | str | None = None) -> AuditEntry | None:
        return self._entry(
            principal, action=action, resource=resource, resource_id=resource_id,
            level=AuditLevel.INFO if success else AuditLevel.SECURITY,
            category=AuditCategory.AUTHORIZATION, success=success, details=details or {},
        )

    def log_data_access(self, principal: Principal | None, action: str, resource: str,
                        resource_id: int | str | None = None,
                        details: dict[str, Any] | None = None) -> AuditEntry | None:
        return self._entry(
            principal, action=action, resource=resource, resource_id=resource_id,
            level=AuditLevel.INFO, category=AuditCategory.DATA_ACCESS, details=details or {},
        )

    def log_data_modification(self, principal: Principal | None, action: str, resource: str,
                              resource_id: int | str | None = None, changes: dict[str, Any] | None = None,
                              details: dict[str, Any] | None = None) -> AuditEntry | None:
        return self._entry(
            principal, action=action, resource=resource, resource_id=resource_id,
            level=AuditLevel.INFO, category=AuditCategory.DATA_MODIFICATION,
            details={**(details or {}), "changes": changes or {}},
        )

    def log_security(self, principal: Principal | None, action: str, resource: str | None,
                     details: dict[str, Any] | None = None, success: bool = True,
                     error_message: str | None = None) -> AuditEntry | None:
        return self._entry(
            principal, action=action, resource=resource,
            level=AuditLevel.SECURITY, category=AuditCategory.SECURITY,
            success=success, details=details or {}, error_message=error_message,
        )

    # --- retrieval / retention ---
    def get_logs(
        self,
        principal_id: int | None = None,
        action: str | None = None,
        level: AuditLevel | str | None = None,
        category: AuditCategory | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AuditEntry]:
        with self._lock:
            entries = list(self._entries)
        if principal_id is not None:
            entries = [e for e in entries if e.principal_id == principal_id]
        if action:
            entries = [e for e in entries if e.action == action]
        if level:
            entries = [e for e in entries if e.level == AuditLevel(level)]
        if category:
            entries = [e for e in entries if e.category == AuditCategory(category)]
        if start:
            start = _aware(start)
            entries = [e for e in entries if e.timestamp >= start]
        if end:
            end = _aware(end)
            entries = [e for e in entries if e.timestamp <= end]
        return entries

    def prune(self, older_than_days: int = 30) -> int:
        if older_than_days < 0:
            raise ValueError("older_than_days must be >= 0")
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.timestamp > cutoff]
            removed = before - len(self._entries)
        if removed:
            logger.info("Pruned %d audit entries older than %d days", removed, older_than_days)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            self._sink = None
