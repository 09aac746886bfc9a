import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from guard import AuditCategory, AuditEntry, AuditLevel, AuditLogger, Principal, Role
from guard.audit import sanitize_for_log


@pytest.fixture
def someone():
    return Principal(id=5, role=Role.admin, username="admin5")


def test_convenience_constructors_set_level_and_category(audit, someone):
    audit.log_auth(someone, "login")
    audit.log_auth(None, "login", success=False)
    audit.log_permission(someone, "view_admins", "Query.getAdmins", success=False)
    audit.log_data_access(someone, "get_teacher", "teacher", 9)
    audit.log_data_modification(someone, "update_teacher", "teacher", 9, changes={"fullname": "X"})
    audit.log_security(someone, "change_teacher_status", "teacher")

    got = [(e.level, e.category) for e in audit.get_logs()]
    assert got == [
        (AuditLevel.INFO, AuditCategory.AUTHENTICATION),
        (AuditLevel.WARNING, AuditCategory.AUTHENTICATION),
        (AuditLevel.SECURITY, AuditCategory.AUTHORIZATION),
        (AuditLevel.INFO, AuditCategory.DATA_ACCESS),
        (AuditLevel.INFO, AuditCategory.DATA_MODIFICATION),
        (AuditLevel.SECURITY, AuditCategory.SECURITY),
    ]
    assert audit.get_logs(action="update_teacher")[0].details == {"changes": {"fullname": "X"}}


def test_filters(audit, someone):
    other = Principal(id=9, role=Role.teacher, username="t")
    audit.log_permission(someone, "view_admins", None)
    audit.log_permission(other, "view_admins", None, success=False)
    audit.log_security(other, "bulk_delete", "teacher")

    assert len(audit.get_logs(principal_id=9)) == 2
    assert len(audit.get_logs(action="view_admins")) == 2
    assert len(audit.get_logs(level="security")) == 2
    assert len(audit.get_logs(category=AuditCategory.SECURITY)) == 1
    assert audit.get_logs(principal_id=9, level=AuditLevel.SECURITY, category="authorization")[0].success is False


def test_time_range_filter(audit):
    now = datetime.now(timezone.utc)
    for days in (10, 5, 1):
        audit.log(AuditEntry(action=f"a{days}", timestamp=now - timedelta(days=days)))

    assert [e.action for e in audit.get_logs(start=now - timedelta(days=6))] == ["a5", "a1"]
    assert [e.action for e in audit.get_logs(end=now - timedelta(days=2))] == ["a10", "a5"]
    # naive bounds are read as UTC
    naive = (now - timedelta(days=6)).replace(tzinfo=None)
    assert len(audit.get_logs(start=naive)) == 2


def test_prune_by_age(audit):
    now = datetime.now(timezone.utc)
    audit.log(AuditEntry(action="old", timestamp=now - timedelta(days=45)))
    audit.log(AuditEntry(action="recent", timestamp=now - timedelta(days=2)))

    assert audit.prune(older_than_days=30) == 1
    assert [e.action for e in audit.get_logs()] == ["recent"]


def test_prune_rejects_negative_age(audit):
    audit.log(AuditEntry(action="kept"))
    with pytest.raises(ValueError):
        audit.prune(older_than_days=-1)
    assert len(audit) == 1


def test_malformed_entry_never_raises(audit, someone, caplog):
    with caplog.at_level(logging.ERROR, logger="guard.audit"):
        assert audit.log_permission(someone, 123, "gate", success=False) is None
    assert len(audit) == 0
    assert "Audit logging error" in caplog.text


def test_details_are_sanitized(audit, someone):
    audit.log_auth(someone, "login", details={
        "username": "admin5",
        "password": "hunter2",
        "nested": {"access_token": "abc", "note": "header was Bearer eyJhbGciOi.x.y"},
    })
    [entry] = audit.get_logs()
    assert entry.details["password"] == "[REDACTED]"
    assert entry.details["nested"]["access_token"] == "[REDACTED]"
    assert "eyJ" not in entry.details["nested"]["note"]
    assert entry.details["username"] == "admin5"


def test_sanitize_does_not_mutate_input():
    data = {"password": "x", "items": ["Bearer abc.def"]}
    sanitize_for_log(data)
    assert data == {"password": "x", "items": ["Bearer abc.def"]}


def test_disabled_logger_records_nothing(someone):
    audit = AuditLogger(enabled=False)
    assert audit.log_auth(someone, "login") is None
    assert audit.get_logs() == []


def test_sink_failure_never_raises(audit, someone, caplog):
    # not JSON/deepcopy friendly
    class Unclonable:
        def __deepcopy__(self, memo):
            raise RuntimeError("cannot copy")

    with caplog.at_level(logging.ERROR, logger="guard.audit"):
        result = audit.log_security(someone, "weird", None, details={"obj": Unclonable()})
    assert result is None
    assert "Audit logging error" in caplog.text


def test_file_sink_writes_jsonl(tmp_path, someone):
    path = tmp_path / "audit" / "audit_log.jsonl"
    audit = AuditLogger(log_file=path)
    audit.log_permission(someone, "view_admins", "Query.getAdmins", details={"reason": "Permission granted"})
    audit.log_auth(None, "login", success=False, details={"password": "nope"})
    audit.close()  # stop() drains the queue

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["action"] for line in lines] == ["view_admins", "login"]
    assert lines[0]["principal_id"] == 5
    assert lines[0]["level"] == "info"
    assert lines[1]["details"]["password"] == "[REDACTED]"


def test_console_sink(capsys, someone):
    audit = AuditLogger(echo=True)
    audit.log_permission(someone, "view_admins", "Query.getAdmins", success=False)
    audit.close()
    err = capsys.readouterr().err
    assert "[AUDIT] SECURITY: view_admins by admin(5)" in err
