"""Tests for the audit recorder."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from campus.core.rbac.audit import AuditRecord, AuditRecorder, SessionAuditWriter
from campus.core.rbac.permissions import PermissionCheck


CHECK = PermissionCheck("reports", "read", resource="salary", resource_id=15)


class TestAuditRecord:

    def test_from_check_defaults_reason(self):
        granted = AuditRecord.from_check(3, CHECK, True)
        denied = AuditRecord.from_check(3, CHECK, False)

        assert granted.reason == "Permission granted"
        assert denied.reason == "Permission denied"
        assert granted.module == "reports"
        assert granted.resource == "salary"
        assert granted.resource_id == "15"
        assert granted.created_at is not None

    def test_explicit_reason(self):
        assert AuditRecord.from_check(3, CHECK, False, "nope").reason == "nope"


class TestAuditRecorder:
    """Recording is best-effort and never raises."""

    def test_inline_write(self):
        records = []
        AuditRecorder(records.append, background=False).record(3, CHECK, True)
        assert len(records) == 1
        assert records[0].principal_id == 3
        assert records[0].allowed is True

    def test_background_write_drains_on_shutdown(self):
        records = []
        recorder = AuditRecorder(records.append, background=True, max_workers=1)
        for _ in range(5):
            recorder.record(3, CHECK, False)
        recorder.shutdown(wait=True)
        assert len(records) == 5

    def test_writer_failure_is_swallowed(self, caplog):
        writer = MagicMock(side_effect=RuntimeError("disk full"))
        recorder = AuditRecorder(writer, background=False)

        recorder.record(3, CHECK, True)

        writer.assert_called_once()
        assert "Failed to write audit record" in caplog.text

    def test_background_failure_is_swallowed(self):
        writer = MagicMock(side_effect=RuntimeError("disk full"))
        recorder = AuditRecorder(writer, background=True)
        recorder.record(3, CHECK, True)
        recorder.shutdown(wait=True)
        writer.assert_called_once()

    def test_disabled(self):
        writer = MagicMock()
        AuditRecorder(writer, background=False, enabled=False).record(3, CHECK, True)
        writer.assert_not_called()


class TestSessionAuditWriter:
    """Test the database writer with a mocked session."""

    def test_commits_and_closes(self):
        session = MagicMock()
        SessionAuditWriter(lambda: session)(AuditRecord.from_check(3, CHECK, True))

        session.add.assert_called_once()
        entry = session.add.call_args[0][0]
        assert entry.user_id == 3
        assert entry.allowed is True
        assert entry.resource_id == "15"
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_rolls_back_and_closes_on_error(self):
        session = MagicMock()
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
        writer = SessionAuditWriter(lambda: session)

        with pytest.raises(OperationalError):
            writer(AuditRecord.from_check(3, CHECK, True))

        session.rollback.assert_called_once()
        session.close.assert_called_once()

    def test_writes_through_policy_store(self, monkeypatch):
        appended = []
        monkeypatch.setattr(
            "campus.db.store.SqlAlchemyPolicyStore.append_audit",
            lambda self, record: appended.append((self.db, record)),
        )
        session = MagicMock()
        record = AuditRecord.from_check(3, CHECK, False)

        SessionAuditWriter(lambda: session)(record)

        assert appended == [(session, record)]
        session.add.assert_not_called()
        session.close.assert_called_once()
