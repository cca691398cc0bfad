"""Integration tests for the audit log service

Tests cover:
- Records are written inside the caller's transaction and roll back with it
- Standalone writes
- Per-tenant hash chains and tamper detection
- Writers serialize on the tenant row before reading the chain head
- Tenant-scoped listing with filters
- Retention cleanup (audited, permission-gated, tenant-scoped)
"""

from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from warden.audit.actions import AuditAction
from warden.audit.chain import GENESIS_HASH
from warden.audit.service import (
    AuditEntry,
    AuditService,
    chain_head_lock,
    create_audit_log,
    run_global_retention_cleanup,
)
from warden.clock import utcnow
from warden.database import atomic
from warden.errors import ForbiddenError, ValidationFailedError
from warden.models.audit_log import AuditLog

pytestmark = pytest.mark.integration


def write(db, tenant_id, action=AuditAction.LOGIN_FAILED, **kwargs):
    kwargs.setdefault("metadata", {"email": "member@acme.com", "reason": "invalid_password"})
    with atomic(db):
        return create_audit_log(AuditEntry(tenant_id=tenant_id, action=action, **kwargs), session=db)


def age_records(db, tenant_id, days):
    db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id).update(
        {"created_at": utcnow() - timedelta(days=days)}, synchronize_session=False
    )
    db.commit()


class TestCreateAuditLog:
    """Write path"""

    def test_metadata_is_sanitized(self, db_session, tenant):
        record = write(
            db_session,
            tenant.id,
            metadata={"email": "member@acme.com", "reason": "invalid_password", "password": "hunter2"},
        )
        assert record.metadata_json == {"email": "member@acme.com", "reason": "invalid_password"}
        assert record.action == "LOGIN_FAILED"

    def test_long_details_truncated(self, db_session, tenant):
        record = write(db_session, tenant.id, details="d" * 5000)
        assert len(record.details) == 1003

    def test_rollback_discards_record(self, db_session, tenant):
        with pytest.raises(RuntimeError):
            with atomic(db_session):
                create_audit_log(AuditEntry(tenant_id=tenant.id, action=AuditAction.LOGOUT), session=db_session)
                raise RuntimeError("mutation failed")

        assert db_session.query(AuditLog).count() == 0

    def test_standalone_write_commits(self, db_session, tenant):
        record = create_audit_log(AuditEntry(tenant_id=tenant.id, action=AuditAction.LOGOUT, metadata={"sessionId": 9}))
        assert record.id is not None
        assert db_session.query(AuditLog).filter(AuditLog.id == record.id).count() == 1


class TestHashChain:
    """Per-tenant chain"""

    def test_records_are_linked(self, db_session, tenant):
        first = write(db_session, tenant.id)
        second = write(db_session, tenant.id)

        assert first.previous_hash == GENESIS_HASH
        assert second.previous_hash == first.entry_hash

    def test_tenants_have_separate_chains(self, db_session, tenant, other_tenant):
        write(db_session, tenant.id)
        theirs = write(db_session, other_tenant.id)
        assert theirs.previous_hash == GENESIS_HASH

    def test_writers_lock_the_tenant_row(self, db_session, tenant):
        statement = chain_head_lock(db_session, tenant.id).statement
        sql = str(statement.compile(dialect=postgresql.dialect()))

        assert "FROM tenant" in sql
        assert "FOR UPDATE" in sql

    def test_tenant_locked_before_chain_head_read(self, db_session, tenant):
        write(db_session, tenant.id)
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        engine = db_session.get_bind()
        event.listen(engine, "before_cursor_execute", capture)
        try:
            write(db_session, tenant.id)
        finally:
            event.remove(engine, "before_cursor_execute", capture)

        tenant_lock = next(i for i, sql in enumerate(statements) if "FROM tenant" in sql)
        head_read = next(i for i, sql in enumerate(statements) if "SELECT audit_log.entry_hash" in sql)
        insert = next(i for i, sql in enumerate(statements) if sql.startswith("INSERT INTO audit_log"))
        assert tenant_lock < head_read < insert

    def test_verify_detects_tampering(self, db_session, tenant):
        records = [write(db_session, tenant.id) for _ in range(3)]
        service = AuditService(db_session)
        assert service.verify_tenant_chain(tenant.id).valid is True

        db_session.query(AuditLog).filter(AuditLog.id == records[1].id).update(
            {"details": "nothing happened"}, synchronize_session=False
        )
        db_session.commit()

        result = service.verify_tenant_chain(tenant.id)
        assert result.valid is False
        assert result.first_invalid_id == records[1].id


class TestListLogs:
    """Tenant-scoped queries"""

    def test_filters_and_tenant_scope(self, db_session, tenant, other_tenant):
        write(db_session, tenant.id)
        write(db_session, tenant.id, action=AuditAction.LOGOUT, metadata={"sessionId": 1})
        write(db_session, other_tenant.id)

        service = AuditService(db_session)
        items, total = service.list_logs(tenant.id)
        assert total == 2
        assert all(item.tenant_id == tenant.id for item in items)

        items, total = service.list_logs(tenant.id, action="LOGOUT")
        assert total == 1
        assert items[0].action == "LOGOUT"

    def test_newest_first_with_pagination(self, db_session, tenant):
        ids = [write(db_session, tenant.id).id for _ in range(5)]

        items, total = AuditService(db_session).list_logs(tenant.id, page=2, per_page=2)
        assert total == 5
        assert [item.id for item in items] == [ids[2], ids[1]]


class TestRetentionCleanup:
    """Permission-gated pruning of old records"""

    def test_deletes_old_records_and_audits_itself(self, db_session, tenant, admin, make_auth):
        for _ in range(3):
            write(db_session, tenant.id)
        age_records(db_session, tenant.id, days=3 * 365)
        recent = write(db_session, tenant.id)

        result = AuditService(db_session).cleanup(make_auth(admin), retention_months=24)

        assert result["deleted_count"] == 3
        assert result["retention_months"] == 24
        remaining = db_session.query(AuditLog).order_by(AuditLog.id).all()
        assert [r.action for r in remaining] == ["LOGIN_FAILED", "AUDIT_RETENTION_CLEANUP"]
        assert remaining[0].id == recent.id
        assert remaining[1].metadata_json["deletedCount"] == 3
        assert AuditService(db_session).verify_tenant_chain(tenant.id).valid is True

    def test_other_tenants_untouched(self, db_session, tenant, other_tenant, admin, make_auth):
        write(db_session, other_tenant.id)
        age_records(db_session, other_tenant.id, days=3 * 365)

        result = AuditService(db_session).cleanup(make_auth(admin), retention_months=1)

        assert result["deleted_count"] == 0
        assert db_session.query(AuditLog).filter(AuditLog.tenant_id == other_tenant.id).count() == 1

    def test_requires_admin_access(self, db_session, member, make_auth):
        with pytest.raises(ForbiddenError):
            AuditService(db_session).cleanup(make_auth(member), retention_months=24)

    def test_rejects_zero_months(self, db_session, admin, make_auth):
        with pytest.raises(ValidationFailedError):
            AuditService(db_session).cleanup(make_auth(admin), retention_months=0)

    def test_global_cleanup_covers_every_tenant(self, db_session, tenant, other_tenant):
        write(db_session, tenant.id)
        write(db_session, other_tenant.id)
        age_records(db_session, tenant.id, days=800)
        age_records(db_session, other_tenant.id, days=800)

        stats = run_global_retention_cleanup(db_session, retention_months=24)

        assert stats == {"tenants_processed": 2, "deleted_count": 2, "errors": 0}
        assert db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.AUDIT_RETENTION_CLEANUP.value
        ).count() == 2

        # Idempotent
        assert run_global_retention_cleanup(db_session, retention_months=24)["deleted_count"] == 0
