"""Integration tests for security alert hand-off and evaluation

Tests cover:
- Records are handed to alert evaluation only after commit
- Rolled back work never reaches the dispatcher
- Dispatcher failures never affect the committing request
- Alert rules (repeated failed logins, MFA changes, token reuse)
- Deduplication
- Dashboard queries
- Tasks bound to the configured Celery app
"""

import pytest

from warden.alerts.dispatch import DISPATCHER_KEY, AlertDispatcher
from warden.alerts.service import REPEATED_FAILED_LOGINS, AlertService, evaluate_event_safely
from warden.audit.actions import AuditAction
from warden.audit.service import AuditEntry, create_audit_log
from warden.config import get_settings
from warden.database import atomic
from warden.errors import NotFoundError
from warden.models.audit_log import AuditLog
from warden.models.security_alert import SecurityAlert
from warden.rbac.permissions import ADMIN_ROLE_NAME

pytestmark = pytest.mark.integration


def failed_login(db, identity):
    with atomic(db):
        return create_audit_log(
            AuditEntry(
                tenant_id=identity.tenant_id,
                action=AuditAction.LOGIN_FAILED,
                actor_id=identity.id,
                target_id=identity.id,
                metadata={"email": identity.email, "reason": "invalid_password"},
            ),
            session=db,
        )


def audit(db, identity, action, **kwargs):
    with atomic(db):
        return create_audit_log(
            AuditEntry(tenant_id=identity.tenant_id, action=action, actor_id=identity.id, **kwargs),
            session=db,
        )


class TestAfterCommitDispatch:
    """Hand-off of committed audit records"""

    def test_committed_records_are_dispatched(self, db_session, tenant, member, recorded_alerts):
        record = failed_login(db_session, member)
        assert recorded_alerts == [(tenant.id, record.id)]

    def test_rolled_back_records_are_not_dispatched(self, db_session, tenant, recorded_alerts):
        with pytest.raises(RuntimeError):
            with atomic(db_session):
                create_audit_log(AuditEntry(tenant_id=tenant.id, action=AuditAction.LOGOUT), session=db_session)
                raise RuntimeError("mutation failed")

        db_session.commit()
        assert recorded_alerts == []

    def test_dispatch_failure_does_not_fail_commit(self, db_session, tenant, member):
        class BrokenDispatcher(AlertDispatcher):
            def dispatch(self, tenant_id, audit_log_id):
                raise ConnectionError("broker down")

        db_session.info[DISPATCHER_KEY] = BrokenDispatcher()
        record = failed_login(db_session, member)

        assert db_session.query(AuditLog).filter(AuditLog.id == record.id).count() == 1


class TestCeleryBinding:
    """Tasks are registered on the configured worker app"""

    def test_alert_task_uses_configured_broker(self):
        from warden.alerts.tasks import evaluate_audit_event_task
        from warden.workers.celery_app import celery_app

        assert evaluate_audit_event_task.app is celery_app
        assert evaluate_audit_event_task.app.conf.broker_url == get_settings().CELERY_BROKER_URL
        assert "alerts.evaluate_event" in celery_app.tasks

    def test_retention_task_uses_configured_broker(self):
        from warden.audit.tasks import audit_retention_cleanup_task
        from warden.workers.celery_app import celery_app

        assert audit_retention_cleanup_task.app is celery_app
        assert "audit.retention_cleanup" in celery_app.tasks


class TestRules:
    """Alert rules"""

    def test_failed_logins_below_threshold(self, db_session, member):
        records = [failed_login(db_session, member) for _ in range(4)]
        assert AlertService(db_session).evaluate_event(records[-1]) is None

    def test_failed_logins_at_threshold_raise_high(self, db_session, member):
        records = [failed_login(db_session, member) for _ in range(5)]

        alert = AlertService(db_session).evaluate_event(records[-1])

        assert alert.alert_type == REPEATED_FAILED_LOGINS
        assert alert.severity == "HIGH"
        assert alert.identity_id == member.id
        assert alert.message.startswith("5 failed login attempts")

    def test_one_alert_per_window_then_escalation(self, db_session, member):
        service = AlertService(db_session)
        raised = []
        for _ in range(10):
            record = failed_login(db_session, member)
            alert = service.evaluate_event(record)
            if alert is not None:
                raised.append(alert.severity)

        assert raised == ["HIGH", "CRITICAL"]

    def test_same_record_evaluated_twice(self, db_session, member):
        service = AlertService(db_session)
        record = audit(db_session, member, AuditAction.MFA_DISABLED, target_id=member.id)

        assert service.evaluate_event(record).severity == "MEDIUM"
        assert service.evaluate_event(record) is None
        assert db_session.query(SecurityAlert).count() == 1

    def test_refresh_token_reuse_is_critical(self, db_session, member):
        record = audit(db_session, member, AuditAction.REFRESH_TOKEN_REUSE, target_id=member.id)
        assert AlertService(db_session).evaluate_event(record).severity == "CRITICAL"

    def test_admin_reset_owned_by_target(self, db_session, admin, member):
        record = audit(db_session, admin, AuditAction.USER_MFA_RESET_BY_ADMIN, target_id=member.id)
        alert = AlertService(db_session).evaluate_event(record)
        assert alert.identity_id == member.id
        assert alert.severity == "HIGH"

    def test_ordinary_actions_raise_nothing(self, db_session, member):
        record = audit(db_session, member, AuditAction.LOGOUT)
        assert AlertService(db_session).evaluate_event(record) is None


class TestEvaluateSafely:
    """Worker entry point never raises"""

    def test_missing_record(self, db_session, tenant):
        assert evaluate_event_safely(db_session, 424242, tenant_id=tenant.id) is None

    def test_wrong_tenant(self, db_session, member, other_tenant):
        record = audit(db_session, member, AuditAction.MFA_DISABLED, target_id=member.id)
        assert evaluate_event_safely(db_session, record.id, tenant_id=other_tenant.id) is None
        assert db_session.query(SecurityAlert).count() == 0

    def test_evaluation_error_is_swallowed(self, db_session, member, monkeypatch):
        record = audit(db_session, member, AuditAction.MFA_DISABLED, target_id=member.id)

        def explode(self, record):
            raise RuntimeError("rule bug")

        monkeypatch.setattr(AlertService, "evaluate_event", explode)
        assert evaluate_event_safely(db_session, record.id) is None

    def test_raises_alert(self, db_session, member):
        record = audit(db_session, member, AuditAction.REFRESH_TOKEN_REUSE, target_id=member.id)
        alert = evaluate_event_safely(db_session, record.id, tenant_id=member.tenant_id)
        assert alert.audit_log_id == record.id


class TestDashboard:
    """Listing, acknowledgement and statistics"""

    @pytest.fixture
    def alert(self, db_session, member):
        record = audit(db_session, member, AuditAction.REFRESH_TOKEN_REUSE, target_id=member.id)
        return AlertService(db_session).evaluate_event(record)

    def test_list_and_mark_read(self, db_session, alert, admin, make_auth):
        auth = make_auth(admin)
        service = AlertService(db_session)

        items, total = service.list_alerts(auth, is_read=False)
        assert total == 1
        assert items[0].id == alert.id

        service.mark_read(auth, alert.id)
        assert service.list_alerts(auth, is_read=False)[1] == 0

    def test_mark_read_other_tenant_not_found(self, db_session, alert, other_tenant, make_identity, make_auth):
        outsider = make_auth(make_identity(other_tenant, "admin@globex.com", roles=[ADMIN_ROLE_NAME]))
        with pytest.raises(NotFoundError):
            AlertService(db_session).mark_read(outsider, alert.id)

    def test_security_stats(self, db_session, alert, admin, member, make_auth):
        failed_login(db_session, member)
        member.mfa_enabled = True
        db_session.commit()

        stats = AlertService(db_session).security_stats(make_auth(admin))

        assert stats == {
            "active_identities": 2,
            "mfa_enabled_identities": 1,
            "mfa_adoption_rate": 0.5,
            "failed_logins_24h": 1,
            "unread_high_alerts": 1,
        }
