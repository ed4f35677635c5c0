import csv
import io
import json
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from statichost.models.audit import AuditFilters, AuditLog
from statichost.models.enums import AuditResource, AuditStatus
from statichost.models.user import User
from statichost.services import audit as audit_service
from statichost.services.audit import AuditMeta


@pytest.fixture(name="entries")
def entries_fixture(session: Session, admin: User, user: User) -> list[AuditLog]:
    meta = AuditMeta(ip_address="198.51.100.4", user_agent="pytest")
    return [
        audit_service.log_user_action(session, admin, "user.update", user.id_user, {"name": "New"}, meta=meta),
        audit_service.log_user_action(
            session,
            admin,
            "user.suspend",
            user.id_user,
            status=AuditStatus.FAILED,
            error="You cannot suspend your own account",
        ),
        audit_service.log_site_action(session, admin, "site.suspend", 42, {"reason": "Spam"}),
        audit_service.log_system_action(session, "system.cleanup", {"hits_deleted": 3}),
    ]


class TestLogAction:
    def test_user_action(self, entries: list[AuditLog], admin: User, user: User):
        entry = entries[0]
        assert entry.id_audit is not None
        assert entry.id_admin == admin.id_user
        assert entry.id_user == user.id_user
        assert entry.resource == AuditResource.USER
        assert entry.resource_id == str(user.id_user)
        assert entry.details == {"name": "New"}
        assert entry.ip_address == "198.51.100.4"
        assert entry.status == AuditStatus.SUCCESS

    def test_site_and_system_actions(self, entries: list[AuditLog]):
        site_entry, system_entry = entries[2], entries[3]
        assert site_entry.id_site == 42
        assert site_entry.resource == AuditResource.SITE
        assert system_entry.id_admin is None
        assert system_entry.resource == AuditResource.SYSTEM
        assert system_entry.resource_id is None

    def test_failed_action(self, entries: list[AuditLog]):
        assert entries[1].status == AuditStatus.FAILED
        assert entries[1].error == "You cannot suspend your own account"


class TestGetLogs:
    def test_newest_first_with_admin(self, session: Session, entries: list[AuditLog], admin: User):
        logs, total = audit_service.get_logs(session, AuditFilters())

        assert total == 4
        assert [entry.action for entry in logs] == [
            "system.cleanup",
            "site.suspend",
            "user.suspend",
            "user.update",
        ]
        assert logs[0].admin is None
        assert logs[1].admin.email == admin.email

    @pytest.mark.parametrize(
        "filters, expected",
        [
            (AuditFilters(resource=AuditResource.USER), 2),
            (AuditFilters(status=AuditStatus.FAILED), 1),
            (AuditFilters(action="site.suspend"), 1),
            (AuditFilters(search="suspend"), 2),
            (AuditFilters(id_site=42), 1),
        ],
    )
    def test_filters(self, session: Session, entries: list[AuditLog], filters, expected):
        _, total = audit_service.get_logs(session, filters)
        assert total == expected

    def test_filter_by_admin(self, session: Session, entries: list[AuditLog], admin: User):
        _, total = audit_service.get_logs(session, AuditFilters(id_admin=admin.id_user))
        assert total == 3

    def test_pagination(self, session: Session, entries: list[AuditLog]):
        logs, total = audit_service.get_logs(session, AuditFilters(), page=2, limit=3)
        assert total == 4
        assert [entry.action for entry in logs] == ["user.update"]


class TestStats:
    def test_get_stats(self, session: Session, entries: list[AuditLog], admin: User):
        stats = audit_service.get_stats(session)

        assert stats["summary"]["total"] == 4
        assert stats["summary"]["failed"] == 1
        assert stats["summary"]["success_rate"] == 75.0
        assert stats["summary"]["today"] == 4
        assert {"action": "user.suspend", "total": 1, "success": 0, "failed": 1} in stats["by_action"]
        assert stats["by_resource"][0] == {"resource": AuditResource.USER.value, "count": 2}
        assert stats["by_admin"] == [
            {"id_admin": admin.id_user, "name": admin.name, "email": admin.email, "count": 3}
        ]
        assert len(stats["daily"]) == 1

    def test_empty_log(self, session: Session):
        summary = audit_service.get_stats(session)["summary"]
        assert summary["total"] == 0
        assert summary["success_rate"] == 100.0


class TestExportAndCleanup:
    def test_export_csv(self, session: Session, entries: list[AuditLog], admin: User):
        rows = list(csv.reader(io.StringIO(audit_service.export_logs(session, AuditFilters()))))

        assert rows[0] == audit_service.CSV_HEADERS
        assert rows[1][1:4] == ["System", "system.cleanup", AuditResource.SYSTEM.value]
        assert rows[4][1] == admin.email
        assert rows[4][6:] == ["198.51.100.4", "pytest"]

    def test_export_json(self, session: Session, entries: list[AuditLog]):
        data = json.loads(
            audit_service.export_logs(session, AuditFilters(resource=AuditResource.SITE), "json")
        )
        assert len(data) == 1
        assert data[0]["details"] == {"reason": "Spam"}

    def test_unsupported_format(self, session: Session):
        with pytest.raises(ValueError):
            audit_service.export_logs(session, AuditFilters(), "xlsx")

    def test_cleanup(self, session: Session, entries: list[AuditLog]):
        old = entries[0]
        old.created_at = datetime.now() - timedelta(days=400)
        session.add(old)
        session.commit()

        assert audit_service.cleanup(session, 365) == 1
        assert len(session.exec(select(AuditLog)).all()) == 3
