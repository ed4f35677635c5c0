import pytest
from sqlmodel import Session, select

from statichost.core.config import get_settings
from statichost.core.security import decode_token
from statichost.exceptions import (
    AlreadyExistsError,
    InsufficientPermissionsError,
    NotFoundError,
    ValidationError,
)
from statichost.models.audit import AuditLog
from statichost.models.enums import AuditStatus, Role, SiteStatus, UserStatus
from statichost.models.site import Site, SiteCreate
from statichost.models.user import User
from statichost.services import admin as admin_service
from statichost.services import site as site_service
from statichost.services.audit import AuditMeta


def audit_entries(session: Session, action: str) -> list[AuditLog]:
    return list(session.exec(select(AuditLog).where(AuditLog.action == action)).all())


class TestPlatform:
    def test_platform_stats(self, session: Session, admin: User, user: User, published_site: Site):
        site_service.create_site(session, user, SiteCreate(name="Draft"))

        stats = admin_service.get_platform_stats(session)

        assert stats["users"]["total"] == 2
        assert stats["users"]["verification_rate"] == 100.0
        assert stats["sites"] == {
            "total": 2,
            "active": 1,
            "pending": 1,
            "suspended": 0,
            "new_today": 2,
            "activation_rate": 50.0,
        }
        assert stats["storage"]["total"] == published_site.quota_used
        assert stats["analytics"]["total_hits"] == 0

    def test_system_health(self, session: Session, storage):
        health = admin_service.get_system_health(session)
        assert health["database"] == {"status": "healthy"}
        assert health["storage"] == {"status": "healthy", "bucket": storage.bucket_name}
        assert health["email"]["status"] == "unhealthy"

    def test_unhealthy_storage(self, session: Session, storage):
        storage.healthy = False
        assert admin_service.get_system_health(session)["storage"]["status"] == "unhealthy"


class TestUsers:
    def test_list_users_with_search(self, session: Session, admin: User, user: User, site: Site):
        users, total = admin_service.list_users(session, search="OWNER")
        assert total == 1
        assert users[0].email == user.email
        assert users[0].site_count == 1

    def test_user_detail(self, session: Session, user: User, published_site: Site):
        detail = admin_service.get_user_detail(session, user.id_user)
        assert detail["user"].site_count == 1
        assert detail["stats"]["sites"]["active"] == 1
        assert detail["stats"]["storage"]["used"] == published_site.quota_used

    def test_user_detail_missing(self, session: Session):
        with pytest.raises(NotFoundError):
            admin_service.get_user_detail(session, 999)

    def test_update_user(self, session: Session, admin: User, user: User):
        meta = AuditMeta(ip_address="10.0.0.1", user_agent="pytest")
        updated = admin_service.update_user(
            session, admin, user.id_user, {"roles": ["admin"], "max_sites": "25"}, meta
        )

        assert updated.roles == [Role.USER.value, Role.ADMIN.value]
        assert updated.max_sites == 25
        [entry] = audit_entries(session, "user.update")
        assert entry.status == AuditStatus.SUCCESS
        assert entry.ip_address == "10.0.0.1"
        assert entry.details["updates"]["max_sites"] == 25

    def test_unknown_fields_are_audited_as_failed(self, session: Session, admin: User, user: User):
        with pytest.raises(ValidationError, match="Invalid update fields: password, email"):
            admin_service.update_user(
                session, admin, user.id_user, {"password": "x", "email": "y", "name": "Ok"}
            )
        [entry] = audit_entries(session, "user.update")
        assert entry.status == AuditStatus.FAILED
        assert entry.id_user == user.id_user

    def test_empty_update(self, session: Session, admin: User, user: User):
        with pytest.raises(ValidationError, match="No valid updates provided"):
            admin_service.update_user(session, admin, user.id_user, {})

    def test_invalid_roles(self, session: Session, admin: User, user: User):
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_user(session, admin, user.id_user, {"roles": ["root"]})
        assert exc_info.value.field == "roles"

    @pytest.mark.parametrize("roles", [[{}], "admin", [1]])
    def test_malformed_roles(self, session: Session, admin: User, user: User, roles):
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_user(session, admin, user.id_user, {"roles": roles})
        assert exc_info.value.field == "roles"

    @pytest.mark.parametrize("value", ["false", 0, None])
    def test_email_verified_must_be_boolean(self, session: Session, admin: User, user: User, value):
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_user(session, admin, user.id_user, {"email_verified": value})
        assert exc_info.value.field == "email_verified"
        session.refresh(user)
        assert user.email_verified is True

    def test_cannot_drop_own_admin_role(self, session: Session, admin: User):
        with pytest.raises(ValidationError, match="You cannot remove your own admin role"):
            admin_service.update_user(session, admin, admin.id_user, {"roles": ["user"]})

    def test_suspend_user_suspends_active_sites(
        self, session: Session, admin: User, user: User, published_site: Site
    ):
        suspended = admin_service.suspend_user(session, admin, user.id_user, "Abuse")

        assert suspended.status == UserStatus.SUSPENDED
        assert suspended.suspension_reason == "Abuse"
        session.refresh(published_site)
        assert published_site.status == SiteStatus.SUSPENDED
        [entry] = audit_entries(session, "user.suspend")
        assert entry.details == {"reason": "Abuse", "suspended_sites": 1}

    def test_cannot_suspend_self(self, session: Session, admin: User):
        with pytest.raises(ValidationError, match="You cannot suspend your own account"):
            admin_service.suspend_user(session, admin, admin.id_user)

    def test_activate_user(self, session: Session, admin: User, user: User):
        admin_service.suspend_user(session, admin, user.id_user, "Abuse")
        activated = admin_service.activate_user(session, admin, user.id_user)
        assert activated.status == UserStatus.ACTIVE
        assert activated.suspension_reason is None

    def test_delete_user(self, session: Session, admin: User, user: User, published_site: Site):
        deleted = admin_service.delete_user(session, admin, user.id_user)

        assert deleted.status == UserStatus.DELETED
        assert deleted.name == "Deleted User"
        assert deleted.email.startswith("deleted_")
        assert deleted.email.endswith(f"_{user.id_user}@deleted.com")
        session.refresh(published_site)
        assert published_site.status == SiteStatus.DELETED
        [entry] = audit_entries(session, "user.delete")
        assert entry.details == {"email": "owner@example.com", "deleted_sites": 1}

    def test_cannot_delete_platform_owner(
        self, session: Session, admin: User, user: User, monkeypatch
    ):
        monkeypatch.setattr(get_settings(), "ADMIN_EMAILS", user.email)
        with pytest.raises(InsufficientPermissionsError, match="Platform owner accounts"):
            admin_service.delete_user(session, admin, user.id_user)

    def test_cannot_delete_self(self, session: Session, admin: User):
        with pytest.raises(ValidationError):
            admin_service.delete_user(session, admin, admin.id_user)

    def test_impersonate_user(self, session: Session, admin: User, user: User):
        result = admin_service.impersonate_user(session, admin, user.id_user)

        assert result["token_type"] == "bearer"
        assert result["expires_in"] == 3600
        assert result["user"].email == user.email
        payload = decode_token(result["access_token"], "impersonation")
        assert payload["sub"] == user.email
        assert payload["imp"] == admin.email

    def test_impersonate_missing_user(self, session: Session, admin: User):
        with pytest.raises(NotFoundError):
            admin_service.impersonate_user(session, admin, 999)
        [entry] = audit_entries(session, "user.impersonate")
        assert entry.status == AuditStatus.FAILED


class TestSites:
    def test_list_sites_with_owner(self, session: Session, site: Site, user: User):
        sites, total = admin_service.list_sites(session, search="my-")
        assert total == 1
        assert sites[0].owner.email == user.email

    def test_list_sites_by_status(self, session: Session, site: Site, published_site: Site, user: User):
        site_service.create_site(session, user, SiteCreate(name="Draft"))
        _, total = admin_service.list_sites(session, status=SiteStatus.PENDING)
        assert total == 1

    def test_update_site_slug_and_flags(self, session: Session, admin: User, published_site: Site):
        updated = admin_service.update_site(
            session,
            admin,
            published_site.id_site,
            {"slug": "renamed", "analytics_enabled": False},
        )
        assert updated.slug == "renamed"
        assert updated.public_url == "http://localhost:3000/s/renamed"
        assert updated.analytics_enabled is False

    def test_site_flags_must_be_boolean(self, session: Session, admin: User, site: Site):
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_site(session, admin, site.id_site, {"analytics_enabled": "false"})
        assert exc_info.value.field == "analytics_enabled"

    def test_taken_slug(self, session: Session, admin: User, user: User, site: Site):
        other = site_service.create_site(session, user, SiteCreate(name="Other"))
        with pytest.raises(AlreadyExistsError):
            admin_service.update_site(session, admin, other.id_site, {"slug": site.slug})

    def test_invalid_status(self, session: Session, admin: User, site: Site):
        with pytest.raises(ValidationError, match="Invalid status"):
            admin_service.update_site(session, admin, site.id_site, {"status": "error"})

    def test_activate_without_files(self, session: Session, admin: User, site: Site):
        with pytest.raises(ValidationError, match="Cannot activate site with no files"):
            admin_service.update_site(session, admin, site.id_site, {"status": "active"})

    def test_suspend_requires_reason(self, session: Session, admin: User, published_site: Site):
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_site(
                session, admin, published_site.id_site, {"status": "suspended"}
            )
        assert exc_info.value.field == "suspension_reason"

    def test_suspend_through_update(self, session: Session, admin: User, published_site: Site):
        updated = admin_service.update_site(
            session,
            admin,
            published_site.id_site,
            {"status": "suspended", "suspension_reason": "Malware"},
        )
        assert updated.status == SiteStatus.SUSPENDED
        assert updated.suspension_reason == "Malware"
        [entry] = audit_entries(session, "site.update")
        assert entry.details["suspension_reason"] == "Malware"

    def test_suspend_site(self, session: Session, admin: User, published_site: Site):
        suspended = admin_service.suspend_site(session, admin, published_site.id_site, " Phishing ")
        assert suspended.status == SiteStatus.SUSPENDED
        assert suspended.suspension_reason == "Phishing"

    def test_suspend_site_without_reason(self, session: Session, admin: User, published_site: Site):
        with pytest.raises(ValidationError, match="A reason is required to suspend a site"):
            admin_service.suspend_site(session, admin, published_site.id_site, "  ")
        [entry] = audit_entries(session, "site.suspend")
        assert entry.status == AuditStatus.FAILED
        assert entry.id_site == published_site.id_site
