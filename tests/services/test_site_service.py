from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import Session

from statichost.exceptions import (
    InsufficientPermissionsError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from statichost.models.enums import SiteStatus, UploadType
from statichost.models.site import Site, SiteCreate, SiteUpdate
from statichost.models.user import User
from statichost.services import site as site_service

INDEX_HTML = b"<!DOCTYPE html><html><body>Home</body></html>"


class TestCreateSite:
    def test_create_site(self, session: Session, user: User):
        site = site_service.create_site(
            session, user, SiteCreate(name="  Portfolio  ", description=" Work ")
        )

        assert site.id_site is not None
        assert site.name == "Portfolio"
        assert site.description == "Work"
        assert site.slug == "portfolio"
        assert site.status == SiteStatus.PENDING
        assert site.storage_path == f"sites/{site.id_site}"
        session.refresh(user)
        assert user.used_sites == 1

    def test_slug_gets_numeric_suffix(self, session: Session, user: User):
        first = site_service.create_site(session, user, SiteCreate(name="Blog"))
        second = site_service.create_site(session, user, SiteCreate(name="Blog"))
        third = site_service.create_site(session, user, SiteCreate(name="Blog"))
        assert [first.slug, second.slug, third.slug] == ["blog", "blog-1", "blog-2"]

    def test_requested_slug(self, session: Session, user: User):
        site = site_service.create_site(session, user, SiteCreate(name="Blog", slug="my-blog"))
        assert site.slug == "my-blog"

    def test_invalid_slug(self, session: Session, user: User):
        with pytest.raises(ValidationError) as exc_info:
            site_service.create_site(session, user, SiteCreate(name="Blog", slug="My Blog"))
        assert exc_info.value.field == "slug"

    def test_invalid_name(self, session: Session, user: User):
        with pytest.raises(ValidationError) as exc_info:
            site_service.create_site(session, user, SiteCreate(name="a"))
        assert exc_info.value.field == "name"

    def test_site_quota(self, session: Session, user_factory):
        owner = user_factory("full@example.com", max_sites=1, used_sites=1)
        with pytest.raises(QuotaExceededError) as exc_info:
            site_service.create_site(session, owner, SiteCreate(name="Another"))
        assert exc_info.value.quota == "sites"
        assert exc_info.value.message.startswith("You have reached your site limit (1)")


class TestGetSite:
    def test_get_site(self, session: Session, site: Site):
        assert site_service.get_site(session, site.id_site).id_site == site.id_site

    def test_missing_site(self, session: Session):
        with pytest.raises(NotFoundError):
            site_service.get_site(session, 999)

    def test_deleted_site_is_not_found(self, session: Session, site: Site):
        site_service.soft_delete(session, site)
        with pytest.raises(NotFoundError):
            site_service.get_site(session, site.id_site)
        assert site_service.get_site_by_slug(session, site.slug) is None

    def test_access_for_owner_and_admin(self, session: Session, site: Site, user: User, admin: User):
        assert site_service.get_site_for_user(session, site.id_site, user) is not None
        assert site_service.get_site_for_user(session, site.id_site, admin) is not None

    def test_access_denied_for_other_user(self, session: Session, site: Site, other_user: User):
        with pytest.raises(InsufficientPermissionsError, match="You do not have access to this site"):
            site_service.get_site_for_user(session, site.id_site, other_user)


class TestListAndUpdate:
    def test_list_sites(self, session: Session, user: User, other_user: User):
        for name in ("Alpha", "Bravo", "Charlie"):
            site_service.create_site(session, user, SiteCreate(name=name))
        site_service.create_site(session, other_user, SiteCreate(name="Foreign"))

        sites, total = site_service.list_sites(session, user.id_user, page=1, limit=2)

        assert total == 3
        assert len(sites) == 2
        assert [s.name for s in sites] == ["Charlie", "Bravo"]

    def test_list_sites_by_status(self, session: Session, user: User, published_site: Site):
        site_service.create_site(session, user, SiteCreate(name="Draft"))
        sites, total = site_service.list_sites(session, user.id_user, status=SiteStatus.ACTIVE)
        assert total == 1
        assert sites[0].id_site == published_site.id_site

    def test_update_site(self, session: Session, site: Site):
        updated = site_service.update_site(
            session, site, SiteUpdate(name="Renamed", analytics_enabled=False)
        )
        assert updated.name == "Renamed"
        assert updated.analytics_enabled is False
        assert updated.slug == "my-site"


class TestDeleteSite:
    def test_delete_releases_quota_and_files(
        self, session: Session, user: User, published_site: Site, storage
    ):
        session.refresh(user)
        assert user.used_storage == published_site.quota_used > 0

        site_service.delete_site(session, published_site)

        session.refresh(user)
        assert published_site.status == SiteStatus.DELETED
        assert published_site.deleted_at is not None
        assert user.used_sites == 0
        assert user.used_storage == 0
        assert storage.list_site_files(published_site.id_site) == []


class TestActivateSite:
    @pytest.mark.asyncio
    async def test_activate_without_files(self, session: Session, site: Site):
        with pytest.raises(ValidationError, match="Site has no files"):
            await site_service.activate_site(session, site)

    @pytest.mark.asyncio
    async def test_activate_without_index(self, session: Session, site: Site, storage):
        storage.upload_site_file(site.id_site, "about.html", b"<html></html>")
        site_service.update_quota(session, site, 13)
        session.commit()

        with pytest.raises(ValidationError, match="No index.html found"):
            await site_service.activate_site(session, site)

    @pytest.mark.asyncio
    async def test_activate_with_index_in_static_folder(self, session: Session, site: Site, storage):
        storage.upload_site_file(site.id_site, "dist/index.html", INDEX_HTML)
        site_service.update_quota(session, site, len(INDEX_HTML))
        session.commit()

        activated = await site_service.activate_site(session, site)

        assert activated.status == SiteStatus.ACTIVE
        assert activated.public_url == "http://localhost:3000/s/my-site"
        assert activated.deployment_count == 1
        assert activated.last_deployed is not None


class TestQuota:
    def test_check_storage_quota(self, user_factory):
        owner = user_factory("quota@example.com", max_storage=2048, used_storage=1024)
        site_service.check_storage_quota(owner, 1024)
        with pytest.raises(QuotaExceededError) as exc_info:
            site_service.check_storage_quota(owner, 1025)
        assert exc_info.value.message == (
            "Storage quota exceeded. Available: 1 KB, Needed: 1 KB"
        )
        assert exc_info.value.quota == "storage"

    @pytest.mark.asyncio
    async def test_warn_if_near_quota(self, session: Session, user: User, site: Site):
        user.used_storage = user.max_storage // 2
        session.add(user)
        session.commit()
        assert await site_service.warn_if_near_quota(session, site) is False

    @pytest.mark.asyncio
    async def test_quota_warning_sent_once_per_crossing(
        self, session: Session, user: User, site: Site
    ):
        def set_usage(percent):
            user.used_storage = user.max_storage * percent // 100
            session.add(user)
            session.commit()

        with patch(
            "statichost.services.site.email_service.send_quota_warning_email",
            new_callable=AsyncMock,
            return_value=True,
        ) as mock_email:
            set_usage(85)
            assert await site_service.warn_if_near_quota(session, site) is True
            assert await site_service.warn_if_near_quota(session, site) is False
            assert mock_email.call_count == 1
            assert mock_email.call_args.args == (user.email, user.name, "storage", 85)
            assert user.quota_warning_sent_at is not None

            set_usage(50)
            assert await site_service.warn_if_near_quota(session, site) is False
            assert user.quota_warning_sent_at is None

            set_usage(90)
            assert await site_service.warn_if_near_quota(session, site) is True
            assert mock_email.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_quota_warning_is_retried(self, session: Session, user: User, site: Site):
        user.used_storage = user.max_storage
        session.add(user)
        session.commit()

        with patch(
            "statichost.services.site.email_service.send_quota_warning_email",
            new_callable=AsyncMock,
            return_value=False,
        ) as mock_email:
            assert await site_service.warn_if_near_quota(session, site) is False
            assert await site_service.warn_if_near_quota(session, site) is False

        assert mock_email.call_count == 2
        assert user.quota_warning_sent_at is None

    def test_suspend_site(self, session: Session, published_site: Site):
        site_service.suspend_site(session, published_site, "Phishing")
        assert published_site.status == SiteStatus.SUSPENDED
        assert published_site.suspension_reason == "Phishing"
        assert published_site.suspended_at is not None


class TestUploadsAndStats:
    def test_upload_history(self, session: Session, published_site: Site):
        uploads, total = site_service.get_uploads(session, published_site.id_site)
        assert total == 2
        assert {u.filename for u in uploads} == {"index.html", "style.css"}

        stats = site_service.get_upload_stats(session, published_site.id_site)
        assert stats.total_uploads == 2
        assert stats.total_size == published_site.quota_used
        assert stats.by_type == {
            UploadType.FILE.value: 2,
            UploadType.ZIP.value: 0,
            UploadType.GIT.value: 0,
        }

    def test_site_stats(self, session: Session, published_site: Site):
        stats = site_service.get_site_stats(session, published_site)
        assert stats["file_count"] == 2
        assert stats["deployment_count"] == 0
        assert stats["uploads"]["total_uploads"] == 2
