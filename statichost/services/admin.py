"""Administration: platform statistics, health, and moderation of users and sites.

Every mutation is written to the audit log, including the ones that fail.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Iterator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func, col, or_
from minio.error import S3Error
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from statichost.core.config import get_settings
from statichost.core.security import create_impersonation_token
from statichost.exceptions import (
    AlreadyExistsError,
    AppException,
    InsufficientPermissionsError,
    NotFoundError,
    ValidationError,
)
from statichost.models.analytics import Hit
from statichost.models.enums import AuditResource, AuditStatus, Role, SiteStatus, UserStatus
from statichost.models.site import Site, SiteOwner, SitePublic, SitePublicWithOwner
from statichost.models.user import User, UserPublic
from statichost.services import audit as audit_service
from statichost.services import email as email_service
from statichost.services import site as site_service
from statichost.services.audit import AuditMeta
from statichost.services.storage import storage_service
from statichost.utils.formatting import format_bytes
from statichost.utils.pagination import offset_for
from statichost.utils.validation import validate_site_name, validate_slug

USER_UPDATE_FIELDS = ("name", "roles", "email_verified", "max_sites", "max_storage")
SITE_UPDATE_FIELDS = ("name", "status", "slug", "analytics_enabled", "exclude_admin")
ADMIN_SITE_STATUSES = ("pending", "active", "suspended", "inactive", "deleted")


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


@contextmanager
def _audited(
    session: Session,
    admin: User,
    action: str,
    resource: AuditResource,
    resource_id: int,
    meta: AuditMeta | None,
) -> Iterator[None]:
    """Record a failed audit entry for any application error raised in the block, then re-raise."""
    try:
        yield
    except AppException as e:
        session.rollback()
        audit_service.log_action(
            session,
            action=action,
            resource=resource,
            admin=admin,
            id_user=resource_id if resource == AuditResource.USER else None,
            id_site=resource_id if resource == AuditResource.SITE else None,
            resource_id=resource_id,
            status=AuditStatus.FAILED,
            error=str(e),
            meta=meta,
        )
        raise


def _reject_unknown_fields(updates: dict[str, Any], allowed: tuple[str, ...]) -> None:
    invalid = [key for key in updates if key not in allowed]
    if invalid:
        raise ValidationError(f"Invalid update fields: {', '.join(invalid)}")
    if not updates:
        raise ValidationError("No valid updates provided")


# --- Dashboard ----------------------------------------------------------------


def get_platform_stats(session: Session) -> dict[str, Any]:
    """
    Headline numbers for the admin dashboard.

    Returns:
        dict: `users`, `sites`, `storage` and 30-day `analytics` sections plus a `timestamp`.
    """
    now = datetime.now()
    one_day_ago = now - timedelta(days=1)
    thirty_days_ago = now - timedelta(days=30)

    users = session.exec(select(User).where(User.status != UserStatus.DELETED)).all()
    total_users = len(users)
    verified = sum(1 for u in users if u.email_verified)

    sites = session.exec(select(Site).where(Site.status != SiteStatus.DELETED)).all()
    total_sites = len(sites)
    active_sites = sum(1 for s in sites if s.status == SiteStatus.ACTIVE)
    total_storage = sum(s.quota_used for s in sites)

    hits = session.exec(
        select(Hit.visitor_id).where(Hit.timestamp >= thirty_days_ago, Hit.is_bot == False)  # noqa: E712
    ).all()
    unique_visitors = len(set(hits))

    return {
        "users": {
            "total": total_users,
            "verified": verified,
            "active": sum(1 for u in users if u.last_login and u.last_login >= thirty_days_ago),
            "new_today": sum(1 for u in users if u.created_at >= one_day_ago),
            "verification_rate": _rate(verified, total_users),
        },
        "sites": {
            "total": total_sites,
            "active": active_sites,
            "pending": sum(1 for s in sites if s.status == SiteStatus.PENDING),
            "suspended": sum(1 for s in sites if s.status == SiteStatus.SUSPENDED),
            "new_today": sum(1 for s in sites if s.created_at >= one_day_ago),
            "activation_rate": _rate(active_sites, total_sites),
        },
        "storage": {"total": total_storage, "formatted": format_bytes(total_storage)},
        "analytics": {
            "total_hits": len(hits),
            "unique_visitors": unique_visitors,
            "hits_per_visitor": round(len(hits) / unique_visitors, 1) if unique_visitors else 0.0,
        },
        "timestamp": now,
    }


def get_system_health(session: Session) -> dict[str, Any]:
    """Check the database, the object store and the e-mail configuration independently."""
    health: dict[str, Any] = {"timestamp": datetime.now()}

    try:
        session.exec(select(func.count()).select_from(User)).one()
        health["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health["database"] = {"status": "error", "error": str(e)}

    try:
        if storage_service.ping():
            health["storage"] = {"status": "healthy", "bucket": storage_service.bucket_name}
        else:
            health["storage"] = {"status": "unhealthy", "error": "Bucket does not exist"}
    except (S3Error, Urllib3HTTPError) as e:
        logger.error(f"Storage health check failed: {e}")
        health["storage"] = {"status": "error", "error": str(e)}

    if email_service.email_configured():
        health["email"] = {"status": "healthy", "message": "SMTP is configured"}
    else:
        health["email"] = {"status": "unhealthy", "error": "SMTP is not configured"}

    return health


# --- Users --------------------------------------------------------------------


def _site_counts(session: Session, user_ids: list[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    rows = session.exec(
        select(Site.id_owner, func.count())
        .where(col(Site.id_owner).in_(user_ids), Site.status != SiteStatus.DELETED)
        .group_by(Site.id_owner)
    ).all()
    return {owner_id: count for owner_id, count in rows}


def list_users(
    session: Session, *, page: int = 1, limit: int = 20, search: str | None = None
) -> tuple[list[UserPublic], int]:
    """Newest-first page of accounts with their site counts; `search` matches e-mail or name."""
    statement = select(User)
    count_statement = select(func.count()).select_from(User)
    if search:
        pattern = f"%{search.lower()}%"
        condition = or_(
            func.lower(User.email).like(pattern), func.lower(User.name).like(pattern)
        )
        statement = statement.where(condition)
        count_statement = count_statement.where(condition)

    total = session.exec(count_statement).one()
    users = session.exec(
        statement.order_by(col(User.created_at).desc(), col(User.id_user).desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    ).all()
    counts = _site_counts(session, [u.id_user for u in users if u.id_user is not None])
    return [UserPublic.from_user(u, counts.get(u.id_user, 0)) for u in users], total  # type: ignore[arg-type]


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_user_detail(session: Session, user_id: int) -> dict[str, Any]:
    """
    One account with its live sites and quota usage.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = _get_user(session, user_id)
    sites = session.exec(
        select(Site).where(Site.id_owner == user_id, Site.status != SiteStatus.DELETED)
    ).all()
    used_storage = sum(s.quota_used for s in sites)
    return {
        "user": UserPublic.from_user(user, len(sites)),
        "sites": [SitePublic.model_validate(s) for s in sites],
        "stats": {
            "storage": {
                "used": used_storage,
                "max": user.max_storage,
                "percent": _rate(used_storage, user.max_storage),
            },
            "sites": {
                "used": len(sites),
                "active": sum(1 for s in sites if s.status == SiteStatus.ACTIVE),
                "max": user.max_sites,
                "percent": _rate(len(sites), user.max_sites),
            },
        },
    }


def _clean_user_updates(admin: User, user: User, updates: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    if "name" in updates:
        name = str(updates["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required", field="name")
        cleaned["name"] = name
    if "roles" in updates:
        roles = updates["roles"]
        valid_roles = {r.value for r in Role}
        if (
            not isinstance(roles, list)
            or not all(isinstance(role, str) for role in roles)
            or not set(roles) <= valid_roles
        ):
            raise ValidationError(
                f"Roles must be a list of: {', '.join(sorted(valid_roles))}", field="roles"
            )
        roles = sorted(set(roles) | {Role.USER.value}, key=lambda r: r != Role.USER.value)
        if user.id_user == admin.id_user and Role.ADMIN.value not in roles:
            raise ValidationError("You cannot remove your own admin role", field="roles")
        cleaned["roles"] = roles
    if "email_verified" in updates:
        if not isinstance(updates["email_verified"], bool):
            raise ValidationError("email_verified must be true or false", field="email_verified")
        cleaned["email_verified"] = updates["email_verified"]
    for field in ("max_sites", "max_storage"):
        if field in updates:
            try:
                value = int(updates[field])
            except (TypeError, ValueError):
                raise ValidationError(f"{field} must be a number", field=field)
            if value < 0:
                raise ValidationError(f"{field} cannot be negative", field=field)
            cleaned[field] = value
    return cleaned


def update_user(
    session: Session,
    admin: User,
    user_id: int,
    updates: dict[str, Any],
    meta: AuditMeta | None = None,
) -> User:
    """
    Change an account's name, roles, verification flag or quota limits.

    Raises:
        NotFoundError: If the user does not exist.
        ValidationError: If `updates` holds other fields ("Invalid update fields: ...") or bad values.
    """
    with _audited(session, admin, "user.update", AuditResource.USER, user_id, meta):
        _reject_unknown_fields(updates, USER_UPDATE_FIELDS)
        user = _get_user(session, user_id)
        changes = _clean_user_updates(admin, user, updates)
        for key, value in changes.items():
            setattr(user, key, value)
        user.updated_at = datetime.now()
        session.add(user)
        session.commit()
        session.refresh(user)

    audit_service.log_user_action(
        session, admin, "user.update", user_id, {"updates": changes}, meta=meta
    )
    return user


def suspend_user(
    session: Session,
    admin: User,
    user_id: int,
    reason: str = "",
    meta: AuditMeta | None = None,
) -> User:
    """
    Suspend an account together with all of its active sites.

    Raises:
        NotFoundError: If the user does not exist.
        ValidationError: If an administrator tries to suspend their own account.
    """
    with _audited(session, admin, "user.suspend", AuditResource.USER, user_id, meta):
        if user_id == admin.id_user:
            raise ValidationError("You cannot suspend your own account")
        user = _get_user(session, user_id)
        now = datetime.now()
        user.status = UserStatus.SUSPENDED
        user.suspended_at = now
        user.suspension_reason = reason
        user.updated_at = now
        session.add(user)

        active_sites = session.exec(
            select(Site).where(Site.id_owner == user_id, Site.status == SiteStatus.ACTIVE)
        ).all()
        for site in active_sites:
            site_service.suspend_site(session, site, reason or "Owner account suspended", commit=False)
        session.commit()
        session.refresh(user)

    audit_service.log_user_action(
        session,
        admin,
        "user.suspend",
        user_id,
        {"reason": reason, "suspended_sites": len(active_sites)},
        meta=meta,
    )
    return user


def activate_user(
    session: Session, admin: User, user_id: int, meta: AuditMeta | None = None
) -> User:
    """Lift a suspension. Sites suspended with the account stay suspended."""
    with _audited(session, admin, "user.activate", AuditResource.USER, user_id, meta):
        user = _get_user(session, user_id)
        if user.status == UserStatus.DELETED:
            raise ValidationError("Deleted users cannot be reactivated")
        user.status = UserStatus.ACTIVE
        user.suspended_at = None
        user.suspension_reason = None
        user.updated_at = datetime.now()
        session.add(user)
        session.commit()
        session.refresh(user)

    audit_service.log_user_action(session, admin, "user.activate", user_id, meta=meta)
    return user


def delete_user(
    session: Session, admin: User, user_id: int, meta: AuditMeta | None = None
) -> User:
    """
    Soft delete an account and all of its sites.

    The e-mail is replaced by `deleted_{timestamp}_{id}@deleted.com` so the address can
    register again, and the name by "Deleted User".

    Raises:
        NotFoundError: If the user does not exist.
        ValidationError: If an administrator tries to delete their own account.
        InsufficientPermissionsError: If the account is listed in ADMIN_EMAILS.
    """
    with _audited(session, admin, "user.delete", AuditResource.USER, user_id, meta):
        if user_id == admin.id_user:
            raise ValidationError("You cannot delete your own account")
        user = _get_user(session, user_id)
        if user.email.lower() in get_settings().admin_emails:
            raise InsufficientPermissionsError("Platform owner accounts cannot be deleted")

        original_email = user.email
        sites = session.exec(
            select(Site).where(Site.id_owner == user_id, Site.status != SiteStatus.DELETED)
        ).all()
        for site in sites:
            site_service.soft_delete(session, site, commit=False)

        now = datetime.now()
        user.status = UserStatus.DELETED
        user.deleted_at = now
        user.updated_at = now
        user.email = f"deleted_{int(now.timestamp() * 1000)}_{user_id}@deleted.com"
        user.name = "Deleted User"
        session.add(user)
        session.commit()
        session.refresh(user)

    audit_service.log_user_action(
        session,
        admin,
        "user.delete",
        user_id,
        {"email": original_email, "deleted_sites": len(sites)},
        meta=meta,
    )
    return user


def impersonate_user(
    session: Session, admin: User, user_id: int, meta: AuditMeta | None = None
) -> dict[str, Any]:
    """
    Issue a short-lived token that acts as another user.

    Raises:
        NotFoundError: If the user does not exist or was deleted.
    """
    with _audited(session, admin, "user.impersonate", AuditResource.USER, user_id, meta):
        user = _get_user(session, user_id)
        if user.status == UserStatus.DELETED:
            raise NotFoundError("User", user_id)
        token = create_impersonation_token(user.email, admin.email)

    audit_service.log_user_action(
        session, admin, "user.impersonate", user_id, {"email": user.email}, meta=meta
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": get_settings().IMPERSONATION_TOKEN_EXPIRE_MINUTES * 60,
        "user": UserPublic.from_user(user),
    }


# --- Sites --------------------------------------------------------------------


def list_sites(
    session: Session,
    *,
    page: int = 1,
    limit: int = 20,
    status: SiteStatus | None = None,
    search: str | None = None,
    owner_id: int | None = None,
) -> tuple[list[SitePublicWithOwner], int]:
    """Newest-first page of all non-deleted sites with their owners."""
    conditions: list[Any] = [Site.status != SiteStatus.DELETED]
    if status is not None:
        conditions.append(Site.status == status)
    if owner_id is not None:
        conditions.append(Site.id_owner == owner_id)
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(func.lower(Site.name).like(pattern), func.lower(Site.slug).like(pattern))
        )

    total = session.exec(select(func.count()).select_from(Site).where(*conditions)).one()
    sites = session.exec(
        select(Site)
        .where(*conditions)
        .order_by(col(Site.created_at).desc(), col(Site.id_site).desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    ).all()

    result = []
    for site in sites:
        public = SitePublicWithOwner.model_validate(site)
        if site.owner is not None:
            public.owner = SiteOwner(
                id_user=site.owner.id_user,  # type: ignore[arg-type]
                name=site.owner.name,
                email=site.owner.email,
            )
        result.append(public)
    return result, total


def _apply_site_status(
    session: Session, site: Site, status: str, reason: str | None
) -> None:
    if status not in ADMIN_SITE_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(ADMIN_SITE_STATUSES)}", field="status"
        )
    now = datetime.now()
    if status == SiteStatus.ACTIVE.value:
        if site.file_count == 0 and site.quota_used == 0:
            raise ValidationError("Cannot activate site with no files", field="status")
        site.status = SiteStatus.ACTIVE
        site.suspended_at = None
        site.suspension_reason = None
        if not site.public_url:
            site.public_url = f"{get_settings().public_base_url}/s/{site.slug}"
    elif status == SiteStatus.SUSPENDED.value:
        if not reason:
            raise ValidationError(
                "A suspension_reason is required to suspend a site", field="suspension_reason"
            )
        site_service.suspend_site(session, site, reason, commit=False)
    elif status == SiteStatus.DELETED.value:
        site_service.soft_delete(session, site, commit=False)
    else:
        site.status = SiteStatus(status)
    site.updated_at = now


def update_site(
    session: Session,
    admin: User,
    site_id: int,
    updates: dict[str, Any],
    meta: AuditMeta | None = None,
) -> Site:
    """
    Moderate a site: rename it, change its slug or status, or toggle analytics.

    `suspension_reason` may accompany a status change to "suspended" and is required then.

    Raises:
        NotFoundError: If the site does not exist.
        ValidationError: On unknown fields, an invalid status, name or slug, activating a
            site without files, or suspending without a reason.
        AlreadyExistsError: If the new slug is taken.
    """
    updates = dict(updates)
    reason = updates.pop("suspension_reason", None)
    with _audited(session, admin, "site.update", AuditResource.SITE, site_id, meta):
        _reject_unknown_fields(updates, SITE_UPDATE_FIELDS)
        site = site_service.get_site(session, site_id)

        if "name" in updates:
            name = str(updates["name"] or "").strip()
            errors = validate_site_name(name)
            if errors:
                raise ValidationError(errors[0], field="name")
            site.name = name
        if "slug" in updates:
            slug = str(updates["slug"] or "")
            errors = validate_slug(slug)
            if errors:
                raise ValidationError(errors[0], field="slug")
            if site_service.unique_slug(session, slug, exclude_id=site_id) != slug:
                raise AlreadyExistsError("Site", "slug", slug)
            site.slug = slug
            if site.public_url:
                site.public_url = f"{get_settings().public_base_url}/s/{slug}"
        for flag in ("analytics_enabled", "exclude_admin"):
            if flag in updates:
                if not isinstance(updates[flag], bool):
                    raise ValidationError(f"{flag} must be true or false", field=flag)
                setattr(site, flag, updates[flag])
        if "status" in updates:
            _apply_site_status(session, site, str(updates["status"]), reason)

        site.updated_at = datetime.now()
        session.add(site)
        session.commit()
        session.refresh(site)

    details: dict[str, Any] = {"updates": updates}
    if reason:
        details["suspension_reason"] = reason
    audit_service.log_site_action(session, admin, "site.update", site_id, details, meta=meta)
    return site


def suspend_site(
    session: Session,
    admin: User,
    site_id: int,
    reason: str,
    meta: AuditMeta | None = None,
) -> Site:
    """
    Raises:
        NotFoundError: If the site does not exist.
        ValidationError: If no reason is given.
    """
    with _audited(session, admin, "site.suspend", AuditResource.SITE, site_id, meta):
        if not reason.strip():
            raise ValidationError("A reason is required to suspend a site", field="reason")
        site = site_service.get_site(session, site_id)
        site_service.suspend_site(session, site, reason.strip())

    audit_service.log_site_action(
        session, admin, "site.suspend", site_id, {"reason": reason.strip()}, meta=meta
    )
    return site
