"""Site service module: CRUD, quota accounting, activation and suspension."""

from datetime import datetime
from loguru import logger
from sqlmodel import Session, select, func, col
from sqlalchemy.exc import IntegrityError

from statichost.core.config import get_settings
from statichost.exceptions import (
    AlreadyExistsError,
    InsufficientPermissionsError,
    NotFoundError,
    QuotaExceededError,
    StorageError,
    ValidationError,
)
from statichost.models.enums import SiteStatus, UploadType
from statichost.models.site import Site, SiteCreate, SiteUpdate
from statichost.models.upload import Upload, UploadStats
from statichost.models.user import User
from statichost.services import email as email_service
from statichost.services.storage import storage_service
from statichost.services.validation import STATIC_FOLDERS
from statichost.utils.formatting import format_bytes, generate_slug
from statichost.utils.pagination import offset_for
from statichost.utils.validation import validate_site_name, validate_slug

DEFAULT_SLUG = "site"


def get_site(session: Session, site_id: int) -> Site:
    """
    Fetch a site that has not been deleted.

    Raises:
        NotFoundError: If the site does not exist or was soft deleted.
    """
    site = session.get(Site, site_id)
    if site is None or site.status == SiteStatus.DELETED:
        raise NotFoundError("Site", site_id)
    return site


def get_site_for_user(session: Session, site_id: int, user: User) -> Site:
    """
    Fetch a site the user may manage: its owner or any administrator.

    Raises:
        NotFoundError: If the site does not exist.
        InsufficientPermissionsError: If the user neither owns the site nor is an admin.
    """
    site = get_site(session, site_id)
    if site.id_owner != user.id_user and not user.is_admin:
        raise InsufficientPermissionsError("You do not have access to this site")
    return site


def get_site_by_slug(session: Session, slug: str) -> Site | None:
    statement = select(Site).where(Site.slug == slug, Site.status != SiteStatus.DELETED)
    return session.exec(statement).first()


def unique_slug(session: Session, base: str, exclude_id: int | None = None) -> str:
    """Return `base`, or `base-1`, `base-2`, ... whichever is not taken yet."""
    base = base or DEFAULT_SLUG
    candidate = base
    suffix = 0
    while True:
        statement = select(Site.id_site).where(Site.slug == candidate)
        if exclude_id is not None:
            statement = statement.where(Site.id_site != exclude_id)
        if session.exec(statement).first() is None:
            return candidate
        suffix += 1
        candidate = f"{base}-{suffix}"


def _check_name(name: str) -> str:
    name = name.strip()
    errors = validate_site_name(name)
    if errors:
        raise ValidationError(errors[0], field="name")
    return name


def check_site_quota(user: User) -> None:
    if user.used_sites >= user.max_sites:
        raise QuotaExceededError(
            f"You have reached your site limit ({user.max_sites}). Please upgrade your plan or delete unused sites.",
            quota="sites",
        )


def check_storage_quota(user: User, needed: int) -> None:
    """
    Raises:
        QuotaExceededError: If `needed` more bytes do not fit in the user's storage quota.
    """
    available = max(user.max_storage - user.used_storage, 0)
    if needed > available:
        raise QuotaExceededError(
            f"Storage quota exceeded. Available: {format_bytes(available)}, Needed: {format_bytes(needed)}",
            quota="storage",
        )


def create_site(session: Session, owner: User, site_in: SiteCreate) -> Site:
    """
    Create a pending site for `owner`.

    The slug is taken from `site_in.slug` when given, otherwise generated from the name,
    and made unique with a numeric suffix.

    Parameters:
        owner (User): Account the site belongs to; its `used_sites` counter is incremented.
        site_in (SiteCreate): Name, description and optional slug.

    Returns:
        Site: The created site, status PENDING.

    Raises:
        ValidationError: If the name or the requested slug is invalid.
        QuotaExceededError: If the owner already has `max_sites` sites.
    """
    name = _check_name(site_in.name)
    if site_in.slug:
        slug_errors = validate_slug(site_in.slug)
        if slug_errors:
            raise ValidationError(slug_errors[0], field="slug")
    check_site_quota(owner)

    site = Site(
        id_owner=owner.id_user,  # type: ignore[arg-type]
        name=name,
        description=(site_in.description or "").strip(),
        slug=unique_slug(session, site_in.slug or generate_slug(name)),
    )
    session.add(site)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise AlreadyExistsError("Site", "slug", site.slug)

    site.storage_path = f"sites/{site.id_site}"
    owner.used_sites += 1
    owner.updated_at = datetime.now()
    session.add(owner)
    session.commit()
    session.refresh(site)
    logger.info(f"Site {site.id_site} ({site.slug}) created by user {owner.id_user}")
    return site


def list_sites(
    session: Session,
    owner_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    status: SiteStatus | None = None,
) -> tuple[list[Site], int]:
    """
    Newest-first page of a user's sites, deleted sites excluded.

    Returns:
        tuple[list[Site], int]: The page and the total number of matching sites.
    """
    conditions = [Site.id_owner == owner_id, Site.status != SiteStatus.DELETED]
    if status is not None:
        conditions.append(Site.status == status)

    total = session.exec(select(func.count()).select_from(Site).where(*conditions)).one()
    sites = session.exec(
        select(Site)
        .where(*conditions)
        .order_by(col(Site.created_at).desc(), col(Site.id_site).desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    ).all()
    return list(sites), total


def update_site(session: Session, site: Site, site_update: SiteUpdate) -> Site:
    """
    Apply the owner-editable fields: name, description and analytics toggle.

    Raises:
        ValidationError: If the new name is invalid.
    """
    data = site_update.model_dump(exclude_unset=True)
    if data.get("name") is not None:
        site.name = _check_name(data["name"])
    if data.get("description") is not None:
        site.description = data["description"].strip()
    if data.get("analytics_enabled") is not None:
        site.analytics_enabled = data["analytics_enabled"]

    site.updated_at = datetime.now()
    session.add(site)
    session.commit()
    session.refresh(site)
    return site


def soft_delete(session: Session, site: Site, commit: bool = True) -> Site:
    """Mark a site deleted and release its site slot and storage on the owner's quota."""
    if site.status == SiteStatus.DELETED:
        return site
    owner = session.get(User, site.id_owner)
    if owner is not None:
        owner.used_sites = max(owner.used_sites - 1, 0)
        owner.used_storage = max(owner.used_storage - site.quota_used, 0)
        owner.updated_at = datetime.now()
        session.add(owner)

    now = datetime.now()
    site.status = SiteStatus.DELETED
    site.deleted_at = now
    site.updated_at = now
    session.add(site)
    if commit:
        session.commit()
        session.refresh(site)
    return site


def delete_site(session: Session, site: Site) -> Site:
    """
    Delete the stored files of a site, then soft delete it.

    A storage failure is logged and does not prevent the database delete.
    """
    try:
        deleted = storage_service.delete_site_files(site.id_site)  # type: ignore[arg-type]
        logger.info(f"Removed {deleted} stored files of site {site.id_site}")
    except StorageError as e:
        logger.error(f"Could not remove stored files of site {site.id_site}: {e}")
    return soft_delete(session, site)


def update_quota(session: Session, site: Site, size: int, file_count: int = 1) -> None:
    """
    Account `size` uploaded bytes on the site and on its owner.

    Nothing is committed; callers commit together with the Upload rows they recorded.
    """
    now = datetime.now()
    site.quota_used += size
    site.file_count += file_count
    site.last_file_upload = now
    site.updated_at = now
    session.add(site)

    owner = session.get(User, site.id_owner)
    if owner is not None:
        owner.used_storage += size
        owner.updated_at = now
        session.add(owner)


def record_upload(
    session: Session,
    site: Site,
    user: User,
    *,
    upload_type: UploadType,
    filename: str,
    path: str,
    s3_key: str,
    size: int,
    mime_type: str,
) -> Upload:
    upload = Upload(
        id_site=site.id_site,  # type: ignore[arg-type]
        id_user=user.id_user,  # type: ignore[arg-type]
        type=upload_type,
        filename=filename,
        path=path,
        s3_key=s3_key,
        size=size,
        mime_type=mime_type,
    )
    session.add(upload)
    return upload


def find_index_html(site: Site) -> str | None:
    """Storage path of the site's entry page: root index.html or one inside a static folder."""
    candidates = ["index.html"] + [f"{folder}/index.html" for folder in STATIC_FOLDERS]
    for path in candidates:
        if storage_service.site_file_exists(site.id_site, path):  # type: ignore[arg-type]
            return path
    return None


async def activate_site(session: Session, site: Site) -> Site:
    """
    Publish a site.

    Sets status ACTIVE, stamps `last_deployed`, increments `deployment_count` and
    computes `public_url`. The owner gets an activation e-mail and administrators a
    new-site notification; e-mail failures never fail the activation.

    Raises:
        ValidationError: If no file was uploaded yet or no index.html is stored.
    """
    if site.quota_used <= 0:
        raise ValidationError("Site has no files. Please upload files before activating.")
    if find_index_html(site) is None:
        raise ValidationError(
            "No index.html found. Please ensure your site has an index.html file in the root or in a public/ dist/ build/ folder."
        )

    now = datetime.now()
    site.status = SiteStatus.ACTIVE
    site.last_deployed = now
    site.deployment_count += 1
    site.public_url = f"{get_settings().public_base_url}/s/{site.slug}"
    site.last_error = None
    site.suspended_at = None
    site.suspension_reason = None
    site.updated_at = now
    session.add(site)
    session.commit()
    session.refresh(site)
    logger.info(f"Site {site.id_site} activated at {site.public_url}")

    owner = session.get(User, site.id_owner)
    if owner is not None:
        await email_service.send_site_activated_email(
            owner.email, owner.name, site.id_site, site.name, site.public_url
        )
        await email_service.send_admin_new_site_email(
            site.name, site.slug, owner.name, owner.email
        )
    return site


async def warn_if_near_quota(session: Session, site: Site) -> bool:
    """
    E-mail the owner once their storage use reaches QUOTA_WARNING_THRESHOLD percent.

    The warning is sent a single time per crossing: `quota_warning_sent_at` is stamped
    on the owner after a successful send and cleared when usage drops back under the
    threshold, so the next crossing warns again.

    Returns:
        bool: True if a warning was sent.
    """
    owner = session.get(User, site.id_owner)
    if owner is None or owner.max_storage <= 0:
        return False
    percent = int(owner.used_storage * 100 / owner.max_storage)
    if percent < email_service.QUOTA_WARNING_THRESHOLD:
        if owner.quota_warning_sent_at is not None:
            owner.quota_warning_sent_at = None
            session.add(owner)
            session.commit()
        return False
    if owner.quota_warning_sent_at is not None:
        return False
    sent = await email_service.send_quota_warning_email(owner.email, owner.name, "storage", percent)
    if sent:
        owner.quota_warning_sent_at = datetime.now()
        session.add(owner)
        session.commit()
        logger.info(f"Storage quota warning sent to user {owner.id_user} at {percent}%")
    return sent


def suspend_site(session: Session, site: Site, reason: str, commit: bool = True) -> Site:
    now = datetime.now()
    site.status = SiteStatus.SUSPENDED
    site.suspended_at = now
    site.suspension_reason = reason
    site.updated_at = now
    session.add(site)
    if commit:
        session.commit()
        session.refresh(site)
    logger.info(f"Site {site.id_site} suspended: {reason}")
    return site


def get_uploads(
    session: Session, site_id: int, *, page: int = 1, limit: int = 50
) -> tuple[list[Upload], int]:
    total = session.exec(
        select(func.count()).select_from(Upload).where(Upload.id_site == site_id)
    ).one()
    uploads = session.exec(
        select(Upload)
        .where(Upload.id_site == site_id)
        .order_by(col(Upload.uploaded_at).desc(), col(Upload.id_upload).desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    ).all()
    return list(uploads), total


def get_upload_stats(session: Session, site_id: int) -> UploadStats:
    """Totals over the upload history of a site, with a count per upload type."""
    uploads = session.exec(select(Upload).where(Upload.id_site == site_id)).all()
    by_type = {upload_type.value: 0 for upload_type in UploadType}
    for upload in uploads:
        by_type[upload.type.value] += 1
    return UploadStats(
        total_uploads=len(uploads),
        total_size=sum(u.size for u in uploads),
        last_upload=max((u.uploaded_at for u in uploads), default=None),
        by_type=by_type,
    )


def get_site_stats(session: Session, site: Site) -> dict:
    """Storage and traffic figures shown next to a site."""
    upload_stats = get_upload_stats(session, site.id_site)  # type: ignore[arg-type]
    return {
        "file_count": site.file_count,
        "quota_used": site.quota_used,
        "quota_used_formatted": format_bytes(site.quota_used),
        "total_hits": site.total_hits,
        "unique_visitors": site.unique_visitors,
        "last_hit": site.last_hit,
        "last_deployed": site.last_deployed,
        "deployment_count": site.deployment_count,
        "uploads": upload_stats.model_dump(),
    }
