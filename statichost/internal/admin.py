"""Administration API: platform overview, user and site moderation, audit trail."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr

from statichost.core.dependencies import AuditMetaDep, CurrentAdmin, SessionDep, get_current_admin
from statichost.models.audit import AuditFilters
from statichost.models.enums import AuditResource, AuditStatus, SiteStatus
from statichost.models.site import SitePublic
from statichost.models.user import UserPublic
from statichost.services import admin as admin_service
from statichost.services import audit as audit_service
from statichost.services import email as email_service
from statichost.utils.pagination import pagination_meta

router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(get_current_admin)]
)


class UserSuspendRequest(BaseModel):
    reason: str = ""


class TestEmailRequest(BaseModel):
    email: EmailStr | None = None


# --- Dashboard ---


@router.get("/stats")
def read_platform_stats(session: SessionDep) -> dict[str, Any]:
    return admin_service.get_platform_stats(session)


@router.get("/health")
def read_system_health(session: SessionDep) -> dict[str, Any]:
    """Database, object storage and SMTP status, each reported independently."""
    return admin_service.get_system_health(session)


@router.post("/test-email")
async def send_test_email(
    session: SessionDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
    request_data: TestEmailRequest | None = None,
) -> dict[str, Any]:
    """Send the configuration test e-mail to `email`, or to the calling administrator."""
    recipient = (request_data.email if request_data else None) or admin.email
    sent = await email_service.send_test_email(recipient)
    audit_service.log_system_action(
        session,
        "email.test",
        {"recipient": recipient},
        admin=admin,
        status=AuditStatus.SUCCESS if sent else AuditStatus.FAILED,
        error=None if sent else "Email could not be sent",
        meta=meta,
    )
    if not sent:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Test email could not be sent. Check the SMTP configuration.",
        )
    return {"message": f"Test email sent to {recipient}"}


# --- Users ---


@router.get("/users")
def read_users(
    session: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    search: str | None = None,
) -> dict[str, Any]:
    users, total = admin_service.list_users(session, page=page, limit=limit, search=search)
    return {"users": users, "pagination": pagination_meta(page, limit, total)}


@router.get("/users/{user_id}")
def read_user(user_id: int, session: SessionDep) -> dict[str, Any]:
    return admin_service.get_user_detail(session, user_id)


@router.put("/users/{user_id}", response_model=UserPublic)
def update_user(
    user_id: int,
    updates: Annotated[dict[str, Any], Body()],
    session: SessionDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
) -> UserPublic:
    """
    Update an account.

    ### Allowed fields:
    `name`, `roles`, `email_verified`, `max_sites`, `max_storage`. Any other field fails
    the whole request with "Invalid update fields: ...".
    """
    user = admin_service.update_user(session, admin, user_id, updates, meta)
    return UserPublic.from_user(user)


@router.post("/users/{user_id}/suspend", response_model=UserPublic)
def suspend_user(
    user_id: int,
    request_data: UserSuspendRequest,
    session: SessionDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
) -> UserPublic:
    """Suspend an account and every active site it owns."""
    user = admin_service.suspend_user(session, admin, user_id, request_data.reason, meta)
    return UserPublic.from_user(user)


@router.post("/users/{user_id}/activate", response_model=UserPublic)
def activate_user(
    user_id: int, session: SessionDep, admin: CurrentAdmin, meta: AuditMetaDep
) -> UserPublic:
    user = admin_service.activate_user(session, admin, user_id, meta)
    return UserPublic.from_user(user)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: int, session: SessionDep, admin: CurrentAdmin, meta: AuditMetaDep
) -> dict[str, Any]:
    """
    Soft delete an account and its sites.

    Raises:
        `422`: When deleting your own account.
        `403`: When deleting an account listed in ADMIN_EMAILS.
    """
    admin_service.delete_user(session, admin, user_id, meta)
    return {"message": "User deleted successfully", "id_user": user_id}


@router.post("/users/{user_id}/impersonate")
def impersonate_user(
    user_id: int, session: SessionDep, admin: CurrentAdmin, meta: AuditMetaDep
) -> dict[str, Any]:
    return admin_service.impersonate_user(session, admin, user_id, meta)


# --- Sites ---


@router.get("/sites")
def read_sites(
    session: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    site_status: Annotated[SiteStatus | None, Query(alias="status")] = None,
    search: str | None = None,
    owner_id: int | None = None,
) -> dict[str, Any]:
    sites, total = admin_service.list_sites(
        session, page=page, limit=limit, status=site_status, search=search, owner_id=owner_id
    )
    return {"sites": sites, "pagination": pagination_meta(page, limit, total)}


@router.put("/sites/{site_id}", response_model=SitePublic)
def update_site(
    site_id: int,
    updates: Annotated[dict[str, Any], Body()],
    session: SessionDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
) -> SitePublic:
    """
    Moderate a site.

    ### Allowed fields:
    `name`, `status`, `slug`, `analytics_enabled`, `exclude_admin`, plus
    `suspension_reason` which is required when `status` is "suspended".
    """
    site = admin_service.update_site(session, admin, site_id, updates, meta)
    return SitePublic.model_validate(site)


# --- Audit trail ---


def get_audit_filters(
    id_admin: int | None = None,
    id_user: int | None = None,
    id_site: int | None = None,
    resource: AuditResource | None = None,
    action: str | None = None,
    audit_status: Annotated[AuditStatus | None, Query(alias="status")] = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
) -> AuditFilters:
    return AuditFilters(
        id_admin=id_admin,
        id_user=id_user,
        id_site=id_site,
        resource=resource,
        action=action,
        status=audit_status,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )


AuditFiltersDep = Annotated[AuditFilters, Depends(get_audit_filters)]


@router.get("/audit")
def read_audit_logs(
    session: SessionDep,
    filters: AuditFiltersDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> dict[str, Any]:
    logs, total = audit_service.get_logs(session, filters, page=page, limit=limit)
    return {"logs": logs, "pagination": pagination_meta(page, limit, total)}


@router.get("/audit/stats")
def read_audit_stats(
    session: SessionDep, days: Annotated[int, Query(ge=1, le=365)] = 30
) -> dict[str, Any]:
    return audit_service.get_stats(session, days)


@router.get("/audit/export")
def export_audit_logs(
    session: SessionDep,
    filters: AuditFiltersDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
    format: str = "csv",
) -> Response:
    """Download at most 10000 matching entries as CSV or JSON."""
    try:
        content = audit_service.export_logs(session, filters, format)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    audit_service.log_system_action(
        session, "audit.export", {"format": format}, admin=admin, meta=meta
    )
    media_type = "text/csv" if format == "csv" else "application/json"
    filename = f"audit-logs-{datetime.now():%Y-%m-%d}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
