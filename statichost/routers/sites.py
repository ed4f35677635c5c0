"""Site router module: site management and deployments for the authenticated user."""

from typing import Annotated, Any

from anyio import to_thread
from fastapi import APIRouter, File, Header, HTTPException, Query, UploadFile, status

from statichost.core.dependencies import AuditMetaDep, CurrentAdmin, CurrentUser, SessionDep
from statichost.models.enums import SiteStatus
from statichost.models.site import (
    GitCloneRequest,
    SiteCreate,
    SitePublic,
    SiteSuspendRequest,
    SiteUpdate,
)
from statichost.models.upload import UploadPublic, UploadStats
from statichost.services import admin as admin_service
from statichost.services import deploy as deploy_service
from statichost.services import site as site_service
from statichost.services.deploy import IncomingFile
from statichost.utils.pagination import pagination_meta

router = APIRouter(prefix="/sites", tags=["sites"])


@router.get("/")
def read_my_sites(
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    site_status: Annotated[SiteStatus | None, Query(alias="status")] = None,
) -> dict[str, Any]:
    """
    List the caller's sites, newest first.

    ### Query Parameters:
    - `page`, `limit`: pagination (limit at most 100)
    - `status`: optional status filter

    Returns:
        `sites` and `pagination{page, limit, total, total_pages}`.
    """
    sites, total = site_service.list_sites(
        session, current_user.id_user, page=page, limit=limit, status=site_status  # type: ignore[arg-type]
    )
    return {
        "sites": [SitePublic.model_validate(s) for s in sites],
        "pagination": pagination_meta(page, limit, total),
    }


@router.post("/", response_model=SitePublic, status_code=status.HTTP_201_CREATED)
def create_site(site_in: SiteCreate, session: SessionDep, current_user: CurrentUser) -> SitePublic:
    """
    Create a pending site.

    The slug defaults to one generated from the name; a taken slug gets a numeric suffix.

    Raises:
        `400 Bad Request`: If the site quota is reached.
        `422 Unprocessable Content`: If the name or slug is invalid.
    """
    site = site_service.create_site(session, current_user, site_in)
    return SitePublic.model_validate(site)


@router.get("/{site_id}")
def read_site(site_id: int, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    site = site_service.get_site_for_user(session, site_id, current_user)
    return {
        "site": SitePublic.model_validate(site),
        "stats": site_service.get_site_stats(session, site),
    }


@router.put("/{site_id}", response_model=SitePublic)
def update_site(
    site_id: int, site_update: SiteUpdate, session: SessionDep, current_user: CurrentUser
) -> SitePublic:
    site = site_service.get_site_for_user(session, site_id, current_user)
    return SitePublic.model_validate(site_service.update_site(session, site, site_update))


@router.delete("/{site_id}")
def delete_site(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    confirm: bool = False,
) -> dict[str, Any]:
    """
    Delete the stored files of a site and soft delete it.

    Requires `?confirm=true`. A storage failure is logged and the site is deleted anyway.
    """
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Confirmation required. Add ?confirm=true to delete.",
        )
    site = site_service.get_site_for_user(session, site_id, current_user)
    site_service.delete_site(session, site)
    return {"message": "Site deleted successfully", "id_site": site_id}


@router.post("/{site_id}/upload-file")
async def upload_files(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    files: Annotated[list[UploadFile], File(description="Files to publish")],
    x_upload_path: Annotated[str, Header()] = "",
) -> dict[str, Any]:
    """
    Upload individual files.

    ### Headers:
    - `x-upload-path`: optional directory inside the site

    Files failing validation are listed in `errors`; the others are stored.
    """
    site = site_service.get_site_for_user(session, site_id, current_user)
    incoming = [
        IncomingFile(filename=f.filename or "", content=await f.read(), content_type=f.content_type)
        for f in files
    ]
    result = await to_thread.run_sync(
        deploy_service.upload_files, session, site, current_user, incoming, x_upload_path
    )
    await site_service.warn_if_near_quota(session, site)
    return result


@router.post("/{site_id}/upload-zip")
async def upload_zip(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    file: Annotated[UploadFile, File(description="ZIP archive of the built site")],
) -> dict[str, Any]:
    """
    Upload a ZIP archive and publish its static assets.

    Raises:
        `400 Bad Request`: If the archive is invalid (`errors`, `warnings`) or exceeds the storage quota.
    """
    site = site_service.get_site_for_user(session, site_id, current_user)
    data = await file.read()
    result = await to_thread.run_sync(
        deploy_service.upload_zip, session, site, current_user, file.filename or "upload.zip", data
    )
    await site_service.warn_if_near_quota(session, site)
    return result


@router.post("/{site_id}/git-clone")
async def git_clone(
    site_id: int,
    request_data: GitCloneRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> dict[str, Any]:
    """
    Deploy a public Git repository.

    ### Rules:
    - The repository must hold an index.html at its root or in public/ dist/ build/ out/ _site/ docs/ static/
    - Repositories that need a build step are refused with `instructions`
    - Only static assets are uploaded
    """
    site = site_service.get_site_for_user(session, site_id, current_user)
    # git clone can run for GIT_CLONE_TIMEOUT seconds
    result = await to_thread.run_sync(
        deploy_service.deploy_from_git,
        session,
        site,
        current_user,
        request_data.repo_url,
        request_data.branch,
    )
    await site_service.warn_if_near_quota(session, site)
    return result


@router.post("/{site_id}/activate", response_model=SitePublic)
async def activate_site(site_id: int, session: SessionDep, current_user: CurrentUser) -> SitePublic:
    """
    Publish a site at `{CDN_URL or APP_URL}/s/{slug}`.

    Raises:
        `422 Unprocessable Content`: If the site has no files or no index.html.
    """
    site = site_service.get_site_for_user(session, site_id, current_user)
    site = await site_service.activate_site(session, site)
    return SitePublic.model_validate(site)


@router.post("/{site_id}/suspend", response_model=SitePublic)
def suspend_site(
    site_id: int,
    request_data: SiteSuspendRequest,
    session: SessionDep,
    admin: CurrentAdmin,
    meta: AuditMetaDep,
) -> SitePublic:
    site = admin_service.suspend_site(session, admin, site_id, request_data.reason, meta)
    return SitePublic.model_validate(site)


@router.get("/{site_id}/uploads")
def read_uploads(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> dict[str, Any]:
    site_service.get_site_for_user(session, site_id, current_user)
    uploads, total = site_service.get_uploads(session, site_id, page=page, limit=limit)
    return {
        "uploads": [UploadPublic.model_validate(u) for u in uploads],
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/{site_id}/uploads/stats", response_model=UploadStats)
def read_upload_stats(site_id: int, session: SessionDep, current_user: CurrentUser) -> UploadStats:
    site_service.get_site_for_user(session, site_id, current_user)
    return site_service.get_upload_stats(session, site_id)
