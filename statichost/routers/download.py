"""Serving published sites from object storage."""

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import Response
from sqlmodel import Session

from statichost.core.dependencies import SessionDep
from statichost.models.enums import SiteStatus
from statichost.models.site import Site
from statichost.services import site as site_service
from statichost.services.storage import StoredFile, storage_service

router = APIRouter(tags=["download"])

INDEX_FILE = "index.html"


def _clean_path(path: str) -> str:
    if ".." in path or "//" in path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path")
    path = path.lstrip("/")
    if not path or path.endswith("/"):
        path += INDEX_FILE
    return path


def _find_file(site: Site, path: str) -> StoredFile:
    """The requested file, else the site's index.html so client-side routes keep working."""
    site_id = site.id_site
    stored = storage_service.get_site_file(site_id, path)  # type: ignore[arg-type]
    if stored is None:
        index_path = site_service.find_index_html(site)
        if index_path is not None:
            stored = storage_service.get_site_file(site_id, index_path)  # type: ignore[arg-type]
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return stored


def _serve(request: Request, site: Site | None, path: str) -> Response:
    if site is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")
    if site.status != SiteStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Site is not active")

    stored = _find_file(site, _clean_path(path))
    headers = {
        "Cache-Control": stored.cache_control,
        "Content-Length": str(stored.size),
        "X-Content-Type-Options": "nosniff",
    }
    content = b"" if request.method == "HEAD" else stored.content
    return Response(content=content, media_type=stored.content_type, headers=headers)


def _site_by_id(session: Session, site_id: int) -> Site | None:
    site = session.get(Site, site_id)
    if site is None or site.status == SiteStatus.DELETED:
        return None
    return site


@router.api_route("/s/{slug}", methods=["GET", "HEAD"], include_in_schema=False)
@router.api_route("/s/{slug}/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
def serve_site(slug: str, request: Request, session: SessionDep, path: str = "") -> Response:
    """
    Serve a file of an active site by slug.

    An empty path or a directory path serves its index.html. Unknown paths fall back
    to the site's index.html, and answer 404 only when there is none.
    """
    return _serve(request, site_service.get_site_by_slug(session, slug), path)


@router.api_route("/api/download/{site_id}", methods=["GET", "HEAD"])
@router.api_route("/api/download/{site_id}/{path:path}", methods=["GET", "HEAD"])
def download_site_file(
    site_id: int, request: Request, session: SessionDep, path: str = ""
) -> Response:
    return _serve(request, _site_by_id(session, site_id), path)
