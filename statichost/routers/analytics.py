"""Analytics router module: the public tracking endpoint and per-site reports."""

import base64
import json
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from statichost.core.dependencies import CurrentUser, SessionDep
from statichost.exceptions import InsufficientPermissionsError
from statichost.models.analytics import BreakdownItem, HitPayload, RealtimeVisitor
from statichost.models.site import Site
from statichost.models.user import User
from statichost.services import analytics as analytics_service
from statichost.services import site as site_service
from statichost.utils.tracking import TRACKING_SCRIPT

router = APIRouter(prefix="/analytics", tags=["analytics"])

TRACKING_PIXEL = base64.b64decode(
    "R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"
)
TRACKING_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "no-store, no-cache, must-revalidate",
}


def _parse_payload(data: Any) -> HitPayload:
    if not isinstance(data, dict):
        return HitPayload()
    try:
        return HitPayload.model_validate(data)
    except PydanticValidationError:
        logger.debug("Ignoring malformed analytics payload")
        return HitPayload()


def _track(request: Request, session: Session, site_id: int, payload: HitPayload) -> bool:
    headers = request.headers
    ip = analytics_service.client_ip(
        headers.get("x-forwarded-for"),
        headers.get("x-real-ip"),
        request.client.host if request.client else None,
    )
    try:
        hit = analytics_service.record_hit(
            session,
            site_id,
            payload,
            ip=ip,
            user_agent=headers.get("user-agent", ""),
            referrer=headers.get("referer", ""),
            accept_language=headers.get("accept-language"),
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Could not record analytics hit for site {site_id}: {e}")
        return False
    return hit is not None


@router.get("/hit/{site_id}", include_in_schema=False)
def track_hit_pixel(site_id: int, request: Request, session: SessionDep) -> Response:
    """Tracking pixel: the hit is described by query parameters and a 1x1 GIF is returned."""
    _track(request, session, site_id, _parse_payload(dict(request.query_params)))
    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=TRACKING_HEADERS)


@router.post("/hit/{site_id}", include_in_schema=False)
async def track_hit(site_id: int, request: Request, session: SessionDep) -> JSONResponse:
    """
    Tracking beacon with a JSON body.

    Always answers 200 so a tracking failure never surfaces on the visited page; the
    body is read as JSON whatever its content type.
    """
    body = await request.body()
    try:
        data = json.loads(body) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        data = {}
    recorded = _track(request, session, site_id, _parse_payload(data))
    return JSONResponse(content={"success": True, "recorded": recorded}, headers=TRACKING_HEADERS)


@router.options("/hit/{site_id}", include_in_schema=False)
def track_hit_preflight(site_id: int) -> Response:
    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Max-Age": "86400",
        },
    )


@router.get("/script.js", include_in_schema=False)
def tracking_script() -> Response:
    """The browser tracking script embedded by hosted sites with a `data-site-id` attribute."""
    return Response(
        content=TRACKING_SCRIPT,
        media_type="application/javascript",
        headers={"Access-Control-Allow-Origin": "*", "Cache-Control": "public, max-age=3600"},
    )


def _site_for_analytics(session: Session, site_id: int, user: User) -> Site:
    site = site_service.get_site(session, site_id)
    if site.id_owner != user.id_user and not user.is_admin:
        raise InsufficientPermissionsError("Unauthorized access to analytics")
    return site


@router.get("/site/{site_id}/daily")
def read_site_report(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    days: int = 30,
    group_by: str = "day",
) -> dict[str, Any]:
    """
    Full analytics report of a site.

    ### Query Parameters:
    - `days`: window size, 1 to 365 (default 30)
    - `group_by`: "day" or "month" for the time series

    Returns:
        `site`, `timeframe`, `summary`, `analytics` (series), `breakdowns`, `realtime` and `bandwidth`.
    """
    if days < 1 or days > 365:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Days must be between 1 and 365"
        )
    if group_by not in ("day", "month"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="group_by must be 'day' or 'month'"
        )
    site = _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_report(session, site, days, group_by)


@router.get("/site/{site_id}/summary")
def read_summary(
    site_id: int, session: SessionDep, current_user: CurrentUser, period: str = "30d"
) -> dict[str, Any]:
    _site_for_analytics(session, site_id, current_user)
    return {
        "dashboard": analytics_service.get_dashboard_summary(session, site_id),
        "period": analytics_service.get_site_analytics(session, site_id, period),
    }


@router.get("/site/{site_id}/sources")
def read_sources(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[dict[str, Any]]:
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_referrers(session, site_id, limit, days)


@router.get("/site/{site_id}/countries")
def read_countries(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[dict[str, Any]]:
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_countries(session, site_id, limit, days)


@router.get("/site/{site_id}/devices", response_model=list[BreakdownItem])
def read_devices(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[BreakdownItem]:
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_devices(session, site_id, days)


@router.get("/site/{site_id}/browsers")
def read_browsers(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 5,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[dict[str, Any]]:
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_browsers(session, site_id, limit, days)


@router.get("/site/{site_id}/realtime", response_model=list[RealtimeVisitor])
def read_realtime(
    site_id: int, session: SessionDep, current_user: CurrentUser
) -> list[RealtimeVisitor]:
    """Sessions active during the last five minutes."""
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_realtime(session, site_id)


@router.get("/site/{site_id}/pages")
def read_top_pages(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[dict[str, Any]]:
    _site_for_analytics(session, site_id, current_user)
    return analytics_service.get_top_pages(session, site_id, limit, days)


@router.get("/site/{site_id}/export")
def export_analytics(
    site_id: int,
    session: SessionDep,
    current_user: CurrentUser,
    format: str = "csv",
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> Response:
    """Download the raw hits of the last `days` days as CSV or JSON."""
    site = _site_for_analytics(session, site_id, current_user)
    try:
        content = analytics_service.export_data(session, site_id, format, days)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    media_type = "text/csv" if format == "csv" else "application/json"
    filename = f"analytics-{site.slug}-{datetime.now():%Y-%m-%d}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
