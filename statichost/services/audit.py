"""Audit trail of administrative actions: recording, querying, statistics and export."""

import csv
import io
import json
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlmodel import Session, select, func, col

from statichost.models.audit import AuditAdmin, AuditFilters, AuditLog, AuditLogPublic
from statichost.models.enums import AuditResource, AuditStatus
from statichost.models.user import User
from statichost.utils.pagination import offset_for

EXPORT_LIMIT = 10_000
CSV_HEADERS = [
    "Timestamp",
    "Admin Email",
    "Action",
    "Resource",
    "Resource ID",
    "Status",
    "IP Address",
    "User Agent",
]


@dataclass
class AuditMeta:
    """Where an administrative request came from."""

    ip_address: str | None = None
    user_agent: str | None = None


def log_action(
    session: Session,
    *,
    action: str,
    resource: AuditResource,
    admin: User | None = None,
    id_user: int | None = None,
    id_site: int | None = None,
    resource_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    status: AuditStatus = AuditStatus.SUCCESS,
    error: str | None = None,
    meta: AuditMeta | None = None,
) -> AuditLog:
    """
    Append one entry to the audit log and commit it.

    Parameters:
        action (str): Dotted action name, e.g. "user.suspend".
        resource (AuditResource): Kind of object acted upon.
        admin (User | None): Administrator performing the action; None for system jobs.
        resource_id: Identifier of the affected object.
        details (dict | None): JSON-serializable context such as changed fields.
        status (AuditStatus): Whether the action succeeded.
        error (str | None): Failure reason when `status` is FAILED.
        meta (AuditMeta | None): Client IP and user agent.

    Returns:
        AuditLog: The persisted entry.
    """
    meta = meta or AuditMeta()
    entry = AuditLog(
        id_admin=admin.id_user if admin else None,
        id_user=id_user,
        id_site=id_site,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details or {},
        status=status,
        error=error,
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    if status == AuditStatus.FAILED:
        logger.warning(f"Audit: {action} on {resource.value} {resource_id} failed: {error}")
    else:
        logger.info(f"Audit: {action} on {resource.value} {resource_id}")
    return entry


def log_user_action(
    session: Session,
    admin: User | None,
    action: str,
    user_id: int,
    details: dict[str, Any] | None = None,
    **kwargs: Any,
) -> AuditLog:
    return log_action(
        session,
        action=action,
        resource=AuditResource.USER,
        admin=admin,
        id_user=user_id,
        resource_id=user_id,
        details=details,
        **kwargs,
    )


def log_site_action(
    session: Session,
    admin: User | None,
    action: str,
    site_id: int,
    details: dict[str, Any] | None = None,
    **kwargs: Any,
) -> AuditLog:
    return log_action(
        session,
        action=action,
        resource=AuditResource.SITE,
        admin=admin,
        id_site=site_id,
        resource_id=site_id,
        details=details,
        **kwargs,
    )


def log_system_action(
    session: Session,
    action: str,
    details: dict[str, Any] | None = None,
    admin: User | None = None,
    **kwargs: Any,
) -> AuditLog:
    return log_action(
        session,
        action=action,
        resource=AuditResource.SYSTEM,
        admin=admin,
        details=details,
        **kwargs,
    )


def _apply_filters(statement, filters: AuditFilters):
    if filters.id_admin is not None:
        statement = statement.where(AuditLog.id_admin == filters.id_admin)
    if filters.id_user is not None:
        statement = statement.where(AuditLog.id_user == filters.id_user)
    if filters.id_site is not None:
        statement = statement.where(AuditLog.id_site == filters.id_site)
    if filters.resource is not None:
        statement = statement.where(AuditLog.resource == filters.resource)
    if filters.action:
        statement = statement.where(AuditLog.action == filters.action)
    if filters.status is not None:
        statement = statement.where(AuditLog.status == filters.status)
    if filters.start_date is not None:
        statement = statement.where(AuditLog.created_at >= filters.start_date)
    if filters.end_date is not None:
        statement = statement.where(AuditLog.created_at <= filters.end_date)
    if filters.search:
        statement = statement.where(col(AuditLog.action).contains(filters.search))
    return statement


def _with_admins(session: Session, entries: list[AuditLog]) -> list[AuditLogPublic]:
    admin_ids = {e.id_admin for e in entries if e.id_admin is not None}
    admins: dict[int, User] = {}
    if admin_ids:
        rows = session.exec(select(User).where(col(User.id_user).in_(admin_ids))).all()
        admins = {u.id_user: u for u in rows if u.id_user is not None}

    result = []
    for entry in entries:
        public = AuditLogPublic.model_validate(entry)
        admin = admins.get(entry.id_admin) if entry.id_admin is not None else None
        if admin is not None:
            public.admin = AuditAdmin(
                id_user=admin.id_user,  # type: ignore[arg-type]
                name=admin.name,
                email=admin.email,
            )
        result.append(public)
    return result


def get_logs(
    session: Session, filters: AuditFilters, *, page: int = 1, limit: int = 50
) -> tuple[list[AuditLogPublic], int]:
    """
    Filtered, newest-first page of audit entries with the acting admin attached.

    Returns:
        tuple[list[AuditLogPublic], int]: The page and the total number of matching entries.
    """
    total = session.exec(
        _apply_filters(select(func.count()).select_from(AuditLog), filters)
    ).one()
    statement = (
        _apply_filters(select(AuditLog), filters)
        .order_by(col(AuditLog.created_at).desc(), col(AuditLog.id_audit).desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    )
    entries = list(session.exec(statement).all())
    return _with_admins(session, entries), total


def get_stats(session: Session, days: int = 30) -> dict[str, Any]:
    """
    Aggregate the audit log over the last `days` days.

    Grouping happens in Python so the same code runs on SQLite and PostgreSQL.

    Returns:
        dict: `by_action` (total/success/failed per action), `by_resource`, `by_admin`
        (top 10), `daily` counts, and a `summary` with totals and success rate.
    """
    since = datetime.now() - timedelta(days=days)
    entries = session.exec(select(AuditLog).where(AuditLog.created_at >= since)).all()

    by_action: dict[str, Counter] = defaultdict(Counter)
    by_resource: Counter = Counter()
    by_admin: Counter = Counter()
    daily: Counter = Counter()
    for entry in entries:
        by_action[entry.action][entry.status.value] += 1
        by_resource[entry.resource.value] += 1
        if entry.id_admin is not None:
            by_admin[entry.id_admin] += 1
        daily[entry.created_at.strftime("%Y-%m-%d")] += 1

    admins = {}
    top_admins = by_admin.most_common(10)
    if top_admins:
        ids = [admin_id for admin_id, _ in top_admins]
        admins = {
            u.id_user: u
            for u in session.exec(select(User).where(col(User.id_user).in_(ids))).all()
        }

    today = datetime.now().strftime("%Y-%m-%d")
    failed = sum(c[AuditStatus.FAILED.value] for c in by_action.values())
    total = len(entries)
    return {
        "by_action": sorted(
            (
                {
                    "action": action,
                    "total": sum(counts.values()),
                    "success": counts[AuditStatus.SUCCESS.value],
                    "failed": counts[AuditStatus.FAILED.value],
                }
                for action, counts in by_action.items()
            ),
            key=lambda item: item["total"],
            reverse=True,
        ),
        "by_resource": [
            {"resource": resource, "count": count}
            for resource, count in by_resource.most_common()
        ],
        "by_admin": [
            {
                "id_admin": admin_id,
                "name": admins[admin_id].name if admin_id in admins else None,
                "email": admins[admin_id].email if admin_id in admins else None,
                "count": count,
            }
            for admin_id, count in top_admins
        ],
        "daily": [{"date": day, "count": daily[day]} for day in sorted(daily)],
        "summary": {
            "total": total,
            "today": daily.get(today, 0),
            "success": total - failed,
            "failed": failed,
            "success_rate": round((total - failed) / total * 100, 1) if total else 100.0,
        },
    }


def export_logs(session: Session, filters: AuditFilters, format: str = "csv") -> str:
    """
    Render up to EXPORT_LIMIT matching entries as CSV or JSON text.

    Raises:
        ValueError: If `format` is neither "csv" nor "json".
    """
    if format not in ("csv", "json"):
        raise ValueError(f"Unsupported export format: {format}")
    entries, _ = get_logs(session, filters, page=1, limit=EXPORT_LIMIT)

    if format == "json":
        return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        writer.writerow(
            [
                entry.created_at.isoformat(),
                entry.admin.email if entry.admin else "System",
                entry.action,
                entry.resource.value,
                entry.resource_id or "",
                entry.status.value,
                entry.ip_address or "",
                entry.user_agent or "",
            ]
        )
    return buffer.getvalue()


def cleanup(session: Session, retention_days: int = 365) -> int:
    """Delete entries older than `retention_days`; returns how many were removed."""
    cutoff = datetime.now() - timedelta(days=retention_days)
    old_entries = session.exec(select(AuditLog).where(AuditLog.created_at < cutoff)).all()
    for entry in old_entries:
        session.delete(entry)
    session.commit()
    deleted = len(old_entries)
    logger.info(f"Removed {deleted} audit entries older than {retention_days} days")
    return deleted
