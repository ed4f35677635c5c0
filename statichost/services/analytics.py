"""Visitor analytics for hosted sites: hit tracking, aggregation and export."""

import csv
import hashlib
import io
import json
import re
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, cast
from urllib.parse import urlparse

from dateutil.relativedelta import relativedelta
from loguru import logger
from sqlmodel import Session, select, col

from statichost.models.analytics import (
    BreakdownItem,
    DailyDataPoint,
    Hit,
    HitPayload,
    MonthlyDataPoint,
    RealtimeVisitor,
)
from statichost.models.enums import DeviceType, EventType, SiteStatus
from statichost.models.site import Site
from statichost.utils.formatting import percentage_change

PERIODS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90, "1y": 365}
SESSION_WINDOW_SECONDS = 30 * 60
REALTIME_WINDOW = timedelta(minutes=5)
EXPORT_FORMATS = ("csv", "json")

BOT_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE), name)
    for pattern, name in (
        (r"googlebot", "Googlebot"),
        (r"bingbot", "Bingbot"),
        (r"slurp", "Yahoo Slurp"),
        (r"duckduckbot", "DuckDuckGo"),
        (r"baiduspider", "Baiduspider"),
        (r"yandexbot", "YandexBot"),
        (r"facebookexternalhit", "Facebook"),
        (r"twitterbot", "Twitterbot"),
        (r"rogerbot", "Rogerbot"),
        (r"linkedinbot", "LinkedInBot"),
        (r"embedly", "Embedly"),
        (r"quora link preview", "Quora"),
        (r"showyoubot", "ShowYouBot"),
        (r"outbrain", "Outbrain"),
        (r"pinterest", "Pinterest"),
        (r"developers\.google\.com", "Google Developers"),
        (r"slackbot", "Slackbot"),
        (r"applebot", "Applebot"),
        (r"whatsapp", "WhatsApp"),
        (r"flipboard", "Flipboard"),
        (r"tumblr", "Tumblr"),
        (r"bitlybot", "Bitly"),
        (r"skypeuripreview", "Skype"),
        (r"nuzzel", "Nuzzel"),
        (r"discordbot", "Discord"),
        (r"telegrambot", "Telegram"),
        (r"mj12bot", "Majestic"),
        (r"ahrefsbot", "Ahrefs"),
        (r"semrushbot", "Semrush"),
        (r"dotbot", "Dotbot"),
        (r"moz\.com", "Moz"),
    )
]

EXPORT_FIELDS = [
    "timestamp",
    "path",
    "url",
    "referrer",
    "browser",
    "os",
    "device_type",
    "country",
    "language",
    "event_type",
    "event_name",
    "load_time",
    "bandwidth",
]


# --- Request inspection -------------------------------------------------------


def detect_bot(user_agent: str | None) -> tuple[bool, str | None]:
    if not user_agent:
        return False, None
    for pattern, name in BOT_PATTERNS:
        if pattern.search(user_agent):
            return True, name
    return False, None


def parse_user_agent(user_agent: str | None) -> dict[str, Any]:
    """
    Rough browser, OS and device classification of a User-Agent header.

    Edge and Opera are checked before Chrome and Android/iOS before desktop systems,
    since their headers also mention the engines and systems they derive from.
    """
    ua = (user_agent or "").lower()
    browser = "Unknown"
    os_name = "Unknown"
    device = DeviceType.DESKTOP

    if "edg/" in ua or "edge" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "chrome" in ua and "chromium" not in ua:
        browser = "Chrome"
    elif "firefox" in ua:
        browser = "Firefox"
    elif "safari" in ua:
        browser = "Safari"
    elif "msie" in ua or "trident" in ua:
        browser = "IE"

    if "android" in ua:
        os_name = "Android"
        device = DeviceType.MOBILE
    elif "iphone" in ua or "ipad" in ua:
        os_name = "iOS"
        device = DeviceType.TABLET if "ipad" in ua else DeviceType.MOBILE
    elif "windows" in ua:
        os_name = "Windows"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"

    if "tablet" in ua or "ipad" in ua:
        device = DeviceType.TABLET
    elif "mobile" in ua:
        device = DeviceType.MOBILE

    return {"browser": browser, "os": os_name, "device_type": device}


def hash_ip(ip: str) -> str:
    return hashlib.sha256(ip.encode()).hexdigest()


def session_id_for(ip: str, user_agent: str, now: datetime) -> str:
    """Visits from the same IP and browser within one 30-minute window share a session."""
    bucket = int(now.timestamp()) // SESSION_WINDOW_SECONDS
    return hashlib.md5(f"{ip}{user_agent}{bucket}".encode()).hexdigest()


def visitor_id_for(ip: str, user_agent: str) -> str:
    return hashlib.sha256(f"{ip}{user_agent}".encode()).hexdigest()[:16]


def client_ip(forwarded_for: str | None, real_ip: str | None, remote: str | None) -> str:
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return real_ip or remote or "unknown"


def _path_from(url: str | None, path: str | None) -> str:
    if url and url.startswith("http"):
        parsed = urlparse(url)
        return f"{parsed.path or '/'}{'?' + parsed.query if parsed.query else ''}"
    return path or "/"


# --- Tracking -----------------------------------------------------------------


def record_hit(
    session: Session,
    site_id: int,
    payload: HitPayload,
    *,
    ip: str,
    user_agent: str = "",
    referrer: str = "",
    accept_language: str | None = None,
    now: datetime | None = None,
) -> Hit | None:
    """
    Store one pageview or event for a site.

    Nothing is recorded for unknown or inactive sites, or when the owner turned
    analytics off. The IP address is only kept as a SHA-256 hash. Bot traffic is
    stored and flagged but does not move the site counters.

    Returns:
        Hit | None: The stored hit, or None when the hit was ignored.
    """
    site = session.get(Site, site_id)
    if site is None or site.status != SiteStatus.ACTIVE or not site.analytics_enabled:
        return None

    now = now or datetime.now()
    is_bot, bot_name = detect_bot(user_agent)
    agent = parse_user_agent(user_agent)
    session_id = session_id_for(ip, user_agent, now)

    session_start = payload.session_start
    if session_start is None:
        previous = session.exec(
            select(Hit.id_hit).where(Hit.id_site == site_id, Hit.session_id == session_id)
        ).first()
        session_start = previous is None

    language = payload.language
    if not language and accept_language:
        language = accept_language.split(",")[0].strip() or None

    hit = Hit(
        id_site=site_id,
        session_id=session_id,
        visitor_id=visitor_id_for(ip, user_agent),
        ip_hash=hash_ip(ip),
        user_agent=user_agent,
        referrer=payload.referrer or referrer or "",
        url=payload.url or "/",
        path=_path_from(payload.url, payload.path),
        browser=agent["browser"],
        os=agent["os"],
        device_type=agent["device_type"],
        screen_resolution=payload.screen_resolution,
        language=language,
        country=payload.country,
        event_type=payload.event_type,
        event_name=payload.event_name,
        session_start=session_start,
        session_duration=payload.session_duration or 0,
        load_time=payload.load_time,
        bandwidth=payload.bandwidth or 0,
        is_bot=is_bot,
        bot_name=bot_name,
        timestamp=now,
        date=now.strftime("%Y-%m-%d"),
    )
    session.add(hit)

    if not is_bot:
        site.total_hits += 1
        site.last_hit = now
        if session_start:
            site.unique_visitors += 1
        session.add(site)

    session.commit()
    session.refresh(hit)
    return hit


# --- Queries ------------------------------------------------------------------


def _hits(
    session: Session,
    site_id: int,
    since: datetime | None = None,
    until: datetime | None = None,
    include_bots: bool = False,
) -> list[Hit]:
    statement = select(Hit).where(Hit.id_site == site_id)
    if since is not None:
        statement = statement.where(Hit.timestamp >= since)
    if until is not None:
        statement = statement.where(Hit.timestamp < until)
    if not include_bots:
        statement = statement.where(Hit.is_bot == False)  # noqa: E712
    return list(session.exec(statement.order_by(col(Hit.timestamp))).all())


def _since_days(days: int) -> datetime:
    return datetime.now() - timedelta(days=days)


def _totals(hits: list[Hit]) -> dict[str, Any]:
    load_times = [h.load_time for h in hits if h.load_time is not None]
    return {
        "hits": len(hits),
        "unique_visitors": len({h.visitor_id for h in hits}),
        "pageviews": sum(1 for h in hits if h.event_type == EventType.PAGEVIEW),
        "events": sum(1 for h in hits if h.event_type == EventType.EVENT),
        "bandwidth": sum(h.bandwidth for h in hits),
        "avg_load_time": round(sum(load_times) / len(load_times)) if load_times else 0,
    }


def get_site_analytics(session: Session, site_id: int, period: str = "30d") -> dict[str, Any]:
    """Totals over one of PERIODS; unknown periods fall back to 30 days."""
    days = PERIODS.get(period, 30)
    return {"period": period, **_totals(_hits(session, site_id, since=_since_days(days)))}


def get_daily_stats(session: Session, site_id: int, days: int = 30) -> list[DailyDataPoint]:
    """
    One data point per calendar day, oldest first, ending today.

    Days without traffic are included with zero values.
    """
    today = date.today()
    start = today - timedelta(days=days - 1)
    hits = _hits(session, site_id, since=datetime(start.year, start.month, start.day))

    by_day: dict[str, list[Hit]] = defaultdict(list)
    for hit in hits:
        by_day[hit.date].append(hit)

    result = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).strftime("%Y-%m-%d")
        day_hits = by_day.get(day, [])
        result.append(
            DailyDataPoint(
                date=day,
                hits=len(day_hits),
                unique_visitors=len({h.visitor_id for h in day_hits}),
                bandwidth=sum(h.bandwidth for h in day_hits),
            )
        )
    return result


def get_monthly_stats(session: Session, site_id: int, months: int = 12) -> list[MonthlyDataPoint]:
    """One data point per month, oldest first, ending with the current month."""
    today = date.today()
    start_of_current_month = datetime(today.year, today.month, 1)
    start_date: datetime = cast(
        datetime, start_of_current_month - relativedelta(months=months - 1)
    )
    hits = _hits(session, site_id, since=start_date)

    # Group by month string in Python for database compatibility
    by_month: dict[str, list[Hit]] = defaultdict(list)
    for hit in hits:
        by_month[hit.timestamp.strftime("%Y-%m")].append(hit)

    result = []
    current: datetime = start_date
    for _ in range(months):
        month_str = current.strftime("%Y-%m")
        month_hits = by_month.get(month_str, [])
        result.append(
            MonthlyDataPoint(
                month=month_str,
                hits=len(month_hits),
                unique_visitors=len({h.visitor_id for h in month_hits}),
                bandwidth=sum(h.bandwidth for h in month_hits),
            )
        )
        current = cast(datetime, current + relativedelta(months=1))
    return result


def _grouped(hits: list[Hit], key: str, limit: int | None) -> list[dict[str, Any]]:
    groups: dict[Any, list[Hit]] = defaultdict(list)
    for hit in hits:
        groups[getattr(hit, key)].append(hit)
    ranked = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [
        {
            key: value.value if isinstance(value, DeviceType) else value,
            "hits": len(group),
            "unique_visitors": len({h.visitor_id for h in group}),
        }
        for value, group in ranked
    ]


def get_top_pages(
    session: Session, site_id: int, limit: int = 10, days: int = 30
) -> list[dict[str, Any]]:
    hits = [
        h
        for h in _hits(session, site_id, since=_since_days(days))
        if h.event_type == EventType.PAGEVIEW
    ]
    pages = _grouped(hits, "path", limit)
    for page in pages:
        load_times = [
            h.load_time for h in hits if h.path == page["path"] and h.load_time is not None
        ]
        page["avg_load_time"] = round(sum(load_times) / len(load_times)) if load_times else None
    return pages


def get_referrers(
    session: Session, site_id: int, limit: int = 10, days: int = 30
) -> list[dict[str, Any]]:
    hits = [h for h in _hits(session, site_id, since=_since_days(days)) if h.referrer]
    return _grouped(hits, "referrer", limit)


def get_countries(
    session: Session, site_id: int, limit: int = 10, days: int = 30
) -> list[dict[str, Any]]:
    hits = [h for h in _hits(session, site_id, since=_since_days(days)) if h.country]
    return _grouped(hits, "country", limit)


def get_browsers(
    session: Session, site_id: int, limit: int = 5, days: int = 30
) -> list[dict[str, Any]]:
    return _grouped(_hits(session, site_id, since=_since_days(days)), "browser", limit)


def get_devices(session: Session, site_id: int, days: int = 30) -> list[BreakdownItem]:
    """Hits per device type with each type's share of the total in percent."""
    counts = Counter(
        h.device_type.value for h in _hits(session, site_id, since=_since_days(days))
    )
    total = sum(counts.values())
    return [
        BreakdownItem(
            label=label,
            count=count,
            percentage=round(count / total * 100, 1) if total else 0.0,
        )
        for label, count in counts.most_common()
    ]


def get_realtime(
    session: Session, site_id: int, now: datetime | None = None
) -> list[RealtimeVisitor]:
    """Sessions active during the last five minutes, most recently active first."""
    now = now or datetime.now()
    hits = _hits(session, site_id, since=now - REALTIME_WINDOW)

    sessions: dict[str, list[Hit]] = defaultdict(list)
    for hit in hits:
        sessions[hit.session_id].append(hit)

    visitors = []
    for session_id, session_hits in sessions.items():
        first, last = session_hits[0], session_hits[-1]
        visitors.append(
            RealtimeVisitor(
                session_id=session_id,
                current_page=last.path,
                page_count=len(session_hits),
                last_activity=last.timestamp,
                active_seconds=max(int((now - last.timestamp).total_seconds()), 0),
                browser=first.browser,
                device_type=first.device_type.value,
                country=first.country,
            )
        )
    return sorted(visitors, key=lambda v: v.last_activity, reverse=True)


def get_bandwidth_usage(session: Session, site_id: int, days: int = 30) -> list[dict[str, Any]]:
    """Bytes served per day, counting only hits that reported a bandwidth."""
    by_day: dict[str, list[int]] = defaultdict(list)
    for hit in _hits(session, site_id, since=_since_days(days)):
        if hit.bandwidth > 0:
            by_day[hit.date].append(hit.bandwidth)
    return [
        {
            "date": day,
            "bandwidth": sum(values),
            "requests": len(values),
            "bandwidth_per_request": round(sum(values) / len(values)),
        }
        for day, values in sorted(by_day.items())
    ]


def get_dashboard_summary(session: Session, site_id: int) -> dict[str, Any]:
    """
    Headline figures: today, yesterday, the last 7 days and all time.

    `change` compares today with yesterday in percent.
    """
    today = date.today()
    today_start = datetime(today.year, today.month, today.day)
    yesterday_start = today_start - timedelta(days=1)
    week_start = today_start - timedelta(days=7)

    all_hits = _hits(session, site_id)

    def window(start: datetime, end: datetime | None = None) -> dict[str, int]:
        selected = [
            h for h in all_hits if h.timestamp >= start and (end is None or h.timestamp < end)
        ]
        return {"hits": len(selected), "unique_visitors": len({h.visitor_id for h in selected})}

    today_stats = window(today_start)
    yesterday_stats = window(yesterday_start, today_start)
    totals = _totals(all_hits)
    return {
        "today": today_stats,
        "yesterday": yesterday_stats,
        "last_7_days": window(week_start),
        "all_time": {
            "hits": totals["hits"],
            "unique_visitors": totals["unique_visitors"],
            "bandwidth": totals["bandwidth"],
            "avg_load_time": totals["avg_load_time"],
        },
        "change": {
            "hits": percentage_change(today_stats["hits"], yesterday_stats["hits"]),
            "unique_visitors": percentage_change(
                today_stats["unique_visitors"], yesterday_stats["unique_visitors"]
            ),
        },
    }


def get_report(
    session: Session, site: Site, days: int = 30, group_by: str = "day"
) -> dict[str, Any]:
    """
    Everything the analytics page shows for a site in one payload.

    With `group_by="month"` the series holds ceil(days / 30) monthly points instead of
    daily ones.
    """
    site_id = cast(int, site.id_site)
    if group_by == "month":
        series: list = get_monthly_stats(session, site_id, max(-(-days // 30), 1))
    else:
        series = get_daily_stats(session, site_id, days)
    realtime = get_realtime(session, site_id)
    now = datetime.now()
    return {
        "site": {
            "id_site": site.id_site,
            "name": site.name,
            "slug": site.slug,
            "public_url": site.public_url,
            "status": site.status,
        },
        "timeframe": {
            "days": days,
            "group_by": group_by,
            "start_date": now - timedelta(days=days),
            "end_date": now,
        },
        "summary": get_dashboard_summary(session, site_id),
        "analytics": [point.model_dump() for point in series],
        "breakdowns": {
            "top_pages": get_top_pages(session, site_id, 10, days),
            "referrers": get_referrers(session, site_id, 10, days),
            "countries": get_countries(session, site_id, 10, days),
            "devices": [item.model_dump() for item in get_devices(session, site_id, days)],
            "browsers": get_browsers(session, site_id, 5, days),
        },
        "realtime": {
            "active_visitors": len(realtime),
            "active_sessions": [v.model_dump() for v in realtime],
        },
        "bandwidth": get_bandwidth_usage(session, site_id, days),
    }


def export_data(session: Session, site_id: int, format: str = "csv", days: int = 30) -> str:
    """
    Raw, bot-free hits of the last `days` days as CSV or JSON text.

    Raises:
        ValueError: If `format` is neither "csv" nor "json".
    """
    if format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {format}")
    hits = _hits(session, site_id, since=_since_days(days))
    rows = [
        {
            **{field: getattr(hit, field) for field in EXPORT_FIELDS},
            "timestamp": hit.timestamp.isoformat(),
            "device_type": hit.device_type.value,
            "event_type": hit.event_type.value,
        }
        for hit in hits
    ]
    if format == "json":
        return json.dumps(rows, indent=2)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def cleanup_old_data(session: Session, retention_days: int = 90) -> int:
    """Delete hits older than `retention_days`; returns how many were removed."""
    cutoff = datetime.now() - timedelta(days=retention_days)
    old_hits = session.exec(select(Hit).where(Hit.timestamp < cutoff)).all()
    for hit in old_hits:
        session.delete(hit)
    session.commit()
    deleted = len(old_hits)
    logger.info(f"Removed {deleted} analytics hits older than {retention_days} days")
    return deleted
