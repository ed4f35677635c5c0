"""Turn analytics endpoint payloads into label/value series for display.

Nothing here talks to the API; every function takes the decoded JSON and returns
plain lists and dicts.
"""

from datetime import date
from typing import Any
from urllib.parse import urlparse

from statichost.utils.formatting import format_bytes, format_number

DAILY_WINDOW = 30
SOURCE_LIMIT = 5
COUNTRY_LIMIT = 8
BROWSER_LIMIT = 5


def _short_date(value: str) -> str:
    """"2024-03-07" -> "3/7"; anything unparsable is returned unchanged."""
    try:
        day = date.fromisoformat(value)
    except ValueError:
        return value
    return f"{day.month}/{day.day}"


def shape_daily_series(
    points: list[dict[str, Any]], window: int = DAILY_WINDOW
) -> dict[str, Any]:
    """
    Labels and value lists for the visitors chart from daily or monthly data points.

    Only the last `window` points are kept. Daily points are labelled "month/day",
    monthly points keep their "YYYY-MM" label.

    Returns:
        dict: `labels` plus one list per metric: `hits`, `unique_visitors`, `bandwidth`.
    """
    points = points[-window:] if window else points
    labels = [
        _short_date(p["date"]) if "date" in p else str(p.get("month", "")) for p in points
    ]
    return {
        "labels": labels,
        "hits": [p.get("hits", 0) for p in points],
        "unique_visitors": [p.get("unique_visitors", 0) for p in points],
        "bandwidth": [p.get("bandwidth", 0) for p in points],
    }


def source_label(referrer: str | None) -> str:
    """Display name of a referrer: "Direct" when empty, else its host without "www."."""
    if not referrer or referrer == "direct":
        return "Direct"
    if referrer == "organic":
        return "Search"
    host = urlparse(referrer).hostname
    if not host:
        return referrer
    return host[4:] if host.startswith("www.") else host


def breakdown_percentages(
    items: list[dict[str, Any]],
    label_key: str,
    count_key: str = "hits",
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """
    Attach each item's share of the total, in percent rounded to one decimal.

    A zero total yields 0.0 for every item rather than dividing by zero.

    Parameters:
        items (list[dict]): Breakdown rows as returned by the analytics endpoints.
        label_key (str): Field holding the display label ("browser", "country", ...).
        count_key (str): Field holding the count.
        limit (int | None): Keep only the first `limit` rows; the total still covers all rows.

    Returns:
        list[dict]: Rows with `label`, `count` and `percentage`.
    """
    total = sum(item.get(count_key, 0) or 0 for item in items)
    selected = items[:limit] if limit is not None else items
    return [
        {
            "label": item.get(label_key) or "Unknown",
            "count": item.get(count_key, 0) or 0,
            "percentage": round((item.get(count_key, 0) or 0) / total * 100, 1) if total else 0.0,
        }
        for item in selected
    ]


def build_dashboard(
    summary: dict[str, Any],
    daily: list[dict[str, Any]],
    sources: list[dict[str, Any]] | None = None,
    countries: list[dict[str, Any]] | None = None,
    devices: list[dict[str, Any]] | None = None,
    browsers: list[dict[str, Any]] | None = None,
    realtime: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Assemble the analytics page of one site from the individual endpoint payloads.

    Parameters:
        summary (dict): Payload of `/summary` (its `dashboard` part or the whole body).
        daily (list[dict]): The `analytics` series of `/daily`.

    Returns:
        dict: `cards` with formatted headline figures, `visitors` series, and
        `sources`, `countries`, `devices`, `browsers` breakdowns plus the realtime count.
    """
    dashboard = summary.get("dashboard", summary)
    today = dashboard.get("today", {})
    all_time = dashboard.get("all_time", {})
    change = dashboard.get("change", {})

    source_rows = [
        {**row, "referrer": source_label(row.get("referrer"))} for row in sources or []
    ]
    device_rows = [
        {"device_type": row.get("label"), "hits": row.get("count", 0)} for row in devices or []
    ]

    return {
        "cards": {
            "today_hits": format_number(today.get("hits", 0)),
            "today_visitors": format_number(today.get("unique_visitors", 0)),
            "total_hits": format_number(all_time.get("hits", 0)),
            "total_visitors": format_number(all_time.get("unique_visitors", 0)),
            "bandwidth": format_bytes(all_time.get("bandwidth", 0)),
            "hits_change": change.get("hits", 0),
            "visitors_change": change.get("unique_visitors", 0),
        },
        "visitors": shape_daily_series(daily),
        "sources": breakdown_percentages(source_rows, "referrer", limit=SOURCE_LIMIT),
        "countries": breakdown_percentages(countries or [], "country", limit=COUNTRY_LIMIT),
        "devices": breakdown_percentages(device_rows, "device_type"),
        "browsers": breakdown_percentages(browsers or [], "browser", limit=BROWSER_LIMIT),
        "active_visitors": len(realtime or []),
    }
