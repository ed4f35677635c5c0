"""Analytics tracking table and the response models built from it."""

from datetime import datetime
from sqlmodel import SQLModel, Field

from .enums import EventType, DeviceType


class Hit(SQLModel, table=True):
    """One tracked pageview or custom event on a hosted site."""

    id_hit: int | None = Field(default=None, primary_key=True)
    id_site: int = Field(foreign_key="site.id_site", index=True)
    session_id: str = Field(index=True, max_length=32)
    visitor_id: str = Field(index=True, max_length=16)
    ip_hash: str = Field(max_length=64)
    user_agent: str = Field(default="")
    referrer: str = Field(default="")
    url: str = Field(default="")
    path: str = Field(default="/")
    browser: str = Field(default="Unknown")
    os: str = Field(default="Unknown")
    device_type: DeviceType = Field(default=DeviceType.DESKTOP)
    screen_resolution: str | None = None
    language: str | None = None
    country: str | None = None
    event_type: EventType = Field(default=EventType.PAGEVIEW)
    event_name: str | None = None
    session_start: bool = Field(default=False)
    session_duration: int = Field(default=0)
    load_time: int | None = None
    bandwidth: int = Field(default=0)
    is_bot: bool = Field(default=False, index=True)
    bot_name: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now, index=True)
    date: str = Field(index=True, max_length=10)  # Format: "YYYY-MM-DD"


class HitPayload(SQLModel):
    """Body accepted by the tracking endpoint, all fields optional."""

    url: str | None = None
    path: str | None = None
    referrer: str | None = None
    screen_resolution: str | None = None
    language: str | None = None
    country: str | None = None
    event_type: EventType = EventType.PAGEVIEW
    event_name: str | None = None
    session_start: bool | None = None
    session_duration: int | None = None
    load_time: int | None = None
    bandwidth: int | None = None


class DailyDataPoint(SQLModel):
    """Daily bucket for chart visualization."""

    date: str  # Format: "YYYY-MM-DD"
    hits: int
    unique_visitors: int
    bandwidth: int


class MonthlyDataPoint(SQLModel):
    """Monthly bucket for chart visualization."""

    month: str  # Format: "YYYY-MM"
    hits: int
    unique_visitors: int
    bandwidth: int


class BreakdownItem(SQLModel):
    label: str
    count: int
    percentage: float | None = None


class RealtimeVisitor(SQLModel):
    session_id: str
    current_page: str
    page_count: int
    last_activity: datetime
    active_seconds: int
    browser: str
    device_type: str
    country: str | None = None
