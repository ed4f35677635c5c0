"""Display helpers shared by the API responses, exports and the client."""

import re
from dataclasses import dataclass, field

BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")

SLUG_MAX_LENGTH = 50


def generate_slug(name: str) -> str:
    """
    Derive a URL-safe slug from a display name.

    Example: "My Site! #1" -> "my-site-1"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH]


def format_bytes(num_bytes: int | float) -> str:
    """
    Render a byte count with a binary unit, keeping at most two decimals.

    Examples: 0 -> "0 Bytes", 1536 -> "1.5 KB", 1048576 -> "1 MB"
    """
    if not num_bytes:
        return "0 Bytes"
    value = float(num_bytes)
    index = 0
    while abs(value) >= 1024 and index < len(BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {BYTE_UNITS[index]}"


def format_number(num: int | float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    return str(num)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def format_duration(seconds: int | float | None) -> str:
    """Render a duration as "42s" or "3m 5s". Missing or negative values read as "0s"."""
    if not seconds or seconds < 0:
        return "0s"
    if seconds < 60:
        return f"{_round_half_up(seconds)}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {_round_half_up(seconds % 60)}s"


def percentage_change(current: int | float, previous: int | float | None) -> float:
    """
    Relative change from `previous` to `current`, in percent with one decimal.

    A missing or zero previous period yields 100 when there is any current activity, else 0.
    """
    if not previous:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


@dataclass
class PasswordStrength:
    score: int
    label: str
    criteria: dict[str, bool] = field(default_factory=dict)


STRENGTH_LABELS = {0: "No password", 1: "Weak", 2: "Weak", 3: "Fair", 4: "Good", 5: "Strong"}


def password_strength(password: str | None) -> PasswordStrength:
    """
    Score a password against the five registration criteria.

    The score is the number of satisfied criteria (length >= 8, uppercase, lowercase,
    digit, special character); an empty password scores 0 with every criterion false.
    """
    password = password or ""
    criteria = {
        "length": len(password) >= 8,
        "uppercase": bool(re.search(r"[A-Z]", password)),
        "lowercase": bool(re.search(r"[a-z]", password)),
        "number": bool(re.search(r"[0-9]", password)),
        "special": bool(re.search(r"[^A-Za-z0-9]", password)),
    }
    score = sum(criteria.values())
    return PasswordStrength(score=score, label=STRENGTH_LABELS[score], criteria=criteria)
