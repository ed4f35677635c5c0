import re

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+\Z")
SLUG_PATTERN = re.compile(r"^[a-z0-9-]+\Z")
SITE_NAME_INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')

SITE_NAME_MIN_LENGTH = 2
SITE_NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 8


def mask_email(email: str) -> str:
    """
    Mask an email address for safe logging.
    Example: 'user@example.com' -> 'u***r@example.com'
    """
    user_part, _, domain = email.partition("@")
    if not user_part or not domain:
        return "***@***.***"
    if len(user_part) <= 2:
        return f"{user_part[0]}***@{domain}"
    return f"{user_part[0]}***{user_part[-1]}@{domain}"


def validate_email(email: str | None) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None  # type: ignore[arg-type]


def validate_password(password: str) -> str | None:
    """
    Check the server-side password policy.

    Returns:
        str | None: The first violated rule as a user-facing message, or None when the password is acceptable.
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    return None


def validate_site_name(name: str | None) -> list[str]:
    """Return every rule the site name breaks; an empty list means it is valid."""
    name = name or ""
    errors = []
    if len(name.strip()) < SITE_NAME_MIN_LENGTH:
        errors.append(
            f"Site name must be at least {SITE_NAME_MIN_LENGTH} characters long"
        )
    if len(name) > SITE_NAME_MAX_LENGTH:
        errors.append(f"Site name cannot exceed {SITE_NAME_MAX_LENGTH} characters")
    invalid = SITE_NAME_INVALID_CHARS.findall(name)
    if invalid:
        errors.append(f"Site name contains invalid characters: {', '.join(invalid)}")
    return errors


def validate_slug(slug: str | None) -> list[str]:
    if not slug:
        return ["Slug is required"]
    errors = []
    if not SLUG_PATTERN.match(slug):
        errors.append(
            "Slug can only contain lowercase letters, numbers, and hyphens"
        )
    if len(slug) > SITE_NAME_MAX_LENGTH:
        errors.append(f"Slug cannot exceed {SITE_NAME_MAX_LENGTH} characters")
    return errors
