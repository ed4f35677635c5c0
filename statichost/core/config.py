from functools import lru_cache
from pydantic.types import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import HttpUrl


def parse_comma_separated_origins(comma_list: str) -> list[HttpUrl]:
    """
    Parse a comma-separated string into a list of validated HttpUrl origins.

    Empty or falsy input returns an empty list. Each non-empty, comma-separated item is validated and converted to an HttpUrl.

    Parameters:
        comma_list (str): Comma-separated origins (may be empty or falsy).

    Returns:
        list[HttpUrl]: A list of parsed and validated HttpUrl objects.

    Raises:
        ValueError: If any origin cannot be parsed as an HttpUrl; the error message includes the invalid origin and the underlying reason.
    """
    origins = []
    for origin in parse_comma_separated_list(comma_list):
        try:
            origins.append(HttpUrl(origin))
        except Exception as e:
            raise ValueError(f"Invalid CORS origin '{origin}': {e}") from e
    return origins


def parse_comma_separated_list(comma_list: str | None) -> list[str]:
    """Split a comma-separated setting into its stripped, non-empty items."""
    if not comma_list:
        return []
    return [item.strip() for item in comma_list.split(",") if item.strip()]


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: SecretStr
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    IMPERSONATION_TOKEN_EXPIRE_MINUTES: int = 60
    BACKEND_CORS_ORIGINS: str = ""
    ENVIRONMENT: str = "development"

    APP_NAME: str = "StaticHost"
    APP_URL: str = "http://localhost:3000"
    CDN_URL: str | None = None
    ADMIN_EMAILS: str = ""

    FIRST_SUPERUSER_EMAIL: str | None = None
    FIRST_SUPERUSER_PASSWORD: SecretStr | None = None
    FIRST_SUPERUSER_NAME: str = "Administrator"

    # Quotas (bytes for sizes)
    MAX_UPLOAD_SIZE: int = 100 * 1024 * 1024
    MAX_SITES_PER_USER: int = 10
    MAX_STORAGE_PER_USER: int = 100 * 1024 * 1024

    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_SECURE: bool = False
    SITES_BUCKET: str = "statichost-sites"

    GIT_CLONE_TIMEOUT: int = 300
    ANALYTICS_RETENTION_DAYS: int = 90
    AUDIT_RETENTION_DAYS: int = 365

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: SecretStr | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "StaticHost"

    # Read the env file not present in the repo for security reasons,
    # overrides the attributes above based on the env file content
    model_config = SettingsConfigDict(
        env_file_encoding="utf-8", env_file=".env", extra="ignore"
    )

    @property
    def admin_emails(self) -> list[str]:
        return [email.lower() for email in parse_comma_separated_list(self.ADMIN_EMAILS)]

    @property
    def public_base_url(self) -> str:
        return (self.CDN_URL or self.APP_URL).rstrip("/")


@lru_cache()
# get_settings.cache_clear() may be needed for tests that modify env vars
def get_settings():
    """
    Load application settings from environment variables and the configured .env file.

    This function is cached, so repeated calls return the same Settings instance until the cache is cleared.

    Returns:
        Settings: A Settings instance populated from environment variables and the `.env` file according to the model configuration.
    """
    return Settings()  # type: ignore[call-arg]
