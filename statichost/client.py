"""
StaticHost API client.

This module provides a synchronous HTTP client for the StaticHost REST API and the
site-creation wizard built on top of it: create a site, put content on it through one
of three strategies (ZIP archive, Git repository, individual files), then activate it.

Technological Context:
- Uses HTTPX for the HTTP transport; tests inject an `httpx.MockTransport`.
- Authenticates with a bearer token; there is no refresh flow.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

import httpx

from statichost.exceptions import ValidationError
from statichost.utils.dashboard import build_dashboard
from statichost.utils.formatting import generate_slug
from statichost.utils.validation import SLUG_PATTERN, validate_site_name

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500
UPLOAD_CHUNK_SIZE = 64 * 1024
STRATEGIES = ("zip", "git", "manual")

ProgressCallback = Callable[[int, str], None]


class ApiError(Exception):
    """A request failed: non-2xx answer or network failure (`status_code` 0)."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def _error_message(response: httpx.Response) -> str:
    """The server's `error` or `detail` field, or a generic message."""
    try:
        body = response.json()
    except ValueError:
        return "Request failed"
    if isinstance(body, dict):
        for key in ("error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, list) and value:
                return "; ".join(
                    str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                    for item in value
                )
    return "Request failed"


def _chunks(body: bytes, on_sent: Callable[[int, int], None]) -> Iterator[bytes]:
    sent = 0
    for start in range(0, len(body), UPLOAD_CHUNK_SIZE):
        chunk = body[start : start + UPLOAD_CHUNK_SIZE]
        sent += len(chunk)
        yield chunk
        on_sent(sent, len(body))


class StaticHostClient:
    """
    Client for the StaticHost REST API.

    Every method returns the decoded JSON body (or raw bytes for exports) and raises
    `ApiError` on failure.

    Attributes:
        base_url (str): Server root, e.g. "https://host.example.com".
        token (str | None): Bearer token attached to every request once set.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "StaticHostClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = dict(extra or {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            response = self._http.send(request)
        except httpx.TransportError as e:
            logger.error(f"{request.method} {request.url.path} failed: {e}")
            raise ApiError(0, "Request failed") from e
        if response.is_error:
            message = _error_message(response)
            logger.warning(f"{request.method} {request.url.path} -> {response.status_code}: {message}")
            raise ApiError(response.status_code, message)
        return response

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers(kwargs.pop("headers", None))
        request = self._http.build_request(method, path, headers=headers, **kwargs)
        return self._send(request)

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        return self._request(method, path, **kwargs).json()

    def _upload(
        self,
        path: str,
        files: list[tuple[str, tuple[str, bytes, str]]],
        headers: dict[str, str] | None = None,
        on_sent: Callable[[int, int], None] | None = None,
    ) -> Any:
        """POST a multipart body, reporting bytes sent through `on_sent(sent, total)`."""
        encoded = self._http.build_request("POST", path, files=files)
        body = encoded.read()
        request_headers = self._headers(headers)
        request_headers["Content-Type"] = encoded.headers["Content-Type"]
        request_headers["Content-Length"] = str(len(body))
        content: bytes | Iterator[bytes] = body if on_sent is None else _chunks(body, on_sent)
        request = self._http.build_request("POST", path, content=content, headers=request_headers)
        return self._send(request).json()

    # --- Auth ---

    def register(self, name: str, email: str, password: str, accept_terms: bool = True) -> dict:
        return self._json(
            "POST",
            "/api/auth/register",
            json={"name": name, "email": email, "password": password, "accept_terms": accept_terms},
        )

    def verify_email(self, token: str) -> dict:
        return self._json("POST", "/api/auth/verify-email", json={"token": token})

    def resend_verification(self, email: str) -> dict:
        return self._json("POST", "/api/auth/resend-verification", json={"email": email})

    def login(self, email: str, password: str) -> dict:
        """Log in and keep the access token for the following requests."""
        tokens = self._json("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = tokens["access_token"]
        return tokens

    def me(self) -> dict:
        return self._json("GET", "/api/auth/me")

    # --- Sites ---

    def list_sites(self, page: int = 1, limit: int = 20, status: str | None = None) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return self._json("GET", "/api/sites/", params=params)

    def create_site(self, name: str, slug: str | None = None, description: str = "") -> dict:
        payload: dict[str, Any] = {"name": name, "description": description}
        if slug:
            payload["slug"] = slug
        return self._json("POST", "/api/sites/", json=payload)

    def get_site(self, site_id: int) -> dict:
        return self._json("GET", f"/api/sites/{site_id}")

    def update_site(self, site_id: int, **fields: Any) -> dict:
        return self._json("PUT", f"/api/sites/{site_id}", json=fields)

    def delete_site(self, site_id: int) -> dict:
        return self._json("DELETE", f"/api/sites/{site_id}", params={"confirm": "true"})

    def upload_files(
        self,
        site_id: int,
        files: list[tuple[str, bytes]],
        upload_path: str = "",
        on_sent: Callable[[int, int], None] | None = None,
    ) -> dict:
        """
        Upload individual files into one directory of a site.

        Args:
            files (list[tuple[str, bytes]]): (file name, content) pairs.
            upload_path (str): Directory inside the site, sent as `x-upload-path`.
        """
        multipart = [
            ("files", (name, content, "application/octet-stream")) for name, content in files
        ]
        headers = {"x-upload-path": upload_path} if upload_path else None
        return self._upload(f"/api/sites/{site_id}/upload-file", multipart, headers, on_sent)

    def upload_zip(
        self,
        site_id: int,
        filename: str,
        data: bytes,
        on_sent: Callable[[int, int], None] | None = None,
    ) -> dict:
        multipart = [("file", (filename, data, "application/zip"))]
        return self._upload(f"/api/sites/{site_id}/upload-zip", multipart, on_sent=on_sent)

    def git_clone(self, site_id: int, repo_url: str, branch: str = "main") -> dict:
        return self._json(
            "POST", f"/api/sites/{site_id}/git-clone", json={"repo_url": repo_url, "branch": branch}
        )

    def activate_site(self, site_id: int) -> dict:
        return self._json("POST", f"/api/sites/{site_id}/activate")

    def suspend_site(self, site_id: int, reason: str) -> dict:
        return self._json("POST", f"/api/sites/{site_id}/suspend", json={"reason": reason})

    def get_uploads(self, site_id: int, page: int = 1, limit: int = 50) -> dict:
        return self._json(
            "GET", f"/api/sites/{site_id}/uploads", params={"page": page, "limit": limit}
        )

    # --- Analytics ---

    def get_analytics(self, site_id: int, days: int = 30, group_by: str = "day") -> dict:
        return self._json(
            "GET",
            f"/api/analytics/site/{site_id}/daily",
            params={"days": days, "group_by": group_by},
        )

    def get_monthly_analytics(self, site_id: int, months: int = 12) -> dict:
        return self.get_analytics(site_id, days=min(months * 30, 365), group_by="month")

    def _breakdown(self, site_id: int, name: str, **params: Any) -> Any:
        return self._json("GET", f"/api/analytics/site/{site_id}/{name}", params=params)

    def get_summary(self, site_id: int, period: str = "30d") -> dict:
        return self._breakdown(site_id, "summary", period=period)

    def get_sources(self, site_id: int, days: int = 30) -> list:
        return self._breakdown(site_id, "sources", days=days)

    def get_countries(self, site_id: int, days: int = 30) -> list:
        return self._breakdown(site_id, "countries", days=days)

    def get_devices(self, site_id: int, days: int = 30) -> list:
        return self._breakdown(site_id, "devices", days=days)

    def get_browsers(self, site_id: int, days: int = 30) -> list:
        return self._breakdown(site_id, "browsers", days=days)

    def get_realtime(self, site_id: int) -> list:
        return self._breakdown(site_id, "realtime")

    def get_pages(self, site_id: int, days: int = 30) -> list:
        return self._breakdown(site_id, "pages", days=days)

    def export_analytics(self, site_id: int, format: str = "csv", days: int = 30) -> bytes:
        response = self._request(
            "GET",
            f"/api/analytics/site/{site_id}/export",
            params={"format": format, "days": days},
        )
        return response.content

    def fetch_dashboard(self, site_id: int, days: int = 30) -> dict:
        """Fetch every analytics endpoint of a site and shape the result for display."""
        report = self.get_analytics(site_id, days)
        return build_dashboard(
            summary=self.get_summary(site_id),
            daily=report.get("analytics", []),
            sources=self.get_sources(site_id, days),
            countries=self.get_countries(site_id, days),
            devices=self.get_devices(site_id, days),
            browsers=self.get_browsers(site_id, days),
            realtime=self.get_realtime(site_id),
        )

    # --- Admin ---

    def get_admin_stats(self) -> dict:
        return self._json("GET", "/api/admin/stats")

    def get_admin_health(self) -> dict:
        return self._json("GET", "/api/admin/health")

    def list_users(self, page: int = 1, limit: int = 20, search: str | None = None) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        return self._json("GET", "/api/admin/users", params=params)

    def list_all_sites(self, page: int = 1, limit: int = 20, **filters: Any) -> dict:
        params = {"page": page, "limit": limit, **{k: v for k, v in filters.items() if v is not None}}
        return self._json("GET", "/api/admin/sites", params=params)

    def get_audit_logs(self, page: int = 1, limit: int = 50, **filters: Any) -> dict:
        params = {"page": page, "limit": limit, **{k: v for k, v in filters.items() if v is not None}}
        return self._json("GET", "/api/admin/audit", params=params)

    def export_audit_logs(self, format: str = "csv", **filters: Any) -> bytes:
        params = {"format": format, **{k: v for k, v in filters.items() if v is not None}}
        return self._request("GET", "/api/admin/audit/export", params=params).content


def export_to_file(content: bytes | str, path: str | Path) -> Path:
    """Write an export payload to disk, creating parent directories; returns the path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        target.write_text(content, encoding="utf-8")
    else:
        target.write_bytes(content)
    return target


@dataclass
class SiteDetails:
    name: str
    slug: str
    description: str = ""


class SiteCreationWizard:
    """
    Two-step site creation: validate the details, then create, fill and activate.

    Steps run sequentially. A failing step aborts the run and re-raises the server's
    message as `ApiError`; a site created before the failure is left in place.
    """

    def __init__(self, client: StaticHostClient):
        self.client = client
        self.site: dict | None = None

    @staticmethod
    def validate_details(name: str, slug: str | None = None, description: str = "") -> SiteDetails:
        """
        Step 1: check name, slug and description.

        The slug defaults to one generated from the name.

        Raises:
            ValidationError: With `field` set to the offending input.
        """
        name = (name or "").strip()
        errors = validate_site_name(name)
        if errors:
            raise ValidationError(errors[0], field="name")
        slug = (slug or "").strip() or generate_slug(name)
        if not SLUG_PATTERN.match(slug):
            raise ValidationError(
                "Slug can only contain lowercase letters, numbers, and hyphens", field="slug"
            )
        if len(slug) < 2:
            raise ValidationError("Slug must be at least 2 characters", field="slug")
        if description and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters", field="description"
            )
        return SiteDetails(name=name, slug=slug, description=description or "")

    def run(
        self,
        details: SiteDetails,
        strategy: str,
        source: Any,
        progress: ProgressCallback | None = None,
        branch: str = "main",
    ) -> dict:
        """
        Step 2: create the site, put content on it and activate it.

        Args:
            details (SiteDetails): Result of `validate_details`.
            strategy (str): "zip", "git" or "manual".
            source: Path of the archive (zip), repository URL (git), or a directory or
                list of file paths (manual).
            progress (Callable[[int, str], None] | None): Receives a percentage and a status line.

        Returns:
            dict: `site` (activated), `upload` (the upload or clone response).
        """
        if strategy not in STRATEGIES:
            raise ValidationError(f"Unknown upload strategy: {strategy}", field="strategy")
        manual_files = self._manual_files(source) if strategy == "manual" else []
        if strategy == "zip" and (not source or not Path(source).is_file()):
            raise ValidationError("Please select a ZIP file to upload", field="file")
        if strategy == "git" and not str(source or "").strip():
            raise ValidationError("Git repository URL is required", field="repo_url")

        def report(percent: int, status: str) -> None:
            logger.debug(f"Site creation {percent}%: {status}")
            if progress is not None:
                progress(percent, status)

        report(0, "Creating site...")
        self.site = self.client.create_site(details.name, details.slug, details.description)
        site_id = self.site["id_site"]
        report(10, "Site created, uploading files...")

        def on_sent(sent: int, total: int) -> None:
            percent = 10 + int(sent * 80 / total) if total else 90
            report(percent, f"Uploading: {int(sent * 100 / total) if total else 100}%")

        if strategy == "zip":
            archive = Path(source)
            upload = self.client.upload_zip(site_id, archive.name, archive.read_bytes(), on_sent)
        elif strategy == "git":
            report(30, "Cloning repository...")
            upload = self.client.git_clone(site_id, str(source), branch)
            report(80, "Repository cloned successfully")
        else:
            upload = self._upload_manual(site_id, manual_files, on_sent)

        report(95, "Finalizing...")
        self.site = self.client.activate_site(site_id)
        report(100, "Site activated successfully!")
        return {"site": self.site, "upload": upload}

    @staticmethod
    def _manual_files(source: Any) -> list[tuple[str, Path]]:
        """(directory inside the site, local path) pairs for a directory or a list of files."""
        if isinstance(source, (str, Path)) and Path(source).is_dir():
            root = Path(source)
            files = []
            for path in sorted(p for p in root.rglob("*") if p.is_file()):
                directory = path.parent.relative_to(root).as_posix()
                files.append(("" if directory == "." else directory, path))
        else:
            files = [("", Path(p)) for p in source or []]
        if not files:
            raise ValidationError("Please select at least one file to upload", field="files")
        return files

    def _upload_manual(
        self, site_id: int, files: list[tuple[str, Path]], on_sent: Callable[[int, int], None]
    ) -> dict:
        """Upload files grouped by directory, one request per directory."""
        groups: dict[str, list[Path]] = defaultdict(list)
        for directory, path in files:
            groups[directory].append(path)

        total = sum(path.stat().st_size for _, path in files)
        done = 0
        results = []
        for directory, group in groups.items():
            batch = [(path.name, path.read_bytes()) for path in group]
            batch_size = sum(len(content) for _, content in batch)

            def batch_sent(sent: int, body_size: int, offset: int = done, size: int = batch_size) -> None:
                on_sent(offset + (int(sent * size / body_size) if body_size else size), total)

            results.append(self.client.upload_files(site_id, batch, directory, batch_sent))
            done += batch_size

        return {
            "uploaded": sum(r.get("stats", {}).get("uploaded", 0) for r in results),
            "failed": sum(r.get("stats", {}).get("failed", 0) for r in results),
            "errors": [e for r in results for e in r.get("errors", [])],
        }
