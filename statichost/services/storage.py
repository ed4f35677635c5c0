import io
import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime

from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error

from statichost.core.config import get_settings
from statichost.exceptions import StorageError
from statichost.services.validation import get_mime_type, is_html_file

settings = get_settings()
logger = logging.getLogger(__name__)

HTML_CACHE_CONTROL = "public, max-age=3600"
ASSET_CACHE_CONTROL = "public, max-age=31536000"
MISSING_OBJECT_CODES = ("NoSuchKey", "NoSuchObject", "ResourceNotFound")


@dataclass
class StoredFile:
    content: bytes
    content_type: str
    cache_control: str
    size: int
    last_modified: datetime | None = None


def build_key(site_id: int, path: str) -> str:
    """
    Object key for a file of a site: `sites/{site_id}/{path}`.

    Parent-directory segments and leading slashes are removed so a key can never
    leave the site's prefix.
    """
    clean = path.replace("\\", "/").replace("../", "").lstrip("/")
    clean = posixpath.normpath(clean) if clean else ""
    if clean in (".", ".."):
        clean = ""
    return f"{site_prefix(site_id)}{clean}"


def site_prefix(site_id: int) -> str:
    return f"sites/{site_id}/"


def cache_control_for(path: str) -> str:
    return HTML_CACHE_CONTROL if is_html_file(path) else ASSET_CACHE_CONTROL


class StorageService:
    def __init__(self):
        self.client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        self.bucket_name = settings.SITES_BUCKET

    def ensure_bucket_exists(self):
        """
        Checks if the bucket exists; creates it if not.
        Run this on app startup.
        """
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
                logger.info(f"Bucket '{self.bucket_name}' created successfully.")
            else:
                logger.debug(f"Bucket '{self.bucket_name}' already exists.")
        except S3Error as e:
            logger.error(f"Error checking/creating bucket: {e}")
            raise StorageError(f"Bucket check failed: {e.code}") from e

    def upload_site_file(
        self,
        site_id: int,
        path: str,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        """
        Store one file of a site and return its object key.

        HTML is always stored as text/html with a one hour cache lifetime; every other
        file gets its guessed MIME type and a one year lifetime.

        Raises:
            ValueError: If `path` resolves to the site root.
            StorageError: If the object store rejects the write.
        """
        key = build_key(site_id, path)
        if key == site_prefix(site_id):
            raise ValueError(f"Invalid file path: {path!r}")

        if is_html_file(path):
            content_type = "text/html; charset=utf-8"
        else:
            content_type = content_type or get_mime_type(path)

        try:
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=key,
                data=io.BytesIO(content),
                length=len(content),
                content_type=content_type,
                metadata={"Cache-Control": cache_control_for(path)},
            )
            logger.info(f"Stored '{key}' ({len(content)} bytes).")
            return key
        except S3Error as e:
            logger.error(f"Failed to upload '{key}' to MinIO: {e}")
            raise StorageError(f"Upload failed for {path}") from e

    def get_site_file(self, site_id: int, path: str) -> StoredFile | None:
        """Fetch a stored file, or None when the object does not exist."""
        key = build_key(site_id, path)
        response = None
        try:
            response = self.client.get_object(self.bucket_name, key)
            content = response.read()
            headers = response.headers
            return StoredFile(
                content=content,
                content_type=headers.get("Content-Type") or get_mime_type(path),
                cache_control=headers.get("Cache-Control") or cache_control_for(path),
                size=len(content),
            )
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return None
            logger.error(f"Failed to read '{key}': {e}")
            raise StorageError(f"Read failed for {path}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def site_file_exists(self, site_id: int, path: str) -> bool:
        key = build_key(site_id, path)
        try:
            self.client.stat_object(self.bucket_name, key)
            return True
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return False
            logger.error(f"Failed to stat '{key}': {e}")
            raise StorageError(f"Lookup failed for {path}") from e

    def list_site_files(self, site_id: int) -> list[dict]:
        """List the files of a site as dicts with `path`, `size` and `last_modified`."""
        prefix = site_prefix(site_id)
        try:
            objects = self.client.list_objects(
                self.bucket_name, prefix=prefix, recursive=True
            )
            return [
                {
                    "path": obj.object_name[len(prefix):],
                    "size": obj.size,
                    "last_modified": obj.last_modified,
                }
                for obj in objects
                if obj.object_name and not obj.is_dir
            ]
        except S3Error as e:
            logger.error(f"Failed to list files of site {site_id}: {e}")
            raise StorageError("Listing site files failed") from e

    def delete_site_files(self, site_id: int) -> int:
        """
        Delete every stored file of a site.

        Returns:
            int: Number of objects scheduled for deletion.
        """
        files = self.list_site_files(site_id)
        if not files:
            return 0
        prefix = site_prefix(site_id)
        to_delete = [DeleteObject(f"{prefix}{f['path']}") for f in files]
        try:
            # remove_objects is lazy; errors only surface while iterating
            errors = list(self.client.remove_objects(self.bucket_name, to_delete))
        except S3Error as e:
            logger.error(f"Failed to delete files of site {site_id}: {e}")
            raise StorageError("Deleting site files failed") from e
        for error in errors:
            logger.error(f"Failed to delete '{error.name}': {error.message}")
        logger.info(f"Deleted {len(to_delete) - len(errors)} files of site {site_id}.")
        return len(to_delete) - len(errors)

    def get_public_url(self, slug: str, path: str = "") -> str:
        return f"{settings.public_base_url}/s/{slug}/{path.lstrip('/')}".rstrip("/")

    def ping(self) -> bool:
        """Round-trip to the object store; used by the admin health check."""
        return self.client.bucket_exists(self.bucket_name)


# Singleton instance to be imported elsewhere
storage_service = StorageService()
