from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from statichost.exceptions import StorageError
from statichost.services.storage import (
    ASSET_CACHE_CONTROL,
    HTML_CACHE_CONTROL,
    StorageService,
    build_key,
    cache_control_for,
)


class FakeS3Error(S3Error):
    """S3Error carrying only an error code."""

    def __init__(self, code: str):
        Exception.__init__(self, code)
        self._fake_code = code

    @property
    def code(self):
        return self._fake_code

    def __str__(self):
        return f"S3 operation failed; code: {self._fake_code}"


@pytest.fixture(name="minio")
def minio_fixture():
    return MagicMock()


@pytest.fixture(name="service")
def service_fixture(minio) -> StorageService:
    service = StorageService()
    service.client = minio
    service.bucket_name = "sites-bucket"
    return service


class TestBuildKey:
    def test_nested_path(self):
        assert build_key(7, "assets/app.js") == "sites/7/assets/app.js"

    def test_leading_slash_and_parent_segments_removed(self):
        assert build_key(7, "/index.html") == "sites/7/index.html"
        assert build_key(7, "../../other/index.html") == "sites/7/other/index.html"
        assert build_key(7, "a\\b.css") == "sites/7/a/b.css"

    def test_empty_path_is_site_root(self):
        assert build_key(7, "") == "sites/7/"
        assert build_key(7, "..") == "sites/7/"

    def test_cache_control(self):
        assert cache_control_for("index.html") == HTML_CACHE_CONTROL
        assert cache_control_for("app.js") == ASSET_CACHE_CONTROL


class TestUpload:
    def test_html_content_type_is_forced(self, service, minio):
        key = service.upload_site_file(3, "index.html", b"<html></html>", "application/octet-stream")

        assert key == "sites/3/index.html"
        kwargs = minio.put_object.call_args.kwargs
        assert kwargs["bucket_name"] == "sites-bucket"
        assert kwargs["object_name"] == "sites/3/index.html"
        assert kwargs["length"] == 13
        assert kwargs["content_type"] == "text/html; charset=utf-8"
        assert kwargs["metadata"] == {"Cache-Control": HTML_CACHE_CONTROL}

    def test_asset_keeps_given_type(self, service, minio):
        service.upload_site_file(3, "img/logo.png", b"png", "image/png")
        kwargs = minio.put_object.call_args.kwargs
        assert kwargs["content_type"] == "image/png"
        assert kwargs["metadata"] == {"Cache-Control": ASSET_CACHE_CONTROL}

    def test_asset_type_guessed(self, service, minio):
        service.upload_site_file(3, "app.js", b"let a;")
        assert minio.put_object.call_args.kwargs["content_type"] == "text/javascript"

    def test_root_path_rejected(self, service, minio):
        with pytest.raises(ValueError):
            service.upload_site_file(3, "/", b"x")
        minio.put_object.assert_not_called()

    def test_s3_failure_becomes_storage_error(self, service, minio):
        minio.put_object.side_effect = FakeS3Error("InternalError")
        with pytest.raises(StorageError):
            service.upload_site_file(3, "index.html", b"x")


class TestRead:
    def test_get_site_file(self, service, minio):
        response = MagicMock()
        response.read.return_value = b"body{}"
        response.headers = {"Content-Type": "text/css", "Cache-Control": ASSET_CACHE_CONTROL}
        minio.get_object.return_value = response

        stored = service.get_site_file(3, "style.css")

        minio.get_object.assert_called_once_with("sites-bucket", "sites/3/style.css")
        assert stored.content == b"body{}"
        assert stored.content_type == "text/css"
        assert stored.size == 6
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    def test_missing_object_returns_none(self, service, minio):
        minio.get_object.side_effect = FakeS3Error("NoSuchKey")
        assert service.get_site_file(3, "missing.html") is None

    def test_other_errors_raise(self, service, minio):
        minio.get_object.side_effect = FakeS3Error("AccessDenied")
        with pytest.raises(StorageError):
            service.get_site_file(3, "index.html")

    def test_site_file_exists(self, service, minio):
        assert service.site_file_exists(3, "index.html") is True
        minio.stat_object.side_effect = FakeS3Error("NoSuchKey")
        assert service.site_file_exists(3, "index.html") is False


class TestListAndDelete:
    def _objects(self, *names):
        objects = []
        for name in names:
            obj = MagicMock()
            obj.object_name = name
            obj.size = 10
            obj.last_modified = None
            obj.is_dir = False
            objects.append(obj)
        return objects

    def test_list_strips_prefix(self, service, minio):
        minio.list_objects.return_value = self._objects("sites/3/index.html", "sites/3/css/a.css")

        files = service.list_site_files(3)

        minio.list_objects.assert_called_once_with("sites-bucket", prefix="sites/3/", recursive=True)
        assert [f["path"] for f in files] == ["index.html", "css/a.css"]

    def test_delete_site_files(self, service, minio):
        minio.list_objects.return_value = self._objects("sites/3/index.html", "sites/3/a.css")
        minio.remove_objects.return_value = iter([])

        assert service.delete_site_files(3) == 2
        bucket, to_delete = minio.remove_objects.call_args.args
        assert bucket == "sites-bucket"
        assert len(to_delete) == 2

    def test_delete_without_files(self, service, minio):
        minio.list_objects.return_value = []
        assert service.delete_site_files(3) == 0
        minio.remove_objects.assert_not_called()


def test_ensure_bucket_creates_missing_bucket(service, minio):
    minio.bucket_exists.return_value = False
    service.ensure_bucket_exists()
    minio.make_bucket.assert_called_once_with("sites-bucket")


def test_public_url(service):
    assert service.get_public_url("blog") == "http://localhost:3000/s/blog"
    assert service.get_public_url("blog", "/about.html") == "http://localhost:3000/s/blog/about.html"
