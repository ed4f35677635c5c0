"""Tests for upload validation of single files and ZIP archives."""

import io
import json
import zipfile

import pytest

from statichost.services.validation import (
    get_mime_type,
    is_html_content,
    is_static_asset,
    sanitize_filename,
    validate_file,
    validate_file_path,
    validate_zip,
)


def make_zip(files: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class TestValidateFile:
    def test_valid_html_file(self):
        result = validate_file("index.html", 100)
        assert result.valid
        assert result.errors == []
        assert result.extension == ".html"
        assert result.warnings == []

    def test_too_large(self):
        result = validate_file("photo.png", 2048, max_size=1024)
        assert not result.valid
        assert result.errors[0].startswith("File too large: photo.png (2 KB)")

    def test_path_traversal_reported_first(self):
        result = validate_file("../secret.php", 10)
        assert not result.valid
        assert "path traversal" in result.errors[0]
        assert any("(.php)" in e for e in result.errors)

    def test_banned_extension(self):
        result = validate_file("shell.php", 10)
        assert not result.valid
        assert "(.php) is not permitted" in result.errors[0]

    def test_banned_filename(self):
        result = validate_file(".htaccess", 10)
        assert not result.valid
        assert result.errors == [
            "File not allowed: .htaccess is not permitted for security reasons"
        ]

    def test_banned_even_when_allowed_types_lists_it(self):
        result = validate_file("script.sh", 10, allowed_types=[".sh", ".html"])
        assert not result.valid
        assert len(result.errors) == 1

    @pytest.mark.parametrize(
        "name, allowed_types",
        [
            (".env", [".env", ".html"]),
            ("config/.env", [".env", ""]),
            ("wp-config.php", [".php", ".html"]),
            ("blog/WP-CONFIG.PHP", [".php"]),
        ],
    )
    def test_banned_filename_even_when_allowed_types_lists_it(self, name, allowed_types):
        result = validate_file(name, 10, allowed_types=allowed_types)
        filename = name.rsplit("/", 1)[-1]
        assert not result.valid
        assert f"File not allowed: {filename} is not permitted for security reasons" in result.errors

    def test_hidden_file_rejected(self):
        result = validate_file(".secret", 10)
        assert result.errors == ["Hidden file not allowed: .secret"]

    def test_well_known_allowed(self):
        assert validate_file(".well-known/security.txt", 10).valid

    def test_extension_outside_allowed_types(self):
        result = validate_file("style.css", 10, allowed_types=[".html"])
        assert not result.valid
        assert result.errors[0].startswith("File type .css is not allowed")

    def test_uncommon_type_is_a_warning(self):
        result = validate_file("data.yaml", 10)
        assert result.valid
        assert result.warnings == ["data.yaml is not a common static asset type"]


class TestValidateZip:
    def test_root_index(self):
        data = make_zip({"index.html": "<html></html>", "css/site.css": "body{}"})
        result = validate_zip(data)
        assert result.valid
        assert result.has_index_html
        assert result.static_folder is None
        assert [f.path for f in result.files] == ["index.html", "css/site.css"]
        assert result.total_size == len("<html></html>") + len("body{}")

    def test_index_in_static_folder(self):
        result = validate_zip(make_zip({"dist/index.html": "<html></html>"}))
        assert result.valid
        assert result.static_folder == "dist"
        assert any("dist/ folder" in w for w in result.warnings)

    def test_missing_index(self):
        result = validate_zip(make_zip({"about.html": "<html></html>"}))
        assert not result.valid
        assert result.errors[0].startswith("No index.html found")

    def test_not_a_zip(self):
        result = validate_zip(b"definitely not a zip")
        assert not result.valid
        assert result.errors[0].startswith("Invalid ZIP file")

    def test_too_large(self):
        data = make_zip({"index.html": "x" * 2000})
        result = validate_zip(data, max_size=1000)
        assert not result.valid
        assert result.errors[0].startswith("ZIP contents too large")

    def test_banned_entries(self):
        data = make_zip({"index.html": "<html></html>", "api/handler.php": "<?php"})
        result = validate_zip(data)
        assert not result.valid
        assert "Banned file type in ZIP: api/handler.php (.php)" in result.errors

    def test_package_json_with_build_script_requires_build(self):
        package = {"scripts": {"build": "vite build"}, "dependencies": {"vue": "^3"}}
        data = make_zip({"index.html": "<html></html>", "package.json": json.dumps(package)})
        result = validate_zip(data)
        assert not result.valid
        assert result.requires_build
        assert any("package.json with dependencies" in w for w in result.warnings)
        assert "package.json contains build script" in result.errors[-1]

    def test_invalid_package_json(self):
        data = make_zip({"index.html": "<html></html>", "package.json": "{not json"})
        result = validate_zip(data)
        assert "Invalid package.json in ZIP: package.json" in result.errors

    def test_build_indicator(self):
        data = make_zip({"index.html": "<html></html>", "angular.json": "{}"})
        result = validate_zip(data)
        assert result.requires_build
        assert "angular.json found" in result.errors[-1]

    def test_hidden_and_macos_entries_are_skipped(self):
        data = make_zip(
            {
                "index.html": "<html></html>",
                ".DS_Store": "x",
                "__MACOSX/._index.html": "x",
            }
        )
        result = validate_zip(data)
        assert result.valid
        assert [f.path for f in result.files] == ["index.html"]
        assert "Hidden file skipped: .DS_Store" in result.warnings

    def test_suspicious_entry_is_a_warning(self):
        data = make_zip({"index.html": "<html></html>", "notes.yaml": "a: 1"})
        result = validate_zip(data)
        assert result.valid
        assert any(w.startswith("Suspicious file in ZIP: notes.yaml") for w in result.warnings)


class TestPathsAndNames:
    def test_validate_file_path(self):
        assert validate_file_path("assets/img/logo.png") == []
        assert validate_file_path("../etc/passwd") == ["Path contains traversal characters"]
        assert validate_file_path("/etc/passwd") == ["Absolute paths are not allowed"]
        assert validate_file_path("C:\\Windows") == ["Absolute paths are not allowed"]
        assert validate_file_path("bad\x00name") == ["Path contains control characters"]
        assert validate_file_path("a" * 501) == ["Path too long (max 500 characters)"]

    def test_sanitize_filename(self):
        assert sanitize_filename('my:file?.html') == "my-file-.html"
        assert sanitize_filename("..hidden.css") == "hidden.css"

    def test_is_static_asset(self):
        assert is_static_asset("app.JS")
        assert not is_static_asset("server.py")
        assert not is_static_asset("README")

    def test_mime_types(self):
        assert get_mime_type("app.js") == "text/javascript"
        assert get_mime_type("font.woff2") == "font/woff2"
        assert get_mime_type("page.html") == "text/html"
        assert get_mime_type("blob") == "application/octet-stream"

    def test_is_html_content(self):
        assert is_html_content("  <!DOCTYPE html><html></html>")
        assert is_html_content(b"<html><body></body></html>")
        assert not is_html_content("body { color: red }")
