"""Upload validation: single files, ZIP archives and the paths inside them."""

import io
import json
import mimetypes
import posixpath
import re
import zipfile
from dataclasses import dataclass, field

from statichost.core.config import get_settings
from statichost.utils.formatting import format_bytes

ALLOWED_EXTENSIONS = frozenset(
    {
        # HTML
        ".html", ".htm",
        # CSS
        ".css",
        # JavaScript
        ".js", ".mjs",
        # Images
        ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".bmp", ".tiff",
        # Fonts
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        # Media
        ".mp3", ".mp4", ".webm", ".ogg", ".wav", ".avi", ".mov",
        # Documents
        ".pdf", ".txt", ".md", ".json", ".xml", ".csv",
        # Archives, accepted for extraction only
        ".zip",
    }
)  # fmt: skip

BANNED_EXTENSIONS = frozenset(
    {
        ".php", ".py", ".rb", ".pl", ".sh", ".exe", ".bat", ".cmd", ".ps1",
        ".jar", ".war", ".ear", ".dll", ".so", ".dylib", ".bin",
    }
)  # fmt: skip

BANNED_FILES = frozenset(
    name.lower()
    for name in (
        ".htaccess",
        ".htpasswd",
        "wp-config.php",
        "config.json",
        ".env",
        "package.json",
        "composer.json",
        "requirements.txt",
        "Pipfile",
        "Gemfile",
        "webpack.config.js",
        "vite.config.js",
        "next.config.js",
        "nuxt.config.js",
    )
)

BUILD_INDICATORS = (
    "package.json",
    "composer.json",
    "requirements.txt",
    "Pipfile",
    "Gemfile",
    "webpack.config.js",
    "vite.config.js",
    "next.config.js",
    "nuxt.config.js",
    "gatsby-config.js",
    "vue.config.js",
    "angular.json",
    "Makefile",
    "CMakeLists.txt",
)

STATIC_FOLDERS = ("public", "dist", "build", "out", "_site", "docs")

MAX_ZIP_ENTRIES = 10_000
MAX_PATH_LENGTH = 500

HIDDEN_ALLOWED = ".well-known"
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')

MIME_OVERRIDES = {
    ".mjs": "text/javascript",
    ".js": "text/javascript",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".md": "text/markdown",
}


@dataclass
class FileValidationResult:
    valid: bool
    errors: list[str]
    extension: str
    filename: str
    warnings: list[str] = field(default_factory=list)


@dataclass
class ZipEntry:
    path: str
    size: int
    extension: str


@dataclass
class ZipValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    files: list[ZipEntry] = field(default_factory=list)
    total_size: int = 0
    has_index_html: bool = False
    requires_build: bool = False
    static_folder: str | None = None


def get_extension(filename: str) -> str:
    return posixpath.splitext(filename)[1].lower()


def is_static_asset(filename: str) -> bool:
    return get_extension(filename) in ALLOWED_EXTENSIONS


def is_html_file(filename: str) -> bool:
    return get_extension(filename) in (".html", ".htm")


def get_mime_type(filename: str) -> str:
    extension = get_extension(filename)
    if extension in MIME_OVERRIDES:
        return MIME_OVERRIDES[extension]
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


def has_path_traversal(path: str) -> bool:
    return (
        ".." in path
        or "//" in path
        or "\\" in path
        or path.startswith("/")
    )


def _hidden_segment(path: str) -> str | None:
    for segment in path.split("/"):
        if segment.startswith(".") and segment != HIDDEN_ALLOWED:
            return segment
    return None


def sanitize_filename(filename: str) -> str:
    """Replace characters that are unsafe in object keys and drop dot prefixes."""
    cleaned = UNSAFE_FILENAME_CHARS.sub("-", filename)
    cleaned = cleaned.replace("..", "")
    return cleaned.lstrip(".").strip()


def validate_file_path(file_path: str) -> list[str]:
    """Return the security problems of a storage path; an empty list means it is safe."""
    errors = []
    if ".." in file_path or "//" in file_path:
        errors.append("Path contains traversal characters")
    if file_path.startswith(("/", "\\")) or re.match(r"^[A-Za-z]:[\\/]", file_path):
        errors.append("Absolute paths are not allowed")
    if CONTROL_CHARS.search(file_path):
        errors.append("Path contains control characters")
    if len(file_path) > MAX_PATH_LENGTH:
        errors.append(f"Path too long (max {MAX_PATH_LENGTH} characters)")
    return errors


def is_html_content(content: str | bytes) -> bool:
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="ignore")
    trimmed = content.lstrip().lower()
    return trimmed.startswith("<!doctype") or trimmed.startswith("<html")


def validate_file(
    name: str,
    size: int,
    allowed_types: list[str] | tuple[str, ...] | None = None,
    max_size: int | None = None,
) -> FileValidationResult:
    """
    Validate one uploaded file by name and size.

    Banned extensions and banned filenames are rejected even when `allowed_types`
    lists them. Path traversal is reported first so callers showing a single
    message surface the most serious problem.

    Parameters:
        name (str): Client-supplied file name, possibly with a relative directory.
        size (int): Size in bytes.
        allowed_types (list[str] | None): Optional extension whitelist (".html", ...).
        max_size (int | None): Size limit in bytes; defaults to MAX_UPLOAD_SIZE.

    Returns:
        FileValidationResult: `valid` is True only when `errors` is empty.
    """
    max_size = max_size if max_size is not None else get_settings().MAX_UPLOAD_SIZE
    errors = []
    extension = get_extension(name)
    filename = posixpath.basename(name.replace("\\", "/"))

    if has_path_traversal(name):
        errors.append(
            f"Invalid file path: {name} contains path traversal characters"
        )
    if extension in BANNED_EXTENSIONS:
        errors.append(
            f"File type not allowed: {name} ({extension}) is not permitted for security reasons"
        )
    if filename.lower() in BANNED_FILES:
        errors.append(
            f"File not allowed: {filename} is not permitted for security reasons"
        )
    elif _hidden_segment(name.lstrip("/")):
        errors.append(f"Hidden file not allowed: {filename}")
    if allowed_types is not None and extension not in BANNED_EXTENSIONS:
        if extension not in [t.lower() for t in allowed_types]:
            errors.append(
                f"File type {extension or '(none)'} is not allowed. Allowed types: {', '.join(allowed_types)}"
            )
    if size > max_size:
        errors.append(
            f"File too large: {filename} ({format_bytes(size)}) exceeds maximum size of {format_bytes(max_size)}"
        )

    warnings = []
    if not errors and not is_static_asset(name):
        warnings.append(f"{filename} is not a common static asset type")

    return FileValidationResult(
        valid=not errors,
        errors=errors,
        extension=extension,
        filename=filename,
        warnings=warnings,
    )


def _inspect_package_json(
    archive: zipfile.ZipFile, info: zipfile.ZipInfo, result: ZipValidationResult
) -> str | None:
    """Record package.json findings on `result`; return a build reason if one applies."""
    try:
        package = json.loads(archive.read(info).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        result.errors.append(f"Invalid package.json in ZIP: {info.filename}")
        return None
    if not isinstance(package, dict):
        result.errors.append(f"Invalid package.json in ZIP: {info.filename}")
        return None
    if package.get("dependencies") or package.get("devDependencies"):
        result.warnings.append(
            "ZIP contains package.json with dependencies - ensure this is a pre-built static site"
        )
    if (package.get("scripts") or {}).get("build"):
        return "package.json contains build script"
    return None


def validate_zip(data: bytes, max_size: int | None = None) -> ZipValidationResult:
    """
    Inspect a ZIP archive before anything is extracted.

    The archive is valid when its uncompressed size and entry count are within limits,
    it holds no banned files or unsafe paths, it does not need a build step, and an
    index.html sits at the root or directly inside one of STATIC_FOLDERS (the latter
    is reported as `static_folder` together with a warning).

    Parameters:
        data (bytes): Raw archive content.
        max_size (int | None): Uncompressed size limit; defaults to MAX_UPLOAD_SIZE.

    Returns:
        ZipValidationResult: Errors, warnings and the list of retained entries.
    """
    max_size = max_size if max_size is not None else get_settings().MAX_UPLOAD_SIZE
    result = ZipValidationResult(valid=False)

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        result.errors.append(f"Invalid ZIP file: {e}")
        return result

    build_reason: str | None = None
    root_index = False
    index_folders: list[str] = []

    with archive:
        entries = [info for info in archive.infolist() if not info.is_dir()]
        result.total_size = sum(info.file_size for info in entries)
        if result.total_size > max_size:
            result.errors.append(
                f"ZIP contents too large: {format_bytes(result.total_size)} exceeds maximum size of {format_bytes(max_size)}"
            )

        for info in entries:
            path = info.filename
            name = posixpath.basename(path)
            lower_name = name.lower()
            extension = get_extension(name)

            if has_path_traversal(path):
                result.errors.append(f"Unsafe path in ZIP: {path}")
                continue
            if path.startswith("__MACOSX/"):
                continue
            if extension in BANNED_EXTENSIONS:
                result.errors.append(f"Banned file type in ZIP: {path} ({extension})")
                continue
            if lower_name in BANNED_FILES:
                if lower_name == "package.json":
                    build_reason = _inspect_package_json(archive, info, result) or build_reason
                else:
                    result.errors.append(f"Banned file in ZIP: {path}")
                continue
            if _hidden_segment(path):
                result.warnings.append(f"Hidden file skipped: {path}")
                continue

            for indicator in BUILD_INDICATORS:
                if lower_name == indicator.lower():
                    build_reason = (
                        f"{indicator} found - this indicates a build process is required"
                    )
                    break

            if lower_name == "index.html":
                directory = posixpath.dirname(path)
                if directory == "":
                    root_index = True
                elif directory in STATIC_FOLDERS:
                    index_folders.append(directory)

            if not is_static_asset(name):
                result.warnings.append(
                    f"Suspicious file in ZIP: {path} - it is not a static asset and will not be published"
                )

            result.files.append(ZipEntry(path=path, size=info.file_size, extension=extension))

    if root_index:
        result.has_index_html = True
    elif index_folders:
        result.has_index_html = True
        result.static_folder = index_folders[0]
        result.warnings.append(
            f"index.html found in {result.static_folder}/ folder. The site will be served from this directory."
        )
    else:
        result.errors.append(
            "No index.html found in root directory or recognized static folders (public/, dist/, build/)"
        )

    if len(result.files) > MAX_ZIP_ENTRIES:
        result.errors.append(
            f"Too many files: {len(result.files)} files exceeds maximum of {MAX_ZIP_ENTRIES:,} files"
        )

    if build_reason:
        result.requires_build = True
        result.errors.append(
            f"This appears to require a build process: {build_reason}. Please upload pre-built static files instead."
        )

    result.valid = not result.errors
    return result
