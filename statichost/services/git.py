"""Shallow clones of public Git repositories and inspection of their static content."""

import json
import os
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from statichost.core.config import get_settings
from statichost.exceptions import GitCloneError
from statichost.services.validation import BUILD_INDICATORS, HIDDEN_ALLOWED

TEMP_PREFIX = "statichost-clone-"
REPO_STATIC_FOLDERS = ("public", "dist", "build", "out", "_site", "docs", "static")
LISTING_MAX_DEPTH = 6

GIT_URL_PATTERNS = (
    re.compile(r"^https://github\.com/[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+(\.git)?\Z"),
    re.compile(r"^git@github\.com:[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+(\.git)?\Z"),
    re.compile(r"^https://gitlab\.com/[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+(\.git)?\Z"),
    re.compile(r"^https://bitbucket\.org/[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+(\.git)?\Z"),
    re.compile(r"^https?://[a-zA-Z0-9.-]+/[a-zA-Z0-9_./-]+(\.git)?\Z"),
    re.compile(r"^git@[a-zA-Z0-9.-]+:[a-zA-Z0-9_./-]+(\.git)?\Z"),
)
UNSAFE_URL_PARTS = ("file://", "../", "~")
BRANCH_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+\Z")

# Checked in order against git's stderr
CLONE_ERROR_MESSAGES = (
    (
        "Authentication failed",
        "Authentication failed. Please ensure the repository is public or provide a public repository URL.",
    ),
    (
        "Repository not found",
        "Repository not found. Please check the URL and ensure the repository exists and is accessible.",
    ),
    (
        "could not read Username",
        "Authentication required. Please use a public repository URL or ensure the repository is publicly accessible.",
    ),
)
EXIT_128_MESSAGE = "Git operation failed. The repository might be private, deleted, or the URL might be incorrect."

FRAMEWORK_BUILD_REASONS = (
    ("next", "Next.js project detected - requires `next build` and `next export`"),
    ("gatsby", "Gatsby project detected - requires `gatsby build`"),
    ("vuepress", "VuePress project detected - requires `vuepress build`"),
    ("nuxt", "Nuxt.js project detected - requires `nuxt generate`"),
    ("react-scripts", "Create React App detected - requires `npm run build`"),
)


@dataclass
class StaticSiteCheck:
    has_index_html: bool = False
    index_html_path: str = ""
    static_folder: str = ""
    requires_build: bool = False
    build_reason: str = ""
    package_json: dict | None = None
    files: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)


@dataclass
class RepoFile:
    path: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def validate_git_url(url: str) -> str | None:
    """
    Check that `url` points at a remote Git repository.

    Returns:
        str | None: An error message, or None when the URL is acceptable.
    """
    if not any(pattern.match(url) for pattern in GIT_URL_PATTERNS):
        return "Invalid Git URL format. Supported: GitHub, GitLab, Bitbucket, and other public Git repositories"
    if any(part in url for part in UNSAFE_URL_PARTS):
        return "Git URL contains potentially unsafe patterns"
    return None


def _friendly_clone_error(stderr: str, returncode: int) -> str:
    for marker, message in CLONE_ERROR_MESSAGES:
        if marker in stderr:
            return message
    if returncode == 128:
        return EXIT_128_MESSAGE
    lines = [line for line in stderr.strip().splitlines() if line.strip()]
    return lines[-1] if lines else f"git exited with code {returncode}"


def clone_repository(url: str, branch: str = "main", timeout: int | None = None) -> Path:
    """
    Shallow-clone a single branch of a repository into a fresh temporary directory.

    Parameters:
        url (str): Repository URL; must pass `validate_git_url`.
        branch (str): Branch to check out.
        timeout (int | None): Seconds before the clone is aborted; defaults to GIT_CLONE_TIMEOUT.

    Returns:
        Path: Directory holding the working tree. The caller owns it and must pass it
        to `cleanup_temp`.

    Raises:
        GitCloneError: With a user-facing message prefixed "Failed to clone repository: ".
            The temporary directory is already removed when this is raised.
    """
    url_error = validate_git_url(url)
    if url_error:
        raise GitCloneError(f"Failed to clone repository: {url_error}")
    if not BRANCH_PATTERN.match(branch) or branch.startswith("-"):
        raise GitCloneError("Failed to clone repository: Invalid branch name")

    timeout = timeout or get_settings().GIT_CLONE_TIMEOUT
    temp_path = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))
    logger.info(f"Cloning {url} ({branch}) into {temp_path}")

    try:
        result = subprocess.run(
            [
                "git", "clone", "--depth", "1", "--single-branch",
                "--branch", branch, url, str(temp_path),
            ],
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )  # fmt: skip
    except subprocess.TimeoutExpired:
        cleanup_temp(temp_path)
        raise GitCloneError(
            f"Failed to clone repository: Clone timed out after {timeout} seconds"
        )
    except OSError as e:
        cleanup_temp(temp_path)
        logger.error(f"Could not run git: {e}")
        raise GitCloneError("Failed to clone repository: git is not available on the server")

    if result.returncode != 0:
        cleanup_temp(temp_path)
        logger.warning(f"git clone of {url} failed ({result.returncode}): {result.stderr.strip()}")
        raise GitCloneError(
            f"Failed to clone repository: {_friendly_clone_error(result.stderr, result.returncode)}"
        )

    logger.info(f"Cloned {url} into {temp_path}")
    return temp_path


def list_repository_files(repo_path: Path, max_depth: int = LISTING_MAX_DEPTH) -> list[str]:
    """Relative POSIX paths of the files in a working tree, excluding `.git`."""
    files = []
    for root, dirs, names in os.walk(repo_path):
        relative_root = Path(root).relative_to(repo_path)
        depth = len(relative_root.parts)
        dirs[:] = sorted(d for d in dirs if d != ".git") if depth + 1 < max_depth else []
        for name in sorted(names):
            files.append((relative_root / name).as_posix())
    return files


def _read_package_json(repo_path: Path) -> dict | None:
    package_path = repo_path / "package.json"
    if not package_path.is_file():
        return None
    try:
        package = json.loads(package_path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Unreadable package.json in {repo_path}: {e}")
        return None
    return package if isinstance(package, dict) else None


def _package_build_reason(package: dict) -> str:
    if not (package.get("scripts") or {}).get("build"):
        return ""
    dependencies = {
        **(package.get("dependencies") or {}),
        **(package.get("devDependencies") or {}),
    }
    for dependency, reason in FRAMEWORK_BUILD_REASONS:
        if dependency in dependencies:
            return reason
    return "package.json contains build script"


def check_for_static_site(repo_path: Path) -> StaticSiteCheck:
    """
    Decide whether a cloned repository can be published as-is.

    index.html is looked up at the root first, then in REPO_STATIC_FOLDERS in order; a
    hit in a folder sets `static_folder`. A package.json build script marks the
    repository as needing a build, with a framework-specific reason when a known
    framework is a dependency. Failing that, any build configuration file does.
    """
    check = StaticSiteCheck(files=list_repository_files(repo_path))

    if (repo_path / "index.html").is_file():
        check.has_index_html = True
        check.index_html_path = "index.html"
    for folder in REPO_STATIC_FOLDERS:
        if (repo_path / folder / "index.html").is_file():
            check.has_index_html = True
            check.index_html_path = f"{folder}/index.html"
            check.static_folder = folder
            break

    package = _read_package_json(repo_path)
    if package is not None:
        check.package_json = {
            "name": package.get("name"),
            "version": package.get("version"),
            "scripts": package.get("scripts") or {},
        }
        check.build_reason = _package_build_reason(package)
        check.requires_build = bool(check.build_reason)

    if not check.requires_build:
        config_files = [
            path
            for path in check.files
            if any(path.endswith(indicator) for indicator in BUILD_INDICATORS)
        ]
        if config_files:
            check.requires_build = True
            check.build_reason = f"Build configuration files found: {', '.join(config_files)}"

    return check


def get_build_instructions(build_reason: str) -> list[str]:
    """Steps for producing an uploadable build, picked by the detected framework."""
    if "Next.js" in build_reason:
        instructions = [
            "For Next.js projects:",
            "1. Run `npm run build` (or `yarn build`)",
            "2. Run `npm run export` (or `next export`) to generate static files",
            "3. Upload the generated `out/` folder as a ZIP file",
        ]
    elif "Gatsby" in build_reason:
        instructions = [
            "For Gatsby projects:",
            "1. Run `npm run build` (or `gatsby build`)",
            "2. Upload the generated `public/` folder as a ZIP file",
        ]
    elif "Create React App" in build_reason:
        instructions = [
            "For Create React App projects:",
            "1. Run `npm run build`",
            "2. Upload the generated `build/` folder as a ZIP file",
        ]
    elif "Vue" in build_reason:
        instructions = [
            "For Vue.js projects:",
            "1. Run `npm run build`",
            "2. Upload the generated `dist/` folder as a ZIP file",
        ]
    elif "Nuxt.js" in build_reason:
        instructions = [
            "For Nuxt.js projects:",
            "1. Run `npm run generate`",
            "2. Upload the generated `dist/` folder as a ZIP file",
        ]
    else:
        instructions = [
            "General instructions:",
            "1. Run your build command (e.g., `npm run build`, `yarn build`)",
            "2. Locate the generated static files (usually in `dist/`, `build/`, or `out/` folder)",
            "3. Upload that folder as a ZIP file",
        ]
    return instructions + [
        "",
        "Alternatively:",
        "- Use the ZIP upload option with your pre-built static files",
        "- Or use the file upload UI to upload individual files",
    ]


def get_static_site_files(repo_path: Path, static_folder: str = "") -> list[RepoFile]:
    """
    Read every publishable file below `static_folder` (the repository root when empty).

    Hidden files and directories are skipped, except `.well-known`. Paths are relative
    to the static folder.

    Raises:
        GitCloneError: If the static folder does not exist.
    """
    source = repo_path / static_folder if static_folder else repo_path
    if not source.is_dir():
        raise GitCloneError(f"Static folder not found: {static_folder}")

    files: list[RepoFile] = []
    for root, dirs, names in os.walk(source):
        dirs[:] = sorted(d for d in dirs if not d.startswith(".") or d == HIDDEN_ALLOWED)
        for name in sorted(names):
            if name.startswith("."):
                continue
            full_path = Path(root) / name
            if not full_path.is_file():
                continue
            try:
                content = full_path.read_bytes()
            except OSError as e:
                logger.warning(f"Skipping unreadable file {full_path}: {e}")
                continue
            files.append(RepoFile(path=full_path.relative_to(source).as_posix(), content=content))
    return files


def cleanup_temp(path: Path | str | None) -> None:
    """Remove a clone directory; paths not created by `clone_repository` are left alone."""
    if not path:
        return
    path = Path(path)
    if not path.name.startswith(TEMP_PREFIX):
        logger.warning(f"Refusing to remove {path}: not a clone directory")
        return
    shutil.rmtree(path, ignore_errors=True)
    logger.debug(f"Removed clone directory {path}")
