"""Putting content on a site: individual files, ZIP archives and Git repositories."""

import io
import posixpath
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlmodel import Session

from statichost.exceptions import GitCloneError, StorageError, UploadRejectedError, ValidationError
from statichost.models.enums import DeploymentType, UploadType
from statichost.models.site import Site
from statichost.models.user import User
from statichost.services import git as git_service
from statichost.services.site import check_storage_quota, record_upload, update_quota
from statichost.services.storage import storage_service
from statichost.services.validation import (
    get_mime_type,
    is_static_asset,
    validate_file,
    validate_file_path,
    validate_zip,
)

BUILD_SUGGESTION = "Please build your site locally and upload the output folder as a ZIP file."


@dataclass
class IncomingFile:
    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


def _site_owner(session: Session, site: Site, user: User) -> User:
    """Quota checks apply to the owner of the site, not to an administrator acting on it."""
    if user.id_user == site.id_owner:
        return user
    return session.get(User, site.id_owner) or user


def _clean_upload_path(upload_path: str) -> str:
    upload_path = upload_path.strip().strip("/")
    if upload_path:
        errors = validate_file_path(upload_path)
        if errors:
            raise ValidationError(f"Invalid upload path: {errors[0]}", field="x-upload-path")
    return upload_path


def upload_files(
    session: Session,
    site: Site,
    user: User,
    files: list[IncomingFile],
    upload_path: str = "",
) -> dict[str, Any]:
    """
    Store individually uploaded files on a site.

    The storage quota is checked against the whole batch before anything is stored.
    Each file is then validated on its own; invalid files and storage failures are
    reported in `errors` and do not stop the others.

    Parameters:
        files (list[IncomingFile]): Uploaded files with their client-side names.
        upload_path (str): Directory inside the site the files are placed in.

    Returns:
        dict: `message` ("Uploaded n of m files"), `files`, `stats` and `errors`.

    Raises:
        ValidationError: If no file was sent or `upload_path` is unsafe.
        QuotaExceededError: If the batch does not fit in the owner's storage quota.
    """
    if not files:
        raise ValidationError("No files provided", field="files")
    upload_path = _clean_upload_path(upload_path)
    check_storage_quota(_site_owner(session, site, user), sum(f.size for f in files))

    uploaded: list[dict[str, Any]] = []
    errors: list[dict[str, str]] = []
    for incoming in files:
        result = validate_file(incoming.filename, incoming.size)
        if not result.valid:
            errors.append({"filename": incoming.filename, "error": result.errors[0]})
            continue

        path = posixpath.join(upload_path, incoming.filename) if upload_path else incoming.filename
        try:
            key = storage_service.upload_site_file(
                site.id_site, path, incoming.content, incoming.content_type  # type: ignore[arg-type]
            )
        except (StorageError, ValueError) as e:
            errors.append({"filename": incoming.filename, "error": str(e)})
            continue

        record_upload(
            session,
            site,
            user,
            upload_type=UploadType.FILE,
            filename=incoming.filename,
            path=path,
            s3_key=key,
            size=incoming.size,
            mime_type=incoming.content_type or get_mime_type(path),
        )
        uploaded.append(
            {
                "filename": incoming.filename,
                "path": path,
                "size": incoming.size,
                "url": storage_service.get_public_url(site.slug, path),
            }
        )

    total_size = sum(f["size"] for f in uploaded)
    if uploaded:
        update_quota(session, site, total_size, len(uploaded))
    session.commit()
    logger.info(f"Stored {len(uploaded)} of {len(files)} files on site {site.id_site}")

    return {
        "message": f"Uploaded {len(uploaded)} of {len(files)} files",
        "files": uploaded,
        "stats": {"uploaded": len(uploaded), "failed": len(errors), "total_size": total_size},
        "errors": errors,
    }


def _zip_target_path(path: str, static_folder: str | None) -> str | None:
    """Path a ZIP entry is published under, or None when it lies outside the static folder."""
    if not static_folder:
        return path
    prefix = f"{static_folder}/"
    if path.startswith(prefix):
        return path[len(prefix):]
    return None


def upload_zip(
    session: Session, site: Site, user: User, filename: str, data: bytes
) -> dict[str, Any]:
    """
    Validate a ZIP archive and publish its static assets.

    When the archive keeps its index.html inside a static folder (dist/, build/, ...)
    only that folder is published, with the folder prefix removed. Entries that are
    not static assets are skipped and listed in `errors`. One Upload row is written
    per extracted file plus one for the archive itself.

    Returns:
        dict: `message`, `stats`, `errors` and `warnings`.

    Raises:
        UploadRejectedError: If the archive fails validation.
        QuotaExceededError: If the uncompressed content does not fit in the storage quota.
    """
    validation = validate_zip(data)
    if not validation.valid:
        raise UploadRejectedError(
            "Invalid ZIP file", errors=validation.errors, warnings=validation.warnings
        )
    check_storage_quota(_site_owner(session, site, user), validation.total_size)

    uploaded_count = 0
    total_size = 0
    errors: list[str] = []
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for entry in validation.files:
            target = _zip_target_path(entry.path, validation.static_folder)
            if target is None:
                errors.append(f"Skipped: {entry.path} (outside {validation.static_folder}/)")
                continue
            if not is_static_asset(entry.path):
                errors.append(f"Skipped: {entry.path} (not a static asset)")
                continue
            content = archive.read(entry.path)
            try:
                key = storage_service.upload_site_file(site.id_site, target, content)  # type: ignore[arg-type]
            except (StorageError, ValueError) as e:
                errors.append(f"Failed to upload {entry.path}: {e}")
                continue
            record_upload(
                session,
                site,
                user,
                upload_type=UploadType.ZIP,
                filename=entry.path,
                path=target,
                s3_key=key,
                size=len(content),
                mime_type=get_mime_type(target),
            )
            uploaded_count += 1
            total_size += len(content)

    if uploaded_count:
        update_quota(session, site, total_size, uploaded_count)
    record_upload(
        session,
        site,
        user,
        upload_type=UploadType.ZIP,
        filename=filename,
        path=filename,
        s3_key="",
        size=len(data),
        mime_type="application/zip",
    )
    site.deployment_type = DeploymentType.ZIP
    site.updated_at = datetime.now()
    session.add(site)
    session.commit()
    logger.info(f"Extracted {uploaded_count} files from {filename} onto site {site.id_site}")

    return {
        "message": f"ZIP uploaded successfully. {uploaded_count} files extracted.",
        "stats": {
            "files_uploaded": uploaded_count,
            "total_size": total_size,
            "errors": len(errors),
        },
        "errors": errors,
        "warnings": validation.warnings,
    }


def deploy_from_git(
    session: Session, site: Site, user: User, repo_url: str, branch: str = "main"
) -> dict[str, Any]:
    """
    Clone a public repository and publish its static files.

    The repository must carry an index.html at its root or in a static folder and must
    not need a build step. The clone directory is removed whatever the outcome.

    Returns:
        dict: `message` ("Repository cloned successfully. N files uploaded."), `stats`
        and `errors` listing skipped or failed files.

    Raises:
        ValidationError: If no repository URL was given.
        GitCloneError: If the URL is invalid or the clone fails.
        UploadRejectedError: If there is no index.html, a build is required, or no files were found.
        QuotaExceededError: If the files do not fit in the owner's storage quota.
    """
    repo_url = (repo_url or "").strip()
    branch = (branch or "main").strip()
    if not repo_url:
        raise ValidationError("Repository URL is required", field="repo_url")
    url_error = git_service.validate_git_url(repo_url)
    if url_error:
        raise GitCloneError(f"Invalid Git URL: {url_error}")

    repo_path = git_service.clone_repository(repo_url, branch)
    try:
        check = git_service.check_for_static_site(repo_path)
        if not check.has_index_html:
            raise UploadRejectedError(
                "No index.html found in repository",
                errors=[
                    "Please ensure your repository contains an index.html file in the root or in a public/ dist/ build/ folder."
                ],
            )
        if check.requires_build:
            raise UploadRejectedError(
                "Repository requires build process",
                errors=[check.build_reason],
                instructions=git_service.get_build_instructions(check.build_reason),
                suggestion=BUILD_SUGGESTION,
            )

        files = git_service.get_static_site_files(repo_path, check.static_folder)
        if not files:
            raise UploadRejectedError("No valid files found in repository")
        check_storage_quota(_site_owner(session, site, user), sum(f.size for f in files))

        uploaded_count = 0
        total_size = 0
        errors: list[str] = []
        for repo_file in files:
            if not is_static_asset(repo_file.path):
                errors.append(f"Skipped: {repo_file.path} (not a static asset)")
                continue
            try:
                key = storage_service.upload_site_file(
                    site.id_site, repo_file.path, repo_file.content  # type: ignore[arg-type]
                )
            except (StorageError, ValueError) as e:
                errors.append(f"Failed to upload {repo_file.path}: {e}")
                continue
            record_upload(
                session,
                site,
                user,
                upload_type=UploadType.GIT,
                filename=repo_file.path,
                path=repo_file.path,
                s3_key=key,
                size=repo_file.size,
                mime_type=get_mime_type(repo_file.path),
            )
            uploaded_count += 1
            total_size += repo_file.size

        if uploaded_count:
            update_quota(session, site, total_size, uploaded_count)
            site.git_url = repo_url
            site.git_branch = branch
            site.deployment_type = DeploymentType.GIT
            session.add(site)
        session.commit()
    finally:
        git_service.cleanup_temp(repo_path)

    logger.info(f"Deployed {uploaded_count} files from {repo_url} onto site {site.id_site}")
    return {
        "message": f"Repository cloned successfully. {uploaded_count} files uploaded.",
        "stats": {
            "files_uploaded": uploaded_count,
            "total_size": total_size,
            "errors": len(errors),
            "static_folder": check.static_folder or None,
            "branch": branch,
        },
        "errors": errors,
    }
