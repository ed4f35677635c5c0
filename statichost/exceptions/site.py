"""Exceptions raised while deploying and serving hosted sites."""

from statichost.exceptions.base import AppException


class QuotaExceededError(AppException):
    """A site-count or storage quota would be exceeded."""

    def __init__(self, message: str, quota: str = "storage"):
        """
        Parameters:
            message (str): User-facing explanation including the limit and the requested amount.
            quota (str): Which quota was hit, either "sites" or "storage".
        """
        self.quota = quota
        super().__init__(message)


class UploadRejectedError(AppException):
    """Uploaded content failed validation and nothing was stored."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        instructions: list[str] | None = None,
        suggestion: str | None = None,
    ):
        """
        Parameters:
            message (str): Summary of why the upload was rejected.
            errors (list[str] | None): Individual validation errors.
            warnings (list[str] | None): Non-blocking findings gathered during validation.
            instructions (list[str] | None): Steps the user can follow to fix the content (e.g. build steps).
            suggestion (str | None): One-line advice shown under the instructions.
        """
        self.errors = errors or []
        self.warnings = warnings or []
        self.instructions = instructions
        self.suggestion = suggestion
        super().__init__(message)


class GitCloneError(AppException):
    """A repository could not be cloned or inspected."""

    pass


class StorageError(AppException):
    """The object storage backend failed."""

    pass
