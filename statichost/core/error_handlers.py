"""HTTP error handlers for FastAPI application.

This module provides the bridge between application exceptions and HTTP responses.
It maps domain-level exceptions to appropriate HTTP status codes and response formats.
Every body carries a `detail` string; some errors add structured fields the client
displays next to it (validation errors, build instructions, the quota that was hit).
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from statichost.exceptions import (
    AppException,
    NotFoundError,
    AlreadyExistsError,
    ValidationError,
    AuthenticationError,
    InsufficientPermissionsError,
    EmailNotVerifiedError,
    QuotaExceededError,
    UploadRejectedError,
    GitCloneError,
    StorageError,
)


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
    )


async def already_exists_handler(
    request: Request, exc: AlreadyExistsError
) -> JSONResponse:
    """
    Convert an AlreadyExistsError into an HTTP 409 Conflict JSON response.

    Returns:
        JSONResponse: Response with status code 409 and a `detail` key with the exception message.
    """
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)}
    )


async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """
    Convert a ValidationError into an HTTP 422 Unprocessable Entity JSON response.

    Returns:
        JSONResponse: Response with status 422 and a JSON body containing a `detail` message and, when available, a `field` key.
    """
    content = {"detail": str(exc)}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, content=content
    )


async def quota_exceeded_handler(
    request: Request, exc: QuotaExceededError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "quota": exc.quota},
    )


async def upload_rejected_handler(
    request: Request, exc: UploadRejectedError
) -> JSONResponse:
    """
    Report a rejected upload with 400 and the full list of findings.

    Returns:
        JSONResponse: Body with `detail`, `errors`, `warnings` and, for repositories that need a build, `instructions` and `suggestion`.
    """
    content: dict = {
        "detail": str(exc),
        "errors": exc.errors,
        "warnings": exc.warnings,
    }
    if exc.instructions:
        content["instructions"] = exc.instructions
    if exc.suggestion:
        content["suggestion"] = exc.suggestion
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def git_clone_error_handler(
    request: Request, exc: GitCloneError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "File storage is unavailable, please try again later"},
    )


async def insufficient_permissions_handler(
    request: Request, exc: InsufficientPermissionsError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)}
    )


async def email_not_verified_handler(
    request: Request, exc: EmailNotVerifiedError
) -> JSONResponse:
    """
    Refuse a login from an unverified account with 403.

    Returns:
        JSONResponse: Body with `detail` and `requires_verification: true` so the client can offer to resend the e-mail.
    """
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": str(exc), "requires_verification": True},
    )


async def authentication_error_handler(
    request: Request, exc: AuthenticationError
) -> JSONResponse:
    """
    Convert an AuthenticationError into a 401 Unauthorized JSON response that includes a WWW-Authenticate header.

    Returns:
        JSONResponse: Response with status 401, a JSON body containing a `detail` string from `exc`, and `WWW-Authenticate: Bearer` header.
    """
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},  # OAuth2 spec compliance
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.exception(f"Unhandled application error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal error occurred"},
    )


def register_exception_handlers(app) -> None:
    """
    Register the application's domain-to-HTTP exception handlers on a FastAPI app.

    Starlette resolves handlers along the exception's MRO, so subclasses such as
    EmailNotVerifiedError get their own handler while AppException stays the catch-all:
    NotFoundError -> 404, AlreadyExistsError -> 409, ValidationError -> 422,
    QuotaExceededError / UploadRejectedError / GitCloneError -> 400, StorageError -> 502,
    InsufficientPermissionsError -> 403, AuthenticationError -> 401, AppException -> 500.

    Parameters:
        app: The FastAPI application instance to which the exception handlers will be attached.
    """
    # CRUD exception handlers
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(AlreadyExistsError, already_exists_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)

    # Deployment exception handlers
    app.add_exception_handler(QuotaExceededError, quota_exceeded_handler)
    app.add_exception_handler(UploadRejectedError, upload_rejected_handler)
    app.add_exception_handler(GitCloneError, git_clone_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    # Auth exception handlers (specific before general)
    app.add_exception_handler(EmailNotVerifiedError, email_not_verified_handler)
    app.add_exception_handler(
        InsufficientPermissionsError, insufficient_permissions_handler
    )
    app.add_exception_handler(AuthenticationError, authentication_error_handler)

    # Catch-all for unhandled application exceptions
    app.add_exception_handler(AppException, app_exception_handler)
