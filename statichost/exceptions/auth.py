"""Authentication and authorization exceptions."""

from statichost.exceptions.base import AppException


class AuthenticationError(AppException):
    """Base class for authentication-related errors."""

    pass


class InvalidCredentialsError(AuthenticationError):
    """Email or password is incorrect."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Token is invalid, expired, or malformed."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class TokenExpiredError(InvalidTokenError):
    """Token has expired (more specific than InvalidTokenError)."""

    def __init__(self, token_type: str = "access"):
        """
        Initialize a TokenExpiredError for a specific token type.

        Parameters:
            token_type (str): Type of the expired token ("access", "refresh" or "verify").
        """
        super().__init__(f"{token_type.capitalize()} token has expired")
        self.token_type = token_type


class InsufficientPermissionsError(AuthenticationError):
    """User doesn't have required permissions for this action."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class EmailNotVerifiedError(InsufficientPermissionsError):
    """Login attempted before the account e-mail was confirmed."""

    def __init__(
        self, message: str = "Please verify your email address before logging in"
    ):
        super().__init__(message)


class AccountSuspendedError(InsufficientPermissionsError):
    """Login or API access attempted with a suspended account."""

    def __init__(self, reason: str | None = None):
        """
        Parameters:
            reason (str | None): Suspension reason recorded by an administrator, appended to the message when present.
        """
        self.reason = reason
        message = "Your account has been suspended"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
