from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import jwt
from jwt.exceptions import ExpiredSignatureError, PyJWTError
from pwdlib import PasswordHash
from sqlmodel import Session, select

from statichost.core.config import get_settings
from statichost.exceptions import AppException, InvalidTokenError, TokenExpiredError
from statichost.models.user import User

TokenType = Literal["access", "refresh", "verify", "impersonation"]

# pwdlib picks Argon2 with sensible parameters
password_hash = PasswordHash.recommended()

# Verified against when the e-mail is unknown so both paths cost the same
DUMMY_HASH = password_hash.hash("statichost-timing-guard")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a plaintext password using the recommended hashing algorithm (Argon2).

    Parameters:
        password (str): Plaintext password to hash.

    Returns:
        str: Password hash suitable for secure storage.
    """
    return password_hash.hash(password)


def authenticate_user(session: Session, email: str, password: str) -> User | None:
    """
    Authenticate a user by e-mail and password.

    The e-mail is matched case-insensitively. Status and verification checks are
    left to the caller so it can report them distinctly.

    Returns:
        User if the credentials match, `None` otherwise.
    """
    statement = select(User).where(User.email == email.strip().lower())
    user = session.exec(statement).first()
    hash_to_verify = user.hashed_password if user else DUMMY_HASH
    if verify_password(password, hash_to_verify) and user:
        return user
    return None


def create_token(data: dict, expires_delta: timedelta, type: TokenType) -> str:
    """
    Create a JSON Web Token with the given payload, expiration, and token type.

    Parameters:
        data (dict): Payload claims to include in the token.
        expires_delta (timedelta): Time span from now after which the token expires.
        type (TokenType): Token classification stored in the `type` claim.

    Returns:
        token (str): Encoded JWT string.

    Raises:
        AppException: If the token cannot be generated.
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + expires_delta, "iat": now, "type": type})
    try:
        return jwt.encode(
            to_encode,
            settings.SECRET_KEY.get_secret_value(),
            algorithm=settings.ALGORITHM,
        )
    except PyJWTError as e:
        raise AppException("Could not generate authentication token.") from e


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    expires_delta = expires_delta or timedelta(
        minutes=get_settings().ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return create_token(data, expires_delta=expires_delta, type="access")


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    expires_delta = expires_delta or timedelta(
        days=get_settings().REFRESH_TOKEN_EXPIRE_DAYS
    )
    return create_token(data, expires_delta=expires_delta, type="refresh")


def create_verification_token(email: str) -> str:
    """Token mailed to a new user; valid for EMAIL_VERIFICATION_EXPIRE_HOURS."""
    return create_token(
        {"sub": email},
        expires_delta=timedelta(hours=get_settings().EMAIL_VERIFICATION_EXPIRE_HOURS),
        type="verify",
    )


def decode_token(token: str, expected_type: TokenType | tuple[TokenType, ...]) -> dict[str, Any]:
    """
    Decode and check a JWT issued by this service.

    Parameters:
        token (str): Encoded JWT.
        expected_type: Accepted value(s) of the `type` claim.

    Returns:
        dict: The verified payload; `sub` is guaranteed to be present.

    Raises:
        TokenExpiredError: If the token is past its expiry.
        InvalidTokenError: If the signature, type or subject is wrong.
    """
    settings = get_settings()
    accepted = (expected_type,) if isinstance(expected_type, str) else expected_type
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY.get_secret_value(),
            algorithms=[settings.ALGORITHM],
        )
    except ExpiredSignatureError as e:
        raise TokenExpiredError(accepted[0]) from e
    except PyJWTError as e:
        raise InvalidTokenError() from e

    if payload.get("sub") is None or payload.get("type") not in accepted:
        raise InvalidTokenError()
    return payload


def create_impersonation_token(email: str, admin_email: str) -> str:
    """Short-lived access token for `email`, carrying the issuing admin in `imp`."""
    return create_token(
        {"sub": email, "imp": admin_email},
        expires_delta=timedelta(minutes=get_settings().IMPERSONATION_TOKEN_EXPIRE_MINUTES),
        type="impersonation",
    )
