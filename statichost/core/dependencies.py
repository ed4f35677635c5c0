from typing import Annotated
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from statichost.core.security import decode_token
from statichost.database.database import get_session
from statichost.exceptions import (
    AccountSuspendedError,
    AuthenticationError,
    InsufficientPermissionsError,
)
from statichost.models.enums import UserStatus
from statichost.models.token import TokenData
from statichost.models.user import User
from statichost.services.audit import AuditMeta


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/token")


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: Annotated[Session, Depends(get_session)],
) -> User:
    """
    Resolve the authenticated user from a bearer access JWT.

    Impersonation tokens issued to administrators are accepted as access tokens.

    Returns:
        user (User): The active User whose e-mail matches the token's subject.

    Raises:
        HTTPException: 401 Unauthorized if the token is invalid, not an access token, or no matching user exists.
        AccountSuspendedError: 403 if the account is suspended.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token, ("access", "impersonation"))
    except AuthenticationError:
        raise credentials_exception
    token_data = TokenData(email=payload["sub"])

    user = session.exec(select(User).where(User.email == token_data.email)).first()
    if user is None or user.status == UserStatus.DELETED:
        raise credentials_exception
    if user.status == UserStatus.SUSPENDED:
        raise AccountSuspendedError(user.suspension_reason)
    return user


def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
    token: Annotated[str, Depends(oauth2_scheme)],
) -> User:
    """
    Require the authenticated user to hold the admin role.

    Impersonation tokens never grant admin access, even when the impersonated
    account is itself an administrator.

    Raises:
        InsufficientPermissionsError: 403 when the user is not an administrator or
            the request carries an impersonation token.
    """
    if not current_user.is_admin:
        raise InsufficientPermissionsError("Admin access required")
    if decode_token(token, ("access", "impersonation"))["type"] == "impersonation":
        raise InsufficientPermissionsError("Admin access is not available while impersonating")
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
SessionDep = Annotated[Session, Depends(get_session)]


def get_audit_meta(request: Request) -> AuditMeta:
    """Client address and user agent of an administrative request, for the audit log."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return AuditMeta(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


AuditMetaDep = Annotated[AuditMeta, Depends(get_audit_meta)]
