from typing import Annotated
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from statichost.core.dependencies import CurrentUser, SessionDep
from statichost.models.token import (
    ResendVerificationRequest,
    Token,
    TokenRefreshRequest,
    VerifyEmailRequest,
)
from statichost.models.user import UserCreate, UserLogin, UserPublic, UserUpdate
from statichost.services import email as email_service
from statichost.services import user as user_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register(user_in: UserCreate, session: SessionDep) -> UserPublic:
    """
    Create an account and send the e-mail verification link.

    The very first account, and every address listed in ADMIN_EMAILS, receives the
    admin role. A failure to send the e-mail is logged and does not fail registration.

    Raises:
        `409 Conflict`: If the e-mail is already registered.
        `422 Unprocessable Content`: If terms are not accepted or a field is invalid.
    """
    user = user_service.register_user(session, user_in)
    await email_service.send_verification_email(
        user.email, user.name, user_service.verification_token_for(user)
    )
    return UserPublic.from_user(user, 0)


@router.post("/verify-email", response_model=UserPublic)
def verify_email(request_data: VerifyEmailRequest, session: SessionDep) -> UserPublic:
    user = user_service.verify_email(session, request_data.token)
    return UserPublic.from_user(user)


@router.post("/resend-verification")
async def resend_verification(
    request_data: ResendVerificationRequest, session: SessionDep
) -> dict[str, str]:
    """
    Send a new verification link.

    Always answers 200 so the endpoint cannot reveal which addresses are registered.
    """
    user = user_service.get_unverified_user(session, request_data.email)
    if user is not None:
        await email_service.send_verification_email(
            user.email, user.name, user_service.verification_token_for(user)
        )
    return {"message": "If the account exists and is not verified, a new link has been sent"}


@router.post("/token", response_model=Token)
def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    session: SessionDep,
) -> Token:
    """
    OAuth2 password flow; `username` carries the e-mail address.

    ### Errors:
    - `401`: wrong e-mail or password
    - `403`: account suspended, or e-mail not verified (`requires_verification: true`)
    """
    user = user_service.login(session, form_data.username, form_data.password)
    return user_service.issue_tokens(user)


@router.post("/login", response_model=Token)
def login(credentials: UserLogin, session: SessionDep) -> Token:
    """JSON variant of `/auth/token` used by the dashboard."""
    user = user_service.login(session, credentials.email, credentials.password)
    return user_service.issue_tokens(user)


@router.post("/refresh", response_model=Token)
def refresh_token(request_data: TokenRefreshRequest, session: SessionDep) -> Token:
    """
    Exchange a refresh token for a new access token.
    Expects JSON: {"refresh_token": "..."}
    """
    return user_service.refresh_tokens(session, request_data.refresh_token)


@router.get("/me", response_model=UserPublic)
def read_me(current_user: CurrentUser, session: SessionDep) -> UserPublic:
    return UserPublic.from_user(
        current_user,
        user_service.count_sites(session, current_user.id_user),  # type: ignore[arg-type]
    )


@router.put("/me", response_model=UserPublic)
def update_me(
    user_update: UserUpdate, current_user: CurrentUser, session: SessionDep
) -> UserPublic:
    user = user_service.update_profile(
        session, current_user.id_user, user_update  # type: ignore[arg-type]
    )
    return UserPublic.from_user(user, user_service.count_sites(session, user.id_user))  # type: ignore[arg-type]
