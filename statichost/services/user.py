"""User service module: registration, verification, login and profile updates."""

from datetime import datetime
from loguru import logger
from sqlmodel import Session, select, func
from sqlalchemy.exc import IntegrityError

from statichost.core.config import get_settings
from statichost.core.security import (
    authenticate_user,
    create_access_token,
    create_refresh_token,
    create_verification_token,
    decode_token,
    get_password_hash,
)
from statichost.exceptions import (
    AccountSuspendedError,
    AlreadyExistsError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from statichost.models.enums import Role, SiteStatus, UserStatus
from statichost.models.site import Site
from statichost.models.token import Token
from statichost.models.user import User, UserCreate, UserUpdate
from statichost.utils.validation import mask_email, validate_email, validate_password


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(session: Session, user_id: int) -> User | None:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    """
    Retrieve a user by email, case-insensitively.

    Returns:
        The `User` instance matching the given email, or `None` if no match is found.
    """
    statement = select(User).where(User.email == normalize_email(email))
    return session.exec(statement).first()


def _initial_roles(session: Session, email: str) -> list[str]:
    """The very first account and every address in ADMIN_EMAILS become administrators."""
    user_count = session.exec(select(func.count()).select_from(User)).one()
    if user_count == 0 or email in get_settings().admin_emails:
        return [Role.USER.value, Role.ADMIN.value]
    return [Role.USER.value]


def register_user(session: Session, user_in: UserCreate) -> User:
    """
    Create a new, unverified account.

    Parameters:
        user_in (UserCreate): Name, e-mail, plaintext password and terms acceptance.

    Returns:
        User: The created user, with quota defaults taken from the settings.

    Raises:
        ValidationError: If terms are not accepted, or the e-mail, password or name is invalid.
        AlreadyExistsError: If an account already uses the e-mail.
    """
    if not user_in.accept_terms:
        raise ValidationError("You must accept the terms of service", field="accept_terms")
    email = normalize_email(user_in.email)
    if not validate_email(email):
        raise ValidationError("Invalid email address", field="email")
    password_error = validate_password(user_in.password)
    if password_error:
        raise ValidationError(password_error, field="password")
    name = user_in.name.strip()
    if not name:
        raise ValidationError("Name is required", field="name")

    if get_user_by_email(session, email):
        raise AlreadyExistsError("User", "email", email)

    settings = get_settings()
    db_user = User(
        email=email,
        name=name,
        hashed_password=get_password_hash(user_in.password),
        roles=_initial_roles(session, email),
        max_sites=settings.MAX_SITES_PER_USER,
        max_storage=settings.MAX_STORAGE_PER_USER,
    )
    session.add(db_user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AlreadyExistsError("User", "email", email)
    session.refresh(db_user)
    logger.info(f"Registered user {mask_email(email)} with roles {db_user.roles}")
    return db_user


def verification_token_for(user: User) -> str:
    return create_verification_token(user.email)


def verify_email(session: Session, token: str) -> User:
    """
    Mark the account named by a verification token as verified.

    Verifying an already verified account is a no-op.

    Raises:
        TokenExpiredError: If the link is older than EMAIL_VERIFICATION_EXPIRE_HOURS.
        InvalidTokenError: If the token is malformed or the account no longer exists.
    """
    payload = decode_token(token, "verify")
    user = get_user_by_email(session, payload["sub"])
    if user is None or user.status == UserStatus.DELETED:
        raise InvalidTokenError("Invalid verification link")
    if not user.email_verified:
        user.email_verified = True
        user.updated_at = datetime.now()
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info(f"Verified email of {mask_email(user.email)}")
    return user


def get_unverified_user(session: Session, email: str) -> User | None:
    """Account eligible for a new verification e-mail, if any."""
    user = get_user_by_email(session, email)
    if user is None or user.email_verified or user.status != UserStatus.ACTIVE:
        return None
    return user


def login(session: Session, email: str, password: str) -> User:
    """
    Check credentials and account state, then stamp `last_login`.

    Raises:
        InvalidCredentialsError: If the e-mail or password is wrong, or the account was deleted.
        AccountSuspendedError: If an administrator suspended the account.
        EmailNotVerifiedError: If the e-mail address has not been confirmed yet.
    """
    user = authenticate_user(session, email, password)
    if user is None or user.status == UserStatus.DELETED:
        logger.info(f"Failed login for {mask_email(normalize_email(email))}")
        raise InvalidCredentialsError()
    if user.status == UserStatus.SUSPENDED:
        raise AccountSuspendedError(user.suspension_reason)
    if not user.email_verified:
        raise EmailNotVerifiedError()

    user.last_login = datetime.now()
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def issue_tokens(user: User) -> Token:
    return Token(
        access_token=create_access_token({"sub": user.email}),
        refresh_token=create_refresh_token({"sub": user.email}),
        token_type="bearer",
    )


def refresh_tokens(session: Session, refresh_token: str) -> Token:
    """
    Exchange a refresh token for a new access token.

    The refresh token itself is returned unchanged.

    Raises:
        InvalidTokenError: If the token is not a valid refresh token or the user is no longer active.
    """
    payload = decode_token(refresh_token, "refresh")
    user = get_user_by_email(session, payload["sub"])
    if user is None or user.status != UserStatus.ACTIVE:
        raise InvalidTokenError()
    return Token(
        access_token=create_access_token({"sub": user.email}),
        refresh_token=refresh_token,
        token_type="bearer",
    )


def update_profile(session: Session, user_id: int, user_update: UserUpdate) -> User:
    """
    Update the caller's own name and/or password.

    Raises:
        NotFoundError: If no user exists with the given `user_id`.
        ValidationError: If the new password breaks the password policy.
    """
    db_user = get_user(session, user_id)
    if not db_user:
        raise NotFoundError("User", user_id)

    data = user_update.model_dump(exclude_unset=True)
    if data.get("password") is not None:
        password_error = validate_password(data["password"])
        if password_error:
            raise ValidationError(password_error, field="password")
        db_user.hashed_password = get_password_hash(data["password"])
    if data.get("name"):
        db_user.name = data["name"].strip()

    db_user.updated_at = datetime.now()
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def count_sites(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count())
        .select_from(Site)
        .where(Site.id_owner == user_id, Site.status != SiteStatus.DELETED)
    ).one()
