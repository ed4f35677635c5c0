from sqlmodel import Session, select
from loguru import logger
from sqlalchemy.exc import IntegrityError

from statichost.core.config import get_settings
from statichost.core.security import get_password_hash
from statichost.exceptions import AlreadyExistsError
from statichost.models.enums import Role
from statichost.models.user import User


def init_db(session: Session) -> None:
    """
    Ensure the configured initial administrator exists in the database.

    If FIRST_SUPERUSER_EMAIL or FIRST_SUPERUSER_PASSWORD is not set, the function logs a warning and makes no changes. An existing account with that e-mail is promoted to admin and marked verified; otherwise a verified admin account is created.

    Parameters:
        session (Session): Database session used to look up and persist the administrator.

    Raises:
        AlreadyExistsError: If a unique constraint prevents creating the account.
    """
    settings = get_settings()
    if (
        not settings.FIRST_SUPERUSER_EMAIL
        or not settings.FIRST_SUPERUSER_PASSWORD
        or not settings.FIRST_SUPERUSER_PASSWORD.get_secret_value()
    ):
        logger.warning("First superuser not configured. Skipping creation.")
        return

    email = settings.FIRST_SUPERUSER_EMAIL.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()

    if user is None:
        user = User(
            email=email,
            name=settings.FIRST_SUPERUSER_NAME,
            hashed_password=get_password_hash(
                settings.FIRST_SUPERUSER_PASSWORD.get_secret_value()
            ),
            roles=[Role.USER.value, Role.ADMIN.value],
            email_verified=True,
            max_sites=settings.MAX_SITES_PER_USER,
            max_storage=settings.MAX_STORAGE_PER_USER,
        )
        try:
            session.add(user)
            session.commit()
            logger.info("First superuser created successfully")
        except IntegrityError:
            session.rollback()
            logger.error("First superuser already exists (constraint violation)")
            raise AlreadyExistsError("User", "email", email)
    elif not user.is_admin or not user.email_verified:
        user.roles = [Role.USER.value, Role.ADMIN.value]
        user.email_verified = True
        session.add(user)
        session.commit()
        logger.info("Existing account promoted to first superuser")
    else:
        logger.info("First superuser already exists")
