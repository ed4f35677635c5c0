"""Bootstrap a fresh StaticHost deployment: schema, first administrator and sites bucket."""

from loguru import logger
from sqlmodel import Session
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from statichost.core.config import get_settings
from statichost.database.database import engine, create_db_and_tables
from statichost.database.init_db import init_db
from statichost.exceptions import StorageError
from statichost.services.storage import storage_service


def init() -> bool:
    """
    Create the tables, seed the first administrator and make sure the sites bucket exists.

    Returns:
        bool: False when the object store could not be reached; the database part is
        done either way.
    """
    create_db_and_tables()
    with Session(engine) as session:
        init_db(session)

    bucket = get_settings().SITES_BUCKET
    try:
        storage_service.ensure_bucket_exists()
    except (StorageError, Urllib3HTTPError) as e:
        logger.error(f"Could not provision sites bucket '{bucket}': {e}")
        return False
    logger.info(f"Sites bucket '{bucket}' is ready")
    return True


def main() -> bool:
    logger.info("Bootstrapping StaticHost database and storage")
    if not init():
        logger.warning("Database ready; rerun once object storage is reachable")
        return False
    logger.info("StaticHost is ready to host sites")
    return True


if __name__ == "__main__":
    main()
