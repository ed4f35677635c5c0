from sqlmodel import Session, SQLModel, create_engine

from statichost.core.config import get_settings


def _engine_options(url: str) -> dict:
    # SQLite connections are shared with the threadpool that runs sync endpoints
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(
    get_settings().DATABASE_URL, **_engine_options(get_settings().DATABASE_URL)
)


def create_db_and_tables():
    """
    Create database tables defined in SQLModel metadata.

    Every table module is imported first so the metadata is complete even when
    the caller only touched a subset of the models.
    """
    import statichost.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """
    Provide a context-managed SQLModel session.

    Returns:
        session (Session): A SQLModel Session bound to the module-level engine. The session is yielded for use and is closed when the generator exits.
    """
    with Session(engine) as session:
        yield session
