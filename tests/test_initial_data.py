from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr
from sqlmodel import Session, select

from statichost import cli, initial_data
from statichost.core.config import get_settings
from statichost.exceptions import StorageError
from statichost.models.user import User


@pytest.fixture(name="bootstrap")
def bootstrap_fixture(session: Session, monkeypatch):
    """initial_data wired to the test database with a mocked object store."""
    settings = get_settings()
    monkeypatch.setattr(settings, "FIRST_SUPERUSER_EMAIL", "root@example.com")
    monkeypatch.setattr(settings, "FIRST_SUPERUSER_PASSWORD", SecretStr("RootPass123"))
    storage = MagicMock()
    with (
        patch.object(initial_data, "engine", session.get_bind()),
        patch.object(initial_data, "create_db_and_tables"),
        patch.object(initial_data, "storage_service", storage),
    ):
        yield storage


def test_bootstrap_seeds_admin_and_bucket(session: Session, bootstrap):
    assert initial_data.main() is True

    bootstrap.ensure_bucket_exists.assert_called_once()
    admin = session.exec(select(User)).one()
    assert admin.email == "root@example.com"
    assert admin.is_admin


def test_unreachable_storage_keeps_database_work(session: Session, bootstrap):
    bootstrap.ensure_bucket_exists.side_effect = StorageError("connection refused")

    assert initial_data.init() is False
    assert session.exec(select(User)).one().email == "root@example.com"


def test_init_db_command_exit_code(bootstrap):
    assert cli.main(["init-db"]) == 0

    bootstrap.ensure_bucket_exists.side_effect = StorageError("connection refused")
    assert cli.main(["init-db"]) == 1
