from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from sqlmodel import Session

from statichost.core.dependencies import get_audit_meta, get_current_admin, get_current_user
from statichost.core.security import (
    create_access_token,
    create_impersonation_token,
    create_refresh_token,
)
from statichost.exceptions import AccountSuspendedError, InsufficientPermissionsError
from statichost.models.enums import UserStatus


def make_request(headers: dict[str, str], host: str | None = "10.0.0.1") -> MagicMock:
    request = MagicMock()
    request.headers = headers
    request.client = MagicMock(host=host) if host else None
    return request


class TestGetCurrentUser:
    def test_valid_token(self, session: Session, user):
        token = create_access_token({"sub": user.email})
        assert get_current_user(token, session) == user

    def test_refresh_token_rejected(self, session: Session, user):
        token = create_refresh_token({"sub": user.email})
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(token, session)
        assert exc_info.value.status_code == 401

    def test_unknown_user(self, session: Session):
        token = create_access_token({"sub": "ghost@example.com"})
        with pytest.raises(HTTPException):
            get_current_user(token, session)

    def test_deleted_user(self, session: Session, user):
        user.status = UserStatus.DELETED
        session.add(user)
        session.commit()
        with pytest.raises(HTTPException):
            get_current_user(create_access_token({"sub": user.email}), session)

    def test_suspended_user(self, session: Session, user):
        user.status = UserStatus.SUSPENDED
        user.suspension_reason = "Spam"
        session.add(user)
        session.commit()
        with pytest.raises(AccountSuspendedError, match="suspended: Spam"):
            get_current_user(create_access_token({"sub": user.email}), session)


class TestGetCurrentAdmin:
    def test_admin(self, admin):
        token = create_access_token({"sub": admin.email})
        assert get_current_admin(admin, token) == admin

    def test_non_admin(self, user):
        token = create_access_token({"sub": user.email})
        with pytest.raises(InsufficientPermissionsError, match="Admin access required"):
            get_current_admin(user, token)

    def test_impersonated_admin_rejected(self, admin):
        token = create_impersonation_token(admin.email, "root@example.com")
        with pytest.raises(InsufficientPermissionsError, match="impersonating"):
            get_current_admin(admin, token)


class TestGetAuditMeta:
    def test_forwarded_for_first_hop(self):
        meta = get_audit_meta(
            make_request({"x-forwarded-for": "203.0.113.5, 10.0.0.2", "user-agent": "curl/8"})
        )
        assert meta.ip_address == "203.0.113.5"
        assert meta.user_agent == "curl/8"

    def test_client_host(self):
        assert get_audit_meta(make_request({})).ip_address == "10.0.0.1"

    def test_no_client(self):
        meta = get_audit_meta(make_request({}, host=None))
        assert meta.ip_address is None
        assert meta.user_agent is None
