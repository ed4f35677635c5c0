from datetime import datetime
from typing import Any
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from .enums import AuditResource, AuditStatus


class AuditLogBase(SQLModel):
    action: str = Field(index=True, max_length=100)
    resource: AuditResource = Field(index=True)
    resource_id: str | None = Field(default=None, max_length=64)
    status: AuditStatus = Field(default=AuditStatus.SUCCESS, index=True)
    error: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditLog(AuditLogBase, table=True):
    id_audit: int | None = Field(default=None, primary_key=True)
    id_admin: int | None = Field(default=None, foreign_key="user.id_user", index=True)
    id_user: int | None = Field(default=None, index=True)
    id_site: int | None = Field(default=None, index=True)
    details: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.now, index=True)


class AuditAdmin(SQLModel):
    id_user: int
    name: str
    email: str


class AuditLogPublic(AuditLogBase):
    id_audit: int
    id_admin: int | None
    id_user: int | None
    id_site: int | None
    details: dict[str, Any]
    created_at: datetime
    admin: AuditAdmin | None = None


class AuditFilters(SQLModel):
    id_admin: int | None = None
    id_user: int | None = None
    id_site: int | None = None
    resource: AuditResource | None = None
    action: str | None = None
    status: AuditStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
