from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship

from .enums import Role, UserStatus

if TYPE_CHECKING:
    from statichost.models.site import Site


def default_roles() -> list[str]:
    return [Role.USER.value]


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True, max_length=255)
    name: str = Field(max_length=100)


class User(UserBase, table=True):
    id_user: int | None = Field(default=None, primary_key=True)
    hashed_password: str
    roles: list[str] = Field(default_factory=default_roles, sa_column=Column(JSON))
    email_verified: bool = Field(default=False)
    status: UserStatus = Field(default=UserStatus.ACTIVE, index=True)

    max_sites: int = Field(default=10)
    max_storage: int = Field(default=100 * 1024 * 1024)
    used_sites: int = Field(default=0)
    used_storage: int = Field(default=0)
    # Set when the storage quota warning is e-mailed, cleared once usage falls back
    quota_warning_sent_at: datetime | None = None

    created_at: datetime = Field(default_factory=datetime.now, index=True)
    updated_at: datetime = Field(default_factory=datetime.now)
    last_login: datetime | None = None
    suspended_at: datetime | None = None
    suspension_reason: str | None = None
    deleted_at: datetime | None = None

    sites: list["Site"] = Relationship(back_populates="owner")

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in (self.roles or [])


class UserCreate(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    email: str
    password: str
    accept_terms: bool = False


class UserLogin(SQLModel):
    email: str
    password: str


class UserQuota(SQLModel):
    used_sites: int
    max_sites: int
    used_storage: int
    max_storage: int


class UserPublic(UserBase):
    id_user: int
    roles: list[str]
    email_verified: bool
    status: UserStatus
    quota: UserQuota
    site_count: int | None = None
    created_at: datetime
    last_login: datetime | None = None

    @classmethod
    def from_user(cls, user: User, site_count: int | None = None) -> "UserPublic":
        """Flatten the quota columns of `user` into the nested `quota` object."""
        return cls(
            id_user=user.id_user,  # type: ignore[arg-type]
            email=user.email,
            name=user.name,
            roles=list(user.roles or []),
            email_verified=user.email_verified,
            status=user.status,
            quota=UserQuota(
                used_sites=user.used_sites,
                max_sites=user.max_sites,
                used_storage=user.used_storage,
                max_storage=user.max_storage,
            ),
            site_count=site_count,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class UserUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    password: str | None = None
