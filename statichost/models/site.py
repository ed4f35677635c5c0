from datetime import datetime
from typing import TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship

from .enums import SiteStatus, DeploymentType

if TYPE_CHECKING:
    from statichost.models.user import User
    from statichost.models.upload import Upload


class SiteBase(SQLModel):
    name: str = Field(max_length=50)
    description: str = Field(default="", max_length=500)


class Site(SiteBase, table=True):
    id_site: int | None = Field(default=None, primary_key=True)
    id_owner: int = Field(foreign_key="user.id_user", index=True)
    slug: str = Field(unique=True, index=True, max_length=60)
    storage_path: str = Field(default="")
    public_url: str = Field(default="")
    status: SiteStatus = Field(default=SiteStatus.PENDING, index=True)
    last_error: str | None = None

    deployment_type: DeploymentType = Field(default=DeploymentType.ZIP)
    git_url: str | None = None
    git_branch: str = Field(default="main")
    last_deployed: datetime | None = None
    deployment_count: int = Field(default=0)

    quota_used: int = Field(default=0)
    file_count: int = Field(default=0)
    last_file_upload: datetime | None = None

    analytics_enabled: bool = Field(default=True)
    exclude_admin: bool = Field(default=False)
    total_hits: int = Field(default=0)
    unique_visitors: int = Field(default=0)
    last_hit: datetime | None = None

    suspended_at: datetime | None = None
    suspension_reason: str | None = None
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now, index=True)
    updated_at: datetime = Field(default_factory=datetime.now)

    owner: "User" = Relationship(back_populates="sites")
    uploads: list["Upload"] = Relationship(back_populates="site")


class SiteCreate(SiteBase):
    slug: str | None = None


class SiteUpdate(SQLModel):
    name: str | None = None
    description: str | None = None
    analytics_enabled: bool | None = None


class SiteOwner(SQLModel):
    id_user: int
    name: str
    email: str


class SitePublic(SiteBase):
    id_site: int
    id_owner: int
    slug: str
    status: SiteStatus
    public_url: str
    deployment_type: DeploymentType
    git_url: str | None
    git_branch: str
    last_deployed: datetime | None
    deployment_count: int
    quota_used: int
    file_count: int
    analytics_enabled: bool
    total_hits: int
    unique_visitors: int
    last_error: str | None
    suspension_reason: str | None
    created_at: datetime
    updated_at: datetime


class SitePublicWithOwner(SitePublic):
    owner: SiteOwner | None = None


class SiteSuspendRequest(SQLModel):
    reason: str = ""


class GitCloneRequest(SQLModel):
    repo_url: str
    branch: str = "main"
