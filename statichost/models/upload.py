from datetime import datetime
from typing import TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship

from .enums import UploadType, UploadStatus

if TYPE_CHECKING:
    from statichost.models.site import Site


class UploadBase(SQLModel):
    type: UploadType = Field(default=UploadType.FILE)
    filename: str
    path: str
    s3_key: str
    size: int = Field(default=0)
    mime_type: str = Field(default="application/octet-stream")
    status: UploadStatus = Field(default=UploadStatus.COMPLETED)


class Upload(UploadBase, table=True):
    id_upload: int | None = Field(default=None, primary_key=True)
    id_site: int = Field(foreign_key="site.id_site", index=True)
    id_user: int = Field(foreign_key="user.id_user", index=True)
    uploaded_at: datetime = Field(default_factory=datetime.now, index=True)

    site: "Site" = Relationship(back_populates="uploads")


class UploadPublic(UploadBase):
    id_upload: int
    id_site: int
    uploaded_at: datetime


class UploadStats(SQLModel):
    total_uploads: int
    total_size: int
    last_upload: datetime | None
    by_type: dict[str, int]
