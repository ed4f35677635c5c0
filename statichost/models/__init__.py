"""Importing this package registers every table on SQLModel.metadata."""

from statichost.models.user import User
from statichost.models.site import Site
from statichost.models.upload import Upload
from statichost.models.analytics import Hit
from statichost.models.audit import AuditLog

__all__ = ["User", "Site", "Upload", "Hit", "AuditLog"]
