from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class SiteStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"
    ERROR = "error"
    DELETED = "deleted"


class DeploymentType(str, Enum):
    ZIP = "zip"
    GIT = "git"
    MANUAL = "manual"


class UploadType(str, Enum):
    FILE = "file"
    ZIP = "zip"
    GIT = "git"


class UploadStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class EventType(str, Enum):
    PAGEVIEW = "pageview"
    EVENT = "event"


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class AuditResource(str, Enum):
    USER = "user"
    SITE = "site"
    UPLOAD = "upload"
    SYSTEM = "system"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
