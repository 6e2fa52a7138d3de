from enum import Enum
from typing import Optional
from pydantic import BaseModel


class OrgRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class ProjectRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class Scope(str, Enum):
    ORGANIZATION = "organization"
    PROJECT = "project"


class CheckMode(str, Enum):
    SINGLE = "single"
    ALL = "all"
    ANY = "any"


class Permission(str, Enum):
    # Organization
    MANAGE_ORGANIZATION = "manage_organization"
    VIEW_ORGANIZATION = "view_organization"

    # Users
    MANAGE_USERS = "manage_users"
    INVITE_USERS = "invite_users"
    VIEW_USERS = "view_users"

    # Projects
    CREATE_PROJECT = "create_project"
    MANAGE_PROJECT = "manage_project"
    DELETE_PROJECT = "delete_project"
    VIEW_PROJECT = "view_project"
    MANAGE_MEMBERS = "manage_members"

    # Documents
    CREATE_DOCUMENT = "create_document"
    EDIT_DOCUMENT = "edit_document"
    DELETE_DOCUMENT = "delete_document"
    VIEW_DOCUMENT = "view_document"
    PUBLISH_DOCUMENT = "publish_document"

    # Analytics
    VIEW_ANALYTICS = "view_analytics"
    EXPORT_DATA = "export_data"

    # AI
    USE_AI_FEATURES = "use_ai_features"
    MANAGE_AI_SETTINGS = "manage_ai_settings"

    # Platform (top role only)
    MANAGE_SYSTEM = "manage_system"
    VIEW_SYSTEM_LOGS = "view_system_logs"
    MANAGE_BILLING = "manage_billing"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
