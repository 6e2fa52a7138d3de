# SQLModel definitions; imported here so SQLModel.metadata knows every table.
from .base import UUIDMixin, TimestampMixin, VersionMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .project import Project  # noqa: F401
from .membership import ProjectMembership  # noqa: F401
