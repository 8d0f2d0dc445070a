from .base import Base
from .local import Local
from .project import Project
from .remote import Remote

__all__ = ["Base", "Local", "Project", "Remote"]
