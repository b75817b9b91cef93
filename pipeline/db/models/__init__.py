# pipeline/db/models/__init__.py
from .base import Base
from .version import Version
from .gitweb_repository import GitwebRepository

__all__ = [
    "Base",
    "Version",
    "GitwebRepository",
]
