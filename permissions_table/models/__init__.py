"""Grant and access-level models."""

from .access_level import AccessLevel, to_access_level
from .grant import Grant

__all__ = ["AccessLevel", "to_access_level", "Grant"]
