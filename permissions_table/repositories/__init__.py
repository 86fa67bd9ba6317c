"""Data access repositories."""

from .grant_repository import GrantRepository, build_grants_table

__all__ = ["GrantRepository", "build_grants_table"]
