"""FastAPI integration."""

from .dependencies import require_permissions

__all__ = ["require_permissions"]
