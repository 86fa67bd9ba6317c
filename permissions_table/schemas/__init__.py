"""Configuration and result schemas."""

from .permissions import (
    CollectionRef,
    PermissionsConfig,
    PermissionsResult,
    PublicUniqueness,
)

__all__ = [
    "CollectionRef",
    "PermissionsConfig",
    "PermissionsResult",
    "PublicUniqueness",
]
