"""FastAPI dependencies guarding routes by resolved access level.

Route handlers belong to the host application. They declare the level a
route needs and get the caller's resolved level back:

    require_read = require_permissions(documents_permissions, AccessLevel.READ,
                                       get_db=get_session, get_user_id=current_user_id)

    @router.get("/documents/{resource_id}")
    def read_document(resource_id: str, level: int = Depends(require_read)): ...
"""

import logging
from typing import Any, Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..exceptions import ForbiddenError, ValidationError
from ..services.permission_service import PermissionsTable

logger = logging.getLogger(__name__)


def require_permissions(
    table: PermissionsTable,
    min_level: int,
    get_db: Callable[..., Any],
    get_user_id: Callable[..., Any],
    resource_param: str = "resource_id",
    resource_type: Callable[[str], Any] = str,
) -> Callable[..., int]:
    """Build a dependency that raises ForbiddenError below *min_level*.

    Args:
        table: Permissions table governing the route's resource type.
        min_level: Level the caller must hold on the resource.
        get_db: Dependency yielding a Session.
        get_user_id: Dependency returning the authenticated user's key, or
            None for anonymous callers.
        resource_param: Path parameter holding the resource key.
        resource_type: Converts the path parameter to the resource key type.
    """

    def dependency(
        request: Request,
        db: Session = Depends(get_db),
        user_id: Any = Depends(get_user_id),
    ) -> int:
        raw = request.path_params.get(resource_param)
        if raw is None:
            raise ValidationError(f"Missing path parameter: {resource_param}", field=resource_param)
        try:
            resource_id = resource_type(raw)
        except ValueError:
            raise ValidationError(f"Invalid {resource_param}: {raw}", field=resource_param)

        level = table.get_permissions(db, user_id, resource_id)
        if level < min_level:
            logger.info(
                "Access denied",
                extra={
                    "table": table.name,
                    "user_id": user_id,
                    "resource_id": resource_id,
                    "required": min_level,
                    "resolved": level,
                },
            )
            raise ForbiddenError(
                details={"resource_id": resource_id, "required": min_level}
            )
        return level

    return dependency
