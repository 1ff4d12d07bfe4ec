"""
Route-level authorization: is there a principal, and may its role do this?
"""

import logging
from typing import Optional

from portal.exceptions import Forbidden, Unauthenticated
from portal.models import Principal
from portal.rbac import has_permission
from portal.sessions import SessionResolver

logger = logging.getLogger(__name__)


def require_authenticated(resolver: SessionResolver, token: Optional[str]) -> Principal:
    principal = resolver.resolve_current_user(token)
    if principal is None:
        raise Unauthenticated()
    return principal


def require_permission(principal: Principal, permission) -> None:
    if not has_permission(principal.role, permission):
        logger.info(
            "Permission denied: user_id=%s role=%s permission=%s",
            principal.id, getattr(principal.role, "value", principal.role),
            getattr(permission, "value", permission),
        )
        raise Forbidden()


def authorize(resolver: SessionResolver, token: Optional[str], permission) -> Principal:
    """Authenticate, then check *permission*. Returns the principal."""
    principal = require_authenticated(resolver, token)
    require_permission(principal, permission)
    return principal
