from __future__ import annotations

from typing import Optional

from storefront.domain.errors import AuthorizationError
from storefront.domain.models import Actor, Role

PERMISSIONS: dict[str, set[Role]] = {
    "create_sale": {Role.ADMIN, Role.MANAGER, Role.EMPLOYEE},
    "create_product": {Role.ADMIN, Role.MANAGER},
    "delete_product": {Role.ADMIN, Role.MANAGER},
    "record_entry": {Role.ADMIN, Role.MANAGER, Role.EMPLOYEE},
    "adjust_stock": {Role.ADMIN, Role.MANAGER},
    "export_report": {Role.ADMIN, Role.MANAGER},
}


def can(actor: Actor, action: str) -> bool:
    allowed_roles = PERMISSIONS.get(action)
    if not allowed_roles:
        return False
    return Role(actor.role) in allowed_roles


def require_action(actor: Optional[Actor], action: str) -> None:
    """Check an actor's role. ``None`` is the system itself and is always allowed."""
    if actor is None:
        return
    if not can(actor, action):
        raise AuthorizationError(f"Role '{Role(actor.role).value}' is not allowed to perform '{action}'.")
