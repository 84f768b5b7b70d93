"""
Role-based permission table.

WHY: One static table shared by every route keeps authorization decisions
in a single place. Roles are fixed; there is no per-user override.

DESIGN PRINCIPLES:
- Permissions are (resource, action) pairs
- Deny by default: a missing resource means no access
- SUPER_ADMIN is granted everything, including actions not listed here
"""

from .constants import UserRole


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN: {
        "users": ("create", "read", "update", "delete", "approve"),
        "customers": ("create", "read", "update", "delete", "approve", "assign"),
        "agents": ("create", "read", "update", "delete", "approve"),
        "products": ("create", "read", "update", "delete"),
        "inventory": ("create", "read"),
        "publicPool": ("read", "assign"),
        "dashboard": ("read",),
        "exports": ("agents", "products"),
        "system-configs": ("read",),
    },
    UserRole.FACTORY_SALES: {
        "customers": ("create", "read", "update", "delete"),
        # Sales reps manage their own agents; row-level checks live in agent_service
        "agents": ("read", "create", "update"),
        "users": ("read",),
        "products": ("read",),
        "publicPool": ("read", "assign"),
        "dashboard": (),
    },
    UserRole.AGENT: {
        "customers": ("create", "read", "update", "delete"),
        "products": ("read",),
        "publicPool": ("read", "assign"),
        "dashboard": (),
    },
    UserRole.INVENTORY_MANAGER: {
        "products": ("create", "read", "update", "delete"),
        "inventory": ("create", "read"),
        "exports": ("products",),
        "dashboard": (),
    },
}


def has_permission(role: str, resource: str, action: str) -> bool:
    """Check whether a role may perform action on resource."""
    if role == UserRole.SUPER_ADMIN:
        return True
    return action in ROLE_PERMISSIONS.get(role, {}).get(resource, ())


def get_role_permissions(role: str) -> dict:
    """Resource -> actions mapping for a role, as lists (JSON friendly)."""
    return {resource: list(actions) for resource, actions in ROLE_PERMISSIONS.get(role, {}).items()}


def can_manage_inventory(role: str) -> bool:
    return role in (UserRole.SUPER_ADMIN, UserRole.INVENTORY_MANAGER)


def can_assign_public_pool(role: str) -> bool:
    return role in (UserRole.SUPER_ADMIN, UserRole.FACTORY_SALES, UserRole.AGENT)
