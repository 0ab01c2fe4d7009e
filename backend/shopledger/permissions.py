"""
Permission codes and the role -> permission mapping.

Roles are fixed (admin, manager, cashier); every /api route names the one
permission it requires. Admin has all permissions.
"""

from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER


class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    PURCHASES = "PURCHASES"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View inventory records, low stock and stock movements",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_INVENTORY",
        "Manage Inventory",
        "Create and delete inventory records, edit prices",
        PermissionCategory.INVENTORY
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Post stock movements (IN, OUT, ADJUSTMENT, TRANSFER, RETURN, DAMAGE)",
        PermissionCategory.INVENTORY
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Ring up sales (decrements stock)",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "List and view sales",
        PermissionCategory.SALES
    ),
    (
        "CREATE_PURCHASE",
        "Create Purchase",
        "Create and cancel purchase orders",
        PermissionCategory.PURCHASES
    ),
    (
        "RECEIVE_PURCHASE",
        "Receive Purchase",
        "Mark purchases received (increments stock)",
        PermissionCategory.PURCHASES
    ),
    (
        "VIEW_PURCHASES",
        "View Purchases",
        "List and view purchases",
        PermissionCategory.PURCHASES
    ),
]


DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],

    ROLE_MANAGER: [
        "VIEW_INVENTORY",
        "MANAGE_INVENTORY",
        "ADJUST_INVENTORY",
        "CREATE_SALE",
        "VIEW_SALES",
        "CREATE_PURCHASE",
        "RECEIVE_PURCHASE",
        "VIEW_PURCHASES",
    ],

    ROLE_CASHIER: [
        "VIEW_INVENTORY",  # Need to see what's in stock
        "CREATE_SALE",     # Primary job: ring up sales
        "VIEW_SALES",
    ],
}


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_role_permissions(role: str) -> set[str]:
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, ()))


def role_has_permission(role: str, code: str) -> bool:
    return code in get_role_permissions(role)
