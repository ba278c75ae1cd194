"""
Permission codes and the static role -> permission mapping.

Routes ask for a permission code, never for a role, so moving an action
between roles is a change to this table only.
"""

from .models.auth import ROLE_ADMIN, ROLE_CLERK, ROLE_MANAGER


class PermissionCategory:
    INVENTORY = "INVENTORY"
    ORDERS = "ORDERS"
    PARTIES = "PARTIES"
    REPORTS = "REPORTS"
    USERS = "USERS"


# (code, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_INVENTORY", "View products, batches and stock levels", PermissionCategory.INVENTORY),
    ("MANAGE_PRODUCTS", "Create and edit products", PermissionCategory.INVENTORY),
    ("DELETE_PRODUCTS", "Delete products", PermissionCategory.INVENTORY),
    ("MANAGE_BATCHES", "Create and edit batches", PermissionCategory.INVENTORY),
    ("DELETE_BATCHES", "Delete batches", PermissionCategory.INVENTORY),
    ("ADJUST_STOCK", "Set product stock directly", PermissionCategory.INVENTORY),

    ("VIEW_ORDERS", "View orders and invoices", PermissionCategory.ORDERS),
    ("CREATE_ORDER", "Create orders", PermissionCategory.ORDERS),
    ("EDIT_ORDER", "Edit pending orders", PermissionCategory.ORDERS),
    ("CHANGE_ORDER_STATUS", "Confirm, deliver or cancel orders", PermissionCategory.ORDERS),
    ("DELETE_ORDER", "Delete orders and restore their stock", PermissionCategory.ORDERS),

    ("VIEW_CUSTOMERS", "View customers", PermissionCategory.PARTIES),
    ("CREATE_CUSTOMER", "Create customers", PermissionCategory.PARTIES),
    ("EDIT_CUSTOMER", "Edit customers", PermissionCategory.PARTIES),
    ("DELETE_CUSTOMER", "Delete customers", PermissionCategory.PARTIES),
    ("VIEW_SUPPLIERS", "View suppliers", PermissionCategory.PARTIES),
    ("MANAGE_SUPPLIERS", "Create and edit suppliers", PermissionCategory.PARTIES),
    ("DELETE_SUPPLIERS", "Delete suppliers", PermissionCategory.PARTIES),

    ("VIEW_REPORTS", "View stock, expiry and inventory reports", PermissionCategory.REPORTS),
    ("VIEW_SALES_REPORTS", "View sales and top product reports", PermissionCategory.REPORTS),
    ("VIEW_NOTIFICATIONS", "Read the notification feed", PermissionCategory.REPORTS),

    ("MANAGE_USERS", "Create, edit and delete users", PermissionCategory.USERS),
]

_READ = [
    "VIEW_INVENTORY",
    "VIEW_ORDERS",
    "CREATE_ORDER",
    "VIEW_CUSTOMERS",
    "CREATE_CUSTOMER",
    "VIEW_SUPPLIERS",
    "VIEW_REPORTS",
    "VIEW_NOTIFICATIONS",
]

_MANAGE = [
    "MANAGE_PRODUCTS",
    "MANAGE_BATCHES",
    "ADJUST_STOCK",
    "EDIT_ORDER",
    "CHANGE_ORDER_STATUS",
    "EDIT_CUSTOMER",
    "MANAGE_SUPPLIERS",
    "VIEW_SALES_REPORTS",
]

DEFAULT_ROLE_PERMISSIONS = {
    # Admin gets ALL permissions
    ROLE_ADMIN: [code for code, _, _ in PERMISSION_DEFINITIONS],
    ROLE_MANAGER: _READ + _MANAGE,
    ROLE_CLERK: list(_READ),
}


def get_all_permission_codes() -> list[str]:
    return [code for code, _, _ in PERMISSION_DEFINITIONS]


def permissions_for_role(role: str) -> frozenset[str]:
    return frozenset(DEFAULT_ROLE_PERMISSIONS.get(role, ()))


def has_permission(role: str, permission_code: str) -> bool:
    return permission_code in permissions_for_role(role)


def validate_permission_code(code: str) -> bool:
    return code in get_all_permission_codes()
