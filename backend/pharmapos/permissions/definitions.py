# Overview: All module definitions in menu order.
# Each module is defined as: (id, label, description, role_requirement)

from ..domain import UserRole
from .categories import Module


MODULE_DEFINITIONS = [
    (
        Module.DASHBOARD,
        "Dashboard",
        "Landing page with module shortcuts (always available)",
        None,
    ),
    (
        Module.INVENTORY,
        "Inventory",
        "Product catalog, restock and stock removal",
        None,
    ),
    (
        Module.SALES,
        "Sales",
        "Point of sale and receipt reprint",
        None,
    ),
    (
        Module.REPORTS,
        "Reports",
        "Income, profit, valuation and stock alerts",
        None,
    ),
    (
        Module.USERS,
        "Users",
        "Operator accounts and module access",
        UserRole.ADMIN,
    ),
    (
        Module.HISTORY,
        "History",
        "Stock movement audit trail",
        None,
    ),
    (
        Module.CONFIG,
        "Configuration",
        "Pharmacy identity printed on receipts",
        None,
    ),
    (
        Module.HELP,
        "Help",
        "Usage guide and support",
        None,
    ),
]

# Modules granted when an ADMIN account is created
ADMIN_MODULES = [m[0] for m in MODULE_DEFINITIONS if m[0] != Module.DASHBOARD]

# Modules a non-admin user may be granted (users is ADMIN-only)
ASSIGNABLE_MODULES = [
    m[0] for m in MODULE_DEFINITIONS
    if m[0] != Module.DASHBOARD and m[3] is None
]

DEFAULT_USER_MODULES = [Module.SALES]
