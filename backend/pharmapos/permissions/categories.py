# Overview: Module identifiers used by the authorization gate and the navigation menu.


class Module:
    """Named application sections gated by permission_service.can_access."""
    DASHBOARD = "dashboard"
    INVENTORY = "inventory"
    SALES = "sales"
    REPORTS = "reports"
    USERS = "users"
    HISTORY = "history"
    CONFIG = "config"
    HELP = "help"
