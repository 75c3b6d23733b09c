# Overview: Module (application section) definitions package.
# Re-exports all public APIs for convenient imports.

from .categories import Module
from .definitions import (
    MODULE_DEFINITIONS,
    ADMIN_MODULES,
    ASSIGNABLE_MODULES,
    DEFAULT_USER_MODULES,
)
from .helpers import (
    get_all_module_ids,
    get_module_definition,
    get_role_requirement,
    validate_module_id,
)

__all__ = [
    "Module",
    "MODULE_DEFINITIONS",
    "ADMIN_MODULES",
    "ASSIGNABLE_MODULES",
    "DEFAULT_USER_MODULES",
    "get_all_module_ids",
    "get_module_definition",
    "get_role_requirement",
    "validate_module_id",
]
