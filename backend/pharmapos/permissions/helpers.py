# Overview: Utility functions for module lookups and validation.

from .definitions import MODULE_DEFINITIONS


def get_all_module_ids():
    """Get list of all module ids."""
    return [mod[0] for mod in MODULE_DEFINITIONS]


def get_module_definition(module_id):
    """Get full definition for a module id."""
    for mod in MODULE_DEFINITIONS:
        if mod[0] == module_id:
            return {
                "id": mod[0],
                "label": mod[1],
                "description": mod[2],
                "roleRequirement": mod[3],
            }
    return None


def get_role_requirement(module_id):
    """Role a module is restricted to, or None."""
    definition = get_module_definition(module_id)
    return definition["roleRequirement"] if definition else None


def validate_module_id(module_id):
    """Check if a module id is valid."""
    return module_id in get_all_module_ids()
