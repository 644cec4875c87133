"""
Default configuration for the rail-relations library.

Every setting the cascade layer consumes is listed here once. Projects
override individual keys through the ``RAIL_RELATIONS`` Django setting; the
resulting values are exposed by ``rail_relations.settings.RelationSettings``.
"""

from __future__ import annotations

from typing import Any

LIBRARY_VERSION = "0.1.0"
LIBRARY_NAME = "rail-relations"
SETTINGS_NAME = "RAIL_RELATIONS"


# --------------------------------------------------------------------------- #
# Library-wide defaults
# --------------------------------------------------------------------------- #
LIBRARY_DEFAULTS: dict[str, Any] = {
    "relation_settings": {
        # Re-registering a relation name with another definition raises.
        "strict_registration": True,
        # Each row write runs in its own transaction.atomic() block.
        "use_savepoints": True,
        "log_cascade_steps": False,
        "diagnostic_hook": None,
        "sentry_breadcrumbs": False,
    },
}


# --------------------------------------------------------------------------- #
# Environment overrides (kept minimal & optional)
# --------------------------------------------------------------------------- #
ENVIRONMENT_DEFAULTS: dict[str, dict[str, Any]] = {
    "development": {
        "relation_settings": {
            "log_cascade_steps": True,
        }
    },
    "testing": {
        "relation_settings": {
            "strict_registration": True,
        }
    },
    "production": {
        "relation_settings": {
            "log_cascade_steps": False,
        }
    },
}


# --------------------------------------------------------------------------- #
# Helper functions
# --------------------------------------------------------------------------- #
def get_default_settings() -> dict[str, Any]:
    """Return a shallow copy of the library defaults."""
    return LIBRARY_DEFAULTS.copy()


def get_environment_defaults(environment: str) -> dict[str, Any]:
    """Return environment-specific overrides."""
    return ENVIRONMENT_DEFAULTS.get(environment, {}).copy()


def merge_settings(*settings_dicts: dict[str, Any]) -> dict[str, Any]:
    """
    Merge multiple settings dictionaries with deep merging for nested dicts.
    Later dictionaries override earlier ones.
    """
    result: dict[str, Any] = {}
    for settings_dict in settings_dicts:
        for key, value in settings_dict.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = merge_settings(result[key], value)
            else:
                result[key] = value
    return result


def validate_settings(settings: dict[str, Any]) -> list[str]:
    """
    Validate a merged settings dictionary and return a list of validation errors.
    """
    errors: list[str] = []

    relation_settings = settings.get("relation_settings")
    if not isinstance(relation_settings, dict):
        errors.append("Required setting 'relation_settings' is missing")
        return errors

    known_keys = set(LIBRARY_DEFAULTS["relation_settings"].keys())
    for key in relation_settings:
        if key not in known_keys:
            errors.append(f"Unknown setting 'relation_settings.{key}'")

    for key in ("strict_registration", "use_savepoints", "log_cascade_steps", "sentry_breadcrumbs"):
        value = relation_settings.get(key)
        if value is not None and not isinstance(value, bool):
            errors.append(f"relation_settings.{key} must be a boolean")

    hook = relation_settings.get("diagnostic_hook")
    if hook is not None and not (isinstance(hook, str) or callable(hook)):
        errors.append(
            "relation_settings.diagnostic_hook must be a dotted path or a callable"
        )

    return errors
