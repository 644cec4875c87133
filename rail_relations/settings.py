"""
RelationSettings implementation.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from django.conf import settings as django_settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .defaults import (
    LIBRARY_DEFAULTS,
    SETTINGS_NAME,
    get_environment_defaults,
    merge_settings,
    validate_settings,
)


def _get_environment() -> str:
    env = getattr(django_settings, "ENVIRONMENT", None)
    if not env:
        env = "development" if getattr(django_settings, "DEBUG", False) else "production"
    return env


def _get_project_settings() -> dict[str, Any]:
    """Read RAIL_RELATIONS, accepting both the sectioned and the flat form."""
    raw = getattr(django_settings, SETTINGS_NAME, None) or {}
    if not isinstance(raw, dict):
        raise ImproperlyConfigured(f"{SETTINGS_NAME} must be a dict.")
    if "relation_settings" in raw:
        return raw
    return {"relation_settings": raw}


def get_merged_settings() -> dict[str, Any]:
    """Merge library defaults, environment overrides and project settings."""
    return merge_settings(
        LIBRARY_DEFAULTS,
        get_environment_defaults(_get_environment()),
        _get_project_settings(),
    )


@dataclass
class RelationSettings:
    """Settings controlling relation registration and cascades."""
    strict_registration: bool = True
    use_savepoints: bool = True
    log_cascade_steps: bool = False
    diagnostic_hook: Optional[Union[str, Callable[..., Any]]] = None
    sentry_breadcrumbs: bool = False

    @classmethod
    def from_settings(cls) -> "RelationSettings":
        merged = get_merged_settings()
        errors = validate_settings(merged)
        if errors:
            raise ImproperlyConfigured(
                f"Invalid {SETTINGS_NAME} configuration: " + "; ".join(errors)
            )
        values = merged["relation_settings"]
        valid_fields = set(cls.__dataclass_fields__.keys())
        return cls(**{k: v for k, v in values.items() if k in valid_fields})

    def get_diagnostic_hook(self) -> Optional[Callable[..., Any]]:
        """Resolve the configured diagnostic hook, importing it if needed."""
        hook = self.diagnostic_hook
        if hook is None:
            return None
        if isinstance(hook, str):
            try:
                return import_string(hook)
            except ImportError as e:
                raise ImproperlyConfigured(
                    f"Could not import diagnostic hook '{hook}': {e}"
                ) from e
        return hook


def get_relation_settings() -> RelationSettings:
    return RelationSettings.from_settings()
