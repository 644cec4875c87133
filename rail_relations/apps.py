"""
Django app configuration for rail-relations.
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RelationsConfig(AppConfig):
    """Django app configuration for rail-relations."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "rail_relations"
    verbose_name = "Rail Relations"
    label = "rail_relations"

    def ready(self):
        """Validate the RAIL_RELATIONS setting once Django has loaded."""
        try:
            self._validate_configuration()
        except Exception as e:
            logger.error(f"Invalid rail-relations configuration: {e}")
            if self._is_debug_mode():
                raise

    def _validate_configuration(self):
        from .settings import get_relation_settings

        relation_settings = get_relation_settings()
        relation_settings.get_diagnostic_hook()
        logger.debug(f"rail-relations configured: {relation_settings}")

    def _is_debug_mode(self):
        from django.conf import settings as django_settings

        return getattr(django_settings, "DEBUG", False)
