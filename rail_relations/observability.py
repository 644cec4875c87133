"""
Diagnostic sink for cascade events.

Messages always go to the ``rail_relations`` logger. Projects can add a
``diagnostic_hook`` callable and, when ``sentry-sdk`` is installed, Sentry
breadcrumbs through the ``RAIL_RELATIONS`` setting.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .settings import RelationSettings, get_relation_settings

logger = logging.getLogger(__name__)


def _add_sentry_breadcrumb(message: str, level: int, record: Any) -> None:
    try:
        import sentry_sdk  # type: ignore
    except Exception as exc:
        logger.debug("Sentry SDK unavailable: %s", exc)
        return
    data = {}
    if record is not None:
        data["model"] = type(record).__name__
        data["pk"] = getattr(record, "pk", None)
    sentry_sdk.add_breadcrumb(
        category="rail_relations",
        message=message,
        level=logging.getLevelName(level).lower(),
        data=data,
    )


def report(
    message: str,
    record: Any = None,
    result: Any = None,
    level: int = logging.INFO,
    source: Optional[str] = None,
    relation_settings: Optional[RelationSettings] = None,
) -> None:
    """Send a human-readable cascade diagnostic to every configured sink."""
    target = logging.getLogger(source) if source else logger
    target.log(level, message)

    relation_settings = relation_settings or get_relation_settings()
    hook = relation_settings.get_diagnostic_hook()
    if hook is not None:
        hook(message, record=record, result=result)
    if relation_settings.sentry_breadcrumbs:
        _add_sentry_breadcrumb(message, level, record)
