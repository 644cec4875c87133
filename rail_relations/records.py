"""
Row-level operations on plain Django model instances.

These helpers are the record primitives the cascade builds on: attribute
assignment, per-field validation with errors kept on the instance, and
single-row save/delete that report database failures instead of raising.
"""

import logging
from contextlib import nullcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from django.core.exceptions import NON_FIELD_ERRORS, FieldDoesNotExist, ValidationError
from django.db import DatabaseError, models, router, transaction

from .results import DELETE, SAVE, CascadeResult
from .settings import RelationSettings

logger = logging.getLogger(__name__)

ERRORS_ATTRIBUTE = "_validation_errors"


def describe(record: models.Model) -> str:
    return f"{type(record).__name__}(pk={record.pk})"


def attribute_names(record) -> List[str]:
    """Column attribute names of a record or model class (``invoice_id``, not ``invoice``)."""
    return [f.attname for f in record._meta.concrete_fields]


def _resolve_field(record: models.Model, name: str) -> Optional[models.Field]:
    try:
        field = record._meta.get_field(name)
    except FieldDoesNotExist:
        return None
    if not getattr(field, "concrete", False) or field.many_to_many:
        return None
    return field


def field_names(record: models.Model, names: Iterable[str]) -> Set[str]:
    """Map attribute names or attnames to field names, dropping unknown ones."""
    resolved = set()
    for name in names:
        field = _resolve_field(record, name)
        if field is not None:
            resolved.add(field.name)
    return resolved


def get_validation_errors(record: models.Model) -> Dict[str, List[str]]:
    return record.__dict__.setdefault(ERRORS_ATTRIBUTE, {})


def clear_validation_errors(record: models.Model) -> None:
    record.__dict__[ERRORS_ATTRIBUTE] = {}


def add_validation_errors(record: models.Model, error: ValidationError) -> None:
    errors = get_validation_errors(record)
    if hasattr(error, "error_dict"):
        items = error.message_dict.items()
    else:
        items = [(NON_FIELD_ERRORS, error.messages)]
    for field, messages in items:
        bucket = errors.setdefault(field, [])
        for message in messages:
            if message not in bucket:
                bucket.append(message)


def validate_fields(
    record: models.Model,
    names: Optional[Iterable[str]] = None,
    clear_errors: bool = True,
) -> bool:
    """
    Run ``full_clean`` restricted to ``names`` and keep the errors on the record.

    Returns ``True`` when the record is valid. ``ValidationError`` never escapes.
    """
    if clear_errors:
        clear_validation_errors(record)

    exclude = None
    if names is not None:
        selected = field_names(record, names)
        exclude = {f.name for f in record._meta.fields if f.name not in selected}

    try:
        record.full_clean(exclude=exclude)
    except ValidationError as e:
        add_validation_errors(record, e)
        return False
    return True


def assign_attributes(
    record: models.Model,
    values: Mapping[str, Any],
    safe_only: bool = True,
) -> models.Model:
    """
    Copy ``values`` onto the record's concrete fields.

    The primary key is never assigned; with ``safe_only`` non-editable fields
    are skipped too. Unknown keys are ignored.
    """
    for key, value in (values or {}).items():
        field = _resolve_field(record, key)
        if field is None or field.primary_key:
            continue
        if safe_only and not field.editable:
            continue
        if isinstance(value, models.Model):
            setattr(record, field.name, value)
        else:
            setattr(record, field.attname, value)
    return record


def _row_atomic(record: models.Model, relation_settings: RelationSettings):
    if not relation_settings.use_savepoints:
        return nullcontext()
    return transaction.atomic(using=router.db_for_write(type(record), instance=record))


def save_row(
    record: models.Model,
    result: CascadeResult,
    relation_settings: RelationSettings,
    relation: Optional[str] = None,
    names: Optional[Iterable[str]] = None,
) -> bool:
    """Save a single row; database errors are logged and recorded in ``result``."""
    update_fields = None
    if names is not None and not record._state.adding:
        update_fields = [
            name for name in field_names(record, names)
            if not record._meta.get_field(name).primary_key
        ]

    try:
        with _row_atomic(record, relation_settings):
            record.save(update_fields=update_fields)
    except DatabaseError as e:
        logger.warning(f"Could not save {describe(record)}: {e}")
        result.add_failure(record, SAVE, relation=relation, exception=e)
        return False

    if relation_settings.log_cascade_steps:
        logger.debug(f"Saved {describe(record)}")
    return True


def delete_row(
    record: models.Model,
    result: CascadeResult,
    relation_settings: RelationSettings,
    relation: Optional[str] = None,
) -> bool:
    """Delete a single row; database errors are logged and recorded in ``result``."""
    description = describe(record)
    try:
        with _row_atomic(record, relation_settings):
            record.delete()
    except DatabaseError as e:
        logger.warning(f"Could not delete {description}: {e}")
        result.add_failure(record, DELETE, relation=relation, exception=e)
        return False

    if relation_settings.log_cascade_steps:
        logger.debug(f"Deleted {description}")
    return True
