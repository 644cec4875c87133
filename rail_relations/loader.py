"""
Tabular input loading.

``load_multiple_diff`` turns a submitted batch of rows into the new
collection for a relation: rows carrying the primary key of an existing record
update that record in place, other rows become new unsaved instances, and
existing records without a row are simply left out, which is what makes
``save_relation`` delete them once the list is assigned.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence, Type

from django.core.exceptions import ValidationError
from django.db import models
from django.http import QueryDict

from .records import assign_attributes
from .utils import index_by

logger = logging.getLogger(__name__)


def get_form_name(record: models.Model) -> str:
    getter = getattr(record, "get_form_name", None)
    if callable(getter):
        return getter()
    return type(record).__name__


def coerce_identity(model: Type[models.Model], value: Any) -> Any:
    """Convert a submitted key (often a string) to the primary key's Python type."""
    if value is None or value == "":
        return None
    try:
        return model._meta.pk.to_python(value)
    except ValidationError:
        return None


def extract_items(data: Any, scope: str) -> List[Mapping[str, Any]]:
    """
    Return the submitted rows under ``scope`` as a list; absent data gives ``[]``.

    Rows must already be nested (parsed JSON, formset ``cleaned_data``). A
    ``QueryDict`` keeps ``Form[0][field]`` keys flat, so it is refused rather
    than read as an empty batch.
    """
    if isinstance(data, QueryDict):
        raise TypeError(
            "load_multiple_diff() needs nested rows, not a QueryDict; "
            "pass parsed JSON or a formset's cleaned_data instead."
        )
    if scope:
        data = data.get(scope) if isinstance(data, Mapping) else None

    if isinstance(data, Mapping):
        # posted arrays arrive as {"0": {...}, "1": {...}}
        data = list(data.values())
    if not data or isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        return []
    return list(data)


def load_multiple_diff(
    model: Type[models.Model],
    records: Sequence[models.Model],
    data: Any,
    form_name: Optional[str] = None,
) -> List[models.Model]:
    records = list(records or ())
    representative = records[0] if records else model()
    record_class = type(representative)

    scope = get_form_name(representative) if form_name is None else form_name
    items = extract_items(data, scope)

    pk_attname = record_class._meta.pk.attname
    records_old = index_by(records, "pk")
    records_new = []
    for item in items:
        if not isinstance(item, Mapping):
            logger.debug(f"Skipping non-mapping row for {record_class.__name__}: {item!r}")
            continue
        key = coerce_identity(record_class, item.get(pk_attname, item.get("pk")))
        record = records_old.get(key) if key is not None else None
        if record is None:
            record = record_class()
        assign_attributes(record, item)
        records_new.append(record)

    return records_new
