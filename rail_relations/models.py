"""
Cascading has-many relations for Django models.

``CascadeModel`` lets a record validate, save and delete the collections of
dependent records it owns together with its own row:

    invoice = Invoice.objects.get(pk=1)
    invoice.lines = InvoiceLine.load_multiple_diff(invoice.lines, json.loads(request.body))
    result = invoice.cascade_save()
    if not result:
        ...  # inspect result.failures or record.validation_errors

Only relations that were assigned take part in a cascade. Each assignment
snapshots the previous collection; saving a relation writes every record of
the new collection with the parent key set and deletes the records of the
snapshot that are no longer present.

Row writes are not wrapped in a shared transaction. Callers that need the
cascade to be atomic run it inside ``transaction.atomic()``.
"""

import inspect
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from django.db import models

from . import loader, records as rows
from .descriptors import HasMany
from .observability import report
from .registry import ModelReference, RelationDefinition, RelationRegistry
from .results import VALIDATE, CascadeResult
from .settings import RelationSettings, get_relation_settings
from .tracker import RelationStateTracker
from .utils import diff_keys, index_by

logger = logging.getLogger(__name__)


class CascadeModel(models.Model):
    """Abstract model adding cascading has-many relations."""

    # Scope under which load_multiple_diff() finds submitted rows; None means
    # the class name, "" means the data is not scoped.
    form_name: Optional[str] = None

    class Meta:
        abstract = True

    # ------------------------------------------------------------------ #
    # Per-instance state
    # ------------------------------------------------------------------ #
    @property
    def relation_registry(self) -> RelationRegistry:
        registry = self.__dict__.get("_relation_registry")
        if registry is None:
            registry = self.__dict__["_relation_registry"] = RelationRegistry(owner=type(self))
        return registry

    @property
    def relation_tracker(self) -> RelationStateTracker:
        tracker = self.__dict__.get("_relation_tracker")
        if tracker is None:
            tracker = self.__dict__["_relation_tracker"] = RelationStateTracker()
        return tracker

    @property
    def validation_errors(self) -> Dict[str, List[str]]:
        return rows.get_validation_errors(self)

    def has_validation_errors(self) -> bool:
        return bool(self.validation_errors)

    def clear_validation_errors(self) -> None:
        rows.clear_validation_errors(self)

    @classmethod
    def attribute_names(cls) -> List[str]:
        return rows.attribute_names(cls)

    def set_attributes(self, values: Mapping[str, Any], safe_only: bool = True):
        return rows.assign_attributes(self, values, safe_only=safe_only)

    def get_form_name(self) -> str:
        return type(self).__name__ if self.form_name is None else self.form_name

    # ------------------------------------------------------------------ #
    # Relation declaration
    # ------------------------------------------------------------------ #
    def register_relation(
        self, name: str, related_model: ModelReference, link: Mapping[str, str]
    ) -> RelationDefinition:
        """Start tracking ``name`` as a has-many relation of this record."""
        relation_settings = get_relation_settings()
        return self.relation_registry.register(
            name, related_model, link, strict=relation_settings.strict_registration
        )

    def has_many(
        self, name: str, related_model: ModelReference, link: Mapping[str, str]
    ) -> models.QuerySet:
        """
        Declare a has-many relation from an accessor method.

            def get_tasks(self):
                return self.has_many("tasks", Task, {"project_id": "id"})

        Registers the relation and returns the queryset of its stored records.
        """
        definition = self.register_relation(name, related_model, link)
        return self._relation_queryset(definition)

    def get_relation_definition(
        self, name: str, raise_exception: bool = True
    ) -> Optional[RelationDefinition]:
        definition = self.relation_registry.get(name)
        if definition is not None:
            return definition

        descriptor = inspect.getattr_static(type(self), name, None)
        if isinstance(descriptor, HasMany):
            return descriptor.register(self)

        if raise_exception:
            return self.relation_registry.lookup(name)
        return None

    def _relation_queryset(self, definition: RelationDefinition) -> models.QuerySet:
        related_model = definition.get_related_model()
        manager = related_model._default_manager
        value = getattr(self, definition.parent_attribute)
        if value is None:
            return manager.none()
        return manager.filter(**{definition.foreign_key_attname: value})

    # ------------------------------------------------------------------ #
    # Relation state
    # ------------------------------------------------------------------ #
    def get_relation(self, name: str) -> List[models.Model]:
        """Current collection of ``name``, loaded from the database on first access."""
        definition = self.get_relation_definition(name)
        tracker = self.relation_tracker
        if not tracker.is_populated(name):
            tracker.populate(name, self._relation_queryset(definition))
        return tracker.current(name)

    def populate_relation(self, name: str, records: Iterable[models.Model]) -> None:
        """Replace the in-memory collection without tracking it for cascades."""
        self.get_relation_definition(name)
        self.relation_tracker.populate(name, records)

    def set_relation(self, name: str, records: Iterable[models.Model]) -> None:
        """Assign a new collection to ``name``; the current one becomes its old snapshot."""
        old_records = self.get_relation(name)
        self.relation_tracker.snapshot(name, old_records)
        self.relation_tracker.populate(name, records)

    def get_old_relation(self, name: str) -> List[models.Model]:
        return self.relation_tracker.old(name)

    def tracked_relations(self) -> List[str]:
        return self.relation_tracker.tracked_names()

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    def validate_own(
        self, attribute_names: Optional[Iterable[str]] = None, clear_errors: bool = True
    ) -> bool:
        return rows.validate_fields(self, attribute_names, clear_errors=clear_errors)

    def validate(
        self, attribute_names: Optional[Iterable[str]] = None, clear_errors: bool = True
    ) -> bool:
        """Validate this record and every tracked relation; both always run."""
        own_valid = self.validate_own(attribute_names, clear_errors=clear_errors)
        relations_valid = self.validate_relations(clear_errors=clear_errors)
        return own_valid and relations_valid

    def validate_relation(
        self,
        name: str,
        attribute_names: Optional[Sequence[str]] = None,
        clear_errors: bool = True,
    ) -> bool:
        """
        Validate every record of the current collection of ``name``.

        The link's foreign key is left out: the parent fills it in on save.
        """
        records = self.get_relation(name)
        if not records:
            return True

        definition = self.get_relation_definition(name)
        names = list(attribute_names) if attribute_names else rows.attribute_names(records[0])
        foreign_key_names = definition.foreign_key_names
        names = [n for n in names if n not in foreign_key_names]

        valid = True
        for record in records:
            if not _validate_record(record, names, clear_errors):
                valid = False
        return valid

    def validate_relations(self, clear_errors: bool = True) -> bool:
        valid = True
        for name in self.tracked_relations():
            if not self.validate_relation(name, None, clear_errors):
                valid = False
        return valid

    def _collect_validation_failures(self, result: CascadeResult, own: bool = True) -> None:
        self._add_validation_failures(result, own=own)
        # a blocked write must never come back truthy
        if not result:
            result.add_failure(self, VALIDATE, errors=self.validation_errors)

    def _add_validation_failures(
        self, result: CascadeResult, own: bool = True, relation: Optional[str] = None
    ) -> None:
        """Record the errors of this record and of its tracked relations, at any depth."""
        if own and self.has_validation_errors():
            result.add_failure(self, VALIDATE, relation=relation, errors=self.validation_errors)
        for name in self.tracked_relations():
            for record in self.get_relation(name):
                if isinstance(record, CascadeModel):
                    record._add_validation_failures(result, relation=name)
                    continue
                errors = rows.get_validation_errors(record)
                if errors:
                    result.add_failure(record, VALIDATE, relation=name, errors=errors)

    # ------------------------------------------------------------------ #
    # Save
    # ------------------------------------------------------------------ #
    def cascade_save(
        self, run_validation: bool = True, attribute_names: Optional[Iterable[str]] = None
    ) -> CascadeResult:
        """
        Save this record, then every tracked relation.

        With ``run_validation`` nothing is written unless this record and all
        its tracked relations are valid. Relations are only saved once this
        record's own row was saved.
        """
        relation_settings = get_relation_settings()
        result = CascadeResult()

        if run_validation and not self.validate(attribute_names):
            self._collect_validation_failures(result)
            report(
                "Model not inserted due to validation error.",
                record=self,
                result=result,
                source=__name__,
                relation_settings=relation_settings,
            )
            return result

        if not rows.save_row(self, result, relation_settings, names=attribute_names):
            return result

        return result.merge(self.save_relations(run_validation=False))

    def save_relations(self, run_validation: bool = True) -> CascadeResult:
        relation_settings = get_relation_settings()
        result = CascadeResult()

        if run_validation and not self.validate_relations():
            self._collect_validation_failures(result, own=False)
            report(
                "Relations not saved due to validation error.",
                record=self,
                result=result,
                source=__name__,
                relation_settings=relation_settings,
            )
            return result

        for name in self.tracked_relations():
            result.merge(self.save_relation(name, run_validation=False))
        return result

    def save_relation(
        self,
        name: str,
        run_validation: bool = True,
        attribute_names: Optional[Iterable[str]] = None,
    ) -> CascadeResult:
        """
        Persist the current collection of ``name``.

        Every record gets the parent key and is saved; records of the old
        snapshot missing from the current collection are deleted. A failing
        record does not stop its siblings.
        """
        relation_settings = get_relation_settings()
        definition = self.get_relation_definition(name)
        result = CascadeResult()

        records_old = self.get_old_relation(name)
        records_new = self.get_relation(name)

        foreign_key = definition.foreign_key_attname
        parent_value = getattr(self, definition.parent_attribute)
        for record in records_new:
            setattr(record, foreign_key, parent_value)
            result.merge(
                _save_record(record, name, run_validation, attribute_names, relation_settings)
            )

        removed = diff_keys(index_by(records_old, "pk"), index_by(records_new, "pk"))
        for record in removed.values():
            result.merge(_delete_record(record, name, relation_settings))

        if relation_settings.log_cascade_steps:
            logger.debug(
                f"Relation '{name}' of {rows.describe(self)}: saved {len(records_new)}, "
                f"removed {len(removed)}, failures {len(result.failures)}"
            )
        return result

    # ------------------------------------------------------------------ #
    # Delete
    # ------------------------------------------------------------------ #
    def cascade_delete(self) -> CascadeResult:
        """Delete this record, then every record of its tracked relations."""
        relation_settings = get_relation_settings()
        result = CascadeResult()
        if not rows.delete_row(self, result, relation_settings):
            return result
        return result.merge(self.delete_relations())

    def delete_relations(self) -> CascadeResult:
        result = CascadeResult()
        for name in self.tracked_relations():
            result.merge(self.delete_relation(name))
        return result

    def delete_relation(self, name: str) -> CascadeResult:
        relation_settings = get_relation_settings()
        result = CascadeResult()
        for record in self.get_relation(name):
            result.merge(_delete_record(record, name, relation_settings))
        return result

    # ------------------------------------------------------------------ #
    # Tabular input
    # ------------------------------------------------------------------ #
    @classmethod
    def load_multiple_diff(
        cls,
        records: Sequence[models.Model],
        data: Any,
        form_name: Optional[str] = None,
    ) -> List[models.Model]:
        """Build the new collection for a relation from submitted rows."""
        return loader.load_multiple_diff(cls, records, data, form_name=form_name)


def _tag(result: CascadeResult, relation: str) -> CascadeResult:
    for failure in result.failures:
        if failure.relation is None:
            failure.relation = relation
    return result


def _validate_record(record: models.Model, names: Sequence[str], clear_errors: bool) -> bool:
    if isinstance(record, CascadeModel):
        return record.validate(names, clear_errors)
    return rows.validate_fields(record, names, clear_errors=clear_errors)


def _save_record(
    record: models.Model,
    relation: str,
    run_validation: bool,
    attribute_names: Optional[Iterable[str]],
    relation_settings: RelationSettings,
) -> CascadeResult:
    if isinstance(record, CascadeModel):
        return _tag(record.cascade_save(run_validation, attribute_names), relation)

    result = CascadeResult()
    if run_validation and not rows.validate_fields(record, attribute_names):
        result.add_failure(
            record, VALIDATE, relation=relation, errors=rows.get_validation_errors(record)
        )
        return result
    rows.save_row(record, result, relation_settings, relation=relation, names=attribute_names)
    return result


def _delete_record(
    record: models.Model, relation: str, relation_settings: RelationSettings
) -> CascadeResult:
    # unsaved records have no row to remove
    if record.pk is None:
        return CascadeResult()
    if isinstance(record, CascadeModel):
        return _tag(record.cascade_delete(), relation)

    result = CascadeResult()
    rows.delete_row(record, result, relation_settings, relation=relation)
    return result
