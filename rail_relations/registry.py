"""
Relation registry.

Each record keeps its own registry mapping a relation name to the definition
of the dependent collection: the related model and the one-entry ``link``
``{child_foreign_key: parent_attribute}``. Registration is a side effect of
declaring the relation (``HasMany`` access or ``CascadeModel.has_many``).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type, Union

from django.apps import apps
from django.db import models

from .exceptions import InvalidLinkError, RelationConflictError, RelationNotFoundError

logger = logging.getLogger(__name__)

ModelReference = Union[str, Type[models.Model]]


def _normalize_link(link: Any, model_name: Optional[str] = None) -> Dict[str, str]:
    if not isinstance(link, Mapping) or len(link) != 1:
        raise InvalidLinkError(
            "A relation link must map exactly one child attribute to a parent attribute.",
            model_name=model_name,
            link=link,
        )
    (child_key, parent_key), = link.items()
    if not isinstance(child_key, str) or not isinstance(parent_key, str):
        raise InvalidLinkError(
            "Relation link keys and values must be attribute names.",
            model_name=model_name,
            link=link,
        )
    return {child_key: parent_key}


@dataclass
class RelationDefinition:
    """A registered has-many relation."""

    name: str
    related_model: ModelReference
    link: Dict[str, str]
    owner: Optional[Type[models.Model]] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        owner_name = self.owner.__name__ if self.owner is not None else None
        self.link = _normalize_link(self.link, owner_name)

    @property
    def foreign_key(self) -> str:
        """Child attribute holding the parent's value, as declared."""
        return next(iter(self.link))

    @property
    def parent_attribute(self) -> str:
        return next(iter(self.link.values()))

    @property
    def model_label(self) -> str:
        """Lower-cased ``app_label.model_name`` of the related model."""
        if isinstance(self.related_model, str):
            reference = self.related_model
            if "." not in reference:
                if self.owner is None:
                    return reference.lower()
                reference = f"{self.owner._meta.app_label}.{reference}"
            return reference.lower()
        return self.related_model._meta.label_lower

    def get_related_model(self) -> Type[models.Model]:
        """Resolve a lazy ``"app_label.Model"`` reference on first use."""
        if isinstance(self.related_model, str):
            app_label, model_name = self.model_label.split(".", 1)
            self.related_model = apps.get_model(app_label, model_name)
        return self.related_model

    def get_foreign_key_field(self) -> models.Field:
        # get_field() accepts both "invoice" and "invoice_id"
        return self.get_related_model()._meta.get_field(self.foreign_key)

    @property
    def foreign_key_attname(self) -> str:
        return self.get_foreign_key_field().attname

    @property
    def foreign_key_names(self) -> set:
        fk_field = self.get_foreign_key_field()
        return {fk_field.name, fk_field.attname}

    def matches(self, related_model: ModelReference, link: Mapping) -> bool:
        other = RelationDefinition(self.name, related_model, dict(link), owner=self.owner)
        return other.model_label == self.model_label and other.link == self.link


class RelationRegistry:
    """Per-instance mapping of relation name to ``RelationDefinition``."""

    def __init__(self, owner: Optional[Type[models.Model]] = None):
        self.owner = owner
        self._definitions: Dict[str, RelationDefinition] = {}

    def register(
        self,
        name: str,
        related_model: ModelReference,
        link: Mapping,
        strict: bool = True,
    ) -> RelationDefinition:
        existing = self._definitions.get(name)
        if existing is not None:
            if existing.matches(related_model, link):
                return existing
            owner_name = self.owner.__name__ if self.owner is not None else None
            message = (
                f"Relation '{name}' is already registered on {owner_name} "
                f"with a different definition."
            )
            if strict:
                raise RelationConflictError(
                    message,
                    model_name=owner_name,
                    relation_name=name,
                    existing=existing,
                    proposed=(related_model, dict(link)),
                )
            logger.warning(f"{message} Overwriting it.")

        definition = RelationDefinition(name, related_model, dict(link), owner=self.owner)
        self._definitions[name] = definition
        return definition

    def lookup(self, name: str) -> RelationDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            owner_name = self.owner.__name__ if self.owner is not None else None
            raise RelationNotFoundError(
                f"Relation '{name}' is not registered on {owner_name}.",
                model_name=owner_name,
                relation_name=name,
            ) from None

    def get(self, name: str) -> Optional[RelationDefinition]:
        return self._definitions.get(name)
