"""
Declarative has-many relations.

    class Invoice(CascadeModel):
        lines = HasMany("billing.InvoiceLine", {"invoice_id": "id"})

Reading ``invoice.lines`` registers the relation on the instance and returns
the current collection (loading it from the database the first time);
assigning to it replaces the collection and starts tracking it for cascades.
"""

from typing import Any, Mapping, Optional

from .registry import ModelReference


class HasMany:
    """Class attribute declaring a cascading has-many relation."""

    def __init__(self, related_model: ModelReference, link: Mapping[str, str]):
        self.related_model = related_model
        self.link = dict(link)
        self.name: Optional[str] = None
        self.owner = None

    def __set_name__(self, owner, name):
        self.name = name
        self.owner = owner

    def register(self, instance):
        return instance.register_relation(self.name, self.related_model, self.link)

    def __get__(self, instance, owner) -> Any:
        if instance is None:
            return self
        self.register(instance)
        return instance.get_relation(self.name)

    def __set__(self, instance, value):
        self.register(instance)
        instance.set_relation(self.name, value)

    def __repr__(self) -> str:
        return f"<HasMany {self.name!r} -> {self.related_model!r} {self.link!r}>"
