import logging

import pytest
from django.test import override_settings

from rail_relations.exceptions import (
    InvalidLinkError,
    RelationConflictError,
    RelationNotFoundError,
)
from rail_relations.registry import RelationDefinition, RelationRegistry
from test_app.models import Invoice, InvoiceLine, Payment

pytestmark = pytest.mark.unit


def test_register_and_lookup():
    registry = RelationRegistry(owner=Invoice)
    definition = registry.register("lines", InvoiceLine, {"invoice_id": "id"})

    assert registry.lookup("lines") is definition
    assert registry.get("lines") is definition
    assert definition.foreign_key == "invoice_id"
    assert definition.parent_attribute == "id"


def test_register_same_definition_is_idempotent():
    registry = RelationRegistry(owner=Invoice)
    first = registry.register("lines", InvoiceLine, {"invoice_id": "id"})
    second = registry.register("lines", InvoiceLine, {"invoice_id": "id"})

    assert first is second
    assert registry.lookup("lines") is first


def test_lazy_reference_matches_model_class():
    registry = RelationRegistry(owner=Invoice)
    first = registry.register("lines", "InvoiceLine", {"invoice_id": "id"})
    second = registry.register("lines", InvoiceLine, {"invoice_id": "id"})

    assert first is second
    assert first.get_related_model() is InvoiceLine


def test_conflicting_registration_raises_in_strict_mode():
    registry = RelationRegistry(owner=Invoice)
    registry.register("lines", InvoiceLine, {"invoice_id": "id"})

    with pytest.raises(RelationConflictError) as e:
        registry.register("lines", Payment, {"invoice_id": "id"})
    assert e.value.relation_name == "lines"
    assert "different definition" in str(e.value)
    assert registry.lookup("lines").get_related_model() is InvoiceLine


def test_conflicting_registration_overwrites_when_not_strict(caplog):
    registry = RelationRegistry(owner=Invoice)
    registry.register("lines", InvoiceLine, {"invoice_id": "id"})

    with caplog.at_level(logging.WARNING, logger="rail_relations"):
        definition = registry.register("lines", Payment, {"invoice_id": "id"}, strict=False)

    assert registry.lookup("lines") is definition
    assert definition.get_related_model() is Payment
    assert "Overwriting" in caplog.text


def test_instance_registration_follows_strict_setting():
    invoice = Invoice()
    invoice.register_relation("extra", InvoiceLine, {"invoice_id": "id"})
    with pytest.raises(RelationConflictError):
        invoice.register_relation("extra", Payment, {"invoice_id": "id"})

    with override_settings(RAIL_RELATIONS={"strict_registration": False}):
        invoice.register_relation("extra", Payment, {"invoice_id": "id"})
    assert invoice.get_relation_definition("extra").get_related_model() is Payment


def test_lookup_unknown_relation_raises():
    registry = RelationRegistry(owner=Invoice)
    with pytest.raises(RelationNotFoundError) as e:
        registry.lookup("missing")
    assert e.value.relation_name == "missing"
    assert e.value.model_name == "Invoice"
    assert registry.get("missing") is None


@pytest.mark.parametrize(
    "link",
    [{}, {"invoice_id": "id", "other_id": "id"}, ["invoice_id", "id"], {"invoice_id": 1}],
)
def test_link_must_have_exactly_one_entry(link):
    with pytest.raises(InvalidLinkError):
        RelationDefinition("lines", InvoiceLine, link)


def test_foreign_key_accepts_field_name_or_attname():
    by_name = RelationDefinition("payments", Payment, {"invoice": "id"})
    by_attname = RelationDefinition("payments", Payment, {"invoice_id": "id"})

    assert by_name.foreign_key_attname == "invoice_id"
    assert by_attname.foreign_key_attname == "invoice_id"
    assert by_name.foreign_key_names == {"invoice", "invoice_id"}


def test_model_label_uses_owner_app_label():
    definition = RelationDefinition("lines", "InvoiceLine", {"invoice_id": "id"}, owner=Invoice)
    assert definition.model_label == "test_app.invoiceline"
    assert definition.get_related_model() is InvoiceLine
