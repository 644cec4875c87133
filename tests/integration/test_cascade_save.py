import logging
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import connection
from django.http import QueryDict
from django.test import override_settings
from django.test.utils import CaptureQueriesContext

from rail_relations.results import SAVE, VALIDATE
from test_app.models import Invoice, InvoiceLine, LineNote, Payment, Project, Task

pytestmark = [pytest.mark.integration, pytest.mark.django_db]


def _invoice_with_lines(*labels):
    invoice = Invoice.objects.create(number="A-1", customer="ACME")
    lines = [InvoiceLine.objects.create(invoice=invoice, label=label) for label in labels]
    return invoice, lines


def test_save_creates_parent_and_children():
    invoice = Invoice(number="A-1", customer="ACME")
    invoice.lines = [InvoiceLine(label="Widget"), InvoiceLine(label="Gadget", quantity=2)]

    result = invoice.cascade_save()

    assert result
    assert invoice.pk is not None
    stored = InvoiceLine.objects.filter(invoice=invoice)
    assert sorted(stored.values_list("label", flat=True)) == ["Gadget", "Widget"]


def test_removed_records_are_deleted_and_kept_records_saved():
    invoice, (first, second) = _invoice_with_lines("first", "second")

    invoice = Invoice.objects.get(pk=invoice.pk)
    invoice.lines = InvoiceLine.load_multiple_diff(
        invoice.lines, {"InvoiceLine": [{"id": first.pk, "label": "changed"}]}
    )
    result = invoice.save_relation("lines")

    assert result
    assert list(InvoiceLine.objects.values_list("pk", "label")) == [(first.pk, "changed")]
    assert not InvoiceLine.objects.filter(pk=second.pk).exists()


def test_full_round_trip_from_submitted_rows():
    invoice, (first, second) = _invoice_with_lines("first", "second")

    invoice = Invoice.objects.get(pk=invoice.pk)
    submitted = {
        "InvoiceLine": [
            {"id": str(first.pk), "label": "first", "quantity": "4"},
            {"label": "third", "quantity": "1"},
        ]
    }
    invoice.lines = InvoiceLine.load_multiple_diff(invoice.lines, submitted)

    assert invoice.cascade_save()
    stored = list(InvoiceLine.objects.filter(invoice=invoice).values_list("label", "quantity"))
    assert stored == [("first", 4), ("third", 1)]


def test_untouched_relations_are_not_queried():
    invoice, _ = _invoice_with_lines("first")
    invoice = Invoice.objects.get(pk=invoice.pk)
    invoice.customer = "Globex"

    with CaptureQueriesContext(connection) as queries:
        result = invoice.cascade_save()

    assert result
    assert queries.captured_queries
    assert not any("invoiceline" in q["sql"].lower() for q in queries.captured_queries)
    assert not any("payment" in q["sql"].lower() for q in queries.captured_queries)
    assert Invoice.objects.get(pk=invoice.pk).customer == "Globex"


def test_invalid_parent_blocks_all_writes(caplog):
    invoice = Invoice(number="A-1", customer="")
    invoice.lines = [InvoiceLine(label="Widget")]

    with patch.object(Invoice, "save_relations") as save_relations:
        with caplog.at_level(logging.INFO, logger="rail_relations"):
            result = invoice.cascade_save()

    assert not result
    save_relations.assert_not_called()
    assert Invoice.objects.count() == 0
    assert InvoiceLine.objects.count() == 0
    assert "Model not inserted due to validation error." in caplog.text
    assert result.failures[0].record is invoice
    assert result.failures[0].operation == VALIDATE


def test_invalid_child_blocks_parent_save():
    invoice = Invoice(number="A-1", customer="ACME")
    bad = InvoiceLine(label="")
    invoice.lines = [InvoiceLine(label="Widget"), bad]

    result = invoice.cascade_save()

    assert not result
    assert Invoice.objects.count() == 0
    assert result.failed_records == [bad]
    assert result.failures[0].relation == "lines"
    assert "label" in result.failures[0].errors


def test_invalid_grandchild_blocks_save_and_is_reported():
    invoice = Invoice(number="A-1", customer="ACME")
    line = InvoiceLine(label="Widget")
    bad_note = LineNote(text="")
    line.notes = [bad_note]
    invoice.lines = [line]

    result = invoice.cascade_save()

    assert not result
    assert Invoice.objects.count() == 0
    assert LineNote.objects.count() == 0
    assert result.failed_records == [bad_note]
    assert result.failures[0].relation == "notes"
    assert "text" in result.failures[0].errors


def test_invalid_grandchild_blocks_save_relations():
    invoice = Invoice.objects.create(number="A-1", customer="ACME")
    line = InvoiceLine(label="Widget")
    line.notes = [LineNote(text="")]
    invoice.lines = [line]

    result = invoice.save_relations()

    assert not result
    assert InvoiceLine.objects.count() == 0
    assert result.failures[0].operation == VALIDATE


def test_blocked_save_without_collected_errors_is_not_successful():
    invoice = Invoice(number="A-1", customer="ACME")

    with patch.object(Invoice, "validate", return_value=False):
        result = invoice.cascade_save()

    assert not result
    assert result.failed_records == [invoice]
    assert Invoice.objects.count() == 0


def test_validation_can_be_skipped():
    invoice = Invoice(number="A-1", customer="")
    assert invoice.cascade_save(run_validation=False)
    assert Invoice.objects.filter(number="A-1").exists()


def test_one_relation_failure_does_not_stop_the_next():
    other = Invoice.objects.create(number="B-1", customer="Globex")
    Payment.objects.create(invoice=other, reference="R-1", amount=Decimal("5.00"))

    invoice = Invoice(number="A-1", customer="ACME")
    duplicate = Payment(reference="R-1", amount=Decimal("10.00"))
    invoice.payments = [duplicate]
    invoice.lines = [InvoiceLine(label="Widget")]

    result = invoice.cascade_save(run_validation=False)

    assert not result
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.record is duplicate
    assert failure.relation == "payments"
    assert failure.operation == SAVE
    assert failure.exception is not None
    assert Invoice.objects.filter(number="A-1").exists()
    assert InvoiceLine.objects.filter(invoice=invoice, label="Widget").exists()
    assert Payment.objects.count() == 1


def test_sibling_records_are_saved_after_a_failure():
    other = Invoice.objects.create(number="B-1", customer="Globex")
    Payment.objects.create(invoice=other, reference="R-1", amount=Decimal("5.00"))

    invoice = Invoice.objects.create(number="A-1", customer="ACME")
    invoice.payments = [
        Payment(reference="R-1", amount=Decimal("1.00")),
        Payment(reference="R-2", amount=Decimal("2.00")),
    ]

    result = invoice.save_relation("payments", run_validation=False)

    assert not result
    assert list(Payment.objects.filter(invoice=invoice).values_list("reference", flat=True)) == ["R-2"]


def test_relation_validation_failure_is_reported_by_save_relations(caplog):
    invoice = Invoice.objects.create(number="A-1", customer="ACME")
    invoice.lines = [InvoiceLine(label="")]

    with caplog.at_level(logging.INFO, logger="rail_relations"):
        result = invoice.save_relations()

    assert not result
    assert InvoiceLine.objects.count() == 0
    assert "Relations not saved due to validation error." in caplog.text


def test_reassignment_compares_against_latest_snapshot():
    invoice, (first, second) = _invoice_with_lines("first", "second")
    invoice = Invoice.objects.get(pk=invoice.pk)

    loaded = invoice.lines
    kept = [line for line in loaded if line.pk == first.pk]
    invoice.lines = kept
    invoice.lines = []

    assert invoice.get_old_relation("lines") == kept
    assert invoice.cascade_save()
    assert not InvoiceLine.objects.filter(pk=first.pk).exists()
    assert InvoiceLine.objects.filter(pk=second.pk).exists()


def test_nested_cascade_models_save_their_relations():
    invoice = Invoice(number="A-1", customer="ACME")
    line = InvoiceLine(label="Widget")
    line.notes = [LineNote(text="fragile")]
    invoice.lines = [line]

    assert invoice.cascade_save()
    note = LineNote.objects.get()
    assert note.line_id == line.pk
    assert line.invoice_id == invoice.pk


def test_explicit_accessor_relation_is_saved():
    project = Project(name="Launch")
    project.get_tasks()
    project.set_relation("tasks", [Task(title="Write docs"), Task(title="Ship")])

    assert project.cascade_save()
    assert sorted(project.get_tasks().values_list("title", flat=True)) == ["Ship", "Write docs"]


def test_attribute_names_limit_updated_columns():
    invoice = Invoice.objects.create(number="A-1", customer="ACME")
    invoice.number = "A-2"
    invoice.customer = "Globex"

    assert invoice.cascade_save(attribute_names=["customer"])
    stored = Invoice.objects.get(pk=invoice.pk)
    assert stored.number == "A-1"
    assert stored.customer == "Globex"


def test_blocked_save_reaches_diagnostic_hook():
    messages = []

    def hook(message, record=None, result=None):
        messages.append((message, record, bool(result)))

    invoice = Invoice(number="A-1", customer="")
    with override_settings(RAIL_RELATIONS={"diagnostic_hook": hook}):
        assert not invoice.cascade_save()

    assert messages == [("Model not inserted due to validation error.", invoice, False)]


def test_failed_row_does_not_break_outer_transaction():
    from django.db import transaction

    other = Invoice.objects.create(number="B-1", customer="Globex")
    Payment.objects.create(invoice=other, reference="R-1", amount=Decimal("5.00"))

    with transaction.atomic():
        invoice = Invoice(number="A-1", customer="ACME")
        invoice.payments = [Payment(reference="R-1", amount=Decimal("1.00"))]
        assert not invoice.cascade_save(run_validation=False)
        assert Invoice.objects.filter(number="A-1").exists()


def test_flat_form_data_does_not_wipe_existing_rows():
    invoice, (line,) = _invoice_with_lines("keep")
    invoice = Invoice.objects.get(pk=invoice.pk)
    posted = QueryDict(f"InvoiceLine[0][id]={line.pk}&InvoiceLine[0][label]=keep")

    with pytest.raises(TypeError):
        invoice.lines = InvoiceLine.load_multiple_diff(invoice.lines, posted)

    assert invoice.tracked_relations() == []
    assert invoice.cascade_save()
    assert InvoiceLine.objects.filter(pk=line.pk).exists()
