from django.db import models

from rail_relations.descriptors import HasMany
from rail_relations.models import CascadeModel


class Invoice(CascadeModel):
    number = models.CharField(max_length=20, unique=True)
    customer = models.CharField(max_length=100)

    lines = HasMany("InvoiceLine", {"invoice_id": "id"})
    payments = HasMany("test_app.Payment", {"invoice": "id"})

    class Meta:
        app_label = "test_app"


class InvoiceLine(CascadeModel):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE)
    label = models.CharField(max_length=50)
    quantity = models.PositiveIntegerField(default=1)

    notes = HasMany("test_app.LineNote", {"line_id": "id"})

    class Meta:
        app_label = "test_app"
        ordering = ["id"]


class LineNote(models.Model):
    line = models.ForeignKey(InvoiceLine, on_delete=models.CASCADE)
    text = models.CharField(max_length=100)

    class Meta:
        app_label = "test_app"
        ordering = ["id"]


class Payment(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE)
    reference = models.CharField(max_length=30, unique=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        app_label = "test_app"
        ordering = ["id"]


class InvoiceArchive(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT)

    class Meta:
        app_label = "test_app"


class Project(CascadeModel):
    name = models.CharField(max_length=100)

    form_name = ""

    class Meta:
        app_label = "test_app"

    def get_tasks(self):
        return self.has_many("tasks", "test_app.Task", {"project_id": "id"})


class Task(CascadeModel):
    project = models.ForeignKey(Project, on_delete=models.CASCADE)
    title = models.CharField(max_length=50)
    done = models.BooleanField(default=False)

    class Meta:
        app_label = "test_app"
        ordering = ["id"]
