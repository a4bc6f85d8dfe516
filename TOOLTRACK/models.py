# TOOLTRACK/models.py
from django.db import models
from django.core.exceptions import ValidationError

from .constants import WAREHOUSE, ToolStatus, TransactionKind
from .lifecycle import ToolSnapshot, ToolboxSnapshot
from .managers import (
    ToolManager, ToolboxManager, ToolTransactionManager, TransactionImageManager
)
from .validators import validate_purchase_date


class Category(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ['name']

    def __str__(self):
        return self.name


class Employee(models.Model):
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(unique=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = "Employees"
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.last_name} {self.first_name}"


class Toolbox(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    employee = models.ForeignKey(
        Employee,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='toolboxes'
    )
    is_active = models.BooleanField(default=True)

    objects = ToolboxManager()

    class Meta:
        verbose_name_plural = "Toolboxes"
        ordering = ['name']

    @property
    def is_orphaned(self):
        return self.employee_id is None or not self.employee.is_active

    def to_snapshot(self):
        return ToolboxSnapshot(
            toolbox_id=self.pk,
            employee_id=self.employee_id,
            employee_active=bool(self.employee_id and self.employee.is_active),
            is_active=self.is_active,
        )

    def __str__(self):
        return self.name


class Tool(models.Model):
    serial_number = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tools'
    )
    # No toolbox means the tool sits in the warehouse
    toolbox = models.ForeignKey(
        Toolbox,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='tools'
    )
    status = models.CharField(
        max_length=20,
        choices=ToolStatus.choices,
        default=ToolStatus.AVAILABLE
    )
    is_active = models.BooleanField(default=True)
    purchase_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    objects = ToolManager()

    class Meta:
        verbose_name_plural = "Tools"
        ordering = ['name', 'serial_number']

    @property
    def location(self):
        return self.toolbox_id if self.toolbox_id else WAREHOUSE

    @property
    def location_name(self):
        return self.toolbox.name if self.toolbox_id else 'Warehouse'

    def clean(self):
        if self.purchase_date:
            validate_purchase_date(self.purchase_date)

    def to_snapshot(self):
        return ToolSnapshot(
            tool_id=self.pk,
            location=self.location,
            status=self.status,
            is_active=self.is_active,
        )

    def __str__(self):
        return f"{self.name} ({self.serial_number})"


class ToolTransaction(models.Model):
    """
    Immutable entry of the transaction log. One row per accepted transition.
    """
    tool = models.ForeignKey(
        Tool,
        on_delete=models.PROTECT,
        related_name='transactions'
    )
    kind = models.CharField(max_length=30, choices=TransactionKind.choices)
    source_toolbox = models.ForeignKey(
        Toolbox,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='outgoing_transactions'
    )
    destination_toolbox = models.ForeignKey(
        Toolbox,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_transactions'
    )
    from_employee = models.ForeignKey(
        Employee,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions_from'
    )
    to_employee = models.ForeignKey(
        Employee,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions_to'
    )
    previous_status = models.CharField(max_length=20, choices=ToolStatus.choices)
    resulting_status = models.CharField(max_length=20, choices=ToolStatus.choices)
    comments = models.TextField(blank=True)
    expected_return_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ToolTransactionManager()

    class Meta:
        verbose_name_plural = "Tool transactions"
        ordering = ['-created_at', '-id']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Transactions cannot be modified once recorded.")
        super().save(*args, **kwargs)

    @property
    def source_location(self):
        return self.source_toolbox_id if self.source_toolbox_id else WAREHOUSE

    @property
    def destination_location(self):
        return self.destination_toolbox_id if self.destination_toolbox_id else WAREHOUSE

    def __str__(self):
        return f"{self.get_kind_display()}: {self.tool} ({self.created_at})"


class TransactionImage(models.Model):
    transaction = models.ForeignKey(
        ToolTransaction,
        on_delete=models.CASCADE,
        related_name='images'
    )
    image_url = models.CharField(max_length=500)

    objects = TransactionImageManager()

    class Meta:
        verbose_name_plural = "Transaction images"
        ordering = ['transaction', 'id']

    def __str__(self):
        return self.image_url
