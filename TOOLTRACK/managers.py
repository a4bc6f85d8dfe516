"""
TOOLTRACK/managers.py

Custom Managers and QuerySets for the models.
Keeps query logic out of the models and views.
"""

from django.db import models
from django.db.models import OuterRef, Q, Subquery, F
from django.utils import timezone

from .constants import ToolStatus, TransactionKind


# ============================================================================
# TOOL MANAGER
# ============================================================================

class ToolQuerySet(models.QuerySet):

    def with_relations(self):
        """
        Optimizes the query by joining category, toolbox and owner.
        """
        return self.select_related('category', 'toolbox__employee')

    def active(self):
        return self.filter(is_active=True)

    def in_warehouse(self):
        return self.filter(toolbox__isnull=True)

    def in_toolbox(self, toolbox_id):
        return self.filter(toolbox_id=toolbox_id)

    def with_status(self, status):
        return self.filter(status=status)


class ToolManager(models.Manager):

    def get_queryset(self):
        return ToolQuerySet(self.model, using=self._db)

    def with_relations(self):
        return self.get_queryset().with_relations()

    def active(self):
        return self.get_queryset().active()

    def in_warehouse(self):
        return self.get_queryset().in_warehouse()


# ============================================================================
# TOOLBOX MANAGER
# ============================================================================

class ToolboxQuerySet(models.QuerySet):

    def with_owner(self):
        return self.select_related('employee')

    def orphaned(self):
        """Toolboxes without an owner or with an inactive owner."""
        return self.filter(Q(employee__isnull=True) | Q(employee__is_active=False))

    def check_out_targets(self):
        """Toolboxes a tool can be checked out to."""
        return self.filter(is_active=True, employee__is_active=True)

    def snapshots(self):
        return [box.to_snapshot() for box in self.with_owner()]


class ToolboxManager(models.Manager):

    def get_queryset(self):
        return ToolboxQuerySet(self.model, using=self._db)

    def with_owner(self):
        return self.get_queryset().with_owner()

    def orphaned(self):
        return self.get_queryset().orphaned()

    def check_out_targets(self):
        return self.get_queryset().check_out_targets()

    def snapshots(self):
        return self.get_queryset().snapshots()


# ============================================================================
# TRANSACTION MANAGER
# ============================================================================

class ToolTransactionQuerySet(models.QuerySet):

    def with_relations(self):
        return self.select_related(
            'tool__category',
            'source_toolbox',
            'destination_toolbox',
            'from_employee',
            'to_employee'
        ).prefetch_related('images')

    def for_tool(self, tool_id):
        return self.filter(tool_id=tool_id)

    def for_toolbox(self, toolbox_id):
        return self.filter(
            Q(source_toolbox_id=toolbox_id) | Q(destination_toolbox_id=toolbox_id)
        )

    def for_employee(self, employee_id):
        return self.filter(
            Q(from_employee_id=employee_id) | Q(to_employee_id=employee_id)
        )

    def overdue(self, today=None):
        """
        Latest check out of every tool still in use whose expected
        return date has passed.
        """
        today = today or timezone.localdate()
        latest_check_out = self.model.objects.filter(
            tool=OuterRef('tool'),
            kind=TransactionKind.CHECK_OUT
        ).order_by('-created_at', '-id').values('id')[:1]

        return self.filter(
            kind=TransactionKind.CHECK_OUT,
            expected_return_date__lt=today,
            tool__status=ToolStatus.IN_USE,
            tool__is_active=True
        ).annotate(
            latest_check_out_id=Subquery(latest_check_out)
        ).filter(
            id=F('latest_check_out_id')
        )


class ToolTransactionManager(models.Manager):

    def get_queryset(self):
        return ToolTransactionQuerySet(self.model, using=self._db)

    def with_relations(self):
        return self.get_queryset().with_relations()

    def overdue(self, today=None):
        return self.get_queryset().overdue(today)

    def for_tool(self, tool_id):
        return self.get_queryset().for_tool(tool_id)


# ============================================================================
# TRANSACTION IMAGE MANAGER
# ============================================================================

class TransactionImageQuerySet(models.QuerySet):

    def for_tool(self, tool_id):
        return self.filter(transaction__tool_id=tool_id)

    def latest_for_tool(self, tool_id):
        """Most recent image attached to any transaction of the tool."""
        return self.for_tool(tool_id).order_by(
            '-transaction__created_at', '-transaction_id', '-id'
        ).first()


class TransactionImageManager(models.Manager):

    def get_queryset(self):
        return TransactionImageQuerySet(self.model, using=self._db)

    def for_tool(self, tool_id):
        return self.get_queryset().for_tool(tool_id)

    def latest_for_tool(self, tool_id):
        return self.get_queryset().latest_for_tool(tool_id)
