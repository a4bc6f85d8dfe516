"""
TOOLTRACK/services.py

Business logic of the application.
Separates the transaction handling from the HTTP layer (views) and the data
layer (models). All decisions are delegated to the lifecycle engine; this
module only loads snapshots and persists accepted transitions.
"""

import logging

from django.db import transaction
from django.core.exceptions import ValidationError

from .constants import WAREHOUSE
from .lifecycle import (
    TransactionPayload,
    TransitionRejected,
    can_attach_images,
    evaluate,
    evaluate_deactivation,
    evaluate_reactivation,
    evaluate_return_from_maintenance,
    evaluate_status_change,
    list_eligible_kinds,
    list_status_changes,
    ordered_kinds,
)
from .models import Tool, Toolbox, Employee, ToolTransaction, TransactionImage

logger = logging.getLogger(__name__)


# ============================================================================
# TOOL LIFECYCLE SERVICE
# ============================================================================

class ToolLifecycleService:
    """
    Service wrapping the lifecycle engine around the database.
    """

    @staticmethod
    def _get_tool(tool_id, lock=False):
        queryset = Tool.objects.select_for_update() if lock else Tool.objects.all()
        try:
            return queryset.get(id=tool_id)
        except (Tool.DoesNotExist, ValueError, TypeError):
            raise ValidationError("Tool does not exist.")

    @staticmethod
    def eligible_kinds(tool, toolboxes=None):
        """
        Computes what the transaction dialog may offer for a tool.

        Args:
            tool: Tool instance
            toolboxes: Prefetched ToolboxSnapshot list (optional)

        Returns:
            dict: {
                'kinds': list,
                'status_changes': list,
                'images_allowed': bool
            }
        """
        if toolboxes is None:
            toolboxes = Toolbox.objects.snapshots()
        snapshot = tool.to_snapshot()

        return {
            'kinds': [str(kind) for kind in ordered_kinds(list_eligible_kinds(snapshot, toolboxes))],
            'status_changes': [str(status) for status in list_status_changes(snapshot)],
            'images_allowed': can_attach_images(snapshot),
        }

    @staticmethod
    @transaction.atomic
    def perform_transaction(tool_id, kind, payload=None, today=None):
        """
        Validates and records a transaction requested from the dialog.

        Args:
            tool_id: ID of the tool
            kind: TransactionKind value
            payload: TransactionPayload with the dialog fields

        Returns:
            ToolTransaction: The recorded transaction

        Raises:
            ValidationError: When the tool does not exist or the engine
                rejects the transaction (TransitionRejected)
        """
        tool = ToolLifecycleService._get_tool(tool_id, lock=True)
        toolboxes = Toolbox.objects.snapshots()

        try:
            transition = evaluate(
                tool.to_snapshot(),
                kind,
                payload or TransactionPayload(),
                toolboxes,
                today=today
            )
        except TransitionRejected as e:
            logger.warning(f"Transaction {kind} rejected for tool {tool.pk}: {e.reason} ({e.message})")
            raise

        if transition.reclassified:
            logger.info(
                f"Transaction {transition.requested_kind} for tool {tool.pk} "
                f"recorded as {transition.kind} ({', '.join(transition.notices)})"
            )

        return ToolLifecycleService.record_transaction(tool, transition)

    @staticmethod
    @transaction.atomic
    def return_from_maintenance(tool_id, comments='', image_urls=()):
        tool = ToolLifecycleService._get_tool(tool_id, lock=True)
        transition = evaluate_return_from_maintenance(tool.to_snapshot(), comments, image_urls)
        return ToolLifecycleService.record_transaction(tool, transition)

    @staticmethod
    @transaction.atomic
    def change_status(tool_id, new_status, comments=''):
        """
        Marks a tool as Broken or Lost.

        Raises:
            ValidationError: When the status change is not allowed
        """
        tool = ToolLifecycleService._get_tool(tool_id, lock=True)
        transition = evaluate_status_change(tool.to_snapshot(), new_status, comments)
        return ToolLifecycleService.record_transaction(tool, transition)

    @staticmethod
    @transaction.atomic
    def toggle_activation(tool_id, comments=''):
        """
        Deactivates an active tool (retired, back to the warehouse) or
        reactivates an inactive one (available in the warehouse).
        """
        tool = ToolLifecycleService._get_tool(tool_id, lock=True)
        snapshot = tool.to_snapshot()

        if tool.is_active:
            transition = evaluate_deactivation(snapshot, comments)
        else:
            transition = evaluate_reactivation(snapshot, comments)

        return ToolLifecycleService.record_transaction(tool, transition)

    @staticmethod
    @transaction.atomic
    def record_transaction(tool, transition):
        """
        Writes an accepted transition to the log and applies it to the tool.

        Args:
            tool: Tool instance (locked by the caller)
            transition: Transition returned by the engine

        Returns:
            ToolTransaction: Created log entry
        """
        request = transition.as_request()

        record = ToolTransaction.objects.create(
            tool=tool,
            kind=request['kind'],
            source_toolbox=_toolbox_or_none(request['source_location']),
            destination_toolbox=_toolbox_or_none(request['destination_location']),
            from_employee=_employee_or_none(request.get('from_employee_id')),
            to_employee=_employee_or_none(request.get('to_employee_id')),
            previous_status=request['previous_status'],
            resulting_status=request['resulting_status'],
            comments=request.get('comments', ''),
            expected_return_date=transition.expected_return_date,
        )

        TransactionImage.objects.bulk_create([
            TransactionImage(transaction=record, image_url=url)
            for url in request.get('image_urls', [])
        ])

        tool.toolbox = _toolbox_or_none(request['destination_location'])
        tool.status = request['resulting_status']
        tool.is_active = request['is_active']
        tool.save(update_fields=['toolbox', 'status', 'is_active', 'modified_at'])

        logger.info(
            f"Tool {tool.pk}: {request['kind']} "
            f"{request['source_location']} -> {request['destination_location']}, "
            f"status {request['previous_status']} -> {request['resulting_status']}"
        )

        return record


def _toolbox_or_none(location):
    if location is None or location == WAREHOUSE:
        return None
    try:
        return Toolbox.objects.get(id=location)
    except Toolbox.DoesNotExist:
        raise ValidationError("Toolbox does not exist.")


def _employee_or_none(employee_id):
    if employee_id is None:
        return None
    return Employee.objects.filter(id=employee_id).first()
