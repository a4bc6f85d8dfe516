# TOOLTRACK/tests.py
"""
================================================================================
                        TOOLTRACK APPLICATION TESTS
================================================================================

Unit and integration tests for the TOOLTRACK application.

--------------------------------------------------------------------------------
                            RUNNING THE TESTS
--------------------------------------------------------------------------------

1. ALL TESTS:
   python manage.py test TOOLTRACK.tests
   pytest

2. LIFECYCLE ENGINE ONLY (no database):
   python manage.py test TOOLTRACK.tests.EligibilityTestCase
   python manage.py test TOOLTRACK.tests.EvaluateTestCase
   python manage.py test TOOLTRACK.tests.StatusChangeTestCase

3. SERVICES AND API:
   python manage.py test TOOLTRACK.tests.ToolLifecycleServiceTestCase
   python manage.py test TOOLTRACK.tests.ToolApiTestCase

4. SINGLE TEST:
   python manage.py test TOOLTRACK.tests.EvaluateTestCase.test_orphaned_transfer_to_warehouse

--------------------------------------------------------------------------------
                            TEST STRUCTURE
--------------------------------------------------------------------------------

EligibilityTestCase:
    - Eligible kinds per (location, status)
    - Retired, inactive and unreachable tools

EvaluateTestCase:
    - Check out, check in, transfer, maintenance, retire
    - Orphaned toolbox recovery, image rule, date fields

StatusChangeTestCase:
    - Broken / Lost marking, return from maintenance, (de)activation

ValidatorsTestCase:
    - Purchase date and expected return date

ToolLifecycleServiceTestCase:
    - Recording transactions, locking the log, overdue tools

ToolApiTestCase:
    - REST endpoints of tools, toolboxes and transactions

================================================================================
"""
import datetime

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .calc import days_overdue
from .constants import (
    WAREHOUSE, ToolStatus, TransactionKind, RejectionReason, Notice
)
from .lifecycle import (
    ToolSnapshot,
    ToolboxSnapshot,
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
from .models import Employee, Toolbox, Tool, ToolTransaction, TransactionImage, Category
from .services import ToolLifecycleService
from .validators import validate_expected_return_date, validate_purchase_date


TODAY = datetime.date(2025, 6, 15)
RECOVERY_NOTE = 'Recovered from orphaned/unassigned toolbox'


def box(toolbox_id, employee_id=None, employee_active=True, is_active=True):
    return ToolboxSnapshot(
        toolbox_id=toolbox_id,
        employee_id=employee_id,
        employee_active=employee_active if employee_id else False,
        is_active=is_active,
    )


TOOLBOXES = [
    box(3, employee_id=20),
    box(5, employee_id=10),
    box(6, employee_id=11),
    box(7, employee_id=12, employee_active=False),
    box(8),
]


class EligibilityTestCase(SimpleTestCase):
    """Tests of list_eligible_kinds"""

    def test_available_in_warehouse(self):
        """Available tool in the warehouse: check out, maintenance, retire"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertEqual(
            list_eligible_kinds(tool, TOOLBOXES),
            {TransactionKind.CHECK_OUT, TransactionKind.MAINTENANCE, TransactionKind.RETIRE}
        )

    def test_available_without_toolboxes(self):
        """Without a toolbox to receive it the tool cannot be checked out"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertEqual(
            list_eligible_kinds(tool, []),
            {TransactionKind.MAINTENANCE, TransactionKind.RETIRE}
        )

    def test_available_with_only_orphaned_toolboxes(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        orphaned = [box(7, employee_id=12, employee_active=False), box(8)]
        self.assertNotIn(TransactionKind.CHECK_OUT, list_eligible_kinds(tool, orphaned))

    def test_inactive_toolbox_is_not_a_check_out_target(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertNotIn(
            TransactionKind.CHECK_OUT,
            list_eligible_kinds(tool, [box(5, employee_id=10, is_active=False)])
        )

    def test_lost_only_check_in(self):
        """Lost tool can only be checked in"""
        tool = ToolSnapshot(1, 3, ToolStatus.LOST)
        self.assertEqual(list_eligible_kinds(tool, TOOLBOXES), {TransactionKind.CHECK_IN})

    def test_broken_maintenance_or_retire(self):
        """Broken tool can only go to maintenance or be retired"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.BROKEN)
        self.assertEqual(
            list_eligible_kinds(tool, TOOLBOXES),
            {TransactionKind.MAINTENANCE, TransactionKind.RETIRE}
        )

    def test_in_use_in_toolbox(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertEqual(
            list_eligible_kinds(tool, TOOLBOXES),
            {TransactionKind.CHECK_IN, TransactionKind.TRANSFER}
        )

    def test_in_maintenance(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.MAINTENANCE)
        self.assertEqual(list_eligible_kinds(tool, TOOLBOXES), {TransactionKind.RETIRE})

    def test_transfer_never_in_warehouse(self):
        """Transfer is never offered for a tool in the warehouse"""
        for tool_status in ToolStatus.values:
            tool = ToolSnapshot(1, WAREHOUSE, tool_status)
            self.assertNotIn(TransactionKind.TRANSFER, list_eligible_kinds(tool, TOOLBOXES))

    def test_missing_location_means_warehouse(self):
        tool = ToolSnapshot(1, None, ToolStatus.AVAILABLE)
        self.assertTrue(tool.in_warehouse)
        self.assertIn(TransactionKind.RETIRE, list_eligible_kinds(tool, TOOLBOXES))

    def test_retired_and_inactive_tools(self):
        """Retired or inactive tools are never transaction subjects"""
        retired = ToolSnapshot(1, WAREHOUSE, ToolStatus.RETIRED, is_active=False)
        inactive = ToolSnapshot(2, WAREHOUSE, ToolStatus.AVAILABLE, is_active=False)
        self.assertEqual(list_eligible_kinds(retired, TOOLBOXES), frozenset())
        self.assertEqual(list_eligible_kinds(inactive, TOOLBOXES), frozenset())

    def test_unreachable_states(self):
        """In Use in the warehouse or Available in a toolbox cannot happen"""
        self.assertEqual(list_eligible_kinds(ToolSnapshot(1, WAREHOUSE, ToolStatus.IN_USE), TOOLBOXES), frozenset())
        self.assertEqual(list_eligible_kinds(ToolSnapshot(1, 5, ToolStatus.AVAILABLE), TOOLBOXES), frozenset())

    def test_ordered_kinds(self):
        kinds = {TransactionKind.RETIRE, TransactionKind.CHECK_OUT, TransactionKind.MAINTENANCE}
        self.assertEqual(
            ordered_kinds(kinds),
            [TransactionKind.CHECK_OUT, TransactionKind.MAINTENANCE, TransactionKind.RETIRE]
        )


class EvaluateTestCase(SimpleTestCase):
    """Tests of evaluate"""

    def assertRejected(self, reason, field, *args, **kwargs):
        with self.assertRaises(TransitionRejected) as ctx:
            evaluate(*args, **kwargs)
        self.assertEqual(ctx.exception.reason, reason)
        self.assertEqual(ctx.exception.field, field)
        return ctx.exception

    # ========== CHECK OUT ==========

    def test_check_out_without_employee(self):
        """Check out without a destination employee is rejected"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.MISSING_REQUIRED_FIELD, 'destination_employee_id',
            tool, TransactionKind.CHECK_OUT, TransactionPayload(), TOOLBOXES, today=TODAY
        )

    def test_check_out_without_employee_and_toolboxes(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.MISSING_REQUIRED_FIELD, 'destination_employee_id',
            tool, TransactionKind.CHECK_OUT, TransactionPayload()
        )

    def test_check_out(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        payload = TransactionPayload(destination_employee_id=10, expected_return_date='2025-06-20')
        transition = evaluate(tool, TransactionKind.CHECK_OUT, payload, TOOLBOXES, today=TODAY)

        self.assertEqual(transition.kind, TransactionKind.CHECK_OUT)
        self.assertEqual(transition.source, WAREHOUSE)
        self.assertEqual(transition.destination, 5)
        self.assertEqual(transition.status, ToolStatus.IN_USE)
        self.assertEqual(transition.to_employee_id, 10)
        self.assertEqual(transition.expected_return_date, datetime.date(2025, 6, 20))
        self.assertFalse(transition.reclassified)

    def test_check_out_to_employee_without_toolbox(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.DESTINATION_INELIGIBLE, 'destination_employee_id',
            tool, TransactionKind.CHECK_OUT, TransactionPayload(destination_employee_id=99), TOOLBOXES
        )

    def test_check_out_to_inactive_employee(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.DESTINATION_INELIGIBLE, 'destination_employee_id',
            tool, TransactionKind.CHECK_OUT, TransactionPayload(destination_employee_id=12), TOOLBOXES
        )

    def test_check_out_expected_return_in_past(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        payload = TransactionPayload(destination_employee_id=10, expected_return_date='2025-06-14')
        self.assertRejected(
            RejectionReason.INVALID_DATE, 'expected_return_date',
            tool, TransactionKind.CHECK_OUT, payload, TOOLBOXES, today=TODAY
        )

    def test_check_out_broken_tool(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.BROKEN)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.CHECK_OUT, TransactionPayload(destination_employee_id=10), TOOLBOXES
        )

    def test_rejection_is_idempotent(self):
        """Identical invalid input gives an identical error"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        errors = []
        for _ in range(2):
            with self.assertRaises(TransitionRejected) as ctx:
                evaluate(tool, TransactionKind.CHECK_OUT, TransactionPayload(), TOOLBOXES, today=TODAY)
            errors.append(ctx.exception)

        first, second = errors
        self.assertEqual(first, second)
        self.assertEqual(first.as_dict(), second.as_dict())

    # ========== CHECK IN ==========

    def test_check_in(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        transition = evaluate(tool, TransactionKind.CHECK_IN, TransactionPayload(comments='Returned'), TOOLBOXES)

        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.AVAILABLE)
        self.assertEqual(transition.from_employee_id, 10)
        self.assertEqual(transition.comments, 'Returned')
        self.assertEqual(transition.notices, ())

    def test_check_in_from_orphaned_toolbox(self):
        """Check in from a toolbox of an inactive employee"""
        tool = ToolSnapshot(1, 7, ToolStatus.IN_USE)
        transition = evaluate(tool, TransactionKind.CHECK_IN, TransactionPayload(comments='Found'), TOOLBOXES)

        self.assertIsNone(transition.from_employee_id)
        self.assertEqual(transition.comments, f'Found - {RECOVERY_NOTE}')
        self.assertEqual(transition.notices, (Notice.ORPHANED_CONTAINER_RECOVERED,))
        self.assertNotIn('from_employee_id', transition.as_request())

    def test_lost_tool_check_in(self):
        """Lost tool found: back in the warehouse, available"""
        tool = ToolSnapshot(1, 3, ToolStatus.LOST)
        transition = evaluate(tool, TransactionKind.CHECK_IN, TransactionPayload(), TOOLBOXES)

        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.AVAILABLE)
        self.assertEqual(transition.from_employee_id, 20)

    def test_lost_tool_images_rejected(self):
        """Images cannot be attached to a lost tool"""
        tool = ToolSnapshot(1, 3, ToolStatus.LOST)
        payload = TransactionPayload(image_urls=('/uploads/found.jpg',))
        self.assertRejected(
            RejectionReason.IMAGES_NOT_PERMITTED, 'image_urls',
            tool, TransactionKind.CHECK_IN, payload, TOOLBOXES
        )
        self.assertFalse(can_attach_images(tool))

    def test_check_in_from_warehouse(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.CHECK_IN, TransactionPayload(), TOOLBOXES
        )

    # ========== TRANSFER ==========

    def test_transfer(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        payload = TransactionPayload(destination=6, image_urls=('/uploads/a.jpg',))
        transition = evaluate(tool, TransactionKind.TRANSFER, payload, TOOLBOXES)

        self.assertEqual(transition.kind, TransactionKind.TRANSFER)
        self.assertEqual(transition.source, 5)
        self.assertEqual(transition.destination, 6)
        self.assertEqual(transition.status, ToolStatus.IN_USE)
        self.assertEqual(transition.from_employee_id, 10)
        self.assertEqual(transition.to_employee_id, 11)
        self.assertEqual(transition.as_request()['image_urls'], ['/uploads/a.jpg'])

    def test_orphaned_transfer_to_warehouse(self):
        """Transfer from an unassigned toolbox to the warehouse becomes a check in"""
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        toolboxes = [box(5), box(6, employee_id=11)]
        transition = evaluate(
            tool, TransactionKind.TRANSFER, TransactionPayload(destination=WAREHOUSE), toolboxes
        )

        self.assertEqual(transition.kind, TransactionKind.CHECK_IN)
        self.assertEqual(transition.requested_kind, TransactionKind.TRANSFER)
        self.assertTrue(transition.reclassified)
        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.AVAILABLE)
        self.assertIsNone(transition.from_employee_id)
        self.assertEqual(transition.comments, RECOVERY_NOTE)
        self.assertIn(Notice.ORPHANED_CONTAINER_RECOVERED, transition.notices)

        request = transition.as_request()
        self.assertEqual(request['kind'], 'check_in')
        self.assertEqual(request['destination_location'], WAREHOUSE)
        self.assertNotIn('from_employee_id', request)

    def test_transfer_to_warehouse_from_owned_toolbox(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertRejected(
            RejectionReason.DESTINATION_INELIGIBLE, 'destination',
            tool, TransactionKind.TRANSFER, TransactionPayload(destination=WAREHOUSE), TOOLBOXES
        )

    def test_transfer_to_same_toolbox(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertRejected(
            RejectionReason.SAME_SOURCE_AND_DESTINATION, 'destination',
            tool, TransactionKind.TRANSFER, TransactionPayload(destination=5), TOOLBOXES
        )

    def test_transfer_without_destination(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertRejected(
            RejectionReason.MISSING_REQUIRED_FIELD, 'destination',
            tool, TransactionKind.TRANSFER, TransactionPayload(), TOOLBOXES
        )

    def test_transfer_to_unknown_toolbox(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertRejected(
            RejectionReason.DESTINATION_INELIGIBLE, 'destination',
            tool, TransactionKind.TRANSFER, TransactionPayload(destination=42), TOOLBOXES
        )

    def test_transfer_lost_tool(self):
        """Lost tool cannot be transferred, not even from an orphaned toolbox"""
        tool = ToolSnapshot(1, 8, ToolStatus.LOST)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.TRANSFER, TransactionPayload(destination=WAREHOUSE), TOOLBOXES
        )

    # ========== MAINTENANCE AND RETIRE ==========

    def test_maintenance(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.BROKEN)
        payload = TransactionPayload(comments='Replace blade', expected_return_date=TODAY)
        transition = evaluate(tool, TransactionKind.MAINTENANCE, payload, TOOLBOXES, today=TODAY)

        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.MAINTENANCE)
        self.assertEqual(transition.expected_return_date, TODAY)
        self.assertEqual(transition.as_request()['expected_return_date'], '2025-06-15')

    def test_maintenance_in_use_tool(self):
        """Tool in use must be checked in before maintenance"""
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.MAINTENANCE, TransactionPayload(), TOOLBOXES
        )

    def test_retire_broken_tool(self):
        """Broken tool in the warehouse retired and deactivated"""
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.BROKEN)
        transition = evaluate(
            tool, TransactionKind.RETIRE, TransactionPayload(comments='Beyond repair'), TOOLBOXES
        )

        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.RETIRED)
        self.assertFalse(transition.is_active)
        self.assertFalse(transition.as_request()['is_active'])

    def test_retire_without_justification(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.MISSING_REQUIRED_FIELD, 'comments',
            tool, TransactionKind.RETIRE, TransactionPayload(comments='   '), TOOLBOXES
        )

    # ========== SUBJECT AND KIND ==========

    def test_inactive_tool(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.RETIRED, is_active=False)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.MAINTENANCE, TransactionPayload(), TOOLBOXES
        )

    def test_unknown_kind(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, 'teleport', TransactionPayload(), TOOLBOXES
        )

    def test_kind_not_requestable(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertRejected(
            RejectionReason.INVALID_KIND_FOR_STATE, 'kind',
            tool, TransactionKind.DEACTIVATE, TransactionPayload(), TOOLBOXES
        )

    def test_kind_given_as_value(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        transition = evaluate(tool, 'maintenance', None, TOOLBOXES)
        self.assertEqual(transition.kind, TransactionKind.MAINTENANCE)


class StatusChangeTestCase(SimpleTestCase):
    """Tests of the status change and activation rules"""

    def test_status_changes_in_use(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        self.assertEqual(list_status_changes(tool), [ToolStatus.BROKEN, ToolStatus.LOST])

    def test_status_changes_in_warehouse(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        self.assertEqual(list_status_changes(tool), [ToolStatus.BROKEN])

    def test_lost_tool_cannot_change_status(self):
        """Lost tools can only be checked in"""
        tool = ToolSnapshot(1, 5, ToolStatus.LOST)
        self.assertEqual(list_status_changes(tool), [])
        with self.assertRaises(TransitionRejected) as ctx:
            evaluate_status_change(tool, ToolStatus.BROKEN)
        self.assertEqual(ctx.exception.reason, RejectionReason.INVALID_KIND_FOR_STATE)

    def test_mark_broken_moves_to_warehouse(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        transition = evaluate_status_change(tool, ToolStatus.BROKEN, 'Cracked housing')

        self.assertEqual(transition.kind, TransactionKind.STATUS_CHANGE)
        self.assertEqual(transition.source, 5)
        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.BROKEN)

    def test_mark_lost_keeps_toolbox(self):
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        transition = evaluate_status_change(tool, ToolStatus.LOST)

        self.assertEqual(transition.destination, 5)
        self.assertEqual(transition.status, ToolStatus.LOST)

    def test_mark_lost_in_warehouse(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        with self.assertRaises(TransitionRejected):
            evaluate_status_change(tool, ToolStatus.LOST)

    def test_manual_status_must_be_broken_or_lost(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.BROKEN)
        with self.assertRaises(TransitionRejected):
            evaluate_status_change(tool, ToolStatus.AVAILABLE)

    def test_return_from_maintenance(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.MAINTENANCE)
        transition = evaluate_return_from_maintenance(tool, 'Calibrated')

        self.assertEqual(transition.kind, TransactionKind.RETURN_FROM_MAINTENANCE)
        self.assertEqual(transition.status, ToolStatus.AVAILABLE)
        self.assertEqual(transition.comments, 'Calibrated')

    def test_return_from_maintenance_with_images(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.MAINTENANCE)
        transition = evaluate_return_from_maintenance(tool, 'Calibrated', ['/uploads/after.jpg'])

        self.assertEqual(transition.image_urls, ('/uploads/after.jpg',))
        self.assertEqual(transition.as_request()['image_urls'], ['/uploads/after.jpg'])

    def test_return_from_maintenance_wrong_status(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE)
        with self.assertRaises(TransitionRejected):
            evaluate_return_from_maintenance(tool)

    def test_deactivation(self):
        """Deactivation retires the tool and returns it to the warehouse"""
        tool = ToolSnapshot(1, 5, ToolStatus.IN_USE)
        transition = evaluate_deactivation(tool)

        self.assertEqual(transition.kind, TransactionKind.DEACTIVATE)
        self.assertEqual(transition.source, 5)
        self.assertEqual(transition.destination, WAREHOUSE)
        self.assertEqual(transition.status, ToolStatus.RETIRED)
        self.assertFalse(transition.is_active)

    def test_reactivation(self):
        tool = ToolSnapshot(1, WAREHOUSE, ToolStatus.RETIRED, is_active=False)
        transition = evaluate_reactivation(tool)

        self.assertEqual(transition.status, ToolStatus.AVAILABLE)
        self.assertTrue(transition.is_active)
        with self.assertRaises(TransitionRejected):
            evaluate_reactivation(ToolSnapshot(1, WAREHOUSE, ToolStatus.AVAILABLE))


class ValidatorsTestCase(SimpleTestCase):
    """Tests of the date fields"""

    def test_purchase_date(self):
        self.assertEqual(validate_purchase_date('2020-05-01', today=TODAY), datetime.date(2020, 5, 1))

    def test_purchase_date_in_future(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_purchase_date('2025-06-16', today=TODAY)
        self.assertEqual(ctx.exception.code, 'future')

    def test_purchase_date_before_minimum(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_purchase_date(datetime.date(1899, 12, 31), today=TODAY)
        self.assertEqual(ctx.exception.code, 'too_early')

    @override_settings(TOOLTRACK_MIN_PURCHASE_DATE='2000-01-01')
    def test_purchase_date_configured_minimum(self):
        with self.assertRaises(ValidationError):
            validate_purchase_date('1999-12-31', today=TODAY)

    def test_invalid_dates(self):
        for value in ['not a date', '2025-02-30', '', None]:
            with self.assertRaises(ValidationError) as ctx:
                validate_purchase_date(value, today=TODAY)
            self.assertEqual(ctx.exception.code, 'invalid')

    def test_expected_return_date(self):
        self.assertEqual(validate_expected_return_date(TODAY, today=TODAY), TODAY)
        with self.assertRaises(ValidationError) as ctx:
            validate_expected_return_date('2025-06-14', today=TODAY)
        self.assertEqual(ctx.exception.code, 'past')

    def test_days_overdue(self):
        self.assertEqual(days_overdue(datetime.date(2025, 6, 10), TODAY), 5)
        self.assertEqual(days_overdue(datetime.date(2025, 6, 20), TODAY), 0)


class ToolLifecycleServiceTestCase(TestCase):
    """Tests of the service recording transactions"""

    def setUp(self):
        self.jan = Employee.objects.create(first_name='Jan', last_name='Kowalski', email='jan@example.com')
        self.anna = Employee.objects.create(first_name='Anna', last_name='Nowak', email='anna@example.com')
        self.former = Employee.objects.create(
            first_name='Piotr', last_name='Wisniewski', email='piotr@example.com', is_active=False
        )
        self.box_jan = Toolbox.objects.create(name='TB-Jan', employee=self.jan)
        self.box_anna = Toolbox.objects.create(name='TB-Anna', employee=self.anna)
        self.box_former = Toolbox.objects.create(name='TB-Former', employee=self.former)
        self.box_empty = Toolbox.objects.create(name='TB-Empty')
        self.tool = Tool.objects.create(serial_number='SN-001', name='Torque wrench')

    def place(self, toolbox, tool_status):
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=toolbox, status=tool_status)
        self.tool.refresh_from_db()

    # ========== TRANSACTIONS ==========

    def test_new_tool_in_warehouse(self):
        self.assertEqual(self.tool.location, WAREHOUSE)
        self.assertEqual(self.tool.status, ToolStatus.AVAILABLE)
        self.assertTrue(self.tool.is_active)

    def test_check_out(self):
        """Check out to an employee's toolbox"""
        expected = timezone.localdate() + datetime.timedelta(days=7)
        record = ToolLifecycleService.perform_transaction(
            self.tool.id,
            TransactionKind.CHECK_OUT,
            TransactionPayload(
                destination_employee_id=self.jan.id,
                expected_return_date=expected.isoformat(),
                image_urls=('/uploads/1.jpg', '/uploads/2.jpg')
            )
        )

        self.assertEqual(record.kind, TransactionKind.CHECK_OUT)
        self.assertIsNone(record.source_toolbox)
        self.assertEqual(record.destination_toolbox, self.box_jan)
        self.assertEqual(record.to_employee, self.jan)
        self.assertEqual(record.expected_return_date, expected)
        self.assertEqual(record.images.count(), 2)

        self.tool.refresh_from_db()
        self.assertEqual(self.tool.toolbox, self.box_jan)
        self.assertEqual(self.tool.status, ToolStatus.IN_USE)

    def test_check_in(self):
        self.place(self.box_anna, ToolStatus.IN_USE)
        record = ToolLifecycleService.perform_transaction(self.tool.id, TransactionKind.CHECK_IN)

        self.assertEqual(record.from_employee, self.anna)
        self.assertIsNone(record.destination_toolbox)
        self.tool.refresh_from_db()
        self.assertIsNone(self.tool.toolbox)
        self.assertEqual(self.tool.status, ToolStatus.AVAILABLE)

    def test_orphaned_transfer_recorded_as_check_in(self):
        """Transfer from a former employee's toolbox to the warehouse"""
        self.place(self.box_former, ToolStatus.IN_USE)
        record = ToolLifecycleService.perform_transaction(
            self.tool.id,
            TransactionKind.TRANSFER,
            TransactionPayload(destination=WAREHOUSE)
        )

        self.assertEqual(record.kind, TransactionKind.CHECK_IN)
        self.assertEqual(record.source_toolbox, self.box_former)
        self.assertIsNone(record.from_employee)
        self.assertIn(RECOVERY_NOTE, record.comments)

    def test_transfer(self):
        self.place(self.box_jan, ToolStatus.IN_USE)
        record = ToolLifecycleService.perform_transaction(
            self.tool.id,
            TransactionKind.TRANSFER,
            TransactionPayload(destination=self.box_anna.id)
        )

        self.assertEqual(record.from_employee, self.jan)
        self.assertEqual(record.to_employee, self.anna)
        self.tool.refresh_from_db()
        self.assertEqual(self.tool.toolbox, self.box_anna)
        self.assertEqual(self.tool.status, ToolStatus.IN_USE)

    def test_rejected_transaction_changes_nothing(self):
        """A rejected transaction leaves no trace"""
        self.place(self.box_jan, ToolStatus.LOST)
        with self.assertRaises(TransitionRejected):
            ToolLifecycleService.perform_transaction(
                self.tool.id,
                TransactionKind.CHECK_IN,
                TransactionPayload(image_urls=('/uploads/x.jpg',))
            )

        self.assertEqual(ToolTransaction.objects.count(), 0)
        self.tool.refresh_from_db()
        self.assertEqual(self.tool.toolbox, self.box_jan)
        self.assertEqual(self.tool.status, ToolStatus.LOST)

    def test_retire(self):
        ToolLifecycleService.perform_transaction(
            self.tool.id, TransactionKind.RETIRE, TransactionPayload(comments='Worn out')
        )
        self.tool.refresh_from_db()

        self.assertEqual(self.tool.status, ToolStatus.RETIRED)
        self.assertFalse(self.tool.is_active)
        self.assertEqual(ToolLifecycleService.eligible_kinds(self.tool)['kinds'], [])

    def test_unknown_tool(self):
        with self.assertRaises(ValidationError):
            ToolLifecycleService.perform_transaction(999999, TransactionKind.MAINTENANCE)

    def test_transactions_are_immutable(self):
        record = ToolLifecycleService.perform_transaction(self.tool.id, TransactionKind.MAINTENANCE)
        record.comments = 'Edited'
        with self.assertRaises(ValidationError):
            record.save()

    # ========== STATUS AND ACTIVATION ==========

    def test_eligible_kinds(self):
        result = ToolLifecycleService.eligible_kinds(self.tool)
        self.assertEqual(result['kinds'], ['check_out', 'maintenance', 'retire'])
        self.assertEqual(result['status_changes'], ['broken'])
        self.assertTrue(result['images_allowed'])

    def test_mark_broken_and_repair(self):
        self.place(self.box_jan, ToolStatus.IN_USE)
        ToolLifecycleService.change_status(self.tool.id, ToolStatus.BROKEN, 'Dropped')
        self.tool.refresh_from_db()
        self.assertIsNone(self.tool.toolbox)
        self.assertEqual(self.tool.status, ToolStatus.BROKEN)

        ToolLifecycleService.perform_transaction(self.tool.id, TransactionKind.MAINTENANCE)
        ToolLifecycleService.return_from_maintenance(self.tool.id, 'Repaired')
        self.tool.refresh_from_db()
        self.assertEqual(self.tool.status, ToolStatus.AVAILABLE)

        kinds = list(ToolTransaction.objects.for_tool(self.tool.id).order_by('id').values_list('kind', flat=True))
        self.assertEqual(kinds, ['status_change', 'maintenance', 'return_from_maintenance'])

    def test_latest_image(self):
        """Newest image across all transactions of the tool"""
        self.assertIsNone(TransactionImage.objects.latest_for_tool(self.tool.id))

        ToolLifecycleService.perform_transaction(
            self.tool.id,
            TransactionKind.MAINTENANCE,
            TransactionPayload(image_urls=('/uploads/before.jpg',))
        )
        ToolLifecycleService.return_from_maintenance(
            self.tool.id, 'Repaired', ['/uploads/after-1.jpg', '/uploads/after-2.jpg']
        )

        image = TransactionImage.objects.latest_for_tool(self.tool.id)
        self.assertEqual(image.image_url, '/uploads/after-2.jpg')
        self.assertEqual(image.transaction.kind, TransactionKind.RETURN_FROM_MAINTENANCE)
        self.assertEqual(TransactionImage.objects.for_tool(self.tool.id).count(), 3)

    def test_toggle_activation(self):
        self.place(self.box_jan, ToolStatus.IN_USE)
        ToolLifecycleService.toggle_activation(self.tool.id)
        self.tool.refresh_from_db()
        self.assertFalse(self.tool.is_active)
        self.assertIsNone(self.tool.toolbox)
        self.assertEqual(self.tool.status, ToolStatus.RETIRED)

        ToolLifecycleService.toggle_activation(self.tool.id)
        self.tool.refresh_from_db()
        self.assertTrue(self.tool.is_active)
        self.assertEqual(self.tool.status, ToolStatus.AVAILABLE)

    # ========== QUERIES ==========

    def test_orphaned_toolboxes(self):
        names = set(Toolbox.objects.orphaned().values_list('name', flat=True))
        self.assertEqual(names, {'TB-Former', 'TB-Empty'})
        self.assertTrue(self.box_former.is_orphaned)
        self.assertFalse(self.box_jan.is_orphaned)

    def test_overdue(self):
        today = timezone.localdate()
        self.place(self.box_jan, ToolStatus.IN_USE)
        ToolTransaction.objects.create(
            tool=self.tool,
            kind=TransactionKind.CHECK_OUT,
            destination_toolbox=self.box_jan,
            to_employee=self.jan,
            previous_status=ToolStatus.AVAILABLE,
            resulting_status=ToolStatus.IN_USE,
            expected_return_date=today - datetime.timedelta(days=3)
        )

        self.assertEqual(ToolTransaction.objects.overdue(today).count(), 1)

        ToolLifecycleService.perform_transaction(self.tool.id, TransactionKind.CHECK_IN)
        self.assertEqual(ToolTransaction.objects.overdue(today).count(), 0)


class ToolApiTestCase(APITestCase):
    """Tests of the REST API"""

    def setUp(self):
        self.user = User.objects.create_user('test', 'test@example.com', 'test123')
        self.client.force_authenticate(user=self.user)

        self.category = Category.objects.create(name='Wrenches')
        self.jan = Employee.objects.create(first_name='Jan', last_name='Kowalski', email='jan@example.com')
        self.box_jan = Toolbox.objects.create(name='TB-Jan', employee=self.jan)
        self.box_empty = Toolbox.objects.create(name='TB-Empty')
        self.tool = Tool.objects.create(serial_number='SN-001', name='Torque wrench', category=self.category)

    # ========== TOOLS ==========

    def test_tool_create(self):
        """New tool lands in the warehouse as available"""
        data = {
            'serial_number': 'SN-002',
            'name': 'Drill',
            'category_id': self.category.id,
            'purchase_date': '2020-05-01',
            'status': ToolStatus.BROKEN
        }
        response = self.client.post('/api/tools/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], ToolStatus.AVAILABLE)
        self.assertEqual(response.data['location'], WAREHOUSE)
        self.assertEqual(response.data['location_name'], 'Warehouse')

    def test_tool_create_future_purchase_date(self):
        future = (timezone.localdate() + datetime.timedelta(days=1)).isoformat()
        data = {'serial_number': 'SN-003', 'name': 'Saw', 'purchase_date': future}
        response = self.client.post('/api/tools/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('purchase_date', response.data)

    def test_tool_list(self):
        response = self.client.get('/api/tools/?status=available')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['results']), 1)

    def test_tool_delete_not_allowed(self):
        response = self.client.delete(f'/api/tools/{self.tool.id}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertTrue(Tool.objects.filter(id=self.tool.id).exists())

    def test_eligible(self):
        response = self.client.get(f'/api/tools/{self.tool.id}/eligible/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['kinds'], ['check_out', 'maintenance', 'retire'])
        self.assertTrue(response.data['images_allowed'])

    # ========== TRANSACTIONS ==========

    def test_check_out(self):
        data = {
            'kind': 'check_out',
            'destination_employee_id': self.jan.id,
            'comments': 'For line 2',
            'image_urls': ['/uploads/before.jpg']
        }
        response = self.client.post(f'/api/tools/{self.tool.id}/transaction/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['kind'], 'check_out')
        self.assertEqual(response.data['destination_toolbox']['id'], self.box_jan.id)
        self.assertEqual(len(response.data['images']), 1)

        self.tool.refresh_from_db()
        self.assertEqual(self.tool.status, ToolStatus.IN_USE)

    def test_check_out_without_employee(self):
        response = self.client.post(
            f'/api/tools/{self.tool.id}/transaction/', {'kind': 'check_out'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'missing_required_field')
        self.assertEqual(response.data['field'], 'destination_employee_id')

    def test_transfer_to_warehouse_from_orphaned_toolbox(self):
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=self.box_empty, status=ToolStatus.IN_USE)
        data = {'kind': 'transfer', 'destination': 'warehouse'}
        response = self.client.post(f'/api/tools/{self.tool.id}/transaction/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['kind'], 'check_in')
        self.assertIsNone(response.data['from_employee'])

    def test_invalid_kind(self):
        response = self.client.post(
            f'/api/tools/{self.tool.id}/transaction/', {'kind': 'deactivate'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_lost_tool(self):
        """Lost tool: check in only, without images"""
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=self.box_jan, status=ToolStatus.IN_USE)
        response = self.client.post(
            f'/api/tools/{self.tool.id}/status/', {'status': 'lost'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(f'/api/tools/{self.tool.id}/eligible/')
        self.assertEqual(response.data['kinds'], ['check_in'])
        self.assertEqual(response.data['status_changes'], [])
        self.assertFalse(response.data['images_allowed'])

        data = {'kind': 'check_in', 'image_urls': ['/uploads/found.jpg']}
        response = self.client.post(f'/api/tools/{self.tool.id}/transaction/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'images_not_permitted')

    def test_return_from_maintenance(self):
        self.client.post(f'/api/tools/{self.tool.id}/transaction/', {'kind': 'maintenance'}, format='json')
        response = self.client.post(
            f'/api/tools/{self.tool.id}/return-from-maintenance/', {'comments': 'Done'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.tool.refresh_from_db()
        self.assertEqual(self.tool.status, ToolStatus.AVAILABLE)

    def test_return_from_maintenance_with_images(self):
        self.client.post(f'/api/tools/{self.tool.id}/transaction/', {'kind': 'maintenance'}, format='json')
        data = {'comments': 'Sharpened', 'image_urls': ['/uploads/sharpened.jpg']}
        response = self.client.post(
            f'/api/tools/{self.tool.id}/return-from-maintenance/', data, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([image['image_url'] for image in response.data['images']], ['/uploads/sharpened.jpg'])

        response = self.client.get(f'/api/tools/{self.tool.id}/latest-image/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['image_url'], '/uploads/sharpened.jpg')
        self.assertEqual(response.data['kind'], 'return_from_maintenance')

    def test_latest_image_without_images(self):
        response = self.client.get(f'/api/tools/{self.tool.id}/latest-image/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_toggle_activation(self):
        response = self.client.post(f'/api/tools/{self.tool.id}/toggle-activation/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['kind'], 'deactivate')
        self.tool.refresh_from_db()
        self.assertFalse(self.tool.is_active)

        response = self.client.post(
            f'/api/tools/{self.tool.id}/transaction/', {'kind': 'maintenance'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'invalid_kind_for_state')

    # ========== TOOLBOXES AND HISTORY ==========

    def test_orphaned_toolboxes(self):
        response = self.client.get('/api/toolboxes/?orphaned=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['name'] for item in response.data], ['TB-Empty'])
        self.assertTrue(response.data[0]['is_orphaned'])

    def test_toolbox_delete_not_allowed(self):
        """Toolboxes holding tools or history are deactivated, never deleted"""
        self.client.post(
            f'/api/tools/{self.tool.id}/transaction/',
            {'kind': 'check_out', 'destination_employee_id': self.jan.id},
            format='json'
        )
        response = self.client.delete(f'/api/toolboxes/{self.box_jan.id}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertTrue(Toolbox.objects.filter(id=self.box_jan.id).exists())

    def test_toolbox_deactivation_with_active_tools(self):
        """Toolbox cannot be deactivated while it still holds active tools"""
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=self.box_jan, status=ToolStatus.IN_USE)
        response = self.client.patch(
            f'/api/toolboxes/{self.box_jan.id}/', {'is_active': False}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('active tools are still in this toolbox', str(response.data['is_active'][0]))
        self.assertIn('SN-001', str(response.data['is_active'][0]))

        self.box_jan.refresh_from_db()
        self.assertTrue(self.box_jan.is_active)

    def test_toolbox_deactivation_after_check_in(self):
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=self.box_jan, status=ToolStatus.IN_USE)
        self.client.post(f'/api/tools/{self.tool.id}/transaction/', {'kind': 'check_in'}, format='json')

        response = self.client.patch(
            f'/api/toolboxes/{self.box_jan.id}/', {'is_active': False}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])

    def test_invalid_id_filters(self):
        """Non numeric ids in filters are rejected with 400"""
        for url in ['/api/tools/?toolbox_id=abc', '/api/transactions/?toolbox_id=abc',
                    '/api/transactions/?tool_id=x1', '/api/transactions/?employee_id=jan']:
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, url)

    def test_tool_list_warehouse_and_toolbox_filters(self):
        Tool.objects.create(serial_number='SN-002', name='Caliper', toolbox=self.box_jan, status=ToolStatus.IN_USE)

        response = self.client.get('/api/tools/?toolbox_id=warehouse')
        self.assertEqual([item['serial_number'] for item in response.data['results']], ['SN-001'])

        response = self.client.get(f'/api/tools/?toolbox_id={self.box_jan.id}')
        self.assertEqual([item['serial_number'] for item in response.data['results']], ['SN-002'])

    def test_transaction_history(self):
        self.client.post(f'/api/tools/{self.tool.id}/transaction/', {'kind': 'maintenance'}, format='json')
        response = self.client.get(f'/api/transactions/?tool_id={self.tool.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['kind'], 'maintenance')

    def test_overdue(self):
        today = timezone.localdate()
        Tool.objects.filter(pk=self.tool.pk).update(toolbox=self.box_jan, status=ToolStatus.IN_USE)
        ToolTransaction.objects.create(
            tool=self.tool,
            kind=TransactionKind.CHECK_OUT,
            destination_toolbox=self.box_jan,
            previous_status=ToolStatus.AVAILABLE,
            resulting_status=ToolStatus.IN_USE,
            expected_return_date=today - datetime.timedelta(days=2)
        )

        response = self.client.get('/api/transactions/overdue/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['days_overdue'], 2)

    def test_requires_login(self):
        self.client.force_authenticate(user=None)
        response = self.client.get('/api/tools/')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])
