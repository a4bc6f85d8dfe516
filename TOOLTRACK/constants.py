"""
TOOLTRACK/constants.py

Constants and enumerations used across the TOOLTRACK module.
"""

from django.db import models


# Sentinel location of the central warehouse. Every other location is a toolbox id.
WAREHOUSE = 'warehouse'


# ============================================================================
# TOOL STATUSES
# ============================================================================

class ToolStatus(models.TextChoices):
    """
    Possible statuses of a single tool.
    """
    AVAILABLE = 'available', 'Available'
    IN_USE = 'in_use', 'In Use'
    MAINTENANCE = 'maintenance', 'Maintenance'
    LOST = 'lost', 'Lost'
    BROKEN = 'broken', 'Broken'
    RETIRED = 'retired', 'Retired'


# ============================================================================
# TRANSACTION KINDS
# ============================================================================

class TransactionKind(models.TextChoices):
    """
    Kinds of entries in the transaction log.

    The first five are the transactions an operator picks in the transaction
    dialog; the rest are recorded by the status change and activation actions.
    """
    CHECK_OUT = 'check_out', 'Check Out'
    CHECK_IN = 'check_in', 'Check In'
    TRANSFER = 'transfer', 'Transfer'
    MAINTENANCE = 'maintenance', 'Maintenance'
    RETIRE = 'retire', 'Retire'
    RETURN_FROM_MAINTENANCE = 'return_from_maintenance', 'Return From Maintenance'
    STATUS_CHANGE = 'status_change', 'Status Change'
    DEACTIVATE = 'deactivate', 'Deactivate'
    REACTIVATE = 'reactivate', 'Reactivate'


# Kinds offered in the transaction dialog, in display order
USER_TRANSACTION_KINDS = [
    TransactionKind.CHECK_OUT,
    TransactionKind.CHECK_IN,
    TransactionKind.TRANSFER,
    TransactionKind.MAINTENANCE,
    TransactionKind.RETIRE,
]


# ============================================================================
# REJECTIONS AND NOTICES
# ============================================================================

class RejectionReason(models.TextChoices):
    INVALID_KIND_FOR_STATE = 'invalid_kind_for_state', 'Transaction not allowed in the current state'
    MISSING_REQUIRED_FIELD = 'missing_required_field', 'Required field is missing'
    SAME_SOURCE_AND_DESTINATION = 'same_source_and_destination', 'Source and destination are the same'
    DESTINATION_INELIGIBLE = 'destination_ineligible', 'Destination cannot receive the tool'
    IMAGES_NOT_PERMITTED = 'images_not_permitted', 'Images are not permitted for lost tools'
    INVALID_DATE = 'invalid_date', 'Invalid date'


class Notice(models.TextChoices):
    """Informational outcomes attached to an accepted transition."""
    ORPHANED_CONTAINER_RECOVERED = 'orphaned_container_recovered', 'Recovered from orphaned/unassigned toolbox'


# ============================================================================
# STATE SETS
# ============================================================================

# Statuses a tool may have while sitting in the warehouse
STATUSES_IN_WAREHOUSE = [
    ToolStatus.AVAILABLE,
    ToolStatus.MAINTENANCE,
    ToolStatus.BROKEN,
    ToolStatus.RETIRED,
]

# Statuses a tool may have while sitting in a toolbox
STATUSES_IN_TOOLBOX = [
    ToolStatus.IN_USE,
    ToolStatus.LOST,
]

# Statuses blocking a check out from the warehouse
STATUSES_BLOCKING_CHECK_OUT = [
    ToolStatus.IN_USE,
    ToolStatus.MAINTENANCE,
    ToolStatus.BROKEN,
]

# Statuses a tool can be checked in from
STATUSES_FOR_CHECK_IN = [
    ToolStatus.IN_USE,
    ToolStatus.LOST,
]

# Statuses blocking a transfer between toolboxes
STATUSES_BLOCKING_TRANSFER = [
    ToolStatus.MAINTENANCE,
    ToolStatus.LOST,
    ToolStatus.BROKEN,
]

# Statuses that can be set by hand with the status change action
MANUAL_STATUSES = [
    ToolStatus.BROKEN,
    ToolStatus.LOST,
]


DEFAULT_ORPHAN_RECOVERY_NOTE = 'Recovered from orphaned/unassigned toolbox'
DEFAULT_MIN_PURCHASE_DATE = '1900-01-01'
