"""
TOOLTRACK/lifecycle.py

Tool lifecycle engine.

A deterministic rule evaluator: given a tool snapshot (location, status,
active flag) it decides which transaction kinds are allowed and what state
an accepted transaction produces. It never touches the database; services
and views feed it snapshots and persist the returned Transition.
"""

from dataclasses import dataclass, replace

from django.conf import settings
from django.core.exceptions import ValidationError

from .constants import (
    WAREHOUSE,
    ToolStatus,
    TransactionKind,
    RejectionReason,
    Notice,
    USER_TRANSACTION_KINDS,
    STATUSES_IN_WAREHOUSE,
    STATUSES_IN_TOOLBOX,
    STATUSES_BLOCKING_CHECK_OUT,
    STATUSES_FOR_CHECK_IN,
    STATUSES_BLOCKING_TRANSFER,
    MANUAL_STATUSES,
    DEFAULT_ORPHAN_RECOVERY_NOTE,
)
from .validators import validate_expected_return_date


class TransitionRejected(ValidationError):
    """
    Raised when the engine refuses a transaction.

    `reason` is a RejectionReason value, `field` names the offending
    payload field (if any).
    """

    def __init__(self, reason, message, field=None):
        super().__init__(message, code=str(reason))
        self.reason = reason
        self.field = field

    def as_dict(self):
        return {
            'error': self.message,
            'reason': str(self.reason),
            'field': self.field,
        }


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True)
class ToolSnapshot:
    tool_id: int
    location: object = WAREHOUSE
    status: str = ToolStatus.AVAILABLE
    is_active: bool = True

    @property
    def in_warehouse(self):
        return is_warehouse(self.location) or self.location is None


@dataclass(frozen=True)
class ToolboxSnapshot:
    toolbox_id: int
    employee_id: int = None
    employee_active: bool = False
    is_active: bool = True

    @property
    def is_orphaned(self):
        """No owner, or the owner is no longer active."""
        return self.employee_id is None or not self.employee_active

    @property
    def can_receive_check_out(self):
        return self.is_active and not self.is_orphaned


@dataclass(frozen=True)
class TransactionPayload:
    destination_employee_id: int = None
    destination: object = None
    comments: str = ''
    image_urls: tuple = ()
    expected_return_date: object = None


@dataclass(frozen=True)
class Transition:
    """
    Result of an accepted transaction. `kind` is what gets recorded,
    `requested_kind` what the operator asked for (they differ when a
    transfer is recovered into a check in).
    """
    kind: str
    tool_id: int
    source: object
    destination: object
    previous_status: str
    status: str
    requested_kind: str = None
    is_active: bool = True
    from_employee_id: int = None
    to_employee_id: int = None
    comments: str = ''
    image_urls: tuple = ()
    expected_return_date: object = None
    notices: tuple = ()

    @property
    def reclassified(self):
        return self.requested_kind is not None and self.requested_kind != self.kind

    def as_request(self):
        """
        Payload for the "create transaction" sink.

        Optional keys are left out when empty; `from_employee_id` is omitted
        for tools recovered from an orphaned toolbox.
        """
        data = {
            'kind': str(self.kind),
            'tool_id': self.tool_id,
            'source_location': self.source,
            'destination_location': self.destination,
            'previous_status': str(self.previous_status),
            'resulting_status': str(self.status),
            'is_active': self.is_active,
        }
        if self.comments:
            data['comments'] = self.comments
        if self.image_urls:
            data['image_urls'] = list(self.image_urls)
        if self.expected_return_date:
            data['expected_return_date'] = self.expected_return_date.isoformat()
        if self.from_employee_id is not None:
            data['from_employee_id'] = self.from_employee_id
        if self.to_employee_id is not None:
            data['to_employee_id'] = self.to_employee_id
        return data


# ============================================================================
# STATE PREDICATES
# ============================================================================

def is_warehouse(location):
    return location == WAREHOUSE


def is_reachable(tool):
    """Only these (location, status) pairs can be produced by transactions."""
    if tool.in_warehouse:
        return tool.status in STATUSES_IN_WAREHOUSE
    return tool.status in STATUSES_IN_TOOLBOX


def is_transaction_subject(tool):
    return tool.is_active and tool.status != ToolStatus.RETIRED and is_reachable(tool)


def _can_check_out(tool):
    return tool.in_warehouse and tool.status not in STATUSES_BLOCKING_CHECK_OUT


def _can_check_in(tool):
    return not tool.in_warehouse and tool.status in STATUSES_FOR_CHECK_IN


def _can_transfer(tool):
    return not tool.in_warehouse and tool.status not in STATUSES_BLOCKING_TRANSFER


def _can_send_to_maintenance(tool):
    if tool.status == ToolStatus.MAINTENANCE:
        return False
    return tool.status not in (ToolStatus.IN_USE, ToolStatus.LOST) or tool.status == ToolStatus.BROKEN


def _can_retire(tool):
    return tool.in_warehouse and tool.status != ToolStatus.RETIRED


STATE_RULES = {
    TransactionKind.CHECK_OUT: _can_check_out,
    TransactionKind.CHECK_IN: _can_check_in,
    TransactionKind.TRANSFER: _can_transfer,
    TransactionKind.MAINTENANCE: _can_send_to_maintenance,
    TransactionKind.RETIRE: _can_retire,
}


def check_out_destinations(toolboxes):
    """Toolboxes a tool can be checked out to, ordered by id."""
    return sorted(
        (box for box in toolboxes if box.can_receive_check_out),
        key=lambda box: box.toolbox_id
    )


def can_attach_images(tool, resulting_status=None):
    # The physical state of a lost tool cannot be verified
    return tool.status != ToolStatus.LOST and resulting_status != ToolStatus.LOST


def list_eligible_kinds(tool, toolboxes=()):
    """
    Returns the set of transaction kinds currently allowed for the tool.

    Args:
        tool: ToolSnapshot
        toolboxes: Iterable of ToolboxSnapshot (used for check out targets)

    Returns:
        frozenset: TransactionKind members
    """
    if not is_transaction_subject(tool):
        return frozenset()

    has_destination = bool(check_out_destinations(toolboxes))
    kinds = set()
    for kind in USER_TRANSACTION_KINDS:
        if not STATE_RULES[kind](tool):
            continue
        if kind == TransactionKind.CHECK_OUT and not has_destination:
            continue
        kinds.add(kind)
    return frozenset(kinds)


def ordered_kinds(kinds):
    """Sorts kinds in the order the transaction dialog shows them."""
    return [kind for kind in USER_TRANSACTION_KINDS if kind in kinds]


# ============================================================================
# EVALUATION
# ============================================================================

def _reject(reason, message, field=None):
    raise TransitionRejected(reason, message, field=field)


def _recovery_note():
    return getattr(settings, 'TOOLTRACK_ORPHAN_RECOVERY_NOTE', DEFAULT_ORPHAN_RECOVERY_NOTE)


def _location_of(tool):
    return WAREHOUSE if tool.in_warehouse else tool.location


def _coerce_kind(kind):
    try:
        return TransactionKind(kind)
    except ValueError:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            f"Unknown transaction kind: {kind}.",
            field='kind'
        )


def _is_orphaned_source(tool, toolbox_index):
    if tool.in_warehouse:
        return False
    box = toolbox_index.get(tool.location)
    # A toolbox we know nothing about has no known owner
    return box is None or box.is_orphaned


def _owner_of(box):
    if box is None or box.is_orphaned:
        return None
    return box.employee_id


def _clean_comments(payload):
    return (payload.comments or '').strip()


def _expected_return(payload, today):
    if payload.expected_return_date in (None, ''):
        return None
    try:
        return validate_expected_return_date(payload.expected_return_date, today=today)
    except ValidationError as e:
        _reject(RejectionReason.INVALID_DATE, e.messages[0], field='expected_return_date')


def _build_check_out(tool, payload, toolbox_index, today):
    employee_id = payload.destination_employee_id
    if not employee_id:
        _reject(
            RejectionReason.MISSING_REQUIRED_FIELD,
            "Select an employee to check the tool out to.",
            field='destination_employee_id'
        )

    destination = next(
        (box for box in check_out_destinations(toolbox_index.values())
         if box.employee_id == employee_id),
        None
    )
    if destination is None:
        _reject(
            RejectionReason.DESTINATION_INELIGIBLE,
            "Selected employee does not have an active toolbox assigned.",
            field='destination_employee_id'
        )

    return Transition(
        kind=TransactionKind.CHECK_OUT,
        tool_id=tool.tool_id,
        source=WAREHOUSE,
        destination=destination.toolbox_id,
        previous_status=tool.status,
        status=ToolStatus.IN_USE,
        to_employee_id=employee_id,
        comments=_clean_comments(payload),
        image_urls=tuple(payload.image_urls or ()),
        expected_return_date=_expected_return(payload, today),
    )


def _build_check_in(tool, payload, toolbox_index, today):
    source_box = toolbox_index.get(tool.location)
    comments = _clean_comments(payload)
    notices = ()

    orphaned = _is_orphaned_source(tool, toolbox_index)
    if orphaned:
        note = _recovery_note()
        comments = f"{comments} - {note}" if comments else note
        notices = (Notice.ORPHANED_CONTAINER_RECOVERED,)

    return Transition(
        kind=TransactionKind.CHECK_IN,
        tool_id=tool.tool_id,
        source=tool.location,
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.AVAILABLE,
        from_employee_id=None if orphaned else _owner_of(source_box),
        comments=comments,
        image_urls=tuple(payload.image_urls or ()),
        notices=notices,
    )


def _build_transfer(tool, payload, toolbox_index, today):
    destination = payload.destination
    if destination is None or destination == '':
        _reject(
            RejectionReason.MISSING_REQUIRED_FIELD,
            "Select a destination toolbox.",
            field='destination'
        )
    if is_warehouse(destination):
        _reject(
            RejectionReason.DESTINATION_INELIGIBLE,
            "Transfers cannot involve the warehouse. Use Check In/Check Out for warehouse operations.",
            field='destination'
        )
    if destination == tool.location:
        _reject(
            RejectionReason.SAME_SOURCE_AND_DESTINATION,
            "Cannot transfer to the same location.",
            field='destination'
        )

    destination_box = toolbox_index.get(destination)
    if destination_box is None or not destination_box.is_active:
        _reject(
            RejectionReason.DESTINATION_INELIGIBLE,
            "Destination toolbox does not exist or is not active.",
            field='destination'
        )

    return Transition(
        kind=TransactionKind.TRANSFER,
        tool_id=tool.tool_id,
        source=tool.location,
        destination=destination,
        previous_status=tool.status,
        status=tool.status,
        from_employee_id=_owner_of(toolbox_index.get(tool.location)),
        to_employee_id=_owner_of(destination_box),
        comments=_clean_comments(payload),
        image_urls=tuple(payload.image_urls or ()),
    )


def _build_maintenance(tool, payload, toolbox_index, today):
    return Transition(
        kind=TransactionKind.MAINTENANCE,
        tool_id=tool.tool_id,
        source=_location_of(tool),
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.MAINTENANCE,
        comments=_clean_comments(payload),
        image_urls=tuple(payload.image_urls or ()),
        expected_return_date=_expected_return(payload, today),
    )


def _build_retire(tool, payload, toolbox_index, today):
    comments = _clean_comments(payload)
    if not comments:
        _reject(
            RejectionReason.MISSING_REQUIRED_FIELD,
            "A justification is required to retire a tool.",
            field='comments'
        )

    return Transition(
        kind=TransactionKind.RETIRE,
        tool_id=tool.tool_id,
        source=WAREHOUSE,
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.RETIRED,
        is_active=False,
        comments=comments,
        image_urls=tuple(payload.image_urls or ()),
    )


BUILDERS = {
    TransactionKind.CHECK_OUT: _build_check_out,
    TransactionKind.CHECK_IN: _build_check_in,
    TransactionKind.TRANSFER: _build_transfer,
    TransactionKind.MAINTENANCE: _build_maintenance,
    TransactionKind.RETIRE: _build_retire,
}


def evaluate(tool, kind, payload=None, toolboxes=(), today=None):
    """
    Validates a transaction against the tool state and computes its result.

    Args:
        tool: ToolSnapshot
        kind: TransactionKind (or its value)
        payload: TransactionPayload with the dialog fields
        toolboxes: Iterable of ToolboxSnapshot (owners, orphan detection)
        today: Reference date for date fields (defaults to the local date)

    Returns:
        Transition: The accepted transition

    Raises:
        TransitionRejected: When the transaction is not allowed
    """
    payload = payload or TransactionPayload()
    toolbox_index = {box.toolbox_id: box for box in toolboxes}
    requested_kind = _coerce_kind(kind)

    if requested_kind not in USER_TRANSACTION_KINDS:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            f"{requested_kind.label} is not a transaction that can be requested.",
            field='kind'
        )

    if not is_transaction_subject(tool):
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Retired or inactive tools cannot take part in transactions.",
            field='kind'
        )

    if not STATE_RULES[requested_kind](tool):
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            f"{requested_kind.label} is not allowed for a tool that is "
            f"{ToolStatus(tool.status).label} in the {'warehouse' if tool.in_warehouse else 'toolbox'}.",
            field='kind'
        )

    kind = requested_kind
    # Warehouse bound transfers are only possible as a recovery check in
    if (kind == TransactionKind.TRANSFER
            and is_warehouse(payload.destination)
            and _is_orphaned_source(tool, toolbox_index)):
        kind = TransactionKind.CHECK_IN

    if payload.image_urls and not can_attach_images(tool):
        _reject(
            RejectionReason.IMAGES_NOT_PERMITTED,
            "Images cannot be attached to transactions of lost tools.",
            field='image_urls'
        )

    transition = BUILDERS[kind](tool, payload, toolbox_index, today)
    return replace(transition, requested_kind=requested_kind)


# ============================================================================
# STATUS CHANGES AND PSEUDO-TRANSACTIONS
# ============================================================================

def evaluate_return_from_maintenance(tool, comments='', image_urls=()):
    """Maintenance in the warehouse -> Available in the warehouse."""
    if not is_transaction_subject(tool) or tool.status != ToolStatus.MAINTENANCE:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Only tools in maintenance can be returned from maintenance.",
            field='status'
        )

    if image_urls and not can_attach_images(tool):
        _reject(
            RejectionReason.IMAGES_NOT_PERMITTED,
            "Images cannot be attached to transactions of lost tools.",
            field='image_urls'
        )

    return Transition(
        kind=TransactionKind.RETURN_FROM_MAINTENANCE,
        requested_kind=TransactionKind.RETURN_FROM_MAINTENANCE,
        tool_id=tool.tool_id,
        source=WAREHOUSE,
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.AVAILABLE,
        comments=(comments or '').strip(),
        image_urls=tuple(image_urls or ()),
    )


def list_status_changes(tool):
    """
    Statuses the tool can be marked with by hand.

    Lost tools cannot change status; they can only be checked in when found.
    """
    if not is_transaction_subject(tool) or tool.status == ToolStatus.LOST:
        return []

    allowed = []
    for status in MANUAL_STATUSES:
        if status == ToolStatus.BROKEN and tool.status != ToolStatus.BROKEN:
            allowed.append(status)
        elif status == ToolStatus.LOST and tool.status == ToolStatus.IN_USE and not tool.in_warehouse:
            allowed.append(status)
    return allowed


def evaluate_status_change(tool, new_status, comments=''):
    """
    Marks a tool as Broken or Lost.

    Broken tools are moved to the warehouse for repair; lost tools stay
    booked to their toolbox so the owner remains accountable.
    """
    if new_status not in MANUAL_STATUSES:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Only Broken or Lost can be set by hand.",
            field='status'
        )

    if tool.status == ToolStatus.LOST:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Lost tools cannot be changed to other statuses. Check the tool in when it is found.",
            field='status'
        )

    if new_status not in list_status_changes(tool):
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            f"Tool cannot be marked as {ToolStatus(new_status).label} in its current state.",
            field='status'
        )

    source = _location_of(tool)
    destination = WAREHOUSE if new_status == ToolStatus.BROKEN else source

    return Transition(
        kind=TransactionKind.STATUS_CHANGE,
        requested_kind=TransactionKind.STATUS_CHANGE,
        tool_id=tool.tool_id,
        source=source,
        destination=destination,
        previous_status=tool.status,
        status=ToolStatus(new_status),
        comments=(comments or '').strip(),
    )


def evaluate_deactivation(tool, comments=''):
    """Deactivating retires the tool and returns it to the warehouse."""
    if not tool.is_active:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Tool is already inactive.",
            field='is_active'
        )

    return Transition(
        kind=TransactionKind.DEACTIVATE,
        requested_kind=TransactionKind.DEACTIVATE,
        tool_id=tool.tool_id,
        source=_location_of(tool),
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.RETIRED,
        is_active=False,
        comments=(comments or '').strip(),
    )


def evaluate_reactivation(tool, comments=''):
    if tool.is_active:
        _reject(
            RejectionReason.INVALID_KIND_FOR_STATE,
            "Tool is already active.",
            field='is_active'
        )

    return Transition(
        kind=TransactionKind.REACTIVATE,
        requested_kind=TransactionKind.REACTIVATE,
        tool_id=tool.tool_id,
        source=_location_of(tool),
        destination=WAREHOUSE,
        previous_status=tool.status,
        status=ToolStatus.AVAILABLE,
        is_active=True,
        comments=(comments or '').strip(),
    )
