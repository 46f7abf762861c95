"""Transfer request state machine and transition validation.

No status column is persisted for a transfer. Its lifecycle state is
derived from ``rejection_reason``, ``effectuated`` and ``approver_id``,
and every view, filter and gate goes through ``derive_status`` (or the
equivalent ``status_q`` database predicate) so the two never disagree.
"""

from django.db import models
from django.db.models import Q

from ..exceptions import ConflictError


class TransferStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"


# Legal mutating transitions: action -> (from_status, to_status)
TRANSITIONS = {
    "approve": (TransferStatus.PENDING, TransferStatus.APPROVED),
    "reject": (TransferStatus.PENDING, TransferStatus.REJECTED),
    "effectuate": (TransferStatus.APPROVED, TransferStatus.COMPLETED),
}


def derive_status(transfer) -> TransferStatus:
    """Return the lifecycle state of ``transfer``.

    Evaluated in order, first match wins. A rejection reason outranks
    an effectuation flag so inconsistent rows still read as rejected.
    Works on anything exposing ``rejection_reason``, ``effectuated``
    and ``approver_id``.
    """
    if transfer.rejection_reason:
        return TransferStatus.REJECTED
    if transfer.effectuated:
        return TransferStatus.COMPLETED
    if transfer.approver_id is not None:
        return TransferStatus.APPROVED
    return TransferStatus.PENDING


def status_q(status: str) -> Q:
    """Database predicate matching rows whose derived state is ``status``."""
    not_rejected = Q(rejection_reason="")
    if status == TransferStatus.REJECTED:
        return ~not_rejected
    if status == TransferStatus.COMPLETED:
        return not_rejected & Q(effectuated=True)
    if status == TransferStatus.APPROVED:
        return not_rejected & Q(effectuated=False, approver__isnull=False)
    if status == TransferStatus.PENDING:
        return not_rejected & Q(effectuated=False, approver__isnull=True)
    raise ValueError(f"'{status}' is not a valid transfer status.")


def can_transition(transfer, action: str) -> bool:
    """Check if ``action`` is legal from the transfer's current state."""
    if action not in TRANSITIONS:
        return False
    from_status, _ = TRANSITIONS[action]
    return derive_status(transfer) == from_status


def validate_transition(transfer, action: str) -> TransferStatus:
    """Raise ConflictError unless ``action`` is legal for ``transfer``.

    Returns the state the transfer will be in after the action.
    """
    if action not in TRANSITIONS:
        raise ValueError(f"'{action}' is not a transfer action.")

    current = derive_status(transfer)
    from_status, to_status = TRANSITIONS[action]
    if current != from_status:
        raise ConflictError(
            f"Cannot {action} a transfer that is "
            f"{TransferStatus(current).label.lower()}; it must be "
            f"{TransferStatus(from_status).label.lower()}.",
            current_status=current,
        )
    return to_status
