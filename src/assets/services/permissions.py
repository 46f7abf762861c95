"""Role-scoped permission rules for the transfer workflow.

Every rule is a pure function of an explicit ``Caller`` plus the asset
or transfer being acted on. Views build the caller once per request
with ``caller_for``; nothing here reads the session or the database.
The client-side result only enables or hides actions; the gateway
re-runs the same rules before committing anything.
"""

from dataclasses import dataclass

from django.core.exceptions import PermissionDenied

from .state import TransferStatus, derive_status

ADMINISTRATOR = "administrator"
MANAGER = "manager"
USER = "user"

APPROVER_ROLES = (ADMINISTRATOR, MANAGER)


@dataclass(frozen=True)
class Caller:
    """Identity and role of whoever is acting."""

    id: int
    role: str = USER
    sector_id: int | None = None

    @property
    def is_approver(self) -> bool:
        return self.role in APPROVER_ROLES


def get_user_role(user) -> str:
    """Determine the user's role.

    Returns one of: 'administrator', 'manager' or 'user'. Superusers
    are always administrators.
    """
    if user.is_superuser:
        return ADMINISTRATOR
    if user.role in (ADMINISTRATOR, MANAGER):
        return user.role
    return USER


def caller_for(user) -> Caller:
    """Build the explicit caller context for an authenticated user."""
    return Caller(
        id=user.pk,
        role=get_user_role(user),
        sector_id=user.sector_id,
    )


def can_request(caller: Caller, asset) -> bool:
    """Check if the caller may request a transfer of ``asset``.

    Retired assets can never be transferred, whatever the role.
    """
    if asset.status == "retired":
        return False
    if caller.is_approver:
        return True
    return asset.custodian_id is not None and asset.custodian_id == caller.id


def can_approve(caller: Caller, transfer, allow_self_approval=False) -> bool:
    """Check if the caller may approve (or reject) a pending transfer."""
    if derive_status(transfer) != TransferStatus.PENDING:
        return False
    if not caller.is_approver:
        return False
    if not allow_self_approval and transfer.requester_id == caller.id:
        return False
    if caller.role == MANAGER:
        # Managers only resolve requests touching their own sector
        return caller.sector_id is not None and caller.sector_id in (
            transfer.origin_sector_id,
            transfer.destination_sector_id,
        )
    return True


def can_reject(caller: Caller, transfer, allow_self_approval=False) -> bool:
    """Rejection is gated exactly like approval."""
    return can_approve(caller, transfer, allow_self_approval)


def can_effectuate(caller: Caller, transfer) -> bool:
    """Check if the caller may apply an approved transfer to the asset."""
    if derive_status(transfer) != TransferStatus.APPROVED:
        return False
    return caller.is_approver


def permitted_actions(caller: Caller, transfer, allow_self_approval=False):
    """Return which workflow actions the caller should be offered."""
    return {
        "approve": can_approve(caller, transfer, allow_self_approval),
        "reject": can_reject(caller, transfer, allow_self_approval),
        "effectuate": can_effectuate(caller, transfer),
    }


def require(allowed: bool, message: str) -> None:
    """Raise PermissionDenied with ``message`` unless ``allowed``."""
    if not allowed:
        raise PermissionDenied(message)
