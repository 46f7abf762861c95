"""Three-step transfer request wizard.

The wizard is an explicit state machine. Each transition takes the
current ``WizardState`` and returns the next one; a transition that
fails validation returns the same step with ``errors`` filled in and
the entered data kept. Nothing is written until ``confirm`` makes the
single ``create_transfer`` call on the gateway.

State is plain data so the views can keep it in the session between
requests (``to_dict``/``from_dict``).
"""

import enum
import logging
from dataclasses import asdict, dataclass, field, replace

from django.utils import timezone

from ..exceptions import InvalidStepError
from .permissions import Caller, can_request
from .validation import (
    ASSET_MISSING,
    ASSET_PENDING,
    ASSET_REQUIRED,
    ASSET_RETIRED,
    TransferCandidate,
    clean_text,
    validate_candidate,
)

logger = logging.getLogger(__name__)

ASSET_NOT_ALLOWED = "You may not request a transfer of this asset."
ORIGIN_CHANGED = (
    "The asset's sector or custodian changed since it was selected. "
    "Review the destination and continue again."
)

# Seconds after which an unanswered confirmation is settled from the store
DEFAULT_SUBMIT_TIMEOUT = 60


class WizardStep(enum.IntEnum):
    ASSET_SELECTION = 1
    DESTINATION = 2
    CONFIRMATION = 3
    SUBMITTED = 4
    CANCELLED = 5


FINISHED_STEPS = frozenset({WizardStep.SUBMITTED, WizardStep.CANCELLED})


@dataclass(frozen=True)
class WizardState:
    step: WizardStep = WizardStep.ASSET_SELECTION
    draft: TransferCandidate = field(default_factory=TransferCandidate)
    errors: dict = field(default_factory=dict)
    in_flight: bool = False
    transfer_id: int | None = None
    submitted_at: float | None = None

    @property
    def is_finished(self) -> bool:
        return self.step in FINISHED_STEPS

    def to_dict(self) -> dict:
        return {
            "step": int(self.step),
            "draft": asdict(self.draft),
            "errors": dict(self.errors),
            "in_flight": self.in_flight,
            "transfer_id": self.transfer_id,
            "submitted_at": self.submitted_at,
        }

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        return cls(
            step=WizardStep(data.get("step", WizardStep.ASSET_SELECTION)),
            draft=TransferCandidate(**data.get("draft", {})),
            errors=dict(data.get("errors", {})),
            in_flight=bool(data.get("in_flight", False)),
            transfer_id=data.get("transfer_id"),
            submitted_at=data.get("submitted_at"),
        )


def _expect(state: WizardState, *steps):
    if state.step not in steps:
        raise InvalidStepError(
            f"This action is not available at the "
            f"{state.step.name.lower().replace('_', ' ')} step."
        )


def start() -> WizardState:
    return WizardState()


def candidate_assets(caller: Caller, registry) -> list:
    """Assets offered at step one."""
    return registry.candidate_assets(caller)


def _asset_errors(caller, registry, asset_id, asset) -> dict:
    if asset_id is None:
        return {"asset_id": ASSET_REQUIRED}
    if asset is None:
        return {"asset_id": ASSET_MISSING}
    if asset.is_retired:
        return {"asset_id": ASSET_RETIRED}
    if not can_request(caller, asset):
        return {"asset_id": ASSET_NOT_ALLOWED}
    if registry.find_pending(asset.pk):
        return {"asset_id": ASSET_PENDING}
    return {}


def select_asset(state, caller, registry, asset_id) -> WizardState:
    """Step one: choose the asset and snapshot its origin."""
    _expect(state, WizardStep.ASSET_SELECTION)
    asset = registry.get_asset(asset_id) if asset_id is not None else None
    errors = _asset_errors(caller, registry, asset_id, asset)
    if errors:
        return replace(state, errors=errors)

    return replace(
        state,
        step=WizardStep.DESTINATION,
        draft=state.draft.snapshot_from(asset),
        errors={},
    )


def submit_destination(
    state,
    caller,
    registry,
    destination_sector_id=None,
    destination_custodian_id=None,
    reason="",
) -> WizardState:
    """Step two: collect the destination and reason, then validate.

    The origin is re-read from the registry before validating so a
    snapshot taken before navigating back and forth is never trusted.
    """
    _expect(state, WizardStep.DESTINATION)
    draft = replace(
        state.draft,
        destination_sector_id=destination_sector_id,
        destination_custodian_id=destination_custodian_id,
        reason=clean_text(reason),
    )

    asset = registry.get_asset(draft.asset_id)
    errors = _asset_errors(caller, registry, draft.asset_id, asset)
    if asset is not None:
        draft = draft.snapshot_from(asset)
    for name, message in validate_candidate(draft, registry).items():
        errors.setdefault(name, message)

    if errors:
        return replace(state, draft=draft, errors=errors)
    return replace(
        state, step=WizardStep.CONFIRMATION, draft=draft, errors={}
    )


def back(state: WizardState) -> WizardState:
    """Go one step back, keeping everything entered so far."""
    _expect(state, WizardStep.DESTINATION, WizardStep.CONFIRMATION)
    if state.in_flight:
        raise InvalidStepError("The request is already being submitted.")
    return replace(state, step=WizardStep(state.step - 1), errors={})


def begin_submit(state: WizardState, now=None) -> WizardState:
    """Mark the confirmation as in flight; refuse a second one."""
    _expect(state, WizardStep.CONFIRMATION)
    if state.in_flight:
        raise InvalidStepError("The request is already being submitted.")
    if now is None:
        now = timezone.now().timestamp()
    return replace(state, in_flight=True, submitted_at=now)


def abort_submit(state: WizardState) -> WizardState:
    """Clear the in-flight flag after the gateway call failed."""
    return replace(state, in_flight=False, submitted_at=None)


def recover_submit(
    state, caller, registry, now=None, timeout=DEFAULT_SUBMIT_TIMEOUT
) -> WizardState:
    """Settle a confirmation whose outcome was never recorded.

    A worker killed mid-request leaves ``in_flight`` set in the session.
    Once ``timeout`` seconds have passed the store decides: a pending
    transfer by this caller for the draft's asset means the create call
    went through, otherwise the confirmation is released for a retry.
    A flag without a timestamp is always treated as expired.
    """
    if not state.in_flight:
        return state
    if now is None:
        now = timezone.now().timestamp()
    if state.submitted_at is not None and now - state.submitted_at < timeout:
        return state

    for transfer in registry.find_pending(state.draft.asset_id):
        if transfer.requester_id == caller.id:
            logger.info(
                "Transfer wizard recovered submitted transfer #%s for "
                "user %s",
                transfer.pk,
                caller.id,
            )
            return WizardState(
                step=WizardStep.SUBMITTED,
                draft=state.draft,
                transfer_id=transfer.pk,
            )
    logger.warning(
        "Transfer wizard released an unanswered confirmation for user %s",
        caller.id,
    )
    return abort_submit(state)


def confirm(state, caller, registry, gateway) -> WizardState:
    """Step three: re-validate and make the single create call.

    A validation failure found here sends the wizard back to the
    destination step with the errors. Gateway errors propagate to the
    caller unchanged and leave the state as it was.
    """
    _expect(state, WizardStep.CONFIRMATION)
    draft = state.draft

    asset = registry.get_asset(draft.asset_id)
    errors = _asset_errors(caller, registry, draft.asset_id, asset)
    if asset is not None and (
        asset.sector_id != draft.origin_sector_id
        or asset.custodian_id != draft.origin_custodian_id
    ):
        errors.setdefault("asset_id", ORIGIN_CHANGED)
    for name, message in validate_candidate(draft, registry).items():
        errors.setdefault(name, message)
    if errors:
        return replace(
            abort_submit(state), step=WizardStep.DESTINATION, errors=errors
        )

    transfer = gateway.create_transfer(
        caller,
        asset_id=draft.asset_id,
        origin_sector_id=draft.origin_sector_id,
        origin_custodian_id=draft.origin_custodian_id,
        destination_sector_id=draft.destination_sector_id,
        destination_custodian_id=draft.destination_custodian_id,
        reason=draft.reason,
    )
    logger.info(
        "Transfer wizard submitted transfer #%s for user %s",
        transfer.pk,
        caller.id,
    )
    return WizardState(
        step=WizardStep.SUBMITTED, draft=draft, transfer_id=transfer.pk
    )


def cancel(state: WizardState) -> WizardState:
    """Discard the draft. Not possible once the create call was issued."""
    if state.in_flight or state.step == WizardStep.SUBMITTED:
        raise InvalidStepError(
            "The request has already been submitted and cannot be "
            "cancelled."
        )
    return WizardState(step=WizardStep.CANCELLED)
