"""Transfer command gateway.

``TransferGateway`` is the boundary every transfer mutation crosses.
``DatabaseGateway`` is the authoritative implementation: it re-checks
permissions and state under row locks, relies on the partial unique
constraint for the one-pending-transfer-per-asset rule, and writes the
audit trail as a side channel that never blocks the primary action.
"""

import functools
import logging

from django.conf import settings
from django.core.exceptions import NON_FIELD_ERRORS, ValidationError
from django.db import IntegrityError, InterfaceError, OperationalError
from django.db import transaction as db_transaction
from django.utils import timezone

from ..exceptions import (
    AuditLogError,
    ConflictError,
    NotFoundError,
    TransportError,
)
from ..models import Asset, TransferRequest
from .permissions import (
    Caller,
    can_approve,
    can_effectuate,
    can_reject,
    can_request,
    require,
)
from .registry import AssetRegistry
from .search import build_transfer_filter_queryset, transfer_kpis
from .state import TransferStatus, validate_transition
from .validation import (
    ASSET_PENDING,
    TransferCandidate,
    clean_text,
    validate_candidate,
)

logger = logging.getLogger(__name__)

STALE_ORIGIN = (
    "The asset's sector or custodian changed after it was selected. "
    "Select it again to refresh the origin."
)
REJECTION_REASON_REQUIRED = "A rejection reason is required."


class TransferGateway:
    """Contract for creating, resolving and listing transfer requests."""

    def create_transfer(
        self,
        caller: Caller,
        asset_id,
        origin_sector_id,
        origin_custodian_id,
        destination_sector_id=None,
        destination_custodian_id=None,
        reason="",
    ) -> TransferRequest:
        raise NotImplementedError

    def approve_transfer(
        self,
        caller: Caller,
        transfer_id,
        approval_notes="",
        auto_effectuate=False,
    ) -> TransferRequest:
        raise NotImplementedError

    def reject_transfer(
        self, caller: Caller, transfer_id, rejection_reason
    ) -> TransferRequest:
        raise NotImplementedError

    def effectuate_transfer(
        self, caller: Caller, transfer_id
    ) -> TransferRequest:
        raise NotImplementedError

    def list_transfers(self, filters=None) -> list:
        raise NotImplementedError

    def get_transfer(self, transfer_id) -> TransferRequest:
        raise NotImplementedError

    def transfer_kpis(self) -> dict:
        raise NotImplementedError

    def write_audit_log(self, action, entity, entity_id, actor_id, payload):
        raise NotImplementedError


def translate_store_errors(method):
    """Surface an unreachable backing store as a retryable TransportError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            logger.error(
                "Transfer store unavailable in %s: %s", method.__name__, exc
            )
            raise TransportError(
                "The transfer service is unavailable. Please try again."
            ) from exc

    return wrapper


class DatabaseGateway(TransferGateway):
    """Gateway backed by the Django ORM."""

    def __init__(self, registry=None, allow_self_approval=None):
        self.registry = registry or AssetRegistry()
        if allow_self_approval is None:
            allow_self_approval = getattr(
                settings, "TRANSFER_ALLOW_SELF_APPROVAL", False
            )
        self.allow_self_approval = allow_self_approval
        self.audit_failures = []

    # --- Queries ---

    @translate_store_errors
    def get_transfer(self, transfer_id):
        try:
            return build_transfer_filter_queryset({}).get(pk=transfer_id)
        except (TransferRequest.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Transfer #{transfer_id} does not exist.")

    @translate_store_errors
    def list_transfers(self, filters=None):
        return list(build_transfer_filter_queryset(filters or {}))

    @translate_store_errors
    def transfer_kpis(self):
        return transfer_kpis()

    # --- Commands ---

    @translate_store_errors
    def create_transfer(
        self,
        caller,
        asset_id,
        origin_sector_id,
        origin_custodian_id,
        destination_sector_id=None,
        destination_custodian_id=None,
        reason="",
    ):
        candidate = TransferCandidate(
            asset_id=asset_id,
            origin_sector_id=origin_sector_id,
            origin_custodian_id=origin_custodian_id,
            destination_sector_id=destination_sector_id,
            destination_custodian_id=destination_custodian_id,
            reason=clean_text(reason),
        )

        with db_transaction.atomic():
            asset = None
            if asset_id is not None:
                asset = (
                    Asset.objects.select_for_update()
                    .filter(pk=asset_id)
                    .first()
                )
            # Retired assets are reported by the validator instead
            if asset is not None and not asset.is_retired:
                require(
                    can_request(caller, asset),
                    "You may not request a transfer of this asset.",
                )

            errors = validate_candidate(candidate, self.registry)
            if asset is not None and (
                asset.sector_id != origin_sector_id
                or asset.custodian_id != origin_custodian_id
            ):
                errors.setdefault("asset_id", STALE_ORIGIN)
            if errors:
                logger.warning(
                    "Transfer request for asset %s rejected: %s",
                    asset_id,
                    sorted(errors),
                )
                raise ValidationError(errors)

            try:
                with db_transaction.atomic():
                    transfer = TransferRequest.objects.create(
                        asset=asset,
                        origin_sector_id=origin_sector_id,
                        origin_custodian_id=origin_custodian_id,
                        destination_sector_id=destination_sector_id,
                        destination_custodian_id=destination_custodian_id,
                        reason=candidate.reason,
                        requester_id=caller.id,
                    )
            except IntegrityError as exc:
                # Another session created a pending request first
                logger.warning(
                    "Transfer request for asset %s refused by the store: %s",
                    asset_id,
                    exc,
                )
                if self.registry.find_pending(asset_id):
                    raise ValidationError({"asset_id": ASSET_PENDING})
                raise ValidationError(
                    {NON_FIELD_ERRORS: "The transfer request was refused."}
                )

        logger.info(
            "Transfer #%s requested for asset %s by user %s",
            transfer.pk,
            asset_id,
            caller.id,
        )
        self._audit(
            "create_transfer",
            transfer,
            caller,
            {
                "asset_id": asset_id,
                "destination_sector_id": destination_sector_id,
                "destination_custodian_id": destination_custodian_id,
                "reason": candidate.reason,
            },
        )
        return transfer

    @translate_store_errors
    def approve_transfer(
        self, caller, transfer_id, approval_notes="", auto_effectuate=False
    ):
        with db_transaction.atomic():
            transfer = self._lock(transfer_id)
            validate_transition(transfer, "approve")
            require(
                can_approve(caller, transfer, self.allow_self_approval),
                "You may not approve this transfer.",
            )
            now = timezone.now()
            transfer.approver_id = caller.id
            transfer.approval_notes = clean_text(approval_notes)
            transfer.approved_at = now
            transfer.save(
                update_fields=[
                    "approver",
                    "approval_notes",
                    "approved_at",
                    "updated_at",
                ]
            )
            if auto_effectuate:
                validate_transition(transfer, "effectuate")
                require(
                    can_effectuate(caller, transfer),
                    "You may not effectuate this transfer.",
                )
                try:
                    self._apply(transfer, now)
                except ConflictError as exc:
                    # The approval rolls back with the failed move
                    exc.current_status = TransferStatus.PENDING
                    raise

        logger.info(
            "Transfer #%s approved by user %s%s",
            transfer.pk,
            caller.id,
            " and effectuated" if auto_effectuate else "",
        )
        self._audit(
            "approve_transfer",
            transfer,
            caller,
            {
                "approval_notes": transfer.approval_notes,
                "auto_effectuate": bool(auto_effectuate),
            },
        )
        if auto_effectuate:
            self._audit_effectuation(transfer, caller)
        return transfer

    @translate_store_errors
    def reject_transfer(self, caller, transfer_id, rejection_reason):
        rejection_reason = clean_text(rejection_reason)
        if not rejection_reason:
            raise ValidationError(
                {"rejection_reason": REJECTION_REASON_REQUIRED}
            )

        with db_transaction.atomic():
            transfer = self._lock(transfer_id)
            validate_transition(transfer, "reject")
            require(
                can_reject(caller, transfer, self.allow_self_approval),
                "You may not reject this transfer.",
            )
            transfer.approver_id = caller.id
            transfer.rejection_reason = rejection_reason
            transfer.approved_at = timezone.now()
            transfer.save(
                update_fields=[
                    "approver",
                    "rejection_reason",
                    "approved_at",
                    "updated_at",
                ]
            )

        logger.info(
            "Transfer #%s rejected by user %s", transfer.pk, caller.id
        )
        self._audit(
            "reject_transfer",
            transfer,
            caller,
            {"rejection_reason": rejection_reason},
        )
        return transfer

    @translate_store_errors
    def effectuate_transfer(self, caller, transfer_id):
        with db_transaction.atomic():
            transfer = self._lock(transfer_id)
            # A retry after completion lands here as a conflict and never
            # re-applies the move.
            validate_transition(transfer, "effectuate")
            require(
                can_effectuate(caller, transfer),
                "You may not effectuate this transfer.",
            )
            self._apply(transfer, timezone.now())

        logger.info(
            "Transfer #%s effectuated by user %s", transfer.pk, caller.id
        )
        self._audit_effectuation(transfer, caller)
        return transfer

    # --- Audit side channel ---

    def write_audit_log(self, action, entity, entity_id, actor_id, payload):
        """Queue an audit entry. Raises AuditLogError if that fails."""
        from ..tasks import write_audit_log

        try:
            write_audit_log.delay(
                action, entity, entity_id, actor_id, payload
            )
        except Exception as exc:
            raise AuditLogError(action, entity_id, exc) from exc

    def _audit(self, action, transfer, caller, payload, entity="transfer"):
        if entity == "transfer":
            entity_id = transfer.pk
        else:
            entity_id = transfer.asset_id
        try:
            self.write_audit_log(action, entity, entity_id, caller.id, payload)
        except AuditLogError as exc:
            logger.exception(
                "Audit log write failed for %s #%s", action, entity_id
            )
            self.audit_failures.append(exc)

    def _audit_effectuation(self, transfer, caller):
        self._audit(
            "effectuate_transfer",
            transfer,
            caller,
            {
                "transfer_id": transfer.pk,
                "sector_id": transfer.destination_sector_id,
                "custodian_id": transfer.destination_custodian_id,
            },
            entity="asset",
        )

    # --- Internals ---

    def _lock(self, transfer_id):
        try:
            return TransferRequest.objects.select_for_update().get(
                pk=transfer_id
            )
        except (TransferRequest.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Transfer #{transfer_id} does not exist.")

    def _apply(self, transfer, now):
        """Write the destination onto the asset and mark the transfer done."""
        asset = Asset.objects.select_for_update().get(pk=transfer.asset_id)
        if asset.is_retired:
            raise ConflictError(
                "The asset was retired after approval and cannot be moved.",
                current_status=transfer.status,
            )

        update_fields = ["updated_at"]
        if transfer.destination_sector_id is not None:
            asset.sector_id = transfer.destination_sector_id
            update_fields.append("sector")
        if transfer.destination_custodian_id is not None:
            asset.custodian_id = transfer.destination_custodian_id
            update_fields.append("custodian")
        asset.save(update_fields=update_fields)

        transfer.effectuated = True
        transfer.effectuated_at = now
        transfer.save(
            update_fields=["effectuated", "effectuated_at", "updated_at"]
        )
