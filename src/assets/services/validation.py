"""Structural validation of a candidate transfer request.

All rules run as one batch and every failure is collected into a
field -> message map; nothing short-circuits. A non-empty map means the
request must not be submitted at all.
"""

from dataclasses import dataclass, replace

from django.conf import settings
from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

DEFAULT_REASON_MIN_LENGTH = 10

ASSET_REQUIRED = "Select an asset to transfer."
ASSET_MISSING = "The selected asset does not exist."
ASSET_RETIRED = "This asset has been retired and cannot be transferred."
ASSET_PENDING = "This asset already has a pending transfer."
DESTINATION_REQUIRED = "Choose a destination sector, custodian or both."
SECTOR_MISSING = "The selected sector does not exist."
SECTOR_UNCHANGED = (
    "The destination sector must differ from the current sector."
)
CUSTODIAN_MISSING = "The selected custodian does not exist."
CUSTODIAN_UNCHANGED = (
    "The destination custodian must differ from the current custodian."
)
NO_EFFECTIVE_CHANGE = (
    "No effective change: the destination matches the asset's current "
    "sector and custodian."
)


@dataclass(frozen=True)
class TransferCandidate:
    """Everything needed to create a transfer request."""

    asset_id: int | None = None
    origin_sector_id: int | None = None
    origin_custodian_id: int | None = None
    destination_sector_id: int | None = None
    destination_custodian_id: int | None = None
    reason: str = ""

    def snapshot_from(self, asset):
        """Return a copy with the origin captured from ``asset`` now."""
        return replace(
            self,
            asset_id=asset.pk,
            origin_sector_id=asset.sector_id,
            origin_custodian_id=asset.custodian_id,
        )


def clean_text(value) -> str:
    """Free-text input as a stripped string; ``None`` becomes empty."""
    if value is None:
        return ""
    return str(value).strip()


def reason_min_length() -> int:
    return getattr(
        settings, "TRANSFER_REASON_MIN_LENGTH", DEFAULT_REASON_MIN_LENGTH
    )


def effective_changes(candidate: TransferCandidate, asset=None) -> list[str]:
    """Return the fields the transfer would actually change.

    A destination counts only if it differs from the origin snapshot and,
    when the asset is known, from the asset's current value as well, so a
    stale snapshot cannot make a no-op look like a move.
    """
    changes = []
    sector = candidate.destination_sector_id
    if sector is not None and sector != candidate.origin_sector_id:
        if asset is None or sector != asset.sector_id:
            changes.append("sector")
    custodian = candidate.destination_custodian_id
    if custodian is not None and custodian != candidate.origin_custodian_id:
        if asset is None or custodian != asset.custodian_id:
            changes.append("custodian")
    return changes


def validate_candidate(candidate: TransferCandidate, registry) -> dict:
    """Run every rule against ``candidate`` and return the error map.

    ``registry`` answers identifier lookups: ``get_asset``,
    ``find_pending``, ``sector_exists`` and ``user_exists``.
    """
    errors = {}

    def add(field, message):
        errors.setdefault(field, message)

    asset = None
    if candidate.asset_id is None:
        add("asset_id", ASSET_REQUIRED)
    else:
        asset = registry.get_asset(candidate.asset_id)
        if asset is None:
            add("asset_id", ASSET_MISSING)
        elif asset.status == "retired":
            add("asset_id", ASSET_RETIRED)
        if registry.find_pending(candidate.asset_id):
            add("asset_id", ASSET_PENDING)

    sector = candidate.destination_sector_id
    custodian = candidate.destination_custodian_id
    if sector is None and custodian is None:
        add("destination", DESTINATION_REQUIRED)

    if sector is not None:
        if not registry.sector_exists(sector):
            add("destination_sector_id", SECTOR_MISSING)
        elif sector == candidate.origin_sector_id:
            add("destination_sector_id", SECTOR_UNCHANGED)

    if custodian is not None:
        if not registry.user_exists(custodian):
            add("destination_custodian_id", CUSTODIAN_MISSING)
        elif custodian == candidate.origin_custodian_id:
            add("destination_custodian_id", CUSTODIAN_UNCHANGED)

    if not effective_changes(candidate, asset):
        add(NON_FIELD_ERRORS, NO_EFFECTIVE_CHANGE)

    min_length = reason_min_length()
    if len(clean_text(candidate.reason)) < min_length:
        add(
            "reason",
            f"The reason must be at least {min_length} characters long.",
        )

    return errors


def check_candidate(candidate: TransferCandidate, registry) -> None:
    """Raise ValidationError carrying the full error map, if any."""
    errors = validate_candidate(candidate, registry)
    if errors:
        raise ValidationError(errors)
