"""Tests for the transfer candidate validator."""

from types import SimpleNamespace

import pytest

from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

from assets.services.validation import (
    ASSET_MISSING,
    ASSET_PENDING,
    ASSET_REQUIRED,
    ASSET_RETIRED,
    CUSTODIAN_MISSING,
    CUSTODIAN_UNCHANGED,
    DESTINATION_REQUIRED,
    NO_EFFECTIVE_CHANGE,
    SECTOR_MISSING,
    SECTOR_UNCHANGED,
    TransferCandidate,
    check_candidate,
    effective_changes,
    validate_candidate,
)


class FakeRegistry:
    """In-memory stand-in for AssetRegistry."""

    def __init__(self, assets=(), sectors=(), users=(), pending=()):
        self.assets = {a.pk: a for a in assets}
        self.sectors = set(sectors)
        self.users = set(users)
        self.pending = set(pending)

    def get_asset(self, asset_id):
        return self.assets.get(asset_id)

    def find_pending(self, asset_id):
        return ["pending"] if asset_id in self.pending else []

    def sector_exists(self, sector_id):
        return sector_id in self.sectors

    def user_exists(self, user_id):
        return user_id in self.users


def make_asset(pk=1, sector_id=10, custodian_id=100, status="active"):
    return SimpleNamespace(
        pk=pk, sector_id=sector_id, custodian_id=custodian_id, status=status
    )


@pytest.fixture
def registry():
    return FakeRegistry(
        assets=[make_asset()], sectors={10, 20}, users={100, 200}
    )


def candidate(**kwargs):
    fields = {
        "asset_id": 1,
        "origin_sector_id": 10,
        "origin_custodian_id": 100,
        "reason": "Needs relocation",
    }
    fields.update(kwargs)
    return TransferCandidate(**fields)


class TestValidateCandidate:
    def test_sector_move_passes(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=20), registry
        )
        assert errors == {}

    def test_custodian_move_passes(self, registry):
        errors = validate_candidate(
            candidate(destination_custodian_id=200), registry
        )
        assert errors == {}

    def test_same_sector_is_no_effective_change(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=10), registry
        )
        assert errors[NON_FIELD_ERRORS] == NO_EFFECTIVE_CHANGE
        assert errors["destination_sector_id"] == SECTOR_UNCHANGED

    def test_same_sector_and_custodian_is_no_effective_change(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=10, destination_custodian_id=100),
            registry,
        )
        assert errors[NON_FIELD_ERRORS] == NO_EFFECTIVE_CHANGE
        assert errors["destination_custodian_id"] == CUSTODIAN_UNCHANGED

    def test_missing_destination(self, registry):
        errors = validate_candidate(candidate(), registry)
        assert errors["destination"] == DESTINATION_REQUIRED
        assert errors[NON_FIELD_ERRORS] == NO_EFFECTIVE_CHANGE

    def test_short_reason(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=20, reason="  too short  "),
            registry,
        )
        assert set(errors) == {"reason"}
        assert "10 characters" in errors["reason"]

    def test_reason_length_counts_after_trimming(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=20, reason="   1234567890   "),
            registry,
        )
        assert errors == {}

    def test_reason_min_length_from_settings(self, registry, settings):
        settings.TRANSFER_REASON_MIN_LENGTH = 30
        errors = validate_candidate(
            candidate(destination_sector_id=20), registry
        )
        assert "30 characters" in errors["reason"]

    def test_asset_required(self, registry):
        errors = validate_candidate(
            candidate(asset_id=None, destination_sector_id=20), registry
        )
        assert errors["asset_id"] == ASSET_REQUIRED

    def test_unknown_asset(self, registry):
        errors = validate_candidate(
            candidate(asset_id=99, destination_sector_id=20), registry
        )
        assert errors["asset_id"] == ASSET_MISSING

    def test_retired_asset(self):
        registry = FakeRegistry(
            assets=[make_asset(status="retired")], sectors={10, 20}
        )
        errors = validate_candidate(
            candidate(destination_sector_id=20), registry
        )
        assert errors["asset_id"] == ASSET_RETIRED

    def test_pending_transfer_blocks_new_one(self):
        registry = FakeRegistry(
            assets=[make_asset()], sectors={10, 20}, pending={1}
        )
        errors = validate_candidate(
            candidate(destination_sector_id=20), registry
        )
        assert errors["asset_id"] == ASSET_PENDING

    def test_unknown_destination_ids(self, registry):
        errors = validate_candidate(
            candidate(destination_sector_id=77, destination_custodian_id=88),
            registry,
        )
        assert errors["destination_sector_id"] == SECTOR_MISSING
        assert errors["destination_custodian_id"] == CUSTODIAN_MISSING

    def test_all_failures_are_collected(self):
        registry = FakeRegistry(
            assets=[make_asset(status="retired")], sectors={10}
        )
        errors = validate_candidate(
            candidate(destination_sector_id=10, reason="short"), registry
        )
        assert set(errors) == {
            "asset_id",
            "destination_sector_id",
            NON_FIELD_ERRORS,
            "reason",
        }

    def test_stale_snapshot_cannot_hide_no_op(self):
        # The asset already moved to sector 20 after the snapshot
        registry = FakeRegistry(
            assets=[make_asset(sector_id=20)], sectors={10, 20}
        )
        errors = validate_candidate(
            candidate(destination_sector_id=20), registry
        )
        assert errors[NON_FIELD_ERRORS] == NO_EFFECTIVE_CHANGE


class TestEffectiveChanges:
    def test_reports_changed_fields(self):
        changes = effective_changes(
            candidate(destination_sector_id=20, destination_custodian_id=200)
        )
        assert changes == ["sector", "custodian"]

    def test_nothing_changes(self):
        assert effective_changes(candidate(destination_sector_id=10)) == []


class TestCheckCandidate:
    def test_raises_with_error_map(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            check_candidate(candidate(destination_sector_id=10), registry)
        assert NON_FIELD_ERRORS in exc_info.value.message_dict

    def test_valid_candidate_passes(self, registry):
        check_candidate(candidate(destination_sector_id=20), registry)


class TestSnapshot:
    def test_snapshot_from_asset(self):
        draft = TransferCandidate(destination_sector_id=20, reason="x")
        snap = draft.snapshot_from(make_asset(pk=5, sector_id=3))
        assert snap.asset_id == 5
        assert snap.origin_sector_id == 3
        assert snap.origin_custodian_id == 100
        assert snap.destination_sector_id == 20
