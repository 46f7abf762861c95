"""Tests for transfer status derivation and transitions."""

import itertools
from types import SimpleNamespace

import pytest

from assets.exceptions import ConflictError
from assets.services.state import (
    TransferStatus,
    can_transition,
    derive_status,
    status_q,
    validate_transition,
)


def make_transfer(rejection_reason="", effectuated=False, approver_id=None):
    return SimpleNamespace(
        rejection_reason=rejection_reason,
        effectuated=effectuated,
        approver_id=approver_id,
    )


class TestDeriveStatus:
    def test_new_transfer_is_pending(self):
        assert derive_status(make_transfer()) == TransferStatus.PENDING

    def test_approver_set_is_approved(self):
        transfer = make_transfer(approver_id=7)
        assert derive_status(transfer) == TransferStatus.APPROVED

    def test_effectuated_is_completed(self):
        transfer = make_transfer(approver_id=7, effectuated=True)
        assert derive_status(transfer) == TransferStatus.COMPLETED

    def test_rejection_reason_is_rejected(self):
        transfer = make_transfer(rejection_reason="No budget", approver_id=7)
        assert derive_status(transfer) == TransferStatus.REJECTED

    def test_rejected_outranks_completed(self):
        transfer = make_transfer(
            rejection_reason="No budget", effectuated=True, approver_id=7
        )
        assert derive_status(transfer) == TransferStatus.REJECTED

    def test_every_combination_has_exactly_one_status(self):
        combos = itertools.product(["", "reason"], [False, True], [None, 1])
        for reason, effectuated, approver_id in combos:
            status = derive_status(
                make_transfer(reason, effectuated, approver_id)
            )
            assert status in TransferStatus.values


class TestTransitions:
    def test_pending_can_be_approved_or_rejected(self):
        transfer = make_transfer()
        assert can_transition(transfer, "approve")
        assert can_transition(transfer, "reject")
        assert not can_transition(transfer, "effectuate")

    def test_approved_can_only_be_effectuated(self):
        transfer = make_transfer(approver_id=3)
        assert not can_transition(transfer, "approve")
        assert not can_transition(transfer, "reject")
        assert can_transition(transfer, "effectuate")

    def test_terminal_states_allow_nothing(self):
        for transfer in (
            make_transfer(rejection_reason="no", approver_id=1),
            make_transfer(effectuated=True, approver_id=1),
        ):
            for action in ("approve", "reject", "effectuate"):
                assert not can_transition(transfer, action)

    def test_unknown_action_is_not_a_transition(self):
        assert not can_transition(make_transfer(), "archive")

    def test_validate_returns_target_status(self):
        assert (
            validate_transition(make_transfer(), "approve")
            == TransferStatus.APPROVED
        )
        assert (
            validate_transition(make_transfer(approver_id=1), "effectuate")
            == TransferStatus.COMPLETED
        )

    def test_validate_illegal_transition_raises_conflict(self):
        transfer = make_transfer(rejection_reason="No", approver_id=1)
        with pytest.raises(ConflictError) as exc_info:
            validate_transition(transfer, "effectuate")
        assert exc_info.value.current_status == TransferStatus.REJECTED
        assert "rejected" in exc_info.value.message

    def test_validate_unknown_action_raises_value_error(self):
        with pytest.raises(ValueError):
            validate_transition(make_transfer(), "archive")


class TestStatusQuery:
    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            status_q("archived")

    @pytest.mark.django_db
    def test_queryset_matches_derived_status(
        self, pending_transfer, admin_user, other_sector
    ):
        from assets.factories import AssetFactory, TransferRequestFactory
        from assets.models import TransferRequest

        approved = TransferRequestFactory(
            asset=AssetFactory(), approver=admin_user
        )
        rejected = TransferRequestFactory(
            asset=AssetFactory(),
            approver=admin_user,
            rejection_reason="Not needed",
        )
        completed = TransferRequestFactory(
            asset=AssetFactory(), approver=admin_user, effectuated=True
        )

        expected = {
            TransferStatus.PENDING: pending_transfer,
            TransferStatus.APPROVED: approved,
            TransferStatus.REJECTED: rejected,
            TransferStatus.COMPLETED: completed,
        }
        for status, transfer in expected.items():
            matched = list(TransferRequest.objects.with_status(status))
            assert matched == [transfer]
            assert transfer.status == status
