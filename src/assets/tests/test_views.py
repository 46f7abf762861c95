"""Tests for the transfer JSON views."""

import json
from unittest.mock import patch

import pytest

from django.db import DataError, OperationalError
from django.urls import reverse
from django.utils import timezone

from assets.factories import TransferRequestFactory
from assets.models import TransferRequest
from assets.services.state import TransferStatus
from assets.services.validation import ASSET_PENDING, NO_EFFECTIVE_CHANGE
from assets.services.wizard import WizardStep
from assets.views import WIZARD_SESSION_KEY


def post_json(client, url, data):
    return client.post(
        url, data=json.dumps(data), content_type="application/json"
    )


def walk_to_confirmation(client, asset, destination_sector):
    client.post(reverse("assets:wizard_select_asset"), {"asset_id": asset.pk})
    return client.post(
        reverse("assets:wizard_submit_destination"),
        {
            "destination_sector_id": destination_sector.pk,
            "reason": "Needs relocation",
        },
    )


@pytest.mark.django_db
class TestAccess:
    def test_anonymous_is_redirected_to_login(self, client):
        response = client.get(reverse("assets:transfer_list"))
        assert response.status_code == 302
        assert "/admin/login/" in response.url

    def test_approve_requires_post(self, admin_client, pending_transfer):
        response = admin_client.get(
            reverse("assets:transfer_approve", args=[pending_transfer.pk])
        )
        assert response.status_code == 405


@pytest.mark.django_db
class TestTransferRequestWizard:
    def test_state_lists_candidate_assets(
        self, client_logged_in, asset, retired_asset
    ):
        response = client_logged_in.get(reverse("assets:wizard_state"))
        assert response.status_code == 200
        data = response.json()
        assert data["wizard"]["step"] == WizardStep.ASSET_SELECTION
        assert [a["id"] for a in data["assets"]] == [asset.pk]

    def test_full_flow_creates_pending_transfer(
        self, client_logged_in, asset, other_sector, user
    ):
        response = walk_to_confirmation(client_logged_in, asset, other_sector)
        assert response.status_code == 200
        assert response.json()["wizard"]["step"] == WizardStep.CONFIRMATION

        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 201
        data = response.json()
        assert data["wizard"]["step"] == WizardStep.SUBMITTED
        assert data["transfer"]["status"] == TransferStatus.PENDING
        assert data["transfer"]["permitted_actions"] == {
            "approve": False,
            "reject": False,
            "effectuate": False,
        }

        transfer = TransferRequest.objects.get()
        assert transfer.requester == user
        assert transfer.destination_sector == other_sector
        assert transfer.origin_sector == asset.sector

    def test_json_bodies_are_accepted(
        self, client_logged_in, asset, other_sector
    ):
        response = post_json(
            client_logged_in,
            reverse("assets:wizard_select_asset"),
            {"asset_id": asset.pk},
        )
        assert response.status_code == 200
        assert response.json()["wizard"]["step"] == WizardStep.DESTINATION
        assert any(
            s["id"] == other_sector.pk for s in response.json()["sectors"]
        )

    def test_invalid_destination_returns_errors(
        self, client_logged_in, asset
    ):
        response = walk_to_confirmation(client_logged_in, asset, asset.sector)
        assert response.status_code == 400
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.DESTINATION
        assert wizard["errors"]["__all__"] == NO_EFFECTIVE_CHANGE
        assert wizard["draft"]["reason"] == "Needs relocation"
        assert not TransferRequest.objects.exists()

    def test_non_numeric_identifier(self, client_logged_in, asset):
        response = client_logged_in.post(
            reverse("assets:wizard_select_asset"), {"asset_id": "abc"}
        )
        assert response.status_code == 400
        assert "asset_id" in response.json()["wizard"]["errors"]

    def test_back_keeps_draft(self, client_logged_in, asset, other_sector):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        response = client_logged_in.post(reverse("assets:wizard_back"))
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.DESTINATION
        assert wizard["draft"]["destination_sector_id"] == other_sector.pk

    def test_confirm_from_first_step_is_refused(self, client_logged_in):
        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 409

    def test_confirm_while_in_flight_is_refused(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        session = client_logged_in.session
        session[WIZARD_SESSION_KEY]["in_flight"] = True
        session[WIZARD_SESSION_KEY]["submitted_at"] = (
            timezone.now().timestamp()
        )
        session.save()

        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 409
        assert not TransferRequest.objects.exists()

    def test_transfer_created_elsewhere_blocks_confirm(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        TransferRequestFactory(asset=asset, destination_sector=other_sector)

        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 400
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.DESTINATION
        assert wizard["errors"]["asset_id"] == ASSET_PENDING
        assert not wizard["in_flight"]
        assert TransferRequest.objects.count() == 1

    def test_gateway_unavailable_is_retryable(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        with patch(
            "assets.services.gateway.TransferRequest.objects.create",
            side_effect=OperationalError("connection refused"),
        ):
            response = client_logged_in.post(
                reverse("assets:wizard_confirm")
            )
        assert response.status_code == 503

        # The flag was cleared, so the user can retry
        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 201

    def test_unexpected_error_releases_confirmation(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        with patch(
            "assets.services.gateway.TransferRequest.objects.create",
            side_effect=DataError("value too long"),
        ):
            with pytest.raises(DataError):
                client_logged_in.post(reverse("assets:wizard_confirm"))

        response = client_logged_in.get(reverse("assets:wizard_state"))
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.CONFIRMATION
        assert not wizard["in_flight"]

        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 201
        assert TransferRequest.objects.count() == 1

    def test_expired_confirmation_is_released(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        session = client_logged_in.session
        session[WIZARD_SESSION_KEY]["in_flight"] = True
        session[WIZARD_SESSION_KEY]["submitted_at"] = (
            timezone.now().timestamp() - 3600
        )
        session.save()

        response = client_logged_in.post(reverse("assets:wizard_back"))
        assert response.status_code == 200
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.DESTINATION
        assert not wizard["in_flight"]

        response = client_logged_in.post(reverse("assets:wizard_cancel"))
        assert response.json()["wizard"]["step"] == WizardStep.CANCELLED

    def test_expired_confirmation_finds_created_transfer(
        self, client_logged_in, asset, other_sector, user
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        transfer = TransferRequestFactory(
            asset=asset, destination_sector=other_sector, requester=user
        )
        session = client_logged_in.session
        session[WIZARD_SESSION_KEY]["in_flight"] = True
        session[WIZARD_SESSION_KEY]["submitted_at"] = None
        session.save()

        response = client_logged_in.get(reverse("assets:wizard_state"))
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.SUBMITTED
        assert wizard["transfer_id"] == transfer.pk
        assert not wizard["in_flight"]

    def test_cancel_discards_and_restarts(
        self, client_logged_in, asset, other_sector
    ):
        walk_to_confirmation(client_logged_in, asset, other_sector)
        response = client_logged_in.post(reverse("assets:wizard_cancel"))
        assert response.json()["wizard"]["step"] == WizardStep.CANCELLED

        response = client_logged_in.get(reverse("assets:wizard_state"))
        wizard = response.json()["wizard"]
        assert wizard["step"] == WizardStep.ASSET_SELECTION
        assert wizard["draft"]["asset_id"] is None
        assert not TransferRequest.objects.exists()

    def test_confirm_is_rate_limited(self, client_logged_in, settings):
        settings.TRANSFER_CREATE_RATE = "1/m"
        client_logged_in.post(reverse("assets:wizard_confirm"))
        response = client_logged_in.post(reverse("assets:wizard_confirm"))
        assert response.status_code == 429
        assert response["Retry-After"] == "60"


@pytest.mark.django_db
class TestTransferEndpoints:
    def test_list_includes_status_and_actions(
        self, admin_client, pending_transfer
    ):
        response = admin_client.get(reverse("assets:transfer_list"))
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        result = data["results"][0]
        assert result["id"] == pending_transfer.pk
        assert result["status"] == TransferStatus.PENDING
        assert result["permitted_actions"]["approve"] is True

    def test_list_filters(self, admin_client, pending_transfer):
        response = admin_client.get(
            reverse("assets:transfer_list"), {"status": "completed"}
        )
        assert response.json()["count"] == 0

    def test_list_filters_by_origin_and_destination(
        self, admin_client, pending_transfer, sector, other_sector
    ):
        url = reverse("assets:transfer_list")
        response = admin_client.get(url, {"origin_sector": other_sector.pk})
        assert response.json()["count"] == 0
        response = admin_client.get(
            url, {"destination_sector": other_sector.pk}
        )
        assert response.json()["count"] == 1

    def test_kpis(self, admin_client, pending_transfer, admin_user):
        TransferRequestFactory(approver=admin_user, rejection_reason="No")
        response = admin_client.get(reverse("assets:transfer_kpis"))
        assert response.status_code == 200
        assert response.json() == {
            "total": 2,
            "pending": 1,
            "approved_this_month": 0,
            "rejected_this_month": 1,
        }

    def test_detail_includes_status_label(
        self, admin_client, pending_transfer
    ):
        response = admin_client.get(
            reverse("assets:transfer_detail", args=[pending_transfer.pk])
        )
        assert response.json()["status_display"] == "Pending"

    def test_detail_not_found(self, admin_client):
        response = admin_client.get(
            reverse("assets:transfer_detail", args=[999999])
        )
        assert response.status_code == 404

    def test_approve_and_effectuate(self, admin_client, pending_transfer):
        response = post_json(
            admin_client,
            reverse("assets:transfer_approve", args=[pending_transfer.pk]),
            {"approval_notes": "Fine"},
        )
        assert response.status_code == 200
        transfer = response.json()["transfer"]
        assert transfer["status"] == TransferStatus.APPROVED
        assert transfer["permitted_actions"]["effectuate"] is True

        response = admin_client.post(
            reverse("assets:transfer_effectuate", args=[pending_transfer.pk])
        )
        assert response.status_code == 200
        assert response.json()["transfer"]["status"] == "completed"

    def test_auto_effectuate_flag(self, admin_client, pending_transfer):
        response = admin_client.post(
            reverse("assets:transfer_approve", args=[pending_transfer.pk]),
            {"auto_effectuate": "true"},
        )
        assert response.json()["transfer"]["status"] == "completed"

    def test_conflict_returns_refreshed_transfer(
        self, admin_client, pending_transfer
    ):
        url = reverse("assets:transfer_approve", args=[pending_transfer.pk])
        admin_client.post(url)
        response = admin_client.post(url)
        assert response.status_code == 409
        data = response.json()
        assert data["current_status"] == TransferStatus.APPROVED
        assert data["transfer"]["status"] == TransferStatus.APPROVED

    def test_user_cannot_approve(self, client_logged_in, pending_transfer):
        response = client_logged_in.post(
            reverse("assets:transfer_approve", args=[pending_transfer.pk])
        )
        assert response.status_code == 403
        pending_transfer.refresh_from_db()
        assert pending_transfer.status == TransferStatus.PENDING

    def test_reject_requires_reason(self, admin_client, pending_transfer):
        response = admin_client.post(
            reverse("assets:transfer_reject", args=[pending_transfer.pk]),
            {"rejection_reason": ""},
        )
        assert response.status_code == 422
        assert "rejection_reason" in response.json()["errors"]

    def test_non_string_json_text_is_accepted(
        self, admin_client, pending_transfer
    ):
        response = post_json(
            admin_client,
            reverse("assets:transfer_reject", args=[pending_transfer.pk]),
            {"rejection_reason": 42},
        )
        assert response.status_code == 200
        assert response.json()["transfer"]["rejection_reason"] == "42"

    def test_reject(self, admin_client, pending_transfer):
        response = admin_client.post(
            reverse("assets:transfer_reject", args=[pending_transfer.pk]),
            {"rejection_reason": "Insufficient justification"},
        )
        assert response.status_code == 200
        assert response.json()["transfer"]["status"] == "rejected"

    def test_audit_failure_is_reported_as_warning(
        self, admin_client, pending_transfer
    ):
        with patch(
            "assets.tasks.write_audit_log.delay",
            side_effect=ConnectionError("broker down"),
        ):
            response = admin_client.post(
                reverse(
                    "assets:transfer_approve", args=[pending_transfer.pk]
                )
            )
        assert response.status_code == 200
        data = response.json()
        assert data["transfer"]["status"] == TransferStatus.APPROVED
        assert len(data["warnings"]) == 1
        assert "approve_transfer" in data["warnings"][0]

    def test_store_unavailable(self, admin_client):
        with patch(
            "assets.services.gateway.build_transfer_filter_queryset",
            side_effect=OperationalError("connection refused"),
        ):
            response = admin_client.get(reverse("assets:transfer_list"))
        assert response.status_code == 503

    def test_malformed_json_body(self, admin_client, pending_transfer):
        response = admin_client.post(
            reverse("assets:transfer_reject", args=[pending_transfer.pk]),
            data="{not json",
            content_type="application/json",
        )
        assert response.status_code == 422
