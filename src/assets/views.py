"""JSON views for the transfer workflow."""

import functools
import json
import logging

from django_ratelimit.decorators import ratelimit

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.decorators import login_required
from django.core.exceptions import (
    NON_FIELD_ERRORS,
    PermissionDenied,
    ValidationError,
)
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from controlhs.views import ratelimited_view

from .exceptions import (
    ConflictError,
    InvalidStepError,
    NotFoundError,
    TransportError,
)
from .models import Sector
from .services import wizard
from .services.gateway import DatabaseGateway
from .services.permissions import caller_for, permitted_actions
from .services.registry import AssetRegistry
from .services.wizard import WizardState, WizardStep

logger = logging.getLogger(__name__)

User = get_user_model()

WIZARD_SESSION_KEY = "transfer_wizard"
TRANSFERS_PER_PAGE = 25
INVALID_ID = "Enter a valid identifier."


def _create_rate(group, request):
    return settings.TRANSFER_CREATE_RATE


def _allow_self_approval():
    return getattr(settings, "TRANSFER_ALLOW_SELF_APPROVAL", False)


def _flatten(error: ValidationError) -> dict:
    if hasattr(error, "error_dict"):
        return {
            name: " ".join(messages)
            for name, messages in error.message_dict.items()
        }
    return {NON_FIELD_ERRORS: " ".join(error.messages)}


def serialize_asset(asset):
    return {
        "id": asset.pk,
        "name": asset.name,
        "serial_number": asset.serial_number,
        "status": asset.status,
        "sector_id": asset.sector_id,
        "sector": str(asset.sector) if asset.sector_id else None,
        "custodian_id": asset.custodian_id,
        "custodian": (
            asset.custodian.get_display_name() if asset.custodian else None
        ),
    }


def serialize_transfer(transfer, caller=None):
    """Transfer as JSON, with derived status and the caller's actions."""
    data = {
        "id": transfer.pk,
        "asset_id": transfer.asset_id,
        "asset": str(transfer.asset),
        "origin_sector_id": transfer.origin_sector_id,
        "origin_custodian_id": transfer.origin_custodian_id,
        "destination_sector_id": transfer.destination_sector_id,
        "destination_custodian_id": transfer.destination_custodian_id,
        "reason": transfer.reason,
        "requester_id": transfer.requester_id,
        "approver_id": transfer.approver_id,
        "approval_notes": transfer.approval_notes,
        "rejection_reason": transfer.rejection_reason,
        "approved_at": transfer.approved_at,
        "effectuated": transfer.effectuated,
        "effectuated_at": transfer.effectuated_at,
        "created_at": transfer.created_at,
        "updated_at": transfer.updated_at,
        "status": transfer.status,
        "status_display": transfer.get_status_display(),
    }
    if caller is not None:
        data["permitted_actions"] = permitted_actions(
            caller, transfer, _allow_self_approval()
        )
    return data


def _ok(data, gateway=None, status=200):
    if gateway is not None and gateway.audit_failures:
        data["warnings"] = [str(exc) for exc in gateway.audit_failures]
    return JsonResponse(data, status=status)


def _error(message, status, **extra):
    return JsonResponse({"error": message, **extra}, status=status)


def _refreshed(request, transfer_id):
    """Re-read a transfer after a conflict so the client sees its state."""
    if transfer_id is None:
        return None
    try:
        transfer = DatabaseGateway().get_transfer(transfer_id)
    except (NotFoundError, TransportError):
        return None
    return serialize_transfer(transfer, caller_for(request.user))


def transfer_errors(view):
    """Map transfer workflow failures onto JSON error responses."""

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except ValidationError as exc:
            return _error(
                "The request is invalid.", 422, errors=_flatten(exc)
            )
        except PermissionDenied as exc:
            return _error(str(exc) or "Permission denied.", 403)
        except NotFoundError as exc:
            return _error(str(exc), 404)
        except ConflictError as exc:
            logger.info("Transfer conflict: %s", exc.message)
            return _error(
                exc.message,
                409,
                current_status=exc.current_status,
                transfer=_refreshed(request, kwargs.get("pk")),
            )
        except InvalidStepError as exc:
            return _error(str(exc), 409)
        except TransportError as exc:
            return _error(str(exc), 503)

    return wrapper


def _payload(request):
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except ValueError:
            raise ValidationError({NON_FIELD_ERRORS: "Malformed JSON body."})
        if not isinstance(data, dict):
            raise ValidationError({NON_FIELD_ERRORS: "Expected an object."})
        return data
    return request.POST


def _optional_id(data, name, errors):
    value = data.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        errors[name] = INVALID_ID
        return None


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "1", "yes", "on")


# --- Transfers ---


@login_required
@require_GET
@transfer_errors
def transfer_list(request):
    """Filtered, paginated list of transfer requests."""
    caller = caller_for(request.user)
    gateway = DatabaseGateway()
    transfers = gateway.list_transfers(request.GET.dict())

    paginator = Paginator(transfers, TRANSFERS_PER_PAGE)
    page = paginator.get_page(request.GET.get("page"))
    return _ok(
        {
            "count": paginator.count,
            "page": page.number,
            "num_pages": paginator.num_pages,
            "results": [serialize_transfer(t, caller) for t in page],
        }
    )


@login_required
@require_GET
@transfer_errors
def transfer_kpis(request):
    """Headline counts: total, pending and this month's decisions."""
    return _ok(DatabaseGateway().transfer_kpis())


@login_required
@require_GET
@transfer_errors
def transfer_detail(request, pk):
    transfer = DatabaseGateway().get_transfer(pk)
    return _ok(serialize_transfer(transfer, caller_for(request.user)))


@login_required
@require_POST
@transfer_errors
def transfer_approve(request, pk):
    """Approve a pending transfer, optionally effectuating it at once."""
    data = _payload(request)
    caller = caller_for(request.user)
    gateway = DatabaseGateway()
    transfer = gateway.approve_transfer(
        caller,
        pk,
        approval_notes=data.get("approval_notes", ""),
        auto_effectuate=_as_bool(data.get("auto_effectuate")),
    )
    return _ok({"transfer": serialize_transfer(transfer, caller)}, gateway)


@login_required
@require_POST
@transfer_errors
def transfer_reject(request, pk):
    data = _payload(request)
    caller = caller_for(request.user)
    gateway = DatabaseGateway()
    transfer = gateway.reject_transfer(
        caller, pk, data.get("rejection_reason", "")
    )
    return _ok({"transfer": serialize_transfer(transfer, caller)}, gateway)


@login_required
@require_POST
@transfer_errors
def transfer_effectuate(request, pk):
    caller = caller_for(request.user)
    gateway = DatabaseGateway()
    transfer = gateway.effectuate_transfer(caller, pk)
    return _ok({"transfer": serialize_transfer(transfer, caller)}, gateway)


# --- Transfer request wizard ---


def _submit_timeout():
    return getattr(
        settings, "TRANSFER_SUBMIT_TIMEOUT", wizard.DEFAULT_SUBMIT_TIMEOUT
    )


def _stored_wizard(request) -> WizardState:
    return WizardState.from_dict(request.session.get(WIZARD_SESSION_KEY))


def _load_wizard(request, caller, registry) -> WizardState:
    """Session wizard state, settling a confirmation left in flight."""
    return wizard.recover_submit(
        _stored_wizard(request), caller, registry, timeout=_submit_timeout()
    )


def _store_wizard(request, state: WizardState):
    request.session[WIZARD_SESSION_KEY] = state.to_dict()


def _wizard_context(state, caller, registry):
    """Data the current step needs to render."""
    context = {}
    if state.step == WizardStep.ASSET_SELECTION:
        context["assets"] = [
            serialize_asset(asset)
            for asset in wizard.candidate_assets(caller, registry)
        ]
    elif state.step == WizardStep.DESTINATION:
        context["sectors"] = list(
            Sector.objects.filter(is_active=True).values("id", "name")
        )
        context["custodians"] = [
            {"id": user.pk, "name": user.get_display_name()}
            for user in User.objects.filter(is_active=True).order_by(
                "username"
            )
        ]
    elif state.step == WizardStep.CONFIRMATION:
        asset = registry.get_asset(state.draft.asset_id)
        context["asset"] = serialize_asset(asset) if asset else None
    return context


def _wizard_response(state, caller, registry, status=200, **extra):
    data = {"wizard": state.to_dict(), **extra}
    data.update(_wizard_context(state, caller, registry))
    if state.errors and status == 200:
        status = 400
    return JsonResponse(data, status=status)


@login_required
@require_GET
def wizard_state(request):
    """Current wizard state; a finished wizard starts over."""
    caller = caller_for(request.user)
    registry = AssetRegistry()
    if _stored_wizard(request).is_finished:
        state = wizard.start()
    else:
        state = _load_wizard(request, caller, registry)
    _store_wizard(request, state)
    return _wizard_response(state, caller, registry)


@login_required
@require_POST
@transfer_errors
def wizard_select_asset(request):
    data = _payload(request)
    errors = {}
    asset_id = _optional_id(data, "asset_id", errors)
    caller = caller_for(request.user)
    registry = AssetRegistry()

    state = _load_wizard(request, caller, registry)
    if errors:
        return _wizard_response(
            WizardState(step=state.step, draft=state.draft, errors=errors),
            caller,
            registry,
        )
    state = wizard.select_asset(state, caller, registry, asset_id)
    _store_wizard(request, state)
    return _wizard_response(state, caller, registry)


@login_required
@require_POST
@transfer_errors
def wizard_submit_destination(request):
    data = _payload(request)
    errors = {}
    sector_id = _optional_id(data, "destination_sector_id", errors)
    custodian_id = _optional_id(data, "destination_custodian_id", errors)
    caller = caller_for(request.user)
    registry = AssetRegistry()

    state = _load_wizard(request, caller, registry)
    if errors:
        return _wizard_response(
            WizardState(step=state.step, draft=state.draft, errors=errors),
            caller,
            registry,
        )
    state = wizard.submit_destination(
        state,
        caller,
        registry,
        destination_sector_id=sector_id,
        destination_custodian_id=custodian_id,
        reason=data.get("reason", ""),
    )
    _store_wizard(request, state)
    return _wizard_response(state, caller, registry)


@login_required
@require_POST
@transfer_errors
def wizard_back(request):
    caller = caller_for(request.user)
    registry = AssetRegistry()
    state = wizard.back(_load_wizard(request, caller, registry))
    _store_wizard(request, state)
    return _wizard_response(state, caller, registry)


@login_required
@require_POST
@ratelimit(key="user", rate=_create_rate, method="POST", block=False)
@transfer_errors
def wizard_confirm(request):
    """Submit the confirmed draft as a single create call."""
    if getattr(request, "limited", False):
        return ratelimited_view(request)

    caller = caller_for(request.user)
    registry = AssetRegistry()
    state = wizard.begin_submit(_load_wizard(request, caller, registry))
    _store_wizard(request, state)
    # Persist the in-flight flag before the create call
    request.session.save()

    gateway = DatabaseGateway(registry=registry)
    try:
        state = wizard.confirm(state, caller, registry, gateway)
    except Exception:
        # Unmapped errors end in a 500, which SessionMiddleware never saves
        _store_wizard(request, wizard.abort_submit(state))
        request.session.save()
        raise
    _store_wizard(request, state)

    if state.step != WizardStep.SUBMITTED:
        return _wizard_response(state, caller, registry)
    transfer = gateway.get_transfer(state.transfer_id)
    data = {
        "wizard": state.to_dict(),
        "transfer": serialize_transfer(transfer, caller),
    }
    return _ok(data, gateway, status=201)


@login_required
@require_POST
@transfer_errors
def wizard_cancel(request):
    caller = caller_for(request.user)
    state = wizard.cancel(_load_wizard(request, caller, AssetRegistry()))
    _store_wizard(request, state)
    return JsonResponse({"wizard": state.to_dict()})
