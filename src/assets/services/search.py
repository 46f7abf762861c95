"""Transfer list filtering and text search helpers."""

from django.db.models import Count, Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from ..models import TransferRequest
from .state import TransferStatus, status_q

MAX_SEARCH_WORDS = 20

# Explicit whitelist of allowed filter field names
ALLOWED_FILTER_FIELDS = {
    "status",
    "q",
    "asset",
    "sector",
    "origin_sector",
    "destination_sector",
    "custodian",
    "requester",
    "approver",
    "date_from",
    "date_to",
    "ordering",
}

ORDERING_FIELDS = {
    "id": "pk",
    "created_at": "created_at",
    "approved_at": "approved_at",
    "effectuated_at": "effectuated_at",
    "asset": "asset__name",
}

DEFAULT_ORDERING = ("-created_at", "-pk")


def build_transfer_text_query(q):
    """Build Q object matching all words in q across transfer text fields.

    Each word must appear in the asset name, the asset serial number or
    the request reason. Words are ANDed together.

    At most ``MAX_SEARCH_WORDS`` words are considered; additional words
    are silently ignored to bound query complexity.
    """
    words = q.split()[:MAX_SEARCH_WORDS]
    if not words:
        return Q(pk__in=[])
    combined = Q()
    for word in words:
        combined &= (
            Q(asset__name__icontains=word)
            | Q(asset__serial_number__icontains=word)
            | Q(reason__icontains=word)
        )
    return combined


def validate_filter_params(params) -> dict:
    """Strip unknown keys and empty values from incoming filters."""
    return {
        k: v for k, v in params.items() if k in ALLOWED_FILTER_FIELDS and v
    }


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_date(value):
    try:
        return parse_date(str(value or ""))
    except ValueError:
        return None


def build_transfer_filter_queryset(filters: dict):
    """Shared queryset builder for transfer listing.

    Unknown or malformed values are ignored rather than raising, the
    same way the list view treats a bad query string.

    Returns:
        Queryset of TransferRequest objects (not materialised).
    """
    filters = validate_filter_params(filters or {})
    queryset = TransferRequest.objects.select_related(
        "asset",
        "origin_sector",
        "origin_custodian",
        "destination_sector",
        "destination_custodian",
        "requester",
        "approver",
    )

    status = filters.get("status", "")
    if status in TransferStatus.values:
        queryset = queryset.filter(status_q(status))

    q = filters.get("q", "")
    if q:
        queryset = queryset.filter(build_transfer_text_query(q))

    asset_id = _as_int(filters.get("asset"))
    if asset_id is not None:
        queryset = queryset.filter(asset_id=asset_id)

    # Sector and custodian match either end of the move
    sector_id = _as_int(filters.get("sector"))
    if sector_id is not None:
        queryset = queryset.filter(
            Q(origin_sector_id=sector_id) | Q(destination_sector_id=sector_id)
        )

    origin_sector_id = _as_int(filters.get("origin_sector"))
    if origin_sector_id is not None:
        queryset = queryset.filter(origin_sector_id=origin_sector_id)

    destination_sector_id = _as_int(filters.get("destination_sector"))
    if destination_sector_id is not None:
        queryset = queryset.filter(destination_sector_id=destination_sector_id)

    custodian_id = _as_int(filters.get("custodian"))
    if custodian_id is not None:
        queryset = queryset.filter(
            Q(origin_custodian_id=custodian_id)
            | Q(destination_custodian_id=custodian_id)
        )

    requester_id = _as_int(filters.get("requester"))
    if requester_id is not None:
        queryset = queryset.filter(requester_id=requester_id)

    approver_id = _as_int(filters.get("approver"))
    if approver_id is not None:
        queryset = queryset.filter(approver_id=approver_id)

    date_from = _as_date(filters.get("date_from"))
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    date_to = _as_date(filters.get("date_to"))
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    ordering = filters.get("ordering", "")
    field = ORDERING_FIELDS.get(ordering.lstrip("-"))
    if field:
        prefix = "-" if ordering.startswith("-") else ""
        queryset = queryset.order_by(f"{prefix}{field}", "-pk")
    else:
        queryset = queryset.order_by(*DEFAULT_ORDERING)

    return queryset


def transfer_kpis(today=None) -> dict:
    """Headline counts for the transfer overview.

    ``approved_this_month`` counts requests created this month that were
    approved, whether or not they have been effectuated yet;
    ``rejected_this_month`` counts rejections among the same requests.
    """
    if today is None:
        today = timezone.localdate()
    this_month = Q(
        created_at__year=today.year, created_at__month=today.month
    )
    approved = status_q(TransferStatus.APPROVED) | status_q(
        TransferStatus.COMPLETED
    )
    return TransferRequest.objects.aggregate(
        total=Count("pk"),
        pending=Count("pk", filter=status_q(TransferStatus.PENDING)),
        approved_this_month=Count("pk", filter=this_month & approved),
        rejected_this_month=Count(
            "pk", filter=this_month & status_q(TransferStatus.REJECTED)
        ),
    )
