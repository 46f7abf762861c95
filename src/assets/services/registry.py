"""Read access to the asset registry for the transfer workflow."""

from django.contrib.auth import get_user_model

from ..models import Asset, Sector, TransferRequest
from .permissions import Caller, can_request

User = get_user_model()


class AssetRegistry:
    """Identifier lookups used by the validator and the wizard."""

    def get_asset(self, asset_id):
        """Return the asset as it is right now, or None if unknown."""
        try:
            return Asset.objects.select_related("sector", "custodian").get(
                pk=asset_id
            )
        except (Asset.DoesNotExist, ValueError, TypeError):
            return None

    def find_pending(self, asset_id) -> list:
        """Return the pending transfers for ``asset_id`` (at most one)."""
        return list(
            TransferRequest.objects.pending().filter(asset_id=asset_id)
        )

    def sector_exists(self, sector_id) -> bool:
        return Sector.objects.filter(pk=sector_id, is_active=True).exists()

    def user_exists(self, user_id) -> bool:
        return User.objects.filter(pk=user_id, is_active=True).exists()

    def candidate_assets(self, caller: Caller) -> list:
        """Assets the caller may start a transfer for."""
        queryset = Asset.objects.select_related("sector", "custodian").exclude(
            status=Asset.STATUS_RETIRED
        )
        if not caller.is_approver:
            queryset = queryset.filter(custodian_id=caller.id)
        return [asset for asset in queryset if can_request(caller, asset)]
