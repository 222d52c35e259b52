"""Public pricing listing."""

from fastapi import APIRouter

from meterline.api.dependencies import Services
from meterline.models.billing import TierListing

router = APIRouter(prefix="/api", tags=["tiers"])


@router.get("/tiers", response_model=list[TierListing])
async def list_tiers(services: Services) -> list[TierListing]:
    """List tiers by ascending price. Tiers without a Stripe price are not purchasable."""
    return services.tiers.list_tiers()
