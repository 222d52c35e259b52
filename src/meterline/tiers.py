"""Tier registry: quota, price and checkout reference per subscription tier."""

import json
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError

from meterline.config import Settings
from meterline.exceptions import InvalidTierConfigError
from meterline.models.billing import UNLIMITED, TierDefinition, TierListing

logger = structlog.get_logger()


def default_tier_config(pro_price_id: str | None = None) -> dict[str, dict[str, Any]]:
    """Tier set used when ``TIERS`` is not configured."""
    return {
        "free": {"name": "Free", "price": 0, "quota": 5},
        "pro": {"name": "Pro", "price": 29, "quota": UNLIMITED, "price_id": pro_price_id},
    }


class TierRegistry:
    """Immutable lookup of tier definitions.

    Unknown tier ids resolve to a zero-quota definition so a stale or
    unrecognized claim can never unlock usage.
    """

    def __init__(self, definitions: Iterable[TierDefinition]) -> None:
        tiers: dict[str, TierDefinition] = {}
        for definition in definitions:
            if definition.id in tiers:
                raise InvalidTierConfigError(f"duplicate tier id '{definition.id}'")
            tiers[definition.id] = definition
        if not tiers:
            raise InvalidTierConfigError("no tiers defined")
        self._tiers: Mapping[str, TierDefinition] = dict(tiers)

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping[str, Any]]) -> "TierRegistry":
        """Build a registry from ``{tier_id: {name, price, quota, price_id}}``."""
        if not isinstance(config, Mapping):
            raise InvalidTierConfigError("expected an object keyed by tier id")
        definitions = []
        for tier_id, fields in config.items():
            if not isinstance(fields, Mapping):
                raise InvalidTierConfigError(f"tier '{tier_id}' must be an object")
            try:
                definitions.append(
                    TierDefinition.model_validate(
                        {"name": tier_id, **fields, "id": tier_id},
                    )
                )
            except ValidationError as e:
                raise InvalidTierConfigError(f"tier '{tier_id}': {e}") from e
        return cls(definitions)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TierRegistry":
        """Load tiers from ``settings.TIERS`` or fall back to the defaults."""
        if settings.TIERS is None:
            return cls.from_config(default_tier_config(settings.STRIPE_PRICE_ID))
        try:
            raw = json.loads(settings.TIERS)
        except json.JSONDecodeError as e:
            raise InvalidTierConfigError(f"TIERS is not valid JSON: {e}") from e
        registry = cls.from_config(raw)
        logger.info("Loaded tier definitions", tiers=list(registry.ids()))
        return registry

    def ids(self) -> Iterable[str]:
        return self._tiers.keys()

    def __contains__(self, tier_id: object) -> bool:
        return tier_id in self._tiers

    def definition_of(self, tier_id: str) -> TierDefinition:
        """Return the definition for ``tier_id``, or a zero-quota placeholder."""
        definition = self._tiers.get(tier_id)
        if definition is None:
            logger.warning("Unknown tier, applying zero quota", tier=tier_id)
            return TierDefinition(id=tier_id, name=tier_id, price=Decimal(0), quota=0)
        return definition

    def lowest(self) -> TierDefinition:
        """The cheapest tier; ties go to the first configured."""
        return min(self._tiers.values(), key=lambda t: t.monthly_price)

    def list_tiers(self) -> list[TierListing]:
        """Public listing ordered by ascending price."""
        ordered = sorted(self._tiers.values(), key=lambda t: t.monthly_price)
        return [
            TierListing(
                id=t.id,
                name=t.display_name,
                price=float(t.monthly_price),
                limit=t.quota,
                purchasable=t.purchasable,
            )
            for t in ordered
        ]
