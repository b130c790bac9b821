from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from chat_gateway.catalog import ModelCatalog, ModelPricing

_PER_MILLION = Decimal(1_000_000)
_CENTS = Decimal(100)


def map_quality(quality: str | None) -> str:
    """Two tiers only: ``high`` is ``hd``; low, medium and anything else are ``standard``."""
    if quality is not None and quality.strip().lower() == "high":
        return "hd"
    return "standard"


def _resolve_pricing(pricing: ModelPricing, quality: str | None) -> ModelPricing:
    if quality is None:
        return pricing
    return pricing.tiers.get(map_quality(quality), pricing)


def cost_cents(
    pricing: ModelPricing | None,
    input_tokens: int,
    output_tokens: int,
    *,
    quality: str | None = None,
) -> int:
    if pricing is None:
        return 0
    pricing = _resolve_pricing(pricing, quality)
    output_price = pricing.reasoning if pricing.reasoning is not None else pricing.output
    dollars = (
        Decimal(max(0, input_tokens)) * Decimal(str(pricing.input))
        + Decimal(max(0, output_tokens)) * Decimal(str(output_price))
    ) / _PER_MILLION
    return int((dollars * _CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def estimate_cost_cents(
    catalog: ModelCatalog,
    model: str,
    input_tokens: int,
    output_tokens: int,
    *,
    quality: str | None = None,
) -> int:
    """Cost of a request in US cents. Unknown models cost 0."""
    return cost_cents(catalog.pricing(model), input_tokens, output_tokens, quality=quality)
