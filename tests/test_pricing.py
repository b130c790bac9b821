import unittest

from chat_gateway.catalog import ModelCatalog, ModelPricing
from chat_gateway.pricing import cost_cents, estimate_cost_cents, map_quality


class MapQualityTests(unittest.TestCase):
    def test_high_maps_to_hd(self) -> None:
        self.assertEqual("hd", map_quality("high"))
        self.assertEqual("hd", map_quality(" HIGH "))

    def test_everything_else_is_standard(self) -> None:
        for quality in ("low", "medium", "auto", "", None):
            self.assertEqual("standard", map_quality(quality))


class CostCentsTests(unittest.TestCase):
    def test_unpriced_model_costs_nothing(self) -> None:
        self.assertEqual(0, cost_cents(None, 1_000_000, 1_000_000))

    def test_million_tokens_each_way(self) -> None:
        pricing = ModelPricing(input=2.50, output=10.00)
        self.assertEqual(1250, cost_cents(pricing, 1_000_000, 1_000_000))

    def test_rounds_half_up_to_whole_cents(self) -> None:
        pricing = ModelPricing(input=1.00, output=0.0)
        # 5_000 tokens at $1/M = $0.005 = 0.5 cents
        self.assertEqual(1, cost_cents(pricing, 5_000, 0))
        self.assertEqual(0, cost_cents(pricing, 4_999, 0))

    def test_small_request_rounds_to_zero(self) -> None:
        pricing = ModelPricing(input=0.15, output=0.60)
        self.assertEqual(0, cost_cents(pricing, 120, 30))

    def test_reasoning_price_replaces_output_price(self) -> None:
        pricing = ModelPricing(input=0.0, output=1.0, reasoning=4.0)
        self.assertEqual(400, cost_cents(pricing, 0, 1_000_000))

    def test_quality_tier_overrides_base_price(self) -> None:
        hd = ModelPricing(input=10.0, output=40.0)
        pricing = ModelPricing(input=5.0, output=20.0, tiers={"hd": hd})
        self.assertEqual(5000, cost_cents(pricing, 1_000_000, 1_000_000, quality="high"))
        self.assertEqual(2500, cost_cents(pricing, 1_000_000, 1_000_000, quality="low"))

    def test_negative_tokens_are_clamped(self) -> None:
        pricing = ModelPricing(input=2.50, output=10.00)
        self.assertEqual(0, cost_cents(pricing, -5, -5))


class EstimateCostTests(unittest.TestCase):
    def test_unknown_model_is_zero(self) -> None:
        catalog = ModelCatalog.from_config()
        self.assertEqual(0, estimate_cost_cents(catalog, "no-such-model", 500_000, 500_000))

    def test_known_model_uses_catalog_prices(self) -> None:
        catalog = ModelCatalog.from_config()
        self.assertEqual(75, estimate_cost_cents(catalog, "gpt-4o-mini", 1_000_000, 1_000_000))
