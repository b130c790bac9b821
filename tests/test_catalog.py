import unittest

from chat_gateway.catalog import BackendVariant, ModelCatalog, parse_model_entry


class ModelCatalogTests(unittest.TestCase):
    def test_builtin_models_have_variants(self) -> None:
        catalog = ModelCatalog.from_config()
        self.assertEqual(BackendVariant.TURN_BASED, catalog.variant("gpt-4o"))
        self.assertEqual(BackendVariant.STRUCTURED, catalog.variant("gpt-5"))

    def test_unknown_model_defaults_to_turn_based(self) -> None:
        catalog = ModelCatalog.from_config()
        self.assertEqual(BackendVariant.TURN_BASED, catalog.variant("mystery"))
        self.assertIsNone(catalog.pricing("mystery"))

    def test_config_entries_merge_over_builtins(self) -> None:
        catalog = ModelCatalog.from_config({
            "gpt-4o": {"Pricing": {"Input": 1.0, "Output": 2.0}},
            "local-llm": {"Api": "chat"},
        })
        self.assertEqual(1.0, catalog.pricing("gpt-4o").input)
        self.assertEqual(BackendVariant.TURN_BASED, catalog.variant("gpt-4o"))
        self.assertIn("local-llm", catalog.models())
        self.assertIsNone(catalog.pricing("local-llm"))

    def test_unknown_api_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            parse_model_entry("x", {"Api": "completions"})

    def test_tuning_falls_back_to_auto(self) -> None:
        catalog = ModelCatalog.from_config()
        self.assertEqual(catalog.tuning("gpt-5", "auto"), catalog.tuning("gpt-5", "unknown-mode"))
        self.assertEqual("high", catalog.tuning("gpt-5", "thinking").reasoning_effort)

    def test_pricing_tiers_are_parsed(self) -> None:
        entry = parse_model_entry("img", {
            "Pricing": {"Input": 5, "Output": 20, "Tiers": {"HD": {"Input": 10, "Output": 40}}},
        })
        self.assertEqual(10.0, entry.pricing.tiers["hd"].input)
