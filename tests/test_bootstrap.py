import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from chat_gateway.app_config import RuntimeEnv, parse_app_config
from chat_gateway.bootstrap import bootstrap_runtime
from chat_gateway.catalog import BackendVariant
from chat_gateway.logging_config import setup_logging


PROJECT_ROOT = Path(__file__).resolve().parents[1]


class BootstrapRuntimeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"bootstrap-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_wires_stores_adapters_and_seeds_policies(self) -> None:
        app = parse_app_config({
            "DatabasePath": str(self._tmp_dir / "gateway.db"),
            "LogConsumers": [],
            "RateLimits": [{"Model": "gpt-4o", "Role": "student", "DailyRequestLimit": 5}],
            "Models": {"local-llm": {"Api": "chat"}},
        })
        runtime = bootstrap_runtime(app, RuntimeEnv(openai_api_key="sk-test", openai_base_url=None))
        try:
            self.assertEqual([], runtime.log_descriptions)
            self.assertEqual(5, runtime.policies.get_policy("gpt-4o", "student").daily_request_limit)
            self.assertIn("local-llm", runtime.catalog.models())
            self.assertEqual(BackendVariant.STRUCTURED, runtime.orchestrator.adapter_for("gpt-5").variant)
            self.assertEqual(BackendVariant.TURN_BASED, runtime.orchestrator.adapter_for("local-llm").variant)
            self.assertTrue((self._tmp_dir / "gateway.db").exists())
        finally:
            runtime.store.close()


class SetupLoggingTests(unittest.TestCase):
    def tearDown(self) -> None:
        setup_logging(consumers=[])

    def test_unknown_consumer_is_skipped(self) -> None:
        self.assertEqual([], setup_logging(consumers=[{"type": "carrier-pigeon"}]))

    def test_console_consumer_description(self) -> None:
        self.assertEqual(["console (stderr, DEBUG)"], setup_logging(consumers=[{"type": "console", "level": "DEBUG"}]))
