import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from chat_gateway.storage import ConversationStore, GatewayStore, PolicyStore, UsageLedger


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class GatewayStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._store = GatewayStore(str(self._tmp_dir / "gateway.db"))
        self._conversations = ConversationStore(self._store)
        self._ledger = UsageLedger(self._store)
        self._policies = PolicyStore(self._store)

    def tearDown(self) -> None:
        self._store.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)
