from tests.storage.base import GatewayStoreTestCase


class GatewayStoreTests(GatewayStoreTestCase):
    def _count(self) -> int:
        return self._store.execute("SELECT COUNT(*) AS n FROM rate_limits").fetchone()["n"]

    def test_transaction_commits_on_success(self) -> None:
        with self._store.transaction():
            self._store.execute(
                "INSERT INTO rate_limits (model, role, updated_at) VALUES (?, ?, ?)",
                ("gpt-4o", "student", "2025-03-14T00:00:00+00:00"),
            )
        self.assertEqual(1, self._count())

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with self._store.transaction():
                self._store.execute(
                    "INSERT INTO rate_limits (model, role, updated_at) VALUES (?, ?, ?)",
                    ("gpt-4o", "student", "2025-03-14T00:00:00+00:00"),
                )
                raise RuntimeError("boom")
        self.assertEqual(0, self._count())

    def test_store_exposes_only_execute_and_transaction(self) -> None:
        for name in ("executemany", "commit", "rollback"):
            self.assertFalse(hasattr(self._store, name))
