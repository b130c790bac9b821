from __future__ import annotations

from loguru import logger

from chat_gateway.storage.models import RateLimitPolicy
from chat_gateway.storage.store import GatewayStore, utc_now


def normalize_role(role: str) -> str:
    return role.strip().lower()


def _row_to_policy(row) -> RateLimitPolicy:
    return RateLimitPolicy(
        model=row["model"],
        role=row["role"],
        daily_request_limit=int(row["daily_request_limit"]),
        monthly_token_limit=int(row["monthly_token_limit"]),
    )


class PolicyStore:
    def __init__(self, store: GatewayStore):
        self._store = store

    def get_policy(self, model: str, role: str) -> RateLimitPolicy | None:
        row = self._store.execute(
            "SELECT * FROM rate_limits WHERE model = ? AND role = ? LIMIT 1",
            (model, normalize_role(role)),
        ).fetchone()
        return _row_to_policy(row) if row is not None else None

    def list_policies(self, *, role: str | None = None) -> list[RateLimitPolicy]:
        if role is None:
            rows = self._store.execute("SELECT * FROM rate_limits ORDER BY model, role").fetchall()
        else:
            rows = self._store.execute(
                "SELECT * FROM rate_limits WHERE role = ? ORDER BY model",
                (normalize_role(role),),
            ).fetchall()
        return [_row_to_policy(row) for row in rows]

    def set_policy(
        self,
        model: str,
        role: str,
        daily_request_limit: int,
        monthly_token_limit: int,
    ) -> RateLimitPolicy:
        if daily_request_limit < 0 or monthly_token_limit < 0:
            raise ValueError("Rate limits must be zero (unlimited) or positive")
        role = normalize_role(role)
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO rate_limits (model, role, daily_request_limit, monthly_token_limit, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(model, role) DO UPDATE SET
                    daily_request_limit = excluded.daily_request_limit,
                    monthly_token_limit = excluded.monthly_token_limit,
                    updated_at = excluded.updated_at
                """,
                (model, role, daily_request_limit, monthly_token_limit, utc_now()),
            )
        return RateLimitPolicy(model, role, daily_request_limit, monthly_token_limit)

    def seed(self, entries: list[dict]) -> int:
        """Upsert policies from the ``RateLimits`` config section. Returns how many were applied."""
        applied = 0
        for entry in entries:
            model = entry.get("Model")
            role = entry.get("Role")
            if not model or not str(role or "").strip():
                logger.warning(f"Skipping rate limit entry without Model/Role: {entry!r}")
                continue
            self.set_policy(
                model,
                role,
                int(entry.get("DailyRequestLimit", 0)),
                int(entry.get("MonthlyTokenLimit", 0)),
            )
            applied += 1
        return applied
