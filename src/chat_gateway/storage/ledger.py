from __future__ import annotations

import sqlite3
from datetime import date

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from chat_gateway.errors import LedgerWriteFailure
from chat_gateway.storage.models import UsageRecord
from chat_gateway.storage.store import GatewayStore, utc_now

_WRITE_ATTEMPTS = 3


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = str(exc) if exc else "Unknown"
    logger.warning(f"Usage ledger write failed ({reason}). Retrying in {wait:.2f}s (attempt {attempt}/{_WRITE_ATTEMPTS})...")


class UsageLedger:
    """Per (account, day, model) counters. Rows are only ever incremented."""

    def __init__(self, store: GatewayStore):
        self._store = store

    def increment_usage(
        self,
        account_id: str,
        day: date,
        model: str,
        *,
        input_tokens: int,
        output_tokens: int,
        requests: int = 1,
        cost_cents: int = 0,
    ) -> None:
        if input_tokens < 0 or output_tokens < 0 or requests < 0:
            raise ValueError("Usage increments must be non-negative")
        try:
            self._upsert(account_id, day.isoformat(), model, input_tokens, output_tokens, requests, cost_cents)
        except sqlite3.Error as ex:
            raise LedgerWriteFailure(f"Could not record usage for {account_id}/{model}: {ex}") from ex

    @retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        stop=stop_after_attempt(_WRITE_ATTEMPTS),
        before_sleep=_on_retry,
        reraise=True,
    )
    def _upsert(
        self,
        account_id: str,
        day: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        requests: int,
        cost_cents: int,
    ) -> None:
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO usage_stats
                    (account_id, date, model, input_tokens, output_tokens, messages_count, cost_cents, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, date, model) DO UPDATE SET
                    input_tokens = input_tokens + excluded.input_tokens,
                    output_tokens = output_tokens + excluded.output_tokens,
                    messages_count = messages_count + excluded.messages_count,
                    cost_cents = cost_cents + excluded.cost_cents,
                    updated_at = excluded.updated_at
                """,
                (account_id, day, model, input_tokens, output_tokens, requests, cost_cents, utc_now()),
            )

    def get_record(self, account_id: str, day: date, model: str) -> UsageRecord | None:
        row = self._store.execute(
            "SELECT * FROM usage_stats WHERE account_id = ? AND date = ? AND model = ?",
            (account_id, day.isoformat(), model),
        ).fetchone()
        if row is None:
            return None
        return UsageRecord(
            account_id=row["account_id"],
            day=date.fromisoformat(row["date"]),
            model=row["model"],
            input_tokens=int(row["input_tokens"]),
            output_tokens=int(row["output_tokens"]),
            request_count=int(row["messages_count"]),
            cost_cents=int(row["cost_cents"]),
        )

    def sum_requests(self, account_id: str, model: str, day: date) -> int:
        row = self._store.execute(
            """
            SELECT COALESCE(SUM(messages_count), 0) AS total
            FROM usage_stats
            WHERE account_id = ? AND model = ? AND date = ?
            """,
            (account_id, model, day.isoformat()),
        ).fetchone()
        return int(row["total"])

    def sum_tokens(self, account_id: str, model: str, start: date, end: date) -> int:
        """Input plus output tokens between ``start`` and ``end``, both inclusive."""
        row = self._store.execute(
            """
            SELECT COALESCE(SUM(input_tokens + output_tokens), 0) AS total
            FROM usage_stats
            WHERE account_id = ? AND model = ? AND date >= ? AND date <= ?
            """,
            (account_id, model, start.isoformat(), end.isoformat()),
        ).fetchone()
        return int(row["total"])

    def usage_summary(self, account_id: str, since: date) -> list[dict]:
        rows = self._store.execute(
            """
            SELECT model,
                   SUM(input_tokens + output_tokens) AS tokens_used,
                   SUM(messages_count) AS messages,
                   SUM(cost_cents) AS cost_cents
            FROM usage_stats
            WHERE account_id = ? AND date >= ?
            GROUP BY model
            ORDER BY model ASC
            """,
            (account_id, since.isoformat()),
        ).fetchall()
        return [
            {
                "model": row["model"],
                "tokens_used": int(row["tokens_used"] or 0),
                "messages": int(row["messages"] or 0),
                "cost_cents": int(row["cost_cents"] or 0),
            }
            for row in rows
        ]
