from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    text: str


@dataclass(frozen=True)
class UsageRecord:
    account_id: str
    day: date
    model: str
    input_tokens: int
    output_tokens: int
    request_count: int
    cost_cents: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class RateLimitPolicy:
    """Zero on either ceiling means that axis is unlimited."""

    model: str
    role: str
    daily_request_limit: int = 0
    monthly_token_limit: int = 0
