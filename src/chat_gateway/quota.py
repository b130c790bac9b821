from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Protocol, runtime_checkable

from loguru import logger

from chat_gateway.storage.models import RateLimitPolicy
from chat_gateway.storage.policies import normalize_role


@runtime_checkable
class UsageCounters(Protocol):
    def sum_requests(self, account_id: str, model: str, day: date) -> int: ...

    def sum_tokens(self, account_id: str, model: str, start: date, end: date) -> int: ...


@runtime_checkable
class PolicyLookup(Protocol):
    def get_policy(self, model: str, role: str) -> RateLimitPolicy | None: ...


@dataclass(frozen=True)
class UsageWindow:
    used: int
    limit: int

    def to_dict(self) -> dict:
        return {"used": self.used, "limit": self.limit}


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    reason: str | None = None
    reset_at: datetime | None = None
    daily: UsageWindow | None = None
    monthly: UsageWindow | None = None

    def usage_snapshot(self) -> dict | None:
        if self.daily is None or self.monthly is None:
            return None
        return {"daily": self.daily.to_dict(), "monthly": self.monthly.to_dict()}

    def to_payload(self) -> dict:
        """Body of the 429 response returned when the request is denied."""
        return {
            "error": "Rate limit exceeded",
            "reason": self.reason,
            "resetAt": self.reset_at.isoformat() if self.reset_at else None,
            "usage": self.usage_snapshot(),
        }

    def headers(self) -> dict[str, str]:
        return {"X-RateLimit-Reset": self.reset_at.isoformat() if self.reset_at else ""}


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_next_day(moment: datetime) -> datetime:
    return start_of_day(moment) + timedelta(days=1)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def start_of_next_month(moment: datetime) -> datetime:
    first = start_of_month(moment)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class QuotaGate:
    def __init__(
        self,
        ledger: UsageCounters,
        policies: PolicyLookup,
        *,
        exempt_roles: Iterable[str] = ("admin",),
        clock: Callable[[], datetime] = _local_now,
    ):
        self._ledger = ledger
        self._policies = policies
        self._exempt_roles = frozenset(normalize_role(role) for role in exempt_roles)
        self._clock = clock

    def check(self, account_id: str, role: str, model: str) -> QuotaDecision:
        role = normalize_role(role)
        if role in self._exempt_roles:
            return QuotaDecision(allowed=True)

        policy = self._policies.get_policy(model, role)
        if policy is None:
            return QuotaDecision(allowed=True)

        now = self._clock()
        today = now.date()

        daily_used = self._ledger.sum_requests(account_id, model, today)
        if policy.daily_request_limit > 0 and daily_used >= policy.daily_request_limit:
            logger.info(
                f"Quota denied: account={account_id}, role={role}, model={model}, "
                f"daily requests {daily_used}/{policy.daily_request_limit}"
            )
            return QuotaDecision(
                allowed=False,
                reason=f"Daily request limit reached for {model}",
                reset_at=start_of_next_day(now),
                daily=UsageWindow(daily_used, policy.daily_request_limit),
                monthly=UsageWindow(0, policy.monthly_token_limit),
            )

        monthly_used = self._ledger.sum_tokens(account_id, model, start_of_month(now).date(), today)
        if policy.monthly_token_limit > 0 and monthly_used >= policy.monthly_token_limit:
            logger.info(
                f"Quota denied: account={account_id}, role={role}, model={model}, "
                f"monthly tokens {monthly_used:,}/{policy.monthly_token_limit:,}"
            )
            return QuotaDecision(
                allowed=False,
                reason=f"Monthly token limit reached for {model}",
                reset_at=start_of_next_month(now),
                daily=UsageWindow(daily_used, policy.daily_request_limit),
                monthly=UsageWindow(monthly_used, policy.monthly_token_limit),
            )

        return QuotaDecision(
            allowed=True,
            daily=UsageWindow(daily_used, policy.daily_request_limit),
            monthly=UsageWindow(monthly_used, policy.monthly_token_limit),
        )
