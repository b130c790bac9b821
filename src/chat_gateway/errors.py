from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_gateway.quota import QuotaDecision


class GatewayError(Exception):
    """Base class for per-request failures raised by the gateway core."""


class QuotaExceeded(GatewayError):
    """Raised before any backend work when the quota gate denies a request."""

    status_code = 429

    def __init__(self, decision: QuotaDecision):
        super().__init__(decision.reason or "Rate limit exceeded")
        self.decision = decision

    def to_payload(self) -> dict:
        return self.decision.to_payload()

    def headers(self) -> dict[str, str]:
        return self.decision.headers()


class BackendError(GatewayError):
    """A backend failure. The message is safe to show to the caller."""


class BackendUnavailable(BackendError):
    pass


class BackendRequestRejected(BackendError):
    pass


class UnsupportedStreamingMode(BackendError):
    """The backend refused ``stream=True``; recovered by a blocking call."""


class LedgerWriteFailure(GatewayError):
    pass
