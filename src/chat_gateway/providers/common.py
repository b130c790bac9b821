from __future__ import annotations

import inspect

import openai
from loguru import logger

from chat_gateway.errors import (
    BackendError,
    BackendRequestRejected,
    BackendUnavailable,
    UnsupportedStreamingMode,
)


def classify_backend_error(exc: openai.OpenAIError) -> BackendError:
    """Translate an ``openai`` exception into the gateway's error taxonomy."""
    code = getattr(exc, "code", None)
    param = getattr(exc, "param", None)

    if code == "unsupported_value" and param == "stream":
        return UnsupportedStreamingMode(str(getattr(exc, "message", exc)))
    if isinstance(exc, openai.APITimeoutError):
        return BackendUnavailable("Backend request timed out")
    if isinstance(exc, openai.APIConnectionError):
        return BackendUnavailable("Could not reach the model backend")
    if isinstance(exc, openai.RateLimitError) or code == "rate_limit_exceeded":
        return BackendUnavailable("Rate limit hit")
    if code == "context_length_exceeded":
        return BackendRequestRejected("Message too long")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return BackendUnavailable("The model backend rejected the gateway credentials")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code >= 500:
            return BackendUnavailable(f"Model backend error ({exc.status_code})")
        return BackendRequestRejected(exc.message)
    return BackendUnavailable(str(exc) or type(exc).__name__)


async def close_stream(stream: object) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception as ex:
        logger.debug(f"Ignoring error while closing backend stream: {ex}")
