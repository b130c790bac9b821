from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from loguru import logger

from chat_gateway.catalog import BackendVariant, ModelCatalog
from chat_gateway.errors import BackendUnavailable, GatewayError, LedgerWriteFailure, QuotaExceeded
from chat_gateway.events import Completed, Failed, OutwardEvent, SessionStarted, Token, format_sse
from chat_gateway.pricing import estimate_cost_cents
from chat_gateway.provider import BackendAdapter, Fragment, Usage, build_request
from chat_gateway.quota import QuotaDecision, QuotaGate
from chat_gateway.storage.conversations import default_title
from chat_gateway.storage.models import ConversationTurn

_UNEXPECTED_ERROR = "Unexpected error while generating a response"


class Conversations(Protocol):
    def ensure_session(self, session_id: str | None, account_id: str, *, title: str) -> str: ...

    def append_turn(
        self,
        session_id: str,
        role: str,
        text: str,
        *,
        model: str | None = None,
        tokens_used: int = 0,
        cost_cents: int = 0,
    ) -> str: ...

    def load_recent_turns(self, session_id: str, limit: int) -> list[ConversationTurn]: ...


class UsageRecorder(Protocol):
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
    ) -> None: ...


class OrchestratorState(str, Enum):
    IDLE = "idle"
    GATING = "gating"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class ChatRequest:
    account_id: str
    role: str
    message: str
    model: str
    mode: str = "auto"
    session_id: str | None = None


class ChatOrchestrator:
    def __init__(
        self,
        *,
        catalog: ModelCatalog,
        gate: QuotaGate,
        conversations: Conversations,
        ledger: UsageRecorder,
        adapters: Mapping[BackendVariant, BackendAdapter],
        history_limit: int = 30,
        backend_timeout_seconds: float = 120.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._catalog = catalog
        self._gate = gate
        self._conversations = conversations
        self._ledger = ledger
        self._adapters = dict(adapters)
        self._history_limit = history_limit
        self._backend_timeout_seconds = backend_timeout_seconds
        self._clock = clock

    def admit(self, request: ChatRequest) -> ChatStream:
        """Run the quota gate and return the request's event stream.

        Raises QuotaExceeded before any conversation write or backend call.
        """
        if not request.message.strip():
            raise ValueError("message must not be empty")

        stream = ChatStream(self, request)
        stream.state = OrchestratorState.GATING
        decision = self._gate.check(request.account_id, request.role, request.model)
        if not decision.allowed:
            stream.state = OrchestratorState.ERRORED
            raise QuotaExceeded(decision)
        stream.decision = decision
        return stream

    def adapter_for(self, model: str) -> BackendAdapter:
        variant = self._catalog.variant(model)
        adapter = self._adapters.get(variant)
        if adapter is None:
            raise BackendUnavailable(f"No backend configured for {model}")
        return adapter


class ChatStream:
    """The outward events of one admitted request.

    Single consumer, pull-based: a fragment is requested from the backend only
    when the consumer asks for the next event. Closing the iterator closes the
    backend stream.
    """

    def __init__(self, orchestrator: ChatOrchestrator, request: ChatRequest):
        self._orchestrator = orchestrator
        self.request = request
        self.state = OrchestratorState.IDLE
        self.decision: QuotaDecision | None = None
        self.session_id: str | None = None
        self._consumed = False

    async def sse(self) -> AsyncIterator[str]:
        async with aclosing(self.events()) as events:
            async for event in events:
                yield format_sse(event)

    async def events(self) -> AsyncIterator[OutwardEvent]:
        if self._consumed:
            raise RuntimeError("A chat stream can only be consumed once")
        self._consumed = True

        orchestrator = self._orchestrator
        request = self.request
        try:
            self.state = OrchestratorState.DISPATCHING
            conversations = orchestrator._conversations
            self.session_id = conversations.ensure_session(
                request.session_id,
                request.account_id,
                title=default_title(request.message),
            )
            turn_id = conversations.append_turn(self.session_id, "user", request.message)
            turns = conversations.load_recent_turns(self.session_id, orchestrator._history_limit)
            adapter = orchestrator.adapter_for(request.model)
            normalized = build_request(orchestrator._catalog, request.model, request.mode, turns)

            yield SessionStarted(conversation_id=self.session_id, turn_id=turn_id)

            self.state = OrchestratorState.STREAMING
            parts: list[str] = []
            usage: Usage | None = None
            async with aclosing(self._pull(adapter.stream(normalized))) as items:
                async for item in items:
                    if isinstance(item, Fragment):
                        parts.append(item.text)
                        yield Token(item.text)
                    else:
                        usage = item
            if usage is None:
                raise BackendUnavailable("Model backend ended the stream without usage data")

            self.state = OrchestratorState.FINALIZING
            cost = estimate_cost_cents(orchestrator._catalog, request.model, usage.input_tokens, usage.output_tokens)
            conversations.append_turn(
                self.session_id,
                "assistant",
                "".join(parts),
                model=request.model,
                tokens_used=usage.total_tokens,
                cost_cents=cost,
            )
            self._record_usage(usage, cost)

            self.state = OrchestratorState.DONE
            logger.info(
                f"Chat completed: account={request.account_id}, model={request.model}, "
                f"session={self.session_id}, tokens={usage.total_tokens}, cost={cost}c"
            )
            yield Completed(tokens=usage.total_tokens, cost=cost)

        except (GeneratorExit, asyncio.CancelledError):
            logger.info(f"Chat cancelled by consumer in state {self.state.value}: account={request.account_id}")
            self.state = OrchestratorState.ERRORED
            raise
        except GatewayError as ex:
            logger.warning(f"Chat failed in state {self.state.value}: {type(ex).__name__}: {ex}")
            self.state = OrchestratorState.ERRORED
            yield Failed(message=str(ex))
        except Exception:
            logger.exception(f"Chat failed in state {self.state.value}")
            self.state = OrchestratorState.ERRORED
            yield Failed(message=_UNEXPECTED_ERROR)

    async def _pull(self, items: AsyncIterator[Fragment | Usage]) -> AsyncIterator[Fragment | Usage]:
        """Forward items from the backend, bounded by one wall-clock deadline."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._orchestrator._backend_timeout_seconds
        async with aclosing(items):
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        item = await anext(items)
                except StopAsyncIteration:
                    return
                except TimeoutError:
                    raise BackendUnavailable("Backend request timed out") from None
                yield item

    def _record_usage(self, usage: Usage, cost: int) -> None:
        request = self.request
        try:
            self._orchestrator._ledger.increment_usage(
                request.account_id,
                self._orchestrator._clock().date(),
                request.model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                requests=1,
                cost_cents=cost,
            )
        except LedgerWriteFailure as ex:
            logger.warning(f"Usage not recorded for a delivered response: {ex}")
