from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import openai

from chat_gateway.catalog import BackendVariant, ModelCatalog
from chat_gateway.storage.models import ConversationTurn

_DEFAULT_TEMPERATURE = 0.7
_DEFAULT_TOP_P = 1.0
_DEFAULT_MAX_OUTPUT_TOKENS = {
    BackendVariant.TURN_BASED: 2048,
    BackendVariant.STRUCTURED: 32_768,
}


@dataclass(frozen=True)
class NormalizedRequest:
    model: str
    turns: tuple[ConversationTurn, ...]
    temperature: float = _DEFAULT_TEMPERATURE
    top_p: float = _DEFAULT_TOP_P
    max_output_tokens: int = 2048
    reasoning_effort: str | None = None
    verbosity: str | None = None


@dataclass(frozen=True)
class Fragment:
    text: str


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


StreamItem = Fragment | Usage


@runtime_checkable
class BackendAdapter(Protocol):
    variant: BackendVariant

    def stream(self, request: NormalizedRequest) -> AsyncIterator[StreamItem]:
        """Yield text fragments in generation order, then exactly one Usage.

        Provider errors are raised as chat_gateway.errors.BackendError subclasses.
        """
        ...


def build_request(
    catalog: ModelCatalog,
    model: str,
    mode: str,
    turns: Sequence[ConversationTurn],
) -> NormalizedRequest:
    variant = catalog.variant(model)
    tuning = catalog.tuning(model, mode)
    return NormalizedRequest(
        model=model,
        turns=tuple(turns),
        temperature=tuning.temperature if tuning.temperature is not None else _DEFAULT_TEMPERATURE,
        top_p=tuning.top_p if tuning.top_p is not None else _DEFAULT_TOP_P,
        max_output_tokens=tuning.max_output_tokens or _DEFAULT_MAX_OUTPUT_TOKENS[variant],
        reasoning_effort=tuning.reasoning_effort,
        verbosity=tuning.verbosity,
    )


def create_client(api_key: str, *, base_url: str | None = None, timeout: float = 120.0) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


def create_adapter(variant: BackendVariant, client: openai.AsyncOpenAI) -> BackendAdapter:
    """Factory: one adapter per backend variant."""
    if variant is BackendVariant.TURN_BASED:
        from chat_gateway.providers.chat_completions_provider import ChatCompletionsAdapter
        return ChatCompletionsAdapter(client)
    if variant is BackendVariant.STRUCTURED:
        from chat_gateway.providers.responses_provider import ResponsesAdapter
        return ResponsesAdapter(client)
    raise ValueError(f"Unknown backend variant: {variant!r}")


def create_adapters(client: openai.AsyncOpenAI) -> dict[BackendVariant, BackendAdapter]:
    return {variant: create_adapter(variant, client) for variant in BackendVariant}
