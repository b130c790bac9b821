from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import openai
from loguru import logger

from chat_gateway.catalog import BackendVariant
from chat_gateway.provider import Fragment, NormalizedRequest, StreamItem, Usage
from chat_gateway.providers.common import classify_backend_error, close_stream
from chat_gateway.storage.models import ConversationTurn


def to_chat_messages(turns: Sequence[ConversationTurn]) -> list[dict]:
    """Convert conversation turns to Chat Completions messages."""
    return [
        {"role": "assistant" if turn.role == "assistant" else "user", "content": turn.text}
        for turn in turns
    ]


def _usage_from_chunk(usage) -> Usage:
    details = getattr(usage, "completion_tokens_details", None)
    return Usage(
        input_tokens=max(0, usage.prompt_tokens or 0),
        output_tokens=max(0, usage.completion_tokens or 0),
        reasoning_tokens=max(0, getattr(details, "reasoning_tokens", None) or 0),
    )


class ChatCompletionsAdapter:
    variant = BackendVariant.TURN_BASED

    def __init__(self, client: openai.AsyncOpenAI):
        self._client = client

    async def stream(self, request: NormalizedRequest) -> AsyncIterator[StreamItem]:
        messages = to_chat_messages(request.turns)
        logger.debug(
            f"Chat Completions request: model={request.model}, messages={len(messages)}, "
            f"max_tokens={request.max_output_tokens}"
        )
        try:
            stream = await self._client.chat.completions.create(
                model=request.model,
                messages=messages,
                stream=True,
                stream_options={"include_usage": True},
                temperature=request.temperature,
                top_p=request.top_p,
                max_tokens=request.max_output_tokens,
            )
        except openai.OpenAIError as ex:
            raise classify_backend_error(ex) from ex

        usage = Usage()
        fragments = 0
        try:
            async for chunk in stream:
                choice = chunk.choices[0] if chunk.choices else None
                delta = choice.delta if choice is not None else None
                content = delta.content if delta is not None else None
                if content:
                    fragments += 1
                    yield Fragment(content)

                # The usage chunk is the last one and has no choices.
                if getattr(chunk, "usage", None):
                    usage = _usage_from_chunk(chunk.usage)
        except openai.OpenAIError as ex:
            raise classify_backend_error(ex) from ex
        finally:
            await close_stream(stream)

        logger.debug(
            f"Chat Completions response: fragments={fragments}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        yield usage
