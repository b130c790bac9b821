from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import openai
from loguru import logger

from chat_gateway.catalog import BackendVariant
from chat_gateway.errors import BackendRequestRejected, BackendUnavailable, UnsupportedStreamingMode
from chat_gateway.provider import Fragment, NormalizedRequest, StreamItem, Usage
from chat_gateway.providers.common import classify_backend_error
from chat_gateway.storage.models import ConversationTurn

_TEXT_DELTA = "response.output_text.delta"
_EMPTY_OUTPUT = "No response"


def to_responses_input(turns: Sequence[ConversationTurn]) -> list[dict]:
    """Convert conversation turns to Responses API input items.

    Assistant turns carry an ``output_text`` block; every other role is sent
    as a user ``input_text`` block.
    """
    items: list[dict] = []
    for turn in turns:
        if turn.role == "assistant":
            items.append({"role": "assistant", "content": [{"type": "output_text", "text": turn.text}]})
        else:
            items.append({"role": "user", "content": [{"type": "input_text", "text": turn.text}]})
    return items


def extract_output_text(response) -> str:
    """Text of the first ``message`` output item, its ``output_text`` blocks joined in order."""
    message = next((item for item in response.output or [] if item.type == "message"), None)
    if message is None:
        return ""
    return "".join(block.text or "" for block in message.content or [] if block.type == "output_text")


def usage_from_response(response) -> Usage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return Usage()
    details = getattr(usage, "output_tokens_details", None)
    return Usage(
        input_tokens=max(0, usage.input_tokens or 0),
        output_tokens=max(0, usage.output_tokens or 0),
        reasoning_tokens=max(0, getattr(details, "reasoning_tokens", None) or 0),
    )


def _request_params(request: NormalizedRequest) -> dict:
    params: dict = {
        "model": request.model,
        "input": to_responses_input(request.turns),
        "max_output_tokens": request.max_output_tokens,
    }
    if request.reasoning_effort:
        params["reasoning"] = {"effort": request.reasoning_effort}
    if request.verbosity:
        params["text"] = {"verbosity": request.verbosity}
    return params


def _raise_for_event(event) -> None:
    if event.type == "error":
        message = getattr(event, "message", None) or "Model backend reported an error"
        if getattr(event, "code", None) == "context_length_exceeded":
            raise BackendRequestRejected("Message too long")
        raise BackendUnavailable(message)
    if event.type == "response.failed":
        error = getattr(event.response, "error", None)
        raise BackendUnavailable(getattr(error, "message", None) or "Model backend failed to produce a response")


class ResponsesAdapter:
    variant = BackendVariant.STRUCTURED

    def __init__(self, client: openai.AsyncOpenAI):
        self._client = client

    async def stream(self, request: NormalizedRequest) -> AsyncIterator[StreamItem]:
        params = _request_params(request)
        logger.debug(
            f"Responses request: model={request.model}, items={len(params['input'])}, "
            f"max_output_tokens={request.max_output_tokens}, reasoning={request.reasoning_effort}"
        )

        opened = False
        fallback = False
        try:
            async with self._client.responses.stream(**params) as stream:
                opened = True
                async for event in stream:
                    if event.type == _TEXT_DELTA:
                        if event.delta:
                            yield Fragment(event.delta)
                    else:
                        _raise_for_event(event)
                response = await stream.get_final_response()
        except openai.OpenAIError as ex:
            error = classify_backend_error(ex)
            if opened or not isinstance(error, UnsupportedStreamingMode):
                raise error from ex
            logger.warning(f"Streaming not available for {request.model}, using non-streaming fallback")
            fallback = True

        if fallback:
            response = await self._create_blocking(params)
            yield Fragment(extract_output_text(response) or _EMPTY_OUTPUT)

        usage = usage_from_response(response)
        logger.debug(
            f"Responses response: fallback={fallback}, input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}, reasoning_tokens={usage.reasoning_tokens}"
        )
        yield usage

    async def _create_blocking(self, params: dict):
        try:
            return await self._client.responses.create(**params, stream=False)
        except openai.OpenAIError as ex:
            raise classify_backend_error(ex) from ex
