import asyncio
import unittest

import openai

from chat_gateway.errors import BackendRequestRejected, BackendUnavailable
from chat_gateway.provider import Fragment, NormalizedRequest, Usage
from chat_gateway.providers.chat_completions_provider import ChatCompletionsAdapter, to_chat_messages
from chat_gateway.storage.models import ConversationTurn
from tests.providers.fakes import (
    FakeChunkStream,
    FakeCompletions,
    chat_client,
    status_error,
    text_chunk,
    usage_chunk,
)


def _request() -> NormalizedRequest:
    return NormalizedRequest(
        model="gpt-4o-mini",
        turns=(ConversationTurn("user", "hi"), ConversationTurn("assistant", "hello"), ConversationTurn("user", "more")),
        temperature=0.5,
        top_p=0.9,
        max_output_tokens=1024,
    )


async def _collect(adapter: ChatCompletionsAdapter, request: NormalizedRequest) -> list:
    return [item async for item in adapter.stream(request)]


class ToChatMessagesTests(unittest.TestCase):
    def test_roles_are_preserved_and_unknown_roles_become_user(self) -> None:
        result = to_chat_messages([
            ConversationTurn("user", "a"),
            ConversationTurn("assistant", "b"),
            ConversationTurn("system", "c"),
        ])
        self.assertEqual(
            [
                {"role": "user", "content": "a"},
                {"role": "assistant", "content": "b"},
                {"role": "user", "content": "c"},
            ],
            result,
        )


class ChatCompletionsAdapterTests(unittest.TestCase):
    def test_fragments_then_usage_in_order(self) -> None:
        stream = FakeChunkStream([text_chunk("Hel"), text_chunk("lo "), text_chunk(""), text_chunk("world"), usage_chunk(12, 3)])
        completions = FakeCompletions(stream)
        adapter = ChatCompletionsAdapter(chat_client(completions))

        items = asyncio.run(_collect(adapter, _request()))

        self.assertEqual([Fragment("Hel"), Fragment("lo "), Fragment("world"), Usage(12, 3, 0)], items)
        self.assertTrue(stream.closed)

    def test_request_carries_tuning_and_usage_option(self) -> None:
        completions = FakeCompletions(FakeChunkStream([usage_chunk(1, 1)]))
        adapter = ChatCompletionsAdapter(chat_client(completions))

        asyncio.run(_collect(adapter, _request()))

        call = completions.calls[0]
        self.assertEqual("gpt-4o-mini", call["model"])
        self.assertTrue(call["stream"])
        self.assertEqual({"include_usage": True}, call["stream_options"])
        self.assertEqual(0.5, call["temperature"])
        self.assertEqual(0.9, call["top_p"])
        self.assertEqual(1024, call["max_tokens"])
        self.assertEqual(3, len(call["messages"]))

    def test_reasoning_tokens_are_reported(self) -> None:
        completions = FakeCompletions(FakeChunkStream([text_chunk("x"), usage_chunk(10, 20, reasoning=15)]))
        items = asyncio.run(_collect(ChatCompletionsAdapter(chat_client(completions)), _request()))
        self.assertEqual(Usage(10, 20, 15), items[-1])

    def test_request_rejection_is_classified(self) -> None:
        error = status_error(openai.BadRequestError, 400, code="context_length_exceeded", message="too long")
        adapter = ChatCompletionsAdapter(chat_client(FakeCompletions(error=error)))

        with self.assertRaises(BackendRequestRejected) as ctx:
            asyncio.run(_collect(adapter, _request()))
        self.assertEqual("Message too long", str(ctx.exception))

    def test_mid_stream_failure_is_classified_and_stream_closed(self) -> None:
        error = status_error(openai.InternalServerError, 500, message="upstream")
        stream = FakeChunkStream([text_chunk("Hel")], fail_after=1, error=error)
        adapter = ChatCompletionsAdapter(chat_client(FakeCompletions(stream)))

        async def run() -> list:
            seen = []
            with self.assertRaises(BackendUnavailable):
                async for item in adapter.stream(_request()):
                    seen.append(item)
            return seen

        self.assertEqual([Fragment("Hel")], asyncio.run(run()))
        self.assertTrue(stream.closed)

    def test_consumer_close_closes_backend_stream(self) -> None:
        stream = FakeChunkStream([text_chunk("a"), text_chunk("b"), usage_chunk(1, 2)])
        adapter = ChatCompletionsAdapter(chat_client(FakeCompletions(stream)))

        async def run() -> None:
            items = adapter.stream(_request())
            self.assertEqual(Fragment("a"), await anext(items))
            await items.aclose()

        asyncio.run(run())
        self.assertTrue(stream.closed)
