import json
import unittest

from chat_gateway.events import Completed, Failed, SessionStarted, SseDecoder, Token, format_sse, parse_event


class FormatSseTests(unittest.TestCase):
    def test_token_frame(self) -> None:
        self.assertEqual('event: token\ndata: {"text":"Hel"}\n\n', format_sse(Token("Hel")))

    def test_session_frame(self) -> None:
        frame = format_sse(SessionStarted(conversation_id="s1", turn_id="m1"))
        self.assertTrue(frame.startswith("event: session\n"))
        data = json.loads(frame.split("data: ", 1)[1])
        self.assertEqual({"sessionId": "s1", "messageId": "m1"}, data)

    def test_done_frame(self) -> None:
        data = json.loads(format_sse(Completed(tokens=42, cost=3)).split("data: ", 1)[1])
        self.assertEqual({"success": True, "tokens": 42, "cost": 3}, data)

    def test_error_frame(self) -> None:
        self.assertEqual('event: error\ndata: {"message":"boom"}\n\n', format_sse(Failed("boom")))

    def test_newlines_in_text_stay_in_one_data_line(self) -> None:
        frame = format_sse(Token("a\nb"))
        self.assertEqual(3, frame.count("\n"))


class SseDecoderTests(unittest.TestCase):
    def test_decodes_events_split_across_chunks(self) -> None:
        stream = "".join(format_sse(e) for e in [SessionStarted("s", "m"), Token("Hé"), Completed(5, 0)])
        raw = stream.encode("utf-8")
        decoder = SseDecoder()

        events = []
        for i in range(0, len(raw), 7):
            events.extend(decoder.feed(raw[i:i + 7]))

        self.assertEqual([SessionStarted("s", "m"), Token("Hé"), Completed(5, 0)], events)
        self.assertEqual("", decoder.pending)

    def test_incomplete_block_is_held(self) -> None:
        decoder = SseDecoder()
        self.assertEqual([], decoder.feed("event: token\ndata: {\"text\":\"x\"}\n"))
        self.assertEqual([Token("x")], decoder.feed("\n"))

    def test_crlf_line_endings(self) -> None:
        decoder = SseDecoder()
        self.assertEqual([Failed("no")], decoder.feed('event: error\r\ndata: {"message":"no"}\r\n\r\n'))

    def test_unknown_event_name_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            parse_event("ping", {})
