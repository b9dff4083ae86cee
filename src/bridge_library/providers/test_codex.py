# SPDX-License-Identifier: MIT

import asyncio
import json
import unittest
from typing import List

from bridge_library.accounts import Account
from bridge_library.errors import UpstreamError
from bridge_library.messages import messages_from_openai, tools_from_openai
from bridge_library.model_registry import lookup
from bridge_library.providers.codex_provider import CodexProvider, _TextDiffer
from bridge_library.providers.provider_interface import RequestOptions
from bridge_library.streaming import Done, TextDelta, ToolCallDelta, Unrecognized

ACCOUNT = Account(
    id="cx-0",
    provider="codex",
    email="c@example.com",
    session_token="sess-token",
)


async def _aiter(items):
    for item in items:
        yield item


def _sse(*frames) -> List[str]:
    lines = []
    for frame in frames:
        lines.append(frame if isinstance(frame, str) else "data: " + json.dumps(frame))
        lines.append("")
    return lines


def _events(provider: CodexProvider, lines: List[str]):
    async def run():
        return [event async for event in provider.iter_events(_aiter(lines))]

    return asyncio.run(run())


def _text(events) -> str:
    return "".join(e.text for e in events if isinstance(e, TextDelta))


class CodexRequestTest(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = CodexProvider()

    def test_instructions_and_input_items(self) -> None:
        messages = messages_from_openai(
            [
                {"role": "system", "content": "Rule one."},
                {"role": "system", "content": "Rule two."},
                {"role": "user", "content": "List files"},
                {
                    "role": "assistant",
                    "content": "Sure.",
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "ls", "arguments": "{}"}}
                    ],
                },
                {"role": "tool", "tool_call_id": "call_1", "content": "a.txt"},
            ]
        )
        tools = tools_from_openai(
            [{"type": "function", "function": {"name": "ls", "parameters": {"type": "object"}}}]
        )
        upstream = self.provider.build_request(
            lookup("gpt-5.2"), ACCOUNT, messages, tools, RequestOptions()
        )

        self.assertTrue(upstream.url.endswith("/codex/responses"))
        self.assertEqual(upstream.headers["Cookie"], "__Secure-next-auth.session-token=sess-token")
        self.assertEqual(upstream.headers["Accept"], "text/event-stream")
        self.assertNotIn("Authorization", upstream.headers)

        payload = upstream.json
        self.assertEqual(payload["instructions"], "Rule one.\n\nRule two.")
        self.assertTrue(payload["stream"])
        self.assertFalse(payload["store"])
        self.assertNotIn("reasoning", payload)
        self.assertEqual(
            payload["input"],
            [
                {"role": "user", "content": [{"type": "input_text", "text": "List files"}]},
                {"role": "assistant", "content": [{"type": "output_text", "text": "Sure."}]},
                {"type": "function_call", "call_id": "call_1", "name": "ls", "arguments": "{}"},
                {"type": "function_call_output", "call_id": "call_1", "output": "a.txt"},
            ],
        )
        self.assertEqual(
            payload["tools"],
            [{"type": "function", "name": "ls", "description": "", "parameters": {"type": "object"}}],
        )

    def test_reasoning_effort_for_thinking_model(self) -> None:
        upstream = self.provider.build_request(
            lookup("gpt-5.2-thinking"),
            ACCOUNT,
            messages_from_openai([{"role": "user", "content": "hi"}]),
            [],
            RequestOptions(stream=True),
        )
        self.assertEqual(upstream.json["reasoning"], {"effort": "high"})
        self.assertNotIn("instructions", upstream.json)
        self.assertNotIn("tools", upstream.json)


class CodexResponseTest(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = CodexProvider()

    def test_output_items_shape(self) -> None:
        body = json.dumps(
            {
                "status": "completed",
                "output": [
                    {"type": "reasoning", "summary": []},
                    {"type": "message", "content": [{"type": "output_text", "text": "Hi there"}]},
                ],
                "usage": {"input_tokens": 5, "output_tokens": 2},
            }
        )
        result = self.provider.parse_response(body)
        self.assertEqual(result.text, "Hi there")
        self.assertEqual(result.finish_reason, "stop")
        self.assertEqual(result.usage, {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7})

    def test_conversation_message_shape(self) -> None:
        body = json.dumps({"message": {"id": "m1", "content": {"parts": ["Legacy answer"]}}})
        result = self.provider.parse_response(body)
        self.assertEqual(result.text, "Legacy answer")
        self.assertEqual(result.finish_reason, "stop")

    def test_output_items_win_over_message(self) -> None:
        body = json.dumps(
            {
                "message": {"content": {"parts": ["old"]}},
                "output": [{"type": "message", "content": [{"type": "output_text", "text": "new"}]}],
            }
        )
        self.assertEqual(self.provider.parse_response(body).text, "new")

    def test_function_call_output_sets_tool_calls_finish(self) -> None:
        body = json.dumps(
            {
                "output": [
                    {"type": "function_call", "call_id": "call_7", "name": "ls", "arguments": '{"d": 1}'}
                ]
            }
        )
        result = self.provider.parse_response(body)
        self.assertEqual(result.finish_reason, "tool_calls")
        self.assertEqual(result.tool_calls[0].id, "call_7")
        self.assertEqual(result.tool_calls[0].arguments, '{"d": 1}')

    def test_sse_body_is_collected(self) -> None:
        body = "\n".join(
            _sse(
                {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "Hel"},
                {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "lo"},
                {"type": "response.output_text.done", "item_id": "msg_1", "text": "Hello"},
                {
                    "type": "response.completed",
                    "response": {
                        "status": "completed",
                        "output": [
                            {"type": "message", "id": "msg_1", "content": [{"type": "output_text", "text": "Hello"}]}
                        ],
                        "usage": {"input_tokens": 1, "output_tokens": 1, "total_tokens": 2},
                    },
                },
            )
        )
        result = self.provider.parse_response(body)
        self.assertEqual(result.text, "Hello")
        self.assertEqual(result.usage["total_tokens"], 2)

    def test_text_survives_request_and_response_mapping(self) -> None:
        text = "Ünïcode ✓ line one\n\tline two  "
        upstream = self.provider.build_request(
            lookup("gpt-5.2"),
            ACCOUNT,
            messages_from_openai([{"role": "user", "content": text}]),
            [],
            RequestOptions(),
        )
        sent = upstream.json["input"][0]["content"][0]["text"]
        self.assertEqual(sent, text)

        body = json.dumps(
            {"output": [{"type": "message", "content": [{"type": "output_text", "text": sent}]}]}
        )
        self.assertEqual(self.provider.parse_response(body).text, text)

        lines = _sse({"type": "response.output_text.delta", "item_id": "msg_1", "delta": sent})
        self.assertEqual(_text(_events(self.provider, lines)), text)


class CodexStreamTest(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = CodexProvider()

    def test_snapshots_yield_only_new_text(self) -> None:
        lines = _sse(
            {"message": {"id": "m1", "content": {"parts": ["He"]}}},
            {"message": {"id": "m1", "content": {"parts": ["Hello"]}}},
            {"message": {"id": "m1", "content": {"parts": ["Hello"]}}},
            {"message": {"id": "m1", "content": {"parts": ["Hello, world"]}}},
            "data: [DONE]",
        )
        events = _events(self.provider, lines)
        deltas = [e.text for e in events if isinstance(e, TextDelta)]
        self.assertEqual(deltas, ["He", "llo", ", world"])
        self.assertEqual(events[-1], Done(finish_reason=None, usage=None))

    def test_deltas_and_final_snapshot_do_not_duplicate(self) -> None:
        lines = _sse(
            {"type": "response.created", "response": {"id": "resp_1"}},
            {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "Hel"},
            "data: {not json",
            {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "lo"},
            {
                "type": "response.output_item.done",
                "item": {"type": "message", "id": "msg_1", "content": [{"type": "output_text", "text": "Hello"}]},
            },
            {
                "type": "response.completed",
                "response": {
                    "status": "completed",
                    "output": [
                        {"type": "message", "id": "msg_1", "content": [{"type": "output_text", "text": "Hello"}]}
                    ],
                    "usage": {"input_tokens": 3, "output_tokens": 2},
                },
            },
            {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "ignored"},
        )
        events = _events(self.provider, lines)

        self.assertEqual(_text(events), "Hello")
        self.assertEqual(sum(isinstance(e, Unrecognized) for e in events), 1)
        self.assertFalse([e for e in events if isinstance(e, TextDelta) and not e.text])
        self.assertEqual(
            events[-1],
            Done(finish_reason="stop", usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
        )

    def test_completed_output_is_used_when_nothing_streamed(self) -> None:
        lines = _sse(
            {
                "type": "response.completed",
                "response": {
                    "status": "incomplete",
                    "output": [{"type": "message", "content": [{"type": "output_text", "text": "Late"}]}],
                },
            }
        )
        events = _events(self.provider, lines)
        self.assertEqual(_text(events), "Late")
        self.assertEqual(events[-1].finish_reason, "length")

    def test_function_call_items_become_tool_events_once(self) -> None:
        item = {"type": "function_call", "call_id": "call_3", "name": "grep", "arguments": '{"q": "x"}'}
        lines = _sse(
            {"type": "response.output_item.done", "item": item},
            {"type": "response.completed", "response": {"status": "completed", "output": [item]}},
        )
        events = _events(self.provider, lines)
        tool_events = [e for e in events if isinstance(e, ToolCallDelta)]
        self.assertEqual(len(tool_events), 1)
        self.assertEqual(tool_events[0].tool_call.name, "grep")

    def test_error_event_raises_upstream_error(self) -> None:
        lines = _sse({"type": "error", "message": "usage limit reached"})
        with self.assertRaises(UpstreamError) as ctx:
            _events(self.provider, lines)
        self.assertIn("usage limit reached", ctx.exception.body)


class TextDifferTest(unittest.TestCase):
    def test_non_prefix_snapshot_yields_nothing(self) -> None:
        differ = _TextDiffer()
        self.assertEqual(differ.snapshot("k", "Hello"), "Hello")
        with self.assertLogs("bridge_library", level="WARNING"):
            self.assertEqual(differ.snapshot("k", "Goodbye"), "")
        self.assertEqual(differ.snapshot("k", "Hello!"), "!")

    def test_keys_are_tracked_separately(self) -> None:
        differ = _TextDiffer()
        self.assertEqual(differ.append("a", "x"), "x")
        self.assertEqual(differ.snapshot("b", "x"), "x")
        self.assertEqual(differ.snapshot("a", "xy"), "y")


if __name__ == "__main__":
    unittest.main()
