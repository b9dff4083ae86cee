# SPDX-License-Identifier: MIT

import asyncio
import json
import unittest
from typing import Any, Dict, List

from bridge_library.messages import CompletionResult, ToolCall
from bridge_library.streaming import (
    DONE_FRAME,
    Done,
    StreamNormalizer,
    TextDelta,
    ToolCallDelta,
    Unrecognized,
    collect,
    iter_sse_data,
)


async def _aiter(items):
    for item in items:
        yield item


def _frames(normalizer: StreamNormalizer, events) -> List[str]:
    async def run() -> List[str]:
        return [frame async for frame in normalizer.frames(_aiter(events))]

    return asyncio.run(run())


def _decode(frames: List[str]) -> List[Dict[str, Any]]:
    assert frames[-1] == DONE_FRAME
    return [json.loads(frame[len("data: "):]) for frame in frames[:-1]]


class StreamNormalizerTest(unittest.TestCase):
    def test_text_stream_ends_with_finish_and_done(self) -> None:
        normalizer = StreamNormalizer("gemini-3-flash", request_id="chatcmpl-test")
        usage = {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
        chunks = _decode(
            _frames(
                normalizer,
                [TextDelta("Hel"), TextDelta(""), Unrecognized("junk"), TextDelta("lo"), Done("stop", usage)],
            )
        )

        self.assertEqual(len(chunks), 3)
        self.assertEqual(chunks[0]["choices"][0]["delta"], {"role": "assistant", "content": "Hel"})
        self.assertEqual(chunks[1]["choices"][0]["delta"], {"content": "lo"})
        self.assertEqual(chunks[-1]["choices"][0]["finish_reason"], "stop")
        self.assertEqual(chunks[-1]["usage"], usage)
        for chunk in chunks:
            self.assertEqual(chunk["id"], "chatcmpl-test")
            self.assertEqual(chunk["object"], "chat.completion.chunk")
            self.assertEqual(chunk["model"], "gemini-3-flash")

    def test_no_content_chunk_is_empty(self) -> None:
        chunks = _decode(
            _frames(StreamNormalizer("m"), [TextDelta(""), TextDelta("a"), TextDelta(""), Done()])
        )
        for chunk in chunks[:-1]:
            self.assertTrue(chunk["choices"][0]["delta"].get("content"))

    def test_tool_calls_force_tool_calls_finish(self) -> None:
        calls = [ToolCall("call_a", "read", '{"path": "x"}'), ToolCall("call_b", "ls", "{}")]
        chunks = _decode(
            _frames(StreamNormalizer("m"), [ToolCallDelta(c) for c in calls] + [Done("stop")])
        )

        first = chunks[0]["choices"][0]["delta"]["tool_calls"][0]
        second = chunks[1]["choices"][0]["delta"]["tool_calls"][0]
        self.assertEqual((first["index"], first["id"]), (0, "call_a"))
        self.assertEqual((second["index"], second["id"]), (1, "call_b"))
        self.assertEqual(first["function"]["arguments"], '{"path": "x"}')
        self.assertEqual(chunks[-1]["choices"][0]["finish_reason"], "tool_calls")

    def test_missing_done_still_finishes(self) -> None:
        chunks = _decode(_frames(StreamNormalizer("m"), [TextDelta("hi")]))
        self.assertEqual(chunks[-1]["choices"][0]["finish_reason"], "stop")
        self.assertNotIn("usage", chunks[-1])

    def test_completion_shape(self) -> None:
        completion = StreamNormalizer("m", request_id="chatcmpl-1").completion(
            CompletionResult(text="", tool_calls=[ToolCall("c1", "f", "{}")], finish_reason="tool_calls")
        )
        message = completion["choices"][0]["message"]
        self.assertIsNone(message["content"])
        self.assertEqual(message["tool_calls"][0]["function"]["name"], "f")
        self.assertNotIn("index", message["tool_calls"][0])
        self.assertEqual(completion["usage"]["total_tokens"], 0)


class CollectTest(unittest.TestCase):
    def test_collect_concatenates_and_maps_tool_finish(self) -> None:
        result = asyncio.run(
            collect(
                _aiter(
                    [
                        TextDelta("a"),
                        TextDelta("b"),
                        ToolCallDelta(ToolCall("c", "f")),
                        Done("stop", {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}),
                    ]
                )
            )
        )
        self.assertEqual(result.text, "ab")
        self.assertEqual(result.finish_reason, "tool_calls")
        self.assertEqual(result.usage["total_tokens"], 2)

    def test_iter_sse_data_stops_at_done(self) -> None:
        lines = ["event: message", "", "data: {\"a\": 1}", ": comment", "data: [DONE]", "data: {\"b\": 2}"]

        async def run() -> List[str]:
            return [data async for data in iter_sse_data(_aiter(lines))]

        self.assertEqual(asyncio.run(run()), ['{"a": 1}'])


if __name__ == "__main__":
    unittest.main()
