"""Tests for the newline-delimited JSON stream parser."""

from __future__ import annotations

import json
import logging

from ollama_bridge.llm.stream_parser import NDJSONStreamParser, iter_stream_records


def _line(content: str, done: bool = False, **extra) -> str:
    record = {
        "model": "llama3.2:latest",
        "message": {"role": "assistant", "content": content},
        "done": done,
        **extra,
    }
    return json.dumps(record, ensure_ascii=False) + "\n"


_STREAM = (
    _line("Hel")
    + _line("lo, ")
    + _line("wörld ✓")
    + _line("", done=True, prompt_eval_count=12, eval_count=4, total_duration=1234)
).encode("utf-8")


async def _source(chunks):
    for chunk in chunks:
        yield chunk


async def _collect(chunks):
    return [r async for r in iter_stream_records(_source(chunks))]


def _summary(records):
    return [(r.content, r.done, r.eval_count) for r in records]


class TestChunkBoundaries:
    async def test_whole_stream(self):
        records = await _collect([_STREAM])
        assert _summary(records) == [
            ("Hel", False, None),
            ("lo, ", False, None),
            ("wörld ✓", False, None),
            ("", True, 4),
        ]
        assert records[-1].prompt_eval_count == 12
        assert records[-1].total_duration == 1234

    async def test_one_byte_at_a_time(self):
        whole = await _collect([_STREAM])
        split = await _collect([_STREAM[i:i + 1] for i in range(len(_STREAM))])
        assert _summary(split) == _summary(whole)

    async def test_arbitrary_boundaries(self):
        whole = await _collect([_STREAM])
        for size in (2, 3, 7, 16, 61):
            chunks = [_STREAM[i:i + size] for i in range(0, len(_STREAM), size)]
            assert _summary(await _collect(chunks)) == _summary(whole)

    async def test_unterminated_last_line(self):
        data = (_line("a") + _line("", done=True).rstrip("\n")).encode()
        records = await _collect([data])
        assert [r.done for r in records] == [False, True]

    async def test_crlf_line_endings(self):
        data = (_line("a").replace("\n", "\r\n") + _line("", done=True)).encode()
        records = await _collect([data])
        assert [r.content for r in records] == ["a", ""]


class TestMalformedLines:
    async def test_malformed_line_between_valid_lines(self, caplog):
        data = (_line("first") + "{not json at all\n" + _line("second")).encode()
        with caplog.at_level(logging.WARNING):
            records = await _collect([data])
        assert [r.content for r in records] == ["first", "second"]
        assert "Skipping malformed stream line" in caplog.text

    async def test_record_without_done_is_dropped(self):
        bad = json.dumps({"message": {"role": "assistant", "content": "x"}}) + "\n"
        data = (_line("a") + bad + _line("b")).encode()
        assert [r.content for r in await _collect([data])] == ["a", "b"]

    async def test_null_byte_content_is_dropped(self):
        data = (_line("a") + _line("bad\0chunk") + _line("b")).encode()
        assert [r.content for r in await _collect([data])] == ["a", "b"]

    async def test_missing_role_is_tolerated(self):
        line = json.dumps({"message": {"content": "x"}, "done": False}) + "\n"
        records = await _collect([line.encode()])
        assert records[0].content == "x"
        assert records[0].role is None

    async def test_negative_usage_on_final_record_is_dropped(self):
        data = (_line("a") + _line("", done=True, eval_count=-1)).encode()
        records = await _collect([data])
        assert [r.done for r in records] == [False]

    async def test_blank_lines_ignored(self):
        data = ("\n\n" + _line("a") + "   \n").encode()
        assert len(await _collect([data])) == 1


class TestTermination:
    async def test_stops_after_done_record(self):
        data = (_line("a") + _line("", done=True) + _line("late")).encode()
        records = await _collect([data])
        assert [r.content for r in records] == ["a", ""]

    async def test_source_not_read_after_done(self):
        reads = []

        async def source():
            for chunk in (_line("a").encode(), _line("", done=True).encode(), b"never"):
                reads.append(chunk)
                yield chunk

        records = [r async for r in iter_stream_records(source())]
        assert len(records) == 2
        assert b"never" not in reads

    async def test_ends_with_source(self):
        records = await _collect([_line("a").encode(), _line("b").encode()])
        assert [r.done for r in records] == [False, False]


class TestParserCounters:
    def test_counts(self):
        parser = NDJSONStreamParser()
        records = list(parser.feed((_line("a") + "oops\n" + _line("b")[:10]).encode()))
        assert len(records) == 1
        assert parser.lines_skipped == 1
        assert parser.buffer == _line("b")[:10]
        tail = list(parser.finish())
        # the dangling fragment is not valid JSON either
        assert tail == []
        assert parser.lines_skipped == 2
