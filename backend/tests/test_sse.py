"""Tests for SSE encoding and incremental parsing."""

from ra_companion.utils.sse import (
    HEARTBEAT_FRAME,
    format_comment,
    format_sse,
    parse_sse,
)


def test_parse_single_complete_frame():
    result = parse_sse('event: chunk\ndata: {"content":"Hi"}\n\n')
    assert len(result.events) == 1
    assert result.events[0].type == "chunk"
    assert result.events[0].data == {"content": "Hi"}
    assert result.remaining == ""


def test_parse_truncated_frame_is_kept_as_remaining():
    buffer = 'event: chunk\ndata: {"a":1'
    result = parse_sse(buffer)
    assert result.events == []
    assert result.remaining == buffer


def test_parse_across_two_reads():
    first = parse_sse('event: chunk\ndata: {"a":1')
    second = parse_sse(first.remaining + "}\n\n")
    assert [e.data for e in second.events] == [{"a": 1}]
    assert second.remaining == ""


def test_parse_empty_buffer():
    result = parse_sse("")
    assert result.events == []
    assert result.remaining == ""


def test_parse_whitespace_and_comments_only():
    result = parse_sse("   \n\n: heartbeat\n\n:\n\n")
    assert result.events == []
    assert result.remaining == ""


def test_heartbeats_between_events_are_ignored():
    buffer = (
        format_sse("session", {"responseId": "abc"})
        + HEARTBEAT_FRAME
        + HEARTBEAT_FRAME
        + format_sse("chunk", {"type": "text", "content": "Hi"})
        + HEARTBEAT_FRAME
        + format_sse("done", {})
    )
    result = parse_sse(buffer)
    assert [e.type for e in result.events] == ["session", "chunk", "done"]


def test_frame_without_data_or_type_is_dropped():
    result = parse_sse('event: chunk\n\ndata: {"a":1}\n\nevent: done\ndata: {}\n\n')
    assert [e.type for e in result.events] == ["done"]


def test_invalid_json_is_dropped_without_raising():
    result = parse_sse("event: chunk\ndata: {not json}\n\nevent: done\ndata: {}\n\n")
    assert [e.type for e in result.events] == ["done"]


def test_last_event_and_data_lines_win():
    result = parse_sse('event: meta\nevent: chunk\ndata: {"a":1}\ndata: {"a":2}\n\n')
    assert result.events[0].type == "chunk"
    assert result.events[0].data == {"a": 2}


def test_escaped_newlines_inside_json_are_not_frame_boundaries():
    frame = format_sse("chunk", {"type": "text", "content": "line one\n\nline two"})
    assert frame.count("\n\n") == 1
    result = parse_sse(frame)
    assert result.events[0].data["content"] == "line one\n\nline two"


def test_any_split_point_yields_same_events():
    stream = (
        format_sse("session", {"responseId": "0b7e4a52-5a0e-4b8e-9f53-0f1c1f7c9b11"})
        + HEARTBEAT_FRAME
        + format_sse("chunk", {"type": "text", "content": "Hello {{QUOTE:1}}"})
        + format_sse("done", {})
    )
    expected = parse_sse(stream).events

    for split in range(len(stream) + 1):
        first = parse_sse(stream[:split])
        second = parse_sse(first.remaining + stream[split:])
        assert first.events + second.events == expected, split
        assert second.remaining == ""


def test_format_sse_round_trips_unicode():
    result = parse_sse(format_sse("chunk", {"type": "text", "content": "Ra \u2014 \u00e9t\u00e9"}))
    assert result.events[0].data["content"] == "Ra \u2014 \u00e9t\u00e9"


def test_format_comment():
    assert format_comment("heartbeat") == ": heartbeat\n\n"
    assert format_comment() == ":\n\n"
