from __future__ import annotations

import json

import pytest

from tickstream.runtime.frames import (
    DataLineStyle,
    EventPayload,
    decode_update,
    encode_frame,
    make_update_payload,
    parse_frames,
    style_for,
)


def test_scalar_frames_use_spaced_data_lines():
    frame = encode_frame(EventPayload.single("timestamp", "2024-05-01T12:00:00.123Z"))
    assert frame == "event:timestamp\ndata: 2024-05-01T12:00:00.123Z\n\n"


def test_template_frames_use_compact_data_lines():
    payload = EventPayload("template", ("<h1>Please wait...</h1>", "<p>x</p>"))
    assert encode_frame(payload) == "event:template\ndata:<h1>Please wait...</h1>\ndata:<p>x</p>\n\n"
    assert style_for("template") is DataLineStyle.COMPACT
    assert style_for("console") is DataLineStyle.SPACED


def test_frame_ends_with_exactly_one_blank_line():
    frame = encode_frame(EventPayload.single("console", ""))
    assert frame == "event:console\ndata: \n\n"
    assert frame.endswith("\n\n") and not frame.endswith("\n\n\n")


def test_frame_with_no_data_lines_is_still_terminated():
    assert encode_frame(EventPayload("console", ())) == "event:console\n\n"


@pytest.mark.parametrize("event_type", ["", "Time", "time stamp", "update1", "a\nb"])
def test_invalid_event_types_are_rejected(event_type):
    with pytest.raises(ValueError):
        EventPayload.single(event_type, "x")


@pytest.mark.parametrize("line", ["two\nlines", "carriage\rreturn"])
def test_data_lines_with_line_breaks_are_rejected(line):
    with pytest.raises(ValueError):
        EventPayload.single("console", line)


def test_payload_stores_lines_as_tuple():
    payload = EventPayload("template", ["a", "b"])
    assert payload.data_lines == ("a", "b")


def test_update_payload_is_single_json_line():
    payload = make_update_payload("func-name", 'say "hi"')
    assert payload.event_type == "update"
    assert len(payload.data_lines) == 1
    assert json.loads(payload.data_lines[0]) == {"id": "func-name", "value": 'say "hi"'}
    assert decode_update(payload) == {"id": "func-name", "value": 'say "hi"'}
    assert encode_frame(payload).startswith('event:update\ndata: {"id": "func-name"')


def test_update_value_newlines_are_escaped_by_json():
    payload = make_update_payload("member-name", "a\nb")
    assert "\n" not in payload.data_lines[0]
    assert decode_update(payload)["value"] == "a\nb"


def test_decode_update_rejects_other_event_types():
    with pytest.raises(ValueError):
        decode_update(EventPayload.single("console", "{}"))


def test_parse_frames_reads_both_data_styles():
    text = (
        "event:timestamp\ndata: 2024-05-01T12:00:00.123Z\n\n"
        "event:template\ndata:<i>a</i>\ndata:<b>b</b>\n\n"
        "event: console\ndata: hello world\n\n"
    )
    frames = parse_frames(text)
    assert [f.event_type for f in frames] == ["timestamp", "template", "console"]
    assert frames[0].data_lines == ("2024-05-01T12:00:00.123Z",)
    assert frames[1].data_lines == ("<i>a</i>", "<b>b</b>")
    assert frames[2].data_lines == ("hello world",)


def test_parse_frames_ignores_unterminated_tail():
    text = "event:console\ndata: done\n\nevent:console\ndata: partial"
    frames = parse_frames(text)
    assert len(frames) == 1
    assert frames[0].data_lines == ("done",)


def test_parse_frames_rejects_data_outside_event():
    with pytest.raises(ValueError):
        parse_frames("data: orphan\n\n")


def test_parse_frames_rejects_unknown_fields():
    with pytest.raises(ValueError):
        parse_frames("event:console\nretry: 10\n\n")


def test_encoded_frames_parse_back():
    payloads = [
        EventPayload.single("timestamp", "2024-05-01T12:00:00.123Z"),
        EventPayload("template", ("<p>one</p>", "<p>two</p>")),
        make_update_payload("func-name", "quick brown fox"),
    ]
    assert parse_frames("".join(encode_frame(p) for p in payloads)) == payloads
