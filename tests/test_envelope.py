"""Envelope model and wire codec."""

import json
import time

import pytest

from maibot_tg.errors import DecodeError, EncodeError, NotASegListError
from maibot_tg.models.envelope import (
    AtSegment,
    EmojiSegment,
    GroupInfo,
    ImageSegment,
    MessageBase,
    MessageInfo,
    ReplySegment,
    Segment,
    SegList,
    TextSegment,
    UserInfo,
)
from maibot_tg.transport.envelope import (
    at_segment,
    decode,
    emoji_segment,
    encode,
    image_segment,
    new_group_text_message,
    new_message_base,
    new_simple_text_message,
    reply_segment,
    text_segment,
)


def _leaf_envelope(segment) -> MessageBase:
    return MessageBase(
        message_info=MessageInfo(platform="x", message_id="m1", time=1.5),
        message_segment=segment,
    )


class TestWireFormat:
    def test_simple_text_scenario(self):
        env = new_simple_text_message("x", "m1", "u1", "hello")
        decoded = decode(encode(env))
        assert decoded.text_content() == "hello"
        assert decoded.is_group_message is False
        assert decoded.sender_id == "u1"
        assert decoded.group_id == ""

    def test_empty_optional_fields_are_omitted(self):
        env = new_simple_text_message("telegram", "m1", "u1", "hi")
        wire = json.loads(encode(env))
        assert set(wire) == {"message_info", "message_segment"}
        info = wire["message_info"]
        assert set(info) == {"platform", "message_id", "time", "user_info"}
        assert info["user_info"] == {"platform": "telegram", "user_id": "u1"}
        assert wire["message_segment"] == {"type": "seglist", "data": [{"type": "text", "data": "hi"}]}

    def test_populated_optional_fields_are_kept(self):
        env = new_message_base(
            "telegram", "m2",
            UserInfo(platform="telegram", user_id="u1", user_nickname="alice"),
            GroupInfo(platform="telegram", group_id="g1", group_name="Friends"),
            [text_segment("yo")],
            raw_message="yo",
            additional_config={"echo": "r1"},
        )
        wire = json.loads(encode(env))
        assert wire["raw_message"] == "yo"
        assert wire["message_info"]["user_info"]["user_nickname"] == "alice"
        assert wire["message_info"]["group_info"] == {
            "platform": "telegram", "group_id": "g1", "group_name": "Friends",
        }
        assert wire["message_info"]["additional_config"] == {"echo": "r1"}

    def test_encode_is_deterministic_and_keeps_unicode(self):
        env = new_simple_text_message("x", "m1", "u1", "你好 😀")
        assert encode(env) == encode(env)
        assert "你好 😀".encode("utf-8") in encode(env)

    def test_round_trip_mixed_segments(self):
        env = new_message_base(
            "telegram", "m3",
            UserInfo(platform="telegram", user_id="u1", user_nickname="Test User"),
            GroupInfo(platform="telegram", group_id="g1"),
            [
                reply_segment("41"),
                text_segment("Hello "),
                at_segment("user789"),
                image_segment("aGVsbG8="),
                emoji_segment("😀"),
                Segment(type="poke", data={"target": 7}),
            ],
            raw_message="Hello",
        )
        decoded = decode(encode(env))
        assert decoded == env
        assert [type(s) for s in decoded.segments()] == [
            ReplySegment, TextSegment, AtSegment, ImageSegment, EmojiSegment, Segment,
        ]

    def test_round_trip_leaf_content(self):
        env = _leaf_envelope(text_segment("solo"))
        decoded = decode(encode(env))
        assert decoded == env
        assert isinstance(decoded.message_segment, TextSegment)

    def test_encode_rejects_unserializable_extension(self):
        env = new_simple_text_message("x", "m1", "u1", "hi")
        env.message_info.additional_config["bad"] = object()
        with pytest.raises(EncodeError):
            encode(env)

    def test_constructors_stamp_current_time(self):
        before = time.time()
        env = new_group_text_message("x", "m1", "u1", "g1", "hi")
        assert before <= env.message_info.time <= time.time()
        assert env.is_group_message
        assert env.group_id == "g1"


class TestDecode:
    @pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"message_info": {}}', b"\xff\xfe"])
    def test_malformed_payload_fails(self, raw):
        with pytest.raises(DecodeError):
            decode(raw)

    def test_seglist_with_non_list_payload_fails(self):
        raw = json.dumps({
            "message_info": {"platform": "x"},
            "message_segment": {"type": "seglist", "data": "oops"},
        })
        with pytest.raises(DecodeError):
            decode(raw)

    def test_seglist_skips_malformed_entries(self):
        valid = [{"type": "text", "data": "a"}, {"type": "emoji", "data": "🙂"}, {"type": "text", "data": "b"}]
        for bad in ("junk", {"data": "no type"}, {"type": "text", "data": 5},
                    {"type": "seglist", "data": []}):
            raw = json.dumps({
                "message_info": {"platform": "x"},
                "message_segment": {"type": "seglist", "data": valid[:1] + [bad] + valid[1:]},
            })
            decoded = decode(raw)
            assert len(decoded.segments()) == len(valid)
            assert decoded.text_content() == "ab"

    def test_unknown_segment_type_is_preserved(self):
        raw = json.dumps({
            "message_info": {"platform": "x"},
            "message_segment": {"type": "dice", "data": {"value": 6}},
        })
        decoded = decode(raw)
        assert decoded.message_segment.type == "dice"
        assert decoded.message_segment.data == {"value": 6}
        assert json.loads(encode(decoded))["message_segment"] == {"type": "dice", "data": {"value": 6}}

    def test_leaf_with_wrong_data_type_fails(self):
        raw = json.dumps({
            "message_info": {"platform": "x"},
            "message_segment": {"type": "text", "data": ["not", "a", "string"]},
        })
        with pytest.raises(DecodeError):
            decode(raw)

    def test_accepts_str_frames(self):
        frame = encode(new_simple_text_message("x", "m1", "u1", "hi")).decode("utf-8")
        assert decode(frame).text_content() == "hi"


class TestAccessors:
    def test_segments_on_leaf_and_seglist(self):
        leaf = _leaf_envelope(text_segment("a"))
        assert leaf.segments() == [TextSegment(data="a")]
        listed = _leaf_envelope(SegList(data=[text_segment("a"), text_segment("b")]))
        assert [s.data for s in listed.segments()] == ["a", "b"]

    def test_seglist_requires_list_content(self):
        with pytest.raises(NotASegListError):
            _leaf_envelope(emoji_segment("x")).seglist()
        listed = _leaf_envelope(SegList(data=[text_segment("a")]))
        assert listed.seglist() == listed.segments()

    def test_text_content_concatenates_text_only(self):
        env = _leaf_envelope(SegList(data=[
            text_segment("Hello "), at_segment("u2"), text_segment("world"), image_segment("AAAA"),
        ]))
        assert env.text_content() == "Hello world"
        assert _leaf_envelope(image_segment("AAAA")).text_content() == ""

    def test_seglist_constructor_drops_nested_seglists(self):
        nested = SegList(data=[text_segment("a"), {"type": "seglist", "data": []}])
        assert nested.data == [TextSegment(data="a")]
