"""
Envelope construction and wire codec.

``encode``/``decode`` are the only places that touch the JSON text; every other
module works with MessageBase instances.
"""

import json
import time
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from maibot_tg.errors import DecodeError, EncodeError
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
    VoiceSegment,
)


def encode(envelope: MessageBase) -> bytes:
    """Serialize to compact UTF-8 JSON. Key order follows the model, so output is deterministic."""
    try:
        payload = envelope.model_dump(mode="json")
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise EncodeError(f"Failed to convert message to JSON: {e}") from e


def decode(raw: Union[bytes, str]) -> MessageBase:
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Failed to unmarshal JSON to message: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return MessageBase.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"Invalid message envelope: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e


# ---------------------------------------------------------------------------
# Segment constructors
# ---------------------------------------------------------------------------

def text_segment(text: str) -> TextSegment:
    return TextSegment(data=text)


def image_segment(base64_data: str) -> ImageSegment:
    return ImageSegment(data=base64_data)


def voice_segment(base64_data: str) -> VoiceSegment:
    """WAV audio, base64-encoded."""
    return VoiceSegment(data=base64_data)


def emoji_segment(emoji: str) -> EmojiSegment:
    return EmojiSegment(data=emoji)


def at_segment(user_id: str) -> AtSegment:
    return AtSegment(data=user_id)


def reply_segment(message_id: str) -> ReplySegment:
    return ReplySegment(data=message_id)


def seglist(segments: Iterable[Segment]) -> SegList:
    return SegList(data=list(segments))


# ---------------------------------------------------------------------------
# Envelope constructors
# ---------------------------------------------------------------------------

def new_message_base(
    platform: str,
    message_id: str,
    user_info: Optional[UserInfo],
    group_info: Optional[GroupInfo],
    segments: Iterable[Segment],
    raw_message: Optional[str] = None,
    additional_config: Optional[dict[str, Any]] = None,
) -> MessageBase:
    """Build an envelope stamped with the current wall-clock time; content is a seglist."""
    return MessageBase(
        message_info=MessageInfo(
            platform=platform,
            message_id=message_id,
            time=time.time(),
            user_info=user_info,
            group_info=group_info,
            additional_config=additional_config or {},
        ),
        message_segment=seglist(segments),
        raw_message=raw_message,
    )


def new_simple_text_message(platform: str, message_id: str, user_id: str, text: str) -> MessageBase:
    """Private (non-group) text message."""
    user_info = UserInfo(platform=platform, user_id=user_id)
    return new_message_base(platform, message_id, user_info, None, [text_segment(text)])


def new_group_text_message(
    platform: str, message_id: str, user_id: str, group_id: str, text: str,
) -> MessageBase:
    user_info = UserInfo(platform=platform, user_id=user_id)
    group_info = GroupInfo(platform=platform, group_id=group_id)
    return new_message_base(platform, message_id, user_info, group_info, [text_segment(text)])
