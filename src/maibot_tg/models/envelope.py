"""
MessageBase envelope — the platform-agnostic message exchanged with MaiBot.

Wire shape::

    {
      "message_info": {"platform": ..., "message_id": ..., "time": ..., "user_info": {...}, ...},
      "message_segment": {"type": "seglist", "data": [{"type": "text", "data": "hi"}, ...]},
      "raw_message": "hi"
    }

Empty optional fields are omitted from the wire.
"""

import logging
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, SerializeAsAny, ValidationError, field_validator, model_serializer

from maibot_tg.errors import NotASegListError

logger = logging.getLogger(__name__)

SEGLIST = "seglist"


class WireModel(BaseModel):
    """Drops the fields named in ``omit_if_empty`` when they hold an empty/default value."""

    omit_if_empty: ClassVar[frozenset[str]] = frozenset()

    @model_serializer(mode="wrap")
    def _drop_empty(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        return {
            key: value
            for key, value in data.items()
            if not (key in self.omit_if_empty and _is_empty(value))
        }


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    if isinstance(value, (int, float)):
        return value == 0
    return False


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

class Segment(BaseModel):
    """A typed content unit. Used as-is for unrecognized types (data kept opaque)."""
    type: str
    data: Any = None


class TextSegment(Segment):
    type: Literal["text"] = "text"
    data: str


class ImageSegment(Segment):
    """Base64-encoded image."""
    type: Literal["image"] = "image"
    data: str


class VoiceSegment(Segment):
    """Base64-encoded WAV audio."""
    type: Literal["voice"] = "voice"
    data: str


class EmojiSegment(Segment):
    type: Literal["emoji"] = "emoji"
    data: str


class AtSegment(Segment):
    """Mention; data is the mentioned user id."""
    type: Literal["at"] = "at"
    data: str


class ReplySegment(Segment):
    """Reply marker; data is the referenced message id."""
    type: Literal["reply"] = "reply"
    data: str


LEAF_TYPES: dict[str, type[Segment]] = {
    "text": TextSegment,
    "image": ImageSegment,
    "voice": VoiceSegment,
    "emoji": EmojiSegment,
    "at": AtSegment,
    "reply": ReplySegment,
}


def parse_leaf(raw: Any) -> Segment:
    """Validate one leaf segment. Unknown types become an opaque Segment.

    Raises ValueError (pydantic's ValidationError is one) when the entry is not a
    segment object, when a known type carries the wrong data, or on a nested seglist.
    """
    if isinstance(raw, Segment):
        if isinstance(raw, SegList):
            raise ValueError("seglist cannot be nested")
        return raw
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise ValueError(f"not a segment object: {raw!r:.80}")
    seg_type = raw["type"]
    if seg_type == SEGLIST:
        raise ValueError("seglist cannot be nested")
    return LEAF_TYPES.get(seg_type, Segment).model_validate(raw)


class SegList(Segment):
    """Ordered leaf segments. Malformed entries are skipped, not fatal."""

    type: Literal["seglist"] = "seglist"
    data: list[SerializeAsAny[Segment]]

    @field_validator("data", mode="before")
    @classmethod
    def _lenient_entries(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError("seglist data must be a list of segments")
        entries: list[Segment] = []
        for index, raw in enumerate(value):
            try:
                entries.append(parse_leaf(raw))
            except ValueError as e:
                logger.debug("Skipping malformed seglist entry %d: %s", index, e)
        return entries


def parse_segment(raw: Any) -> Segment:
    """Validate a top-level segment: a seglist or a single leaf."""
    if isinstance(raw, dict) and raw.get("type") == SEGLIST:
        return SegList.model_validate(raw)
    if isinstance(raw, SegList):
        return raw
    return parse_leaf(raw)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class UserInfo(WireModel):
    omit_if_empty: ClassVar[frozenset[str]] = frozenset({"user_nickname", "user_cardname"})

    platform: str
    user_id: str
    user_nickname: Optional[str] = None
    user_cardname: Optional[str] = None


class GroupInfo(WireModel):
    omit_if_empty: ClassVar[frozenset[str]] = frozenset({"group_name"})

    platform: str
    group_id: str
    group_name: Optional[str] = None


class FormatInfo(WireModel):
    omit_if_empty: ClassVar[frozenset[str]] = frozenset({"content_format", "accept_format"})

    content_format: list[str] = []
    accept_format: list[str] = []


class TemplateInfo(WireModel):
    omit_if_empty: ClassVar[frozenset[str]] = frozenset(
        {"template_items", "template_name", "template_default"}
    )

    template_items: dict[str, Any] = {}
    template_name: Optional[str] = None
    template_default: bool = False


class MessageInfo(WireModel):
    omit_if_empty: ClassVar[frozenset[str]] = frozenset({
        "message_id", "time", "user_info", "group_info",
        "format_info", "template_info", "additional_config",
    })

    platform: str
    message_id: str = ""
    time: float = 0.0
    user_info: Optional[UserInfo] = None
    group_info: Optional[GroupInfo] = None
    format_info: Optional[FormatInfo] = None
    template_info: Optional[TemplateInfo] = None
    additional_config: dict[str, Any] = {}


class MessageBase(WireModel):
    """The envelope: metadata, one segment (leaf or seglist), optional plain-text shadow."""

    omit_if_empty: ClassVar[frozenset[str]] = frozenset({"raw_message"})

    message_info: MessageInfo
    message_segment: SerializeAsAny[Segment]
    raw_message: Optional[str] = None

    @field_validator("message_segment", mode="before")
    @classmethod
    def _typed_segment(cls, value: Any) -> Any:
        return parse_segment(value)

    def segments(self) -> list[Segment]:
        """Uniform access: the seglist entries, or the single leaf wrapped in a list."""
        if isinstance(self.message_segment, SegList):
            return list(self.message_segment.data)
        return [self.message_segment]

    def seglist(self) -> list[Segment]:
        """List semantics only. Raises NotASegListError on a leaf-typed envelope."""
        if not isinstance(self.message_segment, SegList):
            raise NotASegListError(self.message_segment.type)
        return list(self.message_segment.data)

    def text_content(self) -> str:
        return "".join(seg.data for seg in self.segments() if isinstance(seg, TextSegment))

    @property
    def is_group_message(self) -> bool:
        return self.message_info.group_info is not None

    @property
    def sender_id(self) -> str:
        user = self.message_info.user_info
        return user.user_id if user else ""

    @property
    def group_id(self) -> str:
        group = self.message_info.group_info
        return group.group_id if group else ""
