"""
Telegram message <-> MessageBase envelope.

Inbound: every Telegram message becomes a seglist envelope (reply marker first).
Outbound: an envelope is flattened to one plain-text Telegram message.
"""

import base64
import logging
from typing import Awaitable, Callable, Optional

from maibot_tg.errors import TelegramAPIError
from maibot_tg.models.envelope import (
    AtSegment,
    EmojiSegment,
    GroupInfo,
    ImageSegment,
    MessageBase,
    MessageInfo,
    ReplySegment,
    Segment,
    TextSegment,
    UserInfo,
    VoiceSegment,
)
from maibot_tg.models.telegram import Message
from maibot_tg.transport.envelope import (
    emoji_segment,
    image_segment,
    reply_segment,
    seglist,
    text_segment,
)

logger = logging.getLogger(__name__)

PhotoFetcher = Callable[[str], Awaitable[bytes]]

IMAGE_PLACEHOLDER = "[image]"
STICKER_PLACEHOLDER = "[sticker]"
VOICE_PLACEHOLDER = "[voice]"
UNSUPPORTED_PLACEHOLDER = "[unsupported message]"
EMPTY_PLACEHOLDER = "[empty message]"


async def message_to_envelope(
    message: Message,
    platform: str = "telegram",
    fetch_photo: Optional[PhotoFetcher] = None,
) -> MessageBase:
    """Convert a Telegram message. ``fetch_photo(file_id)`` downloads photo bytes when given."""
    user_info: Optional[UserInfo] = None
    if message.from_user is not None:
        user_info = UserInfo(
            platform=platform,
            user_id=str(message.from_user.id),
            user_nickname=message.from_user.display_name or None,
        )

    group_info: Optional[GroupInfo] = None
    if message.chat.is_group:
        group_info = GroupInfo(
            platform=platform,
            group_id=str(message.chat.id),
            group_name=message.chat.title or None,
        )

    segments: list[Segment] = []
    if message.reply_to_message is not None:
        segments.append(reply_segment(str(message.reply_to_message.message_id)))

    if message.text:
        segments.append(text_segment(message.text))

    if message.photo:
        largest = message.photo[-1]
        segments.append(await _photo_segment(largest.file_id, fetch_photo))

    # Media transcoding is out of scope: stickers travel as their emoji, voice as a placeholder.
    if message.sticker is not None:
        if message.sticker.emoji:
            segments.append(emoji_segment(message.sticker.emoji))
        else:
            segments.append(text_segment(STICKER_PLACEHOLDER))

    if message.voice is not None:
        segments.append(text_segment(VOICE_PLACEHOLDER))

    if not segments:
        segments.append(text_segment(UNSUPPORTED_PLACEHOLDER))

    return MessageBase(
        message_info=MessageInfo(
            platform=platform,
            message_id=str(message.message_id),
            time=float(message.date),
            user_info=user_info,
            group_info=group_info,
        ),
        message_segment=seglist(segments),
        raw_message=message.text or message.caption or None,
    )


async def _photo_segment(file_id: str, fetch_photo: Optional[PhotoFetcher]) -> Segment:
    if fetch_photo is None:
        return text_segment(IMAGE_PLACEHOLDER)
    try:
        content = await fetch_photo(file_id)
    except TelegramAPIError as e:
        logger.error("Failed to get photo content: %s", e)
        return text_segment(IMAGE_PLACEHOLDER)
    return image_segment(base64.b64encode(content).decode("ascii"))


def render_envelope(envelope: MessageBase) -> tuple[str, Optional[int]]:
    """Flatten an envelope into (text, reply_to_message_id) for sendMessage."""
    parts: list[str] = []
    reply_to: Optional[int] = None
    for segment in envelope.segments():
        if isinstance(segment, TextSegment):
            parts.append(segment.data)
        elif isinstance(segment, ReplySegment):
            if segment.data.isdigit():
                reply_to = int(segment.data)
        elif isinstance(segment, AtSegment):
            parts.append(f"@{segment.data}")
        elif isinstance(segment, EmojiSegment):
            parts.append(segment.data)
        elif isinstance(segment, ImageSegment):
            parts.append(IMAGE_PLACEHOLDER)
        elif isinstance(segment, VoiceSegment):
            parts.append(VOICE_PLACEHOLDER)
        else:
            logger.info("Unsupported segment type: %s", segment.type)
    text = "".join(parts) or EMPTY_PLACEHOLDER
    return text, reply_to


def chat_id_for(envelope: MessageBase) -> int:
    """Target chat: the group for group messages, the sender's private chat otherwise."""
    raw = envelope.group_id if envelope.is_group_message else envelope.sender_id
    try:
        return int(raw)
    except ValueError as e:
        raise TelegramAPIError(
            f"Invalid chat ID {raw!r}",
            {"message_id": envelope.message_info.message_id},
        ) from e
