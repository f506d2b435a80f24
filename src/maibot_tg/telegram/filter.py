"""Per-user / per-chat admission policy for incoming Telegram messages."""

from maibot_tg.config import ChatFilter, MessageFilterConfig
from maibot_tg.models.telegram import Message


def chat_id_allowed(rule: ChatFilter, chat_id: int) -> bool:
    listed = chat_id in rule.chat_ids
    return listed if rule.mode == "whitelist" else not listed


class MessageFilter:
    def __init__(self, config: MessageFilterConfig):
        self._config = config

    def allows(self, message: Message) -> bool:
        """Banned senders never pass; otherwise the private or group rule decides."""
        sender = message.from_user
        if sender is not None and sender.id in self._config.banned_users:
            return False
        rule = self._config.private if message.chat.is_private else self._config.groups
        return chat_id_allowed(rule, message.chat.id)
