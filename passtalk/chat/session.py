"""Append-only chat transcript for one conversation."""

import logging
from dataclasses import dataclass, field

from passtalk.models import ChatMessage, ChatRole, PayloadType

logger = logging.getLogger(__name__)

GREETING = "嗨，我是 PassTalk。把账号密码告诉我，我帮你记住。"


def _greeting() -> list[ChatMessage]:
    return [ChatMessage(role=ChatRole.ASSISTANT, content=GREETING)]


@dataclass
class ChatSession:
    """Ordered messages of a conversation. Messages are never removed."""

    messages: list[ChatMessage] = field(default_factory=_greeting)

    def add_user(self, content: str) -> ChatMessage:
        return self._append(ChatMessage(role=ChatRole.USER, content=content))

    def add_assistant(
        self, content: str, payload_type: PayloadType = PayloadType.TEXT
    ) -> ChatMessage:
        return self._append(
            ChatMessage(role=ChatRole.ASSISTANT, content=content, payload_type=payload_type)
        )

    def _append(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        logger.debug(
            "%s message (%s): %d chars", message.role, message.payload_type, len(message.content)
        )
        return message

    def history(self) -> list[ChatMessage]:
        """A snapshot of the visible transcript."""
        return list(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
