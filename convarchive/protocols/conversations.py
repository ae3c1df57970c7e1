"""Conversation store protocol: the persistent home of conversations and messages."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from convarchive.models.conversations import Attachment, Conversation, Message


@runtime_checkable
class ConversationStore(Protocol):
    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def list_messages(self, conversation_id: str) -> list[Message]: ...

    async def list_attachments(self, conversation_id: str) -> list[Attachment]: ...

    async def save_conversation(self, conversation: Conversation) -> None: ...

    async def append_message(self, message: Message) -> None: ...

    async def store_attachment(self, content_hash: str, extension: str, data: bytes) -> None: ...


__all__ = ["ConversationStore"]
