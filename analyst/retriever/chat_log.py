"""Per-document conversation history on top of the document store."""

from typing import List, Optional

from ..common.document_store import DocumentStore
from ..common.schemas import ChatMessage, Role


class ChatLog:
    """Append-only chat turns, read back oldest first for one document."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def append_user(self, document_name: str, content: str) -> ChatMessage:
        message = ChatMessage(role=Role.USER, content=content)
        self._store.append_message(document_name, message)
        return message

    def append_assistant(self, document_name: str, content: str, sources: Optional[List[str]] = None) -> ChatMessage:
        message = ChatMessage(role=Role.ASSISTANT, content=content, sources=list(sources or []))
        self._store.append_message(document_name, message)
        return message

    def history(self, document_name: str) -> List[ChatMessage]:
        # The store already degrades a failed read to []
        return self._store.list_messages(document_name)
