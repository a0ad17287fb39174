"""
Persisted record types: document chunks and chat messages.

Both are flat maps on the wire (camelCase keys, ISO-8601 UTC timestamps);
these dataclasses are their in-process form.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """ISO-8601 UTC with fixed precision, so stored timestamps sort as strings."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utcnow()


class Role(str, Enum):
    """Chat turn author"""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Chunk:
    """A bounded slice of a document's text, the unit of embedding and retrieval."""
    document_name: str
    content: str
    index: int
    total_chunks: int
    embedding: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def to_record(self) -> Dict[str, Any]:
        record = {
            "documentName": self.document_name,
            "content": self.content,
            "chunkIndex": self.index,
            "totalChunks": self.total_chunks,
            "metadata": copy.deepcopy(self.metadata),
            "createdAt": to_iso(self.created_at),
        }
        if self.embedding is not None:
            record["embedding"] = list(self.embedding)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Chunk":
        return cls(
            document_name=record["documentName"],
            content=record.get("content", ""),
            index=int(record.get("chunkIndex", 0)),
            total_chunks=int(record.get("totalChunks", 0)),
            embedding=list(record["embedding"]) if record.get("embedding") is not None else None,
            metadata=copy.deepcopy(record.get("metadata") or {}),
            created_at=_parse_timestamp(record.get("createdAt")),
        )


@dataclass
class ChatMessage:
    """One conversation turn about a document. Append-only."""
    role: Role
    content: str
    sources: List[str] = field(default_factory=list)  # assistant turns only
    timestamp: datetime = field(default_factory=utcnow)

    def to_record(self, document_name: str) -> Dict[str, Any]:
        return {
            "documentName": document_name,
            "role": Role(self.role).value,
            "content": self.content,
            "sources": list(self.sources) if self.role == Role.ASSISTANT else [],
            "timestamp": to_iso(self.timestamp),
            "createdAt": to_iso(utcnow()),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=Role(record.get("role", "user")),
            content=record.get("content", ""),
            sources=list(record.get("sources") or []),
            timestamp=_parse_timestamp(record.get("timestamp")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": Role(self.role).value,
            "content": self.content,
            "sources": list(self.sources),
            "timestamp": to_iso(self.timestamp),
        }
