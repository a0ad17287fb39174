"""
Document Store

Persists chunks, chat messages and extracted reports as flat records in
named collections. The backend is pluggable: an in-memory dict for tests and
single-process use, or one JSON file per collection on disk.

Ordered reads are only served for (collection, field) pairs declared as
indexed. Asking for any other ordering raises StorageError, the same way a
hosted document database rejects a query that has no composite index.

Batch writes (add_many) are all-or-nothing, so a document's chunk set is
either stored whole or not at all. Records are deep-copied on the way in and
out; nothing a caller holds aliases stored state.
"""

import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .config import StoreConfig
from .errors import StorageError
from .schemas import Chunk, ChatMessage, to_iso, utcnow

logger = logging.getLogger("analyst.common.document_store")

CHUNKS_COLLECTION = "market_docs"
MESSAGES_COLLECTION = "chat_messages"
REPORTS_COLLECTION = "market_reports"

DEFAULT_INDEXES: FrozenSet[Tuple[str, str]] = frozenset({
    (MESSAGES_COLLECTION, "timestamp"),
    (REPORTS_COLLECTION, "extractedAt"),
})


def _new_id() -> str:
    return uuid.uuid4().hex


def _select(
    records: Iterable[Dict[str, Any]],
    where: Optional[Dict[str, Any]],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
) -> List[Dict[str, Any]]:
    """Equality filter, then a stable sort on one field, then limit."""
    selected = [
        copy.deepcopy(r) for r in records
        if not where or all(r.get(k) == v for k, v in where.items())
    ]
    if order_by:
        # Records without the field sort first (ascending)
        def sort_key(r):
            value = r.get(order_by)
            return (0, "") if value is None else (1, value)

        selected.sort(key=sort_key, reverse=descending)
    if limit is not None:
        selected = selected[:max(0, limit)]
    return selected


class RecordBackend(ABC):
    """Collection-of-records storage with equality filters and indexed ordering."""

    def __init__(self, indexes: Optional[Iterable[Tuple[str, str]]] = None):
        self.indexes = frozenset(indexes) if indexes is not None else DEFAULT_INDEXES

    def _check_index(self, collection: str, order_by: Optional[str]) -> None:
        if order_by and (collection, order_by) not in self.indexes:
            raise StorageError(
                f"No index for ordering {collection} by {order_by}; "
                f"declare ({collection!r}, {order_by!r}) as an index"
            )

    @abstractmethod
    def add(self, collection: str, record: Dict[str, Any]) -> str:
        """Store a record and return its generated id."""

    @abstractmethod
    def add_many(self, collection: str, records: List[Dict[str, Any]]) -> List[str]:
        """Store every record or none of them; ids in input order."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one record by id, or None."""

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Records matching every ``where`` equality, optionally ordered."""


class InMemoryBackend(RecordBackend):
    """Process-local backend. Records are copied on the way in and out."""

    def __init__(self, indexes: Optional[Iterable[Tuple[str, str]]] = None):
        super().__init__(indexes)
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def add(self, collection: str, record: Dict[str, Any]) -> str:
        return self.add_many(collection, [record])[0]

    def add_many(self, collection: str, records: List[Dict[str, Any]]) -> List[str]:
        # Copies are built before the lock so a bad record leaves nothing behind
        stamped = [{**copy.deepcopy(r), "id": _new_id()} for r in records]
        with self._lock:
            self._collections.setdefault(collection, []).extend(stamped)
        return [r["id"] for r in stamped]

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for record in self._collections.get(collection, []):
                if record["id"] == record_id:
                    return copy.deepcopy(record)
        return None

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        self._check_index(collection, order_by)
        with self._lock:
            records = list(self._collections.get(collection, []))
        return _select(records, where, order_by, descending, limit)


class JsonFileBackend(RecordBackend):
    """
    One JSON file per collection under ``directory``.

    Each collection is loaded on first use and rewritten in full on every
    write. Ingestion writes a document's chunks with one add_many, so the
    file is rewritten once per document, not once per chunk.
    """

    def __init__(self, directory: Path, indexes: Optional[Iterable[Tuple[str, str]]] = None):
        super().__init__(indexes)
        self._dir = Path(directory).expanduser()
        self._cache: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _path(self, collection: str) -> Path:
        return self._dir / f"{collection}.json"

    def _load(self, collection: str) -> List[Dict[str, Any]]:
        if collection in self._cache:
            return self._cache[collection]

        path = self._path(collection)
        if not path.exists():
            records = []
        else:
            try:
                with open(path) as f:
                    records = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                raise StorageError(f"Failed to read {path}: {e}") from e
            if not isinstance(records, list):
                raise StorageError(f"Malformed collection file {path}: expected a list")

        self._cache[collection] = records
        return records

    def _save(self, collection: str) -> None:
        path = self._path(collection)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            with open(tmp, "w") as f:
                json.dump(self._cache[collection], f, default=str)
            tmp.replace(path)
        except (IOError, OSError, TypeError) as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def add(self, collection: str, record: Dict[str, Any]) -> str:
        return self.add_many(collection, [record])[0]

    def add_many(self, collection: str, records: List[Dict[str, Any]]) -> List[str]:
        stamped = [{**copy.deepcopy(r), "id": _new_id()} for r in records]
        with self._lock:
            existing = self._load(collection)
            before = len(existing)
            existing.extend(stamped)
            try:
                self._save(collection)
            except StorageError:
                del existing[before:]
                raise
        return [r["id"] for r in stamped]

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for record in self._load(collection):
                if record.get("id") == record_id:
                    return copy.deepcopy(record)
        return None

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        self._check_index(collection, order_by)
        with self._lock:
            records = list(self._load(collection))
        return _select(records, where, order_by, descending, limit)


def create_backend(config: StoreConfig) -> RecordBackend:
    """Build the backend named by ``config.backend``."""
    backend = (config.backend or "memory").lower()
    if backend == "memory":
        return InMemoryBackend()
    if backend == "json":
        return JsonFileBackend(Path(config.path))
    raise ValueError(f"Unknown store backend: {config.backend!r} (expected 'memory' or 'json')")


class DocumentStore:
    """
    Chunk, chat-message and report persistence keyed by document name.

    Writes surface StorageError. Chat-history reads never do: an unavailable
    ordering index or a failing backend yields an empty history, and a
    malformed message record is skipped.
    """

    def __init__(self, backend: Optional[RecordBackend] = None):
        self._backend = backend or InMemoryBackend()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "DocumentStore":
        return cls(create_backend(config))

    @property
    def backend(self) -> RecordBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def put(self, document_name: str, chunk: Chunk) -> str:
        record = chunk.to_record()
        record["documentName"] = document_name
        try:
            return self._backend.add(CHUNKS_COLLECTION, record)
        except StorageError as e:
            raise StorageError(f"Failed to store chunk for {document_name}: {e}", chunk_index=chunk.index) from e

    def put_many(self, document_name: str, chunks: List[Chunk]) -> List[str]:
        """Store a document's chunks in one all-or-nothing write."""
        records = []
        for chunk in chunks:
            record = chunk.to_record()
            record["documentName"] = document_name
            records.append(record)
        try:
            return self._backend.add_many(CHUNKS_COLLECTION, records)
        except StorageError as e:
            raise StorageError(f"Failed to store {len(records)} chunks for {document_name}: {e}") from e

    def scan(self, document_name: Optional[str] = None) -> List[Chunk]:
        """
        Chunks of one document ordered by index, or every stored chunk
        when ``document_name`` is None.
        """
        where = {"documentName": document_name} if document_name is not None else None
        records = self._backend.query(CHUNKS_COLLECTION, where=where)
        chunks = [Chunk.from_record(r) for r in records]
        if document_name is not None:
            chunks.sort(key=lambda c: c.index)
        return chunks

    # ------------------------------------------------------------------
    # Chat messages
    # ------------------------------------------------------------------

    def append_message(self, document_name: str, message: ChatMessage) -> str:
        return self._backend.add(MESSAGES_COLLECTION, message.to_record(document_name))

    def list_messages(self, document_name: str) -> List[ChatMessage]:
        """Messages for one document, oldest first. Empty on any storage failure."""
        try:
            records = self._backend.query(
                MESSAGES_COLLECTION,
                where={"documentName": document_name},
                order_by="timestamp",
            )
        except StorageError as e:
            logger.warning("Chat history unavailable for %s: %s", document_name, e)
            return []

        messages = []
        for record in records:
            try:
                messages.append(ChatMessage.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed chat message %s for %s: %s", record.get("id"), document_name, e)
        return messages

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def add_report(self, report: Dict[str, Any]) -> str:
        now = to_iso(utcnow())
        record = {"extractedAt": now, "createdAt": now, **report}
        return self._backend.add(REPORTS_COLLECTION, record)

    def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recently extracted reports first."""
        return self._backend.query(
            REPORTS_COLLECTION,
            order_by="extractedAt",
            descending=True,
            limit=limit,
        )

    def get_report(self, report_id: str) -> Dict[str, Any]:
        record = self._backend.get(REPORTS_COLLECTION, report_id)
        if record is None:
            raise StorageError(f"Report not found: {report_id}")
        return record
