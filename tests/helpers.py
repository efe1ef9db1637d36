from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from hybrid_rag import (
    Document,
    EmbeddingVector,
    InMemoryVectorIndex,
    IndexedPoint,
    ScoredId,
    StoreUnavailable,
)

EmbedResult = Union[Sequence[float], Exception]


class FakeEmbedder:
    """Returns canned vectors per text; an Exception value is raised instead."""

    model_name = "fake-model"

    def __init__(
        self,
        vectors: Optional[Dict[str, EmbedResult]] = None,
        default: Optional[Callable[[str], EmbedResult]] = None,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = default
        self.calls: List[str] = []
        self._lock = threading.Lock()
        self.closed = False

    def embed(self, text: str) -> EmbeddingVector:
        with self._lock:
            self.calls.append(text)
        if text in self.vectors:
            result = self.vectors[text]
        elif self.default is not None:
            result = self.default(text)
        else:
            raise AssertionError(f"unexpected embed call: {text!r}")
        if isinstance(result, Exception):
            raise result
        return EmbeddingVector.of(result)

    def close(self) -> None:
        self.closed = True


class StaticSource:
    def __init__(self, documents: Sequence[Document] = (), error: Optional[Exception] = None) -> None:
        self.documents = list(documents)
        self.error = error
        self.reads = 0

    def read(self) -> List[Document]:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return list(self.documents)


class StaticLexicalIndex:
    def __init__(self, rows: Sequence[ScoredId] = ()) -> None:
        self.rows = list(rows)
        self.calls: List[tuple] = []

    def search(self, query_text: str, limit: int) -> List[ScoredId]:
        self.calls.append((query_text, limit))
        return self.rows[:limit]


class StaticVectorIndex:
    """Search-only vector index returning canned rows."""

    def __init__(self, rows: Sequence[ScoredId] = ()) -> None:
        self.rows = list(rows)
        self.calls: List[tuple] = []

    def search(self, name: str, query_vector: EmbeddingVector, limit: int) -> List[ScoredId]:
        self.calls.append((name, query_vector, limit))
        return self.rows[:limit]


class RecordingVectorIndex(InMemoryVectorIndex):
    """In-memory index that logs calls and can fail a chosen upsert call."""

    def __init__(self, fail_on_upsert: Optional[int] = None) -> None:
        super().__init__()
        self.fail_on_upsert = fail_on_upsert
        self.closed = False
        self.calls: List[tuple] = []
        self.upsert_sizes: List[int] = []

    def list_collections(self):
        self.calls.append(("list",))
        return super().list_collections()

    def delete_collection(self, name: str) -> None:
        self.calls.append(("delete", name))
        super().delete_collection(name)

    def create_collection(self, name: str, dim: int, metric: str = "cosine") -> None:
        self.calls.append(("create", name, dim, metric))
        super().create_collection(name, dim, metric)

    def upsert(self, name: str, points: Sequence[IndexedPoint]) -> None:
        self.calls.append(("upsert", name, len(points)))
        if self.fail_on_upsert is not None and len(self.upsert_sizes) == self.fail_on_upsert:
            raise StoreUnavailable("connection reset")
        super().upsert(name, points)
        self.upsert_sizes.append(len(points))

    def close(self) -> None:
        self.closed = True


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        self.conn.executed.append((query, params))
        if self.conn.execute_error is not None:
            raise self.conn.execute_error

    def fetchall(self) -> List[tuple]:
        return list(self.conn.rows)


class FakeConnection:
    def __init__(self, rows: Sequence[tuple] = (), execute_error: Optional[Exception] = None) -> None:
        self.rows = list(rows)
        self.execute_error = execute_error
        self.executed: List[tuple] = []
        self.closed = False

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.closed = True

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)


class FakeConnect:
    """Stands in for ``psycopg.connect``."""

    def __init__(self, connection: Optional[FakeConnection] = None, error: Optional[Exception] = None) -> None:
        self.connection = connection or FakeConnection()
        self.error = error
        self.calls: List[tuple] = []

    def __call__(self, dsn: str, **kwargs: Any) -> FakeConnection:
        self.calls.append((dsn, kwargs))
        if self.error is not None:
            raise self.error
        return self.connection


def docs(*items: tuple) -> List[Document]:
    """Build documents from ``(id, text)`` pairs."""
    return [Document(id=doc_id, text=text, payload={"search_text": text}) for doc_id, text in items]
