"""
vector_index.py
---------------

Vector index adapters.  A vector index holds named collections of
:class:`~hybrid_rag.records.IndexedPoint` keyed by document id, each
collection declaring a fixed ``(dim, metric)`` pair when it is
created.

Every adapter checks the dimension of each point against the declared
dimension of its collection and raises
:class:`~hybrid_rag.errors.DimensionMismatch` before anything is sent
to the store.  Store failures surface as
:class:`~hybrid_rag.errors.StoreUnavailable`.

- :class:`QdrantVectorIndex` wraps ``qdrant-client`` (REST or gRPC, or
  the client's local ``:memory:`` mode).
- :class:`InMemoryVectorIndex` keeps everything in process and ranks
  with ``numpy``; it is meant for tests and small local corpora.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Set

import grpc
import httpx
import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.http import models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from .errors import DimensionMismatch, StoreUnavailable
from .records import COSINE, CollectionInfo, EmbeddingVector, IndexedPoint, ScoredId

logger = logging.getLogger(__name__)


class VectorIndex(Protocol):
    def list_collections(self) -> Set[str]:
        ...

    def delete_collection(self, name: str) -> None:
        ...

    def create_collection(self, name: str, dim: int, metric: str = COSINE) -> None:
        ...

    def upsert(self, name: str, points: Sequence[IndexedPoint]) -> None:
        ...

    def search(self, name: str, query_vector: EmbeddingVector, limit: int) -> List[ScoredId]:
        ...


def check_dimensions(expected: int, points: Sequence[IndexedPoint]) -> None:
    """Raise :class:`DimensionMismatch` for the first point of the wrong size."""
    for point in points:
        if point.vector.dim != expected:
            raise DimensionMismatch(expected, point.vector.dim, stage="upsert", doc_id=point.id)


def _check_create_args(dim: int, metric: str) -> None:
    if dim <= 0:
        raise ValueError("dim must be > 0")
    if metric.lower() != COSINE:
        raise ValueError(f"Unsupported metric: {metric}. Supported: ['{COSINE}']")


@dataclass
class _Collection:
    info: CollectionInfo
    points: Dict[int, IndexedPoint] = field(default_factory=dict)


class InMemoryVectorIndex:
    """Vector index backed by a dictionary and brute force cosine similarity."""

    def __init__(self) -> None:
        self._collections: Dict[str, _Collection] = {}

    def list_collections(self) -> Set[str]:
        return set(self._collections)

    def delete_collection(self, name: str) -> None:
        self._collections.pop(name, None)

    def create_collection(self, name: str, dim: int, metric: str = COSINE) -> None:
        _check_create_args(dim, metric)
        if name in self._collections:
            raise ValueError(f"Collection already exists: {name}")
        self._collections[name] = _Collection(CollectionInfo(name, dim, metric.lower()))

    def collection_info(self, name: str) -> CollectionInfo:
        return self._get(name).info

    def count(self, name: str) -> int:
        return len(self._get(name).points)

    def get(self, name: str, point_id: int) -> Optional[IndexedPoint]:
        return self._get(name).points.get(point_id)

    def upsert(self, name: str, points: Sequence[IndexedPoint]) -> None:
        collection = self._get(name)
        check_dimensions(collection.info.dim, points)
        for point in points:
            collection.points[point.id] = point

    def search(self, name: str, query_vector: EmbeddingVector, limit: int) -> List[ScoredId]:
        collection = self._get(name)
        if query_vector.dim != collection.info.dim:
            raise DimensionMismatch(collection.info.dim, query_vector.dim, stage="search")
        if limit <= 0 or not collection.points:
            return []
        points = list(collection.points.values())
        matrix = np.array([p.vector.values for p in points], dtype="float64")
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1
        query = np.array(query_vector.values, dtype="float64")
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            sims = np.zeros(len(points))
        else:
            sims = matrix @ query / (norms * query_norm)
        ranked = sorted(zip(points, sims.tolist()), key=lambda item: (-item[1], item[0].id))
        return [
            ScoredId(id=point.id, score=float(score), payload=dict(point.payload))
            for point, score in ranked[:limit]
        ]

    def _get(self, name: str) -> _Collection:
        if name not in self._collections:
            raise StoreUnavailable(f"Collection does not exist: {name}")
        return self._collections[name]


# local mode (":memory:" or a path) raises ValueError for a missing collection
_QDRANT_ERRORS = (
    UnexpectedResponse,
    ResponseHandlingException,
    httpx.HTTPError,
    grpc.RpcError,
    ValueError,
)


class QdrantVectorIndex:
    """Vector index adapter for Qdrant.

    Parameters
    ----------
    url : str, optional
        Server URL, e.g. ``http://localhost:6333``.
    location : str, optional
        ``":memory:"`` for the client's embedded local mode.
    api_key : str, optional
        Sent as the ``api-key`` header.
    prefer_grpc : bool
        Use the gRPC port instead of REST.
    timeout : float, optional
        Request timeout in seconds.
    client : QdrantClient, optional
        A preconfigured client; all other arguments are then ignored.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        location: Optional[str] = None,
        api_key: Optional[str] = None,
        prefer_grpc: bool = False,
        timeout: Optional[float] = None,
        client: Optional[QdrantClient] = None,
    ) -> None:
        if client is None:
            if location == ":memory:":
                client = QdrantClient(":memory:")
            elif url:
                client = QdrantClient(
                    url=url,
                    api_key=api_key,
                    prefer_grpc=prefer_grpc,
                    timeout=int(timeout) if timeout is not None else None,
                )
            else:
                raise ValueError("QdrantVectorIndex needs a url, location=':memory:' or a client")
        self._client = client
        self._dims: Dict[str, int] = {}

    @contextlib.contextmanager
    def _store_call(self, action: str, name: str) -> Iterator[None]:
        try:
            yield
        except _QDRANT_ERRORS as exc:
            raise StoreUnavailable(f"Qdrant {action} on collection {name!r} failed: {exc}") from exc

    def list_collections(self) -> Set[str]:
        with self._store_call("list", "*"):
            response = self._client.get_collections()
        return {item.name for item in response.collections}

    def delete_collection(self, name: str) -> None:
        with self._store_call("delete", name):
            self._client.delete_collection(collection_name=name)
        self._dims.pop(name, None)

    def create_collection(self, name: str, dim: int, metric: str = COSINE) -> None:
        _check_create_args(dim, metric)
        with self._store_call("create", name):
            self._client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=dim, distance=models.Distance.COSINE),
            )
        self._dims[name] = dim

    def declared_dim(self, name: str) -> int:
        if name not in self._dims:
            with self._store_call("describe", name):
                info = self._client.get_collection(collection_name=name)
            vectors = info.config.params.vectors
            if not isinstance(vectors, models.VectorParams):
                raise StoreUnavailable(f"Collection {name!r} does not use a single unnamed vector")
            self._dims[name] = vectors.size
        return self._dims[name]

    def upsert(self, name: str, points: Sequence[IndexedPoint]) -> None:
        if not points:
            return
        check_dimensions(self.declared_dim(name), points)
        structs = [
            models.PointStruct(
                id=point.id,
                vector=list(point.vector.values),
                payload=dict(point.payload),
            )
            for point in points
        ]
        with self._store_call("upsert", name):
            self._client.upsert(collection_name=name, points=structs, wait=True)

    def search(self, name: str, query_vector: EmbeddingVector, limit: int) -> List[ScoredId]:
        if limit <= 0:
            return []
        expected = self.declared_dim(name)
        if query_vector.dim != expected:
            raise DimensionMismatch(expected, query_vector.dim, stage="search")
        with self._store_call("search", name):
            response = self._client.query_points(
                collection_name=name,
                query=list(query_vector.values),
                limit=limit,
                with_payload=True,
            )
        return [
            ScoredId(id=int(point.id), score=float(point.score), payload=point.payload or {})
            for point in response.points
        ]

    def close(self) -> None:
        self._client.close()
