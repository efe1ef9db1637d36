"""
migration.py
------------

The migration pipeline turns a document source into a freshly built
vector collection:

1. read the whole corpus from the :class:`~hybrid_rag.sources.DocumentSource`;
2. embed every document, skipping (and recording) the ones the
   provider cannot embed, and infer the collection dimension from the
   first successful embedding;
3. drop and recreate the target collection with that dimension and
   cosine distance;
4. upsert the embedded points in fixed-size batches.

Each document produces an :class:`EmbedOutcome`; the outcomes are
folded into a :class:`MigrationReport`, so the result of a run can be
inspected without reading the logs.

Per-document provider failures never abort a run.  A source failure,
a dimension change between documents, a corpus with nothing
embeddable or a failing store call do.  When nothing is embeddable the
target collection is left exactly as it was.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple, TypeVar

from .config import HybridConfig
from .embedding import EmbeddingClient
from .errors import (
    DimensionMismatch,
    NoEmbeddableDocuments,
    ProviderError,
    ProviderUnavailable,
    StoreUnavailable,
)
from .records import COSINE, Document, EmbeddingVector, IndexedPoint
from .sources import DocumentSource
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "(empty)"

T = TypeVar("T")


class SkipReason(str, Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_ERROR = "provider_error"
    EMPTY_EMBEDDING = "empty_embedding"


@dataclass(frozen=True)
class EmbedOutcome:
    """Result of embedding one document: a vector, or a skip reason."""

    document: Document
    vector: Optional[EmbeddingVector] = None
    reason: Optional[SkipReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.vector is not None


@dataclass(frozen=True)
class SkippedDocument:
    id: int
    reason: SkipReason
    detail: str = ""


@dataclass(frozen=True)
class MigrationReport:
    collection: str
    found: int
    embedded: int
    skipped: Tuple[SkippedDocument, ...]
    upserted: int
    batches: int
    dim: int

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def embedding_input(text: str) -> str:
    """Return the text sent to the provider; blank text becomes a placeholder."""
    return text if text.strip() else PLACEHOLDER_TEXT


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class _DimensionTracker:
    """The run-wide embedding dimension.  First writer wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.dim: Optional[int] = None

    def observe(self, doc_id: int, dim: int) -> None:
        with self._lock:
            if self.dim is None:
                self.dim = dim
                logger.debug("Embedding dimension set to %d by id=%d", dim, doc_id)
            elif dim != self.dim:
                raise DimensionMismatch(self.dim, dim, stage="embed", doc_id=doc_id)


class MigrationPipeline:
    """Build a vector collection from a document source.

    Parameters
    ----------
    source : DocumentSource
        Supplies the corpus.
    embedder : EmbeddingClient
        Maps document text to vectors.
    vector_index : VectorIndex
        Target store.
    config : HybridConfig, optional
        Supplies ``batch_size`` and ``max_workers``.
    collection : str
        Name of the collection to (re)build.
    """

    def __init__(
        self,
        source: DocumentSource,
        embedder: EmbeddingClient,
        vector_index: VectorIndex,
        config: Optional[HybridConfig] = None,
        *,
        collection: str = "documents",
    ) -> None:
        self.source = source
        self.embedder = embedder
        self.vector_index = vector_index
        self.config = config or HybridConfig()
        self.collection = collection

    def run(self) -> MigrationReport:
        logger.info("[1/4] Reading documents...")
        documents = self.source.read()
        logger.info("   Found %d documents.", len(documents))

        logger.info("[2/4] Generating embeddings (model=%s)...", self.embedder.model_name)
        tracker = _DimensionTracker()
        outcomes = self.embed_documents(documents, tracker)
        points = [
            IndexedPoint(id=o.document.id, vector=o.vector, payload=o.document.payload)
            for o in outcomes
            if o.ok
        ]
        skipped = tuple(
            SkippedDocument(id=o.document.id, reason=o.reason, detail=o.detail)
            for o in outcomes
            if not o.ok
        )
        if not points:
            raise NoEmbeddableDocuments(
                f"None of the {len(documents)} documents produced a usable embedding; "
                f"collection {self.collection!r} left untouched"
            )
        dim = tracker.dim
        logger.info("   Embedding dimension: %d", dim)

        logger.info("[3/4] Setting up collection %r...", self.collection)
        self._recreate_collection(dim)

        logger.info("[4/4] Upserting %d points...", len(points))
        upserted, batches = self._upsert(points)
        logger.info("   Total points upserted: %d", upserted)

        return MigrationReport(
            collection=self.collection,
            found=len(documents),
            embedded=len(points),
            skipped=skipped,
            upserted=upserted,
            batches=batches,
            dim=dim,
        )

    def embed_documents(
        self, documents: Sequence[Document], tracker: Optional[_DimensionTracker] = None
    ) -> List[EmbedOutcome]:
        """Embed ``documents`` and return one outcome per document, in source order."""
        tracker = tracker or _DimensionTracker()
        total = len(documents)
        if self.config.max_workers == 1 or total <= 1:
            return [
                self._embed_one(position, total, doc, tracker)
                for position, doc in enumerate(documents, start=1)
            ]

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="embed"
        ) as pool:
            futures: List[Future] = [
                pool.submit(self._embed_one, position, total, doc, tracker)
                for position, doc in enumerate(documents, start=1)
            ]
            try:
                return [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

    def _embed_one(
        self, position: int, total: int, document: Document, tracker: _DimensionTracker
    ) -> EmbedOutcome:
        text = embedding_input(document.text)
        try:
            vector = self.embedder.embed(text)
        except ProviderUnavailable as exc:
            logger.warning("   [SKIP] id=%d: provider unavailable: %s", document.id, exc)
            return EmbedOutcome(document, reason=SkipReason.PROVIDER_UNAVAILABLE, detail=str(exc))
        except ProviderError as exc:
            logger.warning("   [SKIP] id=%d: provider error: %s", document.id, exc)
            return EmbedOutcome(document, reason=SkipReason.PROVIDER_ERROR, detail=str(exc))
        if vector.is_empty:
            logger.warning("   [SKIP] id=%d: no embedding returned", document.id)
            return EmbedOutcome(document, reason=SkipReason.EMPTY_EMBEDDING)
        tracker.observe(document.id, vector.dim)
        logger.info("   [%d/%d] id=%d embedded (dim=%d)", position, total, document.id, vector.dim)
        return EmbedOutcome(document, vector=vector)

    def _recreate_collection(self, dim: int) -> None:
        try:
            if self.collection in self.vector_index.list_collections():
                logger.info("   Collection %r exists. Deleting...", self.collection)
                self.vector_index.delete_collection(self.collection)
            self.vector_index.create_collection(self.collection, dim, COSINE)
        except StoreUnavailable as exc:
            raise StoreUnavailable(exc.message, stage="recreate") from exc
        logger.info(
            "   Collection %r created with dimension=%d, distance=cosine.", self.collection, dim
        )

    def _upsert(self, points: Sequence[IndexedPoint]) -> Tuple[int, int]:
        batch_size = self.config.batch_size
        total_batches = (len(points) + batch_size - 1) // batch_size
        upserted = 0
        for index, batch in enumerate(batched(points, batch_size)):
            try:
                self.vector_index.upsert(self.collection, batch)
            except StoreUnavailable as exc:
                raise StoreUnavailable(
                    f"Upsert failed after {upserted} points were committed: {exc.message}",
                    stage="upsert",
                    batch_index=index,
                    upserted=upserted,
                ) from exc
            upserted += len(batch)
            logger.info(
                "   Upserted batch %d/%d (%d points)", index + 1, total_batches, len(batch)
            )
        return upserted, total_batches
