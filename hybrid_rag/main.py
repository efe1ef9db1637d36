"""
main.py
-------

Convenience functions that assemble the pipeline and the query engine
from :class:`~hybrid_rag.config.Settings`.  The command line interface
is a thin layer over these; import the classes directly if you need
to wire components differently.
"""

from __future__ import annotations

import contextlib
import logging
from typing import List, Optional

from .config import Settings
from .embedding import EmbeddingClient, build_embedding_client
from .hybrid_retrieval import HybridQueryEngine
from .lexical_index import BM25LexicalIndex, LexicalIndex, PostgresLexicalIndex
from .migration import MigrationPipeline, MigrationReport
from .records import RankedHit
from .sources import DocumentSource, JsonlDocumentSource, PostgresDocumentSource
from .vector_index import QdrantVectorIndex, VectorIndex

logger = logging.getLogger(__name__)


def build_source(settings: Settings) -> DocumentSource:
    if settings.source == "jsonl":
        return JsonlDocumentSource(settings.jsonl_path, text_field=settings.text_column)
    return PostgresDocumentSource(
        settings.postgres_dsn,
        table=settings.documents_table,
        text_column=settings.text_column,
        connect_timeout=settings.postgres_connect_timeout,
    )


def build_vector_index(settings: Settings) -> QdrantVectorIndex:
    return QdrantVectorIndex(
        settings.qdrant_url,
        api_key=settings.qdrant_api_key,
        prefer_grpc=settings.qdrant_prefer_grpc,
        timeout=settings.qdrant_timeout,
    )


def build_lexical_index(settings: Settings) -> LexicalIndex:
    """Create the lexical index selected by ``settings.lexical_backend``.

    The ``bm25`` backend reads the whole document source to build its
    index, so it costs one source read per process.
    """
    if settings.lexical_backend == "bm25":
        return BM25LexicalIndex.from_source(build_source(settings))
    return PostgresLexicalIndex(
        settings.postgres_dsn,
        table=settings.documents_table,
        text_column=settings.text_column,
        text_search_config=settings.text_search_config,
        connect_timeout=settings.postgres_connect_timeout,
    )


def build_pipeline(
    settings: Settings,
    *,
    embedder: Optional[EmbeddingClient] = None,
    vector_index: Optional[VectorIndex] = None,
) -> MigrationPipeline:
    return MigrationPipeline(
        build_source(settings),
        embedder or build_embedding_client(settings),
        vector_index or build_vector_index(settings),
        settings.hybrid,
        collection=settings.collection,
    )


def build_engine(
    settings: Settings,
    *,
    embedder: Optional[EmbeddingClient] = None,
    vector_index: Optional[VectorIndex] = None,
) -> HybridQueryEngine:
    return HybridQueryEngine(
        embedder or build_embedding_client(settings),
        vector_index or build_vector_index(settings),
        build_lexical_index(settings),
        settings.hybrid,
        collection=settings.collection,
    )


def run_migration(settings: Settings) -> MigrationReport:
    """Rebuild the configured collection from the configured source."""
    with contextlib.ExitStack() as stack:
        embedder = stack.enter_context(contextlib.closing(build_embedding_client(settings)))
        vector_index = stack.enter_context(contextlib.closing(build_vector_index(settings)))
        return build_pipeline(settings, embedder=embedder, vector_index=vector_index).run()


def hybrid_search(settings: Settings, query: str, *, limit: Optional[int] = None) -> List[RankedHit]:
    """Run one hybrid query against the configured stores."""
    with contextlib.ExitStack() as stack:
        embedder = stack.enter_context(contextlib.closing(build_embedding_client(settings)))
        vector_index = stack.enter_context(contextlib.closing(build_vector_index(settings)))
        engine = build_engine(settings, embedder=embedder, vector_index=vector_index)
        return engine.search(query, limit=limit)
