"""
Hybrid Retrieval
================

This package builds a vector collection from a document corpus and
answers queries by fusing vector similarity with lexical relevance
through weighted Reciprocal Rank Fusion (RRF).

Modules
-------

- :mod:`embedding`: clients for the embedding provider (Ollama over
  HTTP, or any OpenAI compatible endpoint).
- :mod:`sources`: where the corpus comes from (PostgreSQL table or a
  JSON Lines file).
- :mod:`vector_index`: Qdrant and in-memory vector collections.
- :mod:`lexical_index`: PostgreSQL full text search and in-process BM25.
- :mod:`migration`: the batch pipeline that (re)builds a collection.
- :mod:`rrf`: rank fusion.
- :mod:`hybrid_retrieval`: the query engine.
- :mod:`config`: ``.env`` loading and the tunables.
- :mod:`main`: helpers that wire everything from settings.
- :mod:`cli`: the ``hybrid-rag`` command.

Example
-------

>>> from hybrid_rag import HybridConfig, HybridQueryEngine, MigrationPipeline
>>> from hybrid_rag import BM25LexicalIndex, InMemoryVectorIndex, JsonlDocumentSource
>>> from hybrid_rag import OllamaEmbeddingClient
>>> source = JsonlDocumentSource("documents.jsonl")
>>> embedder = OllamaEmbeddingClient("bge-m3")
>>> index = InMemoryVectorIndex()
>>> report = MigrationPipeline(source, embedder, index).run()
>>> engine = HybridQueryEngine(embedder, index, BM25LexicalIndex.from_source(source))
>>> for hit in engine.search("installing python"):
...     print(hit.id, round(hit.fused_score, 5))
"""

from .config import HybridConfig, Settings, load_env
from .embedding import EmbeddingClient, OllamaEmbeddingClient, OpenAIEmbeddingClient
from .errors import (
    ConfigurationError,
    DimensionMismatch,
    HybridRagError,
    InvalidQuery,
    NoEmbeddableDocuments,
    NoQueryEmbedding,
    ProviderError,
    ProviderUnavailable,
    SourceUnavailable,
    StoreUnavailable,
)
from .hybrid_retrieval import HybridQueryEngine
from .lexical_index import BM25LexicalIndex, LexicalIndex, PostgresLexicalIndex
from .migration import EmbedOutcome, MigrationPipeline, MigrationReport, SkippedDocument, SkipReason
from .records import CollectionInfo, Document, EmbeddingVector, IndexedPoint, RankedHit, ScoredId
from .rrf import fuse_ranked_lists, reciprocal_rank_fusion
from .sources import DocumentSource, JsonlDocumentSource, PostgresDocumentSource
from .vector_index import InMemoryVectorIndex, QdrantVectorIndex, VectorIndex

__version__ = "0.1.0"
