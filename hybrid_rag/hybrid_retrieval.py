"""
hybrid_retrieval.py
-------------------

The hybrid query engine.  For each query it:

1. embeds the query text;
2. runs the vector search and the lexical search as two independent
   tasks and waits for both;
3. fuses the two ranked lists with weighted Reciprocal Rank Fusion
   (:func:`~hybrid_rag.rrf.reciprocal_rank_fusion`);
4. returns the top ``K`` :class:`~hybrid_rag.records.RankedHit` records.

The engine keeps no state between queries.  A failed or empty query
embedding aborts the query; there is no lexical-only fallback.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from .config import HybridConfig
from .embedding import EmbeddingClient
from .errors import InvalidQuery, NoQueryEmbedding
from .lexical_index import LexicalIndex
from .records import RankedHit
from .rrf import reciprocal_rank_fusion
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)


class HybridQueryEngine:
    """Answer free-text queries by fusing vector and lexical rankings.

    Parameters
    ----------
    embedder : EmbeddingClient
        Must be the same model the collection was migrated with.
    vector_index : VectorIndex
        Store holding the migrated collection.
    lexical_index : LexicalIndex
        Keyword relevance search over the same documents.
    config : HybridConfig, optional
        Fusion weights, RRF constant, result and prefetch limits.
    collection : str
        Name of the vector collection to search.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        vector_index: VectorIndex,
        lexical_index: LexicalIndex,
        config: Optional[HybridConfig] = None,
        *,
        collection: str = "documents",
    ) -> None:
        self.embedder = embedder
        self.vector_index = vector_index
        self.lexical_index = lexical_index
        self.config = config or HybridConfig()
        self.collection = collection

    def search(self, query: str, limit: Optional[int] = None) -> List[RankedHit]:
        """Return the top ``limit`` (default ``config.top_k``) fused hits for ``query``."""
        if not query or not query.strip():
            raise InvalidQuery("Query must not be empty")
        top_k = self.config.top_k if limit is None else limit
        if top_k <= 0:
            raise InvalidQuery(f"limit must be > 0, got {top_k}")
        prefetch = max(top_k, self.config.prefetch_k)

        query_vector = self.embedder.embed(query)
        if query_vector.is_empty:
            raise NoQueryEmbedding("Embedding provider returned no vector for the query")

        # the two sub-queries do not depend on each other; fusion needs both
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="subquery") as pool:
            semantic_future = pool.submit(
                self.vector_index.search, self.collection, query_vector, prefetch
            )
            lexical_future = pool.submit(self.lexical_index.search, query, prefetch)
            semantic = semantic_future.result()
            lexical = lexical_future.result()
        logger.debug(
            "Query %r: %d semantic and %d lexical candidates", query, len(semantic), len(lexical)
        )

        return reciprocal_rank_fusion(
            semantic,
            lexical,
            semantic_weight=self.config.semantic_weight,
            lexical_weight=self.config.lexical_weight,
            k=self.config.rrf_k,
            limit=top_k,
        )
