"""
errors.py
---------

Exception hierarchy shared by the migration pipeline, the query engine
and the store/provider adapters.  Adapters translate the exceptions of
the client libraries they wrap (``httpx``, ``openai``, ``psycopg``,
``qdrant-client``) into these types so that callers only ever deal
with one taxonomy.

Every error carries optional context: the ``stage`` it was raised in
and, where relevant, the offending document id or batch index.  The
context is rendered into ``str(exc)`` so that a single log line is
enough to diagnose a failed run.
"""

from __future__ import annotations

from typing import Optional


class HybridRagError(Exception):
    """Base class for every error raised by :mod:`hybrid_rag`."""

    default_stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        doc_id: Optional[int] = None,
        batch_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.doc_id = doc_id
        self.batch_index = batch_index

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.doc_id is not None:
            context.append(f"id={self.doc_id}")
        if self.batch_index is not None:
            context.append(f"batch={self.batch_index}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(HybridRagError):
    default_stage = "config"


class SourceUnavailable(HybridRagError):
    """The document source could not be read.  Aborts the whole run."""

    default_stage = "read"


class ProviderUnavailable(HybridRagError):
    """The embedding provider could not be reached (connection or timeout)."""

    default_stage = "embed"


class ProviderError(HybridRagError):
    """The embedding provider answered, but not successfully."""

    default_stage = "embed"


class DimensionMismatch(HybridRagError):
    """A vector does not have the dimension its collection requires."""

    def __init__(
        self,
        expected: int,
        actual: int,
        *,
        stage: Optional[str] = None,
        doc_id: Optional[int] = None,
        batch_index: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            stage=stage,
            doc_id=doc_id,
            batch_index=batch_index,
        )
        self.expected = expected
        self.actual = actual


class NoEmbeddableDocuments(HybridRagError):
    """No document produced a usable embedding; the store was not touched."""

    default_stage = "embed"


class StoreUnavailable(HybridRagError):
    """A vector or lexical store call failed.

    During migration ``batch_index`` names the batch that failed and
    ``upserted`` the number of points committed by earlier batches.
    """

    default_stage = "store"

    def __init__(self, message: str, *, upserted: int = 0, **context) -> None:
        super().__init__(message, **context)
        self.upserted = upserted


class InvalidQuery(HybridRagError):
    default_stage = "query"


class NoQueryEmbedding(HybridRagError):
    default_stage = "query"
