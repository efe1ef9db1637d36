"""
records.py
----------

Immutable records passed between the document sources, the embedding
clients, the indexes and the query engine.  Responses from providers
and stores are decoded into these types at the adapter boundary so
the pipeline and the fusion code never handle raw JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

COSINE = "cosine"


def _freeze(payload: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(payload or {}))


@dataclass(frozen=True)
class Document:
    """One source document.

    Attributes
    ----------
    id : int
        Stable unique identifier; becomes the point id in the vector
        index.
    text : str
        The text that is embedded and lexically indexed.
    payload : mapping of str to str
        Opaque fields stored next to the vector (e.g. ``doc_name``).
    """

    id: int
    text: str
    payload: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))


@dataclass(frozen=True)
class EmbeddingVector:
    """A fixed-length float vector returned by an embedding provider.

    An empty vector is a legitimate provider answer ("nothing to
    return") and is distinct from a failed call.
    """

    values: Tuple[float, ...] = ()

    @classmethod
    def of(cls, values: Sequence[float]) -> "EmbeddingVector":
        return cls(tuple(float(v) for v in values))

    @property
    def dim(self) -> int:
        return len(self.values)

    @property
    def is_empty(self) -> bool:
        return not self.values


@dataclass(frozen=True)
class IndexedPoint:
    id: int
    vector: EmbeddingVector
    payload: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))


@dataclass(frozen=True)
class CollectionInfo:
    name: str
    dim: int
    metric: str = COSINE


@dataclass(frozen=True)
class ScoredId:
    """One row of a ranked sub-query result.

    For vector search ``score`` is the cosine similarity (higher is
    closer, ``distance == 1 - score``); for lexical search it is the
    store's relevance score.  Rank is the position in the returned
    list, not something stored on the row.
    """

    id: int
    score: float
    payload: Optional[Mapping[str, str]] = None

    @property
    def distance(self) -> float:
        return 1.0 - self.score


@dataclass(frozen=True)
class RankedHit:
    """A fused search result.  Constructed per query, never persisted."""

    id: int
    fused_score: float
    score_semantic: Optional[float] = None
    score_lexical: Optional[float] = None
    rank_semantic: Optional[int] = None
    rank_lexical: Optional[int] = None
    payload: Optional[Mapping[str, str]] = None
