"""
rrf.py
------

Reciprocal Rank Fusion (RRF) combines ranked lists from different
retrieval systems.  Each item scores ``weight / (k + rank)`` in every
list it appears in, and the scores are summed.  Only ranks are used,
so lists whose raw scores live on incomparable scales (cosine
similarity, BM25, ``ts_rank``) can be fused without normalisation.

:func:`fuse_ranked_lists` is the generic kernel over any number of
runs.  :func:`reciprocal_rank_fusion` fuses one semantic and one
lexical list into :class:`~hybrid_rag.records.RankedHit` records that
keep both per-list ranks and scores for diagnostics.

Ordering is deterministic: fused score descending, then ascending id.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from .records import RankedHit, ScoredId


def _first_positions(run: Sequence[ScoredId]) -> Dict[int, Tuple[int, ScoredId]]:
    """Map id -> (1-based rank, row).  A repeated id keeps its best rank."""
    positions: Dict[int, Tuple[int, ScoredId]] = {}
    for rank, row in enumerate(run, start=1):
        if row.id not in positions:
            positions[row.id] = (rank, row)
    return positions


def fuse_ranked_lists(
    runs: Sequence[Sequence[ScoredId]],
    weights: Optional[Sequence[float]] = None,
    k: int = 60,
) -> Dict[int, float]:
    """Fuse multiple ranked lists using Reciprocal Rank Fusion.

    Parameters
    ----------
    runs : sequence of sequences of ScoredId
        Each element is a ranked list returned by one retrieval
        method.  The first element is rank 1.
    weights : sequence of floats, optional
        Per-run multipliers.  Must match ``runs`` in length.  Defaults
        to 1.0 for every run.
    k : int
        The RRF constant.  Larger values reduce the gap between
        neighbouring ranks.

    Returns
    -------
    dict of int to float
        Fused score per id, for every id present in at least one run.
    """
    if weights is None:
        weights = [1.0] * len(runs)
    if len(weights) != len(runs):
        raise ValueError("Length of weights must match number of runs")
    scores: Dict[int, float] = {}
    for run, weight in zip(runs, weights):
        for doc_id, (rank, _) in _first_positions(run).items():
            scores[doc_id] = scores.get(doc_id, 0.0) + weight / (k + rank)
    return scores


def reciprocal_rank_fusion(
    semantic: Sequence[ScoredId],
    lexical: Sequence[ScoredId],
    *,
    semantic_weight: float = 0.7,
    lexical_weight: float = 0.3,
    k: int = 60,
    limit: Optional[int] = None,
) -> List[RankedHit]:
    """Fuse a semantic and a lexical ranked list.

    An id missing from one list gets nothing from it but is not
    otherwise penalised.  Ids whose fused score is zero, which only
    happens with a zero weight, are dropped.

    Parameters
    ----------
    semantic : sequence of ScoredId
        Vector search results, closest first.
    lexical : sequence of ScoredId
        Lexical search results, most relevant first.
    semantic_weight, lexical_weight : float
        Non-negative weights; they need not sum to 1.
    k : int
        The RRF constant.
    limit : int, optional
        Return at most this many hits.

    Returns
    -------
    list of RankedHit
        Sorted by fused score descending, ties by ascending id.
    """
    sem = _first_positions(semantic)
    lex = _first_positions(lexical)
    hits: List[RankedHit] = []
    for doc_id in sem.keys() | lex.keys():
        sem_rank, sem_row = sem.get(doc_id, (None, None))
        lex_rank, lex_row = lex.get(doc_id, (None, None))
        fused = 0.0
        if sem_rank is not None:
            fused += semantic_weight / (k + sem_rank)
        if lex_rank is not None:
            fused += lexical_weight / (k + lex_rank)
        if fused <= 0.0:
            continue
        payload = None
        if sem_row is not None and sem_row.payload:
            payload = sem_row.payload
        elif lex_row is not None and lex_row.payload:
            payload = lex_row.payload
        hits.append(
            RankedHit(
                id=doc_id,
                fused_score=fused,
                score_semantic=sem_row.score if sem_row is not None else None,
                score_lexical=lex_row.score if lex_row is not None else None,
                rank_semantic=sem_rank,
                rank_lexical=lex_rank,
                payload=payload,
            )
        )
    hits.sort(key=lambda hit: (-hit.fused_score, hit.id))
    if limit is not None:
        hits = hits[: max(limit, 0)]
    return hits
