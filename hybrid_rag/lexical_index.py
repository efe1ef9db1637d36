"""
lexical_index.py
----------------

Lexical (keyword) relevance search.  Both implementations return
:class:`~hybrid_rag.records.ScoredId` rows ordered by descending
relevance, ties broken by ascending id, so that the position in the
list is the lexical rank used by fusion.

- :class:`PostgresLexicalIndex` ranks rows of the documents table with
  PostgreSQL full text search (``ts_rank`` over ``to_tsvector``).
- :class:`BM25LexicalIndex` builds a BM25 index in process with
  ``rank_bm25``.  It tokenises on word characters after lower-casing,
  which is enough for the short ``search_text`` fields it is used with.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Optional, Protocol, Sequence

import psycopg
from psycopg import sql
from rank_bm25 import BM25Okapi

from .errors import StoreUnavailable
from .records import Document, ScoredId
from .sources import DocumentSource

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class LexicalIndex(Protocol):
    def search(self, query_text: str, limit: int) -> List[ScoredId]:
        ...


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


class BM25LexicalIndex:
    """BM25 ranking over an in-memory list of documents."""

    def __init__(self, documents: Sequence[Document]) -> None:
        self.documents = list(documents)
        corpus = [tokenize(doc.text) for doc in self.documents]
        self._token_sets = [frozenset(tokens) for tokens in corpus]
        # BM25Okapi divides by the average document length
        if any(corpus):
            self._bm25: Optional[BM25Okapi] = BM25Okapi(corpus)
        else:
            self._bm25 = None
        logger.debug("Built BM25 index over %d documents", len(self.documents))

    @classmethod
    def from_source(cls, source: DocumentSource) -> "BM25LexicalIndex":
        return cls(source.read())

    def search(self, query_text: str, limit: int) -> List[ScoredId]:
        tokens = tokenize(query_text)
        if self._bm25 is None or not tokens or limit <= 0:
            return []
        query_terms = frozenset(tokens)
        scores = self._bm25.get_scores(tokens)
        # a term in exactly half the corpus has an idf of 0, so match on terms
        ranked = sorted(
            (
                (doc, float(score))
                for doc, terms, score in zip(self.documents, self._token_sets, scores)
                if terms & query_terms
            ),
            key=lambda item: (-item[1], item[0].id),
        )
        return [
            ScoredId(id=doc.id, score=score, payload=dict(doc.payload))
            for doc, score in ranked[:limit]
        ]


class PostgresLexicalIndex:
    """Full text relevance search against a PostgreSQL table.

    Parameters
    ----------
    dsn : str
        libpq connection string or URL.
    table : str
        Table holding the corpus.
    text_column : str
        Column searched and returned in the payload.
    text_search_config : str
        PostgreSQL text search configuration (``simple`` does no
        stemming and works for any language).
    connect : callable, optional
        Connection factory, defaults to :func:`psycopg.connect`.
    """

    def __init__(
        self,
        dsn: str,
        *,
        table: str = "documents",
        text_column: str = "search_text",
        text_search_config: str = "simple",
        connect_timeout: int = 10,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.dsn = dsn
        self.table = table
        self.text_column = text_column
        self.text_search_config = text_search_config
        self.connect_timeout = connect_timeout
        self._connect = connect or psycopg.connect

    def _query(self) -> sql.Composed:
        document = sql.SQL("to_tsvector({cfg}::regconfig, coalesce({col}, ''))").format(
            cfg=sql.Placeholder("cfg"),
            col=sql.Identifier(self.text_column),
        )
        query = sql.SQL("plainto_tsquery({cfg}::regconfig, {q})").format(
            cfg=sql.Placeholder("cfg"),
            q=sql.Placeholder("q"),
        )
        return sql.SQL(
            "SELECT {id}, {col}, ts_rank({document}, {query}) AS rank "
            "FROM {table} WHERE {document} @@ {query} "
            "ORDER BY rank DESC, {id} ASC LIMIT {limit}"
        ).format(
            id=sql.Identifier("id"),
            col=sql.Identifier(self.text_column),
            document=document,
            query=query,
            table=sql.Identifier(*self.table.split(".")),
            limit=sql.Placeholder("limit"),
        )

    def search(self, query_text: str, limit: int) -> List[ScoredId]:
        if not query_text.strip() or limit <= 0:
            return []
        params = {"cfg": self.text_search_config, "q": query_text, "limit": limit}
        try:
            with self._connect(self.dsn, connect_timeout=self.connect_timeout) as conn:
                with conn.cursor() as cur:
                    cur.execute(self._query(), params)
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise StoreUnavailable(
                f"Lexical search on {self.table!r} failed: {exc}", stage="lexical_search"
            ) from exc
        return [
            ScoredId(
                id=int(doc_id),
                score=float(rank),
                payload={self.text_column: "" if text is None else str(text)},
            )
            for doc_id, text, rank in rows
        ]
