"""
sources.py
----------

Document sources for the migration pipeline.  A source yields the full,
ordered corpus in one call; there is no partial read.  Any failure to
read it is reported as :class:`~hybrid_rag.errors.SourceUnavailable`.

- :class:`PostgresDocumentSource` reads the ``documents`` table with
  ``psycopg``.
- :class:`JsonlDocumentSource` reads one JSON object per line from a
  local file, which is handy for seeding and for tests.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import psycopg
from psycopg import sql

from .errors import SourceUnavailable
from .records import Document

logger = logging.getLogger(__name__)

# payload key -> column name
DEFAULT_PAYLOAD_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("doc_name", "doc_name"),
    ("doc_des", "doc_desc"),
)


class DocumentSource(Protocol):
    def read(self) -> List[Document]:
        ...


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _document_id(value: Any) -> int:
    # int() alone would truncate 7.9 and accept true as 1
    if isinstance(value, bool):
        raise TypeError("bool is not a document id")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not integral")
    return int(value)


class PostgresDocumentSource:
    """Read documents from a PostgreSQL table.

    Parameters
    ----------
    dsn : str
        libpq connection string or URL.
    table : str
        Table holding the corpus.  Must have an integer ``id`` column.
    text_column : str
        Column that is embedded.  It is also stored in the payload
        under its own name.
    payload_columns : sequence of (str, str)
        ``(payload_key, column)`` pairs copied into the payload.
    connect : callable, optional
        Connection factory, defaults to :func:`psycopg.connect`.
    """

    def __init__(
        self,
        dsn: str,
        *,
        table: str = "documents",
        text_column: str = "search_text",
        payload_columns: Sequence[Tuple[str, str]] = DEFAULT_PAYLOAD_COLUMNS,
        connect_timeout: int = 10,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.dsn = dsn
        self.table = table
        self.text_column = text_column
        self.payload_columns = tuple(payload_columns)
        self.connect_timeout = connect_timeout
        self._connect = connect or psycopg.connect

    def _query(self) -> sql.Composed:
        columns = [sql.Identifier(column) for _, column in self.payload_columns]
        columns.append(sql.Identifier(self.text_column))
        return sql.SQL("SELECT {id}, {columns} FROM {table} ORDER BY {id}").format(
            id=sql.Identifier("id"),
            columns=sql.SQL(", ").join(columns),
            table=sql.Identifier(*self.table.split(".")),
        )

    def read(self) -> List[Document]:
        try:
            with self._connect(self.dsn, connect_timeout=self.connect_timeout) as conn:
                with conn.cursor() as cur:
                    cur.execute(self._query())
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise SourceUnavailable(f"Cannot read table {self.table!r}: {exc}") from exc

        documents: List[Document] = []
        for row in rows:
            doc_id, *payload_values, text = row
            payload: Dict[str, str] = {
                key: _text(value)
                for (key, _), value in zip(self.payload_columns, payload_values)
            }
            payload[self.text_column] = _text(text)
            documents.append(Document(id=int(doc_id), text=_text(text), payload=payload))
        logger.debug("Read %d documents from %s", len(documents), self.table)
        return documents


class JsonlDocumentSource:
    """Read documents from a JSON Lines file.

    Each non-empty line is an object with an integer ``id`` and a text
    field (``search_text`` by default).  Every other field is kept in
    the payload as a string.
    """

    def __init__(self, path: Union[str, Path], *, text_field: str = "search_text") -> None:
        self.path = Path(path)
        self.text_field = text_field

    def read(self) -> List[Document]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                lines = handle.readlines()
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceUnavailable(f"Cannot read {self.path}: {exc}") from exc

        documents: List[Document] = []
        seen = set()
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as exc:
                raise SourceUnavailable(f"{self.path}:{lineno}: invalid JSON ({exc.msg})") from exc
            if not isinstance(item, dict) or "id" not in item:
                raise SourceUnavailable(f"{self.path}:{lineno}: expected an object with an 'id'")
            try:
                doc_id = _document_id(item["id"])
            except (TypeError, ValueError):
                raise SourceUnavailable(
                    f"{self.path}:{lineno}: id must be an integer, got {item['id']!r}"
                ) from None
            if doc_id in seen:
                raise SourceUnavailable(f"{self.path}:{lineno}: duplicate id {doc_id}")
            seen.add(doc_id)
            payload = {key: _text(value) for key, value in item.items() if key != "id"}
            documents.append(
                Document(id=doc_id, text=_text(item.get(self.text_field)), payload=payload)
            )
        return documents
