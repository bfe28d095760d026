"""
Data access for the documents table.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .db import get_db, init_db
from .exceptions import DimensionMismatch
from ..vector.types import Document
from ..util.logging import logger


def _to_blob(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def _from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32).copy()


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class DocumentDAO:
    """Reads and writes documents in SQLite. Every write is one transaction."""

    def __init__(self, db_path: str, dimension: int, timeout: float = 10.0):
        self.db_path = db_path
        self.dimension = dimension
        self.timeout = timeout
        init_db(db_path, timeout)
        self._check_dimension()

    def _check_dimension(self) -> None:
        """Record the store dimension on first use and refuse to reopen with another."""
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM store_meta WHERE name = 'dimension'")
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO store_meta (name, value) VALUES ('dimension', ?)",
                    (str(self.dimension),)
                )
            elif int(row[0]) != self.dimension:
                raise DimensionMismatch(int(row[0]), self.dimension, field="EMBED_DIM")

    def insert_documents(self, items: Sequence[Tuple[str, np.ndarray]],
                         keys: Optional[Sequence[Optional[str]]] = None) -> Tuple[List[int], List[Document]]:
        """Insert documents atomically.

        Returns the id for every item and the documents that were actually
        written. An item whose idempotency key is already stored is not
        written again and resolves to the existing id.
        """
        keys = list(keys) if keys is not None else [None] * len(items)
        created_at = datetime.now()
        ids = []
        documents = []
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            # Writers serialize here, so a key lookup and its insert are atomic
            cursor.execute("BEGIN IMMEDIATE")
            for (content, vector), key in zip(items, keys):
                if key is not None:
                    cursor.execute("SELECT id FROM documents WHERE idempotency_key = ?", (key,))
                    row = cursor.fetchone()
                    if row is not None:
                        ids.append(row[0])
                        continue
                cursor.execute(
                    "INSERT INTO documents (content, embedding, dimension, idempotency_key, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (content, _to_blob(vector), len(vector), key, created_at.isoformat())
                )
                ids.append(cursor.lastrowid)
                documents.append(Document(
                    id=cursor.lastrowid,
                    content=content,
                    embedding=np.asarray(vector, dtype=np.float32),
                    created_at=created_at,
                ))
        return ids, documents

    def list_documents(self) -> List[Document]:
        """All documents in id order."""
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, content, embedding, created_at FROM documents ORDER BY id")
            rows = cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    def delete_document(self, doc_id: int) -> bool:
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            return cursor.rowcount > 0

    def count_documents(self) -> int:
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM documents")
            return cursor.fetchone()[0]

    def clear_documents(self) -> None:
        with get_db(self.db_path, self.timeout) as conn:
            conn.cursor().execute("DELETE FROM documents")

    def _row_to_document(self, row) -> Document:
        doc_id, content, blob, created_at = row
        embedding = _from_blob(blob)
        if embedding.shape[0] != self.dimension:
            logger.warning(f"Document {doc_id} has dimension {embedding.shape[0]}, expected {self.dimension}")
        return Document(id=doc_id, content=content, embedding=embedding, created_at=_parse_ts(created_at))
