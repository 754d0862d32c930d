"""
Local storage for enrolled face descriptors.
Each enrollment creates one record holding all of its captured embeddings.
"""
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

import numpy as np

from utils.config import config
from utils.exceptions import PersistenceError
from utils.logger import logger

@dataclass(frozen=True)
class ReferenceRecord:
    """Embeddings captured for one identity during a single enrollment."""
    id: str
    identity: str
    embeddings: Tuple[np.ndarray, ...]
    created_at: datetime

class ReferenceStore:
    """SQLite-backed reference store keyed by identity."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.storage.reference_db_path
        self._conn = None
        self._lock = threading.Lock()

    def open(self):
        """Open the database and create the schema. Later calls are no-ops."""
        with self._lock:
            if self._conn is not None:
                return

            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS face_encodings (
                        id TEXT PRIMARY KEY,
                        identity TEXT NOT NULL,
                        descriptors BLOB NOT NULL,
                        dims INTEGER NOT NULL,
                        count INTEGER NOT NULL,
                        created_at TEXT NOT NULL
                    )
                ''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_face_encodings_identity ON face_encodings(identity)')
                conn.commit()
            except sqlite3.Error as e:
                raise PersistenceError(f"Could not open reference store {self.db_path}: {e}") from e

            self._conn = conn
            logger.debug(f"Reference store opened: {self.db_path}")

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _execute(self, query: str, params: Sequence = (), commit: bool = False) -> List[tuple]:
        if self._conn is None:
            raise PersistenceError("Reference store is not open")

        with self._lock:
            try:
                cursor = self._conn.execute(query, params)
                rows = cursor.fetchall()
                if commit:
                    self._conn.commit()
                    return [(cursor.rowcount,)]
                return rows
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(f"Reference store error: {e}") from e

    def insert(self, identity: str, embeddings: Sequence[np.ndarray]) -> str:
        """Store a new record for `identity`. Returns the record id."""
        if not identity:
            raise ValueError("identity must be a non-empty string")
        if len(embeddings) == 0:
            raise ValueError("at least one embedding is required")

        vectors = [np.asarray(e, dtype=np.float64).ravel() for e in embeddings]
        dims = vectors[0].shape[0]
        if any(v.shape[0] != dims for v in vectors):
            raise ValueError("all embeddings must have the same length")

        record_id = str(uuid.uuid4())
        blob = np.stack(vectors).tobytes()
        self._execute(
            'INSERT INTO face_encodings (id, identity, descriptors, dims, count, created_at) '
            'VALUES (?, ?, ?, ?, ?, ?)',
            (record_id, identity, blob, dims, len(vectors), datetime.now().isoformat()),
            commit=True
        )
        logger.info(f"Stored {len(vectors)} face descriptors for {identity}")
        return record_id

    def get_records(self, identity: str) -> List[ReferenceRecord]:
        rows = self._execute(
            'SELECT id, identity, descriptors, dims, count, created_at FROM face_encodings '
            'WHERE identity = ? ORDER BY created_at',
            (identity,)
        )
        return [self._row_to_record(row) for row in rows]

    def get_by_identity(self, identity: str) -> List[np.ndarray]:
        """All embeddings for `identity`; empty if it was never enrolled."""
        embeddings = []
        for record in self.get_records(identity):
            embeddings.extend(record.embeddings)
        return embeddings

    def get_all(self) -> List[Tuple[str, List[np.ndarray]]]:
        """Every enrolled identity with all of its embeddings."""
        rows = self._execute(
            'SELECT id, identity, descriptors, dims, count, created_at FROM face_encodings'
        )
        grouped: Dict[str, List[np.ndarray]] = {}
        for row in rows:
            record = self._row_to_record(row)
            grouped.setdefault(record.identity, []).extend(record.embeddings)
        return list(grouped.items())

    def delete_by_identity(self, identity: str) -> int:
        """Remove every record for `identity`. Returns the number of records removed."""
        (removed,), = self._execute('DELETE FROM face_encodings WHERE identity = ?', (identity,), commit=True)
        if removed:
            logger.info(f"Removed {removed} face record(s) for {identity}")
        return removed

    def clear_all(self) -> int:
        (removed,), = self._execute('DELETE FROM face_encodings', commit=True)
        logger.info(f"Cleared reference store ({removed} records)")
        return removed

    def identities(self) -> List[str]:
        rows = self._execute('SELECT DISTINCT identity FROM face_encodings')
        return [row[0] for row in rows]

    def count(self) -> int:
        (total,), = self._execute('SELECT COUNT(*) FROM face_encodings')
        return total

    @staticmethod
    def _row_to_record(row) -> ReferenceRecord:
        record_id, identity, blob, dims, count, created_at = row
        matrix = np.frombuffer(blob, dtype=np.float64).reshape(count, dims)
        return ReferenceRecord(
            id=record_id,
            identity=identity,
            embeddings=tuple(matrix[i].copy() for i in range(count)),
            created_at=datetime.fromisoformat(created_at)
        )
