"""SQLite-backed document metadata store.

Persists document rows and staged fragment batches to a local SQLite
database at ``data/documents.db``.  Uses ``aiosqlite`` for async I/O and
opens one connection per operation, so a killed invocation never leaves a
connection or transaction behind.

Monotonic columns (``progress``, ``current_batch``) are written with
``MAX(column, ?)`` inside the UPDATE itself.  Two invocations racing on the
same document therefore cannot move the cursor backwards, whatever order
their writes land in.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docingest.interfaces.metadata_store import IMetadataStore
from docingest.models.document import (
    ChunkLayoutSummary,
    Document,
    DocumentStatus,
    PipelineStage,
)
from docingest.models.fragment import Fragment

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    id             TEXT    PRIMARY KEY,
    owner_id       TEXT    NOT NULL,
    title          TEXT    NOT NULL,
    raw_blob_path  TEXT,
    content_type   TEXT    NOT NULL,
    status         TEXT    NOT NULL,
    stage          TEXT    NOT NULL,
    progress       INTEGER NOT NULL DEFAULT 0,
    batch_count    INTEGER NOT NULL DEFAULT 0,
    current_batch  INTEGER NOT NULL DEFAULT 0,
    vector_count   INTEGER NOT NULL DEFAULT 0,
    chunk_layout   TEXT,
    error_message  TEXT,
    created_at     TEXT    NOT NULL,
    updated_at     TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS document_batches (
    document_id     TEXT    NOT NULL,
    batch_index     INTEGER NOT NULL,
    fragments_json  TEXT    NOT NULL,
    PRIMARY KEY (document_id, batch_index)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
]

_INSERT_SQL = """\
INSERT INTO documents (
    id, owner_id, title, raw_blob_path, content_type, status, stage,
    progress, batch_count, current_batch, vector_count, chunk_layout,
    error_message, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_COLUMNS = (
    "id, owner_id, title, raw_blob_path, content_type, status, stage, progress, "
    "batch_count, current_batch, vector_count, chunk_layout, error_message, "
    "created_at, updated_at"
)

_ADVANCE_CURSOR_SQL = """\
UPDATE documents
SET current_batch = MAX(current_batch, ?),
    progress      = MAX(progress, ?),
    updated_at    = ?
WHERE id = ?;
"""

_INSERT_BATCH_SQL = """\
INSERT INTO document_batches (document_id, batch_index, fragments_json)
VALUES (?, ?, ?);
"""

# Columns update_fields may touch; id, owner_id and created_at are immutable.
_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "raw_blob_path",
        "content_type",
        "status",
        "stage",
        "progress",
        "batch_count",
        "current_batch",
        "vector_count",
        "chunk_layout",
        "error_message",
    }
)

# Columns that only ever increase.
_MONOTONIC_FIELDS = frozenset({"progress"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, ChunkLayoutSummary):
        return value.model_dump_json()
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _row_to_document(row: aiosqlite.Row) -> Document:
    layout_json = row["chunk_layout"]
    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        raw_blob_path=row["raw_blob_path"],
        content_type=row["content_type"],
        status=DocumentStatus(row["status"]),
        stage=PipelineStage(row["stage"]),
        progress=row["progress"],
        batch_count=row["batch_count"],
        current_batch=row["current_batch"],
        vector_count=row["vector_count"],
        chunk_layout=(
            ChunkLayoutSummary.model_validate_json(layout_json) if layout_json else None
        ),
        error_message=row["error_message"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed document metadata and staged-batch persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Document rows
    # ------------------------------------------------------------------

    async def create(self, document: Document) -> Document:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    document.id,
                    document.owner_id,
                    document.title,
                    document.raw_blob_path,
                    document.content_type,
                    document.status.value,
                    document.stage.value,
                    document.progress,
                    document.batch_count,
                    document.current_batch,
                    document.vector_count,
                    _to_column(document.chunk_layout),
                    document.error_message,
                    document.created_at.isoformat(),
                    document.updated_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("document_created", document_id=document.id, owner_id=document.owner_id)
        return document

    async def get(self, document_id: str, owner_id: str | None = None) -> Document | None:
        sql = f"SELECT {_SELECT_COLUMNS} FROM documents WHERE id = ?"
        params: list[Any] = [document_id]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
        return _row_to_document(row) if row is not None else None

    async def update_fields(self, document_id: str, fields: dict[str, Any]) -> bool:
        """Partial update; ``progress`` is written with ``MAX`` like the cursor.

        A write that moves ``status`` anywhere but ``complete`` carries a
        ``status != 'complete'`` guard, so a lagging invocation cannot
        reopen or fail a finished document.
        """
        if not fields:
            return False
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        assignments: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            if name in _MONOTONIC_FIELDS:
                assignments.append(f"{name} = MAX({name}, ?)")
            else:
                assignments.append(f"{name} = ?")
            params.append(_to_column(value))
        assignments.append("updated_at = ?")
        params.append(_now_iso())
        params.append(document_id)
        where = "id = ?"
        status = fields.get("status")
        if status is not None and _to_column(status) != DocumentStatus.COMPLETE.value:
            where += " AND status != ?"
            params.append(DocumentStatus.COMPLETE.value)

        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                f"UPDATE documents SET {', '.join(assignments)} WHERE {where}",
                params,
            )
            await db.commit()
            changed = cursor.rowcount > 0
        if not changed and status is not None:
            logger.info(
                "document_update_skipped",
                document_id=document_id,
                requested_status=_to_column(status),
            )
        return changed

    async def advance_cursor(self, document_id: str, current_batch: int, progress: int) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _ADVANCE_CURSOR_SQL,
                (current_batch, progress, _now_iso(), document_id),
            )
            await db.commit()

    async def delete(self, document_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            removed = cursor.rowcount > 0
        logger.info("document_row_deleted", document_id=document_id, removed=removed)
        return removed

    async def list_documents(
        self,
        owner_id: str | None = None,
        statuses: list[DocumentStatus] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        clauses: list[str] = []
        params: list[Any] = []
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(s.value for s in statuses)

        sql = f"SELECT {_SELECT_COLUMNS} FROM documents"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    # ------------------------------------------------------------------
    # Staged batches
    # ------------------------------------------------------------------

    async def put_batches(self, document_id: str, batches: list[list[Fragment]]) -> None:
        rows = [
            (
                document_id,
                index,
                json.dumps([fragment.model_dump() for fragment in batch]),
            )
            for index, batch in enumerate(batches)
        ]
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "DELETE FROM document_batches WHERE document_id = ?", (document_id,)
            )
            await db.executemany(_INSERT_BATCH_SQL, rows)
            await db.commit()
        logger.debug("batches_staged", document_id=document_id, batch_count=len(rows))

    async def get_batch(self, document_id: str, index: int) -> list[Fragment] | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT fragments_json FROM document_batches "
                "WHERE document_id = ? AND batch_index = ?",
                (document_id, index),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return [Fragment.model_validate(item) for item in json.loads(row[0])]

    async def delete_batches(self, document_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM document_batches WHERE document_id = ?", (document_id,)
            )
            await db.commit()
            return cursor.rowcount
