from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from photolib.store.db import init_schema, load_schema_sql, now_epoch, open_db
from photolib.store.vectors import encode_embedding, parse_embedding

logger = logging.getLogger(__name__)


class ImageStore:
    """One row per uploaded image; ``embedding`` is NULL until embedded."""

    def __init__(self, db_path: Path, schema_sql: Optional[str] = None) -> None:
        self.db_path = db_path
        self.conn = open_db(db_path)
        init_schema(self.conn, schema_sql if schema_sql is not None else load_schema_sql())

    def close(self) -> None:
        self.conn.close()

    def add_image(
        self,
        filename: str,
        original_name: str,
        mime_type: str,
        size_bytes: int,
        file_path: str,
    ) -> int:
        cur = self.conn.execute(
            "INSERT INTO images(filename,original_name,mime_type,size_bytes,file_path,created_at) "
            "VALUES (?,?,?,?,?,?)",
            (filename, original_name, mime_type, int(size_bytes), file_path, now_epoch()),
        )
        self.conn.commit()
        return int(cur.lastrowid)

    def get_image(self, image_id: Any) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            "SELECT id, filename, original_name, mime_type, size_bytes, file_path, "
            "embedding, embedded_at, created_at FROM images WHERE id=?",
            (image_id,),
        ).fetchone()

    def get_images(self, image_ids: Sequence[Any]) -> List[sqlite3.Row]:
        if not image_ids:
            return []
        placeholders = ",".join("?" for _ in image_ids)
        return self.conn.execute(
            "SELECT id, filename, original_name, mime_type, size_bytes, created_at, "
            "embedding IS NOT NULL AS has_embedding "
            f"FROM images WHERE id IN ({placeholders})",
            list(image_ids),
        ).fetchall()

    def delete_image(self, image_id: Any) -> bool:
        cur = self.conn.execute("DELETE FROM images WHERE id=?", (image_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def list_for_embedding(self, missing_only: bool = False) -> List[sqlite3.Row]:
        sql = "SELECT id, file_path FROM images"
        if missing_only:
            sql += " WHERE embedding IS NULL"
        return self.conn.execute(sql + " ORDER BY id ASC").fetchall()

    def set_embedding(self, image_id: Any, vector: Sequence[float]) -> bool:
        cur = self.conn.execute(
            "UPDATE images SET embedding=?, embedded_at=? WHERE id=?",
            (encode_embedding(vector), now_epoch(), image_id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            logger.warning("[IMAGE_STORE] set_embedding no_row image_id=%s", image_id)
            return False
        return True

    def get_embedding(self, image_id: Any) -> Optional[List[float]]:
        row = self.conn.execute("SELECT embedding FROM images WHERE id=?", (image_id,)).fetchone()
        if row is None or row["embedding"] is None:
            return None
        return parse_embedding(row["embedding"])

    def iter_embeddings(self) -> Iterable[sqlite3.Row]:
        return self.conn.execute(
            "SELECT id, embedding FROM images WHERE embedding IS NOT NULL ORDER BY id ASC"
        ).fetchall()

    def coverage(self) -> Tuple[int, int]:
        row = self.conn.execute(
            "SELECT COUNT(*) AS total, COUNT(embedding) AS embedded FROM images"
        ).fetchone()
        return int(row["total"]), int(row["embedded"])
