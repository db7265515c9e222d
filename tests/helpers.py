from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


def ensure_src_path() -> Path:
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    return root


ROOT = ensure_src_path()

from photolib.pipeline.embed_client import SearchHit, ServiceHealth  # noqa: E402
from photolib.store.db import now_epoch  # noqa: E402
from photolib.store.image_store import ImageStore  # noqa: E402


def seed_image(
    store: ImageStore,
    file_path: str,
    image_id: Optional[int] = None,
    embedding: Optional[str] = None,
) -> int:
    name = Path(file_path).name
    if image_id is None:
        cur = store.conn.execute(
            "INSERT INTO images(filename,original_name,mime_type,size_bytes,file_path,embedding,created_at) "
            "VALUES (?,?,?,?,?,?,?)",
            (name, name, "image/jpeg", 1, file_path, embedding, now_epoch()),
        )
        image_id = int(cur.lastrowid)
    else:
        store.conn.execute(
            "INSERT INTO images(id,filename,original_name,mime_type,size_bytes,file_path,embedding,created_at) "
            "VALUES (?,?,?,?,?,?,?,?)",
            (image_id, name, name, "image/jpeg", 1, file_path, embedding, now_epoch()),
        )
    store.conn.commit()
    return image_id


class FakeEmbeddingClient:
    """In-process stand-in for :class:`EmbeddingClient`.

    ``vectors`` maps a source path to the vector returned for it; ``errors``
    maps a path to an exception to raise instead. ``gate`` (if set) is awaited
    before every embed call so tests can hold a batch in flight.
    """

    base_url = "http://fake-embedding-service"

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        errors: Optional[Dict[str, BaseException]] = None,
        default: Sequence[float] = (0.5, 0.25),
        search_hits: Any = None,
        available: bool = True,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.errors = dict(errors or {})
        self.default = list(default)
        self.search_hits = search_hits
        self.available = available
        self.gate: Optional[asyncio.Event] = None
        self.delays: Dict[str, float] = {}
        self.embed_calls: List[str] = []
        self.search_calls: List[Dict[str, Any]] = []

    async def embed_image(self, image_path: str) -> List[float]:
        self.embed_calls.append(image_path)
        if self.gate is not None:
            await self.gate.wait()
        delay = self.delays.get(image_path)
        if delay:
            await asyncio.sleep(delay)
        if image_path in self.errors:
            raise self.errors[image_path]
        return list(self.vectors.get(image_path, self.default))

    async def search(self, query: str, image_embeddings, top_k: int) -> List[SearchHit]:
        self.search_calls.append(
            {"query": query, "image_embeddings": dict(image_embeddings), "top_k": top_k}
        )
        if isinstance(self.search_hits, BaseException):
            raise self.search_hits
        if self.search_hits is not None:
            return self.search_hits(dict(image_embeddings))
        return [
            SearchHit(image_id=str(k), similarity=1.0 / (i + 1))
            for i, k in enumerate(sorted(image_embeddings))
        ][:top_k]

    async def health(self) -> ServiceHealth:
        return ServiceHealth(available=self.available, model_loaded=self.available)
