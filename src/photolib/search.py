from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from photolib.core.errors import InvalidArgument, MalformedEmbedding
from photolib.pipeline.embed_client import EmbeddingClient
from photolib.store.image_store import ImageStore
from photolib.store.vectors import parse_embedding

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 20


@dataclass
class SearchOutcome:
    query: str
    results: List[Dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None
    skipped: int = 0

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "query": self.query,
            "results": self.results,
            "total": len(self.results),
        }
        if self.message:
            out["message"] = self.message
        return out


def collect_embeddings(store: ImageStore) -> tuple[Dict[int, List[float]], int]:
    """Return ``{image_id: vector}`` for every parseable stored embedding.

    Rows with a NULL embedding are never read; malformed ones are logged and
    counted as skipped.
    """
    valid: Dict[int, List[float]] = {}
    skipped = 0
    for row in store.iter_embeddings():
        image_id = int(row["id"])
        try:
            valid[image_id] = parse_embedding(row["embedding"])
        except MalformedEmbedding as exc:
            skipped += 1
            logger.error("[SEARCH] skip_malformed image_id=%s error=%s", image_id, exc)
    return valid, skipped


async def semantic_search(
    store: ImageStore,
    client: EmbeddingClient,
    query: Optional[str],
    top_k: int = DEFAULT_TOP_K,
) -> SearchOutcome:
    text = (query or "").strip()
    if not text:
        raise InvalidArgument("Search query is required")
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
        raise InvalidArgument("top_k must be a positive integer")

    embeddings, skipped = collect_embeddings(store)
    if not embeddings:
        message = (
            "No valid embeddings found. Images may need to be re-processed."
            if skipped
            else "No images with embeddings found"
        )
        return SearchOutcome(query=text, message=message, skipped=skipped)

    logger.info("[SEARCH] query_len=%d candidates=%d skipped=%d", len(text), len(embeddings), skipped)
    hits = await client.search(text, embeddings, top_k)

    similarity: Dict[int, float] = {}
    for hit in hits:
        try:
            similarity[int(hit.image_id)] = hit.similarity
        except (TypeError, ValueError):
            logger.warning("[SEARCH] unknown_image_id image_id=%r", hit.image_id)
    if not similarity:
        return SearchOutcome(query=text, skipped=skipped)

    results: List[Dict[str, Any]] = []
    for row in store.get_images(list(similarity)):
        item = dict(row)
        item["has_embedding"] = bool(item["has_embedding"])
        item["similarity"] = similarity[int(row["id"])]
        results.append(item)
    results.sort(key=lambda r: r["similarity"], reverse=True)
    return SearchOutcome(query=text, results=results, skipped=skipped)
