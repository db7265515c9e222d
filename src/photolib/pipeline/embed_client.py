"""Adapter for the external embedding service.

The service exposes three endpoints:

- ``POST /embed-image``  ``{"image_path"}`` -> ``{"embedding": [...]}``
- ``POST /search``       ``{"query", "image_embeddings", "top_k"}`` -> ``{"results": [...]}``
- ``GET  /health``       -> ``{"model_loaded": bool, ...}``

Calls are made with ``requests`` on a worker thread so the event loop is never
blocked. Failures are classified from the exception type or HTTP status into
the :class:`EmbeddingServiceError` family.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from photolib.core.errors import ErrorCode, MalformedEmbedding
from photolib.pipeline.enums import EmbedErrorKind
from photolib.store.vectors import parse_embedding

logger = logging.getLogger(__name__)

DEFAULT_EMBED_TIMEOUT = 30.0
DEFAULT_HEALTH_TIMEOUT = 5.0


class EmbeddingServiceError(Exception):
    kind: EmbedErrorKind = EmbedErrorKind.ERROR
    code: ErrorCode = ErrorCode.EMBED_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingUnavailable(EmbeddingServiceError):
    kind = EmbedErrorKind.UNAVAILABLE
    code = ErrorCode.EMBED_UNAVAILABLE


class EmbeddingTimeout(EmbeddingServiceError):
    kind = EmbedErrorKind.TIMEOUT
    code = ErrorCode.EMBED_TIMEOUT


class EmbeddingRejected(EmbeddingServiceError):
    kind = EmbedErrorKind.REJECTED
    code = ErrorCode.EMBED_REJECTED

    def __init__(self, reason: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(reason, status_code=status_code)
        self.reason = reason


@dataclass(frozen=True)
class SearchHit:
    image_id: Any
    similarity: float


@dataclass(frozen=True)
class ServiceHealth:
    available: bool
    model_loaded: bool = False


class EmbeddingClient:
    def __init__(
        self,
        base_url: str,
        *,
        embed_timeout: float = DEFAULT_EMBED_TIMEOUT,
        search_timeout: float = DEFAULT_EMBED_TIMEOUT,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.embed_timeout = embed_timeout
        self.search_timeout = search_timeout
        self.health_timeout = health_timeout

    def _url(self, path: str) -> str:
        return self.base_url + path

    def _post_json(self, path: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            resp = requests.post(self._url(path), json=payload, timeout=timeout)
        except requests.Timeout as exc:
            raise EmbeddingTimeout(f"{path} timed out after {timeout:g}s") from exc
        except requests.ConnectionError as exc:
            raise EmbeddingUnavailable(f"embedding service is not running ({self.base_url})") from exc
        except requests.RequestException as exc:
            raise EmbeddingServiceError(f"{path} request failed: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise EmbeddingRejected(
                f"{path} returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise EmbeddingRejected(f"{path} returned a non-JSON body", status_code=resp.status_code) from exc
        if not isinstance(data, dict):
            raise EmbeddingRejected(f"{path} returned {type(data).__name__}, expected object")
        return data

    async def embed_image(self, image_path: str) -> List[float]:
        data = await asyncio.to_thread(
            self._post_json,
            "/embed-image",
            {"image_path": str(image_path)},
            self.embed_timeout,
        )
        try:
            return parse_embedding(data.get("embedding"))
        except MalformedEmbedding as exc:
            raise EmbeddingRejected(f"/embed-image returned an invalid embedding: {exc}") from exc

    async def search(
        self,
        query: str,
        image_embeddings: Mapping[Any, Sequence[float]],
        top_k: int,
    ) -> List[SearchHit]:
        payload = {
            "query": query,
            "image_embeddings": {str(k): list(v) for k, v in image_embeddings.items()},
            "top_k": int(top_k),
        }
        data = await asyncio.to_thread(self._post_json, "/search", payload, self.search_timeout)
        results = data.get("results")
        if not isinstance(results, list):
            raise EmbeddingRejected("/search response has no results list")
        hits: List[SearchHit] = []
        for item in results:
            try:
                hits.append(SearchHit(image_id=item["image_id"], similarity=float(item["similarity"])))
            except (KeyError, TypeError, ValueError) as exc:
                raise EmbeddingRejected(f"/search returned a malformed result: {item!r}") from exc
        return hits

    def _get_health(self) -> ServiceHealth:
        try:
            resp = requests.get(self._url("/health"), timeout=self.health_timeout)
        except requests.RequestException as exc:
            logger.warning("embedding service health check failed: %s", exc)
            return ServiceHealth(available=False)
        if resp.status_code != 200:
            return ServiceHealth(available=False)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        model_loaded = bool(data.get("model_loaded", False)) if isinstance(data, dict) else False
        return ServiceHealth(available=True, model_loaded=model_loaded)

    async def health(self) -> ServiceHealth:
        return await asyncio.to_thread(self._get_health)
