from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
from fastapi import APIRouter, Body, Depends, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from photolib.core.errors import ErrorCode, InvalidArgument, MalformedEmbedding, get_error_info
from photolib.core.settings import AppSettings
from photolib.pipeline.controller import EmbeddingPipeline
from photolib.pipeline.embed_client import EmbeddingClient, EmbeddingServiceError, EmbeddingUnavailable
from photolib.search import DEFAULT_TOP_K, semantic_search
from photolib.store.image_store import ImageStore
from photolib.store.vectors import parse_embedding

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024


class SearchRequest(BaseModel):
    query: Optional[str] = None
    top_k: int = DEFAULT_TOP_K


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_pipeline(request: Request) -> EmbeddingPipeline:
    return request.app.state.pipeline


def get_store(request: Request) -> ImageStore:
    return request.app.state.store


def get_client(request: Request) -> EmbeddingClient:
    return request.app.state.client


def require_admin(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    token = get_settings(request).admin_token
    if token and not (x_admin_token and secrets.compare_digest(x_admin_token, token)):
        raise HTTPException(status_code=403, detail="Admin access required")


def _error(
    status_code: int,
    message: Optional[str] = None,
    code: ErrorCode = ErrorCode.EMBED_ERROR,
) -> JSONResponse:
    info = get_error_info(code)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message or info.message,
            "code": code.value,
            "hint": info.hint,
            "retryable": info.retryable,
        },
    )


async def save_upload_file(upload: UploadFile, destination: Path, max_bytes: int) -> int:
    written = 0
    async with aiofiles.open(destination, "wb") as out_file:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                break
            await out_file.write(chunk)
    await upload.close()
    if written > max_bytes:
        destination.unlink(missing_ok=True)
        raise InvalidArgument(f"File size too large. Maximum size is {max_bytes // (1024 * 1024)}MB")
    return written


@router.get("/health")
async def health(request: Request):
    client = get_client(request)
    service = await client.health()
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "embedding_service_available": service.available,
        "model_loaded": service.model_loaded,
        "embedding_queue": get_pipeline(request).stats().as_dict(),
    }


@router.post("/images/upload", status_code=201)
async def upload_image(request: Request, image: Optional[UploadFile] = File(default=None)):
    if image is None:
        return _error(400, "No image file provided", ErrorCode.INVALID_ARGUMENT)
    if not (image.content_type or "").startswith("image/"):
        return _error(400, "Only image files are allowed", ErrorCode.INVALID_ARGUMENT)

    settings = get_settings(request)
    store = get_store(request)
    upload_dir = settings.resolved_upload_dir
    upload_dir.mkdir(parents=True, exist_ok=True)

    original_name = image.filename or "upload"
    filename = f"{secrets.token_hex(16)}{Path(original_name).suffix.lower()}"
    destination = upload_dir / filename
    try:
        size = await save_upload_file(image, destination, settings.max_upload_bytes)
    except InvalidArgument as exc:
        return _error(400, str(exc), exc.code)

    image_id = store.add_image(
        filename=filename,
        original_name=original_name,
        mime_type=image.content_type or "application/octet-stream",
        size_bytes=size,
        file_path=str(destination),
    )
    get_pipeline(request).enqueue(image_id, str(destination))
    logger.info("[UPLOAD] image_id=%s size=%d", image_id, size)
    return {
        "message": "Image uploaded successfully",
        "image": {
            "id": image_id,
            "filename": filename,
            "originalName": original_name,
            "size": size,
        },
    }


@router.get("/images/embedding-stats")
async def embedding_stats(request: Request):
    total, embedded = get_store(request).coverage()
    service = await get_client(request).health()
    snap = get_pipeline(request).stats()
    return {
        "total_images": total,
        "images_with_embeddings": embedded,
        "images_without_embeddings": total - embedded,
        "clip_service_available": service.available,
        "queue": {
            "pending": snap.pending,
            "processing": snap.processing,
            "processed": snap.processed,
            "failed": snap.failed,
            "current_batch": list(snap.current_batch),
        },
    }


@router.post("/images/clip-search")
async def clip_search(request: Request, body: SearchRequest = Body(...)):
    try:
        outcome = await semantic_search(
            get_store(request), get_client(request), body.query, body.top_k
        )
    except InvalidArgument as exc:
        return _error(400, str(exc), exc.code)
    except EmbeddingUnavailable:
        return _error(
            503,
            "Embedding search service is unavailable. Please ensure the service is running.",
            ErrorCode.EMBED_UNAVAILABLE,
        )
    except EmbeddingServiceError as exc:
        logger.error("[SEARCH] failed kind=%s error=%s", exc.kind, exc)
        return _error(500, code=exc.code)
    return outcome.as_dict()


@router.post("/images/regenerate-all-embeddings", dependencies=[Depends(require_admin)])
async def regenerate_all_embeddings(
    request: Request,
    missing_only: bool = Query(default=False),
):
    rows = get_store(request).list_for_embedding(missing_only=missing_only)
    if not rows:
        return {"message": "No images found", "total": 0, "queued": 0, "skipped": 0}

    pipeline = get_pipeline(request)
    queued = 0
    skipped = 0
    for row in rows:
        if not Path(row["file_path"]).is_file():
            skipped += 1
            logger.warning("[EMBED_QUEUE] skip_missing_file image_id=%s path=%s", row["id"], row["file_path"])
            continue
        pipeline.enqueue(row["id"], row["file_path"])
        queued += 1
    return {
        "message": "All images added to embedding queue",
        "total": len(rows),
        "queued": queued,
        "skipped": skipped,
    }


@router.get("/images/{image_id}")
async def get_image(request: Request, image_id: int):
    row = get_store(request).get_image(image_id)
    if row is None:
        return _error(404, "Image not found", ErrorCode.IMAGE_NOT_FOUND)
    return {
        "id": row["id"],
        "filename": row["filename"],
        "original_name": row["original_name"],
        "mime_type": row["mime_type"],
        "size": row["size_bytes"],
        "created_at": row["created_at"],
        "embedded_at": row["embedded_at"],
        "has_embedding": row["embedding"] is not None,
    }


@router.delete("/images/{image_id}", dependencies=[Depends(require_admin)])
async def delete_image(request: Request, image_id: int):
    store = get_store(request)
    row = store.get_image(image_id)
    if row is None:
        return _error(404, "Image not found", ErrorCode.IMAGE_NOT_FOUND)
    store.delete_image(image_id)
    Path(row["file_path"]).unlink(missing_ok=True)
    return {"message": "Image deleted successfully"}


@router.post("/images/{image_id}/regenerate-embedding", dependencies=[Depends(require_admin)])
async def regenerate_embedding(request: Request, image_id: int):
    row = get_store(request).get_image(image_id)
    if row is None:
        return _error(404, "Image not found", ErrorCode.IMAGE_NOT_FOUND)
    if not Path(row["file_path"]).is_file():
        return _error(404, "Image file not found on server", ErrorCode.FILE_NOT_FOUND)
    get_pipeline(request).enqueue(image_id, row["file_path"])
    return {"message": "Image added to embedding queue", "imageId": image_id}


@router.get("/images/debug-embedding/{image_id}", dependencies=[Depends(require_admin)])
async def debug_embedding(request: Request, image_id: int):
    row = get_store(request).get_image(image_id)
    if row is None:
        return _error(404, "Image not found", ErrorCode.IMAGE_NOT_FOUND)

    raw = row["embedding"]
    info = {
        "id": row["id"],
        "filename": row["filename"],
        "embeddingType": type(raw).__name__,
        "embeddingLength": len(raw) if raw is not None else 0,
    }
    if raw is None:
        info["parseSuccess"] = False
        info["parseError"] = "embedding is null"
        return info
    try:
        vec = parse_embedding(raw)
    except MalformedEmbedding as exc:
        info["parseSuccess"] = False
        info["parseError"] = str(exc)
        return info
    info.update(
        {
            "parseSuccess": True,
            "isArray": True,
            "arrayLength": len(vec),
            "firstElementType": type(vec[0]).__name__,
            "sampleValues": vec[:5],
        }
    )
    return info


@router.get("/queue/stats", dependencies=[Depends(require_admin)])
async def queue_stats(request: Request):
    return get_pipeline(request).stats().as_dict()


@router.post("/queue/clear", dependencies=[Depends(require_admin)])
async def clear_queue(request: Request):
    cleared = get_pipeline(request).clear()
    return {"message": "Queue cleared successfully", "cleared": cleared}
