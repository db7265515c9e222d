# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    EMBED_UNAVAILABLE = "EMBED_UNAVAILABLE"
    EMBED_TIMEOUT = "EMBED_TIMEOUT"
    EMBED_REJECTED = "EMBED_REJECTED"
    EMBED_ERROR = "EMBED_ERROR"
    MALFORMED_EMBEDDING = "MALFORMED_EMBEDDING"


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    hint: str
    retryable: bool = True


_ERRORS: dict[ErrorCode, ErrorInfo] = {
    ErrorCode.INVALID_ARGUMENT: ErrorInfo(
        message="The request is missing a required value or carries an invalid one.",
        hint="Check the request parameters and try again.",
        retryable=False,
    ),
    ErrorCode.IMAGE_NOT_FOUND: ErrorInfo(
        message="Image not found.",
        hint="The image may have been deleted.",
        retryable=False,
    ),
    ErrorCode.FILE_NOT_FOUND: ErrorInfo(
        message="Image file not found on server.",
        hint="Re-upload the image; its file is missing from the upload directory.",
        retryable=False,
    ),
    ErrorCode.EMBED_UNAVAILABLE: ErrorInfo(
        message="The embedding service is unavailable.",
        hint="Ensure the embedding service is running and reachable.",
    ),
    ErrorCode.EMBED_TIMEOUT: ErrorInfo(
        message="The embedding service did not answer in time.",
        hint="The service may be overloaded; regenerate the embedding later.",
    ),
    ErrorCode.EMBED_REJECTED: ErrorInfo(
        message="The embedding service rejected the request.",
        hint="Check the embedding service logs for the rejected image.",
    ),
    ErrorCode.EMBED_ERROR: ErrorInfo(
        message="Failed to communicate with the embedding service.",
        hint="Check the network and the embedding service URL.",
    ),
    ErrorCode.MALFORMED_EMBEDDING: ErrorInfo(
        message="A stored embedding could not be parsed.",
        hint="Regenerate the embedding for this image.",
    ),
}


class PhotolibError(Exception):
    code: ErrorCode = ErrorCode.INVALID_ARGUMENT


class InvalidArgument(PhotolibError, ValueError):
    code = ErrorCode.INVALID_ARGUMENT


class ImageNotFound(PhotolibError, LookupError):
    code = ErrorCode.IMAGE_NOT_FOUND


class MalformedEmbedding(PhotolibError, ValueError):
    code = ErrorCode.MALFORMED_EMBEDDING


def get_error_info(code: ErrorCode) -> ErrorInfo:
    return _ERRORS.get(
        code,
        ErrorInfo(message="An unknown error occurred.", hint="Retry later or check the backend log."),
    )
