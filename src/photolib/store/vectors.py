# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import math
from typing import Any, List, Sequence

from photolib.core.errors import MalformedEmbedding


def encode_embedding(vec: Sequence[float]) -> str:
    """Serialize a vector for the ``images.embedding`` column.

    ``json`` writes floats with ``repr`` so every value reads back bit-exact.
    """
    return json.dumps([float(x) for x in vec])


def parse_embedding(raw: Any) -> List[float]:
    """Parse a stored embedding into a list of floats.

    Accepts the JSON text written by :func:`encode_embedding`, its bytes, or a
    native list/tuple (drivers that decode JSON columns themselves). Anything
    that is not a non-empty sequence of finite numbers raises
    :class:`MalformedEmbedding`.
    """
    if raw is None:
        raise MalformedEmbedding("embedding is null")
    value = raw
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            value = bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEmbedding(f"embedding is not utf-8 text: {exc}") from exc
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise MalformedEmbedding(f"embedding is not valid JSON: {exc}") from exc
    if not isinstance(value, (list, tuple)):
        raise MalformedEmbedding(f"embedding is {type(value).__name__}, expected array")
    if not value:
        raise MalformedEmbedding("embedding is empty")
    out: List[float] = []
    for x in value:
        # bool is an int subclass
        if isinstance(x, bool) or not isinstance(x, (int, float)):
            raise MalformedEmbedding("embedding is not an array of numbers")
        f = float(x)
        if not math.isfinite(f):
            raise MalformedEmbedding("embedding contains a non-finite value")
        out.append(f)
    return out
