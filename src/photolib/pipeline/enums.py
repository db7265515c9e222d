from __future__ import annotations

import enum

if hasattr(enum, "StrEnum"):
    StrEnum = enum.StrEnum
else:

    class StrEnum(str, enum.Enum):
        pass


class PipelineState(StrEnum):
    IDLE = "idle"
    DRAINING = "draining"


class EmbedErrorKind(StrEnum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    ERROR = "error"
