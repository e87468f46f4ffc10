"""Typed, read-only records returned by the core components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

DEFAULT_LIMIT = 50


class NodeKind(str, Enum):
    FOLDER = "folder"
    JOB = "job"


class SortKey(str, Enum):
    NUMBER = "number"
    TIMESTAMP = "timestamp"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class TreeNode:
    name: str
    full_name: str
    kind: NodeKind
    url: str
    depth: int
    color: str | None = None
    item_class: str = ""

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER


@dataclass(frozen=True)
class BuildRecord:
    number: int
    url: str = ""
    result: str | None = None
    timestamp: int = 0
    duration_ms: int = 0
    building: bool = False
    display_name: str | None = None
    full_display_name: str | None = None
    description: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> BuildRecord:
        return cls(
            number=data["number"],
            url=data.get("url") or "",
            result=data.get("result"),
            timestamp=data.get("timestamp") or 0,
            duration_ms=data.get("duration") or 0,
            building=bool(data.get("building", False)),
            display_name=data.get("displayName"),
            full_display_name=data.get("fullDisplayName"),
            description=data.get("description"),
        )

    @property
    def in_progress(self) -> bool:
        return self.result is None and self.building

    @property
    def status(self) -> str:
        """Result, 'IN_PROGRESS' while building, or 'UNKNOWN' (no result, not building)."""
        if self.result:
            return self.result
        return "IN_PROGRESS" if self.building else "UNKNOWN"


@dataclass(frozen=True)
class BuildQuery:
    """Filter, sort and page specification for ``get_builds``."""

    status: str | None = None
    branch: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    offset: int = 0
    limit: int = DEFAULT_LIMIT
    sort_key: SortKey = SortKey.NUMBER
    sort_order: SortOrder = SortOrder.DESC

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")
        if self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        # Accept plain strings ("timestamp", "ASC") for the enum fields.
        object.__setattr__(self, "sort_key", _coerce(SortKey, self.sort_key))
        object.__setattr__(self, "sort_order", _coerce(SortOrder, self.sort_order))


def _coerce(enum_cls: type[Enum], value: Enum | str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} {value!r}; expected one of: {choices}") from None


@dataclass(frozen=True)
class StepError:
    message: str
    kind: str = ""


@dataclass(frozen=True)
class StepNode:
    id: str
    name: str
    status: str
    start_time_ms: int | None = None
    duration_ms: int | None = None
    pause_duration_ms: int | None = None
    error: StepError | None = None


@dataclass(frozen=True)
class StageNode:
    id: str
    name: str
    status: str
    start_time_ms: int | None = None
    duration_ms: int | None = None
    pause_duration_ms: int | None = None
    steps: tuple[StepNode, ...] = ()


@dataclass(frozen=True)
class JobParameter:
    name: str
    type: str
    description: str | None = None
    default: Any = None
    choices: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ProgressiveText:
    """One ``logText/progressiveText`` response."""

    text: str
    size: int
    has_more: bool


@dataclass
class LogCursor:
    offset: int = 0
    total_size_known: bool = False
    is_complete: bool = False


@dataclass(frozen=True)
class LogChunk:
    text: str
    offset: int
    size: int


@dataclass(frozen=True)
class StreamEnd:
    result: str = "UNKNOWN"
    cancelled: bool = False


StreamEvent = LogChunk | StreamEnd
