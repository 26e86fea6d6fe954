"""Value objects shared by the relay pipeline, stores and job registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ExecutionMode(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


@dataclass(frozen=True)
class Fidelity:
    """Target output fidelity, both values in [0, 1]."""

    quality: float = 0.5
    scale: float = 1.0

    def __post_init__(self) -> None:
        for name in ("quality", "scale"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")

    @classmethod
    def from_percent(cls, quality: float, scale: float) -> "Fidelity":
        return cls(quality=quality / 100.0, scale=scale / 100.0)


@dataclass(frozen=True)
class DestinationHints:
    """Caller-supplied placement for the stored output."""

    parent_id: Optional[str] = None
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class StoreHints:
    """Resolved placement handed to a Destination Store.

    ``inherited`` is True when ``container_id`` came from the source document
    rather than from an explicit caller parent.
    """

    container_id: Optional[str] = None
    owner_id: Optional[str] = None
    inherited: bool = False


@dataclass(frozen=True)
class TransformRequest:
    source_ref: str
    fidelity: Fidelity = field(default_factory=Fidelity)
    hints: DestinationHints = field(default_factory=DestinationHints)
    force_async: bool = False


@dataclass(frozen=True)
class SourceMetadata:
    title: str
    size: Optional[int] = None
    container_id: Optional[str] = None


@dataclass(frozen=True)
class StoredDocument:
    handle: str
    name: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class RelayResult:
    original_size: int
    transformed_size: int
    reduction_percent: float
    destination_handle: str
    title: str
    destination_url: Optional[str] = None
    kept_original: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalSize": self.original_size,
            "transformedSize": self.transformed_size,
            "reductionPercent": self.reduction_percent,
            "destinationHandle": self.destination_handle,
            "title": self.title,
            "destinationUrl": self.destination_url,
            "keptOriginal": self.kept_original,
        }


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass
class Job:
    """One background transform-and-relay operation."""

    id: str
    params: TransformRequest
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    message: str = "Queued"
    created_at: float = 0.0
    completed_at: Optional[float] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }
        if self.result is not None:
            data["result"] = dict(self.result)
        if self.error is not None:
            data["error"] = self.error
        return data
