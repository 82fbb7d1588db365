from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from pydantic import BaseModel, Field, field_validator


# Sorts after every real creation time; used when a registry reports none.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TagRecord:
    """One tag of a repository and, when known, when its image was created.

    ``created_at`` is ``None`` when no creation time could be determined.
    """

    tag: str
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.tag:
            raise ValueError("tag must be a non-empty string")
        if self.created_at is not None and self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))


def tag_names(records: Iterable[TagRecord]) -> list[str]:
    return [r.tag for r in records]


def sort_newest_first(records: Iterable[TagRecord]) -> list[TagRecord]:
    """Stable sort, newest first; records without a timestamp go last."""
    # reverse=True keeps equal keys in encounter order.
    return sorted(
        records,
        key=lambda r: (r.created_at is not None, r.created_at or EPOCH),
        reverse=True,
    )


def sort_and_truncate(records: Iterable[TagRecord], limit: int = 20) -> list[TagRecord]:
    return sort_newest_first(records)[: max(0, int(limit))]


class SetImageRequest(BaseModel):
    workload: str = Field(..., min_length=1, description="Deployment name")
    container: str = Field(..., min_length=1, description="Container name inside the pod template")
    image: str = Field(..., min_length=1, description="New image reference (name[:tag])")
    watch: bool = False
    timeout_s: int = Field(300, ge=1, le=24 * 3600, description="Readiness watch timeout")

    @field_validator("image")
    @classmethod
    def _no_whitespace(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("image reference must not contain whitespace")
        return v
