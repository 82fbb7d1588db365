from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, Sequence

from .db import log_event
from .models import EPOCH, TagRecord, sort_and_truncate
from .providers import RegistryError
from .settings import settings


FetchCreatedAt = Callable[[str, str], datetime | None]


class EnrichmentFailed(RegistryError):
    """No tag of a batch could be given a creation time."""


def _normalize_created(created: datetime | None) -> datetime:
    """Missing and zero/epoch creation times become EPOCH so they sort last."""
    if created is None:
        return EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    if created <= EPOCH:
        return EPOCH
    return created


def enrich(
    repository: str,
    tags: Sequence[str],
    fetch_created_at: FetchCreatedAt,
    *,
    max_workers: int | None = None,
    max_tags: int | None = None,
    limit: int | None = None,
) -> list[TagRecord]:
    """Attach creation times to ``tags`` using a bounded worker pool.

    Only the first ``max_tags`` tags (listing order) are looked up, with at
    most ``min(max_workers, len(batch))`` lookups in flight. A failed lookup
    is journalled and skipped; if every lookup fails ``EnrichmentFailed`` is
    raised. The result is sorted newest first (ties keep listing order) and
    cut to ``limit`` records.
    """
    max_workers = settings.max_concurrency if max_workers is None else max_workers
    max_tags = settings.max_enrich_tags if max_tags is None else max_tags
    limit = settings.max_listed_tags if limit is None else limit

    batch = list(tags)[: max(0, int(max_tags))]
    if not batch:
        raise EnrichmentFailed(f"no tags to look up for {repository}")

    workers = max(1, min(int(max_workers), len(batch)))
    found: dict[int, TagRecord] = {}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="setimg-enrich") as pool:
        futures = {pool.submit(fetch_created_at, repository, tag): i for i, tag in enumerate(batch)}
        # Wait for exactly one outcome per submitted lookup.
        for fut in as_completed(futures):
            i = futures[fut]
            tag = batch[i]
            try:
                found[i] = TagRecord(tag=tag, created_at=_normalize_created(fut.result()))
            except Exception as e:
                log_event(
                    "WARN",
                    f"Failed to get creation time for tag {tag}: {type(e).__name__}: {e}",
                    image=f"{repository}:{tag}",
                )

    if not found:
        raise EnrichmentFailed(f"failed to get creation time for any tags of {repository}")

    return sort_and_truncate([found[i] for i in sorted(found)], limit)


def enrich_or_fallback(
    repository: str,
    tags: Sequence[str],
    fetch_created_at: FetchCreatedAt,
    *,
    max_workers: int | None = None,
    max_tags: int | None = None,
    limit: int | None = None,
) -> list[TagRecord]:
    """Like ``enrich`` but falls back to alphabetical order without timestamps."""
    limit = settings.max_listed_tags if limit is None else limit
    try:
        return enrich(
            repository,
            tags,
            fetch_created_at,
            max_workers=max_workers,
            max_tags=max_tags,
            limit=limit,
        )
    except EnrichmentFailed as e:
        log_event("WARN", f"{e}; falling back to alphabetical order", image=repository)
        return [TagRecord(tag=t) for t in sorted(t for t in tags if t)][: max(0, int(limit))]
