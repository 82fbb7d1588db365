from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Callable, Sequence, TextIO

from .models import EPOCH, TagRecord


class PromptAborted(RuntimeError):
    pass


def _ask(prompt: str, input_fn: Callable[[str], str]) -> str:
    try:
        return input_fn(prompt)
    except (EOFError, KeyboardInterrupt) as e:
        raise PromptAborted("selection cancelled") from e


def select(
    title: str,
    options: Sequence[tuple[str, str]],
    *,
    input_fn: Callable[[str], str] = input,
    out: TextIO = sys.stdout,
) -> str:
    """Numbered single choice over ``(value, description)`` pairs; returns the value."""
    if not options:
        raise PromptAborted(f"nothing to choose from: {title}")

    print(title, file=out)
    width = len(str(len(options)))
    for i, (value, desc) in enumerate(options, start=1):
        line = f"  {i:>{width}}) {value}"
        if desc:
            line += f"  {desc}"
        print(line, file=out)

    while True:
        raw = _ask(f"Select [1-{len(options)}] (q to quit): ", input_fn).strip()
        if raw.lower() in {"q", "quit"}:
            raise PromptAborted("selection cancelled")
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return options[int(raw) - 1][0]
        # Accept the value itself as well.
        for value, _ in options:
            if raw == value:
                return value
        print(f"Invalid choice: {raw!r}", file=out)


def input_text(prompt: str, default: str = "", *, input_fn: Callable[[str], str] = input) -> str:
    hint = f" [{default}]" if default else ""
    raw = _ask(f"{prompt}{hint}: ", input_fn).strip()
    value = raw or default
    if not value:
        raise PromptAborted("no value entered")
    return value


def confirm(message: str, *, input_fn: Callable[[str], str] = input) -> bool:
    """Yes/no question; anything but an explicit yes (including EOF) is a no."""
    try:
        raw = input_fn(f"{message} [y/N]: ")
    except (EOFError, KeyboardInterrupt):
        return False
    return raw.strip().lower() in {"y", "yes"}


def _age(created: datetime, now: datetime) -> str:
    seconds = int((now - created).total_seconds())
    if seconds < 0:
        return "just now"
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit} ago"
    return f"{seconds}s ago"


def describe_tag(record: TagRecord, now: datetime | None = None) -> str:
    if record.created_at is None:
        return ""
    if record.created_at <= EPOCH:
        return "(created: unknown)"
    now = now or datetime.now(timezone.utc)
    return f"(created: {record.created_at:%Y-%m-%d %H:%M} UTC, {_age(record.created_at, now)})"
