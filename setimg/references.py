"""Helpers for image reference strings such as ``[host/]repository[:tag]``.

References stay plain strings; each backend applies its own recognition
rules on top of these helpers.
"""
from __future__ import annotations

import re

from docker.auth import INDEX_NAME, resolve_repository_name
from docker.errors import InvalidRepository
from docker.utils import parse_repository_tag


ECR_IMAGE_RE = re.compile(r"^(\d+)\.dkr\.ecr\.([^.]+)\.amazonaws\.com/([^:]+)(?::(.+))?$")

DOCKER_HUB_HOSTS = frozenset({INDEX_NAME, "index.docker.io", "registry-1.docker.io"})
DOCKER_HUB_API_HOST = "registry-1.docker.io"


class InvalidReference(ValueError):
    pass


def split_tag(image: str) -> tuple[str, str | None]:
    """Split ``name:tag`` / ``name@digest``; a ``host:port`` is never a tag."""
    if not image or not image.strip():
        raise InvalidReference("empty image reference")
    name, tag = parse_repository_tag(image.strip())
    return name, tag


def _resolve(image: str) -> tuple[str, str]:
    name, _ = split_tag(image)
    try:
        host, path = resolve_repository_name(name)
    except InvalidRepository as e:
        raise InvalidReference(f"invalid image reference {image!r}: {e}") from e
    if not path:
        raise InvalidReference(f"image reference {image!r} has no repository")
    return host, path


def registry_host(image: str) -> str:
    """Registry host of ``image``; Docker Hub (or no host at all) is ``docker.io``."""
    return _resolve(image)[0]


def repository_path(image: str) -> str:
    """Repository part of ``image`` without host and tag."""
    return _resolve(image)[1]


def host_segment(image: str) -> str | None:
    """The text before the first ``/``, or None for a bare name."""
    name, _ = split_tag(image)
    if "/" not in name:
        return None
    return name.split("/", 1)[0]


def parse_ecr_image(image: str) -> tuple[str, str]:
    """Return ``(region, repository)`` of an ECR image; the account id is dropped.

    Expected format: ``<account-id>.dkr.ecr.<region>.amazonaws.com/<repository>[:tag]``.
    """
    m = ECR_IMAGE_RE.match(image or "")
    if not m:
        raise InvalidReference(
            f"invalid ECR image format: {image}. "
            "Expected format: <account-id>.dkr.ecr.<region>.amazonaws.com/<repository>[:tag]"
        )
    region, repository = m.group(2), m.group(3)
    if not region or not repository:
        raise InvalidReference(f"failed to extract region or repository from ECR image: {image}")
    return region, repository


def docker_hub_repository(path: str) -> str:
    # Official images live under library/ on the registry API.
    if "/" not in path:
        return f"library/{path}"
    return path
