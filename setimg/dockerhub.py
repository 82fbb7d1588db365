from __future__ import annotations

from typing import Callable

import httpx
from docker.auth import load_config, resolve_authconfig
from docker.errors import DockerException

from .models import TagRecord, tag_names
from .oci import registry_tag_records
from .providers import RegistryError
from .references import (
    DOCKER_HUB_API_HOST,
    DOCKER_HUB_HOSTS,
    InvalidReference,
    docker_hub_repository,
    host_segment,
    registry_host,
    repository_path,
    split_tag,
)


def docker_credentials(host: str) -> tuple[str, str] | None:
    """Username/password for ``host`` from the Docker config and credential helpers."""
    registry = None if host in DOCKER_HUB_HOSTS else host
    try:
        auth = resolve_authconfig(load_config(), registry=registry)
    except (DockerException, OSError):
        return None
    if not auth:
        return None
    # Plain config entries use lower-case keys, credential stores capitalized ones.
    user = auth.get("username") or auth.get("Username")
    password = auth.get("password") or auth.get("Password")
    if user and password:
        return user, password
    return None


class DockerHubProvider:
    """Docker Hub and any registry reached through a plain name.

    Claims references without a registry host, Docker Hub hosts, bare names
    and one-level names such as ``library/nginx``. Register it last.
    """

    name = "Docker Hub"

    def __init__(
        self,
        credentials_provider: Callable[[str], tuple[str, str] | None] = docker_credentials,
        transport: httpx.BaseTransport | None = None,
    ):
        self._credentials_provider = credentials_provider
        self._transport = transport

    def classify(self, image: str) -> bool:
        try:
            host = registry_host(image)
            name, _ = split_tag(image)
        except InvalidReference:
            return False
        if host in DOCKER_HUB_HOSTS:
            return True
        segment = host_segment(image)
        if segment is None:
            return True
        return name.count("/") == 1 and "." not in segment

    def list_tags(self, image: str) -> list[str]:
        return tag_names(self.list_tags_with_time(image))

    def list_tags_with_time(self, image: str) -> list[TagRecord]:
        try:
            host, repository = registry_host(image), repository_path(image)
        except InvalidReference as e:
            raise RegistryError(f"failed to parse image reference {image}: {e}") from e

        api_host = host
        if host in DOCKER_HUB_HOSTS:
            api_host = DOCKER_HUB_API_HOST
            repository = docker_hub_repository(repository)

        return registry_tag_records(
            api_host,
            repository,
            self._credentials_provider(host),
            transport=self._transport,
        )
