from __future__ import annotations

from typing import Callable

import google.auth
import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request

from .models import TagRecord, tag_names
from .oci import registry_tag_records
from .providers import RegistryError
from .references import InvalidReference, registry_host, repository_path


CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def adc_credentials() -> tuple[str, str] | None:
    """Registry credentials from Application Default Credentials, or None (anonymous)."""
    try:
        credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
        credentials.refresh(Request())
    except GoogleAuthError:
        return None
    token = getattr(credentials, "token", None)
    if not token:
        return None
    return "oauth2accesstoken", token


class GcpProvider:
    """Google Container Registry (``*gcr.io``) and Artifact Registry (``*pkg.dev``)."""

    name = "GCP (GCR/Artifact Registry)"

    def __init__(
        self,
        credentials_provider: Callable[[], tuple[str, str] | None] = adc_credentials,
        transport: httpx.BaseTransport | None = None,
    ):
        self._credentials_provider = credentials_provider
        self._transport = transport

    def classify(self, image: str) -> bool:
        try:
            host = registry_host(image)
        except InvalidReference:
            return False
        return "gcr.io" in host or "pkg.dev" in host

    def list_tags(self, image: str) -> list[str]:
        return tag_names(self.list_tags_with_time(image))

    def list_tags_with_time(self, image: str) -> list[TagRecord]:
        try:
            host, repository = registry_host(image), repository_path(image)
        except InvalidReference as e:
            raise RegistryError(f"failed to parse image reference {image}: {e}") from e
        return registry_tag_records(
            host,
            repository,
            self._credentials_provider(),
            transport=self._transport,
        )
