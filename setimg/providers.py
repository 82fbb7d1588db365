from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from .models import TagRecord, tag_names


class RegistryError(RuntimeError):
    """Listing tags from a registry failed."""


class ProviderNotFound(RegistryError):
    pass


class NoTagsFound(RegistryError):
    pass


@runtime_checkable
class Provider(Protocol):
    """A registry backend that recognizes, lists and timestamps image tags."""

    name: str

    def classify(self, image: str) -> bool: ...

    def list_tags(self, image: str) -> list[str]: ...

    def list_tags_with_time(self, image: str) -> list[TagRecord]: ...


class ProviderRegistry:
    """Ordered collection of registry backends.

    The first backend whose ``classify`` accepts a reference handles it, so
    specific domain matchers must be registered before catch-all ones.
    Backends keep no state between calls; one registry can serve many
    lookups.
    """

    def __init__(self, providers: Iterable[Provider] = ()):
        self._providers: list[Provider] = list(providers)

    def register(self, provider: Provider) -> None:
        self._providers.append(provider)

    def resolve(self, image: str) -> Provider | None:
        for provider in self._providers:
            if provider.classify(image):
                return provider
        return None

    def list_names(self) -> list[str]:
        return [p.name for p in self._providers]

    def _require(self, image: str) -> Provider:
        provider = self.resolve(image)
        if provider is None:
            raise ProviderNotFound(
                f"no provider found for image: {image} (supported: {', '.join(self.list_names())})"
            )
        return provider

    def list_tags(self, image: str) -> list[str]:
        return tag_names(self.list_tags_with_time(image))

    def list_tags_with_time(self, image: str) -> list[TagRecord]:
        return self._require(image).list_tags_with_time(image)


def default_registry() -> ProviderRegistry:
    """Built-in backends: ECR, then GCR/Artifact Registry, then the generic registry last."""
    from .dockerhub import DockerHubProvider
    from .ecr import EcrProvider
    from .gcp import GcpProvider

    return ProviderRegistry([EcrProvider(), GcpProvider(), DockerHubProvider()])
