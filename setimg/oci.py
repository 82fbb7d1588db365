"""Minimal OCI distribution (registry v2) client used for tag listing.

Only the read calls needed to list tags and read an image's creation time
are implemented: ``/tags/list``, ``/manifests/<ref>`` and ``/blobs/<digest>``,
plus the bearer-token challenge flow.
"""
from __future__ import annotations

import base64
import re
from datetime import datetime, timezone
from threading import Lock

import httpx
from pydantic import BaseModel, ValidationError

from .enrich import enrich_or_fallback
from .models import TagRecord
from .providers import NoTagsFound, RegistryError
from .settings import settings


MANIFEST_ACCEPT = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    ]
)

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')
_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:?\d{2})?$"
)


class TokenResponse(BaseModel):
    token: str | None = None
    access_token: str | None = None


class TagList(BaseModel):
    name: str | None = None
    tags: list[str] | None = None


class Platform(BaseModel):
    architecture: str = ""
    os: str = ""


class Descriptor(BaseModel):
    mediaType: str | None = None
    digest: str
    platform: Platform | None = None


class Manifest(BaseModel):
    mediaType: str | None = None
    config: Descriptor | None = None
    manifests: list[Descriptor] | None = None


class ImageConfig(BaseModel):
    created: str | None = None


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as written by image builders.

    Builders emit up to nanosecond precision; fractions are cut to
    microseconds. Unparseable values yield None.
    """
    if not raw:
        return None
    m = _TIMESTAMP_RE.match(raw.strip())
    if not m:
        return None
    frac = (m.group("frac") or "0")[:6].ljust(6, "0")
    tz = m.group("tz") or "Z"
    if tz == "Z":
        tz = "+00:00"
    elif ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"
    try:
        dt = datetime.fromisoformat(f"{m.group('base').replace(' ', 'T')}.{frac}{tz}")
    except ValueError:
        return None
    return dt.astimezone(timezone.utc)


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Split a ``WWW-Authenticate`` header into (scheme, params)."""
    header = (header or "").strip()
    if not header:
        return "", {}
    scheme, _, rest = header.partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM_RE.findall(rest))


def _pick_platform(manifests: list[Descriptor]) -> Descriptor:
    for d in manifests:
        if d.platform and d.platform.os == "linux" and d.platform.architecture == "amd64":
            return d
    return manifests[0]


def _basic_auth_header(credentials: tuple[str, str]) -> str:
    user, password = credentials
    encoded = base64.b64encode(f"{user}:{password}".encode()).decode()
    return f"Basic {encoded}"


def _registry_base_url(host: str) -> str:
    bare = host.split(":", 1)[0]
    scheme = "http" if bare in {"localhost", "127.0.0.1"} else "https"
    return f"{scheme}://{host}"


class RegistryClient:
    """Read-only registry v2 client for a single host.

    Bearer tokens are cached per scope for the lifetime of the client, which
    the backends keep to a single listing call.
    """

    def __init__(
        self,
        host: str,
        credentials: tuple[str, str] | None = None,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.host = host
        self.credentials = credentials
        self._http = httpx.Client(
            base_url=_registry_base_url(host),
            timeout=timeout_s,
            follow_redirects=True,
            transport=transport,
        )
        self._lock = Lock()
        self._tokens: dict[str, str] = {}

    def __enter__(self) -> "RegistryClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # -- public calls -------------------------------------------------

    def list_tags(self, repository: str) -> list[str]:
        """All tags of ``repository`` in registry order, following pagination."""
        scope = f"repository:{repository}:pull"
        url: str | None = f"/v2/{repository}/tags/list"
        tags: list[str] = []
        while url:
            resp = self._request("GET", url, scope=scope)
            try:
                page = TagList.model_validate(resp.json())
            except (ValueError, ValidationError) as e:
                raise RegistryError(f"unexpected tag list payload from {self.host}/{repository}: {e}") from e
            tags.extend(t for t in (page.tags or []) if t)
            url = resp.links.get("next", {}).get("url")
        return tags

    def fetch_created_at(self, repository: str, tag: str) -> datetime | None:
        """Creation time from the image config blob of ``repository:tag``."""
        scope = f"repository:{repository}:pull"
        manifest = self._get_manifest(repository, tag, scope)
        if manifest.manifests:
            chosen = _pick_platform(manifest.manifests)
            manifest = self._get_manifest(repository, chosen.digest, scope)
        if manifest.config is None:
            raise RegistryError(f"manifest for {repository}:{tag} has no image config")

        resp = self._request("GET", f"/v2/{repository}/blobs/{manifest.config.digest}", scope=scope)
        try:
            config = ImageConfig.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise RegistryError(f"unexpected image config for {repository}:{tag}: {e}") from e
        return parse_timestamp(config.created)

    # -- internals ----------------------------------------------------

    def _get_manifest(self, repository: str, reference: str, scope: str) -> Manifest:
        resp = self._request(
            "GET",
            f"/v2/{repository}/manifests/{reference}",
            scope=scope,
            headers={"Accept": MANIFEST_ACCEPT},
        )
        try:
            return Manifest.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise RegistryError(f"unexpected manifest for {repository}@{reference}: {e}") from e

    def _request(
        self,
        method: str,
        url: str,
        *,
        scope: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = dict(headers or {})
        with self._lock:
            token = self._tokens.get(scope)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = self._http.request(method, url, headers=headers)
            if resp.status_code == 401:
                auth = self._answer_challenge(resp.headers.get("WWW-Authenticate", ""), scope)
                if auth:
                    headers["Authorization"] = auth
                    resp = self._http.request(method, url, headers=headers)
        except httpx.HTTPError as e:
            raise RegistryError(f"{method} {self.host}{url} failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise RegistryError(f"{method} {resp.request.url} returned HTTP {resp.status_code}")
        return resp

    def _answer_challenge(self, header: str, scope: str) -> str | None:
        scheme, params = parse_challenge(header)
        if scheme == "basic":
            if not self.credentials:
                return None
            return _basic_auth_header(self.credentials)
        if scheme != "bearer" or "realm" not in params:
            return None

        query = {k: v for k, v in (("service", params.get("service")), ("scope", params.get("scope") or scope)) if v}
        try:
            resp = self._http.get(params["realm"], params=query, auth=self.credentials)
        except httpx.HTTPError as e:
            raise RegistryError(f"token request to {params['realm']} failed: {e}") from e
        if resp.status_code != 200:
            raise RegistryError(f"token request to {params['realm']} returned HTTP {resp.status_code}")
        try:
            body = TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise RegistryError(f"unexpected token response from {params['realm']}: {e}") from e
        token = body.token or body.access_token
        if not token:
            raise RegistryError(f"token endpoint {params['realm']} returned no token")
        with self._lock:
            self._tokens[scope] = token
        return f"Bearer {token}"


def registry_tag_records(
    host: str,
    repository: str,
    credentials: tuple[str, str] | None = None,
    *,
    timeout_s: float | None = None,
    transport: httpx.BaseTransport | None = None,
) -> list[TagRecord]:
    """List the tags of ``host/repository`` and timestamp them concurrently."""
    timeout_s = settings.registry_timeout_s if timeout_s is None else timeout_s
    with RegistryClient(host, credentials, timeout_s=timeout_s, transport=transport) as reg:
        tags = reg.list_tags(repository)
        if not tags:
            raise NoTagsFound(f"no tags found for image {host}/{repository}")
        return enrich_or_fallback(repository, tags, reg.fetch_created_at)
