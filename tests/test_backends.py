from datetime import datetime, timedelta, timezone

import httpx
import pytest
from botocore.exceptions import ClientError

from setimg import dockerhub, gcp
from setimg.dockerhub import DockerHubProvider
from setimg.ecr import EcrProvider
from setimg.providers import NoTagsFound, RegistryError

ECR_IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/team/api:v1"
BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self.pages)


class FakeEcr:
    def __init__(self, pages=(), error=None):
        self.paginator = FakePaginator(list(pages))
        self.error = error

    def get_paginator(self, operation):
        assert operation == "describe_images"
        if self.error:
            raise self.error
        return self.paginator


def _detail(tags, days):
    return {"imageTags": tags, "imagePushedAt": BASE + timedelta(days=days)}


def test_ecr_lists_tags_newest_first():
    fake = FakeEcr(pages=[{"imageDetails": [_detail(["v1"], 1), _detail(["v3", "latest"], 3)]}, {"imageDetails": [_detail(["v2"], 2), {"imageDigest": "sha256:untagged"}]}])
    regions = []

    def factory(region):
        regions.append(region)
        return fake

    provider = EcrProvider(client_factory=factory)
    records = provider.list_tags_with_time(ECR_IMAGE)

    assert regions == ["us-west-2"]
    assert fake.paginator.kwargs["repositoryName"] == "team/api"
    assert [r.tag for r in records] == ["v3", "latest", "v2", "v1"]
    assert provider.list_tags(ECR_IMAGE) == ["v3", "latest", "v2", "v1"]


def test_ecr_caps_images_read():
    pages = [{"imageDetails": [_detail([f"t{p}-{i}"], p * 10 + i) for i in range(10)]} for p in range(5)]
    provider = EcrProvider(client_factory=lambda region: FakeEcr(pages=pages), max_images=25, limit=100)
    assert len(provider.list_tags_with_time(ECR_IMAGE)) == 25


def test_ecr_truncates_to_twenty():
    details = [_detail([f"v{i}"], i) for i in range(30)]
    provider = EcrProvider(client_factory=lambda region: FakeEcr(pages=[{"imageDetails": details}]))
    records = provider.list_tags_with_time(ECR_IMAGE)
    assert len(records) == 20
    assert records[0].tag == "v29"


def test_ecr_empty_repository():
    provider = EcrProvider(client_factory=lambda region: FakeEcr(pages=[{"imageDetails": []}]))
    with pytest.raises(NoTagsFound):
        provider.list_tags_with_time(ECR_IMAGE)


def test_ecr_api_error_is_registry_error():
    err = ClientError({"Error": {"Code": "RepositoryNotFoundException", "Message": "nope"}}, "DescribeImages")
    provider = EcrProvider(client_factory=lambda region: FakeEcr(error=err))
    with pytest.raises(RegistryError) as exc:
        provider.list_tags_with_time(ECR_IMAGE)
    assert "team/api" in str(exc.value)


def test_ecr_rejects_non_ecr_reference():
    with pytest.raises(RegistryError):
        EcrProvider(client_factory=lambda region: FakeEcr()).list_tags_with_time("nginx:1.27")


def test_docker_hub_official_image_uses_library_namespace(monkeypatch):
    calls = []

    def fake_records(host, repository, credentials=None, **kwargs):
        calls.append((host, repository, credentials))
        return []

    monkeypatch.setattr(dockerhub, "registry_tag_records", fake_records)
    provider = DockerHubProvider(credentials_provider=lambda host: ("me", "pw"))
    provider.list_tags_with_time("nginx:1.27")
    provider.list_tags_with_time("localhost:5000/app:dev")

    assert calls == [
        ("registry-1.docker.io", "library/nginx", ("me", "pw")),
        ("localhost:5000", "app", ("me", "pw")),
    ]


def test_docker_credentials_from_config(monkeypatch):
    monkeypatch.setattr(dockerhub, "load_config", lambda: {})
    monkeypatch.setattr(
        dockerhub,
        "resolve_authconfig",
        lambda cfg, registry=None: {"username": "u", "password": "p"} if registry is None else None,
    )
    assert dockerhub.docker_credentials("docker.io") == ("u", "p")
    assert dockerhub.docker_credentials("localhost:5000") is None


def test_gcp_passes_adc_credentials(monkeypatch):
    calls = []

    def fake_records(host, repository, credentials=None, **kwargs):
        calls.append((host, repository, credentials))
        return []

    monkeypatch.setattr(gcp, "registry_tag_records", fake_records)
    provider = gcp.GcpProvider(credentials_provider=lambda: ("oauth2accesstoken", "ya29.token"))
    provider.list_tags_with_time("europe-west1-docker.pkg.dev/proj/repo/api:1")

    assert calls == [("europe-west1-docker.pkg.dev", "proj/repo/api", ("oauth2accesstoken", "ya29.token"))]


def test_gcp_adc_unavailable_means_anonymous(monkeypatch):
    from google.auth.exceptions import DefaultCredentialsError

    def no_adc(scopes=None):
        raise DefaultCredentialsError("no credentials")

    monkeypatch.setattr(gcp.google.auth, "default", no_adc)
    assert gcp.adc_credentials() is None


def test_gcp_end_to_end_over_http():
    def handler(request):
        path = request.url.path
        if path.endswith("/tags/list"):
            return httpx.Response(200, json={"tags": ["b", "a"]})
        if "/manifests/" in path:
            return httpx.Response(200, json={"config": {"digest": f"sha256:{path.rsplit('/', 1)[1]}"}})
        created = {"sha256:a": "2024-02-01T00:00:00Z", "sha256:b": "2024-01-01T00:00:00Z"}
        return httpx.Response(200, json={"created": created[path.rsplit("/", 1)[1]]})

    provider = gcp.GcpProvider(credentials_provider=lambda: None, transport=httpx.MockTransport(handler))
    assert provider.list_tags("gcr.io/proj/api:b") == ["a", "b"]
