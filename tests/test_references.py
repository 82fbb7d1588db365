import pytest

from setimg.references import (
    InvalidReference,
    docker_hub_repository,
    host_segment,
    parse_ecr_image,
    registry_host,
    repository_path,
    split_tag,
)


@pytest.mark.parametrize(
    "image,expected",
    [
        ("nginx", ("nginx", None)),
        ("nginx:1.27", ("nginx", "1.27")),
        ("localhost:5000/app:v1", ("localhost:5000/app", "v1")),
        ("localhost:5000/app", ("localhost:5000/app", None)),
        ("gcr.io/proj/app@sha256:abc", ("gcr.io/proj/app", "sha256:abc")),
    ],
)
def test_split_tag(image, expected):
    assert split_tag(image) == expected


@pytest.mark.parametrize("image", ["", "   "])
def test_split_tag_rejects_empty(image):
    with pytest.raises(InvalidReference):
        split_tag(image)


@pytest.mark.parametrize(
    "image,host,path",
    [
        ("nginx:1.27", "docker.io", "nginx"),
        ("library/nginx", "docker.io", "library/nginx"),
        ("index.docker.io/bitnami/redis:7", "docker.io", "bitnami/redis"),
        ("gcr.io/my-proj/api:v2", "gcr.io", "my-proj/api"),
        ("europe-docker.pkg.dev/p/repo/img", "europe-docker.pkg.dev", "p/repo/img"),
        ("localhost:5000/app:dev", "localhost:5000", "app"),
    ],
)
def test_registry_host_and_repository_path(image, host, path):
    assert registry_host(image) == host
    assert repository_path(image) == path


def test_host_segment():
    assert host_segment("nginx:1.27") is None
    assert host_segment("gcr.io/p/app:1") == "gcr.io"


def test_parse_ecr_image_drops_account_and_tag():
    region, repo = parse_ecr_image("123456789012.dkr.ecr.eu-west-1.amazonaws.com/team/api:v3")
    assert region == "eu-west-1"
    assert repo == "team/api"


@pytest.mark.parametrize(
    "image",
    [
        "nginx:1.27",
        "abc.dkr.ecr.us-east-1.amazonaws.com/app",
        "123456789012.dkr.ecr.us-east-1.amazonaws.com/",
        "123456789012.dkr.ecr..amazonaws.com/app",
    ],
)
def test_parse_ecr_image_rejects_non_ecr(image):
    with pytest.raises(InvalidReference):
        parse_ecr_image(image)


def test_docker_hub_repository_adds_library_prefix():
    assert docker_hub_repository("nginx") == "library/nginx"
    assert docker_hub_repository("bitnami/redis") == "bitnami/redis"
