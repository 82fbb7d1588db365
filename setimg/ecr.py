from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import TagRecord, sort_and_truncate, tag_names
from .providers import NoTagsFound, RegistryError
from .references import InvalidReference, parse_ecr_image
from .settings import settings


def _ecr_client(region: str) -> Any:
    return boto3.client("ecr", region_name=region)


class EcrProvider:
    """Amazon ECR (``<account>.dkr.ecr.<region>.amazonaws.com/<repo>``).

    ``describe_images`` already carries push times, so no per-tag lookups
    are made. Credentials come from the default AWS chain.
    """

    name = "AWS ECR"

    def __init__(
        self,
        client_factory: Callable[[str], Any] = _ecr_client,
        max_images: int | None = None,
        limit: int | None = None,
    ):
        self._client_factory = client_factory
        self.max_images = settings.ecr_max_images if max_images is None else max_images
        self.limit = settings.max_listed_tags if limit is None else limit

    def classify(self, image: str) -> bool:
        try:
            parse_ecr_image(image)
        except InvalidReference:
            return False
        return True

    def list_tags(self, image: str) -> list[str]:
        return tag_names(self.list_tags_with_time(image))

    def list_tags_with_time(self, image: str) -> list[TagRecord]:
        try:
            region, repository = parse_ecr_image(image)
        except InvalidReference as e:
            raise RegistryError(str(e)) from e

        details = self._describe_images(region, repository)

        now = datetime.now(timezone.utc)
        records: list[TagRecord] = []
        for detail in details:
            pushed_at = detail.get("imagePushedAt") or now
            for tag in detail.get("imageTags") or []:
                if tag:
                    records.append(TagRecord(tag=tag, created_at=pushed_at))

        if not records:
            raise NoTagsFound(f"no tagged images found in ECR repository {repository}")
        return sort_and_truncate(records, self.limit)

    def _describe_images(self, region: str, repository: str) -> list[dict[str, Any]]:
        details: list[dict[str, Any]] = []
        try:
            client = self._client_factory(region)
            paginator = client.get_paginator("describe_images")
            pages = paginator.paginate(
                repositoryName=repository,
                PaginationConfig={"PageSize": min(100, self.max_images)},
            )
            for page in pages:
                details.extend(page.get("imageDetails", []))
                if len(details) >= self.max_images:
                    break
        except (BotoCoreError, ClientError) as e:
            raise RegistryError(f"failed to describe images for repository {repository} in {region}: {e}") from e
        return details[: self.max_images]
