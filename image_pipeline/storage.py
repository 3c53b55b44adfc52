"""
Storage for normalized daily images: inline data URLs or S3-compatible buckets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from image_pipeline.image_utils import NormalizedImage


class ImageStorageError(Exception):
    """Raised when an image could not be persisted."""


class ImageStorage(Protocol):
    """Persists an image and returns the URL a record should point at."""

    def store(self, image: NormalizedImage, name: str) -> str:
        ...


@dataclass
class InlineImageStorage:
    """Embeds the image in the record itself as a data URL."""

    def store(self, image: NormalizedImage, name: str) -> str:
        return image.to_data_url()


@dataclass
class InMemoryImageStorage:
    """Test double that keeps uploaded bytes keyed by object path."""

    base_url: str = "https://example.test/images"
    stored_objects: dict = field(default_factory=dict)

    def store(self, image: NormalizedImage, name: str) -> str:
        path = f"daily-images/{name}.{image.extension}"
        self.stored_objects[path] = image.data
        return f"{self.base_url}/{path}"


@dataclass
class CosImageStorage:
    """
    S3-compatible storage (Tencent COS or any other) for daily images.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def store(self, image: NormalizedImage, name: str) -> str:
        path = f"daily-images/{name}.{image.extension}"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=image.data,
                ContentType=image.mime_type,
                CacheControl="public, max-age=31536000, immutable",
            )
        except (BotoCoreError, ClientError) as e:
            raise ImageStorageError(f"Failed to upload {path}: {e}") from e
        base_url = self.public_base_url or f"{self.endpoint.rstrip('/')}/{self.bucket}"
        return f"{base_url.rstrip('/')}/{path}"
