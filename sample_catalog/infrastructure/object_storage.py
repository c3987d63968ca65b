from __future__ import annotations

from botocore.client import Config
from botocore.exceptions import ClientError
import boto3

from sample_catalog.config import settings
from sample_catalog.domain.image_store import ImageStore


class S3ObjectStorage(ImageStore):
    def __init__(self) -> None:
        if not settings.s3_access_key or not settings.s3_secret_key:
            raise RuntimeError("S3_ACCESS_KEY and S3_SECRET_KEY are required")

        self._bucket = settings.s3_bucket
        self._endpoint_url = settings.s3_endpoint_url
        self._region = settings.s3_region
        self._public_endpoint_url = settings.s3_public_endpoint_url
        self._client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            use_ssl=settings.s3_secure,
            config=Config(signature_version="s3v4", s3={"addressing_style": settings.s3_addressing_style}),
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def ensure_bucket(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchBucket"}:
                self._client.create_bucket(Bucket=self._bucket)
                return
            raise

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self._client.put_object(Bucket=self._bucket, Key=key, Body=data, ContentType=content_type)

    def get_bytes(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self._bucket, Key=key)
        body = response["Body"].read()
        response["Body"].close()
        return body

    def delete_object(self, key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=key)

    def list_keys(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def public_url(self, key: str) -> str:
        base = self._public_endpoint_url or self._endpoint_url
        if not base:
            return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"
        return f"{base.rstrip('/')}/{self._bucket}/{key}"

