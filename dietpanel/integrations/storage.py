"""
Object storage presigning for PZK PDFs.

Two backends:
- S3-compatible (Cloudflare R2 or AWS S3) through boto3; R2 uses path-style addressing
- Aliyun OSS through oss2

Only GET URLs are signed; the object key is passed in by the presign service
and never leaves the server except inside the signed URL.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import boto3
import oss2
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dietpanel.core.config import Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Signing failed or storage is not configured."""


class Presigner(ABC):
    @abstractmethod
    def presign_get(
        self,
        object_key: str,
        *,
        expires_in: int,
        content_disposition: str,
        content_type: str,
    ) -> str:
        """Signed GET URL for ``object_key``, valid for ``expires_in`` seconds."""


class S3Presigner(Presigner):
    def __init__(
        self,
        *,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        region: str = "auto",
        endpoint_url: str | None = None,
        path_style: bool = False,
    ) -> None:
        cfg = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if path_style else "auto"},
        )
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=cfg,
        )
        self.bucket = bucket

    def presign_get(
        self,
        object_key: str,
        *,
        expires_in: int,
        content_disposition: str,
        content_type: str,
    ) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": object_key,
                    "ResponseContentDisposition": content_disposition,
                    "ResponseContentType": content_type,
                },
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 presign failed: {e}") from e


class OssPresigner(Presigner):
    def __init__(
        self, *, bucket: str, access_key_id: str, secret_access_key: str, endpoint: str
    ) -> None:
        endpoint = endpoint.strip()
        if not endpoint.startswith(("http://", "https://")):
            endpoint = f"https://{endpoint}"
        auth = oss2.Auth(access_key_id, secret_access_key)
        self.bucket = oss2.Bucket(auth, endpoint, bucket)

    def presign_get(
        self,
        object_key: str,
        *,
        expires_in: int,
        content_disposition: str,
        content_type: str,
    ) -> str:
        try:
            return self.bucket.sign_url(
                "GET",
                object_key,
                expires_in,
                params={
                    "response-content-disposition": content_disposition,
                    "response-content-type": content_type,
                },
                slash_safe=True,
            )
        except oss2.exceptions.OssError as e:
            raise StorageError(f"OSS presign failed: {e}") from e


def create_presigner(config: Settings) -> Presigner | None:
    """
    Build the configured presigner.

    Returns None when storage credentials are incomplete; presign requests
    then fail with a storage error instead of breaking application startup.
    """
    if not (
        config.OBJECT_STORAGE_BUCKET
        and config.OBJECT_STORAGE_ACCESS_KEY_ID
        and config.OBJECT_STORAGE_SECRET_ACCESS_KEY
    ):
        logger.warning("Object storage not configured; PDF downloads are disabled")
        return None

    provider = config.OBJECT_STORAGE_PROVIDER
    if provider == "oss":
        if not config.OBJECT_STORAGE_ENDPOINT:
            logger.warning("OSS provider selected without OBJECT_STORAGE_ENDPOINT")
            return None
        return OssPresigner(
            bucket=config.OBJECT_STORAGE_BUCKET,
            access_key_id=config.OBJECT_STORAGE_ACCESS_KEY_ID,
            secret_access_key=config.OBJECT_STORAGE_SECRET_ACCESS_KEY,
            endpoint=config.OBJECT_STORAGE_ENDPOINT,
        )

    if provider == "r2" and not config.OBJECT_STORAGE_ENDPOINT:
        logger.warning("R2 provider selected without OBJECT_STORAGE_ENDPOINT")
        return None
    return S3Presigner(
        bucket=config.OBJECT_STORAGE_BUCKET,
        access_key_id=config.OBJECT_STORAGE_ACCESS_KEY_ID,
        secret_access_key=config.OBJECT_STORAGE_SECRET_ACCESS_KEY,
        region=config.OBJECT_STORAGE_REGION,
        endpoint_url=config.OBJECT_STORAGE_ENDPOINT,
        path_style=provider == "r2",
    )
