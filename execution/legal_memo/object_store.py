"""
Remote Object Store Client

Uploads raw documents to S3-compatible storage (AWS S3, Cloudflare R2, MinIO)
and returns a durable URL. The client is constructed once by the application
root and passed to the orchestrator; there is no module-level singleton.
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from .config import StorageConfig
from .errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

PERMISSION_CODES = frozenset({
    "AccessDenied",
    "403",
    "Forbidden",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "Unauthorized",
})
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "404", "NotFound"})

NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def storage_error(exc: Exception, action: str, key: str) -> ServiceError:
    """Classify a boto3 failure into a ServiceError."""
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in PERMISSION_CODES:
            return ServiceError(ErrorKind.PERMISSION, f"{action} {key} denied ({code}): {exc}")
        if code in NOT_FOUND_CODES:
            return ServiceError(ErrorKind.NOT_FOUND, f"{action} {key}: object not found ({code})")
        return ServiceError(ErrorKind.UNKNOWN, f"{action} {key} failed ({code}): {exc}")
    if isinstance(exc, NETWORK_ERRORS):
        return ServiceError(ErrorKind.NETWORK, f"{action} {key}: network error: {exc}")
    if isinstance(exc, NoCredentialsError):
        return ServiceError(ErrorKind.PERMISSION, f"{action} {key}: no credentials: {exc}")
    return ServiceError(ErrorKind.UNKNOWN, f"{action} {key} failed: {type(exc).__name__}: {exc}")


class ObjectStoreClient:
    """
    Thin wrapper around a boto3 S3 client.

    Usage:
        store = ObjectStoreClient(StorageConfig.from_env())
        url = store.upload(data, "documents/1700000000000-brief.pdf", "application/pdf")
    """

    def __init__(self, config: StorageConfig, client=None):
        """
        Initialize the object store client.

        Args:
            config: Storage settings. When incomplete, uploads raise a
                CONFIGURATION error instead of failing at import time.
            client: Optional pre-built boto3 client (used by tests).
        """
        self.config = config
        self._client = client

        if self._client is None and config.is_configured:
            self._client = self._create_client()
        elif self._client is None:
            logger.warning(config.diagnostic())

    def _create_client(self):
        """Build the boto3 client. Retries are disabled: one attempt per upload."""
        client_kwargs = {
            "aws_access_key_id": self.config.access_key,
            "aws_secret_access_key": self.config.secret_key,
        }
        retries = {"total_max_attempts": 1, "mode": "standard"}

        if self.config.endpoint:
            client_kwargs["endpoint_url"] = self.config.endpoint
            client_kwargs["region_name"] = "auto"
            client_kwargs["config"] = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                retries=retries,
            )
            logger.info(f"Object store client initialized with custom endpoint: {self.config.endpoint}")
        else:
            client_kwargs["region_name"] = self.config.region
            client_kwargs["config"] = Config(
                signature_version="s3v4",
                s3={"addressing_style": "virtual"},
                retries=retries,
            )
            logger.info(f"Object store client initialized with AWS S3 region: {self.config.region}")

        return boto3.client("s3", **client_kwargs)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def object_url(self, key: str) -> str:
        """Durable URL for a stored object."""
        if self.config.public_url_base:
            return f"{self.config.public_url_base.rstrip('/')}/{key}"
        if self.config.endpoint:
            return f"{self.config.endpoint.rstrip('/')}/{self.config.bucket}/{key}"
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{key}"

    def upload(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload bytes and return the object's URL.

        The object is read back with head_object so a successful return
        means the object is actually retrievable.

        Raises:
            ServiceError: CONFIGURATION, PERMISSION, NOT_FOUND, NETWORK or UNKNOWN
        """
        if not self.is_configured:
            raise ServiceError(
                ErrorKind.CONFIGURATION,
                self.config.diagnostic() or "Object store client not initialized",
            )

        try:
            self._client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            error = storage_error(e, "upload", key)
            logger.error(f"Object store upload failed: {error.detail}")
            raise error from e

        try:
            self._client.head_object(Bucket=self.config.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            error = storage_error(e, "verify", key)
            logger.error(f"Object store verification failed: {error.detail}")
            raise error from e

        url = self.object_url(key)
        logger.info(f"Uploaded {len(data)} bytes to {key}")
        return url
