from __future__ import annotations
"""Access to the S3-compatible blob store backing the gallery."""
from datetime import datetime, timezone
import io
import logging
from pathlib import PurePosixPath
from typing import BinaryIO, Callable, Optional, Union
from urllib.parse import quote, unquote, urlsplit
import uuid

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .models import ObjectRecord
from .profiles import StoreProfile

LOGGER = logging.getLogger(__name__)

LIST_PAGE_SIZE = 1000
CONNECT_TIMEOUT = 10
READ_TIMEOUT = 60


class StoreError(RuntimeError):
    """Base class for blob store failures raised by this module."""


class MissingCredentialsError(StoreError):
    """Raised when a client is requested without store credentials."""


class InvalidObjectUrlError(StoreError):
    """Raised when a URL does not point into the configured bucket."""


class TransferCancelledError(RuntimeError):
    """Raised when an upload is cancelled by the caller."""


STORE_ERRORS = (StoreError, ClientError, BotoCoreError)


def normalize_key(name: str) -> str:
    """Object key for a user supplied name: trimmed, without leading slashes."""
    return name.strip().lstrip("/")


class BlobStoreService:
    """Lists and mutates objects in a single bucket."""

    def __init__(
        self,
        profile: StoreProfile,
        *,
        client_factory: Callable[..., object] | None = None,
    ):
        self._profile = profile
        self._client_factory = client_factory or boto3.client
        self._client = None

    @property
    def profile(self) -> StoreProfile:
        return self._profile

    @property
    def is_configured(self) -> bool:
        return bool(self._profile.access_key and self._profile.secret_key)

    def list_all_objects(self) -> list[ObjectRecord]:
        """Return every object in the bucket, following continuation tokens.

        Raises:
            BotoCoreError | ClientError: when the bucket cannot be listed.
            MissingCredentialsError: when no credentials are configured.
        """
        client = self._get_client()
        records: list[ObjectRecord] = []
        token: str | None = None
        while True:
            params = {"Bucket": self._profile.bucket, "MaxKeys": LIST_PAGE_SIZE}
            if token:
                params["ContinuationToken"] = token
            response = client.list_objects_v2(**params)
            for obj in response.get("Contents", []):
                records.append(self._record_from_listing(obj))
            token = response.get("NextContinuationToken")
            if not response.get("IsTruncated", False) or not token:
                break
        LOGGER.debug("Listed %d object(s) in bucket '%s'", len(records), self._profile.bucket)
        return records

    def put_object(
        self,
        name: str,
        data: Union[bytes, BinaryIO],
        *,
        public_access: bool = True,
        add_random_suffix: bool = False,
        content_type: str | None = None,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> ObjectRecord:
        """Upload ``data`` under ``name`` and return the stored record."""

        key = self._key_for_name(name, add_random_suffix=add_random_suffix)
        client = self._get_client()
        extra_args: dict[str, str] = {}
        if public_access:
            extra_args["ACL"] = "public-read"
        if content_type:
            extra_args["ContentType"] = content_type
        fileobj = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        callback = self._build_transfer_callback(progress_callback, cancel_requested)
        client.upload_fileobj(
            fileobj,
            self._profile.bucket,
            key,
            ExtraArgs=extra_args or None,
            Callback=callback,
        )
        LOGGER.info("Uploaded '%s' to bucket '%s'", key, self._profile.bucket)
        return self._head_record(client, key)

    def delete_object(self, url: str) -> None:
        key = self.key_from_url(url)
        client = self._get_client()
        client.delete_object(Bucket=self._profile.bucket, Key=key)
        LOGGER.info("Deleted '%s' from bucket '%s'", key, self._profile.bucket)

    def copy_object(self, source_url: str, new_name: str, *, public_access: bool = True) -> ObjectRecord:
        """Server-side copy of ``source_url`` to ``new_name``."""

        source_key = self.key_from_url(source_url)
        target_key = self._key_for_name(new_name)
        client = self._get_client()
        params = {
            "Bucket": self._profile.bucket,
            "Key": target_key,
            "CopySource": {"Bucket": self._profile.bucket, "Key": source_key},
        }
        if public_access:
            params["ACL"] = "public-read"
        client.copy_object(**params)
        LOGGER.info("Copied '%s' to '%s'", source_key, target_key)
        return self._head_record(client, target_key)

    def url_for_key(self, key: str) -> str:
        return f"{self._base_url()}/{quote(key)}"

    def download_url_for(self, url: str) -> str:
        return f"{url}?download=1"

    def key_from_url(self, url: str) -> str:
        base = self._base_url()
        cleaned = urlsplit(url)
        without_query = f"{cleaned.scheme}://{cleaned.netloc}{cleaned.path}"
        if not without_query.startswith(base + "/"):
            raise InvalidObjectUrlError(f"URL does not belong to this store: {url}")
        key = unquote(without_query[len(base) + 1 :])
        if not key:
            raise InvalidObjectUrlError(f"URL does not name an object: {url}")
        return key

    def _base_url(self) -> str:
        if self._profile.public_base_url:
            return self._profile.public_base_url.rstrip("/")
        return f"{self._profile.endpoint_url.rstrip('/')}/{self._profile.bucket}"

    def _get_client(self):
        if not self.is_configured:
            raise MissingCredentialsError(
                "Blob store credentials are not configured. "
                "Set BLOB_ACCESS_KEY_ID and BLOB_SECRET_ACCESS_KEY or save a profile."
            )
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self):
        config = Config(
            signature_version="s3v4",
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
        )
        kwargs = {
            "aws_access_key_id": self._profile.access_key,
            "aws_secret_access_key": self._profile.secret_key,
            "config": config,
        }
        if self._profile.endpoint_url:
            kwargs["endpoint_url"] = self._profile.endpoint_url
        if self._profile.region:
            kwargs["region_name"] = self._profile.region
        return self._client_factory("s3", **kwargs)

    def _head_record(self, client, key: str) -> ObjectRecord:
        response = client.head_object(Bucket=self._profile.bucket, Key=key)
        return self._build_record(
            key,
            size=response.get("ContentLength") or 0,
            last_modified=response.get("LastModified"),
        )

    def _record_from_listing(self, obj: dict) -> ObjectRecord:
        return self._build_record(
            obj["Key"],
            size=obj.get("Size") or 0,
            last_modified=obj.get("LastModified"),
        )

    def _build_record(self, key: str, *, size: int, last_modified: datetime | None) -> ObjectRecord:
        url = self.url_for_key(key)
        return ObjectRecord(
            url=url,
            pathname=key,
            size=int(size),
            uploaded_at=_as_aware(last_modified),
            download_url=self.download_url_for(url),
        )

    def _key_for_name(self, name: str, *, add_random_suffix: bool = False) -> str:
        key = normalize_key(name)
        if not key:
            raise ValueError("Object name cannot be empty")
        if not add_random_suffix:
            return key
        path = PurePosixPath(key)
        suffix = uuid.uuid4().hex[:12]
        return str(path.with_name(f"{path.stem}-{suffix}{path.suffix}"))

    def _build_transfer_callback(
        self,
        progress_callback: Optional[Callable[[int], None]],
        cancel_requested: Optional[Callable[[], bool]],
    ):
        if not progress_callback and not cancel_requested:
            return None

        transferred = 0

        def _callback(bytes_amount: int) -> None:
            nonlocal transferred
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")
            transferred += bytes_amount
            if progress_callback:
                progress_callback(transferred)
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")

        return _callback


def _as_aware(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
