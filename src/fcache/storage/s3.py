"""Store implementation for S3-compatible object storage (via boto3).

Object layout:
- Keys are namespaced as '<prefix>!!<key>' when a prefix is configured
- The logical file name lives in the '_fcache-meta-filename' user metadata
  entry, percent-encoded since S3 headers are ASCII-only
- Caller metadata is stored as user metadata next to it
"""

import logging
from typing import Any, BinaryIO, Dict, Iterator, List, Optional
from urllib.parse import quote, unquote

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from fcache.exceptions import BackendError, NotFoundError
from fcache.metadata import FileMeta, GetURLParams, StoreStats
from fcache.storage.backend import Store

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "!!"
FILENAME_META_KEY = "_fcache-meta-filename"
NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
DEFAULT_MIME = "application/octet-stream"


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition value for a download name.

    Examples:
        >>> content_disposition('a.txt')
        'attachment; filename="a.txt"'

    Non-ASCII names get an RFC 5987 'filename*' parameter next to an ASCII
    fallback.
    """
    fallback = "".join(c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename)
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


class S3Store(Store):
    """Store backed by an S3 bucket.

    S3 lowercases user metadata keys, so caller metadata keys come back
    verbatim only when they are lowercase. With a prefix, keys must not
    contain '!!'; objects listed with more than one separator (written by
    other processes) are reported under their full object key and can still
    be read and removed under it.

    Examples:
        >>> store = S3Store.connect('my-bucket', prefix='thumbs')
        >>> store.keys()
        ['a.png', 'b.png']
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        prefix: str = "",
        transfer_config: Optional[TransferConfig] = None,
    ):
        """Initialize the store.

        Args:
            client: boto3 S3 client
            bucket: Bucket name
            prefix: Optional key namespace
            transfer_config: Multipart settings for uploads
        """
        self.client = client
        self.bucket = bucket
        self.prefix = prefix or ""
        self.transfer_config = transfer_config

    @classmethod
    def connect(
        cls,
        bucket: str,
        prefix: str = "",
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        connect_timeout: int = 30,
        read_timeout: int = 30,
    ) -> "S3Store":
        """Create a store with its own boto3 client.

        Retries are disabled; a failed call surfaces immediately.
        """
        boto_config = BotoConfig(
            retries={"max_attempts": 1, "mode": "standard"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

        kwargs: Dict[str, Any] = {"config": boto_config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region:
            kwargs["region_name"] = region
        if access_key_id:
            kwargs["aws_access_key_id"] = access_key_id
            kwargs["aws_secret_access_key"] = secret_access_key

        client = boto3.client("s3", **kwargs)
        logger.info(f"Initialized S3 store at bucket {bucket} (prefix={prefix!r})")
        return cls(client, bucket, prefix)

    # =========================================================================
    # Key and metadata encoding
    # =========================================================================

    def _key(self, key: str) -> str:
        """Map a cache key to its object key.

        With a prefix, keys containing the separator are refused, except
        object keys that _unkey returned unchanged from a listing.

        Raises:
            BackendError: If the key can't be namespaced
        """
        if not self.prefix:
            return key
        if KEY_SEPARATOR in key:
            if self._is_listed_object_key(key):
                return key
            raise BackendError(
                "key", key, f"keys must not contain {KEY_SEPARATOR!r} when a prefix is set"
            )
        return f"{self.prefix}{KEY_SEPARATOR}{key}"

    def _is_listed_object_key(self, key: str) -> bool:
        return (
            key.startswith(f"{self.prefix}{KEY_SEPARATOR}")
            and len(key.split(KEY_SEPARATOR)) != 2
        )

    def _unkey(self, object_key: str) -> str:
        """Map an object key back to a cache key.

        Keys that don't contain the separator exactly once are returned as is.
        """
        if not self.prefix:
            return object_key
        parts = object_key.split(KEY_SEPARATOR)
        if len(parts) != 2:
            return object_key
        return parts[1]

    @staticmethod
    def _encode_meta(meta: FileMeta) -> Dict[str, str]:
        user_meta = dict(meta.meta or {})
        user_meta[FILENAME_META_KEY] = quote(meta.name or "", safe="")
        return user_meta

    def _to_file_meta(self, key: str, response: Dict[str, Any]) -> FileMeta:
        user_meta = dict(response.get("Metadata") or {})
        name = unquote(user_meta.pop(FILENAME_META_KEY, ""))
        return FileMeta(
            name=name,
            mime=response.get("ContentType", ""),
            size=int(response.get("ContentLength", response.get("Size", 0)) or 0),
            meta=user_meta,
            key=key,
            created_at=response.get("LastModified"),
        )

    def _error(self, operation: str, key: Optional[str], exc: Exception) -> Exception:
        """Translate a boto3 failure into NotFoundError or BackendError."""
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES and key is not None:
                return NotFoundError(key)
        return BackendError(operation, key, f"s3 bucket {self.bucket!r}: {exc}")

    def _head(self, operation: str, key: str) -> Dict[str, Any]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=self._key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._error(operation, key, e) from e

    # =========================================================================
    # Store interface
    # =========================================================================

    def meta(self, key: str) -> FileMeta:
        return self._to_file_meta(key, self._head("meta", key))

    def get(self, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._error("get", key, e) from e
        return response["Body"]

    def get_url(self, key: str, params: GetURLParams) -> str:
        stored = self._to_file_meta(key, self._head("get_url", key))
        filename = params.filename or stored.name

        request_params: Dict[str, Any] = {"Bucket": self.bucket, "Key": self._key(key)}
        if filename:
            request_params["ResponseContentDisposition"] = content_disposition(filename)

        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params=request_params,
                ExpiresIn=int(params.expires.total_seconds()),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._error("get_url", key, e) from e

    def put(self, key: str, meta: FileMeta, content: BinaryIO) -> None:
        if self.prefix and KEY_SEPARATOR in key:
            content.close()
            raise BackendError(
                "put", key, f"keys must not contain {KEY_SEPARATOR!r} when a prefix is set"
            )
        extra_args = {
            "ContentType": meta.mime or DEFAULT_MIME,
            "Metadata": self._encode_meta(meta),
        }
        try:
            self.client.upload_fileobj(
                content,
                self.bucket,
                self._key(key),
                ExtraArgs=extra_args,
                Config=self.transfer_config,
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise self._error("put", key, e) from e
        finally:
            content.close()
        logger.debug(f"Stored object {self._key(key)!r} in bucket {self.bucket}")

    def update_meta(self, key: str, meta: FileMeta) -> None:
        object_key = self._key(key)
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=object_key,
                CopySource={"Bucket": self.bucket, "Key": object_key},
                ContentType=meta.mime or DEFAULT_MIME,
                Metadata=self._encode_meta(meta),
                MetadataDirective="REPLACE",
            )
        except (ClientError, BotoCoreError) as e:
            raise self._error("update_meta", key, e) from e

    def remove(self, key: str) -> None:
        # delete_object succeeds for absent keys, so check first
        self._head("remove", key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._error("remove", key, e) from e

    def _iter_objects(self, operation: str) -> Iterator[Dict[str, Any]]:
        """Yield every listed object under the configured prefix."""
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key("")):
                for obj in page.get("Contents", []):
                    yield obj
        except (ClientError, BotoCoreError) as e:
            raise self._error(operation, None, e) from e

    def stat(self) -> StoreStats:
        stats = StoreStats()
        for obj in self._iter_objects("stat"):
            stats.keys += 1
            stats.size += int(obj.get("Size", 0))
        return stats

    def keys(self) -> List[str]:
        return [self._unkey(obj["Key"]) for obj in self._iter_objects("keys")]

    def list(self) -> List[FileMeta]:
        # Listings don't carry user metadata; fetch it per object
        result = []
        for obj in self._iter_objects("list"):
            key = self._unkey(obj["Key"])
            try:
                response = self.client.head_object(Bucket=self.bucket, Key=obj["Key"])
            except (ClientError, BotoCoreError) as e:
                err = self._error("list", key, e)
                if isinstance(err, NotFoundError):
                    logger.debug(f"Object {obj['Key']!r} vanished while listing")
                    continue
                raise err from e
            result.append(self._to_file_meta(key, response))
        return result
