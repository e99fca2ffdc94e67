"""S3-compatible file IO.

Default delegate for the path mapping layer. Reads, writes, deletes and
lists objects addressed as ``<scheme>://<bucket>/<key>`` through boto3.
Each URI scheme gets its own lazily created client. A cache tier that
exposes an S3 gateway is reached through ``fs.<scheme>.endpoint``; its
locations are path-style, ``<scheme>://<host:port>/<bucket>/<key>``,
while canonical locations keep using ``s3.endpoint``.
"""

import os
import re
from typing import Callable, Iterator, Mapping, Optional

import boto3

from tiered_fileio.config import (
    S3_ACCESS_KEY_ID,
    S3_ENDPOINT,
    S3_REGION,
    S3_SECRET_ACCESS_KEY,
    Configuration,
    get_env_var_name,
)
from tiered_fileio.io.files import FileInfo, S3InputFile, S3OutputFile
from tiered_fileio.logging_config import get_logger

logger = get_logger(__name__)

# S3 DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

_LOCATION_RE = re.compile(r"([A-Za-z][A-Za-z0-9+.\-]*)://([^/]+)(?:/(.*))?$")


def parse_location(location: str) -> tuple[str, str, str]:
    """Parse scheme://authority/path into (scheme, authority, path).

    Args:
        location: Location like "s3://bucket/warehouse/t/data/f.parquet"

    Returns:
        Tuple of (scheme, authority, path); path is "" for a bare authority

    Raises:
        ValueError: If location format is invalid
    """
    match = _LOCATION_RE.match(location)
    if not match:
        raise ValueError(f"Invalid object store location: {location}")
    return match.group(1), match.group(2), match.group(3) or ""


class BulkDeletionError(OSError):
    """One or more objects could not be deleted by a prefix delete."""

    def __init__(self, message: str, failed_keys: list[str]):
        super().__init__(message)
        self.failed_keys = failed_keys


class _ConfSupplier:
    """Picklable zero-argument callable returning a fixed Configuration."""

    def __init__(self, conf: Configuration):
        self._conf = conf

    def __call__(self) -> Configuration:
        return self._conf


class S3FileIO:
    """File IO for S3-compatible object stores.

    Options are looked up in the properties given to ``initialize`` first,
    then in the ``Configuration``:
        s3.endpoint, s3.region, s3.access-key-id, s3.secret-access-key,
        fs.<scheme>.endpoint

    Credentials fall back to TFIO_S3_ACCESS_KEY_ID / TFIO_S3_SECRET_ACCESS_KEY
    and then to boto3's default credential chain.
    """

    def __init__(self, conf: Optional[Configuration] = None):
        self._conf_supplier: Callable[[], Configuration] = _ConfSupplier(
            conf if conf is not None else Configuration()
        )
        self._properties: dict[str, str] = {}
        self._clients: dict = {}

    def initialize(self, properties: Mapping[str, str]) -> None:
        """Initialize from flat catalog properties."""
        self._close_clients()
        self._properties = dict(properties)

    def properties(self) -> dict[str, str]:
        return dict(self._properties)

    def get_conf(self) -> Configuration:
        return self._conf_supplier()

    def set_conf(self, conf: Configuration) -> None:
        self._close_clients()
        self._conf_supplier = _ConfSupplier(conf)

    def serialize_conf_with(
        self, conf_serializer: Callable[[Configuration], Callable[[], Configuration]]
    ) -> None:
        """Replace how the configuration is captured when this IO is pickled.

        Args:
            conf_serializer: Function turning the current configuration into
                a picklable zero-argument supplier of it
        """
        self._conf_supplier = conf_serializer(self.get_conf())

    def _option(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._properties.get(key)
        if value:
            return value
        value = self.get_conf().get(key)
        if value:
            return value
        return default

    def _client_for(self, scheme: str):
        client = self._clients.get(scheme)
        if client is not None:
            return client

        endpoint_url = self._option(f"fs.{scheme}.endpoint") or self._option(S3_ENDPOINT)
        kwargs = {
            "endpoint_url": endpoint_url or None,
            "region_name": self._option(S3_REGION, "auto"),
        }

        access_key = self._option(S3_ACCESS_KEY_ID) or os.environ.get(
            get_env_var_name(S3_ACCESS_KEY_ID)
        )
        secret_key = self._option(S3_SECRET_ACCESS_KEY) or os.environ.get(
            get_env_var_name(S3_SECRET_ACCESS_KEY)
        )
        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key

        logger.debug("Creating S3 client for scheme %s (endpoint=%s)", scheme, endpoint_url)
        client = boto3.client("s3", **kwargs)
        self._clients[scheme] = client
        return client

    def _locate(self, location: str) -> tuple[str, str, str, str]:
        """Split *location* into (scheme, bucket, key, base).

        Schemes with an ``fs.<scheme>.endpoint`` gateway use path-style
        addressing, ``scheme://host:port/<bucket>/<key>``; all others use
        the authority as the bucket. *base* is the location prefix that
        precedes a key, used to rebuild listed locations.

        Raises:
            ValueError: If a gateway location has no bucket segment
        """
        scheme, authority, path = parse_location(location)
        if not self._option(f"fs.{scheme}.endpoint"):
            return scheme, authority, path, f"{scheme}://{authority}/"

        bucket, _, key = path.partition("/")
        if not bucket:
            raise ValueError(f"Gateway location has no bucket: {location}")
        return scheme, bucket, key, f"{scheme}://{authority}/{bucket}/"

    def _resolve(self, location: str):
        scheme, bucket, key, _ = self._locate(location)
        return self._client_for(scheme), bucket, key

    def new_input_file(self, location: str, length: Optional[int] = None) -> S3InputFile:
        """Return a readable handle for *location*.

        Args:
            location: Object location
            length: Known object size, saves a HEAD request when given
        """
        client, bucket, key = self._resolve(location)
        return S3InputFile(location, client, bucket, key, length=length)

    def new_output_file(self, location: str) -> S3OutputFile:
        client, bucket, key = self._resolve(location)
        return S3OutputFile(location, client, bucket, key)

    def delete_file(self, location: str) -> None:
        client, bucket, key = self._resolve(location)
        client.delete_object(Bucket=bucket, Key=key)
        logger.debug("Deleted %s", location)

    @staticmethod
    def _list_objects(client, bucket: str, key_prefix: str) -> Iterator[dict]:
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=key_prefix):
            yield from page.get("Contents", [])

    def list_prefix(self, prefix: str) -> Iterator[FileInfo]:
        """List every object under *prefix*.

        Yields:
            FileInfo for each object, with locations in the prefix's scheme
        """
        scheme, bucket, key_prefix, base = self._locate(prefix)
        client = self._client_for(scheme)

        for obj in self._list_objects(client, bucket, key_prefix):
            yield FileInfo(
                location=base + obj["Key"],
                size=obj["Size"],
                created_at_millis=int(obj["LastModified"].timestamp() * 1000),
            )

    def delete_prefix(self, prefix: str) -> None:
        """Delete every object under *prefix*.

        Raises:
            BulkDeletionError: If any object could not be deleted
        """
        scheme, bucket, key_prefix, _ = self._locate(prefix)
        client = self._client_for(scheme)

        failed: list[str] = []
        batch: list[str] = []
        for obj in self._list_objects(client, bucket, key_prefix):
            batch.append(obj["Key"])
            if len(batch) == DELETE_BATCH_SIZE:
                failed.extend(self._delete_batch(client, bucket, batch))
                batch = []
        if batch:
            failed.extend(self._delete_batch(client, bucket, batch))

        if failed:
            raise BulkDeletionError(
                f"Failed to delete {len(failed)} objects under {prefix}", failed
            )
        logger.debug("Deleted prefix %s", prefix)

    @staticmethod
    def _delete_batch(client, bucket: str, keys: list[str]) -> list[str]:
        response = client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        errors = response.get("Errors", [])
        for error in errors:
            logger.warning(
                "Failed to delete %s: %s", error.get("Key"), error.get("Message")
            )
        return [error.get("Key") for error in errors]

    def _close_clients(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients = {}

    def close(self) -> None:
        self._close_clients()

    def __getstate__(self) -> dict:
        # Live clients are rebuilt lazily after unpickling
        state = self.__dict__.copy()
        state["_clients"] = {}
        return state
