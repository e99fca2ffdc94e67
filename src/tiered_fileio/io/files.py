"""Input and output file handles backed by an S3-compatible store.

A handle only knows its location and how to reach the object; no network
call is made until a length, existence check or stream is requested.
"""

import os
import tempfile
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import ClientError

# Spool writes in memory up to this size before falling back to disk
SPOOL_MAX_BYTES = 8 * 1024 * 1024


@dataclass(frozen=True)
class FileInfo:
    """A file found by a prefix listing.

    Attributes:
        location: Full location of the file (scheme://bucket/key)
        size: Size in bytes
        created_at_millis: Last-modified time in epoch milliseconds
    """

    location: str
    size: int
    created_at_millis: int


def _is_not_found(error: ClientError) -> bool:
    code = error.response.get("Error", {}).get("Code", "")
    return code in ("404", "NoSuchKey", "NotFound")


class S3InputStream:
    """Seekable read stream over an object, using ranged GET requests.

    The underlying response body is reopened lazily after a seek, so
    seeking is free until the next read.
    """

    def __init__(self, client, bucket: str, key: str, location: str):
        self._client = client
        self._bucket = bucket
        self._key = key
        self._location = location
        self._pos = 0
        self._body = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _open_body(self):
        try:
            response = self._client.get_object(
                Bucket=self._bucket, Key=self._key, Range=f"bytes={self._pos}-"
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code == "InvalidRange":
                # Positioned at or past the end of the object
                return None
            if _is_not_found(e):
                raise FileNotFoundError(f"File does not exist: {self._location}") from e
            raise
        return response["Body"]

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        if size == 0:
            return b""
        if self._body is None:
            self._body = self._open_body()
            if self._body is None:
                return b""

        data = self._body.read() if size is None or size < 0 else self._body.read(size)
        self._pos += len(data)
        return data

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        if whence == os.SEEK_SET:
            new_pos = offset
        elif whence == os.SEEK_CUR:
            new_pos = self._pos + offset
        else:
            raise ValueError("S3InputStream only supports SEEK_SET and SEEK_CUR")
        if new_pos < 0:
            raise ValueError(f"Cannot seek to negative position: {new_pos}")

        if new_pos != self._pos:
            self._release_body()
            self._pos = new_pos
        return self._pos

    def tell(self) -> int:
        return self._pos

    def _release_body(self) -> None:
        if self._body is not None:
            self._body.close()
            self._body = None

    def close(self) -> None:
        if not self._closed:
            self._release_body()
            self._closed = True

    def __enter__(self) -> "S3InputStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class S3OutputStream:
    """Write stream that spools locally and uploads the object on close."""

    def __init__(self, client, bucket: str, key: str):
        self._client = client
        self._bucket = bucket
        self._key = key
        self._buffer = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        return self._buffer.write(data)

    def tell(self) -> int:
        return self._buffer.tell()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._buffer.seek(0)
            self._client.upload_fileobj(self._buffer, self._bucket, self._key)
        finally:
            self._buffer.close()

    def __enter__(self) -> "S3OutputStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class S3InputFile:
    """Readable handle for one object.

    Attributes:
        location: Location this handle reads from
    """

    def __init__(self, location: str, client, bucket: str, key: str, length: Optional[int] = None):
        self.location = location
        self._client = client
        self._bucket = bucket
        self._key = key
        self._length = length

    def get_length(self) -> int:
        """Return the object size, issuing a HEAD request if not yet known.

        Raises:
            FileNotFoundError: If the object does not exist
        """
        if self._length is None:
            try:
                response = self._client.head_object(Bucket=self._bucket, Key=self._key)
            except ClientError as e:
                if _is_not_found(e):
                    raise FileNotFoundError(f"File does not exist: {self.location}") from e
                raise
            self._length = response["ContentLength"]
        return self._length

    def exists(self) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=self._key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise

    def new_stream(self) -> S3InputStream:
        return S3InputStream(self._client, self._bucket, self._key, self.location)

    def __repr__(self) -> str:
        return f"S3InputFile({self.location!r})"


class S3OutputFile:
    """Writable handle for one object.

    Attributes:
        location: Location this handle writes to
    """

    def __init__(self, location: str, client, bucket: str, key: str):
        self.location = location
        self._client = client
        self._bucket = bucket
        self._key = key

    def create(self) -> S3OutputStream:
        """Open a stream for a new object.

        Raises:
            FileExistsError: If an object already exists at the location
        """
        if self.to_input_file().exists():
            raise FileExistsError(f"File already exists: {self.location}")
        return S3OutputStream(self._client, self._bucket, self._key)

    def create_or_overwrite(self) -> S3OutputStream:
        return S3OutputStream(self._client, self._bucket, self._key)

    def to_input_file(self) -> S3InputFile:
        return S3InputFile(self.location, self._client, self._bucket, self._key)

    def __repr__(self) -> str:
        return f"S3OutputFile({self.location!r})"
