# -*- coding: utf-8 -*-

"""
Line oriented reader for S3 objects.

Export data files are (usually gzip compressed) newline delimited JSON. Line
boundaries inside a compressed stream are not addressable, so resuming is
done by re-opening the object and skipping lines, not by range requests.
"""

import typing as T
import io
import gzip
import zlib

import botocore.exceptions
from s3pathlib import S3Path

from .exc import TransientIOError, UnrecoverableConfigError
from .logger import dummy_logger

if T.TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3.client import S3Client


GZIP_MAGIC = b"\x1f\x8b"

UNRECOVERABLE_ERROR_CODES = {
    "NoSuchKey",
    "NoSuchBucket",
    "AccessDenied",
    "404",
    "403",
    "InvalidObjectState",
}


class _PeekableStream(io.RawIOBase):
    """
    Puts back the bytes read while sniffing for the gzip header.
    """

    def __init__(self, head: bytes, body):
        self._head = head
        self._body = body

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._head:
            n = min(len(b), len(self._head))
            b[:n] = self._head[:n]
            self._head = self._head[n:]
            return n
        data = self._body.read(len(b))
        n = len(data)
        b[:n] = data
        return n

    def close(self):
        self._body.close()
        super().close()


class LineStream:
    """
    Lazy, forward-only, finite iterator of decoded lines of one S3 object.
    Not restartable, open a new one to start over.

    Use it as a context manager so the underlying HTTP stream is released.
    """

    def __init__(
        self,
        s3path: S3Path,
        fileobj: T.BinaryIO,
        raw: T.Optional[T.BinaryIO] = None,
        encoding: str = "utf-8",
    ):
        self.s3path = s3path
        self._raw = raw
        self._text = io.TextIOWrapper(fileobj, encoding=encoding, newline=None)
        self.n_line_read = 0

    def __iter__(self) -> "LineStream":
        return self

    def __next__(self) -> str:
        try:
            line = self._text.readline()
        except (
            botocore.exceptions.BotoCoreError,
            OSError,
            EOFError,
            zlib.error,
            UnicodeDecodeError,
        ) as e:
            raise TransientIOError(
                f"failed to read line {self.n_line_read + 1} of {self.s3path.uri}: {e}"
            ) from e
        if line == "":
            raise StopIteration
        self.n_line_read += 1
        return line.rstrip("\n")

    def skip(self, n: int) -> int:
        """
        Discard up to ``n`` lines without decoding them into records.

        :return: how many lines were actually discarded, less than ``n`` if
            the object ended first.
        """
        skipped = 0
        while skipped < n:
            try:
                next(self)
            except StopIteration:
                break
            skipped += 1
        return skipped

    def close(self):
        self._text.close()
        # GzipFile does not close the file object it wraps
        if self._raw is not None:
            self._raw.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class S3ObjectReader:
    """
    Opens S3 objects as :class:`LineStream`. Thread safe as long as the
    boto3 client is, one instance is shared by all loaders.

    :param s3_client: ``boto3.client("s3")`` object.
    """

    def __init__(
        self,
        s3_client: "S3Client",
        logger=dummy_logger,
    ):
        self.s3_client = s3_client
        self.logger = logger

    def open(self, bucket: str, key: str) -> LineStream:
        """
        :raises UnrecoverableConfigError: object or bucket not found, or access
            denied.
        :raises TransientIOError: anything else that went wrong on the wire.
        """
        s3path = S3Path(bucket, key)
        self.logger.info(f"open {s3path.uri}")
        self.logger.info(f"  preview at: {s3path.console_url}")
        try:
            res = self.s3_client.get_object(Bucket=bucket, Key=key)
            body = res["Body"]
            head = body.read(len(GZIP_MAGIC))
        except botocore.exceptions.ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in UNRECOVERABLE_ERROR_CODES:
                raise UnrecoverableConfigError(
                    f"cannot read {s3path.uri}: {code}"
                ) from e
            raise TransientIOError(f"failed to open {s3path.uri}: {code}") from e
        except (botocore.exceptions.BotoCoreError, OSError) as e:
            raise TransientIOError(f"failed to open {s3path.uri}: {e}") from e

        raw = io.BufferedReader(_PeekableStream(head, body))
        if head == GZIP_MAGIC:
            fileobj = gzip.GzipFile(fileobj=raw, mode="rb")
        else:
            fileobj = raw
        return LineStream(s3path=s3path, fileobj=fileobj, raw=raw)
