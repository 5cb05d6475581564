# -*- coding: utf-8 -*-

"""
Exception hierarchy.

Only :class:`TransientIOError` is worth retrying. :class:`LeaseLostError` is
an expected signal under multi-worker contention, not a failure.
"""


class DbSnapStreamError(Exception):
    pass


class TransientIOError(DbSnapStreamError):
    """
    Network or storage hiccup on read, write or checkpoint.
    """


class BufferTimeoutError(TransientIOError):
    """
    The output buffer stayed full longer than the write timeout.
    """


class LeaseLostError(DbSnapStreamError):
    """
    The caller's owner token no longer matches a valid lease on the partition.
    """

    def __init__(self, partition_key: str, reason: str = "lease lost"):
        self.partition_key = partition_key
        self.reason = reason
        super().__init__(f"{partition_key!r}: {reason}")


class MalformedRecordError(DbSnapStreamError):
    """
    A single line could not be converted into records.
    """

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(reason)


class UnrecoverableConfigError(DbSnapStreamError):
    """
    Object not found, permission denied, missing table and the like.
    """


class PartitionNotFoundError(DbSnapStreamError):
    pass
