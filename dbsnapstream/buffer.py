# -*- coding: utf-8 -*-

"""
Bounded output buffer between loaders and the downstream pipeline.

Loaders only rely on :meth:`BaseBuffer.write` blocking while the buffer is
full. :class:`BlockingBuffer` is a process local implementation on top of
``queue.Queue``.
"""

import typing as T
import queue

from .exc import BufferTimeoutError

if T.TYPE_CHECKING:  # pragma: no cover
    from .converter import Record


class BaseBuffer:
    def write(self, record: "Record", timeout: T.Optional[float] = None):
        """
        Hand over one record, block while the buffer is full.

        :raises BufferTimeoutError: still full after ``timeout`` seconds.
        """
        raise NotImplementedError


class BlockingBuffer(BaseBuffer):
    """
    :param capacity: max number of records held before writers block.
    """

    def __init__(self, capacity: int = 10000):
        if capacity <= 0:
            raise ValueError("capacity has to be positive")
        self.capacity = capacity
        self._queue: "queue.Queue[Record]" = queue.Queue(maxsize=capacity)

    def write(self, record: "Record", timeout: T.Optional[float] = None):
        try:
            self._queue.put(record, block=True, timeout=timeout)
        except queue.Full:
            raise BufferTimeoutError(
                f"buffer stayed full ({self.capacity} records) for {timeout} seconds"
            )

    def read(
        self,
        max_records: int = 1000,
        timeout: T.Optional[float] = None,
    ) -> T.List["Record"]:
        """
        Drain up to ``max_records``. Waits up to ``timeout`` for the first
        one, then takes whatever is already there.
        """
        records = list()
        try:
            records.append(self._queue.get(block=True, timeout=timeout))
        except queue.Empty:
            return records
        while len(records) < max_records:
            try:
                records.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return records

    def __len__(self) -> int:
        return self._queue.qsize()
