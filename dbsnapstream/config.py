# -*- coding: utf-8 -*-

"""
Runtime settings shared by the coordinator, loaders and the scheduler.
"""

import typing as T
import os
import socket
import dataclasses
from datetime import timedelta

from .constants import (
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_LEASE_DURATION,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_GIVE_UPS,
)


def get_default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


@dataclasses.dataclass
class Config:
    """
    :param checkpoint_interval: persist progress every N consumed lines.
        Also bounds how many lines are re-delivered after a lease loss.
    :param lease_duration: lease length in seconds. It has to be longer than
        the time needed to process ``checkpoint_interval`` lines, because
        every checkpoint also extends the lease.
    :param max_retries: attempts for transient I/O failures before giving up.
    :param max_give_ups: how many times a partition may run out of retries.
        The owner that runs out for the ``max_give_ups`` th time closes the
        partition with error instead of releasing it.
    :param retry_wait_min: minimal exponential backoff in seconds.
    :param retry_wait_max: maximal exponential backoff in seconds.
    :param buffer_write_timeout: seconds a buffer write may block,
        None means wait forever.
    :param max_workers: number of loaders running at the same time.
    :param acquire_interval: seconds to sleep when no partition is available.
    :param worker_id: owner identity recorded on claimed partitions.
    """

    checkpoint_interval: int = dataclasses.field(default=DEFAULT_CHECKPOINT_INTERVAL)
    lease_duration: int = dataclasses.field(default=DEFAULT_LEASE_DURATION)
    max_retries: int = dataclasses.field(default=DEFAULT_MAX_RETRIES)
    max_give_ups: int = dataclasses.field(default=DEFAULT_MAX_GIVE_UPS)
    retry_wait_min: float = dataclasses.field(default=1)
    retry_wait_max: float = dataclasses.field(default=10)
    buffer_write_timeout: T.Optional[float] = dataclasses.field(default=None)
    max_workers: int = dataclasses.field(default=4)
    acquire_interval: float = dataclasses.field(default=1.0)
    worker_id: str = dataclasses.field(default_factory=get_default_worker_id)

    def __post_init__(self):
        for name in [
            "checkpoint_interval",
            "lease_duration",
            "max_retries",
            "max_give_ups",
            "max_workers",
        ]:
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} has to be positive, got {value!r}")
        if self.retry_wait_min < 0 or self.retry_wait_max < self.retry_wait_min:
            raise ValueError(
                f"invalid retry wait range: "
                f"[{self.retry_wait_min!r}, {self.retry_wait_max!r}]"
            )

    @property
    def lease_timedelta(self) -> timedelta:
        return timedelta(seconds=self.lease_duration)
