# -*- coding: utf-8 -*-

"""
Partition coordinator, the durable registry of work units with lease
semantics.

All lease rules live in :class:`BaseCoordinator`. A storage backend only
needs four primitives, the important one being a single atomic
compare-and-set per partition row (:meth:`BaseCoordinator._compare_and_set`).
There is no lock across partitions.
"""

import typing as T
import uuid
import random
import threading
import dataclasses
from datetime import datetime

from .typehint import T_PROGRESS_STATE
from .constants import PartitionStatusEnum
from .exc import LeaseLostError, PartitionNotFoundError, TransientIOError
from .partition import Partition
from .config import Config
from .utils import T_CLOCK, get_utc_now, enum_value
from .logger import dummy_logger


@dataclasses.dataclass
class ProgressReport:
    """
    Partition counts per status for one partition type.
    """

    total: int = dataclasses.field(default=0)
    unassigned: int = dataclasses.field(default=0)
    claimed: int = dataclasses.field(default=0)
    completed: int = dataclasses.field(default=0)
    closed_with_error: int = dataclasses.field(default=0)

    @property
    def completion_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    @property
    def is_finished(self) -> bool:
        """
        Nothing left that a worker could pick up or is working on.
        """
        return (self.unassigned + self.claimed) == 0


T_MUTATE = T.Callable[[Partition, datetime], T.Optional[Partition]]


class BaseCoordinator:
    """
    :param config: lease duration and worker identity come from here.
    :param clock: returns the coordinator's notion of "now" (UTC). Lease
        validity is always decided with this clock, never with the caller's.
    :param max_cas_attempts: how many times a write racing with another
        write of the same owner is retried.
    """

    def __init__(
        self,
        config: T.Optional[Config] = None,
        clock: T_CLOCK = get_utc_now,
        max_cas_attempts: int = 10,
        logger=dummy_logger,
    ):
        if config is None:
            config = Config()
        self.config = config
        self.clock = clock
        self.max_cas_attempts = max_cas_attempts
        self.logger = logger

    # --------------------------------------------------------------------------
    # storage primitives
    # --------------------------------------------------------------------------
    def _get(self, partition_key: str) -> T.Optional[Partition]:
        raise NotImplementedError

    def _put_if_absent(self, partition: Partition) -> bool:
        raise NotImplementedError

    def _compare_and_set(self, expected_version: int, partition: Partition) -> bool:
        """
        Replace the row only if its stored ``version`` still equals
        ``expected_version``. Return False when another writer got there first.
        """
        raise NotImplementedError

    def _scan(self, partition_type: str) -> T.Iterable[Partition]:
        raise NotImplementedError

    # --------------------------------------------------------------------------
    # helpers
    # --------------------------------------------------------------------------
    def _get_or_raise(self, partition_key: str) -> Partition:
        partition = self._get(partition_key)
        if partition is None:
            raise PartitionNotFoundError(f"partition {partition_key!r} not found")
        return partition

    def _update(self, partition_key: str, mutate: T_MUTATE) -> Partition:
        """
        Optimistic read-validate-write loop.

        ``mutate`` receives a private copy of the current row and the current
        time, and returns the new row, or None when no write is needed. It
        raises :class:`LeaseLostError` when the caller is no longer allowed
        to write. A lost race re-reads and re-validates from scratch.
        """
        for _ in range(self.max_cas_attempts):
            current = self._get_or_raise(partition_key)
            now = self.clock()
            new = mutate(current.copy(), now)
            if new is None:
                return current
            new.last_update_time = now
            new.version = current.version + 1
            if self._compare_and_set(current.version, new):
                return new
        raise TransientIOError(
            f"partition {partition_key!r} kept changing under "
            f"{self.max_cas_attempts} write attempts"
        )

    def _check_owner(self, partition: Partition, owner_token: str):
        """
        Ownership is the owner token, not the clock. An expired lease that
        nobody reclaimed yet still belongs to its owner, a reclaim always
        issues a new token.
        """
        if partition.owner_token != owner_token:
            raise LeaseLostError(partition.partition_key, "owner token mismatch")
        if partition.status != PartitionStatusEnum.CLAIMED.value:
            raise LeaseLostError(
                partition.partition_key, f"partition is {partition.status}"
            )

    # --------------------------------------------------------------------------
    # public API
    # --------------------------------------------------------------------------
    def create_partition(
        self,
        partition_key: str,
        partition_type: str,
        progress_state: T.Optional[T_PROGRESS_STATE] = None,
    ) -> bool:
        """
        Register a new UNASSIGNED partition.

        :return: False if a partition with this key already exists, the
            existing row is left untouched.
        """
        now = self.clock()
        partition = Partition(
            partition_key=partition_key,
            partition_type=enum_value(partition_type),
            status=PartitionStatusEnum.UNASSIGNED.value,
            progress_state=dict(progress_state or {}),
            create_time=now,
            last_update_time=now,
            version=1,
        )
        return self._put_if_absent(partition)

    def get_partition(self, partition_key: str) -> T.Optional[Partition]:
        return self._get(partition_key)

    def list_partitions(self, partition_type: str) -> T.List[Partition]:
        return list(self._scan(partition_type))

    def acquire_next(self, partition_type: str) -> T.Optional[Partition]:
        """
        Claim one UNASSIGNED or lease-expired partition of the given type.

        :return: a snapshot of the claimed partition, with a fresh
            ``owner_token`` and the persisted progress state. None if nothing
            is eligible, the caller should back off and poll again.
        """
        now = self.clock()
        candidates = [
            partition
            for partition in self._scan(partition_type)
            if partition.is_claimable(now)
        ]
        # spread concurrent callers over different rows
        random.shuffle(candidates)
        for candidate in candidates:
            now = self.clock()
            new = candidate.copy()
            new.status = PartitionStatusEnum.CLAIMED.value
            new.owner_id = self.config.worker_id
            new.owner_token = uuid.uuid4().hex
            new.owner_expiry_time = now + self.config.lease_timedelta
            new.last_update_time = now
            new.version = candidate.version + 1
            if self._compare_and_set(candidate.version, new):
                self.logger.info(
                    f"{self.config.worker_id} claimed {new.partition_key!r}, "
                    f"lease until {new.owner_expiry_time.isoformat()}"
                )
                return new
        return None

    def renew_lease(self, partition_key: str, owner_token: str) -> Partition:
        """
        Extend the lease of a partition the caller still owns.

        :raises LeaseLostError: stale token or not CLAIMED.
        """

        def mutate(partition: Partition, now: datetime) -> Partition:
            self._check_owner(partition, owner_token)
            partition.owner_expiry_time = now + self.config.lease_timedelta
            return partition

        return self._update(partition_key, mutate)

    def save_progress(
        self,
        partition_key: str,
        owner_token: str,
        progress_state: T_PROGRESS_STATE,
    ) -> Partition:
        """
        Persist a progress snapshot and extend the lease.

        :raises LeaseLostError: stale token or not CLAIMED.
            The stale write is rejected, never merged.
        """

        def mutate(partition: Partition, now: datetime) -> Partition:
            self._check_owner(partition, owner_token)
            partition.progress_state = dict(progress_state)
            partition.owner_expiry_time = now + self.config.lease_timedelta
            return partition

        return self._update(partition_key, mutate)

    def mark_complete(
        self,
        partition_key: str,
        owner_token: str,
        progress_state: T_PROGRESS_STATE,
    ) -> Partition:
        """
        Mark the partition COMPLETED with its final progress and release the
        lease for good. Calling it again with the same token is a no-op.

        :raises LeaseLostError: stale token, or the partition was reclaimed.
        """

        def mutate(partition: Partition, now: datetime) -> T.Optional[Partition]:
            if partition.status == PartitionStatusEnum.COMPLETED.value:
                if partition.owner_token == owner_token:
                    return None
                raise LeaseLostError(
                    partition_key, "completed by another owner generation"
                )
            self._check_owner(partition, owner_token)
            partition.status = PartitionStatusEnum.COMPLETED.value
            partition.progress_state = dict(progress_state)
            partition.owner_expiry_time = None
            return partition

        return self._update(partition_key, mutate)

    def mark_error(
        self,
        partition_key: str,
        owner_token: str,
        reason: str,
    ) -> Partition:
        """
        Close the partition with error. It is not retried automatically, an
        operator has to :meth:`reset_partition` it.

        The token must still be the current owner generation.
        """

        def mutate(partition: Partition, now: datetime) -> T.Optional[Partition]:
            if partition.owner_token != owner_token:
                raise LeaseLostError(partition_key, "owner token mismatch")
            if partition.status == PartitionStatusEnum.CLOSED_WITH_ERROR.value:
                return None
            if partition.status != PartitionStatusEnum.CLAIMED.value:
                raise LeaseLostError(partition_key, f"partition is {partition.status}")
            partition.status = PartitionStatusEnum.CLOSED_WITH_ERROR.value
            partition.error_reason = reason
            partition.owner_expiry_time = None
            return partition

        partition = self._update(partition_key, mutate)
        self.logger.error(f"partition {partition_key!r} closed with error: {reason}")
        return partition

    def release_lease(self, partition_key: str, owner_token: str) -> Partition:
        """
        Give up a claimed partition before its lease runs out, so another
        worker can pick it up right away from the last saved progress.
        """

        def mutate(partition: Partition, now: datetime) -> Partition:
            self._check_owner(partition, owner_token)
            partition.status = PartitionStatusEnum.UNASSIGNED.value
            partition.owner_id = None
            partition.owner_token = None
            partition.owner_expiry_time = None
            return partition

        return self._update(partition_key, mutate)

    def reset_partition(self, partition_key: str) -> Partition:
        """
        Operator action, put a CLOSED_WITH_ERROR partition back to UNASSIGNED.
        Progress is kept.
        """

        def mutate(partition: Partition, now: datetime) -> Partition:
            if partition.status != PartitionStatusEnum.CLOSED_WITH_ERROR.value:
                raise ValueError(
                    f"only {PartitionStatusEnum.CLOSED_WITH_ERROR.value} partition "
                    f"can be reset, {partition_key!r} is {partition.status}"
                )
            partition.status = PartitionStatusEnum.UNASSIGNED.value
            partition.owner_id = None
            partition.owner_token = None
            partition.owner_expiry_time = None
            partition.error_reason = None
            return partition

        return self._update(partition_key, mutate)

    def get_progress(self, partition_type: str) -> ProgressReport:
        report = ProgressReport()
        now = self.clock()
        for partition in self._scan(partition_type):
            report.total += 1
            if partition.status == PartitionStatusEnum.COMPLETED.value:
                report.completed += 1
            elif partition.status == PartitionStatusEnum.CLOSED_WITH_ERROR.value:
                report.closed_with_error += 1
            elif partition.is_claimable(now):
                report.unassigned += 1
            else:
                report.claimed += 1
        return report


class InMemoryCoordinator(BaseCoordinator):
    """
    Process local coordinator. Each row has its own lock, so claims on
    different partitions never contend.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._rows: T.Dict[str, Partition] = dict()
        self._row_locks: T.Dict[str, threading.Lock] = dict()
        # guards the row dict itself, only taken on insert and listing
        self._registry_lock = threading.Lock()

    def _get(self, partition_key: str) -> T.Optional[Partition]:
        lock = self._row_locks.get(partition_key)
        if lock is None:
            return None
        with lock:
            return self._rows[partition_key].copy()

    def _put_if_absent(self, partition: Partition) -> bool:
        with self._registry_lock:
            if partition.partition_key in self._rows:
                return False
            self._rows[partition.partition_key] = partition.copy()
            self._row_locks[partition.partition_key] = threading.Lock()
            return True

    def _compare_and_set(self, expected_version: int, partition: Partition) -> bool:
        lock = self._row_locks[partition.partition_key]
        with lock:
            current = self._rows[partition.partition_key]
            if current.version != expected_version:
                return False
            self._rows[partition.partition_key] = partition.copy()
            return True

    def _scan(self, partition_type: str) -> T.Iterable[Partition]:
        with self._registry_lock:
            keys = list(self._rows)
        for key in keys:
            partition = self._get(key)
            if partition is not None and partition.partition_type == enum_value(
                partition_type
            ):
                yield partition
