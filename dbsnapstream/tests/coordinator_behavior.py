# -*- coding: utf-8 -*-

"""
Lease rules every coordinator backend has to honor. A backend test class
mixes this in and implements :meth:`CoordinatorBehavior.new_coordinator`.
"""

import typing as T
import uuid

import pytest

from ..constants import PartitionStatusEnum, PartitionTypeEnum
from ..exc import LeaseLostError, PartitionNotFoundError
from ..config import Config
from ..coordinator import BaseCoordinator
from .clock import FakeClock

TYPE = PartitionTypeEnum.EXPORT_DATA_FILE.value


def new_key() -> str:
    return f"my-bucket|exports/{uuid.uuid4().hex}.json"


class CoordinatorBehavior:
    def new_coordinator(
        self,
        clock: FakeClock,
        config: T.Optional[Config] = None,
    ) -> BaseCoordinator:
        raise NotImplementedError

    def setup_coordinator(
        self,
        lease_duration: int = 30,
        worker_id: str = "worker-a",
    ) -> T.Tuple[BaseCoordinator, FakeClock]:
        clock = FakeClock()
        config = Config(lease_duration=lease_duration, worker_id=worker_id)
        return self.new_coordinator(clock=clock, config=config), clock

    def test_create_partition(self):
        coordinator, clock = self.setup_coordinator()
        key = new_key()
        assert coordinator.create_partition(key, TYPE, {"loaded_lines": 0}) is True
        partition = coordinator.get_partition(key)
        assert partition.status == PartitionStatusEnum.UNASSIGNED.value
        assert partition.partition_type == TYPE
        assert partition.progress_state == {"loaded_lines": 0}
        assert partition.owner_token is None
        assert partition.version == 1

        # registering again keeps the existing row
        assert coordinator.create_partition(key, TYPE, {"loaded_lines": 99}) is False
        assert coordinator.get_partition(key).progress_state == {"loaded_lines": 0}

        assert coordinator.get_partition(new_key()) is None
        assert [p.partition_key for p in coordinator.list_partitions(TYPE)] == [key]
        assert coordinator.list_partitions(PartitionTypeEnum.STREAM_SHARD) == []

    def test_acquire_next(self):
        coordinator, clock = self.setup_coordinator()
        assert coordinator.acquire_next(TYPE) is None

        key = new_key()
        coordinator.create_partition(key, TYPE, {"loaded_lines": 0})
        partition = coordinator.acquire_next(TYPE)
        assert partition.partition_key == key
        assert partition.status == PartitionStatusEnum.CLAIMED.value
        assert partition.owner_id == "worker-a"
        assert partition.owner_token is not None
        assert partition.owner_expiry_time == clock() + coordinator.config.lease_timedelta

        stored = coordinator.get_partition(key)
        assert stored.owner_token == partition.owner_token
        assert stored.version == partition.version

        # a live lease is never handed out twice
        assert coordinator.acquire_next(TYPE) is None
        assert coordinator.acquire_next(PartitionTypeEnum.STREAM_SHARD) is None

    def test_resume_from_last_progress(self):
        coordinator, clock = self.setup_coordinator()
        key = new_key()
        coordinator.create_partition(key, TYPE, {"loaded_lines": 0})
        partition = coordinator.acquire_next(TYPE)
        coordinator.save_progress(key, partition.owner_token, {"loaded_lines": 3})

        clock.advance(seconds=31)
        partition_b = coordinator.acquire_next(TYPE)
        assert partition_b.partition_key == key
        assert partition_b.owner_token != partition.owner_token
        assert partition_b.progress_state == {"loaded_lines": 3}

    def test_stale_owner_is_rejected(self):
        coordinator, clock = self.setup_coordinator(lease_duration=30)
        key = new_key()
        coordinator.create_partition(key, TYPE, {"loaded_lines": 0})
        partition_a = coordinator.acquire_next(TYPE)

        clock.advance(seconds=31)
        partition_b = coordinator.acquire_next(TYPE)
        assert partition_b is not None
        coordinator.save_progress(key, partition_b.owner_token, {"loaded_lines": 7})

        with pytest.raises(LeaseLostError):
            coordinator.save_progress(
                key, partition_a.owner_token, {"loaded_lines": 100}
            )
        with pytest.raises(LeaseLostError):
            coordinator.renew_lease(key, partition_a.owner_token)
        with pytest.raises(LeaseLostError):
            coordinator.mark_complete(
                key, partition_a.owner_token, {"loaded_lines": 100}
            )
        with pytest.raises(LeaseLostError):
            coordinator.mark_error(key, partition_a.owner_token, "boom")
        assert coordinator.get_partition(key).progress_state == {"loaded_lines": 7}

    def test_expired_lease_without_new_owner(self):
        coordinator, clock = self.setup_coordinator(lease_duration=30)
        key = new_key()
        coordinator.create_partition(key, TYPE)
        partition = coordinator.acquire_next(TYPE)
        clock.advance(seconds=31)
        # nobody reclaimed it, the owner carries on
        saved = coordinator.save_progress(
            key, partition.owner_token, {"loaded_lines": 1}
        )
        assert saved.progress_state == {"loaded_lines": 1}
        assert saved.owner_expiry_time == clock() + coordinator.config.lease_timedelta
        clock.advance(seconds=31)
        renewed = coordinator.renew_lease(key, partition.owner_token)
        assert renewed.owner_expiry_time == clock() + coordinator.config.lease_timedelta
        assert coordinator.acquire_next(TYPE) is None
        clock.advance(seconds=31)
        completed = coordinator.mark_complete(
            key, partition.owner_token, {"loaded_lines": 2}
        )
        assert completed.status == PartitionStatusEnum.COMPLETED.value

    def test_expired_lease_then_mark_error(self):
        coordinator, clock = self.setup_coordinator(lease_duration=30)
        key = new_key()
        coordinator.create_partition(key, TYPE)
        partition = coordinator.acquire_next(TYPE)
        clock.advance(seconds=31)
        closed = coordinator.mark_error(key, partition.owner_token, "boom")
        assert closed.status == PartitionStatusEnum.CLOSED_WITH_ERROR.value

    def test_save_progress_extends_lease(self):
        coordinator, clock = self.setup_coordinator(lease_duration=30)
        key = new_key()
        coordinator.create_partition(key, TYPE)
        partition = coordinator.acquire_next(TYPE)
        for loaded_lines in [10, 20, 30]:
            clock.advance(seconds=20)
            coordinator.save_progress(
                key, partition.owner_token, {"loaded_lines": loaded_lines}
            )
        clock.advance(seconds=20)
        renewed = coordinator.renew_lease(key, partition.owner_token)
        assert renewed.owner_expiry_time == clock() + coordinator.config.lease_timedelta
        assert coordinator.acquire_next(TYPE) is None

    def test_mark_complete(self):
        coordinator, clock = self.setup_coordinator()
        key = new_key()
        coordinator.create_partition(key, TYPE, {"loaded_lines": 0})
        partition = coordinator.acquire_next(TYPE)
        completed = coordinator.mark_complete(
            key, partition.owner_token, {"loaded_lines": 10}
        )
        assert completed.status == PartitionStatusEnum.COMPLETED.value
        assert completed.progress_state == {"loaded_lines": 10}

        # idempotent with the same token
        again = coordinator.mark_complete(
            key, partition.owner_token, {"loaded_lines": 10}
        )
        assert again.version == completed.version
        with pytest.raises(LeaseLostError):
            coordinator.mark_complete(key, "stale-token", {"loaded_lines": 10})

        clock.advance(days=1)
        assert coordinator.acquire_next(TYPE) is None
        with pytest.raises(LeaseLostError):
            coordinator.save_progress(key, partition.owner_token, {"loaded_lines": 1})

    def test_mark_error_and_reset(self):
        coordinator, clock = self.setup_coordinator()
        key = new_key()
        coordinator.create_partition(key, TYPE, {"loaded_lines": 0})
        partition = coordinator.acquire_next(TYPE)
        coordinator.save_progress(key, partition.owner_token, {"loaded_lines": 5})
        closed = coordinator.mark_error(key, partition.owner_token, "NoSuchKey")
        assert closed.status == PartitionStatusEnum.CLOSED_WITH_ERROR.value
        assert closed.error_reason == "NoSuchKey"
        assert coordinator.mark_error(
            key, partition.owner_token, "again"
        ).error_reason == "NoSuchKey"

        clock.advance(days=1)
        assert coordinator.acquire_next(TYPE) is None

        reset = coordinator.reset_partition(key)
        assert reset.status == PartitionStatusEnum.UNASSIGNED.value
        assert reset.error_reason is None
        assert reset.progress_state == {"loaded_lines": 5}
        with pytest.raises(ValueError):
            coordinator.reset_partition(key)
        assert coordinator.acquire_next(TYPE).partition_key == key

    def test_release_lease(self):
        coordinator, clock = self.setup_coordinator()
        key = new_key()
        coordinator.create_partition(key, TYPE)
        partition = coordinator.acquire_next(TYPE)
        released = coordinator.release_lease(key, partition.owner_token)
        assert released.status == PartitionStatusEnum.UNASSIGNED.value
        assert released.owner_token is None
        with pytest.raises(LeaseLostError):
            coordinator.release_lease(key, partition.owner_token)
        assert coordinator.acquire_next(TYPE).partition_key == key

    def test_partition_not_found(self):
        coordinator, clock = self.setup_coordinator()
        with pytest.raises(PartitionNotFoundError):
            coordinator.renew_lease(new_key(), "token")

    def test_get_progress(self):
        coordinator, clock = self.setup_coordinator()
        keys = [new_key() for _ in range(4)]
        for key in keys:
            coordinator.create_partition(key, TYPE)

        report = coordinator.get_progress(TYPE)
        assert report.total == 4
        assert report.unassigned == 4
        assert report.is_finished is False

        p1 = coordinator.acquire_next(TYPE)
        p2 = coordinator.acquire_next(TYPE)
        coordinator.acquire_next(TYPE)
        coordinator.mark_complete(p1.partition_key, p1.owner_token, {})
        coordinator.mark_error(p2.partition_key, p2.owner_token, "boom")

        report = coordinator.get_progress(TYPE)
        assert report.total == 4
        assert report.completed == 1
        assert report.closed_with_error == 1
        assert report.claimed == 1
        assert report.unassigned == 1
        assert report.completion_ratio == 0.25
