# -*- coding: utf-8 -*-

"""
Coordination partition model.

A partition is an independently claimable unit of work. Different kinds of
work share the same registry, the ``partition_type`` field tells them apart
and ``progress_state`` carries the kind specific payload, which the
coordinator treats as an opaque JSON document.
"""

import typing as T
import json
import dataclasses
from datetime import datetime

from s3pathlib import S3Path

from .typehint import T_PROGRESS_STATE
from .constants import (
    PartitionStatusEnum,
    PartitionTypeEnum,
    PARTITION_KEY_SEP,
    KEY_LOADED_LINES,
    KEY_TOTAL_LINES,
    KEY_GIVE_UP_COUNT,
)


@dataclasses.dataclass
class Partition:
    """
    One row of the coordinator's partition table.

    :param partition_key: globally unique id of the unit of work.
    :param partition_type: kind discriminator, see :class:`PartitionTypeEnum`.
    :param status: see :class:`PartitionStatusEnum`.
    :param progress_state: kind specific progress, round-tripped unchanged.
    :param owner_id: worker identity that holds the lease.
    :param owner_token: owner generation, regenerated on every claim. Every
        mutating call has to present it.
    :param owner_expiry_time: lease expiry, coordinator clock.
    :param error_reason: why the partition was closed with error.
    :param version: optimistic concurrency counter, +1 on every write.
    """

    partition_key: str = dataclasses.field()
    partition_type: str = dataclasses.field()
    status: str = dataclasses.field(default=PartitionStatusEnum.UNASSIGNED.value)
    progress_state: T_PROGRESS_STATE = dataclasses.field(default_factory=dict)
    owner_id: T.Optional[str] = dataclasses.field(default=None)
    owner_token: T.Optional[str] = dataclasses.field(default=None)
    owner_expiry_time: T.Optional[datetime] = dataclasses.field(default=None)
    error_reason: T.Optional[str] = dataclasses.field(default=None)
    create_time: T.Optional[datetime] = dataclasses.field(default=None)
    last_update_time: T.Optional[datetime] = dataclasses.field(default=None)
    version: int = dataclasses.field(default=0)

    def copy(self) -> "Partition":
        return dataclasses.replace(
            self, progress_state=json.loads(json.dumps(self.progress_state))
        )

    def is_lease_expired(self, now: datetime) -> bool:
        if self.owner_expiry_time is None:
            return True
        return now >= self.owner_expiry_time

    def is_claimable(self, now: datetime) -> bool:
        """
        UNASSIGNED, or CLAIMED with an expired lease. COMPLETED and
        CLOSED_WITH_ERROR are never claimable.
        """
        if self.status == PartitionStatusEnum.UNASSIGNED.value:
            return True
        if self.status == PartitionStatusEnum.CLAIMED.value:
            return self.is_lease_expired(now)
        return False


@dataclasses.dataclass
class DataFileProgressState:
    """
    Progress of one export data file.

    :param loaded_lines: number of lines consumed so far, malformed ones
        included. It is also the number of lines to skip when resuming.
    :param total_lines: item count from the export manifest, informational.
    :param give_up_count: how many owners ran out of retries on this
        partition. Once it reaches ``Config.max_give_ups`` the partition is
        closed with error instead of being released again.
    """

    loaded_lines: int = dataclasses.field(default=0)
    total_lines: T.Optional[int] = dataclasses.field(default=None)
    give_up_count: int = dataclasses.field(default=0)

    def to_dict(self) -> T_PROGRESS_STATE:
        return {
            KEY_LOADED_LINES: self.loaded_lines,
            KEY_TOTAL_LINES: self.total_lines,
            KEY_GIVE_UP_COUNT: self.give_up_count,
        }

    @classmethod
    def from_dict(cls, dct: T_PROGRESS_STATE):
        return cls(
            loaded_lines=int(dct.get(KEY_LOADED_LINES, 0) or 0),
            total_lines=dct.get(KEY_TOTAL_LINES),
            give_up_count=int(dct.get(KEY_GIVE_UP_COUNT, 0) or 0),
        )


def encode_data_file_partition_key(bucket: str, key: str) -> str:
    """
    Example:

        >>> encode_data_file_partition_key("my-bucket", "exports/table1/0001.json")
        'my-bucket|exports/table1/0001.json'
    """
    return f"{bucket}{PARTITION_KEY_SEP}{key}"


def decode_data_file_partition_key(partition_key: str) -> T.Tuple[str, str]:
    bucket, key = partition_key.split(PARTITION_KEY_SEP, 1)
    return bucket, key


@dataclasses.dataclass
class DataFilePartition:
    """
    Typed view of an ``EXPORT_DATA_FILE`` partition, this is what the loader
    factory consumes.
    """

    bucket: str = dataclasses.field()
    key: str = dataclasses.field()
    progress_state: DataFileProgressState = dataclasses.field(
        default_factory=DataFileProgressState
    )
    owner_token: T.Optional[str] = dataclasses.field(default=None)

    partition_type: T.ClassVar[str] = PartitionTypeEnum.EXPORT_DATA_FILE.value

    @property
    def partition_key(self) -> str:
        return encode_data_file_partition_key(self.bucket, self.key)

    @property
    def s3path(self) -> S3Path:
        return S3Path(self.bucket, self.key)

    @classmethod
    def from_partition(cls, partition: Partition):
        if partition.partition_type != cls.partition_type:
            raise ValueError(
                f"partition {partition.partition_key!r} is a "
                f"{partition.partition_type!r}, not a {cls.partition_type!r}"
            )
        bucket, key = decode_data_file_partition_key(partition.partition_key)
        return cls(
            bucket=bucket,
            key=key,
            progress_state=DataFileProgressState.from_dict(partition.progress_state),
            owner_token=partition.owner_token,
        )
