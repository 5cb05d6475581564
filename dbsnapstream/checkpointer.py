# -*- coding: utf-8 -*-

"""
Checkpointer bound to one claimed data file partition.
"""

import typing as T

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exc import LeaseLostError, TransientIOError
from .config import Config
from .partition import DataFilePartition, DataFileProgressState
from .logger import dummy_logger

if T.TYPE_CHECKING:  # pragma: no cover
    from .coordinator import BaseCoordinator


def build_retrying(config: Config) -> Retrying:
    return Retrying(
        retry=retry_if_exception_type(TransientIOError),
        stop=stop_after_attempt(config.max_retries),
        wait=wait_exponential(min=config.retry_wait_min, max=config.retry_wait_max),
        reraise=True,
    )


class DataFileCheckpointer:
    """
    Persists "lines loaded so far" for exactly one partition, using the owner
    token it was claimed with.

    Once the coordinator reports the lease as lost, :attr:`lease_lost` stays
    True and every further call is refused locally. Writing after losing
    ownership would corrupt the new owner's progress.
    """

    def __init__(
        self,
        coordinator: "BaseCoordinator",
        data_file_partition: DataFilePartition,
        config: T.Optional[Config] = None,
        logger=dummy_logger,
    ):
        if data_file_partition.owner_token is None:
            raise ValueError(
                f"partition {data_file_partition.partition_key!r} is not claimed"
            )
        if config is None:
            config = coordinator.config
        self.coordinator = coordinator
        self.data_file_partition = data_file_partition
        self.config = config
        self.logger = logger
        self.lease_lost = False
        self.n_checkpoint = 0

    @property
    def partition_key(self) -> str:
        return self.data_file_partition.partition_key

    @property
    def owner_token(self) -> str:
        return self.data_file_partition.owner_token

    @property
    def give_up_count(self) -> int:
        return self.data_file_partition.progress_state.give_up_count

    def _progress_state(self, loaded_lines: int) -> T.Dict[str, T.Any]:
        return DataFileProgressState(
            loaded_lines=loaded_lines,
            total_lines=self.data_file_partition.progress_state.total_lines,
            give_up_count=self.give_up_count,
        ).to_dict()

    def give_up(self, loaded_lines: int) -> bool:
        """
        Count one more give up and save it together with the progress.

        :return: False if the lease is lost.
        """
        progress_state = DataFileProgressState(
            loaded_lines=loaded_lines,
            total_lines=self.data_file_partition.progress_state.total_lines,
            give_up_count=self.give_up_count + 1,
        )
        ok = self._call(self.coordinator.save_progress, progress_state.to_dict())
        if ok:
            self.data_file_partition.progress_state = progress_state
            self.logger.info(
                f"gave up {self.partition_key!r} at {loaded_lines} lines, "
                f"{progress_state.give_up_count} time(s) so far"
            )
        return ok

    def _call(self, func: T.Callable, *args) -> bool:
        if self.lease_lost:
            return False
        try:
            for attempt in build_retrying(self.config):
                with attempt:
                    func(self.partition_key, self.owner_token, *args)
        except LeaseLostError as e:
            self.lease_lost = True
            # expected under contention, not an alarm
            self.logger.info(f"stop loading {self.partition_key!r}: {e.reason}")
            return False
        return True

    def checkpoint(self, loaded_lines: int) -> bool:
        """
        Save progress, this also extends the lease.

        :return: False if the lease is lost, the loader has to stop.
        :raises TransientIOError: coordinator still failing after retries.
        """
        ok = self._call(
            self.coordinator.save_progress,
            self._progress_state(loaded_lines),
        )
        if ok:
            self.n_checkpoint += 1
            self.data_file_partition.progress_state.loaded_lines = loaded_lines
            self.logger.info(
                f"checkpoint {self.partition_key!r} at {loaded_lines} lines"
            )
        return ok

    def complete(self, loaded_lines: int) -> bool:
        """
        Mark the partition COMPLETED with its final line count.

        :return: False if the lease is lost.
        """
        ok = self._call(
            self.coordinator.mark_complete,
            self._progress_state(loaded_lines),
        )
        if ok:
            self.data_file_partition.progress_state.loaded_lines = loaded_lines
            self.logger.info(
                f"completed {self.partition_key!r} with {loaded_lines} lines"
            )
        return ok

    def renew_lease(self) -> bool:
        return self._call(self.coordinator.renew_lease)

    def mark_error(self, reason: str) -> bool:
        return self._call(self.coordinator.mark_error, reason)

    def release(self) -> bool:
        """
        Give the partition back before the lease runs out.
        """
        return self._call(self.coordinator.release_lease)
