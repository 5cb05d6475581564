# -*- coding: utf-8 -*-

"""
Reference worker pool that keeps up to ``max_workers`` loaders busy.
"""

import typing as T
import time
import threading
import concurrent.futures

from .constants import PartitionTypeEnum
from .exc import TransientIOError
from .config import Config
from .partition import DataFilePartition
from .converter import TableInfo
from .loader import LoadResult
from .loader_factory import DataFileLoaderFactory
from .logger import dummy_logger

if T.TYPE_CHECKING:  # pragma: no cover
    from .coordinator import BaseCoordinator


class DataFileScheduler:
    """
    Polls the coordinator for claimable data file partitions and runs one
    loader per partition on a bounded thread pool.

    :param coordinator: shared partition coordinator.
    :param loader_factory: builds the loaders.
    :param table_info: metadata of the exported table.
    :param config: ``max_workers`` and ``acquire_interval`` come from here.
    """

    partition_type = PartitionTypeEnum.EXPORT_DATA_FILE.value

    def __init__(
        self,
        coordinator: "BaseCoordinator",
        loader_factory: DataFileLoaderFactory,
        table_info: TableInfo,
        config: T.Optional[Config] = None,
        logger=dummy_logger,
    ):
        if config is None:
            config = coordinator.config
        self.coordinator = coordinator
        self.loader_factory = loader_factory
        self.table_info = table_info
        self.config = config
        self.logger = logger
        self.stop_event = threading.Event()
        self.results: T.List[LoadResult] = list()

    def shutdown(self):
        """
        Ask every running loader to stop at its next checkpoint boundary, and
        stop claiming new partitions.
        """
        self.logger.info("drain worker pool ...")
        self.stop_event.set()

    def _collect(self, futures: T.Set[concurrent.futures.Future]):
        for future in [f for f in futures if f.done()]:
            futures.remove(future)
            result: LoadResult = future.result()
            self.results.append(result)
            if result.success:
                self.logger.info(f"loader finished {result.partition_key!r}")
            else:
                self.logger.info(
                    f"loader gave up {result.partition_key!r}: {result.reason}"
                )

    def _try_submit(
        self,
        executor: concurrent.futures.ThreadPoolExecutor,
        futures: T.Set[concurrent.futures.Future],
    ) -> bool:
        try:
            partition = self.coordinator.acquire_next(self.partition_type)
        except TransientIOError as e:
            self.logger.warning(f"acquire partition failed: {e}")
            return False
        if partition is None:
            return False
        data_file_partition = DataFilePartition.from_partition(partition)
        loader = self.loader_factory.create_data_file_loader(
            data_file_partition=data_file_partition,
            table_info=self.table_info,
            stop_event=self.stop_event,
        )
        futures.add(executor.submit(loader))
        return True

    def run(self, stop_when_idle: bool = True) -> T.List[LoadResult]:
        """
        :param stop_when_idle: return once no partition is left to claim or
            running, otherwise keep polling until :meth:`shutdown`.

        :return: results of the loaders run by this call.
        """
        self.results = list()
        futures: T.Set[concurrent.futures.Future] = set()
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="dbsnapstream-loader",
        ) as executor:
            while not self.stop_event.is_set():
                self._collect(futures)
                submitted = False
                if len(futures) < self.config.max_workers:
                    submitted = self._try_submit(executor, futures)
                if submitted:
                    continue
                if (
                    stop_when_idle
                    and len(futures) == 0
                    and self.coordinator.get_progress(self.partition_type).is_finished
                ):
                    break
                if futures:
                    concurrent.futures.wait(
                        futures,
                        timeout=self.config.acquire_interval,
                        return_when=concurrent.futures.FIRST_COMPLETED,
                    )
                else:
                    time.sleep(self.config.acquire_interval)
            concurrent.futures.wait(futures)
            self._collect(futures)
        return self.results
