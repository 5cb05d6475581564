# -*- coding: utf-8 -*-

import typing as T
import dataclasses
from functools import cached_property

from .constants import PartitionTypeEnum
from .config import Config
from .buffer import BaseBuffer
from .s3_loc import ExportLocation
from .manifest import ExportManifest, register_partitions
from .converter import TableInfo
from .coordinator import BaseCoordinator, ProgressReport
from .loader import LoadResult, T_DEAD_LETTER_HANDLER
from .loader_factory import DataFileLoaderFactory
from .scheduler import DataFileScheduler
from .logger import logger

if T.TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3.client import S3Client


@dataclasses.dataclass
class ExportLoadJob:
    """
    Everything needed to stream one DynamoDB export into a buffer.

    Any number of processes can run :meth:`step_2_load` against the same
    coordinator at the same time, the leases make sure every data file is
    worked on by one of them at a time.
    """

    s3_client: "S3Client" = dataclasses.field()
    coordinator: BaseCoordinator = dataclasses.field()
    buffer: BaseBuffer = dataclasses.field()
    s3uri_export: str = dataclasses.field()
    config: Config = dataclasses.field(default_factory=Config)
    stream_arn: T.Optional[str] = dataclasses.field(default=None)
    partition_key_attr: T.Optional[str] = dataclasses.field(default=None)
    sort_key_attr: T.Optional[str] = dataclasses.field(default=None)
    dead_letter_handler: T.Optional[T_DEAD_LETTER_HANDLER] = dataclasses.field(
        default=None
    )

    @cached_property
    def export_location(self) -> ExportLocation:
        return ExportLocation(s3uri_export=self.s3uri_export)

    @cached_property
    def export_manifest(self) -> ExportManifest:
        return ExportManifest.read(
            location=self.export_location,
            s3_client=self.s3_client,
        )

    @cached_property
    def table_info(self) -> TableInfo:
        return self.export_manifest.table_info(
            stream_arn=self.stream_arn,
            partition_key_attr=self.partition_key_attr,
            sort_key_attr=self.sort_key_attr,
        )

    @cached_property
    def scheduler(self) -> DataFileScheduler:
        loader_factory = DataFileLoaderFactory(
            coordinator=self.coordinator,
            s3_client=self.s3_client,
            buffer=self.buffer,
            config=self.config,
            dead_letter_handler=self.dead_letter_handler,
            logger=logger,
        )
        return DataFileScheduler(
            coordinator=self.coordinator,
            loader_factory=loader_factory,
            table_info=self.table_info,
            config=self.config,
            logger=logger,
        )

    @logger.start_and_end(
        msg="{func_name}",
    )
    def step_1_register_partitions(self) -> int:
        logger.info(f"Read export manifest from {self.export_location.s3uri_export}")
        logger.info(
            f"  preview at: {self.export_location.s3path_manifest_summary.console_url}"
        )
        logger.info(f"  total data files: {len(self.export_manifest.data_file_list)}")
        logger.info(f"  total n_record: {self.export_manifest.n_record}")
        return register_partitions(
            coordinator=self.coordinator,
            manifest=self.export_manifest,
            logger=logger,
        )

    @logger.start_and_end(
        msg="{func_name}",
    )
    def step_2_load(self, stop_when_idle: bool = True) -> T.List[LoadResult]:
        with logger.nested():
            results = self.scheduler.run(stop_when_idle=stop_when_idle)
        self.report_progress()
        return results

    def report_progress(self) -> ProgressReport:
        report = self.coordinator.get_progress(
            PartitionTypeEnum.EXPORT_DATA_FILE.value
        )
        logger.info(
            f"progress: {report.completed}/{report.total} completed "
            f"({report.completion_ratio:.1%}), "
            f"{report.claimed} claimed, {report.unassigned} unassigned, "
            f"{report.closed_with_error} closed with error"
        )
        return report
