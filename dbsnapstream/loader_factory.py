# -*- coding: utf-8 -*-

import typing as T
import threading

from .config import Config
from .buffer import BaseBuffer
from .partition import DataFilePartition
from .s3_reader import S3ObjectReader
from .converter import TableInfo, ExportRecordConverter
from .checkpointer import DataFileCheckpointer
from .loader import DataFileLoader, T_DEAD_LETTER_HANDLER
from .logger import dummy_logger

if T.TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3.client import S3Client
    from .coordinator import BaseCoordinator


class DataFileLoaderFactory:
    """
    Builds one :class:`~dbsnapstream.loader.DataFileLoader` per claimed
    partition. The S3 reader is shared, the converter and the checkpointer
    are fresh for every loader.
    """

    def __init__(
        self,
        coordinator: "BaseCoordinator",
        s3_client: "S3Client",
        buffer: BaseBuffer,
        config: T.Optional[Config] = None,
        dead_letter_handler: T.Optional[T_DEAD_LETTER_HANDLER] = None,
        logger=dummy_logger,
    ):
        if config is None:
            config = coordinator.config
        self.coordinator = coordinator
        self.buffer = buffer
        self.config = config
        self.dead_letter_handler = dead_letter_handler
        self.logger = logger
        self.s3_object_reader = S3ObjectReader(s3_client=s3_client, logger=logger)

    def create_data_file_loader(
        self,
        data_file_partition: DataFilePartition,
        table_info: TableInfo,
        stop_event: T.Optional[threading.Event] = None,
    ) -> DataFileLoader:
        record_converter = ExportRecordConverter(
            buffer=self.buffer,
            table_info=table_info,
            buffer_write_timeout=self.config.buffer_write_timeout,
        )
        checkpointer = DataFileCheckpointer(
            coordinator=self.coordinator,
            data_file_partition=data_file_partition,
            config=self.config,
            logger=self.logger,
        )
        return DataFileLoader(
            s3_object_reader=self.s3_object_reader,
            bucket=data_file_partition.bucket,
            key=data_file_partition.key,
            record_converter=record_converter,
            checkpointer=checkpointer,
            start_line=data_file_partition.progress_state.loaded_lines,
            config=self.config,
            stop_event=stop_event,
            dead_letter_handler=self.dead_letter_handler,
            logger=self.logger,
        )
