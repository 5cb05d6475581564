# -*- coding: utf-8 -*-

from . import constants
from . import exc
from .typehint import T_RECORD
from .typehint import T_PROGRESS_STATE
from .constants import PartitionStatusEnum
from .constants import PartitionTypeEnum
from .constants import LoaderStateEnum
from .constants import OperationEnum
from .config import Config
from .logger import logger
from .logger import dummy_logger
from .partition import Partition
from .partition import DataFileProgressState
from .partition import DataFilePartition
from .partition import encode_data_file_partition_key
from .partition import decode_data_file_partition_key
from .coordinator import ProgressReport
from .coordinator import BaseCoordinator
from .coordinator import InMemoryCoordinator
from .dynamodb_coordinator import DynamoDBCoordinator
from .dynamodb_coordinator import create_table
from .s3_reader import LineStream
from .s3_reader import S3ObjectReader
from .buffer import BaseBuffer
from .buffer import BlockingBuffer
from .converter import TableInfo
from .converter import Record
from .converter import ExportRecordConverter
from .checkpointer import DataFileCheckpointer
from .loader import LoadResult
from .loader import DataFileLoader
from .loader_factory import DataFileLoaderFactory
from .scheduler import DataFileScheduler
from .s3_loc import ExportLocation
from .manifest import DataFile
from .manifest import ExportManifest
from .manifest import register_partitions
from .job import ExportLoadJob
