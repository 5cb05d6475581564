# -*- coding: utf-8 -*-

import enum


class PartitionStatusEnum(str, enum.Enum):
    UNASSIGNED = "UNASSIGNED"
    CLAIMED = "CLAIMED"
    COMPLETED = "COMPLETED"
    CLOSED_WITH_ERROR = "CLOSED_WITH_ERROR"


class PartitionTypeEnum(str, enum.Enum):
    EXPORT_DATA_FILE = "EXPORT_DATA_FILE"
    # reserved for change stream shards, no loader yet
    STREAM_SHARD = "STREAM_SHARD"


class LoaderStateEnum(str, enum.Enum):
    STARTING = "STARTING"
    STREAMING = "STREAMING"
    CHECKPOINTING = "CHECKPOINTING"
    COMPLETING = "COMPLETING"
    DONE = "DONE"
    ABORTED = "ABORTED"


class OperationEnum(str, enum.Enum):
    INDEX = "index"


PARTITION_KEY_SEP = "|"

KEY_LOADED_LINES = "loaded_lines"
KEY_TOTAL_LINES = "total_lines"
KEY_GIVE_UP_COUNT = "give_up_count"

DEFAULT_CHECKPOINT_INTERVAL = 5000
DEFAULT_LEASE_DURATION = 300  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_GIVE_UPS = 3

MANIFEST_SUMMARY_FILE = "manifest-summary.json"
MANIFEST_FILES_FILE = "manifest-files.json"
DATA_FOLDER = "data"
