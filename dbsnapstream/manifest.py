# -*- coding: utf-8 -*-

"""
A DynamoDB export ships a manifest that lists every data file and its item
count. Reading it once is enough to register all the work of an export,
there is no need to list the data folder or to open any data file.

This module reads that manifest and turns each data file into an
``EXPORT_DATA_FILE`` partition of the coordinator.
"""

import typing as T
import json
import dataclasses

import polars as pl
from s3pathlib import S3Path

from .typehint import T_RECORD
from .constants import PartitionTypeEnum
from .s3_loc import ExportLocation
from .partition import DataFileProgressState, encode_data_file_partition_key
from .converter import TableInfo
from .logger import dummy_logger

if T.TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3.client import S3Client
    from .coordinator import BaseCoordinator


def read_ndjson(b: bytes) -> T.List[T_RECORD]:
    if not b.strip():
        return []
    df = pl.read_ndjson(b)
    return df.to_dicts()


@dataclasses.dataclass(slots=True)
class DataFile:
    """
    One line of ``manifest-files.json``.
    """

    uri: str = dataclasses.field()
    n_record: T.Optional[int] = dataclasses.field(default=None)
    etag: T.Optional[str] = dataclasses.field(default=None)
    md5: T.Optional[str] = dataclasses.field(default=None)

    @property
    def s3path(self) -> S3Path:
        return S3Path.from_s3_uri(self.uri)

    @property
    def partition_key(self) -> str:
        s3path = self.s3path
        return encode_data_file_partition_key(s3path.bucket, s3path.key)

    @classmethod
    def from_manifest_line(cls, bucket: str, dct: T.Dict[str, T.Any]):
        """
        A ``manifest-files.json`` line looks like::

            {"itemCount": 123, "md5Checksum": "...", "etag": "...",
             "dataFileS3Key": "prefix/AWSDynamoDB/.../data/abc.json.gz"}
        """
        return cls(
            uri=S3Path(bucket, dct["dataFileS3Key"]).uri,
            n_record=dct.get("itemCount"),
            etag=dct.get("etag"),
            md5=dct.get("md5Checksum"),
        )


@dataclasses.dataclass
class ExportManifest:
    """
    :param summary: parsed ``manifest-summary.json``.
    :param data_file_list: one entry per data file.
    """

    summary: T.Dict[str, T.Any] = dataclasses.field()
    data_file_list: T.List[DataFile] = dataclasses.field(default_factory=list)

    @property
    def n_record(self) -> T.Optional[int]:
        return self.summary.get("itemCount")

    @classmethod
    def read(
        cls,
        location: ExportLocation,
        s3_client: "S3Client",
    ):
        """
        Read the manifest summary and the manifest files list from S3.
        """
        summary = json.loads(
            location.s3path_manifest_summary.read_text(bsm=s3_client)
        )
        # the summary knows where the files list is, fall back to the default name
        manifest_files_key = summary.get("manifestFilesS3Key")
        if manifest_files_key:
            s3path_manifest_files = S3Path(location.bucket, manifest_files_key)
        else:
            s3path_manifest_files = location.s3path_manifest_files
        bucket = summary.get("s3Bucket") or location.bucket
        records = read_ndjson(s3path_manifest_files.read_bytes(bsm=s3_client))
        return cls(
            summary=summary,
            data_file_list=[
                DataFile.from_manifest_line(bucket=bucket, dct=record)
                for record in records
            ],
        )

    def table_info(
        self,
        stream_arn: T.Optional[str] = None,
        partition_key_attr: T.Optional[str] = None,
        sort_key_attr: T.Optional[str] = None,
    ) -> TableInfo:
        return TableInfo.from_manifest_summary(
            self.summary,
            stream_arn=stream_arn,
            partition_key_attr=partition_key_attr,
            sort_key_attr=sort_key_attr,
        )


def register_partitions(
    coordinator: "BaseCoordinator",
    manifest: ExportManifest,
    logger=dummy_logger,
) -> int:
    """
    Create one UNASSIGNED ``EXPORT_DATA_FILE`` partition per data file.
    Safe to call again, existing partitions and their progress are kept.

    :return: number of newly created partitions.
    """
    n_created = 0
    for data_file in manifest.data_file_list:
        created = coordinator.create_partition(
            partition_key=data_file.partition_key,
            partition_type=PartitionTypeEnum.EXPORT_DATA_FILE.value,
            progress_state=DataFileProgressState(
                loaded_lines=0,
                total_lines=data_file.n_record,
            ).to_dict(),
        )
        if created:
            n_created += 1
    logger.info(
        f"registered {n_created} new partitions "
        f"out of {len(manifest.data_file_list)} data files"
    )
    return n_created
