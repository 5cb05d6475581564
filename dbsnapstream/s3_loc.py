# -*- coding: utf-8 -*-

"""
S3 Location
"""

import dataclasses

from s3pathlib import S3Path

from .constants import (
    MANIFEST_SUMMARY_FILE,
    MANIFEST_FILES_FILE,
    DATA_FOLDER,
)


@dataclasses.dataclass
class ExportLocation:
    """
    Layout of one DynamoDB export in S3. ``s3uri_export`` is the folder
    DynamoDB created for the export, it looks like this:

    .. code-block:: python

        s3://bucket/prefix/AWSDynamoDB/${export_id}/
            manifest-summary.json
            manifest-files.json
            data/
                ${random_id_1}.json.gz
                ${random_id_2}.json.gz
                ...
    """

    s3uri_export: str = dataclasses.field()

    def __post_init__(self):
        self.s3uri_export = self.s3dir_export.uri

    @property
    def s3dir_export(self) -> S3Path:
        return S3Path.from_s3_uri(self.s3uri_export).to_dir()

    @property
    def s3path_manifest_summary(self) -> S3Path:
        return self.s3dir_export.joinpath(MANIFEST_SUMMARY_FILE)

    @property
    def s3path_manifest_files(self) -> S3Path:
        return self.s3dir_export.joinpath(MANIFEST_FILES_FILE)

    @property
    def s3dir_data(self) -> S3Path:
        return self.s3dir_export.joinpath(DATA_FOLDER).to_dir()

    @property
    def bucket(self) -> str:
        return self.s3dir_export.bucket
