# -*- coding: utf-8 -*-

from s3pathlib import S3Path

from dbsnapstream.constants import PartitionTypeEnum
from dbsnapstream.config import Config
from dbsnapstream.buffer import BlockingBuffer
from dbsnapstream.dynamodb_coordinator import create_table, DynamoDBCoordinator
from dbsnapstream.job import ExportLoadJob
from dbsnapstream.logger import logger
from dbsnapstream.tests.mock_aws import BaseMockAwsTest
from dbsnapstream.tests.data_faker import generate_dynamodb_export


class Test(BaseMockAwsTest):
    use_mock: bool = True
    job: ExportLoadJob = None

    @classmethod
    def setup_class_post_hook(cls):
        s3dir_export = S3Path(cls.bucket, "exports", "AWSDynamoDB", "job").to_dir()
        generate_dynamodb_export(
            s3_client=cls.s3_client,
            s3dir_export=s3dir_export,
            n_data_file=3,
            n_record_per_file=10,
        )
        table_name = "dbsnapstream-partition"
        create_table(cls.dynamodb_client, table_name)
        config = Config(
            checkpoint_interval=4,
            max_workers=2,
            acquire_interval=0.01,
            retry_wait_min=0,
            retry_wait_max=0,
        )
        cls.job = ExportLoadJob(
            s3_client=cls.s3_client,
            coordinator=DynamoDBCoordinator(
                dynamodb_client=cls.dynamodb_client,
                table_name=table_name,
                config=config,
            ),
            buffer=BlockingBuffer(),
            s3uri_export=s3dir_export.uri,
            config=config,
            partition_key_attr="order_id",
        )

    def test_end_to_end(self):
        job = self.job
        with logger.disabled(
            disable=True,  # no log
            # disable=False,  # show log
        ):
            assert job.step_1_register_partitions() == 3
            assert job.step_1_register_partitions() == 0
            results = job.step_2_load()

        assert len(results) == 3
        assert all(result.success for result in results)
        assert sum(result.n_record for result in results) == 30
        assert len(job.buffer) == 30

        records = job.buffer.read(max_records=100, timeout=0)
        order_ids = {record.data["order_id"] for record in records}
        assert order_ids == {f"order-{i}" for i in range(1, 1 + 30)}
        metadata = records[0].metadata
        assert metadata["table_name"] == "orders"
        assert metadata["primary_key"] == records[0].data["order_id"]

        report = job.report_progress()
        assert report.total == 3
        assert report.completed == 3
        assert report.completion_ratio == 1.0
        for partition in job.coordinator.list_partitions(
            PartitionTypeEnum.EXPORT_DATA_FILE
        ):
            assert partition.progress_state["loaded_lines"] == 10


if __name__ == "__main__":
    from dbsnapstream.tests import run_cov_test

    run_cov_test(__file__, "dbsnapstream.job", preview=False)
