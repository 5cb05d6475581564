# -*- coding: utf-8 -*-

import gzip
import time
import threading

from s3pathlib import S3Path

from dbsnapstream.constants import PartitionTypeEnum, PartitionStatusEnum
from dbsnapstream.config import Config
from dbsnapstream.s3_loc import ExportLocation
from dbsnapstream.manifest import ExportManifest, register_partitions
from dbsnapstream.coordinator import InMemoryCoordinator
from dbsnapstream.buffer import BlockingBuffer
from dbsnapstream.loader_factory import DataFileLoaderFactory
from dbsnapstream.scheduler import DataFileScheduler
from dbsnapstream.tests.mock_aws import BaseMockAwsTest
from dbsnapstream.tests.data_faker import (
    make_order,
    to_export_line,
    generate_dynamodb_export,
)

TYPE = PartitionTypeEnum.EXPORT_DATA_FILE.value


class Test(BaseMockAwsTest):
    use_mock: bool = True
    manifest: ExportManifest = None

    @classmethod
    def setup_class_post_hook(cls):
        s3dir_export = S3Path(cls.bucket, "exports", "AWSDynamoDB", "scheduler").to_dir()
        generate_dynamodb_export(
            s3_client=cls.s3_client,
            s3dir_export=s3dir_export,
            n_data_file=5,
            n_record_per_file=10,
        )
        cls.manifest = ExportManifest.read(
            location=ExportLocation(s3uri_export=s3dir_export.uri),
            s3_client=cls.s3_client,
        )

    def new_scheduler(self, coordinator: InMemoryCoordinator, buffer: BlockingBuffer):
        loader_factory = DataFileLoaderFactory(
            coordinator=coordinator,
            s3_client=self.s3_client,
            buffer=buffer,
        )
        return DataFileScheduler(
            coordinator=coordinator,
            loader_factory=loader_factory,
            table_info=self.manifest.table_info(),
        )

    def new_coordinator(self) -> InMemoryCoordinator:
        config = Config(
            checkpoint_interval=3,
            max_workers=3,
            acquire_interval=0.01,
            retry_wait_min=0,
            retry_wait_max=0,
        )
        coordinator = InMemoryCoordinator(config=config)
        register_partitions(coordinator, self.manifest)
        return coordinator

    def test_run_until_idle(self):
        coordinator = self.new_coordinator()
        # a partition whose object is gone must not block the others
        coordinator.create_partition(
            f"{self.bucket}|exports/AWSDynamoDB/scheduler/data/gone.json.gz", TYPE
        )
        buffer = BlockingBuffer()
        scheduler = self.new_scheduler(coordinator, buffer)
        results = scheduler.run()

        assert len(results) == 6
        assert sum(result.success for result in results) == 5
        assert len(buffer) == 50

        report = coordinator.get_progress(TYPE)
        assert report.completed == 5
        assert report.closed_with_error == 1
        assert report.is_finished is True

        # nothing left, a second run returns right away
        assert scheduler.run() == []

    def test_corrupt_data_file_is_closed_with_error(self):
        key = "exports/AWSDynamoDB/scheduler/data/corrupt.json.gz"
        body = f"{to_export_line(make_order(1))}\n".encode("utf-8") + b"\xff\xfe\n"
        self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=gzip.compress(body))
        config = Config(
            max_retries=2,
            max_give_ups=2,
            acquire_interval=0.01,
            retry_wait_min=0,
            retry_wait_max=0,
        )
        coordinator = InMemoryCoordinator(config=config)
        partition_key = f"{self.bucket}|{key}"
        coordinator.create_partition(partition_key, TYPE)
        scheduler = self.new_scheduler(coordinator, BlockingBuffer())

        thread = threading.Thread(target=scheduler.run)
        thread.start()
        thread.join(timeout=10)
        finished = not thread.is_alive()
        scheduler.shutdown()
        assert finished is True

        partition = coordinator.get_partition(partition_key)
        assert partition.status == PartitionStatusEnum.CLOSED_WITH_ERROR.value
        assert partition.progress_state["give_up_count"] == 2
        # one result per owner that gave up
        assert len(scheduler.results) == 2
        assert not any(result.success for result in scheduler.results)

    def test_shutdown(self):
        coordinator = self.new_coordinator()
        buffer = BlockingBuffer()
        scheduler = self.new_scheduler(coordinator, buffer)

        thread = threading.Thread(target=scheduler.run, kwargs={"stop_when_idle": False})
        thread.start()
        for _ in range(500):
            if coordinator.get_progress(TYPE).completed == 5:
                break
            time.sleep(0.01)
        scheduler.shutdown()
        thread.join(timeout=10)
        assert thread.is_alive() is False
        assert len(scheduler.results) == 5

    def test_shutdown_before_run(self):
        coordinator = self.new_coordinator()
        scheduler = self.new_scheduler(coordinator, BlockingBuffer())
        scheduler.shutdown()
        assert scheduler.run() == []
        partitions = coordinator.list_partitions(TYPE)
        assert {partition.status for partition in partitions} == {
            PartitionStatusEnum.UNASSIGNED.value
        }


if __name__ == "__main__":
    from dbsnapstream.tests import run_cov_test

    run_cov_test(__file__, "dbsnapstream.scheduler", preview=False)
