# -*- coding: utf-8 -*-

"""
Per partition worker loop.

States: ``STARTING -> STREAMING -> CHECKPOINTING (every N lines, back to
STREAMING) -> COMPLETING -> DONE``. ``ABORTED`` is reachable from any state
but ``DONE``.

``loaded_lines`` counts every consumed line, including blank and malformed
ones, because resuming skips exactly that many lines.
"""

import typing as T
import threading
import dataclasses

from .constants import LoaderStateEnum
from .exc import (
    TransientIOError,
    MalformedRecordError,
    UnrecoverableConfigError,
)
from .config import Config
from .s3_reader import S3ObjectReader, LineStream
from .converter import ExportRecordConverter
from .checkpointer import DataFileCheckpointer, build_retrying
from .logger import dummy_logger

T_DEAD_LETTER_HANDLER = T.Callable[[str, int, MalformedRecordError], T.Any]


@dataclasses.dataclass
class LoadResult:
    """
    What a loader reports back to the worker pool.

    :param success: True only when the partition reached DONE.
    :param state: the terminal state, DONE or ABORTED.
    :param loaded_lines: total lines consumed, resume offset included.
    :param n_record: records written to the buffer by this run.
    :param n_malformed: lines consumed but not converted by this run.
    :param n_checkpoint: intermediate checkpoints saved by this run.
    :param reason: why the loader aborted.
    """

    partition_key: str = dataclasses.field()
    success: bool = dataclasses.field()
    state: LoaderStateEnum = dataclasses.field()
    loaded_lines: int = dataclasses.field(default=0)
    n_record: int = dataclasses.field(default=0)
    n_malformed: int = dataclasses.field(default=0)
    n_checkpoint: int = dataclasses.field(default=0)
    reason: T.Optional[str] = dataclasses.field(default=None)


class _Abort(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DataFileLoader:
    """
    Streams one export data file into the buffer, checkpointing as it goes.

    A loader is a callable, ``executor.submit(loader)`` runs it. It never
    raises for a partition level failure, the outcome is in the returned
    :class:`LoadResult`.

    :param s3_object_reader: shared reader.
    :param bucket: bucket of the data file.
    :param key: key of the data file.
    :param record_converter: converter owned by this loader.
    :param checkpointer: checkpointer owned by this loader.
    :param start_line: lines already loaded by a previous owner.
    :param config: checkpoint cadence and retry policy.
    :param stop_event: pool wide drain flag, observed at checkpoint boundaries.
    :param dead_letter_handler: called with ``(line, line_number, error)``
        for lines that fail to convert.
    """

    def __init__(
        self,
        s3_object_reader: S3ObjectReader,
        bucket: str,
        key: str,
        record_converter: ExportRecordConverter,
        checkpointer: DataFileCheckpointer,
        start_line: int = 0,
        config: T.Optional[Config] = None,
        stop_event: T.Optional[threading.Event] = None,
        dead_letter_handler: T.Optional[T_DEAD_LETTER_HANDLER] = None,
        logger=dummy_logger,
    ):
        if start_line < 0:
            raise ValueError(f"start_line has to be >= 0, got {start_line}")
        if config is None:
            config = Config()
        if stop_event is None:
            stop_event = threading.Event()
        self.s3_object_reader = s3_object_reader
        self.bucket = bucket
        self.key = key
        self.record_converter = record_converter
        self.checkpointer = checkpointer
        self.start_line = start_line
        self.config = config
        self.stop_event = stop_event
        self.dead_letter_handler = dead_letter_handler
        self.logger = logger

        self.state = LoaderStateEnum.STARTING
        self.loaded_lines = start_line
        self.n_record = 0
        self.n_malformed = 0
        self._lines_since_checkpoint = 0

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def _should_stop(self) -> bool:
        return self.checkpointer.lease_lost or self.stop_event.is_set()

    def _skip_loaded_lines(self, stream: LineStream) -> bool:
        """
        Discard the first ``loaded_lines`` lines. The lease is renewed every
        ``checkpoint_interval`` skipped lines since skipping a large prefix
        can take a while.

        :return: False if the object has fewer lines than that.
        """
        remaining = self.loaded_lines
        while remaining > 0:
            chunk = min(remaining, self.config.checkpoint_interval)
            skipped = stream.skip(chunk)
            remaining -= skipped
            if skipped < chunk:
                return False
            if remaining > 0 and not self.checkpointer.renew_lease():
                raise _Abort("lease lost while skipping loaded lines")
        return True

    def _process_line(self, line: str):
        line_number = self.loaded_lines + 1
        try:
            self.n_record += self.record_converter.process_line(
                line, source_uri=self.uri
            )
        except MalformedRecordError as e:
            self.n_malformed += 1
            self.logger.warning(
                f"skip malformed line {line_number} of {self.uri}: {e.reason}"
            )
            if self.dead_letter_handler is not None:
                self.dead_letter_handler(line, line_number, e)
        # only counted once fully handed over, a failed buffer write is re-read
        self.loaded_lines += 1
        self._lines_since_checkpoint += 1

    def _checkpoint(self):
        self.state = LoaderStateEnum.CHECKPOINTING
        if not self.checkpointer.checkpoint(self.loaded_lines):
            raise _Abort("lease lost on checkpoint")
        self._lines_since_checkpoint = 0
        if self.stop_event.is_set():
            self._release()
            raise _Abort("worker pool is draining")
        self.state = LoaderStateEnum.STREAMING

    def _release(self):
        if self.checkpointer.lease_lost:
            return
        try:
            self.checkpointer.release()
        except TransientIOError as e:
            self.logger.warning(f"release {self.uri} failed: {e}")

    def _load(self):
        """
        One attempt, from the current ``loaded_lines`` to the end of the object.
        """
        self.state = LoaderStateEnum.STARTING
        with self.s3_object_reader.open(self.bucket, self.key) as stream:
            if self.loaded_lines:
                self.logger.info(f"skip {self.loaded_lines} loaded lines ...")
            if not self._skip_loaded_lines(stream):
                self.logger.info(
                    f"{self.uri} has no more than {self.loaded_lines} lines, "
                    f"nothing left to load"
                )
                return
            self.state = LoaderStateEnum.STREAMING
            for line in stream:
                self._process_line(line)
                if self._lines_since_checkpoint >= self.config.checkpoint_interval:
                    self._checkpoint()

    def _give_up(self, reason: str):
        """
        Save what is done and hand the partition back for another worker. The
        owner that gives up for the ``max_give_ups`` th time closes the
        partition with error instead.
        """
        if self.checkpointer.lease_lost:
            raise _Abort(reason)
        n_give_up = self.checkpointer.give_up_count + 1
        try:
            self.checkpointer.give_up(self.loaded_lines)
        except TransientIOError as e:
            self.logger.warning(f"final checkpoint of {self.uri} failed: {e}")
        if n_give_up < self.config.max_give_ups:
            self._release()
            raise _Abort(reason)
        reason = f"{reason} (given up {n_give_up} times)"
        try:
            self.checkpointer.mark_error(reason)
        except TransientIOError as e:
            self.logger.warning(f"mark error on {self.uri} failed: {e}")
            self._release()
        raise _Abort(reason)

    def _result(self, reason: T.Optional[str] = None) -> LoadResult:
        return LoadResult(
            partition_key=self.checkpointer.partition_key,
            success=self.state == LoaderStateEnum.DONE,
            state=self.state,
            loaded_lines=self.loaded_lines,
            n_record=self.n_record,
            n_malformed=self.n_malformed,
            n_checkpoint=self.checkpointer.n_checkpoint,
            reason=reason,
        )

    def run(self) -> LoadResult:
        self.logger.info(f"start loading {self.uri} from line {self.start_line + 1}")
        try:
            if self._should_stop():
                self._release()
                raise _Abort("stopped before start")
            try:
                for attempt in build_retrying(self.config):
                    with attempt:
                        self._load()
            except TransientIOError as e:
                self._give_up(f"transient failure after retries: {e}")
            except UnrecoverableConfigError as e:
                self.checkpointer.mark_error(str(e))
                raise _Abort(f"unrecoverable: {e}")

            self.state = LoaderStateEnum.COMPLETING
            if not self.checkpointer.complete(self.loaded_lines):
                raise _Abort("lease lost on completion")
            self.state = LoaderStateEnum.DONE
            self.logger.info(
                f"done {self.uri}: {self.loaded_lines} lines, "
                f"{self.n_record} records, {self.n_malformed} malformed"
            )
            return self._result()
        except _Abort as e:
            self.state = LoaderStateEnum.ABORTED
            self.logger.info(f"abort {self.uri} at line {self.loaded_lines}: {e.reason}")
            return self._result(reason=e.reason)
        except Exception as e:
            # partition isolation
            self.state = LoaderStateEnum.ABORTED
            self.logger.error(f"unexpected failure on {self.uri}: {e!r}")
            try:
                self.checkpointer.mark_error(repr(e))
            except Exception as mark_error_exc:
                self.logger.error(f"mark error failed on {self.uri}: {mark_error_exc!r}")
            return self._result(reason=repr(e))

    __call__ = run
