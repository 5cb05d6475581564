# -*- coding: utf-8 -*-

"""
Turn DynamoDB export lines into records and push them into the buffer.

A line of a DynamoDB JSON export looks like::

    {"Item": {"id": {"S": "order-1"}, "amount": {"N": "12.5"}, "tags": {"SS": ["a"]}}}
"""

import typing as T
import json
import decimal
import dataclasses
from datetime import datetime

from boto3.dynamodb.types import TypeDeserializer, Binary

from .typehint import T_RECORD
from .constants import OperationEnum
from .exc import MalformedRecordError
from .buffer import BaseBuffer


@dataclasses.dataclass(frozen=True)
class TableInfo:
    """
    Static description of the exported table, attached to every record.

    :param table_name: source table name.
    :param export_time: point in time of the export.
    :param stream_arn: DynamoDB stream arn, if the table has one.
    :param partition_key_attr: hash key attribute name, used to build the
        ``primary_key`` metadata.
    :param sort_key_attr: range key attribute name, if any.
    """

    table_name: str = dataclasses.field()
    export_time: datetime = dataclasses.field()
    stream_arn: T.Optional[str] = dataclasses.field(default=None)
    partition_key_attr: T.Optional[str] = dataclasses.field(default=None)
    sort_key_attr: T.Optional[str] = dataclasses.field(default=None)

    @classmethod
    def from_manifest_summary(
        cls,
        summary: T.Dict[str, T.Any],
        stream_arn: T.Optional[str] = None,
        partition_key_attr: T.Optional[str] = None,
        sort_key_attr: T.Optional[str] = None,
    ):
        """
        Build from the ``manifest-summary.json`` of a DynamoDB export.
        ``tableArn`` looks like ``arn:aws:dynamodb:us-east-1:111122223333:table/orders``.
        """
        table_name = summary["tableArn"].split("/")[-1]
        export_time = datetime.fromisoformat(
            summary["exportTime"].replace("Z", "+00:00")
        )
        return cls(
            table_name=table_name,
            export_time=export_time,
            stream_arn=stream_arn,
            partition_key_attr=partition_key_attr,
            sort_key_attr=sort_key_attr,
        )


@dataclasses.dataclass
class Record:
    """
    One converted item plus where it came from.
    """

    data: T_RECORD = dataclasses.field()
    metadata: T.Dict[str, T.Any] = dataclasses.field(default_factory=dict)


_deserializer = TypeDeserializer()


def to_plain(value: T.Any) -> T.Any:
    """
    Make a deserialized DynamoDB value JSON friendly: ``Decimal`` becomes
    ``int`` or ``float``, sets become sorted lists, binary becomes bytes.

    Integral numbers stay exact, even at the full 38 digits DynamoDB allows.
    Fractional numbers are rounded to the nearest ``float``, so one with more
    than about 15 significant digits loses precision.

    Example::

        >>> to_plain({"a": Decimal("1"), "b": Decimal("1.5"), "c": {"x", "y"}})
        {'a': 1, 'b': 1.5, 'c': ['x', 'y']}
    """
    if isinstance(value, decimal.Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(to_plain(v) for v in value)
    if isinstance(value, Binary):
        return bytes(value.value)
    return value


def deserialize_item(item: T.Dict[str, T.Any]) -> T_RECORD:
    return {k: to_plain(_deserializer.deserialize(v)) for k, v in item.items()}


class ExportRecordConverter:
    """
    Converts export lines and writes the records into the buffer. One
    instance per loader, not shared.

    :param buffer: output buffer, writes may block.
    :param table_info: attached to every record as metadata.
    :param buffer_write_timeout: passed to :meth:`BaseBuffer.write`.
    """

    def __init__(
        self,
        buffer: BaseBuffer,
        table_info: TableInfo,
        buffer_write_timeout: T.Optional[float] = None,
    ):
        self.buffer = buffer
        self.table_info = table_info
        self.buffer_write_timeout = buffer_write_timeout
        self.n_record_written = 0
        self.n_line_failed = 0

    def convert(self, line: str, source_uri: T.Optional[str] = None) -> T.List[Record]:
        """
        Parse one line into zero or more records. Blank lines produce nothing.

        :raises MalformedRecordError: the line is not a DynamoDB JSON item.
        """
        if not line.strip():
            return []
        try:
            doc = json.loads(line)
            item = doc["Item"]
            if not isinstance(item, dict):
                raise TypeError(f"'Item' is a {type(item).__name__}, not an object")
            data = deserialize_item(item)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self.n_line_failed += 1
            raise MalformedRecordError(line=line, reason=f"{type(e).__name__}: {e}")
        return [Record(data=data, metadata=self.build_metadata(data, source_uri))]

    def build_metadata(
        self,
        data: T_RECORD,
        source_uri: T.Optional[str] = None,
    ) -> T.Dict[str, T.Any]:
        table_info = self.table_info
        primary_key = None
        if table_info.partition_key_attr is not None:
            key_attrs = [table_info.partition_key_attr]
            if table_info.sort_key_attr is not None:
                key_attrs.append(table_info.sort_key_attr)
            values = [data.get(attr) for attr in key_attrs]
            # an item without its key attributes has no primary key to report
            if None not in values:
                primary_key = "|".join(str(value) for value in values)
        return {
            "table_name": table_info.table_name,
            "export_time": table_info.export_time.isoformat(),
            "stream_arn": table_info.stream_arn,
            "operation": OperationEnum.INDEX.value,
            "primary_key": primary_key,
            "source_uri": source_uri,
        }

    def process_line(self, line: str, source_uri: T.Optional[str] = None) -> int:
        """
        Convert one line and write its records to the buffer, blocking while
        the buffer is full.

        :return: number of records written.
        """
        records = self.convert(line, source_uri=source_uri)
        for record in records:
            self.buffer.write(record, timeout=self.buffer_write_timeout)
            self.n_record_written += 1
        return len(records)
