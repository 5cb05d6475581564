# -*- coding: utf-8 -*-

"""
DynamoDB backed partition coordinator.

Every write is a conditional ``PutItem`` guarded by the row's ``version``
attribute, which gives the atomic compare-and-set the lease logic relies on,
across processes and hosts.
"""

import typing as T
import json
import contextlib

import botocore.exceptions

from .exc import TransientIOError, UnrecoverableConfigError
from .partition import Partition
from .coordinator import BaseCoordinator
from .utils import to_epoch_millis, from_epoch_millis, enum_value

if T.TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_dynamodb.client import DynamoDBClient


ATTR_PARTITION_KEY = "partition_key"
ATTR_PARTITION_TYPE = "partition_type"
ATTR_STATUS = "status"
ATTR_OWNER_ID = "owner_id"
ATTR_OWNER_TOKEN = "owner_token"
ATTR_OWNER_EXPIRY_TIME = "owner_expiry_time"
ATTR_PROGRESS_STATE = "progress_state"
ATTR_ERROR_REASON = "error_reason"
ATTR_CREATE_TIME = "create_time"
ATTR_LAST_UPDATE_TIME = "last_update_time"
ATTR_VERSION = "version"

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
RETRYABLE_ERROR_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    "TransactionConflictException",
}
UNRECOVERABLE_ERROR_CODES = {
    "ResourceNotFoundException",
    "AccessDeniedException",
    "UnrecognizedClientException",
}


def create_table(
    dynamodb_client: "DynamoDBClient",
    table_name: str,
):
    """
    Create the partition table with on-demand billing and wait until it is
    active.
    """
    dynamodb_client.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": ATTR_PARTITION_KEY, "KeyType": "HASH"},
        ],
        AttributeDefinitions=[
            {"AttributeName": ATTR_PARTITION_KEY, "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb_client.get_waiter("table_exists").wait(TableName=table_name)


def serialize_partition(partition: Partition) -> T.Dict[str, T.Dict[str, str]]:
    item = {
        ATTR_PARTITION_KEY: {"S": partition.partition_key},
        ATTR_PARTITION_TYPE: {"S": enum_value(partition.partition_type)},
        ATTR_STATUS: {"S": enum_value(partition.status)},
        ATTR_PROGRESS_STATE: {"S": json.dumps(partition.progress_state)},
        ATTR_VERSION: {"N": str(partition.version)},
    }
    if partition.owner_id is not None:
        item[ATTR_OWNER_ID] = {"S": partition.owner_id}
    if partition.owner_token is not None:
        item[ATTR_OWNER_TOKEN] = {"S": partition.owner_token}
    if partition.owner_expiry_time is not None:
        item[ATTR_OWNER_EXPIRY_TIME] = {
            "N": str(to_epoch_millis(partition.owner_expiry_time))
        }
    if partition.error_reason is not None:
        item[ATTR_ERROR_REASON] = {"S": partition.error_reason}
    if partition.create_time is not None:
        item[ATTR_CREATE_TIME] = {"N": str(to_epoch_millis(partition.create_time))}
    if partition.last_update_time is not None:
        item[ATTR_LAST_UPDATE_TIME] = {
            "N": str(to_epoch_millis(partition.last_update_time))
        }
    return item


def deserialize_partition(item: T.Dict[str, T.Dict[str, str]]) -> Partition:
    def get_str(name: str) -> T.Optional[str]:
        if name in item:
            return item[name]["S"]
        return None

    def get_time(name: str):
        if name in item:
            return from_epoch_millis(item[name]["N"])
        return None

    return Partition(
        partition_key=item[ATTR_PARTITION_KEY]["S"],
        partition_type=item[ATTR_PARTITION_TYPE]["S"],
        status=item[ATTR_STATUS]["S"],
        progress_state=json.loads(item[ATTR_PROGRESS_STATE]["S"]),
        owner_id=get_str(ATTR_OWNER_ID),
        owner_token=get_str(ATTR_OWNER_TOKEN),
        owner_expiry_time=get_time(ATTR_OWNER_EXPIRY_TIME),
        error_reason=get_str(ATTR_ERROR_REASON),
        create_time=get_time(ATTR_CREATE_TIME),
        last_update_time=get_time(ATTR_LAST_UPDATE_TIME),
        version=int(item[ATTR_VERSION]["N"]),
    )


@contextlib.contextmanager
def translate_client_error(table_name: str):
    """
    Map botocore errors onto the project's error taxonomy. Unknown client
    errors, usually a programming mistake, propagate unchanged.
    """
    try:
        yield
    except botocore.exceptions.ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code in UNRECOVERABLE_ERROR_CODES:
            raise UnrecoverableConfigError(
                f"DynamoDB table {table_name!r} is not usable: {code}"
            ) from e
        if code in RETRYABLE_ERROR_CODES:
            raise TransientIOError(f"DynamoDB {code} on table {table_name!r}") from e
        raise
    except botocore.exceptions.BotoCoreError as e:
        raise TransientIOError(
            f"DynamoDB call failed on table {table_name!r}: {e}"
        ) from e


class DynamoDBCoordinator(BaseCoordinator):
    """
    :param dynamodb_client: ``boto3.client("dynamodb")`` object.
    :param table_name: table created by :func:`create_table`.
    """

    def __init__(
        self,
        dynamodb_client: "DynamoDBClient",
        table_name: str,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.dynamodb_client = dynamodb_client
        self.table_name = table_name

    def _get(self, partition_key: str) -> T.Optional[Partition]:
        with translate_client_error(self.table_name):
            res = self.dynamodb_client.get_item(
                TableName=self.table_name,
                Key={ATTR_PARTITION_KEY: {"S": partition_key}},
                ConsistentRead=True,
            )
        if "Item" not in res:
            return None
        return deserialize_partition(res["Item"])

    def _conditional_put(
        self,
        partition: Partition,
        condition_expression: str,
        expression_attribute_names: T.Dict[str, str],
        expression_attribute_values: T.Optional[T.Dict[str, T.Any]] = None,
    ) -> bool:
        kwargs = dict(
            TableName=self.table_name,
            Item=serialize_partition(partition),
            ConditionExpression=condition_expression,
            ExpressionAttributeNames=expression_attribute_names,
        )
        if expression_attribute_values:
            kwargs["ExpressionAttributeValues"] = expression_attribute_values
        with translate_client_error(self.table_name):
            try:
                self.dynamodb_client.put_item(**kwargs)
            except botocore.exceptions.ClientError as e:
                if e.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED:
                    return False
                raise
        return True

    def _put_if_absent(self, partition: Partition) -> bool:
        return self._conditional_put(
            partition,
            condition_expression="attribute_not_exists(#pk)",
            expression_attribute_names={"#pk": ATTR_PARTITION_KEY},
        )

    def _compare_and_set(self, expected_version: int, partition: Partition) -> bool:
        return self._conditional_put(
            partition,
            condition_expression="#version = :expected_version",
            expression_attribute_names={"#version": ATTR_VERSION},
            expression_attribute_values={
                ":expected_version": {"N": str(expected_version)},
            },
        )

    def _scan(self, partition_type: str) -> T.Iterable[Partition]:
        paginator = self.dynamodb_client.get_paginator("scan")
        with translate_client_error(self.table_name):
            for page in paginator.paginate(
                TableName=self.table_name,
                FilterExpression="#type = :type",
                ExpressionAttributeNames={"#type": ATTR_PARTITION_TYPE},
                ExpressionAttributeValues={":type": {"S": enum_value(partition_type)}},
                ConsistentRead=True,
            ):
                for item in page.get("Items", []):
                    yield deserialize_partition(item)
