"""
DynamoDB single-table storage for applications.

=================== ====================== =================================================================
PK                  SK                     Item
=================== ====================== =================================================================
``APP#<id>``        ``METADATA``           The application, with ``GSI1PK=USER#<user_id>``, ``GSI1SK=<created_at>``
``APP#<id>``        ``STATUS#<timestamp>`` A status history entry
``APP#<id>``        ``OUTBOX#<timestamp>`` A status-change event that hasn't been published yet
=================== ====================== =================================================================

Indexes:

-  ``GSI1`` lists a user's applications, sorted by creation time.
-  ``statusIndex`` lists applications by ``status``, sorted by ``created_at``. History and outbox items have no
   ``status`` attribute, so they aren't indexed.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import Table

from mortgage.exceptions import ConflictError
from mortgage.models import (
    Application,
    ApplicationStatus,
    StatusChangeEvent,
    StatusHistoryEntry,
    isoformat,
    next_timestamp,
)

logger = logging.getLogger(__name__)

METADATA = "METADATA"
STATUS_PREFIX = "STATUS#"
OUTBOX_PREFIX = "OUTBOX#"
USER_INDEX = "GSI1"
STATUS_INDEX = "statusIndex"

# Cancellation reasons that mean another writer won.
CONFLICT_CODES = {"ConditionalCheckFailed", "TransactionConflict"}


def partition_key(application_id: str) -> str:
    return f"APP#{application_id}"


def user_key(user_id: str) -> str:
    return f"USER#{user_id}"


def to_dynamo(value: Any) -> Any:
    """
    Convert a dumped pydantic model to DynamoDB-compatible values.

    Timestamps become ISO 8601 strings, enums their values and floats decimals. ``None`` values are dropped.
    """
    if isinstance(value, dict):
        return {key: to_dynamo(item) for key, item in value.items() if item is not None}
    if isinstance(value, list | tuple):
        return [to_dynamo(item) for item in value]
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def outbox_key(event: StatusChangeEvent) -> dict[str, str]:
    return {"PK": partition_key(event.application_id), "SK": f"{OUTBOX_PREFIX}{isoformat(event.timestamp)}"}


class ApplicationStore:
    """Access patterns over the applications table."""

    def __init__(self, table: Table):
        self.table = table

    def _query(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        # With a limit, return a single page. Otherwise, follow LastEvaluatedKey.
        while True:
            response = self.table.query(**kwargs)
            yield from response.get("Items", [])
            if "Limit" in kwargs or "LastEvaluatedKey" not in response:
                return
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def get(self, application_id: str) -> Application | None:
        response = self.table.get_item(
            Key={"PK": partition_key(application_id), "SK": METADATA},
            ConsistentRead=True,
        )
        if item := response.get("Item"):
            return Application.model_validate(item)
        return None

    def put(self, application: Application) -> Application:
        """
        Insert a new application.

        :raises ConflictError: If an application with the same ID exists.
        """
        item = to_dynamo(application.model_dump())
        item.update(
            {
                "PK": partition_key(application.application_id),
                "SK": METADATA,
                "GSI1PK": user_key(application.user_id),
                "GSI1SK": isoformat(application.created_at),
            }
        )
        try:
            self.table.put_item(Item=item, ConditionExpression="attribute_not_exists(PK)")
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise ConflictError(f"Application {application.application_id} already exists") from e
            raise
        return application

    def transition(
        self,
        application: Application,
        new_status: ApplicationStatus,
        *,
        notes: str | None = None,
        changed_by: str = "",
    ) -> tuple[Application, StatusChangeEvent]:
        """
        Move an application to a new status, guarded by its status being unchanged since it was read.

        The status update, the history entry and the outbox entry are written in one transaction.

        :param application: The application, as read.
        :return: The updated application and the event to publish.
        :raises ConflictError: If another writer changed the status first.
        """
        now = next_timestamp(application.updated_at)
        changes: dict[str, Any] = {"status": new_status, "updated_at": now}
        if notes is not None:
            changes["notes"] = notes
        updated = application.model_copy(update=changes)

        entry = StatusHistoryEntry(
            previous_status=application.status,
            new_status=new_status,
            timestamp=now,
            notes=notes,
            changed_by=changed_by,
        )
        event = StatusChangeEvent(
            application_id=application.application_id,
            previous_status=application.status,
            new_status=new_status,
            user_id=application.user_id,
            timestamp=now,
        )

        update_expression = "SET #status = :new_status, updated_at = :now"
        values: dict[str, Any] = {":new_status": new_status, ":now": now, ":expected": application.status}
        if notes is not None:
            update_expression += ", notes = :notes"
            values[":notes"] = notes

        pk = partition_key(application.application_id)
        history_item = {"PK": pk, "SK": f"{STATUS_PREFIX}{isoformat(now)}", **entry.model_dump()}
        outbox_item = {**outbox_key(event), "event": event.model_dump()}
        # The resource's client serializes plain values, like the resource.
        try:
            self.table.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Update": {
                            "TableName": self.table.name,
                            "Key": to_dynamo({"PK": pk, "SK": METADATA}),
                            "UpdateExpression": update_expression,
                            "ConditionExpression": "#status = :expected",
                            "ExpressionAttributeNames": {"#status": "status"},
                            "ExpressionAttributeValues": to_dynamo(values),
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": to_dynamo(history_item),
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": to_dynamo(outbox_item),
                        }
                    },
                ]
            )
        except ClientError as e:
            if e.response["Error"]["Code"] != "TransactionCanceledException":
                raise
            reasons = {reason.get("Code") for reason in e.response.get("CancellationReasons", [])}
            if reasons and not reasons & CONFLICT_CODES:
                raise
            logger.info(
                "Status of %s changed concurrently (expected %s, reasons %s)",
                application.application_id,
                application.status,
                reasons,
            )
            raise ConflictError(
                f"Application {application.application_id} is no longer {application.status}. Reload and retry."
            ) from e

        return updated, event

    def query_by_user(self, user_id: str, limit: int | None = None) -> list[Application]:
        """Return a user's applications, newest first."""
        kwargs: dict[str, Any] = {
            "IndexName": USER_INDEX,
            "KeyConditionExpression": Key("GSI1PK").eq(user_key(user_id)),
            "ScanIndexForward": False,
        }
        if limit:
            kwargs["Limit"] = limit
        return [Application.model_validate(item) for item in self._query(**kwargs)]

    def query_by_status(
        self, status: ApplicationStatus, limit: int | None = None, *, newest_first: bool = True
    ) -> list[Application]:
        """Return the applications in a status. The index is eventually consistent."""
        kwargs: dict[str, Any] = {
            "IndexName": STATUS_INDEX,
            "KeyConditionExpression": Key("status").eq(status.value),
            "ScanIndexForward": not newest_first,
        }
        if limit:
            kwargs["Limit"] = limit
        return [Application.model_validate(item) for item in self._query(**kwargs)]

    def history(self, application_id: str) -> list[StatusHistoryEntry]:
        """Return an application's status history, oldest first."""
        condition = Key("PK").eq(partition_key(application_id)) & Key("SK").begins_with(STATUS_PREFIX)
        return [
            StatusHistoryEntry.model_validate(item)
            for item in self._query(KeyConditionExpression=condition, ScanIndexForward=True, ConsistentRead=True)
        ]

    def pending_events(self) -> list[StatusChangeEvent]:
        """Return the status-change events that haven't been published, oldest first."""
        kwargs: dict[str, Any] = {"FilterExpression": Attr("SK").begins_with(OUTBOX_PREFIX)}
        events = []
        while True:
            response = self.table.scan(**kwargs)
            events.extend(StatusChangeEvent.model_validate(item["event"]) for item in response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        return sorted(events, key=lambda event: event.timestamp)

    def delete_event(self, event: StatusChangeEvent) -> None:
        self.table.delete_item(Key=outbox_key(event))


def create_table(table: Table) -> None:
    """Create the applications table and its indexes, and wait until it exists."""
    table.meta.client.create_table(
        TableName=table.name,
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
            {"AttributeName": "GSI1PK", "AttributeType": "S"},
            {"AttributeName": "GSI1SK", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": USER_INDEX,
                "KeySchema": [
                    {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                    {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": STATUS_INDEX,
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    )
    table.wait_until_exists()
    logger.info("Created table %s", table.name)
