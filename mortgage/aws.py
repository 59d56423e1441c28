from typing import Any

import boto3
from mypy_boto3_dynamodb.service_resource import Table
from mypy_boto3_events.client import EventBridgeClient
from mypy_boto3_sqs.client import SQSClient

from mortgage.settings import Settings, app_settings


def client_kwargs(settings: Settings) -> dict[str, Any]:
    """
    Return the keyword arguments with which to create boto3 clients.

    Empty settings are omitted, so that boto3 falls back to its own credential chain (for example, a Lambda role).
    """
    kwargs: dict[str, Any] = {"region_name": settings.aws_region}
    if settings.aws_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key
    if settings.aws_client_secret:
        kwargs["aws_secret_access_key"] = settings.aws_client_secret
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return kwargs


class Client:
    """
    A client for DynamoDB, EventBridge and SQS.

    A new instance is created per request or per invocation (see :func:`mortgage.dependencies.get_aws_client`), and
    passed to the code that needs it.
    """

    def __init__(self, table: Table, events: EventBridgeClient, sqs: SQSClient):
        #: The applications table
        self.table = table
        #: A boto3 client for EventBridge
        self.events = events
        #: A boto3 client for SQS
        self.sqs = sqs

    @classmethod
    def from_settings(cls, settings: Settings = app_settings) -> "Client":
        kwargs = client_kwargs(settings)
        return cls(
            boto3.resource("dynamodb", **kwargs).Table(settings.dynamodb_table),
            boto3.client("events", **kwargs),
            boto3.client("sqs", **kwargs),
        )
