# https://fastapi.tiangolo.com/advanced/settings/#pydantic-settings

import logging.config
import re
from typing import Any

import sentry_sdk
from pydantic_settings import BaseSettings, SettingsConfigDict


def sentry_filter_transactions(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """
    Filter transactions to be sent to Sentry.
    This function prevents transactions that interact with Cognito from being sent to Sentry.

    :param event: The event data.
    :param hint: A dictionary of extra data passed to the function.
    :return: The event data if it should be sent to Sentry, otherwise None.
    """
    try:
        data_url = event["breadcrumbs"]["values"][0]["data"]["url"]
    except (KeyError, IndexError, TypeError):
        return event
    if data_url and re.search(r"https://cognito-idp.*\.amazonaws\.com", data_url):
        return None
    return event


class Settings(BaseSettings):
    """
    Each setting has a corresponding uppercase environment variable.

    .. seealso:: `Settings Management <https://docs.pydantic.dev/latest/concepts/pydantic_settings/#usage>`__
    """

    #: If "local", bearer tokens of the form ``mock.<base64 claims>.local`` are accepted, because LocalStack has no
    #: Cognito. Also reported by ``/health``.
    environment: str = "development"
    #: The `logging level <https://docs.python.org/3/library/logging.html#levels>`__ of the root logger.
    log_level: int | str = logging.INFO
    #: The version reported by ``/health``.
    version: str = "1.0.0"

    # Storage and messaging

    #: The DynamoDB table holding applications, status history and the event outbox.
    dynamodb_table: str = "mortgage-platform-local-applications"
    #: The EventBridge bus to which status changes are published.
    event_bus_name: str = "mortgage-platform-local-events"
    #: The ``Source`` of published status-change events, matched by the rule that forwards them to the queue.
    event_source: str = "mortgage.applications"
    #: The SQS queue that receives status-change events.
    #:
    #: Read by ``python -m mortgage consume``.
    queue_url: str = ""

    # Security

    #: The shared secret with which external providers sign webhook bodies (HMAC-SHA256).
    webhook_secret: str = "default-secret-for-dev"

    #: The base URL of the frontend, for CORS.
    frontend_url: str = "http://localhost:3000"

    # Third-party services

    #: Amazon Web Services region.
    aws_region: str = "us-east-1"
    #: Operational user access key.
    aws_access_key: str = ""
    #: Operational user client secret.
    aws_client_secret: str = ""
    #: Override the AWS endpoint, for example ``http://localhost:4566`` for LocalStack.
    aws_endpoint_url: str = ""
    #: Cognito user pool ID.
    cognito_pool_id: str = ""
    #: Cognito app client ID. If set, the ``aud`` claim of ID tokens must match.
    cognito_client_id: str = ""
    #: Sentry DSN.
    sentry_dsn: str = ""

    model_config = SettingsConfigDict(env_file=".env")


app_settings = Settings()

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "%(asctime)s %(levelname)s [%(name)s:%(lineno)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": app_settings.log_level,
            },
        },
    }
)

if app_settings.sentry_dsn:
    sentry_sdk.init(
        dsn=app_settings.sentry_dsn,
        before_send=sentry_filter_transactions,
        # Set traces_sample_rate to 1.0 to capture 100% of transactions for performance monitoring.
        traces_sample_rate=1.0,
    )
