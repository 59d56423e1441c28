"""AWS Lambda entry points."""

import logging
from typing import Any

from mortgage import aws, processor
from mortgage.store import ApplicationStore

logger = logging.getLogger(__name__)


def process_status_changes(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """
    Handle a batch of status-change messages from the SQS trigger.

    Raising fails the whole batch, so that SQS redelivers it and, eventually, moves it to the dead-letter queue.
    """
    records = event.get("Records", [])
    client = aws.Client.from_settings()
    count = processor.process_batch(records, ApplicationStore(client.table))
    return {"processed": count}


def pre_sign_up(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """
    Cognito pre sign-up trigger: confirm the user and verify their email address, without a confirmation code.

    New users have no group, and are therefore borrowers.
    """
    attributes = event["request"].get("userAttributes", {})
    logger.info(
        "Pre sign-up of %s (%s) in %s", event.get("userName"), attributes.get("email"), event.get("userPoolId")
    )

    event.setdefault("response", {})
    event["response"]["autoConfirmUser"] = True
    event["response"]["autoVerifyEmail"] = True
    return event
