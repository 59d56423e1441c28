import logging

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_events.client import EventBridgeClient

from mortgage.exceptions import PublishError
from mortgage.models import StatusChangeEvent
from mortgage.settings import app_settings
from mortgage.store import ApplicationStore

logger = logging.getLogger(__name__)

DETAIL_TYPE = "ApplicationStatusChanged"


class EventPublisher:
    """Publishes status changes to EventBridge, from where a rule forwards them to the processing queue."""

    def __init__(self, client: EventBridgeClient, event_bus_name: str = "", source: str = ""):
        self.client = client
        self.event_bus_name = event_bus_name or app_settings.event_bus_name
        self.source = source or app_settings.event_source

    def publish(self, event: StatusChangeEvent) -> None:
        """
        Publish a status-change event.

        :raises PublishError: If EventBridge can't be reached or rejects the entry.
        """
        try:
            response = self.client.put_events(
                Entries=[
                    {
                        "Source": self.source,
                        "DetailType": DETAIL_TYPE,
                        "Detail": event.model_dump_json(),
                        "EventBusName": self.event_bus_name,
                    }
                ]
            )
        except (BotoCoreError, ClientError) as e:
            raise PublishError(f"Failed to publish status change of {event.application_id}: {e}") from e

        if response.get("FailedEntryCount"):
            entry = response["Entries"][0]
            raise PublishError(
                f"EventBridge rejected status change of {event.application_id}: "
                f"{entry.get('ErrorCode')} {entry.get('ErrorMessage')}"
            )

        logger.info("Published %s → %s for %s", event.previous_status, event.new_status, event.application_id)


def republish_pending(store: ApplicationStore, publisher: EventPublisher) -> tuple[int, int]:
    """
    Publish the events left in the outbox, deleting each one that is published.

    :return: The number of events published and the number that failed again.
    """
    published = failed = 0
    for event in store.pending_events():
        try:
            publisher.publish(event)
        except PublishError:
            logger.exception("Failed to republish event for %s", event.application_id)
            failed += 1
            continue
        store.delete_event(event)
        published += 1
    return published, failed
