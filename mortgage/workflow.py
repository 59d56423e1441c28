import logging
import uuid

from botocore.exceptions import ClientError

from mortgage import models, parsers
from mortgage.events import EventPublisher
from mortgage.exceptions import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError
from mortgage.store import ApplicationStore

logger = logging.getLogger(__name__)

#: The statuses that loan officers and administrators see when listing without a filter.
REVIEWABLE_STATUSES = tuple(status for status in models.ApplicationStatus if status != models.ApplicationStatus.DRAFT)


def _get_accessible(store: ApplicationStore, application_id: str, actor: models.Actor) -> models.Application:
    application = store.get(application_id)
    if application is None:
        raise NotFoundError("Application not found")
    if application.user_id != actor.user_id and not actor.is_elevated:
        logger.warning("Access denied to %s for %s", application_id, actor.user_id)
        raise ForbiddenError("Access denied")
    return application


def create_application(
    store: ApplicationStore, actor: models.Actor, payload: parsers.ApplicationCreate
) -> models.Application:
    """Create a DRAFT application owned by the actor."""
    now = models.utcnow()
    application = models.Application(
        application_id=str(uuid.uuid4()),
        user_id=actor.user_id,
        status=models.ApplicationStatus.DRAFT,
        borrower_info=models.BorrowerInfo.model_validate(payload.borrower_info.model_dump()),
        property_info=models.PropertyInfo.model_validate(payload.property_info.model_dump()),
        created_at=now,
        updated_at=now,
        notes=payload.notes,
    )
    store.put(application)
    logger.info("Created application %s for %s", application.application_id, actor.user_id)
    return application


def get_application(store: ApplicationStore, application_id: str, actor: models.Actor) -> models.Application:
    """
    Return an application that the actor owns, or any application if the actor has an elevated role.

    :raises NotFoundError:
    :raises ForbiddenError:
    """
    return _get_accessible(store, application_id, actor)


def get_history(
    store: ApplicationStore, application_id: str, actor: models.Actor
) -> list[models.StatusHistoryEntry]:
    _get_accessible(store, application_id, actor)
    return store.history(application_id)


def list_applications(
    store: ApplicationStore,
    actor: models.Actor,
    status: models.ApplicationStatus | None = None,
    limit: int | None = None,
) -> list[models.Application]:
    """
    List applications, newest first.

    Borrowers see only their own applications, and the status filter is ignored. Loan officers and administrators
    see the applications in the given status or, without a filter, every application that isn't a DRAFT.
    """
    if not actor.is_elevated:
        return store.query_by_user(actor.user_id, limit)
    if status is not None:
        return store.query_by_status(status, limit)

    items = [item for s in REVIEWABLE_STATUSES for item in store.query_by_status(s, limit)]
    items.sort(key=lambda application: application.created_at, reverse=True)
    return items[:limit] if limit else items


def update_status(
    store: ApplicationStore,
    publisher: EventPublisher,
    application_id: str,
    actor: models.Actor,
    new_status: models.ApplicationStatus,
    notes: str | None = None,
    *,
    expected_status: models.ApplicationStatus | None = None,
) -> models.Application:
    """
    Move an application to a new status, record the change and publish a status-change event.

    The write is conditional on the status being the one that was read (or ``expected_status``, if given). If another
    writer changed it first, :exc:`~mortgage.exceptions.ConflictError` is raised, and the caller must reload and retry.

    The event is published after the write commits. If publishing fails, the application remains updated, the event
    remains in the outbox, and :exc:`~mortgage.exceptions.PublishError` is raised.

    :param expected_status: The status that the caller last saw.
    :return: The updated application.
    :raises NotFoundError: If the application doesn't exist.
    :raises ForbiddenError: If the actor is neither the owner nor a loan officer or administrator, or if the actor is
                            the owner and the new status requires an elevated role.
    :raises InvalidTransitionError: If the new status isn't reachable from the current status.
    :raises ConflictError: If the status changed since it was read.
    :raises PublishError: If the event couldn't be published.
    """
    application = _get_accessible(store, application_id, actor)
    previous_status = application.status

    if expected_status is not None and expected_status != previous_status:
        raise ConflictError(f"Application {application_id} is {previous_status}, not {expected_status}")

    if not models.is_valid_transition(previous_status, new_status):
        logger.warning("Invalid status transition of %s from %s to %s", application_id, previous_status, new_status)
        raise InvalidTransitionError(previous_status, new_status)

    if new_status not in models.BORROWER_REQUESTABLE_STATUSES and not actor.is_elevated:
        logger.warning("%s may not move %s to %s", actor.user_id, application_id, new_status)
        raise ForbiddenError(f"Only loan officers and administrators may move an application to {new_status}")

    updated, event = store.transition(application, new_status, notes=notes, changed_by=actor.user_id)
    logger.info(
        "Application %s status changed from %s to %s by %s", application_id, previous_status, new_status, actor.user_id
    )

    publisher.publish(event)

    try:
        store.delete_event(event)
    except ClientError:
        # republish-events publishes it again.
        logger.exception("Failed to clear outbox entry for %s", application_id)

    return updated
