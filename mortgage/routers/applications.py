from typing import Any

from fastapi import APIRouter, Depends, Query, status

from mortgage import dependencies, models, parsers, serializers, util, workflow
from mortgage.events import EventPublisher
from mortgage.store import ApplicationStore

router = APIRouter()


@router.post(
    "/applications",
    tags=[util.Tags.applications],
    response_model=models.Application,
    status_code=status.HTTP_201_CREATED,
)
async def create_application(
    payload: parsers.ApplicationCreate,
    store: ApplicationStore = Depends(dependencies.get_store),
    actor: models.Actor = Depends(dependencies.get_actor),
) -> Any:
    """
    Create an application, owned by the authenticated user.

    :param payload: The borrower and property information.
    :return: The DRAFT application.
    """
    return workflow.create_application(store, actor, payload)


@router.get(
    "/applications",
    tags=[util.Tags.applications],
    response_model=serializers.ApplicationListResponse,
)
async def list_applications(
    status: models.ApplicationStatus | None = None,
    limit: int | None = Query(default=None, ge=1, le=100),
    store: ApplicationStore = Depends(dependencies.get_store),
    actor: models.Actor = Depends(dependencies.get_actor),
) -> Any:
    """
    List applications, newest first.

    Borrowers get their own applications. Loan officers and administrators get the applications in ``status`` or,
    without it, every application that isn't a DRAFT.
    """
    items = workflow.list_applications(store, actor, status, limit)
    return serializers.ApplicationListResponse(items=items, count=len(items))


@router.get(
    "/applications/{application_id}",
    tags=[util.Tags.applications],
    response_model=serializers.ApplicationResponse,
)
async def get_application(
    application_id: str,
    store: ApplicationStore = Depends(dependencies.get_store),
    actor: models.Actor = Depends(dependencies.get_actor),
) -> Any:
    """
    Get an application, with the statuses to which it may move.
    """
    application = workflow.get_application(store, application_id, actor)
    return serializers.ApplicationResponse(
        application=application,
        allowed_transitions=sorted(models.allowed_transitions(application.status)),
    )


@router.get(
    "/applications/{application_id}/history",
    tags=[util.Tags.applications],
    response_model=list[models.StatusHistoryEntry],
)
async def get_application_history(
    application_id: str,
    store: ApplicationStore = Depends(dependencies.get_store),
    actor: models.Actor = Depends(dependencies.get_actor),
) -> Any:
    """
    Get an application's status history, oldest first.
    """
    return workflow.get_history(store, application_id, actor)


@router.put(
    "/applications/{application_id}/status",
    tags=[util.Tags.applications],
    response_model=models.Application,
)
async def update_application_status(
    application_id: str,
    payload: parsers.StatusUpdate,
    store: ApplicationStore = Depends(dependencies.get_store),
    publisher: EventPublisher = Depends(dependencies.get_publisher),
    actor: models.Actor = Depends(dependencies.get_actor),
) -> Any:
    """
    Change the status of an application.

    Borrowers can submit and withdraw their own applications. Loan officers and administrators can also review,
    request documents, approve and deny.

    :param payload: The new status, and optional notes.
    :return: The updated application.
    """
    return workflow.update_status(store, publisher, application_id, actor, payload.status, payload.notes)
