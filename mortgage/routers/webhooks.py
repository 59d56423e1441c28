import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from mortgage import dependencies, models, parsers, serializers, util, workflow
from mortgage.events import EventPublisher
from mortgage.store import ApplicationStore

logger = logging.getLogger(__name__)

router = APIRouter()

#: The statuses of external providers, and the corresponding application statuses.
EXTERNAL_STATUS_MAP = {
    "pending_review": models.ApplicationStatus.UNDER_REVIEW,
    "documents_needed": models.ApplicationStatus.DOCUMENTS_REQUESTED,
    "approved": models.ApplicationStatus.APPROVED,
    "rejected": models.ApplicationStatus.DENIED,
    "cancelled": models.ApplicationStatus.WITHDRAWN,
}


@router.post(
    "/webhooks/status-change",
    tags=[util.Tags.webhooks],
    response_model=serializers.WebhookResponse,
)
async def status_change_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
    store: ApplicationStore = Depends(dependencies.get_store),
    publisher: EventPublisher = Depends(dependencies.get_publisher),
) -> Any:
    """
    Receive a status change from an external provider (for example, an underwriting service).

    The ``X-Webhook-Signature`` header must be the hex HMAC-SHA256 of the body, keyed with the shared secret.

    The change is subject to the same transition rules as changes made by loan officers.
    """
    if not x_webhook_signature:
        logger.warning("Missing webhook signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")

    raw_body = await request.body()
    if not util.is_valid_signature(raw_body, x_webhook_signature):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = parsers.StatusChangeWebhook.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning("Webhook validation failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Validation failed")

    application_id = str(payload.application_id)
    logger.info("Processing webhook from %s for %s: %s", payload.provider, application_id, payload.external_status)

    new_status = EXTERNAL_STATUS_MAP.get(payload.external_status)
    if new_status is None:
        logger.warning("Unknown external status: %s", payload.external_status)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown external status: {payload.external_status}",
        )

    actor = models.Actor(user_id=f"webhook:{payload.provider}", role=models.ActorRole.ADMIN)
    workflow.update_status(
        store, publisher, application_id, actor, new_status, f"Updated via webhook from {payload.provider}"
    )
    return serializers.WebhookResponse()
