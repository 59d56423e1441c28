from typing import Any

from fastapi import APIRouter

from mortgage import models, serializers, util
from mortgage.settings import app_settings

router = APIRouter()


@router.get(
    "/health",
    tags=[util.Tags.meta],
    response_model=serializers.HealthResponse,
)
async def health() -> Any:
    return serializers.HealthResponse(
        status="healthy",
        timestamp=models.isoformat(models.utcnow()),
        version=app_settings.version,
        environment=app_settings.environment,
    )


@router.get(
    "/meta",
    tags=[util.Tags.meta],
)
async def get_constants() -> dict[str, Any]:
    """
    Get the application statuses, and the statuses to which each may move.

    :return: A dict of constants.
    """
    return {
        "ApplicationStatus": [status.value for status in models.ApplicationStatus],
        "transitions": {
            status.value: sorted(target.value for target in models.allowed_transitions(status))
            for status in models.ApplicationStatus
        },
    }
