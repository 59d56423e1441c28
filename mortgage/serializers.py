from pydantic import BaseModel

from mortgage import models


class ApplicationResponse(BaseModel):
    application: models.Application
    #: The statuses to which the application may move, for the frontend to offer.
    allowed_transitions: list[models.ApplicationStatus]


class ApplicationListResponse(BaseModel):
    items: list[models.Application]
    count: int


class WebhookResponse(BaseModel):
    received: bool = True


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
