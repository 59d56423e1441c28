from typing import Generator

from fastapi import Depends, Request

from mortgage import auth, aws, models
from mortgage.events import EventPublisher
from mortgage.store import ApplicationStore

jwt_authorization = auth.JWTAuthorization()


def get_aws_client() -> Generator[aws.Client, None, None]:
    yield aws.Client.from_settings()


def get_store(client: aws.Client = Depends(get_aws_client)) -> ApplicationStore:
    return ApplicationStore(client.table)


def get_publisher(client: aws.Client = Depends(get_aws_client)) -> EventPublisher:
    return EventPublisher(client.events)


async def get_auth_credentials(request: Request) -> auth.JWTAuthorizationCredentials:
    return await jwt_authorization(request)


async def get_actor(
    credentials: auth.JWTAuthorizationCredentials = Depends(get_auth_credentials),
) -> models.Actor:
    """
    Resolve the caller from the verified claims.

    :raises HTTPException: If the ``sub`` claim is missing.
    """
    return auth.resolve_actor(credentials.claims)
