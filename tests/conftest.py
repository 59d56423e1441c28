import os
from typing import Any, Generator

import moto
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mortgage import aws, dependencies, main, models, workflow
from mortgage.events import EventPublisher
from mortgage.parsers import ApplicationCreate
from mortgage.settings import app_settings
from mortgage.store import ApplicationStore, create_table
from tests import application_payload


# http://docs.getmoto.org/en/latest/docs/getting_started.html#example-on-usage
@pytest.fixture(autouse=True, scope="session")
def aws_credentials():
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


# Setting scope="session" causes test failures, because applications created by one test exist in the next.
@pytest.fixture(autouse=True)
def mock_aws_fixture():
    with moto.mock_aws():
        yield


# Accept mock bearer tokens.
@pytest.fixture(autouse=True)
def local_environment(monkeypatch):
    monkeypatch.setattr(app_settings, "environment", "local")
    monkeypatch.setattr(app_settings, "aws_endpoint_url", "")
    monkeypatch.setattr(app_settings, "queue_url", "")


@pytest.fixture
def aws_client() -> aws.Client:
    client = aws.Client.from_settings()
    create_table(client.table)
    client.events.create_event_bus(Name=app_settings.event_bus_name)
    return client


@pytest.fixture
def store(aws_client):
    return ApplicationStore(aws_client.table)


@pytest.fixture
def publisher(aws_client):
    return EventPublisher(aws_client.events)


@pytest.fixture
def owner():
    return models.Actor(user_id="borrower-1", email="borrower-1@example.com")


@pytest.fixture
def stranger():
    return models.Actor(user_id="borrower-2", email="borrower-2@example.com")


@pytest.fixture
def officer():
    return models.Actor(user_id="officer-1", role=models.ActorRole.LOAN_OFFICER)


@pytest.fixture
def draft_application(store, owner):
    return workflow.create_application(store, owner, ApplicationCreate.model_validate(application_payload()))


@pytest.fixture
def submitted_application(store, publisher, owner, draft_application):
    return workflow.update_status(
        store, publisher, draft_application.application_id, owner, models.ApplicationStatus.SUBMITTED
    )


@pytest.fixture
def under_review_application(store, publisher, officer, submitted_application):
    return workflow.update_status(
        store, publisher, submitted_application.application_id, officer, models.ApplicationStatus.UNDER_REVIEW
    )


@pytest.fixture
def approved_application(store, publisher, officer, under_review_application):
    return workflow.update_status(
        store, publisher, under_review_application.application_id, officer, models.ApplicationStatus.APPROVED
    )


@pytest.fixture(scope="session")
def app() -> Generator[FastAPI, Any, None]:
    yield main.app


@pytest.fixture
def client(app: FastAPI, aws_client) -> Generator[TestClient, Any, None]:
    def _get_test_aws_client():
        yield aws_client

    app.dependency_overrides[dependencies.get_aws_client] = _get_test_aws_client

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
