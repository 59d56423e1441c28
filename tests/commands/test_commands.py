import boto3
from typer.testing import CliRunner

from mortgage import __main__, aws, models, workflow
from mortgage.events import EventPublisher
from mortgage.parsers import ApplicationCreate
from mortgage.settings import app_settings
from mortgage.store import ApplicationStore
from tests import application_payload, assert_success

runner = CliRunner()

S = models.ApplicationStatus


def test_create_resources_and_consume(monkeypatch):
    result = runner.invoke(__main__.app, ["create-resources"])

    assert result.exit_code == 0, result.output

    sqs = boto3.client("sqs", region_name=app_settings.aws_region)
    queue_url = sqs.get_queue_url(QueueName=f"{app_settings.dynamodb_table}-status-changes")["QueueUrl"]
    monkeypatch.setattr(app_settings, "queue_url", queue_url)

    client = aws.Client.from_settings()
    store = ApplicationStore(client.table)
    owner = models.Actor(user_id="borrower-1")
    application = workflow.create_application(store, owner, ApplicationCreate.model_validate(application_payload()))
    workflow.update_status(store, EventPublisher(client.events), application.application_id, owner, S.SUBMITTED)

    result = runner.invoke(__main__.app, ["consume", "--wait", "0"])

    assert_success(result, "Processed 1 messages (0 failed)\n")

    result = runner.invoke(__main__.app, ["consume", "--wait", "0"])

    assert_success(result, "Processed 0 messages (0 failed)\n")


def test_consume_failure(monkeypatch, aws_client):
    queue_url = aws_client.sqs.create_queue(QueueName="test")["QueueUrl"]
    aws_client.sqs.send_message(QueueUrl=queue_url, MessageBody="not json")
    monkeypatch.setattr(app_settings, "queue_url", queue_url)

    result = runner.invoke(__main__.app, ["consume", "--wait", "0"])

    assert_success(result, "Processed 0 messages (1 failed)\n")


def test_consume_without_queue():
    result = runner.invoke(__main__.app, ["consume"])

    assert result.exit_code == 2
    assert "QUEUE_URL must be set." in result.output


def test_seed(store):
    result = runner.invoke(__main__.app, ["seed", "--users", "1"])

    assert_success(result, "Created 7 applications\n")

    applications = store.query_by_user("seed-borrower-0")
    assert sorted(application.status for application in applications) == sorted(S)
    assert store.pending_events() == []


def test_republish_events(store, draft_application):
    store.transition(draft_application, S.SUBMITTED)

    result = runner.invoke(__main__.app, ["republish-events"])

    assert_success(result, "Published 1 events (0 failed)\n")
    assert store.pending_events() == []

    result = runner.invoke(__main__.app, ["republish-events"])

    assert_success(result, "Published 0 events (0 failed)\n")


def test_help():
    result = runner.invoke(__main__.app, ["--help"])

    assert result.exit_code == 0, result.output
    positions = [result.output.index(name) for name in ("create-resources", "seed", "consume", "republish-events")]
    assert positions == sorted(positions)
    assert " dev " not in result.output

    result = runner.invoke(__main__.app, ["dev", "routes"])

    assert result.exit_code == 2
