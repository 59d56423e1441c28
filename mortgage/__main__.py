import json
from decimal import Decimal

import click
import typer.cli
from rich.console import Console
from rich.table import Table

from mortgage import aws, events, models, parsers, processor, workflow
from mortgage.exceptions import ProcessorError
from mortgage.settings import app_settings
from mortgage.store import ApplicationStore, create_table

state = {"quiet": False}

S = models.ApplicationStatus

#: The status paths of the sample applications created by the seed command.
SEED_PATHS: list[list[models.ApplicationStatus]] = [
    [],
    [S.SUBMITTED],
    [S.SUBMITTED, S.UNDER_REVIEW],
    [S.SUBMITTED, S.UNDER_REVIEW, S.DOCUMENTS_REQUESTED],
    [S.SUBMITTED, S.UNDER_REVIEW, S.APPROVED],
    [S.SUBMITTED, S.UNDER_REVIEW, S.DENIED],
    [S.SUBMITTED, S.WITHDRAWN],
]


class OrderedGroup(typer.cli.TyperCLIGroup):
    # https://github.com/fastapi/typer/blob/adca3254f8c2adc8d9b71b5cdea65c41770bd9b9/typer/cli.py#L55-L57
    # https://github.com/pallets/click/blob/e16088a8569597c55f108ea89af6245898249ec2/src/click/core.py#L1684-L1686
    def list_commands(self, ctx: click.Context) -> list[str]:
        self.maybe_add_run(ctx)
        return list(self.commands)


console = Console()
app = typer.Typer(cls=OrderedGroup)


def _echo(message: str) -> None:
    if not state["quiet"]:
        print(message)


def _sample_application(index: int) -> parsers.ApplicationCreate:
    return parsers.ApplicationCreate(
        borrower_info=parsers.BorrowerInfoInput(
            first_name="Sample",
            last_name=f"Borrower {index}",
            email=f"borrower{index}@example.com",
            phone="5555550100",
            ssn_last4=f"{1000 + index}",
            annual_income=Decimal(85000 + 5000 * index),
            employment_status=models.EmploymentStatus.EMPLOYED,
            employer="Example Co",
        ),
        property_info=parsers.PropertyInfoInput(
            address=f"{100 + index} Main Street, Springfield",
            type=models.PropertyType.SINGLE_FAMILY,
            estimated_value=Decimal(400000),
            loan_amount=Decimal(320000),
            loan_type=models.LoanType.CONVENTIONAL,
            down_payment_percentage=Decimal(20),
        ),
    )


@app.command()
def create_resources() -> None:
    """
    Create the DynamoDB table, the EventBridge bus, the SQS queue and its dead-letter queue, and the rule that
    forwards status-change events to the queue.

    Intended for LocalStack and moto. Set QUEUE_URL to the printed queue URL.
    """
    client = aws.Client.from_settings()

    create_table(client.table)

    bus_arn = client.events.create_event_bus(Name=app_settings.event_bus_name)["EventBusArn"]

    dlq_url = client.sqs.create_queue(QueueName=f"{app_settings.dynamodb_table}-dlq")["QueueUrl"]
    dlq_arn = client.sqs.get_queue_attributes(QueueUrl=dlq_url, AttributeNames=["QueueArn"])["Attributes"]["QueueArn"]
    queue_url = client.sqs.create_queue(
        QueueName=f"{app_settings.dynamodb_table}-status-changes",
        Attributes={
            "RedrivePolicy": json.dumps({"deadLetterTargetArn": dlq_arn, "maxReceiveCount": "3"}),
            "VisibilityTimeout": "60",
        },
    )["QueueUrl"]
    queue_arn = client.sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["QueueArn"])["Attributes"][
        "QueueArn"
    ]

    rule_arn = client.events.put_rule(
        Name="application-status-changed",
        EventBusName=app_settings.event_bus_name,
        EventPattern=json.dumps({"source": [app_settings.event_source], "detail-type": [events.DETAIL_TYPE]}),
        State="ENABLED",
    )["RuleArn"]
    client.events.put_targets(
        Rule="application-status-changed",
        EventBusName=app_settings.event_bus_name,
        Targets=[{"Id": "status-changes-queue", "Arn": queue_arn}],
    )
    client.sqs.set_queue_attributes(
        QueueUrl=queue_url,
        Attributes={
            "Policy": json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": {"Service": "events.amazonaws.com"},
                            "Action": "sqs:SendMessage",
                            "Resource": queue_arn,
                            "Condition": {"ArnEquals": {"aws:SourceArn": rule_arn}},
                        }
                    ],
                }
            )
        },
    )

    if not state["quiet"]:
        table = Table("Resource", "Identifier")
        table.add_row("Table", client.table.name)
        table.add_row("Event bus", bus_arn)
        table.add_row("Rule", rule_arn)
        table.add_row("Queue", queue_url)
        table.add_row("Dead-letter queue", dlq_url)
        console.print(table)


@app.command()
def seed(users: int = typer.Option(2, min=1, help="Number of borrowers")) -> None:
    """
    Create sample applications in every status, for each of a number of borrowers.

    Status changes are made by a seed administrator, and published like any other status change.
    """
    client = aws.Client.from_settings()
    store = ApplicationStore(client.table)
    publisher = events.EventPublisher(client.events)
    admin = models.Actor(user_id="seed-admin", role=models.ActorRole.ADMIN)

    count = 0
    for user in range(users):
        borrower = models.Actor(user_id=f"seed-borrower-{user}", email=f"borrower{user}@example.com")
        for index, path in enumerate(SEED_PATHS):
            application = workflow.create_application(store, borrower, _sample_application(index))
            for new_status in path:
                workflow.update_status(store, publisher, application.application_id, admin, new_status, "Seeded")
            count += 1

    _echo(f"Created {count} applications")


@app.command()
def consume(
    *,
    forever: bool = typer.Option(False, "--forever", help="Poll until interrupted"),  # noqa: FBT003 # false positive
    wait: int = typer.Option(20, min=0, max=20, help="Long-polling wait, in seconds"),
) -> None:
    """
    Receive status-change messages from the queue, run their side work, and delete the messages that succeeded.

    Failed messages are left on the queue, to be received again or moved to the dead-letter queue.
    """
    if not app_settings.queue_url:
        raise click.UsageError("QUEUE_URL must be set.")

    client = aws.Client.from_settings()
    store = ApplicationStore(client.table)

    total = failed = 0
    while True:
        messages = client.sqs.receive_message(
            QueueUrl=app_settings.queue_url, MaxNumberOfMessages=10, WaitTimeSeconds=wait
        ).get("Messages", [])

        failures: set[str] = set()
        try:
            processor.process_batch(messages, store)
        except ProcessorError as e:
            failures = {message_id for message_id, _ in e.failures}

        for message in messages:
            if message["MessageId"] in failures:
                continue
            client.sqs.delete_message(QueueUrl=app_settings.queue_url, ReceiptHandle=message["ReceiptHandle"])

        total += len(messages) - len(failures)
        failed += len(failures)

        if not forever:
            break

    _echo(f"Processed {total} messages ({failed} failed)")


@app.command()
def republish_events() -> None:
    """
    Publish the status-change events left in the outbox, because publishing failed after the status change.
    """
    client = aws.Client.from_settings()
    published, failed = events.republish_pending(ApplicationStore(client.table), events.EventPublisher(client.events))

    _echo(f"Published {published} events ({failed} failed)")
    if failed:
        raise typer.Exit(code=1)


# https://typer.tiangolo.com/tutorial/commands/callback/
@app.callback()
def cli(*, quiet: bool = typer.Option(False, "--quiet", "-q")) -> None:  # noqa: FBT003 # false positive
    if quiet:
        state["quiet"] = True


if __name__ == "__main__":
    app()
