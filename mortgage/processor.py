"""
Status-specific side work, run asynchronously for each status-change event.

Events are published to EventBridge by :func:`mortgage.workflow.update_status`, and a rule forwards them to an SQS
queue. Each SQS message body is the EventBridge envelope, whose ``detail`` is a
:class:`~mortgage.models.StatusChangeEvent`.

Delivery is at-least-once, and there is no idempotency key: a redelivered message runs its dispatch again.
"""

import json
import logging
import random
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel

from mortgage import models
from mortgage.exceptions import NotFoundError, ProcessorError
from mortgage.store import ApplicationStore

logger = logging.getLogger(__name__)

CREDIT_SCORE_MIN = 600
CREDIT_SCORE_MAX = 850


class PreValidationChecks(BaseModel):
    income_positive: bool
    loan_amount_positive: bool
    down_payment_valid: bool
    borrower_info_complete: bool


class PreValidationResult(BaseModel):
    passed: bool
    checks: PreValidationChecks


class CreditCheckResult(BaseModel):
    score: int
    rating: Literal["excellent", "good", "fair", "poor"]


def pre_validate(application: models.Application) -> PreValidationResult:
    """Check the borrower and property figures of a submitted application. Never raises on bad data."""
    borrower = application.borrower_info
    loan = application.property_info
    checks = PreValidationChecks(
        income_positive=borrower.annual_income > 0,
        loan_amount_positive=loan.loan_amount > 0,
        down_payment_valid=0 <= loan.down_payment_percentage <= 100,
        borrower_info_complete=all((borrower.first_name, borrower.last_name, borrower.email)),
    )
    return PreValidationResult(passed=all(checks.model_dump().values()), checks=checks)


def rate(score: int) -> Literal["excellent", "good", "fair", "poor"]:
    if score >= 750:
        return "excellent"
    if score >= 700:
        return "good"
    if score >= 650:
        return "fair"
    return "poor"


def credit_check(rng: random.Random | None = None) -> CreditCheckResult:
    """Simulate a credit bureau: draw a score between 600 and 850, inclusive, and rate it."""
    score = (rng or random).randint(CREDIT_SCORE_MIN, CREDIT_SCORE_MAX)  # noqa: S311 # simulation
    return CreditCheckResult(score=score, rating=rate(score))


def parse_event(body: str) -> models.StatusChangeEvent:
    return models.StatusChangeEvent.model_validate(json.loads(body)["detail"])


def process_event(
    event: models.StatusChangeEvent, store: ApplicationStore, rng: random.Random | None = None
) -> BaseModel | None:
    """
    Run the side work for the event's new status.

    :return: The result of the side work, if any.
    :raises NotFoundError: If the application doesn't exist.
    """
    correlation_id = event.application_id
    logger.info("Processing %s → %s for %s", event.previous_status, event.new_status, correlation_id)

    application = store.get(event.application_id)
    if application is None:
        raise NotFoundError(f"Application {event.application_id} not found")

    result: BaseModel | None = None
    match event.new_status:
        case models.ApplicationStatus.SUBMITTED:
            result = pre_validate(application)
            logger.info("Pre-validation of %s completed: %s", correlation_id, result.model_dump())
        case models.ApplicationStatus.UNDER_REVIEW:
            result = credit_check(rng)
            logger.info("Credit check of %s completed: %s", correlation_id, result.model_dump())
        case models.ApplicationStatus.APPROVED:
            logger.info(
                "Application %s of %s approved, ready for closing at %s",
                correlation_id,
                event.user_id,
                models.isoformat(models.utcnow()),
            )
        case _:
            logger.info("No processing required for %s in %s", correlation_id, event.new_status)
    return result


def process_batch(
    records: Iterable[dict[str, Any]], store: ApplicationStore, rng: random.Random | None = None
) -> int:
    """
    Process a batch of SQS records.

    Every record is attempted. Failures are logged and, after the batch, reported together, so that the queue's
    redelivery and dead-letter policy applies.

    :return: The number of records processed.
    :raises ProcessorError: If any record failed.
    """
    failures: list[tuple[str, Exception]] = []
    count = 0
    for record in records:
        count += 1
        message_id = record.get("messageId") or record.get("MessageId", "")
        body = record.get("body") or record.get("Body", "")
        try:
            process_event(parse_event(body), store, rng)
        except Exception as e:
            logger.exception("Failed to process record %s", message_id)
            failures.append((message_id, e))

    if failures:
        raise ProcessorError(failures)

    logger.info("Processed %d records", count)
    return count
