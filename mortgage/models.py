from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    """
    Format a timestamp for storage.

    The fixed width keeps lexicographic order equal to chronological order, which the ``STATUS#`` sort keys and the
    ``created_at`` range keys rely on.
    """
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def next_timestamp(previous: datetime) -> datetime:
    """Return the current time, or one microsecond after ``previous`` if the clock hasn't moved past it."""
    now = utcnow()
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class ApplicationStatus(StrEnum):
    """
    An application status.

    The different workflows are:

    -  DRAFT → WITHDRAWN
    -  DRAFT → SUBMITTED → WITHDRAWN
    -  DRAFT → SUBMITTED → UNDER_REVIEW (→ …)
    -  DRAFT → SUBMITTED → DOCUMENTS_REQUESTED (→ …)

    And then, from UNDER_REVIEW:

    -  → DOCUMENTS_REQUESTED → UNDER_REVIEW (→ …)
    -  → DOCUMENTS_REQUESTED → WITHDRAWN
    -  → APPROVED
    -  → DENIED
    """

    #: Borrower is filling in the form.
    #:
    #: (``POST /applications``)
    DRAFT = "DRAFT"
    #: Borrower submits the application.
    SUBMITTED = "SUBMITTED"
    #: Loan officer starts reviewing the application. A simulated credit check runs.
    UNDER_REVIEW = "UNDER_REVIEW"
    #: Loan officer asks the borrower for more documents.
    DOCUMENTS_REQUESTED = "DOCUMENTS_REQUESTED"
    #: Loan officer approves the application.
    APPROVED = "APPROVED"
    #: Loan officer denies the application.
    DENIED = "DENIED"
    #: Borrower withdraws the application.
    WITHDRAWN = "WITHDRAWN"


#: The statuses to which each status may move. APPROVED, DENIED and WITHDRAWN are terminal.
VALID_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.WITHDRAWN}),
    ApplicationStatus.SUBMITTED: frozenset(
        {
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.DOCUMENTS_REQUESTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.UNDER_REVIEW: frozenset(
        {
            ApplicationStatus.DOCUMENTS_REQUESTED,
            ApplicationStatus.APPROVED,
            ApplicationStatus.DENIED,
        }
    ),
    ApplicationStatus.DOCUMENTS_REQUESTED: frozenset({ApplicationStatus.UNDER_REVIEW, ApplicationStatus.WITHDRAWN}),
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.DENIED: frozenset(),
    ApplicationStatus.WITHDRAWN: frozenset(),
}

#: The statuses that the owning borrower may request. Every other target requires an elevated role.
BORROWER_REQUESTABLE_STATUSES = frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.WITHDRAWN})


def allowed_transitions(current: str) -> frozenset[ApplicationStatus]:
    return VALID_TRANSITIONS.get(current, frozenset())  # type: ignore[call-overload]


def is_valid_transition(current: str, target: str) -> bool:
    """
    Return whether an application may move from ``current`` to ``target``.

    Unknown values are never valid, and neither is staying in the same status.
    """
    return target in allowed_transitions(current)


def is_terminal(status: str) -> bool:
    return status in VALID_TRANSITIONS and not VALID_TRANSITIONS[status]  # type: ignore[index]


class ActorRole(StrEnum):
    #: Borrowers can create applications, and submit or withdraw their own.
    BORROWER = "borrower"
    #: Loan officers can read every submitted application and review it.
    LOAN_OFFICER = "loan_officer"
    #: Administrators have the same access as loan officers.
    ADMIN = "admin"


class Actor(BaseModel):
    """The authenticated caller, resolved once from the identity provider's claims."""

    user_id: str
    email: str = ""
    role: ActorRole = ActorRole.BORROWER

    @property
    def is_elevated(self) -> bool:
        return self.role in (ActorRole.LOAN_OFFICER, ActorRole.ADMIN)


class EmploymentStatus(StrEnum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    RETIRED = "retired"
    UNEMPLOYED = "unemployed"
    STUDENT = "student"


class PropertyType(StrEnum):
    SINGLE_FAMILY = "single_family"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    MULTI_FAMILY = "multi_family"
    MANUFACTURED = "manufactured"


class LoanType(StrEnum):
    CONVENTIONAL = "conventional"
    FHA = "fha"
    VA = "va"
    USDA = "usda"
    JUMBO = "jumbo"


# Stored records are unconstrained. Request bodies are validated by mortgage.parsers.
class BorrowerInfo(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    #: The last 4 digits of the borrower's social security number.
    ssn_last4: str
    annual_income: Decimal
    employment_status: str
    employer: str


class PropertyInfo(BaseModel):
    address: str
    #: A :class:`PropertyType` value.
    type: str
    estimated_value: Decimal
    loan_amount: Decimal
    #: A :class:`LoanType` value.
    loan_type: str
    down_payment_percentage: Decimal


class Application(BaseModel):
    """
    A mortgage application.

    Its ``status`` changes only through :func:`mortgage.workflow.update_status`.
    """

    application_id: str
    #: The Cognito ``sub`` of the borrower who owns the application.
    user_id: str
    status: ApplicationStatus = ApplicationStatus.DRAFT
    borrower_info: BorrowerInfo
    property_info: PropertyInfo
    created_at: datetime
    updated_at: datetime
    notes: str | None = None


class StatusHistoryEntry(BaseModel):
    """An immutable record of one status change."""

    previous_status: ApplicationStatus
    new_status: ApplicationStatus
    timestamp: datetime
    notes: str | None = None
    #: The user ID of the actor who requested the change.
    changed_by: str = ""


class StatusChangeEvent(BaseModel):
    """The detail of an ``ApplicationStatusChanged`` event."""

    application_id: str
    previous_status: ApplicationStatus
    new_status: ApplicationStatus
    #: The owner of the application, not the actor.
    user_id: str
    timestamp: datetime = Field(default_factory=utcnow)
