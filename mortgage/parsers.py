from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from mortgage.models import (
    ApplicationStatus,
    BorrowerInfo,
    EmploymentStatus,
    LoanType,
    PropertyInfo,
    PropertyType,
)

MAX_AMOUNT = 100_000_000
MAX_NOTES_LENGTH = 1000


class BorrowerInfoInput(BorrowerInfo):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    phone: str = Field(min_length=10, pattern=r"^[\d\s\-()]+$")
    ssn_last4: str = Field(pattern=r"^\d{4}$")
    annual_income: Decimal = Field(gt=0, le=MAX_AMOUNT)
    employment_status: EmploymentStatus
    employer: str = Field(min_length=1, max_length=100)


class PropertyInfoInput(PropertyInfo):
    address: str = Field(min_length=5, max_length=200)
    type: PropertyType
    estimated_value: Decimal = Field(gt=0, le=MAX_AMOUNT)
    loan_amount: Decimal = Field(gt=0, le=MAX_AMOUNT)
    loan_type: LoanType
    down_payment_percentage: Decimal = Field(ge=0, le=100)


class ApplicationCreate(BaseModel):
    # The owner is the authenticated user, never a field of the body.
    borrower_info: BorrowerInfoInput
    property_info: PropertyInfoInput
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)


class StatusUpdate(BaseModel):
    status: ApplicationStatus
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)


class StatusChangeWebhook(BaseModel):
    application_id: UUID
    external_status: str
    provider: str
    timestamp: str
