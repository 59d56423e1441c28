import base64
import json
from typing import Any

from fastapi import status


def mock_token(sub: str, *groups: str, email: str = "") -> str:
    claims: dict[str, Any] = {"sub": sub, "email": email or f"{sub}@example.com"}
    if groups:
        claims["cognito:groups"] = list(groups)
    return f"mock.{base64.b64encode(json.dumps(claims).encode()).decode()}.local"


def bearer(sub: str, *groups: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {mock_token(sub, *groups)}"}


def application_payload(**borrower: Any) -> dict[str, Any]:
    return {
        "borrower_info": {
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@example.com",
            "phone": "5555550100",
            "ssn_last4": "1234",
            "annual_income": 95000,
            "employment_status": "employed",
            "employer": "Example Co",
            **borrower,
        },
        "property_info": {
            "address": "123 Main Street, Springfield",
            "type": "single_family",
            "estimated_value": 450000,
            "loan_amount": 360000,
            "loan_type": "conventional",
            "down_payment_percentage": 20,
        },
    }


def assert_ok(response):
    assert response.status_code == status.HTTP_200_OK, f"{response.status_code}: {response.json()}"


def assert_success(result, output=""):
    assert result.exit_code == 0, result.output
    assert result.output == output
