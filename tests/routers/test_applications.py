from decimal import Decimal

import pytest
from fastapi import status

from tests import application_payload, assert_ok, bearer

OWNER = bearer("borrower-1")
STRANGER = bearer("borrower-2")
OFFICER = bearer("officer-1", "LoanOfficers")
ADMIN = bearer("admin-1", "Admins")


def create(client, headers=OWNER):
    response = client.post("/applications", json=application_payload(), headers=headers)
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert_ok(response)
    assert response.json()["status"] == "healthy"
    assert response.json()["environment"] == "local"
    assert response.json()["version"] == "1.0.0"


def test_meta(client):
    response = client.get("/meta")

    assert_ok(response)
    assert response.json()["transitions"]["DRAFT"] == ["SUBMITTED", "WITHDRAWN"]
    assert response.json()["transitions"]["APPROVED"] == []


def test_unauthenticated(client):
    response = client.get("/applications")

    assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)


def test_create(client):
    application = create(client)

    assert application["status"] == "DRAFT"
    assert application["user_id"] == "borrower-1"
    assert application["created_at"] == application["updated_at"]
    assert Decimal(application["borrower_info"]["annual_income"]) == 95000


def test_create_invalid(client):
    response = client.post("/applications", json=application_payload(annual_income=0), headers=OWNER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    response = client.post("/applications", json=application_payload(email="not-an-email"), headers=OWNER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.parametrize(
    ("section", "field", "value"),
    [
        ("borrower_info", "first_name", "J" * 51),
        ("borrower_info", "phone", "not-a-phone!"),
        ("borrower_info", "ssn_last4", "abcd"),
        ("borrower_info", "ssn_last4", "12345"),
        ("borrower_info", "annual_income", 100_000_001),
        ("borrower_info", "employment_status", "whatever"),
        ("borrower_info", "employer", ""),
        ("property_info", "address", "1 Main Street " * 20),
        ("property_info", "type", "castle"),
        ("property_info", "estimated_value", 100_000_001),
        ("property_info", "loan_amount", 100_000_001),
        ("property_info", "loan_type", "anything"),
        ("property_info", "down_payment_percentage", 101),
    ],
)
def test_create_out_of_range(client, section, field, value):
    payload = application_payload()
    payload[section][field] = value

    response = client.post("/applications", json=payload, headers=OWNER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"][0]["loc"] == ["body", section, field]

    response = client.get("/applications", headers=OWNER)

    assert response.json()["count"] == 0


def test_create_notes_length(client):
    response = client.post("/applications", json={**application_payload(), "notes": "x" * 1001}, headers=OWNER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    payload = application_payload(phone="(555) 555-0100", employment_status="self_employed")
    payload["property_info"].update(type="condo", loan_type="fha", estimated_value=100_000_000)

    response = client.post("/applications", json={**payload, "notes": "x" * 1000}, headers=OWNER)

    assert response.status_code == status.HTTP_201_CREATED, response.json()
    assert response.json()["borrower_info"]["employment_status"] == "self_employed"
    assert response.json()["property_info"]["loan_type"] == "fha"


def test_get(client):
    application_id = create(client)["application_id"]

    response = client.get(f"/applications/{application_id}", headers=OWNER)

    assert_ok(response)
    assert response.json()["application"]["application_id"] == application_id
    assert response.json()["allowed_transitions"] == ["SUBMITTED", "WITHDRAWN"]

    response = client.get(f"/applications/{application_id}", headers=OFFICER)

    assert_ok(response)

    response = client.get(f"/applications/{application_id}", headers=STRANGER)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"detail": "Access denied"}

    response = client.get("/applications/missing", headers=OWNER)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"detail": "Application not found"}


def test_update_status(client):
    application_id = create(client)["application_id"]
    url = f"/applications/{application_id}/status"

    response = client.put(url, json={"status": "APPROVED"}, headers=OFFICER)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"detail": "Invalid status transition from DRAFT to APPROVED"}

    response = client.put(url, json={"status": "SUBMITTED", "notes": "Ready"}, headers=OWNER)

    assert_ok(response)
    assert response.json()["status"] == "SUBMITTED"
    assert response.json()["notes"] == "Ready"

    response = client.put(url, json={"status": "UNDER_REVIEW"}, headers=OWNER)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {
        "detail": "Only loan officers and administrators may move an application to UNDER_REVIEW"
    }

    response = client.put(url, json={"status": "UNDER_REVIEW"}, headers=OFFICER)

    assert_ok(response)

    response = client.put(url, json={"status": "APPROVED"}, headers=ADMIN)

    assert_ok(response)
    assert response.json()["status"] == "APPROVED"

    response = client.put(url, json={"status": "WITHDRAWN"}, headers=OWNER)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"detail": "Invalid status transition from APPROVED to WITHDRAWN"}

    response = client.get(f"/applications/{application_id}", headers=OWNER)

    assert response.json()["allowed_transitions"] == []

    response = client.get(f"/applications/{application_id}/history", headers=OWNER)

    assert_ok(response)
    assert [(entry["previous_status"], entry["new_status"]) for entry in response.json()] == [
        ("DRAFT", "SUBMITTED"),
        ("SUBMITTED", "UNDER_REVIEW"),
        ("UNDER_REVIEW", "APPROVED"),
    ]
    assert [entry["changed_by"] for entry in response.json()] == ["borrower-1", "officer-1", "admin-1"]


def test_update_status_invalid(client):
    application_id = create(client)["application_id"]

    response = client.put(f"/applications/{application_id}/status", json={"status": "ARCHIVED"}, headers=OWNER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    response = client.put(
        f"/applications/{application_id}/status", json={"status": "SUBMITTED", "notes": "x" * 1001}, headers=OWNER
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    response = client.put(f"/applications/{application_id}/status", json={"status": "SUBMITTED"}, headers=STRANGER)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_history_forbidden(client):
    application_id = create(client)["application_id"]

    response = client.get(f"/applications/{application_id}/history", headers=STRANGER)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_list(client):
    draft_id = create(client)["application_id"]
    submitted_id = create(client)["application_id"]
    other_id = create(client, STRANGER)["application_id"]
    client.put(f"/applications/{submitted_id}/status", json={"status": "SUBMITTED"}, headers=OWNER)

    response = client.get("/applications", headers=OWNER)

    assert_ok(response)
    assert response.json()["count"] == 2
    assert {item["application_id"] for item in response.json()["items"]} == {draft_id, submitted_id}

    response = client.get("/applications", headers=STRANGER)

    assert [item["application_id"] for item in response.json()["items"]] == [other_id]

    response = client.get("/applications", headers=OFFICER)

    assert [item["application_id"] for item in response.json()["items"]] == [submitted_id]

    response = client.get("/applications", params={"status": "DRAFT"}, headers=OFFICER)

    assert {item["application_id"] for item in response.json()["items"]} == {draft_id, other_id}

    response = client.get("/applications", params={"status": "DRAFT", "limit": 1}, headers=OFFICER)

    assert response.json()["count"] == 1

    response = client.get("/applications", params={"limit": 0}, headers=OFFICER)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
