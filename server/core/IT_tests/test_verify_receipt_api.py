import pytest
from fastapi.testclient import TestClient

from receipt_fixtures import BUNDLE_ID, SHARED_SECRET, AppleStub, apple_reply
from server.app.api.v1.endpoints.verify_receipt_api import get_receipt_verification_service
from server.core.service.receipt_verification.receipt_verification_service import ReceiptVerificationService
from server.core.service.receipt_verification.verifier_client import AppleVerifierClient
from server.main import app


@pytest.fixture
def client(ledger):
    stub = AppleStub(apple_reply())
    service = ReceiptVerificationService(
        client=AppleVerifierClient(http_client=stub.client()),
        ledger=ledger,
        shared_secret=SHARED_SECRET,
        bundle_id=BUNDLE_ID,
    )
    app.dependency_overrides[get_receipt_verification_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestVerifyReceiptApi:
    """Test suite for the receipt verification endpoint."""

    def test_verify_then_duplicate(self, client):
        body = {"uid": "user-1", "receipt_data": "cmVjZWlwdA=="}

        first = client.post("/api/v1/receipt/verify", json=body)
        second = client.post("/api/v1/receipt/verify", json=body)

        assert first.status_code == 200
        assert first.json() == {"code": 200, "message": ""}
        assert second.status_code == 200
        assert second.json() == {"code": 400, "message": "This receipt is already redeemed"}

    def test_missing_uid_is_rejected(self, client):
        response = client.post("/api/v1/receipt/verify", json={"receipt_data": "cmVjZWlwdA=="})
        assert response.status_code == 422

    def test_empty_receipt_is_rejected(self, client):
        response = client.post("/api/v1/receipt/verify", json={"uid": "user-1", "receipt_data": ""})
        assert response.status_code == 422

    def test_health(self, client):
        response = client.get("/api/v1/health/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
