import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from main import app
from models import TransactionStatus
from payloads import customer_body, initialize_body, virtual_account_body


def only_record(repo):
    records = list(repo.records.values())
    assert len(records) == 1
    return records[0]


class TestInitializePayment:
    """Test payment initialization."""

    def test_amount_converted_to_minor_units(self, client, provider, transaction_repo):
        """Test that the provider gets minor units and the store keeps major units."""
        provider.responses["/transaction/initialize"] = initialize_body("ref_123")

        response = client.post("/initialize-payment", json={"email": "ada@example.com", "amount": 50})

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": initialize_body("ref_123")["data"]}
        assert provider.calls == [
            ("/transaction/initialize", {"email": "ada@example.com", "amount": 5000})
        ]

        transaction = only_record(transaction_repo)
        assert transaction.reference == "ref_123"
        assert transaction.amount == 50
        assert transaction.authUrl == "https://checkout.paystack.com/ref_123"
        assert transaction.status == TransactionStatus.pending

    def test_defaults_when_body_missing(self, client, provider):
        """Test that configured demo values fill a missing body."""
        provider.responses["/transaction/initialize"] = initialize_body()

        response = client.post("/initialize-payment")

        assert response.status_code == 200
        assert provider.calls == [
            ("/transaction/initialize", {"email": "test@example.com", "amount": 100000})
        ]

    def test_empty_provider_payload(self, client, provider, transaction_repo):
        """Test that an empty provider payload gives 400 and stores nothing."""
        provider.responses["/transaction/initialize"] = {"status": False, "data": None}

        response = client.post("/initialize-payment", json={"amount": 10})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Unable to initialize payment"}
        assert transaction_repo.records == {}

    def test_provider_failure(self, client, failing_provider, transaction_repo):
        """Test that a provider failure gives 500 and stores nothing."""
        response = client.post("/initialize-payment", json={"amount": 10})

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to initialize payment"}
        assert transaction_repo.records == {}

    def test_negative_amount_rejected(self, client, provider):
        """Test that a negative amount is rejected before the provider is called."""
        response = client.post("/initialize-payment", json={"amount": -5})

        assert response.status_code == 422
        assert response.json()["success"] is False
        assert provider.calls == []

    @pytest.mark.parametrize("amount", ["nan", "inf", 1e308])
    def test_non_finite_or_huge_amount_rejected(self, client, provider, transaction_repo, amount):
        """Test that NaN, infinity and out-of-range amounts get 422, not a server error."""
        response = client.post("/initialize-payment", json={"amount": amount})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Invalid request body"
        assert body["errors"][0]["loc"] == ["body", "amount"]
        assert provider.calls == []
        assert transaction_repo.records == {}


class TestCreateCustomer:
    """Test customer creation."""

    def test_customer_recorded(self, client, provider, customer_repo):
        """Test that the provider customer is stored with a zero wallet."""
        provider.responses["/customer"] = customer_body("CUS_abc")

        response = client.post("/customer", json={"email": "ada@example.com", "firstName": "Ada"})

        assert response.status_code == 200
        assert response.json()["data"]["customer_code"] == "CUS_abc"
        path, payload = provider.calls[0]
        assert path == "/customer"
        assert payload["email"] == "ada@example.com"
        assert payload["first_name"] == "Ada"
        assert payload["last_name"] == "Customer"

        customer = only_record(customer_repo)
        assert customer.code == "CUS_abc"
        assert customer.email == "ada@example.com"
        assert customer.firstName == "Ada"
        assert customer.lastName == "Lovelace"
        assert customer.walletBalance == 0

    def test_same_customer_code_stored_once(self, client, provider, customer_repo):
        """Test that a repeated customer code does not add a second record."""
        provider.responses["/customer"] = customer_body("CUS_abc")

        first = client.post("/customer")
        second = client.post("/customer")

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(customer_repo.records) == 1

    def test_empty_provider_payload(self, client, provider, customer_repo):
        """Test that an empty provider payload gives 400 and stores nothing."""
        provider.responses["/customer"] = {"status": True, "data": {}}

        response = client.post("/customer")

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Unable to create customer"}
        assert customer_repo.records == {}

    def test_provider_failure(self, client, failing_provider):
        """Test that a provider failure gives a generic 500."""
        response = client.post("/customer")

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to create customer"


class TestCreateVirtualAccount:
    """Test dedicated virtual account creation."""

    def test_account_recorded(self, client, provider, account_repo):
        """Test that the provider account is stored under its customer code."""
        provider.responses["/dedicated_account"] = virtual_account_body("CUS_abc")

        response = client.post("/virtual-account", json={"customer": "CUS_abc", "preferredBank": "wema-bank"})

        assert response.status_code == 200
        assert provider.calls == [
            ("/dedicated_account", {"customer": "CUS_abc", "preferred_bank": "wema-bank"})
        ]

        account = only_record(account_repo)
        assert account.customerCode == "CUS_abc"
        assert account.bankName == "Test Bank"
        assert account.bankId == 24
        assert account.bankSlug == "test-bank"
        assert account.accountName == "Demo Customer"
        assert account.accountNumber == "1234567890"
        assert account.assigned is True
        assert account.currency == "NGN"
        assert account.metadata["id"] == 253

    def test_demo_defaults(self, client, provider):
        """Test that configured demo values fill a missing body."""
        provider.responses["/dedicated_account"] = virtual_account_body("CUS_demo")

        response = client.post("/virtual-account")

        assert response.status_code == 200
        assert provider.calls == [
            ("/dedicated_account", {"customer": "CUS_demo", "preferred_bank": "test-bank"})
        ]

    def test_same_customer_stored_once(self, client, provider, account_repo):
        """Test that a second account for one customer is not stored."""
        provider.responses["/dedicated_account"] = virtual_account_body("CUS_abc")

        client.post("/virtual-account")
        client.post("/virtual-account")

        assert len(account_repo.records) == 1

    def test_empty_provider_payload(self, client, provider):
        """Test that an empty provider payload gives 400."""
        response = client.post("/virtual-account")

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Unable to create virtual account"}


class TestUtilityEndpoints:
    """Test liveness, health, demo and fallback routes."""

    def test_root(self, client):
        """Test the liveness message."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "API is Live!"}

    def test_health_counts(self, client, provider):
        """Test that health reports stored record counts."""
        provider.responses["/customer"] = customer_body()
        client.post("/customer")

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["customers_count"] == 1
        assert data["transactions_count"] == 0
        assert data["accounts_count"] == 0

    def test_demo_api(self, client):
        """Test that the demo route returns the upstream status code."""
        response = client.get("/api")

        assert response.status_code == 200
        assert response.json()["data"] == 200

    def test_demo_api_failure(self, client, failing_provider):
        """Test the demo route's own error body."""
        response = client.get("/api")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to call external API"}

    def test_unknown_route(self, client):
        """Test the 404 body for an unknown path."""
        response = client.get("/obviously/this/route/cant/exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "API route does not exist"}

    @pytest.mark.parametrize("method, path", [
        ("get", "/customer"),
        ("get", "/initialize-payment"),
        ("delete", "/webhook"),
        ("post", "/health"),
    ])
    def test_wrong_method_on_known_route(self, client, method, path):
        """Test that an unsupported method on a known path gets the same 404 body."""
        response = getattr(client, method)(path)

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "API route does not exist"}

    def test_uncaught_error(self, client, provider):
        """Test that an unexpected error gives 500 with its message."""
        provider.error = RuntimeError("boom")
        raw_client = TestClient(app, raise_server_exceptions=False)

        response = raw_client.post("/customer")

        assert response.status_code == 500
        assert response.json() == {"success": False, "status": 500, "message": "boom"}

    @patch('services.logger')
    def test_logging_on_provider_error(self, mock_logger, client, failing_provider):
        """Test that a provider failure is logged."""
        client.post("/initialize-payment")

        mock_logger.error.assert_called()
