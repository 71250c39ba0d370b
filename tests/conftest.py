import os

os.environ.setdefault("APP_ENV", "testing")

import pytest
from fastapi.testclient import TestClient

from config import TestingSettings, get_settings
from gateway import ProviderError, get_demo_client, get_provider_client
from main import app
from repositories import (
    AccountRepository,
    CustomerRepository,
    TransactionRepository,
    get_account_repository,
    get_customer_repository,
    get_transaction_repository,
)
from payloads import TEST_SECRET


class FakeProvider:
    """Stands in for the provider client; records calls and replays canned bodies."""

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.error = None

    async def post(self, path, json=None):
        self.calls.append((path, json))
        if self.error is not None:
            raise self.error
        return self.responses.get(path)

    async def status(self, path=""):
        self.calls.append((path, None))
        if self.error is not None:
            raise self.error
        return 200


@pytest.fixture
def test_settings():
    return TestingSettings(paystack_secret_key=TEST_SECRET)


@pytest.fixture
def transaction_repo(tmp_path):
    return TransactionRepository(tmp_path / "transactions.json")


@pytest.fixture
def account_repo(tmp_path):
    return AccountRepository(tmp_path / "accounts.json")


@pytest.fixture
def customer_repo(tmp_path):
    return CustomerRepository(tmp_path / "customers.json")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(test_settings, transaction_repo, account_repo, customer_repo, provider):
    """TestClient wired to tmp_path repositories and a fake provider."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_transaction_repository] = lambda: transaction_repo
    app.dependency_overrides[get_account_repository] = lambda: account_repo
    app.dependency_overrides[get_customer_repository] = lambda: customer_repo
    app.dependency_overrides[get_provider_client] = lambda: provider
    app.dependency_overrides[get_demo_client] = lambda: provider

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def failing_provider(provider):
    provider.error = ProviderError("POST https://api.paystack.co/x returned 503", status_code=503)
    return provider
