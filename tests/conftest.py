"""Shared fixtures for subfy_api tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from subfy_api.billing.service import BillingService
from subfy_api.deployments.execution import DeploymentExecutor
from subfy_api.deployments.releases import ReleaseService
from subfy_api.deployments.service import DeploymentsService
from subfy_api.models.config import ApiConfig, PaymentTokenDefaults
from subfy_api.storage.sqlite import SQLiteDocumentStore

from tests.factories import seed_project
from tests.mocks import MockDispatcher, MockLedger

TEST_SECRET = "SBWVJTD3F5ETMVWCNI7MM4HUAPUSCUXXMUEJZJTPRWRJGXW2BF4SVQTK"
TEST_PUBLIC = "GDNAG4KFFVF5HCSGRWZIXZNL2SR2KBGJSHW2A6FI6DZI62XF6IBLO4GD"

TESTNET_RPC = "https://soroban-testnet.stellar.org"


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add network info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "Stellar Testnet"
    meta["RPC"] = TESTNET_RPC
    meta["Backend Signer"] = TEST_PUBLIC


def make_test_config(**overrides) -> ApiConfig:
    """Build an ApiConfig suitable for testing."""
    defaults = dict(
        environment="development",
        network="testnet",
        rpc_url=TESTNET_RPC,
        signer_secret=TEST_SECRET,
        poll_attempts=3,
        poll_interval=0,
        db_path=":memory:",
        payment_tokens=PaymentTokenDefaults(),
    )
    defaults.update(overrides)
    return ApiConfig(**defaults)


@pytest.fixture
def test_config():
    """Default ApiConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteDocumentStore."""
    s = SQLiteDocumentStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def ledger():
    return MockLedger(backend_public_key=TEST_PUBLIC)


@pytest.fixture
def payment_tokens():
    return PaymentTokenDefaults()


@pytest.fixture
def billing(store, ledger, payment_tokens):
    return BillingService(store, ledger, payment_tokens)


@pytest.fixture
async def project(store):
    """A deployed, active project with a payment token on testnet."""
    return await seed_project(store)


@pytest.fixture
def executor(store, ledger, payment_tokens):
    return DeploymentExecutor(store, store, store, ledger, payment_tokens)


@pytest.fixture
def dispatcher(executor):
    """Inline-style dispatcher that runs the real executor."""
    return MockDispatcher(task_name=None, run=executor.execute_task)


@pytest.fixture
def releases(store):
    return ReleaseService(store)


@pytest.fixture
def deployments(store, releases, ledger, dispatcher):
    return DeploymentsService(store, store, releases, ledger, dispatcher)
