"""Testnet fixtures: real Soroban RPC round-trips for the ledger client.

Everything here is gated on the public testnet RPC being healthy and
Friendbot being able to fund the backend account.
"""

from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import httpx
import pytest
from stellar_sdk import Keypair

from subfy_api.stellar.ledger import SorobanLedgerClient
from tests.conftest import TEST_SECRET

RPC_URL = os.environ.get("SUBFY_TEST_RPC_URL", "https://soroban-testnet.stellar.org")
NETWORK_PASSPHRASE = "Test SDF Network ; September 2015"
FRIENDBOT_URL = "https://friendbot.stellar.org"

# Stellar Asset Contract for native XLM on testnet
NATIVE_SAC_ID = os.environ.get(
    "SUBFY_TEST_NATIVE_SAC", "CDLZFC3SYJYDZT7K67VZ75HPJVIEUVNIXF47ZG2FB2RMQQVU2HHGCYSC"
)
# Optional: a deployed sb_subscription contract to read plans from
SUBSCRIPTION_CONTRACT_ID = os.environ.get("SUBFY_TEST_SUBSCRIPTION_CONTRACT_ID", "")


# ── Timing infrastructure ────────────────────────────────────────


@dataclass
class TimingRecord:
    operation: str
    duration_s: float
    result: str = ""


@dataclass
class TimingCollector:
    """Accumulates timing records for a single test."""

    records: list[TimingRecord] = field(default_factory=list)

    def add(self, operation: str, duration_s: float, result: str = "") -> None:
        self.records.append(TimingRecord(operation, duration_s, result))

    def to_html(self) -> str:
        if not self.records:
            return ""
        rows = "".join(
            f"<tr><td>{r.operation}</td><td>{r.duration_s * 1000:.0f}ms</td>"
            f"<td>{r.result}</td></tr>"
            for r in self.records
        )
        return (
            '<table border="1" cellpadding="4" cellspacing="0" '
            'style="border-collapse:collapse;font-family:monospace;font-size:12px;">'
            "<tr><th>Operation</th><th>Duration</th><th>Result</th></tr>"
            + rows
            + "</table>"
        )

    def summary(self) -> str:
        return "\n".join(
            f"  {r.operation:<32} {r.duration_s * 1000:>8.0f}ms  {r.result}"
            for r in self.records
        )


@asynccontextmanager
async def timed_op(timing: TimingCollector, label: str):
    """Record the duration of the wrapped block; set ``rec["result"]`` inside."""
    rec: dict = {"result": ""}
    start = time.perf_counter()
    try:
        yield rec
    finally:
        timing.add(label, time.perf_counter() - start, rec.get("result", ""))


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        timing: TimingCollector | None = getattr(item, "_timing", None)
        if timing and timing.records:
            from pytest_html.extras import html as html_extra
            extra = getattr(report, "extras", [])
            extra.append(html_extra(timing.to_html()))
            report.extras = extra


# ── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def testnet_reachable():
    """Gate: skip every testnet test if the RPC is unreachable or unhealthy."""
    try:
        r = httpx.post(
            RPC_URL,
            json={"jsonrpc": "2.0", "id": 1, "method": "getHealth"},
            timeout=10,
        )
        data = r.json()
    except (httpx.ConnectError, httpx.TimeoutException) as exc:
        pytest.skip(f"Stellar testnet RPC unreachable: {exc}")
    if data.get("result", {}).get("status") != "healthy":
        pytest.skip(f"Stellar testnet RPC not healthy: {data}")
    return True


@pytest.fixture(scope="session")
def backend_keypair():
    return Keypair.from_secret(TEST_SECRET)


@pytest.fixture(scope="session")
def funded_backend(testnet_reachable, backend_keypair):
    """Fund the backend account via Friendbot (400 means already funded)."""
    try:
        r = httpx.get(f"{FRIENDBOT_URL}?addr={backend_keypair.public_key}", timeout=30)
    except (httpx.ConnectError, httpx.TimeoutException) as exc:
        pytest.skip(f"Friendbot unreachable: {exc}")
    if r.status_code not in (200, 400):
        pytest.skip(f"Friendbot returned {r.status_code} for {backend_keypair.public_key}")
    return backend_keypair


@pytest.fixture
async def ledger_client(funded_backend):
    client = SorobanLedgerClient(
        rpc_url=RPC_URL,
        network_passphrase=NETWORK_PASSPHRASE,
        keypair=funded_backend,
    )
    yield client
    await client.close()


@pytest.fixture
def timing(request):
    """Per-test TimingCollector, attached to the item for the report hook."""
    tc = TimingCollector()
    request.node._timing = tc
    yield tc
    if tc.records:
        print(f"\n--- Timing: {request.node.name} ---")
        print(tc.summary())
