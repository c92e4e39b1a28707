"""SorobanLedgerClient against a scripted RPC server."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

stellar_sdk = pytest.importorskip("stellar_sdk")

from stellar_sdk import Account, Keypair, StrKey, TransactionBuilder, scval  # noqa: E402
from stellar_sdk.exceptions import SdkError  # noqa: E402
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus  # noqa: E402

from subfy_api.errors import LedgerError, LedgerTimeoutError  # noqa: E402
from subfy_api.stellar.args import (  # noqa: E402
    I128,
    U32,
    AddressArg,
    Bool,
    Invocation,
    String,
    Symbol,
)
from subfy_api.stellar.contract_errors import parse_contract_error_code  # noqa: E402
from subfy_api.stellar.ledger import SorobanLedgerClient, _contract_id_from, to_scval  # noqa: E402

from tests.conftest import TEST_PUBLIC, TEST_SECRET  # noqa: E402
from tests.mocks import TESTNET_PASSPHRASE  # noqa: E402

CONTRACT_ID = StrKey.encode_contract(bytes(range(32)))
TX_HASH = "ab" * 32


class FakeSorobanServer:
    """Scripted stand-in for SorobanServerAsync."""

    def __init__(self) -> None:
        self.simulation = SimpleNamespace(error=None, results=[])
        self.send_status = SendTransactionStatus.PENDING
        self.statuses: list[GetTransactionStatus] = [GetTransactionStatus.SUCCESS]
        self.load_error: Exception | None = None
        self.sent: list = []
        self.polls = 0
        self.closed = False

    async def load_account(self, account_id: str) -> Account:
        if self.load_error is not None:
            raise self.load_error
        return Account(account_id, 100)

    async def simulate_transaction(self, envelope):
        return self.simulation

    async def prepare_transaction(self, envelope, simulation=None):
        return envelope

    async def send_transaction(self, envelope):
        self.sent.append(envelope)
        return SimpleNamespace(status=self.send_status, hash=TX_HASH, error_result_xdr=None)

    async def get_transaction(self, tx_hash: str):
        self.polls += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return SimpleNamespace(status=status, ledger=4242, result_meta_xdr=None)

    async def get_latest_ledger(self):
        return SimpleNamespace(sequence=123_456)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def server():
    return FakeSorobanServer()


@pytest.fixture
def client(server):
    return SorobanLedgerClient(
        rpc_url="http://unused",
        network_passphrase=TESTNET_PASSPHRASE,
        keypair=Keypair.from_secret(TEST_SECRET),
        poll_attempts=3,
        poll_interval=0,
        server=server,
    )


def _signed_envelope_xdr() -> str:
    kp = Keypair.from_secret(TEST_SECRET)
    envelope = (
        TransactionBuilder(Account(kp.public_key, 1), TESTNET_PASSPHRASE, base_fee=100)
        .append_invoke_contract_function_op(CONTRACT_ID, "renew", [scval.to_address(kp.public_key)])
        .set_timeout(30)
        .build()
    )
    envelope.sign(kp)
    return envelope.to_xdr()


# ── Test 1: Argument encoding ────────────────────────────────────


def test_to_scval_variants():
    assert to_scval(U32(7)) == scval.to_uint32(7)
    assert to_scval(I128(-5)) == scval.to_int128(-5)
    assert to_scval(Bool(True)) == scval.to_bool(True)
    assert to_scval(AddressArg(TEST_PUBLIC)) == scval.to_address(TEST_PUBLIC)
    assert to_scval(Symbol("init")) == scval.to_symbol("init")
    assert to_scval(String("Pro")) == scval.to_string("Pro")


def test_to_scval_rejects_raw_values():
    with pytest.raises(TypeError, match="Unsupported argument type"):
        to_scval(42)


def test_typed_args_range_checked():
    with pytest.raises(ValueError):
        U32(-1)
    with pytest.raises(ValueError):
        I128(2**127)


def test_contract_id_from_return_value():
    assert _contract_id_from(scval.to_address(CONTRACT_ID)) == CONTRACT_ID
    assert _contract_id_from(scval.to_address(TEST_PUBLIC)) is None
    assert _contract_id_from(None) is None


# ── Test 2: Views ────────────────────────────────────────────────


async def test_invoke_view_decodes_result(client, server):
    server.simulation = SimpleNamespace(
        error=None, results=[SimpleNamespace(xdr=scval.to_uint32(9).to_xdr())]
    )
    assert await client.invoke_view(CONTRACT_ID, "get_plan", [U32(1)]) == 9


async def test_invoke_view_without_result(client, server):
    assert await client.invoke_view(CONTRACT_ID, "list_plans", [U32(0), U32(50)]) is None


async def test_invoke_view_simulation_error_keeps_code(client, server):
    server.simulation = SimpleNamespace(error="HostError: Error(Contract, #2)", results=[])

    with pytest.raises(LedgerError) as exc_info:
        await client.invoke_view(CONTRACT_ID, "list_plans", [U32(0), U32(50)])
    assert parse_contract_error_code(exc_info.value) == 2


async def test_sdk_errors_become_ledger_errors(client, server):
    server.load_error = SdkError("Account not found")
    with pytest.raises(LedgerError, match="Account not found"):
        await client.invoke_view(CONTRACT_ID, "list_plans")


# ── Test 3: Signed invocations and polling ───────────────────────


async def test_invoke_signed_polls_until_success(client, server):
    server.statuses = [
        GetTransactionStatus.NOT_FOUND,
        GetTransactionStatus.NOT_FOUND,
        GetTransactionStatus.SUCCESS,
    ]

    result = await client.invoke_signed(CONTRACT_ID, "renew", [AddressArg(TEST_PUBLIC)])

    assert result.tx_hash == TX_HASH
    assert server.polls == 3
    assert len(server.sent[0].signatures) == 1


async def test_failed_transaction(client, server):
    server.statuses = [GetTransactionStatus.FAILED]
    with pytest.raises(LedgerError, match="FAILED"):
        await client.invoke_signed(CONTRACT_ID, "renew", [AddressArg(TEST_PUBLIC)])


async def test_polling_times_out(client, server):
    server.statuses = [GetTransactionStatus.NOT_FOUND]

    with pytest.raises(LedgerTimeoutError):
        await client.invoke_signed(CONTRACT_ID, "renew", [AddressArg(TEST_PUBLIC)])
    assert server.polls == 3


async def test_send_error(client, server):
    server.send_status = SendTransactionStatus.ERROR
    with pytest.raises(LedgerError, match="sendTransaction returned ERROR"):
        await client.invoke_signed(CONTRACT_ID, "renew", [AddressArg(TEST_PUBLIC)])
    assert server.polls == 0


# ── Test 4: Unsigned preparation and submission ──────────────────


async def test_prepare_unsigned_invoke(client, server):
    subscriber = Keypair.random().public_key

    prepared = await client.prepare_unsigned_invoke(
        subscriber, CONTRACT_ID, "subscribe", [AddressArg(subscriber), U32(1)]
    )

    envelope = TransactionBuilder.from_xdr(prepared.unsigned_xdr, TESTNET_PASSPHRASE)
    assert envelope.transaction.source.account_id == subscriber
    assert envelope.signatures == []
    assert prepared.network_passphrase == TESTNET_PASSPHRASE


async def test_prepare_batch(client):
    subscriber = Keypair.random().public_key
    prepared = await client.prepare_unsigned_batch_invoke(subscriber, [
        Invocation(CONTRACT_ID, "cancel", (AddressArg(subscriber),)),
        Invocation(CONTRACT_ID, "subscribe", (AddressArg(subscriber), U32(2))),
    ])
    envelope = TransactionBuilder.from_xdr(prepared.unsigned_xdr, TESTNET_PASSPHRASE)
    assert len(envelope.transaction.operations) == 2


async def test_prepare_batch_requires_invocations(client):
    with pytest.raises(LedgerError, match="At least one invocation"):
        await client.prepare_unsigned_batch_invoke(TEST_PUBLIC, [])


async def test_prepare_deploy_contract(client):
    owner = Keypair.random().public_key

    deploy = await client.prepare_deploy_contract(owner, "cd" * 32)

    assert len(bytes.fromhex(deploy.salt_hex)) == 32
    envelope = TransactionBuilder.from_xdr(deploy.unsigned_xdr, TESTNET_PASSPHRASE)
    assert envelope.transaction.source.account_id == owner


async def test_submit_signed_xdr(client, server):
    result = await client.submit_signed_xdr(_signed_envelope_xdr())
    assert result.tx_hash == TX_HASH
    assert result.contract_id is None


async def test_submit_invalid_xdr(client, server):
    with pytest.raises(LedgerError, match="Invalid transaction XDR"):
        await client.submit_signed_xdr("definitely-not-xdr")
    assert server.sent == []


async def test_latest_ledger_and_close(client, server):
    assert await client.get_latest_ledger_sequence() == 123_456
    assert client.backend_public_key == TEST_PUBLIC
    await client.close()
    assert server.closed
