"""Soroban ledger client - simulate, prepare, sign, submit and poll contract calls."""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
from typing import Any, Sequence

from stellar_sdk import Address, Keypair, SorobanServerAsync, TransactionBuilder, scval, xdr
from stellar_sdk.exceptions import SdkError
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from subfy_api.errors import LedgerError, LedgerTimeoutError
from subfy_api.models.results import (
    InvokeResult,
    PreparedDeploy,
    PreparedTransaction,
    SubmitResult,
)
from subfy_api.stellar.args import (
    AddressArg,
    Bool,
    I128,
    Invocation,
    ScArg,
    String,
    Symbol,
    U32,
)

log = logging.getLogger(__name__)

SALT_BYTES = 32


def to_scval(arg: ScArg) -> xdr.SCVal:
    """Encode one typed argument as an SCVal."""
    if isinstance(arg, U32):
        return scval.to_uint32(int(arg.value))
    if isinstance(arg, I128):
        return scval.to_int128(int(arg.value))
    if isinstance(arg, Bool):
        return scval.to_bool(bool(arg.value))
    if isinstance(arg, AddressArg):
        return scval.to_address(arg.value)
    if isinstance(arg, Symbol):
        return scval.to_symbol(arg.value)
    if isinstance(arg, String):
        return scval.to_string(arg.value)
    raise TypeError(f"Unsupported argument type: {type(arg).__name__}")


def _return_value(result_meta_xdr: str | None) -> xdr.SCVal | None:
    """Pull the Soroban return value out of a transaction's result meta."""
    if not result_meta_xdr:
        return None
    meta = xdr.TransactionMeta.from_xdr(result_meta_xdr)
    for version in ("v4", "v3"):
        body = getattr(meta, version, None)
        soroban_meta = getattr(body, "soroban_meta", None) if body else None
        if soroban_meta is not None and soroban_meta.return_value is not None:
            return soroban_meta.return_value
    return None


def _contract_id_from(value: xdr.SCVal | None) -> str | None:
    if value is None:
        return None
    native = scval.to_native(value)
    if isinstance(native, Address):
        native = native.address
    if isinstance(native, str) and native.startswith("C"):
        return native
    return None


def _rpc_call(fn):
    """Re-raise stellar_sdk errors as LedgerError, keeping the RPC text."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SdkError as exc:
            raise LedgerError(str(exc) or type(exc).__name__) from exc

    return wrapper


class SorobanLedgerClient:
    """Implements the LedgerClient protocol against a Soroban RPC endpoint.

    All configuration is passed in at construction; nothing is read from the
    environment. Admin calls are signed with ``keypair``. Submissions are
    polled with ``get_transaction`` until SUCCESS or FAILED, for at most
    ``poll_attempts`` rounds, after which LedgerTimeoutError is raised.
    """

    def __init__(
        self,
        rpc_url: str,
        network_passphrase: str,
        keypair: Keypair,
        base_fee: int = 100,
        tx_timeout: int = 60,
        poll_attempts: int = 30,
        poll_interval: float = 1.0,
        server: SorobanServerAsync | None = None,
    ) -> None:
        self._server = server or SorobanServerAsync(rpc_url)
        self._passphrase = network_passphrase
        self._keypair = keypair
        self._base_fee = base_fee
        self._tx_timeout = tx_timeout
        self._poll_attempts = poll_attempts
        self._poll_interval = poll_interval

    @property
    def backend_public_key(self) -> str:
        return self._keypair.public_key

    @property
    def network_passphrase(self) -> str:
        return self._passphrase

    async def close(self) -> None:
        await self._server.close()

    # ── Building blocks ───────────────────────────────────

    async def _build(self, source: str, invocations: Sequence[Invocation]):
        account = await self._server.load_account(source)
        builder = TransactionBuilder(account, self._passphrase, base_fee=self._base_fee)
        for inv in invocations:
            builder.append_invoke_contract_function_op(
                contract_id=inv.contract_id,
                function_name=inv.method,
                parameters=[to_scval(a) for a in inv.args],
            )
        return builder.set_timeout(self._tx_timeout).build()

    async def _simulate(self, envelope):
        sim = await self._server.simulate_transaction(envelope)
        if sim.error:
            raise LedgerError(sim.error)
        return sim

    async def _prepare(self, envelope):
        sim = await self._simulate(envelope)
        return await self._server.prepare_transaction(envelope, sim)

    async def _send_and_poll(self, envelope):
        send = await self._server.send_transaction(envelope)
        if send.status == SendTransactionStatus.ERROR:
            raise LedgerError(
                f"sendTransaction returned ERROR ({send.error_result_xdr or 'no result'})"
            )
        if send.status == SendTransactionStatus.TRY_AGAIN_LATER:
            raise LedgerError("sendTransaction returned TRY_AGAIN_LATER")
        log.info("Submitted tx %s (%s)", send.hash[:16], send.status.value)
        response = await self._poll(send.hash)
        return send.hash, response

    async def _poll(self, tx_hash: str):
        for _ in range(self._poll_attempts):
            response = await self._server.get_transaction(tx_hash)
            if response.status == GetTransactionStatus.SUCCESS:
                log.info("Tx %s confirmed at ledger %s", tx_hash[:16], response.ledger)
                return response
            if response.status == GetTransactionStatus.FAILED:
                log.warning("Tx %s failed", tx_hash[:16])
                raise LedgerError(f"Transaction failed or not confirmed (FAILED, tx={tx_hash})")
            await asyncio.sleep(self._poll_interval)
        raise LedgerTimeoutError(
            f"Transaction not confirmed after {self._poll_attempts} polls (tx={tx_hash})"
        )

    # ── LedgerClient protocol ─────────────────────────────

    @_rpc_call
    async def invoke_view(
        self, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> Any:
        envelope = await self._build(
            self.backend_public_key, [Invocation(contract_id, method, tuple(args))]
        )
        sim = await self._simulate(envelope)
        if not sim.results or not sim.results[0].xdr:
            return None
        return scval.to_native(xdr.SCVal.from_xdr(sim.results[0].xdr))

    @_rpc_call
    async def invoke_signed(
        self, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> InvokeResult:
        log.info("Invoking %s on %s", method, contract_id[:16])
        envelope = await self._build(
            self.backend_public_key, [Invocation(contract_id, method, tuple(args))]
        )
        prepared = await self._prepare(envelope)
        prepared.sign(self._keypair)
        tx_hash, _ = await self._send_and_poll(prepared)
        return InvokeResult(tx_hash=tx_hash)

    @_rpc_call
    async def prepare_unsigned_invoke(
        self, source: str, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> PreparedTransaction:
        envelope = await self._build(source, [Invocation(contract_id, method, tuple(args))])
        prepared = await self._prepare(envelope)
        return PreparedTransaction(prepared.to_xdr(), self._passphrase)

    @_rpc_call
    async def prepare_unsigned_batch_invoke(
        self, source: str, invocations: Sequence[Invocation]
    ) -> PreparedTransaction:
        if not invocations:
            raise LedgerError("At least one invocation is required")
        envelope = await self._build(source, invocations)
        prepared = await self._prepare(envelope)
        return PreparedTransaction(prepared.to_xdr(), self._passphrase)

    @_rpc_call
    async def prepare_deploy_contract(self, owner: str, wasm_hash_hex: str) -> PreparedDeploy:
        salt = secrets.token_bytes(SALT_BYTES)
        account = await self._server.load_account(owner)
        envelope = (
            TransactionBuilder(account, self._passphrase, base_fee=self._base_fee)
            .append_create_contract_op(wasm_id=wasm_hash_hex, address=owner, salt=salt)
            .set_timeout(self._tx_timeout)
            .build()
        )
        prepared = await self._prepare(envelope)
        return PreparedDeploy(unsigned_xdr=prepared.to_xdr(), salt_hex=salt.hex())

    @_rpc_call
    async def submit_signed_xdr(self, signed_xdr: str) -> SubmitResult:
        try:
            envelope = TransactionBuilder.from_xdr(signed_xdr, self._passphrase)
        except Exception as exc:
            raise LedgerError(f"Invalid transaction XDR: {exc}") from exc
        tx_hash, response = await self._send_and_poll(envelope)
        contract_id = _contract_id_from(_return_value(response.result_meta_xdr))
        return SubmitResult(tx_hash=tx_hash, contract_id=contract_id)

    @_rpc_call
    async def get_latest_ledger_sequence(self) -> int:
        latest = await self._server.get_latest_ledger()
        return latest.sequence
