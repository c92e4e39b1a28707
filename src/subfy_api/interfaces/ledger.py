"""LedgerClient protocol - the single choke point for ledger RPC interaction."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from subfy_api.models.results import (
    InvokeResult,
    PreparedDeploy,
    PreparedTransaction,
    SubmitResult,
)
from subfy_api.stellar.args import Invocation, ScArg


class LedgerClient(Protocol):
    """Simulates, prepares, signs and submits Soroban contract calls."""

    @property
    def backend_public_key(self) -> str:
        """Account the backend signs admin calls with."""
        ...

    @property
    def network_passphrase(self) -> str:
        ...

    async def invoke_view(
        self, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> Any:
        """Simulate a call and return the decoded return value (or None)."""
        ...

    async def invoke_signed(
        self, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> InvokeResult:
        """Build, prepare, sign with the backend key, submit and poll."""
        ...

    async def prepare_unsigned_invoke(
        self, source: str, contract_id: str, method: str, args: Sequence[ScArg] = ()
    ) -> PreparedTransaction:
        ...

    async def prepare_unsigned_batch_invoke(
        self, source: str, invocations: Sequence[Invocation]
    ) -> PreparedTransaction:
        ...

    async def prepare_deploy_contract(self, owner: str, wasm_hash_hex: str) -> PreparedDeploy:
        ...

    async def submit_signed_xdr(self, signed_xdr: str) -> SubmitResult:
        ...

    async def get_latest_ledger_sequence(self) -> int:
        ...
