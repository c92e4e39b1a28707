"""Wasm release registry - records produced by the contract publishing pipeline."""

from __future__ import annotations

import logging

from subfy_api.errors import BadRequestError
from subfy_api.interfaces.store import ReleaseStore
from subfy_api.models.config import Network
from subfy_api.models.records import NewRelease, WasmReleaseRecord

log = logging.getLogger(__name__)

SUBSCRIPTION_CONTRACT_NAME = "sb_subscription"

_REQUIRED = (
    "contract_name", "network", "bucket_path", "gcs_uri",
    "wasm_hash", "sha256", "git_sha", "uploaded_at_utc",
)


class ReleaseService:
    """Registers releases and looks up the newest one per contract and network."""

    def __init__(self, releases: ReleaseStore) -> None:
        self.releases = releases

    async def register(self, new: NewRelease) -> WasmReleaseRecord:
        missing = [name for name in _REQUIRED if not str(getattr(new, name) or "").strip()]
        if missing:
            raise BadRequestError(f"Missing release fields: {', '.join(missing)}")
        if new.network not in {n.value for n in Network}:
            raise BadRequestError(f"Unknown network: {new.network}")
        record = await self.releases.create_release(new)
        log.info(
            "Registered %s release %s for %s (wasm %s)",
            record.contract_name, record.id, record.network, record.wasm_hash[:16],
        )
        return record

    async def find_latest(
        self, network: str, contract_name: str = SUBSCRIPTION_CONTRACT_NAME
    ) -> WasmReleaseRecord | None:
        return await self.releases.find_latest_release(contract_name, network)
