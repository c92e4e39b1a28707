"""Persisted record types: projects, deployments, wasm releases and users."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class ProjectStatus(str, Enum):
    DRAFT = "DRAFT"
    DEPLOYING = "DEPLOYING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


class DeploymentStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILED)


class PaymentCurrency(str, Enum):
    USDC = "USDC"
    EURC = "EURC"


@dataclass
class ProjectRecord:
    """A tenant's subscription offering."""

    id: str
    owner_public_key: str
    name: str
    network: str  # "testnet" | "public"
    status: str = ProjectStatus.DRAFT.value
    subscription_contract_id: str | None = None  # set after a successful deployment
    payment_token_contract_id: str | None = None
    payment_currency: str = PaymentCurrency.USDC.value
    treasury_address: str = ""
    wasm_artifact_path: str | None = None
    wasm_release_id: str | None = None
    deployed_wasm_hash: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DeploymentRecord:
    """One attempt to deploy and initialize a subscription contract."""

    id: str
    project_id: str
    owner_public_key: str
    signed_xdr: str
    status: str = DeploymentStatus.PENDING.value
    tx_hash: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    task_name: str | None = None
    attempt_count: int = 0
    proposed_subscription_contract_id: str | None = None
    proposed_payment_token_contract_id: str | None = None
    wasm_release_id: str | None = None
    wasm_hash: str | None = None
    salt: str | None = None  # hex
    created_at: str = ""
    updated_at: str = ""
    finished_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WasmReleaseRecord:
    """Immutable metadata about a built and uploaded contract binary."""

    id: str
    contract_name: str
    network: str
    bucket_path: str
    gcs_uri: str
    wasm_hash: str  # code hash installed on-chain (hex)
    sha256: str  # content hash of the wasm file (hex)
    git_sha: str
    uploaded_at_utc: str
    payment_token_contract_id: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserRecord:
    """A wallet that has authenticated at least once."""

    public_key: str
    created_at: str = ""
    last_login_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NewDeployment:
    """Fields supplied when a signed deployment transaction is submitted."""

    project_id: str
    owner_public_key: str
    signed_xdr: str
    proposed_subscription_contract_id: str | None = None
    proposed_payment_token_contract_id: str | None = None
    wasm_release_id: str | None = None
    wasm_hash: str | None = None
    salt: str | None = None


@dataclass
class NewRelease:
    """Fields recorded by the release publishing pipeline."""

    contract_name: str
    network: str
    bucket_path: str
    gcs_uri: str
    wasm_hash: str
    sha256: str
    git_sha: str
    uploaded_at_utc: str
    payment_token_contract_id: str | None = None
