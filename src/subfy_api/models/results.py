"""Operation results returned by the ledger client and orchestrators."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from subfy_api.models.contract import Plan, Subscription


@dataclass
class InvokeResult:
    """Outcome of a backend-signed contract invocation."""

    tx_hash: str


@dataclass
class PreparedTransaction:
    """A simulated, resource-prepared transaction awaiting an external signature."""

    unsigned_xdr: str
    network_passphrase: str
    expiration_ledger: int | None = None  # set for allowance approvals

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.expiration_ledger is None:
            data.pop("expiration_ledger")
        return data


@dataclass
class PreparedDeploy:
    """An unsigned contract-creation transaction and the salt it was built with."""

    unsigned_xdr: str
    salt_hex: str


@dataclass
class SubmitResult:
    """Outcome of submitting an externally signed transaction."""

    tx_hash: str
    contract_id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PlanPage:
    project_id: str
    subscription_contract_id: str
    offset: int
    limit: int
    items: list[Plan] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SubscriptionPage:
    project_id: str
    subscription_contract_id: str
    offset: int
    limit: int
    items: list[Subscription] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RenewalReport:
    """Aggregate counts from one renewal sweep."""

    project_id: str
    subscription_contract_id: str
    latest_ledger: int
    scanned: int = 0
    renewed: int = 0
    skipped_allowance: int = 0
    failed: int = 0
    status: str = "completed"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CheckoutProject:
    id: str
    name: str
    network: str
    payment_currency: str
    subscription_contract_id: str


@dataclass
class CheckoutContext:
    """Public view of a project's plans and, optionally, one subscriber's state."""

    project: CheckoutProject
    plans: list[Plan] = field(default_factory=list)
    subscription: Subscription | None = None
    remaining_allowance_stroops: str | None = None
    remaining_cycles: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DeployPreparation:
    """Everything a project owner needs to sign a contract deployment."""

    project_id: str
    network: str
    wasm_artifact_path: str
    wasm_release_id: str
    wasm_hash: str
    unsigned_xdr: str
    salt_hex: str
    network_passphrase: str
    owner_public_key: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DeploymentAccepted:
    deployment_id: str
    status: str  # "QUEUED" | "PROCESSING"

    def to_dict(self) -> dict:
        return asdict(self)
