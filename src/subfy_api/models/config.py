"""Configuration models for the API service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Network(str, Enum):
    """Stellar network a project deploys to."""

    TESTNET = "testnet"
    PUBLIC = "public"


NETWORK_PASSPHRASES = {
    Network.TESTNET: "Test SDF Network ; September 2015",
    Network.PUBLIC: "Public Global Stellar Network ; September 2015",
}


@dataclass
class PaymentTokenDefaults:
    """Environment-level payment token contract addresses.

    Resolution order for a project is: scoped (network + currency), then
    currency-generic, then the global default.
    """

    default: str | None = None
    usdc: str | None = None
    eurc: str | None = None
    usdc_testnet: str | None = None
    usdc_public: str | None = None
    eurc_testnet: str | None = None
    eurc_public: str | None = None

    def scoped(self, network: str, currency: str) -> str | None:
        key = f"{currency.lower()}_{'public' if network == Network.PUBLIC.value else 'testnet'}"
        return getattr(self, key, None)

    def generic(self, currency: str) -> str | None:
        return getattr(self, currency.lower(), None)


@dataclass
class TasksConfig:
    """Cloud Tasks queue used for asynchronous deployment execution."""

    project_id: str = ""
    location: str = ""
    queue: str = ""
    target_url: str = ""
    invoker_service_account_email: str = ""
    internal_token: str = ""  # bearer secret for /internal/tasks callbacks
    access_token: str = ""  # Cloud Tasks API token; metadata server when empty

    @property
    def is_configured(self) -> bool:
        return bool(self.project_id and self.location and self.queue and self.target_url)


@dataclass
class AuthConfig:
    """Wallet authentication and session token settings."""

    jwt_secret: str = "dev-secret-change-me"
    token_ttl: int = 86400  # seconds
    challenge_ttl: int = 300  # seconds
    home_domain: str = "subfy"
    web_auth_domain: str = "localhost"


@dataclass
class ApiConfig:
    """Complete service configuration."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    environment: str = "development"

    # Stellar
    network: str = Network.TESTNET.value
    rpc_url: str = "https://soroban-testnet.stellar.org"
    network_passphrase: str = ""  # derived from network when empty
    signer_secret: str = ""  # loaded from env var SUBFY_SIGNER_SECRET
    base_fee: int = 100  # stroops
    tx_timeout: int = 60  # seconds
    poll_attempts: int = 30
    poll_interval: float = 1.0  # seconds

    # Storage
    db_path: str = "~/.subfy/state.db"

    # Internal endpoints
    releases_internal_token: str = ""

    payment_tokens: PaymentTokenDefaults = field(default_factory=PaymentTokenDefaults)
    tasks: TasksConfig = field(default_factory=TasksConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def passphrase(self) -> str:
        if self.network_passphrase:
            return self.network_passphrase
        try:
            return NETWORK_PASSPHRASES[Network(self.network)]
        except ValueError:
            return NETWORK_PASSPHRASES[Network.TESTNET]
