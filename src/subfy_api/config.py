"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from subfy_api.models.config import ApiConfig, AuthConfig, PaymentTokenDefaults, TasksConfig

_TOKEN_KEYS = (
    "usdc", "eurc",
    "usdc_testnet", "usdc_public", "eurc_testnet", "eurc_public",
)


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "SUBFY_",
) -> ApiConfig:
    """Load service configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (SUBFY_SIGNER_SECRET, etc.)
        2. TOML config file
        3. Defaults from ApiConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = ApiConfig()

    # ── Server section ─────────────────────────────────────
    server = raw.get("server", {})
    if v := server.get("host"):
        cfg.host = str(v)
    if v := server.get("port"):
        cfg.port = int(v)
    if v := server.get("log_level"):
        cfg.log_level = str(v)
    if v := server.get("environment"):
        cfg.environment = str(v)

    # ── Stellar section ────────────────────────────────────
    stellar = raw.get("stellar", {})
    if v := stellar.get("network"):
        cfg.network = str(v).lower()
    if v := stellar.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := stellar.get("network_passphrase"):
        cfg.network_passphrase = str(v)
    if v := stellar.get("signer_secret"):
        cfg.signer_secret = str(v)
    if v := stellar.get("base_fee"):
        cfg.base_fee = int(v)
    if v := stellar.get("tx_timeout"):
        cfg.tx_timeout = int(v)
    if v := stellar.get("poll_attempts"):
        cfg.poll_attempts = int(v)
    if v := stellar.get("poll_interval"):
        cfg.poll_interval = float(v)

    # ── Payment tokens section ─────────────────────────────
    tokens = raw.get("payment_tokens", {})
    cfg.payment_tokens = PaymentTokenDefaults(
        default=tokens.get("default"),
        **{key: tokens.get(key) for key in _TOKEN_KEYS},
    )

    # ── Tasks section ──────────────────────────────────────
    tasks = raw.get("tasks", {})
    cfg.tasks = TasksConfig(
        project_id=tasks.get("project_id", ""),
        location=tasks.get("location", ""),
        queue=tasks.get("queue", ""),
        target_url=tasks.get("target_url", ""),
        invoker_service_account_email=tasks.get("invoker_service_account_email", ""),
        internal_token=tasks.get("internal_token", ""),
        access_token=tasks.get("access_token", ""),
    )

    # ── Auth section ───────────────────────────────────────
    auth = raw.get("auth", {})
    cfg.auth = AuthConfig(
        jwt_secret=auth.get("jwt_secret", AuthConfig.jwt_secret),
        token_ttl=int(auth.get("token_ttl", AuthConfig.token_ttl)),
        challenge_ttl=int(auth.get("challenge_ttl", AuthConfig.challenge_ttl)),
        home_domain=auth.get("home_domain", AuthConfig.home_domain),
        web_auth_domain=auth.get("web_auth_domain", AuthConfig.web_auth_domain),
    )

    # ── Releases section ───────────────────────────────────
    releases = raw.get("releases", {})
    if v := releases.get("internal_token"):
        cfg.releases_internal_token = str(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    _apply_env(cfg, env_prefix)

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def _apply_env(cfg: ApiConfig, prefix: str) -> None:
    """Environment variable overrides (highest priority)."""
    env = os.environ

    if v := env.get(f"{prefix}SIGNER_SECRET"):
        cfg.signer_secret = v
    if v := env.get(f"{prefix}NETWORK"):
        cfg.network = v.lower()
    if v := env.get(f"{prefix}RPC_URL"):
        cfg.rpc_url = v
    if v := env.get(f"{prefix}NETWORK_PASSPHRASE"):
        cfg.network_passphrase = v
    if v := env.get(f"{prefix}ENV"):
        cfg.environment = v
    if v := env.get(f"{prefix}JWT_SECRET"):
        cfg.auth.jwt_secret = v
    if v := env.get(f"{prefix}DB_PATH"):
        cfg.db_path = v
    if v := env.get(f"{prefix}INTERNAL_TASKS_TOKEN"):
        cfg.tasks.internal_token = v
    if v := env.get(f"{prefix}WASM_RELEASES_INTERNAL_TOKEN"):
        cfg.releases_internal_token = v

    if v := env.get(f"{prefix}PAYMENT_TOKEN_CONTRACT_ID"):
        cfg.payment_tokens.default = v
    for currency in ("USDC", "EURC"):
        if v := env.get(f"{prefix}PAYMENT_TOKEN_{currency}_CONTRACT_ID"):
            setattr(cfg.payment_tokens, currency.lower(), v)
        for network in ("TESTNET", "PUBLIC"):
            if v := env.get(f"{prefix}PAYMENT_TOKEN_{currency}_CONTRACT_ID_{network}"):
                setattr(cfg.payment_tokens, f"{currency}_{network}".lower(), v)

    for key in ("PROJECT_ID", "LOCATION", "QUEUE", "TARGET_URL", "INVOKER_SERVICE_ACCOUNT_EMAIL"):
        if v := env.get(f"{prefix}CLOUD_TASKS_{key}"):
            setattr(cfg.tasks, key.lower(), v)
