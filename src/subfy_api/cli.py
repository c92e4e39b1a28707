"""CLI entry point for the subfy API service."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone

import click
from stellar_sdk import Keypair

from subfy_api.config import load_config
from subfy_api.deployments.releases import SUBSCRIPTION_CONTRACT_NAME, ReleaseService
from subfy_api.errors import SubfyError
from subfy_api.models.records import NewRelease
from subfy_api.server import build_ledger, build_services, run_server
from subfy_api.storage.sqlite import SQLiteDocumentStore


def _require_secret(cfg):
    """Exit with error if no signer secret is configured."""
    if not cfg.signer_secret:
        click.echo("Error: No signer secret configured.", err=True)
        click.echo("Set SUBFY_SIGNER_SECRET env var or signer_secret in config.", err=True)
        sys.exit(1)


def _mask(value: str | None) -> str:
    return "***configured***" if value else "(not set)"


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """subfy-api - Subscription billing and contract deployment backend."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Server ─────────────────────────────────────────────


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Start the HTTP API server."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)

    click.echo(f"Starting subfy-api on {cfg.host}:{cfg.port} ({cfg.environment})")
    asyncio.run(run_server(cfg))


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show effective configuration."""
    cfg = load_config(ctx.obj["config_path"])
    tokens = cfg.payment_tokens
    click.echo(f"Environment: {cfg.environment}")
    click.echo(f"Listen:      {cfg.host}:{cfg.port}")
    click.echo(f"Network:     {cfg.network}")
    click.echo(f"RPC URL:     {cfg.rpc_url}")
    click.echo(f"Passphrase:  {cfg.passphrase}")
    click.echo(f"DB path:     {cfg.db_path}")
    click.echo(f"Signer:      {_mask(cfg.signer_secret)}")
    click.echo(f"JWT secret:  {_mask(cfg.auth.jwt_secret)}")
    click.echo(f"Token (def): {tokens.default or '(not set)'}")
    click.echo(f"Token USDC:  {tokens.scoped(cfg.network, 'USDC') or tokens.usdc or '(not set)'}")
    click.echo(f"Token EURC:  {tokens.scoped(cfg.network, 'EURC') or tokens.eurc or '(not set)'}")
    queue = cfg.tasks.queue if cfg.tasks.is_configured else "(inline execution)"
    click.echo(f"Task queue:  {queue}")


# ── Billing ────────────────────────────────────────────


@cli.command("renew-due")
@click.argument("project_id")
@click.option("--owner", required=True, help="Owner public key (G...)")
@click.pass_context
def renew_due(ctx: click.Context, project_id: str, owner: str) -> None:
    """Renew every due subscription of a project."""
    cfg = load_config(ctx.obj["config_path"])
    _require_secret(cfg)

    async def _renew():
        store = SQLiteDocumentStore(cfg.db_path)
        ledger = build_ledger(cfg, Keypair.from_secret(cfg.signer_secret))
        await store.initialize()
        try:
            services = build_services(cfg, store, ledger)
            return await services.billing.trigger_renew_due(owner, project_id)
        finally:
            await ledger.close()
            await store.close()

    try:
        report = asyncio.run(_renew())
    except SubfyError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    click.echo(f"Latest ledger:     {report.latest_ledger}")
    click.echo(f"Scanned:           {report.scanned}")
    click.echo(f"Renewed:           {report.renewed}")
    click.echo(f"Skipped allowance: {report.skipped_allowance}")
    click.echo(f"Failed:            {report.failed}")


# ── Releases ───────────────────────────────────────────


@cli.command("register-release")
@click.option("--contract-name", default=SUBSCRIPTION_CONTRACT_NAME, show_default=True)
@click.option("--network", type=click.Choice(["testnet", "public"]), default="testnet")
@click.option("--wasm-hash", required=True, help="On-chain code hash (hex)")
@click.option("--sha256", "sha256_hex", required=True, help="SHA-256 of the wasm file (hex)")
@click.option("--bucket-path", required=True)
@click.option("--gcs-uri", required=True)
@click.option("--git-sha", required=True)
@click.option("--uploaded-at", default=None, help="ISO-8601 UTC upload time (default: now)")
@click.option("--payment-token", default=None, help="Payment token contract ID (C...)")
@click.pass_context
def register_release(
    ctx: click.Context,
    contract_name: str,
    network: str,
    wasm_hash: str,
    sha256_hex: str,
    bucket_path: str,
    gcs_uri: str,
    git_sha: str,
    uploaded_at: str | None,
    payment_token: str | None,
) -> None:
    """Record a published contract release."""
    cfg = load_config(ctx.obj["config_path"])
    new = NewRelease(
        contract_name=contract_name,
        network=network,
        bucket_path=bucket_path,
        gcs_uri=gcs_uri,
        wasm_hash=wasm_hash,
        sha256=sha256_hex,
        git_sha=git_sha,
        uploaded_at_utc=uploaded_at or datetime.now(timezone.utc).isoformat(),
        payment_token_contract_id=payment_token,
    )

    async def _register():
        store = SQLiteDocumentStore(cfg.db_path)
        await store.initialize()
        try:
            return await ReleaseService(store).register(new)
        finally:
            await store.close()

    try:
        release = asyncio.run(_register())
    except SubfyError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)
    click.echo(f"Registered release {release.id} ({release.contract_name} on {release.network})")


if __name__ == "__main__":
    cli()
