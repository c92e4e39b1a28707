"""Service wiring and HTTP server lifecycle."""

from __future__ import annotations

import asyncio
import logging
import signal

from aiohttp import web
from stellar_sdk import Keypair

from subfy_api.api.app import Services, create_app
from subfy_api.auth.service import AuthService
from subfy_api.billing.service import BillingService
from subfy_api.deployments.dispatch import select_dispatcher
from subfy_api.deployments.execution import DeploymentExecutor
from subfy_api.deployments.releases import ReleaseService
from subfy_api.deployments.service import DeploymentsService
from subfy_api.interfaces.ledger import LedgerClient
from subfy_api.models.config import ApiConfig
from subfy_api.projects.service import ProjectsService
from subfy_api.stellar.ledger import SorobanLedgerClient
from subfy_api.storage.sqlite import SQLiteDocumentStore

log = logging.getLogger(__name__)


def build_ledger(cfg: ApiConfig, keypair: Keypair) -> SorobanLedgerClient:
    return SorobanLedgerClient(
        rpc_url=cfg.rpc_url,
        network_passphrase=cfg.passphrase,
        keypair=keypair,
        base_fee=cfg.base_fee,
        tx_timeout=cfg.tx_timeout,
        poll_attempts=cfg.poll_attempts,
        poll_interval=cfg.poll_interval,
    )


def build_services(
    cfg: ApiConfig,
    store: SQLiteDocumentStore,
    ledger: LedgerClient,
    auth: AuthService | None = None,
) -> Services:
    """Construct every service over one store and one ledger client."""
    releases = ReleaseService(store)
    executor = DeploymentExecutor(store, store, store, ledger, cfg.payment_tokens)
    dispatcher = select_dispatcher(cfg, executor)
    return Services(
        config=cfg,
        projects=ProjectsService(store),
        billing=BillingService(store, ledger, cfg.payment_tokens),
        deployments=DeploymentsService(store, store, releases, ledger, dispatcher),
        executor=executor,
        releases=releases,
        auth=auth,
    )


class ApiServer:
    """Owns the store, ledger client and aiohttp runner for one process."""

    def __init__(self, cfg: ApiConfig) -> None:
        self._cfg = cfg
        self._stop = asyncio.Event()
        keypair = Keypair.from_secret(cfg.signer_secret)
        self._public_key = keypair.public_key

        self.store = SQLiteDocumentStore(cfg.db_path)
        self.ledger = build_ledger(cfg, keypair)
        auth = AuthService(self.store, keypair, cfg.passphrase, cfg.auth)
        self.services = build_services(cfg, self.store, self.ledger, auth)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Initialize the store, serve until stopped, then clean up."""
        log.info("Starting subfy-api")
        log.info("  Environment: %s", self._cfg.environment)
        log.info("  Network: %s", self._cfg.network)
        log.info("  RPC: %s", self._cfg.rpc_url)
        log.info("  Backend signer: %s", self._public_key)

        await self.store.initialize()
        self._runner = web.AppRunner(create_app(self.services))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._cfg.host, self._cfg.port)
        await site.start()
        log.info("Listening on %s:%d", self._cfg.host, self._cfg.port)

        try:
            await self._stop.wait()
        finally:
            await self._runner.cleanup()
            await self.ledger.close()
            await self.store.close()
            log.info("Server shut down cleanly")

    async def stop(self) -> None:
        log.info("Stop requested")
        self._stop.set()


async def run_server(cfg: ApiConfig) -> None:
    """Entry point for running the HTTP server."""
    server = ApiServer(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await server.start()
