"""DeploymentExecutor - submit the signed deploy, then initialize the contract."""

from __future__ import annotations

import logging

from subfy_api.billing.tokens import resolve_deployment_payment_token
from subfy_api.interfaces.dispatch import DeploymentTask
from subfy_api.interfaces.ledger import LedgerClient
from subfy_api.interfaces.store import DeploymentStore, ProjectStore, ReleaseStore
from subfy_api.models.config import PaymentTokenDefaults
from subfy_api.models.records import DeploymentStatus, ProjectStatus
from subfy_api.stellar.args import AddressArg

log = logging.getLogger(__name__)

DEPLOY_EXECUTION_ERROR = "DEPLOY_EXECUTION_ERROR"


class DeploymentExecutor:
    """Runs one deployment attempt to a terminal state.

    Safe to call repeatedly for the same task: a deployment that already
    succeeded is left alone, anything else gets a fresh attempt. Nothing is
    retried in here. Every failure ends as a FAILED deployment
    and a FAILED project instead of propagating to the caller.
    """

    def __init__(
        self,
        projects: ProjectStore,
        deployments: DeploymentStore,
        releases: ReleaseStore,
        ledger: LedgerClient,
        payment_tokens: PaymentTokenDefaults,
    ) -> None:
        self.projects = projects
        self.deployments = deployments
        self.releases = releases
        self.ledger = ledger
        self.payment_tokens = payment_tokens

    async def execute_task(self, task: DeploymentTask) -> None:
        deployment = await self.deployments.get_deployment(task.deployment_id)
        if deployment is None:
            log.warning("Deployment %s not found, skipping worker", task.deployment_id)
            return
        if deployment.status == DeploymentStatus.SUCCESS.value:
            log.info("Deployment %s already succeeded, skipping redelivery", task.deployment_id)
            return

        await self.deployments.update_deployment_status(
            task.deployment_id,
            DeploymentStatus.RUNNING.value,
            clear_error=True,
            increment_attempt=True,
        )
        log.info(
            "Executing deployment %s (attempt %d)",
            task.deployment_id, deployment.attempt_count + 1,
        )

        try:
            submitted = await self.ledger.submit_signed_xdr(deployment.signed_xdr)
            project = await self.projects.get_project(task.project_id)
            if project is None:
                raise RuntimeError(f"Project {task.project_id} not found")
            contract_id = submitted.contract_id or deployment.proposed_subscription_contract_id
            if not contract_id:
                raise RuntimeError("Unable to determine deployed contract ID")

            release_token = None
            if deployment.wasm_release_id:
                release = await self.releases.get_release(deployment.wasm_release_id)
                release_token = release.payment_token_contract_id if release else None
            token = resolve_deployment_payment_token(
                project,
                self.payment_tokens,
                proposed=deployment.proposed_payment_token_contract_id,
                release_token=release_token,
            )
            if not token:
                raise RuntimeError(
                    "Missing payment token contract ID for init (project/payment/env)"
                )

            await self.ledger.invoke_signed(
                contract_id,
                "init",
                [
                    AddressArg(self.ledger.backend_public_key),
                    AddressArg(token),
                    AddressArg(project.treasury_address),
                ],
            )

            await self.deployments.update_deployment_status(
                task.deployment_id,
                DeploymentStatus.SUCCESS.value,
                tx_hash=submitted.tx_hash,
                finished=True,
            )
            await self.projects.update_project_contracts(
                task.project_id,
                subscription_contract_id=contract_id,
                payment_token_contract_id=token,
                wasm_release_id=deployment.wasm_release_id,
                deployed_wasm_hash=deployment.wasm_hash,
            )
            await self.projects.update_project_status(task.project_id, ProjectStatus.ACTIVE.value)
            log.info(
                "Deployment %s succeeded: contract %s (tx %s)",
                task.deployment_id, contract_id, submitted.tx_hash[:16],
            )
        except Exception as exc:
            message = str(exc) or "unknown deployment error"
            log.error("Deployment %s failed: %s", task.deployment_id, message)
            await self.deployments.update_deployment_status(
                task.deployment_id,
                DeploymentStatus.FAILED.value,
                error_code=DEPLOY_EXECUTION_ERROR,
                error_message=message,
                finished=True,
            )
            await self.projects.update_project_status(task.project_id, ProjectStatus.FAILED.value)
