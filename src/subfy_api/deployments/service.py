"""DeploymentsService - owner-facing prepare/submit/status for contract deployments."""

from __future__ import annotations

import logging

from subfy_api.deployments.releases import ReleaseService
from subfy_api.errors import BadRequestError, NotFoundError, UnauthorizedError
from subfy_api.interfaces.dispatch import DeploymentTask, TaskDispatcher
from subfy_api.interfaces.ledger import LedgerClient
from subfy_api.interfaces.store import DeploymentStore, ProjectStore
from subfy_api.models.records import (
    DeploymentRecord,
    DeploymentStatus,
    NewDeployment,
    ProjectRecord,
    ProjectStatus,
)
from subfy_api.models.results import DeploymentAccepted, DeployPreparation

log = logging.getLogger(__name__)

PROCESSING = "PROCESSING"


class DeploymentsService:
    """Drives a project from no contract to a deployed, initialized one.

    ``prepare`` hands the owner an unsigned contract-creation transaction.
    ``submit`` records the signed result and hands execution to the
    configured TaskDispatcher, which either queues it or runs it inline.
    """

    def __init__(
        self,
        projects: ProjectStore,
        deployments: DeploymentStore,
        releases: ReleaseService,
        ledger: LedgerClient,
        dispatcher: TaskDispatcher,
    ) -> None:
        self.projects = projects
        self.deployments = deployments
        self.releases = releases
        self.ledger = ledger
        self.dispatcher = dispatcher

    async def _owned_project(self, project_id: str, owner: str) -> ProjectRecord:
        project = await self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_public_key != owner:
            raise UnauthorizedError("You do not own this project")
        return project

    async def prepare(self, owner: str, project_id: str) -> DeployPreparation:
        project = await self._owned_project(project_id, owner)
        release = await self.releases.find_latest(project.network)
        if release is None:
            raise BadRequestError("No deployed wasm release available. Run contracts CD first.")

        prepared = await self.ledger.prepare_deploy_contract(owner, release.wasm_hash)
        log.info(
            "Prepared deployment of release %s for project %s", release.id, project_id
        )
        return DeployPreparation(
            project_id=project.id,
            network=project.network,
            wasm_artifact_path=release.gcs_uri,
            wasm_release_id=release.id,
            wasm_hash=release.wasm_hash,
            unsigned_xdr=prepared.unsigned_xdr,
            salt_hex=prepared.salt_hex,
            network_passphrase=self.ledger.network_passphrase,
            owner_public_key=project.owner_public_key,
        )

    async def submit(
        self,
        owner: str,
        project_id: str,
        signed_xdr: str,
        wasm_release_id: str | None = None,
        wasm_hash: str | None = None,
        salt_hex: str | None = None,
        proposed_payment_token_contract_id: str | None = None,
    ) -> DeploymentAccepted:
        await self._owned_project(project_id, owner)
        if not (signed_xdr or "").strip():
            raise BadRequestError("signed_xdr is required")

        deployment = await self.deployments.create_deployment(NewDeployment(
            project_id=project_id,
            owner_public_key=owner,
            signed_xdr=signed_xdr.strip(),
            proposed_subscription_contract_id=None,
            proposed_payment_token_contract_id=proposed_payment_token_contract_id or None,
            wasm_release_id=wasm_release_id,
            wasm_hash=wasm_hash,
            salt=salt_hex,
        ))
        await self.projects.update_project_status(project_id, ProjectStatus.DEPLOYING.value)
        log.info("Deployment %s created for project %s", deployment.id, project_id)

        task_name = await self.dispatcher.dispatch(
            DeploymentTask(deployment_id=deployment.id, project_id=project_id)
        )
        if task_name:
            # the task callback may already have moved it past PENDING
            queued = await self.deployments.update_deployment_status(
                deployment.id,
                DeploymentStatus.QUEUED.value,
                task_name=task_name,
                only_if_status=DeploymentStatus.PENDING.value,
            )
            if queued:
                log.info("Deployment %s queued as %s", deployment.id, task_name)
            else:
                log.info(
                    "Deployment %s already picked up by task %s", deployment.id, task_name
                )
            return DeploymentAccepted(deployment.id, DeploymentStatus.QUEUED.value)
        return DeploymentAccepted(deployment.id, PROCESSING)

    async def get_status(self, owner: str, deployment_id: str) -> DeploymentRecord:
        deployment = await self.deployments.get_deployment(deployment_id)
        if deployment is None:
            raise NotFoundError("Deployment not found")
        if deployment.owner_public_key != owner:
            raise UnauthorizedError("You do not own this deployment")
        return deployment
