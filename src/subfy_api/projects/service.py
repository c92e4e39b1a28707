"""ProjectsService - create, list, read and rename a tenant's projects."""

from __future__ import annotations

import logging

from subfy_api.errors import BadRequestError, NotFoundError, UnauthorizedError
from subfy_api.interfaces.store import ProjectStore
from subfy_api.models.config import Network
from subfy_api.models.records import PaymentCurrency, ProjectRecord

log = logging.getLogger(__name__)


class ProjectsService:

    def __init__(self, projects: ProjectStore) -> None:
        self.projects = projects

    async def create_project(
        self,
        owner: str,
        name: str,
        network: str,
        payment_currency: str,
        treasury_address: str,
        payment_token_contract_id: str | None = None,
    ) -> ProjectRecord:
        name = (name or "").strip()
        if not name:
            raise BadRequestError("Project name is required")
        treasury = (treasury_address or "").strip()
        if not treasury:
            raise BadRequestError("Treasury address is required")
        currency = (payment_currency or "").upper()
        if currency not in {c.value for c in PaymentCurrency}:
            raise BadRequestError("Payment currency must be USDC or EURC")
        network = (network or Network.TESTNET.value).lower()
        if network not in {n.value for n in Network}:
            raise BadRequestError("Network must be testnet or public")

        project = await self.projects.create_project(
            owner_public_key=owner,
            name=name,
            network=network,
            payment_currency=currency,
            treasury_address=treasury,
            payment_token_contract_id=(payment_token_contract_id or "").strip() or None,
        )
        log.info("Project %s created by %s on %s", project.id, owner, network)
        return project

    async def list_owner_projects(self, owner: str) -> list[ProjectRecord]:
        return await self.projects.list_projects_by_owner(owner)

    async def get_project_owned_by(self, project_id: str, owner: str) -> ProjectRecord:
        project = await self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_public_key != owner:
            raise UnauthorizedError("You do not own this project")
        return project

    async def rename_project(self, project_id: str, owner: str, name: str) -> ProjectRecord:
        name = (name or "").strip()
        if not name:
            raise BadRequestError("Project name is required")
        await self.get_project_owned_by(project_id, owner)
        await self.projects.update_project_name(project_id, name)
        updated = await self.projects.get_project(project_id)
        if updated is None:
            raise NotFoundError("Project not found after update")
        return updated
