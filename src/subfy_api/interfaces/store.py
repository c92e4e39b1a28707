"""Store protocols - the document store collaborator, one protocol per entity."""

from __future__ import annotations

from typing import Protocol

from subfy_api.models.records import (
    DeploymentRecord,
    NewDeployment,
    NewRelease,
    ProjectRecord,
    UserRecord,
    WasmReleaseRecord,
)


class ProjectStore(Protocol):

    async def create_project(
        self,
        owner_public_key: str,
        name: str,
        network: str,
        payment_currency: str,
        treasury_address: str,
        payment_token_contract_id: str | None = None,
        wasm_artifact_path: str | None = None,
    ) -> ProjectRecord:
        ...

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        ...

    async def list_projects_by_owner(self, owner_public_key: str) -> list[ProjectRecord]:
        ...

    async def update_project_status(self, project_id: str, status: str) -> None:
        ...

    async def update_project_contracts(
        self,
        project_id: str,
        subscription_contract_id: str | None = None,
        payment_token_contract_id: str | None = None,
        wasm_artifact_path: str | None = None,
        wasm_release_id: str | None = None,
        deployed_wasm_hash: str | None = None,
    ) -> None:
        """Write only the fields that are not None."""
        ...

    async def update_project_name(self, project_id: str, name: str) -> None:
        ...


class DeploymentStore(Protocol):

    async def create_deployment(self, new: NewDeployment) -> DeploymentRecord:
        ...

    async def get_deployment(self, deployment_id: str) -> DeploymentRecord | None:
        ...

    async def update_deployment_status(
        self,
        deployment_id: str,
        status: str,
        tx_hash: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        task_name: str | None = None,
        clear_error: bool = False,
        increment_attempt: bool = False,
        finished: bool = False,
        only_if_status: str | None = None,
    ) -> bool:
        ...


class ReleaseStore(Protocol):

    async def create_release(self, new: NewRelease) -> WasmReleaseRecord:
        ...

    async def get_release(self, release_id: str) -> WasmReleaseRecord | None:
        ...

    async def find_latest_release(
        self, contract_name: str, network: str
    ) -> WasmReleaseRecord | None:
        ...


class UserStore(Protocol):

    async def upsert_user(self, public_key: str) -> UserRecord:
        ...
