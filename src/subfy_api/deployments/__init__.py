"""Contract deployment orchestration - prepare, submit, execute, dispatch."""

from subfy_api.deployments.dispatch import (
    CloudTasksDispatcher,
    InlineDispatcher,
    select_dispatcher,
)
from subfy_api.deployments.execution import DeploymentExecutor
from subfy_api.deployments.releases import ReleaseService
from subfy_api.deployments.service import DeploymentsService

__all__ = [
    "CloudTasksDispatcher", "InlineDispatcher", "select_dispatcher",
    "DeploymentExecutor", "ReleaseService", "DeploymentsService",
]
