"""Protocol interfaces for all subfy_api components."""

from subfy_api.interfaces.dispatch import DeploymentTask, TaskDispatcher
from subfy_api.interfaces.ledger import LedgerClient
from subfy_api.interfaces.store import (
    DeploymentStore,
    ProjectStore,
    ReleaseStore,
    UserStore,
)

__all__ = [
    "DeploymentTask", "TaskDispatcher",
    "LedgerClient",
    "DeploymentStore", "ProjectStore", "ReleaseStore", "UserStore",
]
