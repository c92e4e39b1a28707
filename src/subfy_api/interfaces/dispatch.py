"""TaskDispatcher protocol - how deployment execution gets scheduled."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DeploymentTask:
    deployment_id: str
    project_id: str

    def to_dict(self) -> dict:
        return {"deployment_id": self.deployment_id, "project_id": self.project_id}


class TaskDispatcher(Protocol):
    """Schedules a deployment execution.

    Returns a task reference when the work was queued, or None when it already
    ran inline.
    """

    async def dispatch(self, task: DeploymentTask) -> str | None:
        ...
