"""Task dispatch strategies - run deployment execution inline or via Cloud Tasks."""

from __future__ import annotations

import base64
import json
import logging

import httpx

from subfy_api.deployments.execution import DeploymentExecutor
from subfy_api.errors import TaskDispatchError
from subfy_api.interfaces.dispatch import DeploymentTask, TaskDispatcher
from subfy_api.models.config import ApiConfig, TasksConfig

log = logging.getLogger(__name__)

CLOUD_TASKS_API = "https://cloudtasks.googleapis.com/v2"
METADATA_TOKEN_URL = (
    "http://metadata.google.internal/computeMetadata/v1/"
    "instance/service-accounts/default/token"
)


class InlineDispatcher:
    """Runs the execution step in-process before returning."""

    def __init__(self, executor: DeploymentExecutor) -> None:
        self._executor = executor

    async def dispatch(self, task: DeploymentTask) -> str | None:
        log.info("Executing deployment %s inline", task.deployment_id)
        await self._executor.execute_task(task)
        return None


class CloudTasksDispatcher:
    """Creates an HTTP-callback task through the Cloud Tasks REST API.

    The task POSTs the JSON payload to ``tasks.target_url``. The callback is
    authorized with an OIDC token for the invoker service account when one is
    configured, otherwise with the shared internal bearer token. When the
    create request certainly did not produce a task (no connection, or an
    error status) the deployment is executed inline instead. When the outcome
    is unknown, TaskDispatchError is raised and the deployment stays PENDING.
    """

    def __init__(
        self,
        tasks: TasksConfig,
        executor: DeploymentExecutor,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tasks = tasks
        self._executor = executor
        self._timeout = timeout
        self._transport = transport

    @property
    def queue_path(self) -> str:
        t = self._tasks
        return f"projects/{t.project_id}/locations/{t.location}/queues/{t.queue}"

    def build_task(self, task: DeploymentTask) -> dict:
        body = base64.b64encode(json.dumps(task.to_dict()).encode()).decode()
        headers = {"Content-Type": "application/json"}
        http_request: dict = {
            "httpMethod": "POST",
            "url": self._tasks.target_url,
            "headers": headers,
            "body": body,
        }
        if self._tasks.invoker_service_account_email:
            http_request["oidcToken"] = {
                "serviceAccountEmail": self._tasks.invoker_service_account_email,
            }
        elif self._tasks.internal_token:
            headers["Authorization"] = f"Bearer {self._tasks.internal_token}"
        return {"task": {"httpRequest": http_request}}

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        if self._tasks.access_token:
            return self._tasks.access_token
        resp = await client.get(METADATA_TOKEN_URL, headers={"Metadata-Flavor": "Google"})
        resp.raise_for_status()
        return resp.json()["access_token"]

    async def _inline(self, task: DeploymentTask, reason: object) -> None:
        log.warning(
            "Cloud Tasks unavailable for deployment %s (%s); executing inline",
            task.deployment_id, reason,
        )
        await self._executor.execute_task(task)

    async def dispatch(self, task: DeploymentTask) -> str | None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                token = await self._access_token(client)
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                await self._inline(task, exc)
                return None

            try:
                resp = await client.post(
                    f"{CLOUD_TASKS_API}/{self.queue_path}/tasks",
                    json=self.build_task(task),
                    headers={"Authorization": f"Bearer {token}"},
                )
                resp.raise_for_status()
            except (httpx.ConnectError, httpx.ConnectTimeout, httpx.HTTPStatusError) as exc:
                # the create request never reached the queue or was refused
                await self._inline(task, exc)
                return None
            except httpx.HTTPError as exc:
                raise TaskDispatchError(
                    f"Task creation for deployment {task.deployment_id} is unconfirmed: {exc}"
                ) from exc

        try:
            name = resp.json()["name"]
        except (KeyError, TypeError, ValueError) as exc:
            raise TaskDispatchError(
                f"Cloud Tasks returned no task name for deployment {task.deployment_id}"
            ) from exc

        log.info("Created task %s for deployment %s", name, task.deployment_id)
        return name


def select_dispatcher(config: ApiConfig, executor: DeploymentExecutor) -> TaskDispatcher:
    """Inline outside production or when the queue is not fully configured."""
    if not config.is_production:
        log.info("Non-production environment: deployments execute inline")
        return InlineDispatcher(executor)
    if not config.tasks.is_configured:
        log.warning("Cloud Tasks config missing; falling back to inline execution")
        return InlineDispatcher(executor)
    return CloudTasksDispatcher(config.tasks, executor)
