"""aiohttp application - routes, bearer auth guard and error rendering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aiohttp import web

from subfy_api.auth.tokens import verify_token
from subfy_api.billing.service import BillingService
from subfy_api.deployments.execution import DeploymentExecutor
from subfy_api.deployments.releases import ReleaseService
from subfy_api.deployments.service import DeploymentsService
from subfy_api.errors import BadRequestError, SubfyError, UnauthorizedError
from subfy_api.interfaces.dispatch import DeploymentTask
from subfy_api.models.config import ApiConfig
from subfy_api.models.records import NewRelease
from subfy_api.projects.service import ProjectsService

if TYPE_CHECKING:
    from subfy_api.auth.service import AuthService

log = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer dispatches to."""

    config: ApiConfig
    projects: ProjectsService
    billing: BillingService
    deployments: DeploymentsService
    executor: DeploymentExecutor
    releases: ReleaseService
    auth: AuthService | None = None


SERVICES = web.AppKey("services", Services)


# ── Helpers ────────────────────────────────────────────────


def _field(body: dict, *names: str, default: Any = None) -> Any:
    """First present key; accepts both snake_case and camelCase bodies."""
    for name in names:
        if name in body and body[name] is not None:
            return body[name]
    return default


def _int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise BadRequestError(f"{name} must be an integer") from exc


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


async def _json(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as exc:
        raise BadRequestError("Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise BadRequestError("JSON body must be an object")
    return body


def _bearer(request: web.Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):]


def _services(request: web.Request) -> Services:
    return request.app[SERVICES]


def _owner(request: web.Request) -> str:
    """Public key of the authenticated wallet."""
    token = _bearer(request)
    if not token:
        raise UnauthorizedError("Missing authentication token")
    claims = verify_token(token, _services(request).config.auth.jwt_secret)
    return claims["sub"]


def _check_shared_secret(request: web.Request, secret: str, message: str) -> None:
    if secret and request.headers.get("Authorization") != f"Bearer {secret}":
        raise UnauthorizedError(message)


# ── Middleware ─────────────────────────────────────────────


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except SubfyError as exc:
        if exc.status >= 500:
            log.warning("%s %s failed: %s", request.method, request.path, exc.message)
        return web.json_response(
            {"error": exc.message, "status": exc.status}, status=exc.status
        )
    except web.HTTPException:
        raise
    except Exception:
        log.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"error": "Internal server error", "status": 500}, status=500
        )


# ── Health & auth ──────────────────────────────────────────


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def _auth_service(request: web.Request) -> AuthService:
    auth = _services(request).auth
    if auth is None:
        raise SubfyError("Wallet authentication is not configured")
    return auth


async def auth_challenge(request: web.Request) -> web.Response:
    public_key = request.query.get("public_key") or request.query.get("publicKey")
    if not public_key:
        raise BadRequestError("public_key query parameter is required")
    return web.json_response(_auth_service(request).generate_challenge(public_key))


async def auth_verify(request: web.Request) -> web.Response:
    body = await _json(request)
    public_key = _field(body, "public_key", "publicKey")
    if not public_key:
        raise BadRequestError("public_key is required")
    auth = _auth_service(request)
    if signature := _field(body, "signature"):
        result = await auth.verify_message(public_key, signature)
    elif transaction := _field(body, "transaction"):
        result = await auth.verify_transaction(public_key, transaction)
    else:
        raise BadRequestError('Either "signature" or "transaction" must be provided')
    return web.json_response(result.to_dict())


async def auth_me(request: web.Request) -> web.Response:
    return web.json_response({"public_key": _owner(request)})


# ── Projects ───────────────────────────────────────────────


async def create_project(request: web.Request) -> web.Response:
    owner = _owner(request)
    body = await _json(request)
    project = await _services(request).projects.create_project(
        owner=owner,
        name=_field(body, "name", default=""),
        network=_field(body, "network", default="testnet"),
        payment_currency=_field(body, "payment_currency", "paymentCurrency", default=""),
        treasury_address=_field(body, "treasury_address", "treasuryAddress", default=""),
        payment_token_contract_id=_field(
            body, "payment_token_contract_id", "paymentTokenContractId"
        ),
    )
    return web.json_response(project.to_dict(), status=201)


async def list_projects(request: web.Request) -> web.Response:
    owner = _owner(request)
    projects = await _services(request).projects.list_owner_projects(owner)
    return web.json_response([p.to_dict() for p in projects])


async def get_project(request: web.Request) -> web.Response:
    owner = _owner(request)
    project = await _services(request).projects.get_project_owned_by(
        request.match_info["project_id"], owner
    )
    return web.json_response(project.to_dict())


async def rename_project(request: web.Request) -> web.Response:
    owner = _owner(request)
    body = await _json(request)
    project = await _services(request).projects.rename_project(
        request.match_info["project_id"], owner, _field(body, "name", default="")
    )
    return web.json_response(project.to_dict())


# ── Deployments ────────────────────────────────────────────


async def prepare_deployment(request: web.Request) -> web.Response:
    owner = _owner(request)
    prepared = await _services(request).deployments.prepare(
        owner, request.match_info["project_id"]
    )
    return web.json_response(prepared.to_dict())


async def submit_deployment(request: web.Request) -> web.Response:
    owner = _owner(request)
    body = await _json(request)
    accepted = await _services(request).deployments.submit(
        owner,
        request.match_info["project_id"],
        signed_xdr=_field(body, "signed_xdr", "signedXdr", default=""),
        wasm_release_id=_field(body, "wasm_release_id", "wasmReleaseId"),
        wasm_hash=_field(body, "wasm_hash", "wasmHash"),
        salt_hex=_field(body, "salt_hex", "saltHex"),
        proposed_payment_token_contract_id=_field(
            body, "proposed_payment_token_contract_id", "proposedPaymentTokenContractId"
        ),
    )
    return web.json_response(accepted.to_dict(), status=202)


async def deployment_status(request: web.Request) -> web.Response:
    owner = _owner(request)
    deployment = await _services(request).deployments.get_status(
        owner, request.match_info["deployment_id"]
    )
    return web.json_response(deployment.to_dict())


# ── Billing (owner) ────────────────────────────────────────


async def list_plans(request: web.Request) -> web.Response:
    owner = _owner(request)
    page = await _services(request).billing.list_plans(
        owner,
        request.match_info["project_id"],
        request.query.get("offset"),
        request.query.get("limit"),
    )
    return web.json_response(page.to_dict())


async def list_subscriptions(request: web.Request) -> web.Response:
    owner = _owner(request)
    page = await _services(request).billing.list_subscriptions(
        owner,
        request.match_info["project_id"],
        request.query.get("offset"),
        request.query.get("limit"),
    )
    return web.json_response(page.to_dict())


async def create_plan(request: web.Request) -> web.Response:
    owner = _owner(request)
    body = await _json(request)
    result = await _services(request).billing.create_plan(
        owner,
        request.match_info["project_id"],
        plan_id=_int(_field(body, "plan_id", "planId"), "plan_id"),
        name=str(_field(body, "name", default="")),
        period_ledgers=_int(_field(body, "period_ledgers", "periodLedgers"), "period_ledgers"),
        price_stroops=_field(body, "price_stroops", "priceStroops", default=""),
    )
    return web.json_response(result, status=201)


async def set_plan_status(request: web.Request) -> web.Response:
    owner = _owner(request)
    body = await _json(request)
    result = await _services(request).billing.set_plan_status(
        owner,
        request.match_info["project_id"],
        _int(request.match_info["plan_id"], "plan_id"),
        _bool(_field(body, "active", default=False)),
    )
    return web.json_response(result)


async def renew_due(request: web.Request) -> web.Response:
    owner = _owner(request)
    report = await _services(request).billing.trigger_renew_due(
        owner, request.match_info["project_id"]
    )
    return web.json_response(report.to_dict())


# ── Checkout (public) ──────────────────────────────────────


async def checkout_context(request: web.Request) -> web.Response:
    context = await _services(request).billing.get_checkout_context(
        request.match_info["project_id"], request.query.get("subscriber")
    )
    return web.json_response(context.to_dict())


async def prepare_subscribe(request: web.Request) -> web.Response:
    body = await _json(request)
    prepared = await _services(request).billing.prepare_subscribe(
        request.match_info["project_id"],
        _field(body, "subscriber", default=""),
        _int(_field(body, "plan_id", "planId"), "plan_id"),
    )
    return web.json_response(prepared.to_dict())


async def prepare_cancel(request: web.Request) -> web.Response:
    body = await _json(request)
    prepared = await _services(request).billing.prepare_cancel(
        request.match_info["project_id"], _field(body, "subscriber", default="")
    )
    return web.json_response(prepared.to_dict())


async def prepare_allowance(request: web.Request) -> web.Response:
    body = await _json(request)
    prepared = await _services(request).billing.prepare_renew_allowance(
        request.match_info["project_id"],
        _field(body, "subscriber", default=""),
        _field(body, "amount_stroops", "amountStroops", default=""),
        _field(body, "expiration_ledger", "expiration_ledgers", "expirationLedgers"),
    )
    return web.json_response(prepared.to_dict())


async def prepare_increase_cycles(request: web.Request) -> web.Response:
    body = await _json(request)
    prepared = await _services(request).billing.prepare_increase_allowance_cycles(
        request.match_info["project_id"],
        _field(body, "subscriber", default=""),
        _int(_field(body, "plan_id", "planId"), "plan_id"),
        _field(body, "additional_cycles", "additionalCycles"),
    )
    return web.json_response(prepared.to_dict())


async def checkout_submit(request: web.Request) -> web.Response:
    body = await _json(request)
    result = await _services(request).billing.submit_user_signed_xdr(
        _field(body, "signed_xdr", "signedXdr")
    )
    return web.json_response(result.to_dict())


# ── Internal callbacks ─────────────────────────────────────


async def deploy_contract_task(request: web.Request) -> web.Response:
    services = _services(request)
    _check_shared_secret(
        request, services.config.tasks.internal_token, "Invalid internal task token"
    )
    body = await _json(request)
    deployment_id = _field(body, "deployment_id", "deploymentId")
    project_id = _field(body, "project_id", "projectId")
    if not deployment_id or not project_id:
        raise BadRequestError("deployment_id and project_id are required")
    await services.executor.execute_task(DeploymentTask(deployment_id, project_id))
    return web.json_response({"ok": True})


async def register_release(request: web.Request) -> web.Response:
    services = _services(request)
    _check_shared_secret(
        request, services.config.releases_internal_token, "Invalid wasm release internal token"
    )
    body = await _json(request)
    release = await services.releases.register(NewRelease(
        contract_name=_field(body, "contract_name", "contractName", default=""),
        network=_field(body, "network", default=""),
        bucket_path=_field(body, "bucket_path", "bucketPath", default=""),
        gcs_uri=_field(body, "gcs_uri", "gcsUri", default=""),
        wasm_hash=_field(body, "wasm_hash", "wasmHash", default=""),
        sha256=_field(body, "sha256", default=""),
        git_sha=_field(body, "git_sha", "gitSha", default=""),
        uploaded_at_utc=_field(body, "uploaded_at_utc", "uploadedAtUtc", default=""),
        payment_token_contract_id=_field(
            body, "payment_token_contract_id", "paymentTokenContractId"
        ),
    ))
    return web.json_response({"id": release.id}, status=201)


# ── Application ────────────────────────────────────────────


def create_app(services: Services) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[SERVICES] = services

    r = app.router
    r.add_get("/health", health)

    r.add_get("/auth/challenge", auth_challenge)
    r.add_post("/auth/verify", auth_verify)
    r.add_get("/auth/me", auth_me)

    r.add_post("/projects", create_project)
    r.add_get("/projects", list_projects)
    r.add_get("/projects/{project_id}", get_project)
    r.add_patch("/projects/{project_id}", rename_project)

    r.add_post("/projects/{project_id}/deployments/prepare", prepare_deployment)
    r.add_post("/projects/{project_id}/deployments/submit", submit_deployment)
    r.add_get("/deployments/{deployment_id}", deployment_status)

    r.add_get("/projects/{project_id}/plans", list_plans)
    r.add_post("/projects/{project_id}/plans", create_plan)
    r.add_patch("/projects/{project_id}/plans/{plan_id}/status", set_plan_status)
    r.add_get("/projects/{project_id}/subscriptions", list_subscriptions)
    r.add_post("/projects/{project_id}/renew-due", renew_due)

    r.add_post("/checkout/submit", checkout_submit)
    r.add_get("/checkout/{project_id}", checkout_context)
    r.add_post("/checkout/{project_id}/subscribe/prepare", prepare_subscribe)
    r.add_post("/checkout/{project_id}/cancel/prepare", prepare_cancel)
    r.add_post("/checkout/{project_id}/allowance/prepare", prepare_allowance)
    r.add_post(
        "/checkout/{project_id}/allowance/increase-cycles/prepare", prepare_increase_cycles
    )

    r.add_post("/internal/tasks/deploy-contract", deploy_contract_task)
    r.add_post("/internal/wasm-releases/register", register_release)
    return app
