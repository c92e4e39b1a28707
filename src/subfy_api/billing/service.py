"""BillingService - plans, subscriptions, renewals and checkout on-chain.

Every read and write goes through the LedgerClient against the project's
deployed subscription contract. The contract needs an explicit ``init``
before most methods work, so owner-side calls that fail with the
not-initialized code initialize the contract and retry exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from subfy_api.billing.limits import (
    MAX_CONTRACT_PAGE_SIZE,
    clamp_allowance_expiration_ledger,
    normalize_pagination,
    parse_i128,
)
from subfy_api.billing.tokens import resolve_project_payment_token
from subfy_api.errors import BadRequestError, NotFoundError, UnauthorizedError
from subfy_api.interfaces.ledger import LedgerClient
from subfy_api.interfaces.store import ProjectStore
from subfy_api.models.config import PaymentTokenDefaults
from subfy_api.models.contract import Plan, Subscription
from subfy_api.models.records import PaymentCurrency, ProjectRecord
from subfy_api.models.results import (
    CheckoutContext,
    CheckoutProject,
    PlanPage,
    PreparedTransaction,
    RenewalReport,
    SubmitResult,
    SubscriptionPage,
)
from subfy_api.stellar.args import AddressArg, Bool, I128, ScArg, String, U32
from subfy_api.stellar.contract_errors import (
    ContractError,
    is_allowance_error,
    parse_contract_error_code,
    to_checkout_error,
    to_client_error,
)

log = logging.getLogger(__name__)

RENEW_PAGE_SIZE = MAX_CONTRACT_PAGE_SIZE
RENEW_MAX_PAGES = 200
CHECKOUT_PAGE_SIZES = (20, 10, 5, 1)

NO_CONTRACT = "Project has no deployed subscription contract"
NO_PAYMENT_TOKEN = "Project has no payment token contract configured"


def _code(error: BaseException) -> int | None:
    return parse_contract_error_code(error)


def _as_list(data: Any) -> list:
    return list(data) if isinstance(data, (list, tuple)) else []


class BillingService:
    """Owner-side and checkout-side operations on a project's contract."""

    def __init__(
        self,
        projects: ProjectStore,
        ledger: LedgerClient,
        payment_tokens: PaymentTokenDefaults,
    ) -> None:
        self.projects = projects
        self.ledger = ledger
        self.payment_tokens = payment_tokens

    # ── Project guards ─────────────────────────────────────

    async def _owned_project(self, project_id: str, owner: str) -> ProjectRecord:
        project = await self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.owner_public_key != owner:
            raise UnauthorizedError("You do not own this project")
        if not project.subscription_contract_id:
            raise BadRequestError(NO_CONTRACT)
        return project

    async def _checkout_project(self, project_id: str) -> ProjectRecord:
        project = await self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if not project.subscription_contract_id:
            raise BadRequestError(NO_CONTRACT)
        return project

    @staticmethod
    def _subscriber(address: str | None) -> str:
        value = (address or "").strip()
        if not value:
            raise BadRequestError("Subscriber address is required")
        return value

    # ── Lazy initialization ────────────────────────────────

    async def initialize_contract_if_possible(self, project: ProjectRecord) -> None:
        """Call ``init`` on the project's contract.

        The already-initialized code is treated as success, so concurrent
        initializers and repeated calls are harmless.
        """
        if not project.subscription_contract_id:
            raise BadRequestError(NO_CONTRACT)
        token = resolve_project_payment_token(project, self.payment_tokens)
        if not token:
            raise BadRequestError(
                "Contract is not initialized and project has no payment token "
                "contract configured"
            )
        log.info(
            "Initializing contract %s for project %s",
            project.subscription_contract_id[:16], project.id,
        )
        try:
            await self.ledger.invoke_signed(
                project.subscription_contract_id,
                "init",
                [
                    AddressArg(self.ledger.backend_public_key),
                    AddressArg(token),
                    AddressArg(project.treasury_address),
                ],
            )
        except Exception as exc:
            if _code(exc) == ContractError.ALREADY_INITIALIZED:
                log.debug("Contract %s already initialized", project.subscription_contract_id[:16])
                return
            raise to_client_error(exc, "Failed to initialize contract") from exc

        if not project.payment_token_contract_id:
            await self.projects.update_project_contracts(
                project.id, payment_token_contract_id=token
            )
            project.payment_token_contract_id = token

    async def _view_with_init(
        self,
        project: ProjectRecord,
        method: str,
        args: Sequence[ScArg],
        fallback: str,
    ) -> Any:
        contract_id = project.subscription_contract_id
        try:
            return await self.ledger.invoke_view(contract_id, method, args)
        except Exception as exc:
            if _code(exc) != ContractError.NOT_INITIALIZED:
                raise to_client_error(exc, fallback) from exc
        await self.initialize_contract_if_possible(project)
        try:
            return await self.ledger.invoke_view(contract_id, method, args)
        except Exception as exc:
            raise to_client_error(exc, fallback) from exc

    async def _admin_write(
        self,
        project: ProjectRecord,
        owner: str,
        method: str,
        build_args: Callable[[str], list[ScArg]],
        fallback: str,
    ) -> None:
        """Invoke an admin method as the owner, then as the backend if needed.

        Not-initialized triggers init and a retry with the backend as caller.
        Unauthorized means the contract's stored admin is the backend key,
        so the call is retried with it.
        """
        contract_id = project.subscription_contract_id
        try:
            await self.ledger.invoke_signed(contract_id, method, build_args(owner))
            return
        except Exception as exc:
            code = _code(exc)
            if code == ContractError.NOT_INITIALIZED:
                await self.initialize_contract_if_possible(project)
            elif code != ContractError.UNAUTHORIZED:
                raise to_client_error(exc, fallback) from exc
        try:
            await self.ledger.invoke_signed(
                contract_id, method, build_args(self.ledger.backend_public_key)
            )
        except Exception as exc:
            raise to_client_error(exc, fallback) from exc

    # ── Owner operations ───────────────────────────────────

    async def list_plans(
        self, owner: str, project_id: str, offset: Any = None, limit: Any = None
    ) -> PlanPage:
        safe_offset, safe_limit = normalize_pagination(offset, limit)
        project = await self._owned_project(project_id, owner)
        data = await self._view_with_init(
            project, "list_plans", [U32(safe_offset), U32(safe_limit)], "Failed to list plans"
        )
        return PlanPage(
            project_id=project_id,
            subscription_contract_id=project.subscription_contract_id,
            offset=safe_offset,
            limit=safe_limit,
            items=[Plan.from_native(p) for p in _as_list(data)],
        )

    async def list_subscriptions(
        self, owner: str, project_id: str, offset: Any = None, limit: Any = None
    ) -> SubscriptionPage:
        safe_offset, safe_limit = normalize_pagination(offset, limit)
        project = await self._owned_project(project_id, owner)
        data = await self._view_with_init(
            project,
            "list_subscriptions",
            [U32(safe_offset), U32(safe_limit)],
            "Failed to list subscriptions",
        )
        return SubscriptionPage(
            project_id=project_id,
            subscription_contract_id=project.subscription_contract_id,
            offset=safe_offset,
            limit=safe_limit,
            items=[Subscription.from_native(s) for s in _as_list(data)],
        )

    async def create_plan(
        self,
        owner: str,
        project_id: str,
        plan_id: int,
        name: str,
        period_ledgers: int,
        price_stroops: int | str,
    ) -> dict:
        project = await self._owned_project(project_id, owner)
        try:
            price = int(str(price_stroops).strip())
            plan_args = (U32(int(plan_id)), String(name or ""), U32(int(period_ledgers)), I128(price))
        except (TypeError, ValueError) as exc:
            raise BadRequestError(f"Invalid plan input: {exc}") from exc

        def build(caller: str) -> list[ScArg]:
            return [AddressArg(caller), *plan_args]

        await self._admin_write(project, owner, "create_plan", build, "Failed to create plan")
        log.info("Plan %s created on project %s", plan_id, project_id)
        return {"ok": True}

    async def set_plan_status(
        self, owner: str, project_id: str, plan_id: int, active: bool
    ) -> dict:
        project = await self._owned_project(project_id, owner)
        try:
            plan = U32(int(plan_id))
        except (TypeError, ValueError) as exc:
            raise BadRequestError(f"Invalid plan id: {exc}") from exc

        def build(caller: str) -> list[ScArg]:
            return [AddressArg(caller), plan, Bool(bool(active))]

        await self._admin_write(
            project, owner, "set_plan_status", build, "Failed to update plan status"
        )
        log.info("Plan %s on project %s set active=%s", plan_id, project_id, active)
        return {"ok": True}

    async def trigger_renew_due(self, owner: str, project_id: str) -> RenewalReport:
        """Renew every active subscription whose renewal ledger has passed.

        Subscriptions are swept page by page and renewed one at a time. A
        renewal that fails does not stop the sweep; allowance shortfalls are
        counted apart from other failures.
        """
        project = await self._owned_project(project_id, owner)
        contract_id = project.subscription_contract_id
        latest = await self.ledger.get_latest_ledger_sequence()
        report = RenewalReport(
            project_id=project_id,
            subscription_contract_id=contract_id,
            latest_ledger=latest,
        )

        offset = 0
        for _ in range(RENEW_MAX_PAGES):
            try:
                page = await self.ledger.invoke_view(
                    contract_id, "list_subscriptions", [U32(offset), U32(RENEW_PAGE_SIZE)]
                )
            except Exception as exc:
                raise to_client_error(exc, "Failed to list subscriptions") from exc
            items = [Subscription.from_native(s) for s in _as_list(page)]
            if not items:
                break

            for sub in items:
                report.scanned += 1
                if not sub.is_due(latest):
                    continue
                try:
                    await self.ledger.invoke_signed(
                        contract_id, "renew", [AddressArg(sub.subscriber)]
                    )
                    report.renewed += 1
                except Exception as exc:
                    if is_allowance_error(exc):
                        report.skipped_allowance += 1
                        log.warning("Renewal skipped for %s: not enough allowance", sub.subscriber)
                    else:
                        report.failed += 1
                        log.warning("Renewal failed for %s: %s", sub.subscriber, exc)
            offset += RENEW_PAGE_SIZE

        log.info(
            "Renew sweep on %s at ledger %d: scanned=%d renewed=%d "
            "skipped_allowance=%d failed=%d",
            project_id, latest, report.scanned, report.renewed,
            report.skipped_allowance, report.failed,
        )
        return report

    # ── Checkout ───────────────────────────────────────────

    async def _checkout_plans(self, contract_id: str) -> Any:
        """First plan page, shrinking the page size on invalid-page-size."""
        last_error: Exception | None = None
        for size in CHECKOUT_PAGE_SIZES:
            try:
                return await self.ledger.invoke_view(contract_id, "list_plans", [U32(0), U32(size)])
            except Exception as exc:
                if _code(exc) != ContractError.INVALID_PAGE_SIZE:
                    raise
                log.debug("list_plans rejected page size %d", size)
                last_error = exc
        assert last_error is not None
        raise last_error

    async def get_checkout_context(
        self, project_id: str, subscriber: str | None = None
    ) -> CheckoutContext:
        project = await self._checkout_project(project_id)
        contract_id = project.subscription_contract_id

        try:
            plans_data = await self._checkout_plans(contract_id)
        except Exception as exc:
            if _code(exc) != ContractError.NOT_INITIALIZED:
                raise to_client_error(exc, "Failed to load checkout plans") from exc
            await self.initialize_contract_if_possible(project)
            try:
                plans_data = await self._checkout_plans(contract_id)
            except Exception as retry_exc:
                raise to_client_error(retry_exc, "Failed to load checkout plans") from retry_exc
        plans = [Plan.from_native(p) for p in _as_list(plans_data)]

        subscription: Subscription | None = None
        address = (subscriber or "").strip()
        if address:
            try:
                raw = await self.ledger.invoke_view(
                    contract_id, "get_subscription", [AddressArg(address)]
                )
                if raw:
                    subscription = Subscription.from_native(raw)
            except Exception as exc:
                if _code(exc) != ContractError.SUBSCRIPTION_NOT_FOUND:
                    raise to_client_error(exc, "Failed to load subscriber state") from exc

        remaining_allowance: str | None = None
        remaining_cycles: int | None = None
        if subscription is not None and subscription.active:
            token = resolve_project_payment_token(project, self.payment_tokens)
            plan = next((p for p in plans if p.id == subscription.plan_id), None)
            price = parse_i128(plan.price_stroops) if plan else 0
            if token and price > 0:
                try:
                    raw_allowance = await self.ledger.invoke_view(
                        token,
                        "allowance",
                        [AddressArg(subscription.subscriber), AddressArg(contract_id)],
                    )
                    allowance = parse_i128(raw_allowance)
                    remaining_allowance = str(allowance)
                    remaining_cycles = allowance // price
                except Exception as exc:
                    log.debug("Allowance lookup failed for %s: %s", subscription.subscriber, exc)
                    remaining_allowance = None
                    remaining_cycles = None

        return CheckoutContext(
            project=CheckoutProject(
                id=project.id,
                name=project.name,
                network=project.network,
                payment_currency=project.payment_currency or PaymentCurrency.USDC.value,
                subscription_contract_id=contract_id,
            ),
            plans=plans,
            subscription=subscription,
            remaining_allowance_stroops=remaining_allowance,
            remaining_cycles=remaining_cycles,
        )

    async def prepare_subscribe(
        self, project_id: str, subscriber: str, plan_id: int
    ) -> PreparedTransaction:
        project = await self._checkout_project(project_id)
        address = self._subscriber(subscriber)
        contract_id = project.subscription_contract_id
        try:
            raw_plan = await self.ledger.invoke_view(contract_id, "get_plan", [U32(int(plan_id))])
            if not Plan.from_native(raw_plan or {}).active:
                raise BadRequestError("Plan is inactive")
            return await self.ledger.prepare_unsigned_invoke(
                address, contract_id, "subscribe", [AddressArg(address), U32(int(plan_id))]
            )
        except Exception as exc:
            raise to_checkout_error(exc, "Failed to prepare subscribe transaction") from exc

    async def prepare_cancel(self, project_id: str, subscriber: str) -> PreparedTransaction:
        project = await self._checkout_project(project_id)
        address = self._subscriber(subscriber)
        try:
            return await self.ledger.prepare_unsigned_invoke(
                address, project.subscription_contract_id, "cancel", [AddressArg(address)]
            )
        except Exception as exc:
            raise to_checkout_error(exc, "Failed to prepare cancel transaction") from exc

    async def prepare_renew_allowance(
        self,
        project_id: str,
        subscriber: str,
        amount_stroops: int | str,
        expiration_ledger: Any = None,
    ) -> PreparedTransaction:
        """Approve an absolute allowance for the subscription contract."""
        project = await self._checkout_project(project_id)
        token = resolve_project_payment_token(project, self.payment_tokens)
        if not token:
            raise BadRequestError(NO_PAYMENT_TOKEN)
        address = self._subscriber(subscriber)
        try:
            amount = int(str(amount_stroops).strip())
        except ValueError:
            amount = 0
        if amount <= 0:
            raise BadRequestError("amount_stroops must be greater than 0")

        latest = await self.ledger.get_latest_ledger_sequence()
        expiration = clamp_allowance_expiration_ledger(latest, expiration_ledger)
        try:
            prepared = await self.ledger.prepare_unsigned_invoke(
                address,
                token,
                "approve",
                [
                    AddressArg(address),
                    AddressArg(project.subscription_contract_id),
                    I128(amount),
                    U32(expiration),
                ],
            )
        except Exception as exc:
            raise to_checkout_error(exc, "Failed to prepare allowance transaction") from exc
        prepared.expiration_ledger = expiration
        return prepared

    async def prepare_increase_allowance_cycles(
        self, project_id: str, subscriber: str, plan_id: int, additional_cycles: Any
    ) -> PreparedTransaction:
        """Raise the allowance by ``price * additional_cycles`` on top of what is left.

        The new value is absolute and never lower than the current allowance.
        """
        project = await self._checkout_project(project_id)
        token = resolve_project_payment_token(project, self.payment_tokens)
        if not token:
            raise BadRequestError(NO_PAYMENT_TOKEN)
        address = self._subscriber(subscriber)
        try:
            cycles = int(float(additional_cycles))
        except (TypeError, ValueError, OverflowError):
            cycles = 0
        if cycles <= 0:
            raise BadRequestError("additional_cycles must be greater than 0")

        contract_id = project.subscription_contract_id
        try:
            raw_plan = await self.ledger.invoke_view(contract_id, "get_plan", [U32(int(plan_id))])
            unit_price = parse_i128(Plan.from_native(raw_plan or {}).price_stroops)
            if unit_price <= 0:
                raise BadRequestError("Plan price must be greater than 0")
            current = parse_i128(
                await self.ledger.invoke_view(
                    token, "allowance", [AddressArg(address), AddressArg(contract_id)]
                )
            )
            new_allowance = current + unit_price * cycles
            latest = await self.ledger.get_latest_ledger_sequence()
            expiration = clamp_allowance_expiration_ledger(latest)
            prepared = await self.ledger.prepare_unsigned_invoke(
                address,
                token,
                "approve",
                [
                    AddressArg(address),
                    AddressArg(contract_id),
                    I128(new_allowance),
                    U32(expiration),
                ],
            )
        except Exception as exc:
            raise to_checkout_error(exc, "Failed to prepare allowance transaction") from exc
        prepared.expiration_ledger = expiration
        return prepared

    async def submit_user_signed_xdr(self, signed_xdr: str | None) -> SubmitResult:
        payload = (signed_xdr or "").strip()
        if not payload:
            raise BadRequestError("signed_xdr is required")
        try:
            return await self.ledger.submit_signed_xdr(payload)
        except Exception as exc:
            raise to_checkout_error(exc, "Failed to submit transaction") from exc
