"""Deployment prepare/submit/status and the execution worker."""

from __future__ import annotations

import pytest

from subfy_api.deployments.execution import DEPLOY_EXECUTION_ERROR, DeploymentExecutor
from subfy_api.deployments.service import DeploymentsService
from subfy_api.errors import BadRequestError, LedgerError, NotFoundError, UnauthorizedError
from subfy_api.interfaces.dispatch import DeploymentTask
from subfy_api.models.config import PaymentTokenDefaults
from subfy_api.models.results import SubmitResult

from tests.conftest import TEST_PUBLIC
from tests.factories import (
    DEPLOYED_CONTRACT_ID,
    OTHER_PUBLIC,
    OWNER_PUBLIC,
    TOKEN_CONTRACT_ID,
    TREASURY_PUBLIC,
    WASM_HASH,
    make_new_deployment,
    make_new_release,
    seed_project,
)
from tests.mocks import TESTNET_PASSPHRASE, MockDispatcher, contract_error, plain_values

TASK_NAME = "projects/subfy/locations/us-central1/queues/deploy/tasks/123"


@pytest.fixture
async def draft(store):
    """A project that has not been deployed yet."""
    return await seed_project(store, subscription_contract_id=None, status="DRAFT")


# ── Test 1: Prepare ──────────────────────────────────────────────


async def test_prepare_without_release(deployments, ledger, draft):
    with pytest.raises(BadRequestError, match="No deployed wasm release available"):
        await deployments.prepare(OWNER_PUBLIC, draft.id)
    assert ledger.deploy_calls == []


async def test_prepare_uses_latest_release(deployments, releases, ledger, draft):
    await releases.register(make_new_release(
        wasm_hash="1" * 64, uploaded_at_utc="2026-01-01T00:00:00+00:00"
    ))
    newest = await releases.register(make_new_release(
        wasm_hash="2" * 64, uploaded_at_utc="2026-03-01T00:00:00+00:00"
    ))
    await releases.register(make_new_release(
        network="public", wasm_hash="3" * 64, uploaded_at_utc="2026-06-01T00:00:00+00:00"
    ))

    prep = await deployments.prepare(OWNER_PUBLIC, draft.id)

    assert prep.wasm_release_id == newest.id
    assert prep.wasm_hash == "2" * 64
    assert prep.wasm_artifact_path == newest.gcs_uri
    assert prep.unsigned_xdr == "unsigned:deploy"
    assert prep.salt_hex == "ab" * 32
    assert prep.network_passphrase == TESTNET_PASSPHRASE
    assert prep.owner_public_key == OWNER_PUBLIC
    assert ledger.deploy_calls == [(OWNER_PUBLIC, "2" * 64)]


async def test_prepare_other_owner(deployments, releases, draft):
    await releases.register(make_new_release())
    with pytest.raises(UnauthorizedError):
        await deployments.prepare(OTHER_PUBLIC, draft.id)


async def test_prepare_unknown_project(deployments):
    with pytest.raises(NotFoundError):
        await deployments.prepare(OWNER_PUBLIC, "missing")


# ── Test 2: Submit (inline execution) ────────────────────────────


async def test_submit_inline_success(deployments, store, ledger, draft):
    ledger.submit_result = SubmitResult(tx_hash="deploy-tx", contract_id=DEPLOYED_CONTRACT_ID)

    accepted = await deployments.submit(
        OWNER_PUBLIC, draft.id, " signed:deploy ", wasm_hash=WASM_HASH, salt_hex="ab" * 32
    )

    assert accepted.status == "PROCESSING"
    assert ledger.submitted == ["signed:deploy"]

    deployment = await store.get_deployment(accepted.deployment_id)
    assert deployment.status == "SUCCESS"
    assert deployment.tx_hash == "deploy-tx"
    assert deployment.attempt_count == 1
    assert deployment.finished_at
    assert deployment.error_code is None

    project = await store.get_project(draft.id)
    assert project.status == "ACTIVE"
    assert project.subscription_contract_id == DEPLOYED_CONTRACT_ID
    assert project.payment_token_contract_id == TOKEN_CONTRACT_ID
    assert project.deployed_wasm_hash == WASM_HASH

    contract_id, method, args = ledger.signed_calls[0]
    assert (contract_id, method) == (DEPLOYED_CONTRACT_ID, "init")
    assert plain_values(args) == [TEST_PUBLIC, TOKEN_CONTRACT_ID, TREASURY_PUBLIC]


async def test_submit_inline_failure(deployments, store, ledger, draft):
    ledger.submit_error = LedgerError("Transaction failed or not confirmed (FAILED, tx=abc)")

    accepted = await deployments.submit(OWNER_PUBLIC, draft.id, "signed:deploy")

    assert accepted.status == "PROCESSING"
    deployment = await store.get_deployment(accepted.deployment_id)
    assert deployment.status == "FAILED"
    assert deployment.error_code == DEPLOY_EXECUTION_ERROR
    assert "FAILED, tx=abc" in deployment.error_message
    project = await store.get_project(draft.id)
    assert project.status == "FAILED"


async def test_submit_requires_signed_xdr(deployments, store, draft):
    with pytest.raises(BadRequestError, match="signed_xdr is required"):
        await deployments.submit(OWNER_PUBLIC, draft.id, "  ")
    project = await store.get_project(draft.id)
    assert project.status == "DRAFT"


async def test_submit_other_owner(deployments, draft):
    with pytest.raises(UnauthorizedError):
        await deployments.submit(OTHER_PUBLIC, draft.id, "signed:deploy")


# ── Test 3: Submit (queued) ──────────────────────────────────────


async def test_submit_queued(store, releases, ledger, draft):
    dispatcher = MockDispatcher(task_name=TASK_NAME)
    service = DeploymentsService(store, store, releases, ledger, dispatcher)

    accepted = await service.submit(OWNER_PUBLIC, draft.id, "signed:deploy")

    assert accepted.to_dict() == {"deployment_id": accepted.deployment_id, "status": "QUEUED"}
    assert dispatcher.tasks == [DeploymentTask(accepted.deployment_id, draft.id)]

    deployment = await store.get_deployment(accepted.deployment_id)
    assert deployment.status == "QUEUED"
    assert deployment.task_name == TASK_NAME
    assert deployment.finished_at is None
    project = await store.get_project(draft.id)
    assert project.status == "DEPLOYING"
    assert ledger.submitted == []


async def test_submit_queued_after_callback_finished(store, releases, ledger, executor, draft):
    ledger.submit_result = SubmitResult(tx_hash="deploy-tx", contract_id=DEPLOYED_CONTRACT_ID)
    dispatcher = MockDispatcher(task_name=TASK_NAME, run=executor.execute_task)
    service = DeploymentsService(store, store, releases, ledger, dispatcher)

    accepted = await service.submit(OWNER_PUBLIC, draft.id, "signed:deploy")

    assert accepted.status == "QUEUED"
    deployment = await store.get_deployment(accepted.deployment_id)
    assert deployment.status == "SUCCESS"
    assert deployment.finished_at is not None
    assert (await store.get_project(draft.id)).status == "ACTIVE"


# ── Test 4: Status ───────────────────────────────────────────────


async def test_status_for_owner(deployments, ledger, draft):
    ledger.submit_result = SubmitResult(tx_hash="deploy-tx", contract_id=DEPLOYED_CONTRACT_ID)
    accepted = await deployments.submit(OWNER_PUBLIC, draft.id, "signed:deploy")

    record = await deployments.get_status(OWNER_PUBLIC, accepted.deployment_id)

    assert record.id == accepted.deployment_id
    assert record.status == "SUCCESS"


async def test_status_other_owner(deployments, store, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    with pytest.raises(UnauthorizedError, match="You do not own this deployment"):
        await deployments.get_status(OTHER_PUBLIC, created.id)


async def test_status_unknown(deployments):
    with pytest.raises(NotFoundError, match="Deployment not found"):
        await deployments.get_status(OWNER_PUBLIC, "missing")


# ── Test 5: Executor ─────────────────────────────────────────────


async def test_executor_missing_deployment(executor, ledger):
    await executor.execute_task(DeploymentTask("missing", "p1"))
    assert ledger.submitted == []


async def test_executor_retry_keeps_first_finish_time(executor, store, ledger, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    task = DeploymentTask(created.id, draft.id)
    ledger.submit_error = LedgerError("tx_bad_auth")

    await executor.execute_task(task)
    first = await store.get_deployment(created.id)
    await executor.execute_task(task)
    second = await store.get_deployment(created.id)

    assert first.status == second.status == "FAILED"
    assert first.attempt_count == 1
    assert second.attempt_count == 2
    assert second.finished_at == first.finished_at


async def test_executor_recovers_on_retry(executor, store, ledger, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    task = DeploymentTask(created.id, draft.id)

    ledger.submit_error = LedgerError("tx_too_late")
    await executor.execute_task(task)
    ledger.submit_error = None
    ledger.submit_result = SubmitResult(tx_hash="ok-tx", contract_id=DEPLOYED_CONTRACT_ID)
    await executor.execute_task(task)

    deployment = await store.get_deployment(created.id)
    assert deployment.status == "SUCCESS"
    assert deployment.error_code is None
    assert deployment.error_message is None
    assert (await store.get_project(draft.id)).status == "ACTIVE"


async def test_executor_ignores_redelivery_after_success(executor, store, ledger, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    task = DeploymentTask(created.id, draft.id)
    ledger.submit_result = SubmitResult(tx_hash="ok-tx", contract_id=DEPLOYED_CONTRACT_ID)
    await executor.execute_task(task)
    first = await store.get_deployment(created.id)

    ledger.submit_error = LedgerError("tx_bad_seq")
    await executor.execute_task(task)

    again = await store.get_deployment(created.id)
    assert again.status == "SUCCESS"
    assert again.attempt_count == first.attempt_count == 1
    assert again.tx_hash == "ok-tx"
    assert len(ledger.submitted) == 1
    project = await store.get_project(draft.id)
    assert project.status == "ACTIVE"
    assert project.subscription_contract_id == DEPLOYED_CONTRACT_ID


async def test_executor_without_contract_id(executor, store, ledger, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=None)

    await executor.execute_task(DeploymentTask(created.id, draft.id))

    deployment = await store.get_deployment(created.id)
    assert deployment.status == "FAILED"
    assert deployment.error_message == "Unable to determine deployed contract ID"
    assert ledger.signed_calls == []


async def test_executor_without_payment_token(executor, store, ledger):
    project = await seed_project(
        store, subscription_contract_id=None, payment_token_contract_id=None, status="DRAFT"
    )
    created = await store.create_deployment(make_new_deployment(project.id))
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=DEPLOYED_CONTRACT_ID)

    await executor.execute_task(DeploymentTask(created.id, project.id))

    deployment = await store.get_deployment(created.id)
    assert deployment.status == "FAILED"
    assert deployment.error_message == (
        "Missing payment token contract ID for init (project/payment/env)"
    )
    assert (await store.get_project(project.id)).status == "FAILED"


async def test_executor_uses_release_token(store, releases, ledger):
    executor = DeploymentExecutor(store, store, store, ledger, PaymentTokenDefaults())
    project = await seed_project(
        store, subscription_contract_id=None, payment_token_contract_id=None, status="DRAFT"
    )
    release = await releases.register(make_new_release(payment_token_contract_id="CRELEASETOKEN"))
    created = await store.create_deployment(
        make_new_deployment(project.id, wasm_release_id=release.id)
    )
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=DEPLOYED_CONTRACT_ID)

    await executor.execute_task(DeploymentTask(created.id, project.id))

    assert plain_values(ledger.signed_calls[0][2])[1] == "CRELEASETOKEN"
    stored = await store.get_project(project.id)
    assert stored.payment_token_contract_id == "CRELEASETOKEN"
    assert stored.wasm_release_id == release.id


async def test_executor_proposed_token_wins(executor, store, ledger, draft):
    created = await store.create_deployment(
        make_new_deployment(draft.id, proposed_payment_token_contract_id="CPROPOSED")
    )
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=DEPLOYED_CONTRACT_ID)

    await executor.execute_task(DeploymentTask(created.id, draft.id))

    assert plain_values(ledger.signed_calls[0][2])[1] == "CPROPOSED"


async def test_executor_init_rejected(executor, store, ledger, draft):
    created = await store.create_deployment(make_new_deployment(draft.id))
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=DEPLOYED_CONTRACT_ID)
    ledger.on_signed("init", contract_error(3))

    await executor.execute_task(DeploymentTask(created.id, draft.id))

    deployment = await store.get_deployment(created.id)
    assert deployment.status == "FAILED"
    assert "Error(Contract, #3)" in deployment.error_message
    project = await store.get_project(draft.id)
    assert project.subscription_contract_id is None


async def test_executor_missing_project(executor, store, ledger):
    created = await store.create_deployment(make_new_deployment("ghost"))
    ledger.submit_result = SubmitResult(tx_hash="tx", contract_id=DEPLOYED_CONTRACT_ID)

    await executor.execute_task(DeploymentTask(created.id, "ghost"))

    deployment = await store.get_deployment(created.id)
    assert deployment.status == "FAILED"
    assert deployment.error_message == "Project ghost not found"


# ── Test 6: Release registry ─────────────────────────────────────


async def test_register_release_missing_fields(releases):
    new = make_new_release()
    new.git_sha = ""
    new.gcs_uri = "  "
    with pytest.raises(BadRequestError, match="Missing release fields: gcs_uri, git_sha"):
        await releases.register(new)


async def test_register_release_unknown_network(releases):
    with pytest.raises(BadRequestError, match="Unknown network: futurenet"):
        await releases.register(make_new_release(network="futurenet"))


async def test_find_latest_none(releases):
    assert await releases.find_latest("testnet") is None
