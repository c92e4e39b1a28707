"""SQLite implementation of the project/deployment/release/user store protocols."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from subfy_api.models.records import (
    DeploymentRecord,
    DeploymentStatus,
    NewDeployment,
    NewRelease,
    PaymentCurrency,
    ProjectRecord,
    ProjectStatus,
    UserRecord,
    WasmReleaseRecord,
)

SCHEMA = """
-- Tenant projects
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    owner_public_key TEXT NOT NULL,
    name TEXT NOT NULL,
    network TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'DRAFT',
    subscription_contract_id TEXT,
    payment_token_contract_id TEXT,
    payment_currency TEXT NOT NULL DEFAULT 'USDC',
    treasury_address TEXT NOT NULL,
    wasm_artifact_path TEXT,
    wasm_release_id TEXT,
    deployed_wasm_hash TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_public_key, created_at);

-- Deployment attempts
CREATE TABLE IF NOT EXISTS deployments (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    owner_public_key TEXT NOT NULL,
    signed_xdr TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    tx_hash TEXT,
    error_code TEXT,
    error_message TEXT,
    task_name TEXT,
    attempt_count INTEGER NOT NULL DEFAULT 0,
    proposed_subscription_contract_id TEXT,
    proposed_payment_token_contract_id TEXT,
    wasm_release_id TEXT,
    wasm_hash TEXT,
    salt TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    finished_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_deployments_project ON deployments(project_id);

-- Published contract binaries
CREATE TABLE IF NOT EXISTS wasm_releases (
    id TEXT PRIMARY KEY,
    contract_name TEXT NOT NULL,
    network TEXT NOT NULL,
    bucket_path TEXT NOT NULL,
    gcs_uri TEXT NOT NULL,
    wasm_hash TEXT NOT NULL,
    sha256 TEXT NOT NULL,
    git_sha TEXT NOT NULL,
    uploaded_at_utc TEXT NOT NULL,
    payment_token_contract_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_releases_lookup
    ON wasm_releases(contract_name, network, uploaded_at_utc);

-- Authenticated wallets
CREATE TABLE IF NOT EXISTS users (
    public_key TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    last_login_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class SQLiteDocumentStore:
    """SQLite-backed store for projects, deployments, releases and users.

    Every write stamps ``updated_at`` and touches only the columns it was
    given. Each method commits on its own; there are no multi-row
    transactions.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Projects ───────────────────────────────────────────

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
        now = _now()
        project = ProjectRecord(
            id=_new_id(),
            owner_public_key=owner_public_key,
            name=name,
            network=network,
            status=ProjectStatus.DRAFT.value,
            payment_token_contract_id=payment_token_contract_id,
            payment_currency=payment_currency or PaymentCurrency.USDC.value,
            treasury_address=treasury_address,
            wasm_artifact_path=wasm_artifact_path,
            created_at=now,
            updated_at=now,
        )
        await self.db.execute(
            "INSERT INTO projects"
            " (id, owner_public_key, name, network, status, payment_token_contract_id,"
            "  payment_currency, treasury_address, wasm_artifact_path, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                project.id, project.owner_public_key, project.name, project.network,
                project.status, project.payment_token_contract_id, project.payment_currency,
                project.treasury_address, project.wasm_artifact_path, now, now,
            ),
        )
        await self.db.commit()
        return project

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        async with self.db.execute("SELECT * FROM projects WHERE id=?", (project_id,)) as cur:
            row = await cur.fetchone()
            return _row_to_project(row) if row else None

    async def list_projects_by_owner(self, owner_public_key: str) -> list[ProjectRecord]:
        async with self.db.execute(
            "SELECT * FROM projects WHERE owner_public_key=? ORDER BY created_at DESC",
            (owner_public_key,),
        ) as cur:
            return [_row_to_project(row) async for row in cur]

    async def update_project_status(self, project_id: str, status: str) -> None:
        await self.db.execute(
            "UPDATE projects SET status=?, updated_at=? WHERE id=?",
            (status, _now(), project_id),
        )
        await self.db.commit()

    async def update_project_contracts(
        self,
        project_id: str,
        subscription_contract_id: str | None = None,
        payment_token_contract_id: str | None = None,
        wasm_artifact_path: str | None = None,
        wasm_release_id: str | None = None,
        deployed_wasm_hash: str | None = None,
    ) -> None:
        values = {
            "subscription_contract_id": subscription_contract_id,
            "payment_token_contract_id": payment_token_contract_id,
            "wasm_artifact_path": wasm_artifact_path,
            "wasm_release_id": wasm_release_id,
            "deployed_wasm_hash": deployed_wasm_hash,
        }
        changes = {k: v for k, v in values.items() if v is not None}
        if not changes:
            return
        assignments = ", ".join(f"{k}=?" for k in changes)
        await self.db.execute(
            f"UPDATE projects SET {assignments}, updated_at=? WHERE id=?",
            (*changes.values(), _now(), project_id),
        )
        await self.db.commit()

    async def update_project_name(self, project_id: str, name: str) -> None:
        await self.db.execute(
            "UPDATE projects SET name=?, updated_at=? WHERE id=?",
            (name, _now(), project_id),
        )
        await self.db.commit()

    # ── Deployments ────────────────────────────────────────

    async def create_deployment(self, new: NewDeployment) -> DeploymentRecord:
        now = _now()
        deployment = DeploymentRecord(
            id=_new_id(),
            project_id=new.project_id,
            owner_public_key=new.owner_public_key,
            signed_xdr=new.signed_xdr,
            status=DeploymentStatus.PENDING.value,
            attempt_count=0,
            proposed_subscription_contract_id=new.proposed_subscription_contract_id,
            proposed_payment_token_contract_id=new.proposed_payment_token_contract_id,
            wasm_release_id=new.wasm_release_id,
            wasm_hash=new.wasm_hash,
            salt=new.salt,
            created_at=now,
            updated_at=now,
        )
        await self.db.execute(
            "INSERT INTO deployments"
            " (id, project_id, owner_public_key, signed_xdr, status, attempt_count,"
            "  proposed_subscription_contract_id, proposed_payment_token_contract_id,"
            "  wasm_release_id, wasm_hash, salt, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)",
            (
                deployment.id, deployment.project_id, deployment.owner_public_key,
                deployment.signed_xdr, deployment.status,
                deployment.proposed_subscription_contract_id,
                deployment.proposed_payment_token_contract_id,
                deployment.wasm_release_id, deployment.wasm_hash, deployment.salt,
                now, now,
            ),
        )
        await self.db.commit()
        return deployment

    async def get_deployment(self, deployment_id: str) -> DeploymentRecord | None:
        async with self.db.execute(
            "SELECT * FROM deployments WHERE id=?", (deployment_id,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_deployment(row) if row else None

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
        """Apply the update; with ``only_if_status`` only while the row is in that status.

        Returns whether a row was changed.
        """
        now = _now()
        assignments = ["status=?", "updated_at=?"]
        params: list = [status, now]
        if tx_hash is not None:
            assignments.append("tx_hash=?")
            params.append(tx_hash)
        if clear_error:
            assignments.append("error_code=NULL")
            assignments.append("error_message=NULL")
        if error_code is not None:
            assignments.append("error_code=?")
            params.append(error_code)
        if error_message is not None:
            assignments.append("error_message=?")
            params.append(error_message)
        if task_name is not None:
            assignments.append("task_name=?")
            params.append(task_name)
        if increment_attempt:
            assignments.append("attempt_count=attempt_count+1")
        if finished:
            # written once; a later terminal update keeps the first timestamp
            assignments.append("finished_at=COALESCE(finished_at, ?)")
            params.append(now)
        where = "id=?"
        params.append(deployment_id)
        if only_if_status is not None:
            where += " AND status=?"
            params.append(only_if_status)
        cur = await self.db.execute(
            f"UPDATE deployments SET {', '.join(assignments)} WHERE {where}", params
        )
        changed = cur.rowcount > 0
        await cur.close()
        await self.db.commit()
        return changed

    # ── Wasm releases ──────────────────────────────────────

    async def create_release(self, new: NewRelease) -> WasmReleaseRecord:
        release = WasmReleaseRecord(
            id=_new_id(),
            contract_name=new.contract_name,
            network=new.network,
            bucket_path=new.bucket_path,
            gcs_uri=new.gcs_uri,
            wasm_hash=new.wasm_hash,
            sha256=new.sha256,
            git_sha=new.git_sha,
            uploaded_at_utc=new.uploaded_at_utc,
            payment_token_contract_id=new.payment_token_contract_id,
            created_at=_now(),
        )
        await self.db.execute(
            "INSERT INTO wasm_releases"
            " (id, contract_name, network, bucket_path, gcs_uri, wasm_hash, sha256,"
            "  git_sha, uploaded_at_utc, payment_token_contract_id, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                release.id, release.contract_name, release.network, release.bucket_path,
                release.gcs_uri, release.wasm_hash, release.sha256, release.git_sha,
                release.uploaded_at_utc, release.payment_token_contract_id,
                release.created_at,
            ),
        )
        await self.db.commit()
        return release

    async def get_release(self, release_id: str) -> WasmReleaseRecord | None:
        async with self.db.execute(
            "SELECT * FROM wasm_releases WHERE id=?", (release_id,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_release(row) if row else None

    async def find_latest_release(
        self, contract_name: str, network: str
    ) -> WasmReleaseRecord | None:
        async with self.db.execute(
            "SELECT * FROM wasm_releases WHERE contract_name=? AND network=?"
            " ORDER BY uploaded_at_utc DESC, created_at DESC LIMIT 1",
            (contract_name, network),
        ) as cur:
            row = await cur.fetchone()
            return _row_to_release(row) if row else None

    # ── Users ──────────────────────────────────────────────

    async def upsert_user(self, public_key: str) -> UserRecord:
        now = _now()
        await self.db.execute(
            "INSERT INTO users (public_key, created_at, last_login_at) VALUES (?, ?, ?)"
            " ON CONFLICT(public_key) DO UPDATE SET last_login_at=excluded.last_login_at",
            (public_key, now, now),
        )
        await self.db.commit()
        async with self.db.execute(
            "SELECT * FROM users WHERE public_key=?", (public_key,)
        ) as cur:
            row = await cur.fetchone()
        return UserRecord(
            public_key=row["public_key"],
            created_at=row["created_at"],
            last_login_at=row["last_login_at"],
        )


# ── Row mappers ────────────────────────────────────────────


def _row_to_project(row: aiosqlite.Row) -> ProjectRecord:
    return ProjectRecord(**{k: row[k] for k in row.keys()})


def _row_to_deployment(row: aiosqlite.Row) -> DeploymentRecord:
    return DeploymentRecord(**{k: row[k] for k in row.keys()})


def _row_to_release(row: aiosqlite.Row) -> WasmReleaseRecord:
    return WasmReleaseRecord(**{k: row[k] for k in row.keys()})
