"""AuthService - SEP-10 style wallet challenge and verification.

A challenge is issued in two forms: a server-signed transaction with a
single ``manage_data`` op sourced from the client, and a plain string for
wallets that can only sign messages. Pending challenges live in memory,
one per public key, and are discarded on use, on any verification
failure, and once expired (pruned whenever a new challenge is issued).
The map is capped at ``max_pending`` entries, dropping the oldest first.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from stellar_sdk import Account, Keypair, ManageData, TransactionBuilder
from stellar_sdk.exceptions import BadSignatureError

from subfy_api.auth.tokens import issue_token
from subfy_api.errors import BadRequestError, UnauthorizedError
from subfy_api.interfaces.store import UserStore
from subfy_api.models.config import AuthConfig
from subfy_api.models.records import UserRecord

log = logging.getLogger(__name__)

CHALLENGE_DATA_NAME = "subfy auth"
CHALLENGE_PREFIX = "subfy-auth"
MAX_PENDING_CHALLENGES = 10_000


@dataclass
class PendingChallenge:
    challenge: str
    nonce: str
    transaction_xdr: str
    expires_at: float
    network_passphrase: str


@dataclass
class AuthResult:
    token: str
    user: UserRecord

    def to_dict(self) -> dict:
        return {"token": self.token, "user": self.user.to_dict()}


def _verifies(keypair: Keypair, data: bytes, signature: bytes) -> bool:
    try:
        keypair.verify(data, signature)
        return True
    except BadSignatureError:
        return False


class AuthService:

    def __init__(
        self,
        users: UserStore,
        server_keypair: Keypair,
        network_passphrase: str,
        config: AuthConfig,
        clock: Callable[[], float] = time.time,
        max_pending: int = MAX_PENDING_CHALLENGES,
    ) -> None:
        self.users = users
        self._server_keypair = server_keypair
        self._passphrase = network_passphrase
        self._config = config
        self._clock = clock
        self._max_pending = max_pending
        self._challenges: dict[str, PendingChallenge] = {}

    @property
    def server_public_key(self) -> str:
        return self._server_keypair.public_key

    def _prune(self, now: float) -> None:
        """Drop expired challenges, then the oldest ones beyond the cap."""
        expired = [pk for pk, entry in self._challenges.items() if now > entry.expires_at]
        for pk in expired:
            del self._challenges[pk]
        while self._challenges and len(self._challenges) >= self._max_pending:
            del self._challenges[next(iter(self._challenges))]

    def generate_challenge(self, public_key: str) -> dict:
        try:
            Keypair.from_public_key(public_key)
        except ValueError as exc:
            raise BadRequestError("Invalid Stellar public key") from exc

        nonce = secrets.token_hex(32)
        now = int(self._clock())
        expires = now + self._config.challenge_ttl

        account = Account(self._server_keypair.public_key, -1)
        tx = (
            TransactionBuilder(account, self._passphrase, base_fee=100)
            .add_time_bounds(now, expires)
            .append_manage_data_op(
                data_name=CHALLENGE_DATA_NAME, data_value=nonce, source=public_key
            )
            .build()
        )
        tx.sign(self._server_keypair)
        transaction_xdr = tx.to_xdr()
        challenge = f"{CHALLENGE_PREFIX}:{public_key}:{nonce}"

        # re-inserted so dict order stays oldest first
        self._challenges.pop(public_key, None)
        self._prune(now)
        self._challenges[public_key] = PendingChallenge(
            challenge=challenge,
            nonce=nonce,
            transaction_xdr=transaction_xdr,
            expires_at=float(expires),
            network_passphrase=self._passphrase,
        )
        return {
            "challenge": challenge,
            "transaction": transaction_xdr,
            "network_passphrase": self._passphrase,
        }

    def _pending(self, public_key: str) -> PendingChallenge:
        entry = self._challenges.get(public_key)
        if entry is None:
            raise UnauthorizedError("No pending challenge for this public key. Request a new one.")
        if self._clock() > entry.expires_at:
            del self._challenges[public_key]
            raise UnauthorizedError("Challenge has expired")
        return entry

    def _check_transaction(self, public_key: str, entry: PendingChallenge, signed_xdr: str) -> None:
        envelope = TransactionBuilder.from_xdr(signed_xdr, self._passphrase)
        operations = envelope.transaction.operations
        if len(operations) != 1:
            raise ValueError("Invalid challenge transaction structure")
        op = operations[0]
        if not isinstance(op, ManageData) or op.data_name != CHALLENGE_DATA_NAME:
            raise ValueError("Invalid challenge operation")
        value = op.data_value.decode() if isinstance(op.data_value, bytes) else op.data_value
        if value != entry.nonce:
            raise ValueError("Challenge nonce mismatch")

        tx_hash = envelope.hash()
        client = Keypair.from_public_key(public_key)
        signatures = [sig.signature for sig in envelope.signatures]
        server_signed = any(_verifies(self._server_keypair, tx_hash, s) for s in signatures)
        client_signed = any(_verifies(client, tx_hash, s) for s in signatures)
        if not (server_signed and client_signed):
            raise ValueError("Missing required signatures")

    async def verify_transaction(self, public_key: str, signed_xdr: str) -> AuthResult:
        entry = self._pending(public_key)
        try:
            self._check_transaction(public_key, entry, signed_xdr)
        except Exception as exc:
            self._challenges.pop(public_key, None)
            raise UnauthorizedError(str(exc) or "Verification failed") from exc
        return await self._complete(public_key)

    async def verify_message(self, public_key: str, signature_b64: str) -> AuthResult:
        entry = self._pending(public_key)
        try:
            signature = base64.b64decode(signature_b64, validate=True)
            client = Keypair.from_public_key(public_key)
            if not _verifies(client, entry.challenge.encode("utf-8"), signature):
                raise ValueError("Invalid message signature")
        except (ValueError, binascii.Error) as exc:
            self._challenges.pop(public_key, None)
            raise UnauthorizedError(str(exc) or "Verification failed") from exc
        return await self._complete(public_key)

    async def _complete(self, public_key: str) -> AuthResult:
        self._challenges.pop(public_key, None)
        user = await self.users.upsert_user(public_key)
        token = issue_token(
            public_key, self._config.jwt_secret, self._config.token_ttl, now=int(self._clock())
        )
        log.info("Authenticated wallet %s", public_key)
        return AuthResult(token=token, user=user)
