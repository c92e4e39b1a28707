"""Subscription contract state, decoded from simulated view calls.

These are transient query results. The contract is the only authoritative
copy of plans and subscriptions.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


def _field(raw: Any, *names: str, default: Any = None) -> Any:
    """Read the first present key from a decoded contract struct."""
    if isinstance(raw, dict):
        for name in names:
            if name in raw and raw[name] is not None:
                return raw[name]
        return default
    for name in names:
        value = getattr(raw, name, None)
        if value is not None:
            return value
    return default


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    # stellar_sdk.Address exposes the strkey as .address
    address = getattr(value, "address", None)
    if isinstance(address, str):
        return address
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Plan:
    """A subscription plan as stored in the contract."""

    id: int
    name: str
    period_ledgers: int
    price_stroops: str  # i128 as decimal string
    active: bool

    @classmethod
    def from_native(cls, raw: Any) -> Plan:
        return cls(
            id=int(_field(raw, "id", default=0)),
            name=_text(_field(raw, "name", default="")),
            period_ledgers=int(_field(raw, "period_ledgers", "periodLedgers", default=0)),
            price_stroops=str(_field(raw, "price_stroops", "priceStroops", default="0")),
            active=bool(_field(raw, "active", default=False)),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Subscription:
    """A subscriber's subscription as stored in the contract."""

    subscriber: str
    plan_id: int
    started_ledger: int
    next_renewal_ledger: int
    active: bool

    @classmethod
    def from_native(cls, raw: Any) -> Subscription:
        return cls(
            subscriber=_text(_field(raw, "subscriber", default="")),
            plan_id=int(_field(raw, "plan_id", "planId", default=0)),
            started_ledger=int(_field(raw, "started_ledger", "startedLedger", default=0)),
            next_renewal_ledger=int(
                _field(raw, "next_renewal_ledger", "nextRenewalLedger", default=0)
            ),
            active=bool(_field(raw, "active", default=False)),
        )

    def is_due(self, latest_ledger: int) -> bool:
        """Active and the renewal ledger has already been reached."""
        return self.active and self.next_renewal_ledger <= latest_ledger

    def to_dict(self) -> dict:
        return asdict(self)
