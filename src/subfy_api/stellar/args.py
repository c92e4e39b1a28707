"""Contract call arguments as a closed set of typed variants."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class U32:
    value: int

    def __post_init__(self) -> None:
        if not 0 <= int(self.value) <= 0xFFFFFFFF:
            raise ValueError(f"u32 out of range: {self.value}")


@dataclass(frozen=True)
class I128:
    value: int

    def __post_init__(self) -> None:
        if not -(2**127) <= int(self.value) < 2**127:
            raise ValueError(f"i128 out of range: {self.value}")


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class AddressArg:
    """Account (G...) or contract (C...) strkey."""

    value: str


@dataclass(frozen=True)
class Symbol:
    value: str


@dataclass(frozen=True)
class String:
    value: str


ScArg = Union[U32, I128, Bool, AddressArg, Symbol, String]


@dataclass(frozen=True)
class Invocation:
    """One invoke_contract_function operation."""

    contract_id: str
    method: str
    args: tuple[ScArg, ...] = field(default_factory=tuple)
