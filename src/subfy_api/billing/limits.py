"""Ledger arithmetic: pagination bounds and allowance expiration windows."""

from __future__ import annotations

import math
from typing import Any

from subfy_api.errors import BadRequestError

MAX_CONTRACT_PAGE_SIZE = 50
# offsets travel as u32 contract arguments
MAX_CONTRACT_OFFSET = 0xFFFFFFFF

# Token allowances cannot outlive roughly 180 days of ledgers.
MAX_TOKEN_ALLOWANCE_WINDOW = 3_110_400
ALLOWANCE_SAFETY_MARGIN = 1_000


def _finite(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def normalize_pagination(offset: Any = None, limit: Any = None) -> tuple[int, int]:
    """Clamp query inputs to ``0 <= offset <= u32 max`` and ``1 <= limit <= 50``."""
    raw_offset = _finite(offset)
    safe_offset = math.floor(raw_offset) if raw_offset is not None and raw_offset > 0 else 0
    safe_offset = min(safe_offset, MAX_CONTRACT_OFFSET)

    raw_limit = _finite(limit)
    if raw_limit is not None and raw_limit > 0:
        safe_limit = min(max(math.floor(raw_limit), 1), MAX_CONTRACT_PAGE_SIZE)
    else:
        safe_limit = MAX_CONTRACT_PAGE_SIZE
    return safe_offset, safe_limit


def clamp_allowance_expiration_ledger(latest_ledger: int, requested: Any = None) -> int:
    """Pick an allowance expiration ledger inside the token's maximum window.

    A requested value at or below the latest ledger falls back to the widest
    window allowed.
    """
    max_allowed = latest_ledger + MAX_TOKEN_ALLOWANCE_WINDOW - ALLOWANCE_SAFETY_MARGIN
    raw = _finite(requested)
    candidate = math.floor(raw) if raw is not None and raw > latest_ledger else max_allowed
    expiration = min(candidate, max_allowed)
    if expiration <= latest_ledger:
        raise BadRequestError(
            f"Unable to set allowance expiration: latest ledger {latest_ledger} "
            f"is too close to token max window {MAX_TOKEN_ALLOWANCE_WINDOW}."
        )
    return expiration


def parse_i128(value: Any) -> int:
    """Coerce a decoded i128 (int, numeric string, or None) to int."""
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return 0
