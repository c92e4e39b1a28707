"""Contract error translation for the sb_subscription contract.

Contract rejections reach us as RPC error text containing
``Error(Contract, #N)``. The code is parsed out of that text and mapped to a
stable message. Parsing text is coupled to the RPC's error formatting; there
is no structured error channel to fall back on.
"""

from __future__ import annotations

import re
from enum import IntEnum

from subfy_api.errors import BadRequestError

_CODE_RE = re.compile(r"Error\(Contract,\s*#(\d+)\)")

# Token contracts report a short balance/allowance as text, not a numeric code.
_ALLOWANCE_TEXT = "not enough allowance"


class ContractError(IntEnum):
    ALREADY_INITIALIZED = 1
    NOT_INITIALIZED = 2
    UNAUTHORIZED = 3
    PLAN_EXISTS = 4
    PLAN_NOT_FOUND = 5
    INVALID_PERIOD = 6
    PLAN_INACTIVE = 7
    SUBSCRIPTION_EXISTS = 8
    SUBSCRIPTION_NOT_FOUND = 9
    SUBSCRIPTION_CANCELLED = 10
    INVALID_PRICE = 11
    RENEW_TOO_EARLY = 12
    INVALID_PAGE_SIZE = 13


_MESSAGES = {
    ContractError.ALREADY_INITIALIZED: "Contract already initialized",
    ContractError.NOT_INITIALIZED: "Contract is not initialized yet",
    ContractError.UNAUTHORIZED: "Unauthorized contract action",
    ContractError.PLAN_EXISTS: "Plan already exists",
    ContractError.PLAN_NOT_FOUND: "Plan not found",
    ContractError.INVALID_PERIOD: "Invalid period",
    ContractError.PLAN_INACTIVE: "Plan is inactive",
    ContractError.SUBSCRIPTION_EXISTS: "Subscription already exists",
    ContractError.SUBSCRIPTION_NOT_FOUND: "Subscription not found",
    ContractError.SUBSCRIPTION_CANCELLED: "Subscription is cancelled",
    ContractError.INVALID_PRICE: "Invalid price",
    ContractError.RENEW_TOO_EARLY: "Renewal is too early",
    ContractError.INVALID_PAGE_SIZE: "Invalid page size",
}

# Codes a checkout transaction can only have gotten from the subscription
# contract itself. Anything else may come from the payment token contract.
_CHECKOUT_UNAMBIGUOUS = frozenset({
    ContractError.NOT_INITIALIZED,
    ContractError.PLAN_NOT_FOUND,
    ContractError.PLAN_INACTIVE,
    ContractError.SUBSCRIPTION_EXISTS,
    ContractError.SUBSCRIPTION_NOT_FOUND,
    ContractError.SUBSCRIPTION_CANCELLED,
    ContractError.RENEW_TOO_EARLY,
})


def _message_of(error: BaseException | str) -> str:
    if isinstance(error, BaseException):
        return getattr(error, "message", None) or str(error)
    return str(error)


def parse_contract_error_code(error: BaseException | str) -> int | None:
    """Extract N from ``Error(Contract, #N)``, or None when absent."""
    match = _CODE_RE.search(_message_of(error))
    if not match:
        return None
    return int(match.group(1))


def contract_code_to_message(code: int) -> str:
    try:
        return _MESSAGES[ContractError(code)]
    except ValueError:
        return f"Contract rejected action (code #{code})"


def translate_message(message: str) -> str:
    """Map a contract error message to its category; other text is returned as-is."""
    code = parse_contract_error_code(message)
    if code is None:
        return message
    return contract_code_to_message(code)


def to_client_error(error: BaseException, fallback: str) -> BadRequestError:
    """Translate an owner-side failure into a client error."""
    code = parse_contract_error_code(error)
    if code is not None:
        return BadRequestError(contract_code_to_message(code))
    return BadRequestError(_message_of(error) or fallback)


def to_checkout_error(error: BaseException, fallback: str) -> BadRequestError:
    """Translate a subscriber checkout failure into a client error.

    Only codes that cannot originate from the payment token contract are
    reported specifically. The rest get a generic trustline/balance hint.
    """
    code = parse_contract_error_code(error)
    if code is None:
        return BadRequestError(_message_of(error) or fallback)
    if code in _CHECKOUT_UNAMBIGUOUS:
        return BadRequestError(contract_code_to_message(code))
    return BadRequestError(
        f"Transaction rejected by contract (code #{code}). "
        "Check wallet trustline, token balance, and allowance."
    )


def is_allowance_error(error: BaseException | str) -> bool:
    return _ALLOWANCE_TEXT in _message_of(error).lower()
