"""Payment token contract resolution."""

from __future__ import annotations

from subfy_api.models.config import PaymentTokenDefaults
from subfy_api.models.records import PaymentCurrency, ProjectRecord


def resolve_project_payment_token(
    project: ProjectRecord, defaults: PaymentTokenDefaults
) -> str | None:
    """Project value, then network+currency, then currency, then global default."""
    if project.payment_token_contract_id:
        return project.payment_token_contract_id
    currency = project.payment_currency or PaymentCurrency.USDC.value
    return (
        defaults.scoped(project.network, currency)
        or defaults.generic(currency)
        or defaults.default
    )


def resolve_deployment_payment_token(
    project: ProjectRecord,
    defaults: PaymentTokenDefaults,
    proposed: str | None = None,
    release_token: str | None = None,
) -> str | None:
    """Token used to initialize a freshly deployed contract.

    The release's recorded token sits between the environment's
    network/currency defaults and the global default.
    """
    if proposed:
        return proposed
    if project.payment_token_contract_id:
        return project.payment_token_contract_id
    currency = project.payment_currency or PaymentCurrency.USDC.value
    return (
        defaults.scoped(project.network, currency)
        or defaults.generic(currency)
        or release_token
        or defaults.default
    )
