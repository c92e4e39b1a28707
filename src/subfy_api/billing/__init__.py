"""Billing orchestration - plans, subscriptions, renewals and checkout."""

from subfy_api.billing.service import BillingService

__all__ = ["BillingService"]
