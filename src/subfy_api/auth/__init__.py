"""Wallet authentication and session tokens."""

from subfy_api.auth.tokens import issue_token, verify_token

__all__ = ["issue_token", "verify_token"]
