"""Stellar/Soroban integration: ledger client, argument types, contract errors.

``subfy_api.stellar.ledger`` is the only module here that imports stellar_sdk;
import it directly where a concrete client is wired.
"""
