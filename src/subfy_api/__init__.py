"""subfy-api - subscription billing backend on a Soroban subscription contract."""

__version__ = "0.1.0"
