"""vaultflow - cross-chain vault deposit and withdrawal orchestrator."""

__version__ = "0.1.0"
