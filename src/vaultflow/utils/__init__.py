"""Utility modules for vaultflow."""

from vaultflow.utils.locks import RelayWalletLock, get_relay_lock, is_relay_wallet_busy
from vaultflow.utils.units import from_base_units, to_base_units

__all__ = [
    "RelayWalletLock",
    "get_relay_lock",
    "is_relay_wallet_busy",
    "from_base_units",
    "to_base_units",
]
