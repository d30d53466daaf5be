"""Concurrency control for relay wallets.

Concurrent transactions from one wallet race on nonce assignment, so a relay
wallet is owned by exactly one flow at a time.
"""

import asyncio
import logging
from typing import Optional

from vaultflow.errors import RelayWalletBusy

logger = logging.getLogger(__name__)

# Global lock registry: relay address (lowercase) -> asyncio.Lock
_relay_locks: dict[str, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


async def get_relay_lock(address: str) -> asyncio.Lock:
    """Get or create the lock for a relay wallet address."""
    key = address.lower()
    async with _registry_lock:
        if key not in _relay_locks:
            _relay_locks[key] = asyncio.Lock()
        return _relay_locks[key]


def is_relay_wallet_busy(address: str) -> bool:
    """Check whether a flow currently owns the relay wallet."""
    lock = _relay_locks.get(address.lower())
    return bool(lock and lock.locked())


class RelayWalletLock:
    """Context manager giving one flow exclusive use of a relay wallet.

    Example:
        async with RelayWalletLock(relay_address, timeout=0):
            await executor.execute(plan, context)

    A timeout of 0 rejects immediately when the wallet is busy, a positive
    timeout queues the flow for up to that many seconds, and None waits
    forever.
    """

    def __init__(
        self,
        address: str,
        timeout: Optional[float] = 0.0,
        operation: str = "vault_operation",
    ):
        self.address = address
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "RelayWalletLock":
        """Acquire the lock."""
        self._lock = await get_relay_lock(self.address)

        if self.timeout == 0:
            if self._lock.locked():
                logger.warning(f"Relay wallet {self.address} busy, rejecting {self.operation}")
                raise RelayWalletBusy(
                    f"Relay wallet {self.address} is already executing another operation"
                )
            await self._lock.acquire()
            self._acquired = True
        elif self.timeout is None:
            await self._lock.acquire()
            self._acquired = True
        else:
            try:
                self._acquired = await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Relay wallet lock timeout for {self.address} after {self.timeout}s: {self.operation}"
                )
                raise RelayWalletBusy(
                    f"Relay wallet {self.address} still busy after {self.timeout}s"
                )

        logger.debug(f"Relay wallet lock acquired for {self.address}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Relay wallet lock released for {self.address}: {self.operation}")
        return False


def clear_relay_locks() -> None:
    """Clear all relay wallet locks (useful for testing)."""
    _relay_locks.clear()
