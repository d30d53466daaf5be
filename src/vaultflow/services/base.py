"""Interfaces for the external services a vault flow depends on.

Delegated services (DEX, bridge, relay transfers, vault calls) are two-phase:
``precheck`` validates and simulates, ``execute`` submits the transaction.
Both return an AbilityResult; callers must check ``success`` and never assume
it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class AbilityResult:
    """Result of a precheck or execute call.

    Attributes:
        success: Whether the call succeeded
        result: Payload (quote for prechecks, tx data for executes)
        runtime_error: Error reported by the service when success is False
    """
    success: bool
    result: dict[str, Any] = field(default_factory=dict)
    runtime_error: Optional[str] = None

    @classmethod
    def ok(cls, **result: Any) -> "AbilityResult":
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> "AbilityResult":
        return cls(success=False, runtime_error=error)


@dataclass
class SwapParams:
    token_in: str
    token_out: str
    amount_in: int
    recipient: str
    chain_id: int
    slippage_bps: int = 50
    deadline: Optional[int] = None


@dataclass
class BridgeParams:
    source_chain: int
    destination_chain: int
    source_token: str
    destination_token: str
    amount: int
    recipient: str
    slippage_bps: int = 100


@dataclass
class TransferParams:
    token: str
    to: str
    amount: int
    chain_id: int
    is_native: bool = False


@dataclass
class VaultCallParams:
    vault_address: str
    token: str
    amount: int
    chain_id: int
    is_native: bool = False
    action: str = "deposit"  # "deposit" or "withdraw"


class BridgeOrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TxReceipt:
    """Receipt of a transaction signed by the user's primary wallet."""
    tx_hash: str
    status: bool = True
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


class DexService(ABC):
    """Swap execution service."""

    @abstractmethod
    async def precheck(self, params: SwapParams) -> AbilityResult:
        """Validate and quote a swap. Result carries ``amountOut`` when known."""
        pass

    @abstractmethod
    async def execute(self, params: SwapParams) -> AbilityResult:
        """Execute a swap. Result carries ``txHash`` and ``outputAmount``."""
        pass


class BridgeService(ABC):
    """Cross-chain bridge execution service."""

    @abstractmethod
    async def precheck(self, params: BridgeParams) -> AbilityResult:
        pass

    @abstractmethod
    async def execute(self, params: BridgeParams) -> AbilityResult:
        """Execute a bridge. Result carries ``txHash``, ``orderId``, ``estimatedArrival``."""
        pass


class BridgeStatusSource(ABC):
    """Reports whether a bridge order has arrived on the destination chain."""

    @abstractmethod
    async def get_status(self, order_id: str) -> BridgeOrderStatus:
        pass


class TransferService(ABC):
    """Token/native transfers signed by the relay wallet."""

    @abstractmethod
    async def precheck(self, params: TransferParams) -> AbilityResult:
        pass

    @abstractmethod
    async def execute(self, params: TransferParams) -> AbilityResult:
        pass


class VaultService(ABC):
    """Vault contract calls signed by the relay wallet."""

    @abstractmethod
    async def precheck(self, params: VaultCallParams) -> AbilityResult:
        pass

    @abstractmethod
    async def approve_asset(self, params: VaultCallParams) -> AbilityResult:
        """Call ``approve(vault, amount)`` on the ERC-20 token."""
        pass

    @abstractmethod
    async def deposit_asset(self, params: VaultCallParams) -> AbilityResult:
        """Call ``depositAsset(token, amount)`` (payable for the native asset)."""
        pass

    @abstractmethod
    async def withdraw_asset(self, params: VaultCallParams) -> AbilityResult:
        """Call ``withdrawAsset(token, amount)``."""
        pass


class BalanceReader(ABC):
    """Read-only balance queries."""

    @abstractmethod
    async def get_native_balance(self, address: str, chain_id: int) -> int:
        """Native balance in wei."""
        pass

    @abstractmethod
    async def get_token_balance(self, token: str, address: str, chain_id: int) -> int:
        """ERC-20 balance in base units."""
        pass


class PrimaryWallet(ABC):
    """The user's own wallet. Every call is user-signed and awaits its receipt."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    async def send_native(self, chain_id: int, to: str, amount: int) -> TxReceipt:
        pass

    @abstractmethod
    async def transfer_token(self, chain_id: int, token: str, to: str, amount: int) -> TxReceipt:
        pass

    @abstractmethod
    async def deposit_to_vault(
        self,
        chain_id: int,
        vault_address: str,
        token: str,
        amount: int,
        is_native: bool,
    ) -> TxReceipt:
        pass


class PrimaryWalletError(Exception):
    """Raised when a primary wallet transaction cannot be sent."""
    pass


class TransactionReverted(PrimaryWalletError):
    """Raised when a primary wallet transaction is mined but reverted."""

    def __init__(self, tx_hash: str, message: str = ""):
        self.tx_hash = tx_hash
        super().__init__(message or f"Transaction {tx_hash} reverted")


class BalanceReadError(Exception):
    """Raised when a balance cannot be read from the chain."""
    pass


class AbilityServiceError(Exception):
    """Raised when the delegated execution service cannot be reached."""
    pass
