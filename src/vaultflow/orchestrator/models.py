"""Data model for vault operation flows.

Plans and step states are immutable; the progress tracker replaces the whole
tuple of step states on every update.
"""

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional, Union

from vaultflow.chains import NATIVE_TOKEN
from vaultflow.utils.units import from_base_units

TARGET_ASSET_SYMBOLS = frozenset({"ETH", "WETH"})


class OperationMode(str, Enum):
    """Direction of a vault operation."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class StepId(str, Enum):
    """Stable step keys."""
    FUND_PKP = "fund-pkp"
    TRANSFER_TO_PKP = "transfer-to-pkp"
    SWAP_TOKEN = "swap-token"
    BRIDGE_TOKEN = "bridge-token"
    DEPOSIT_VAULT = "deposit-vault"
    WITHDRAW_VAULT = "withdraw-vault"
    TRANSFER_EOA = "transfer-eoa"


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class FundingTier(str, Enum):
    """Gas budget tier chosen from the required sub-operations."""
    MINIMUM = "minimum"
    MEDIUM = "medium"
    COMPLEX = "complex"


@dataclass(frozen=True)
class Asset:
    """A token selected for an operation.

    Attributes:
        address: Token contract address (zero address for the native coin)
        symbol: Ticker, e.g. "USDC"
        decimals: Token decimals
        is_native: True for the chain's native coin
    """
    address: str
    symbol: str
    decimals: int = 18
    is_native: bool = False

    @property
    def is_target_asset(self) -> bool:
        """ETH and WETH can be deposited without a swap."""
        return self.symbol.upper() in TARGET_ASSET_SYMBOLS

    @classmethod
    def native(cls, symbol: str = "ETH") -> "Asset":
        return cls(address=NATIVE_TOKEN, symbol=symbol, decimals=18, is_native=True)


@dataclass(frozen=True)
class StepSpec:
    id: StepId
    title: str
    description: str


@dataclass(frozen=True)
class StepState:
    """Runtime state of one planned step."""
    id: StepId
    title: str
    description: str
    status: StepStatus = StepStatus.PENDING
    tx_hash: Optional[str] = None

    @classmethod
    def from_spec(cls, spec: StepSpec) -> "StepState":
        return cls(id=spec.id, title=spec.title, description=spec.description)

    def transition(self, status: StepStatus, tx_hash: Optional[str] = None) -> "StepState":
        return replace(self, status=status, tx_hash=tx_hash if tx_hash is not None else self.tx_hash)

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
        }


@dataclass(frozen=True)
class OperationPlan:
    """Immutable result of planning one user-initiated operation."""
    mode: OperationMode
    source_chain: int
    target_chain: int
    vault_chain: int
    asset: Asset
    amount: int  # base units of asset
    needs_swap: bool
    needs_bridge: bool
    needs_funding: bool
    direct_path: bool
    steps: tuple[StepSpec, ...]
    funding_tier: FundingTier
    estimated_funding_amount: Decimal
    estimated_duration_label: str

    @property
    def step_ids(self) -> tuple[StepId, ...]:
        return tuple(step.id for step in self.steps)

    @property
    def is_cross_chain(self) -> bool:
        return self.needs_bridge

    @property
    def relay_chain(self) -> int:
        """Chain where the relay wallet pays gas for the first relayed action."""
        if self.mode == OperationMode.DEPOSIT:
            return self.source_chain
        return self.vault_chain

    def initial_states(self) -> tuple[StepState, ...]:
        return tuple(StepState.from_spec(spec) for spec in self.steps)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "source_chain": self.source_chain,
            "target_chain": self.target_chain,
            "vault_chain": self.vault_chain,
            "asset": {
                "address": self.asset.address,
                "symbol": self.asset.symbol,
                "decimals": self.asset.decimals,
                "is_native": self.asset.is_native,
            },
            "amount": str(self.amount),
            "needs_swap": self.needs_swap,
            "needs_bridge": self.needs_bridge,
            "needs_funding": self.needs_funding,
            "direct_path": self.direct_path,
            "steps": [
                {"id": s.id.value, "title": s.title, "description": s.description}
                for s in self.steps
            ],
            "funding_tier": self.funding_tier.value,
            "estimated_funding_amount": str(self.estimated_funding_amount),
            "estimated_duration_label": self.estimated_duration_label,
        }


@dataclass(frozen=True)
class RelayWalletState:
    """Derived view of the relay wallet, recomputed on every balance refresh."""
    address: str
    chain_id: int
    balance: int  # wei
    minimum_balance: Decimal
    is_executing: bool = False

    @property
    def formatted_balance(self) -> Decimal:
        return from_base_units(self.balance, 18)

    @property
    def has_balance(self) -> bool:
        return self.balance > 0

    @property
    def needs_funding(self) -> bool:
        return self.formatted_balance < self.minimum_balance

    @property
    def can_execute_operations(self) -> bool:
        return self.has_balance and not self.needs_funding and not self.is_executing


# ======================
# Step results (one variant per operation kind)
# ======================

@dataclass(frozen=True)
class FundingResult:
    kind: ClassVar[str] = "funding"
    tx_hash: Optional[str]
    amount: int
    attempts: int = 0
    verified: bool = True
    funded: bool = True


@dataclass(frozen=True)
class TransferResult:
    kind: ClassVar[str] = "transfer"
    tx_hash: str
    token: str
    amount: int
    recipient: str
    chain_id: int


@dataclass(frozen=True)
class SwapResult:
    kind: ClassVar[str] = "swap"
    tx_hash: str
    token_in: str
    token_out: str
    amount_in: int
    output_amount: int
    chain_id: int


@dataclass(frozen=True)
class BridgeResult:
    kind: ClassVar[str] = "bridge"
    tx_hash: str
    order_id: str
    source_chain: int
    destination_chain: int
    token: str
    amount: int
    destination_amount: Optional[int] = None
    estimated_arrival: Optional[float] = None


@dataclass(frozen=True)
class VaultResult:
    kind: ClassVar[str] = "vault"
    tx_hash: str
    action: str  # "deposit" or "withdraw"
    token: str
    amount: int
    vault_address: str
    chain_id: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


StepResult = Union[FundingResult, TransferResult, SwapResult, BridgeResult, VaultResult]


@dataclass
class TerminalResult:
    """Outcome of executing a plan."""
    success: bool
    plan: OperationPlan
    steps: tuple[StepState, ...]
    results: dict[StepId, StepResult] = field(default_factory=dict)
    failed_step_id: Optional[StepId] = None
    cause: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def tx_hashes(self) -> dict[str, str]:
        return {s.id.value: s.tx_hash for s in self.steps if s.tx_hash}

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "mode": self.plan.mode.value,
            "steps": [s.to_dict() for s in self.steps],
            "failed_step_id": self.failed_step_id.value if self.failed_step_id else None,
            "error": str(self.cause) if self.cause else None,
            "error_type": type(self.cause).__name__ if self.cause else None,
            "tx_hashes": self.tx_hashes,
        }
