"""Request/response contracts for the operations API."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from vaultflow.orchestrator.models import OperationMode


class AssetModel(BaseModel):
    """Token selected by the user."""

    address: str = Field(..., description="Token address (zero address for the native coin)")
    symbol: str = Field(..., description="Token symbol")
    decimals: int = Field(default=18, ge=0, le=36, description="Token decimals")
    is_native: bool = Field(default=False, description="Native coin of the chain")


class OperationRequestModel(BaseModel):
    """Deposit or withdrawal request."""

    mode: OperationMode = Field(..., description="deposit or withdraw")
    asset: Optional[AssetModel] = Field(None, description="Selected asset")
    amount: Decimal = Field(..., description="Amount in token units (not base units)")
    source_chain: int = Field(..., description="Chain of the user's wallet")
    target_chain: Optional[int] = Field(None, description="Chain receiving withdrawal proceeds")
    available_balance: Optional[Decimal] = Field(
        None, description="Wallet balance (deposit) or vault position (withdraw), in token units"
    )


class StepModel(BaseModel):
    id: str
    title: str
    description: str
    status: str = "pending"
    tx_hash: Optional[str] = None


class PlanResponse(BaseModel):
    """Planned operation preview."""

    mode: str
    source_chain: int
    target_chain: int
    vault_chain: int
    needs_swap: bool
    needs_bridge: bool
    needs_funding: bool
    direct_path: bool
    funding_tier: str
    estimated_funding_amount: str
    estimated_duration_label: str
    estimated_bridge_time: Optional[str] = Field(None, description="Typical bridge time for the route")
    steps: list[StepModel]


class ExecuteResponse(BaseModel):
    """Terminal result of an executed operation."""

    success: bool
    mode: str
    steps: list[StepModel]
    failed_step_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    tx_hashes: dict[str, str] = Field(default_factory=dict)


class RelayWalletResponse(BaseModel):
    """Relay wallet funding state."""

    address: str
    chain_id: int
    balance: str = Field(..., description="Native balance in ETH")
    minimum_balance: str
    has_balance: bool
    needs_funding: bool
    is_executing: bool
    can_execute_operations: bool
