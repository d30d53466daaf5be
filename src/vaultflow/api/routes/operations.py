"""Vault operation endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from vaultflow.api.contracts import (
    ExecuteResponse,
    OperationRequestModel,
    PlanResponse,
    RelayWalletResponse,
    StepModel,
)
from vaultflow.api.runtime import OperationRuntime, get_runtime
from vaultflow.chains import estimate_cross_chain_time, is_supported_chain
from vaultflow.errors import AuthorizationError, PlanningError, RelayWalletBusy
from vaultflow.orchestrator.models import Asset, OperationMode
from vaultflow.orchestrator.service import OperationRequest
from vaultflow.services.base import BalanceReadError
from vaultflow.session import Session
from vaultflow.utils.units import to_base_units

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operations")


async def require_session(
    authorization: Optional[str] = Header(None),
    runtime: OperationRuntime = Depends(get_runtime),
) -> Session:
    """Verify the ``Bearer <jwt>`` header and build the delegated session."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Delegation credential required")
    try:
        return runtime.authenticate(authorization.split(" ", 1)[1].strip())
    except AuthorizationError as e:
        raise HTTPException(status_code=401, detail=str(e))


def to_request(body: OperationRequestModel) -> OperationRequest:
    asset = None
    if body.asset is not None:
        asset = Asset(
            address=body.asset.address,
            symbol=body.asset.symbol,
            decimals=body.asset.decimals,
            is_native=body.asset.is_native,
        )
    decimals = asset.decimals if asset else 18

    available = None
    if body.available_balance is not None:
        available = to_base_units(body.available_balance, decimals)

    return OperationRequest(
        mode=body.mode,
        asset=asset,
        amount=to_base_units(body.amount, decimals),
        source_chain=body.source_chain,
        target_chain=body.target_chain,
        available_balance=available,
    )


@router.post("/plan", response_model=PlanResponse)
async def plan_operation(
    body: OperationRequestModel,
    session: Session = Depends(require_session),
    runtime: OperationRuntime = Depends(get_runtime),
) -> PlanResponse:
    """Preview the steps a deposit or withdrawal would run."""
    service = runtime.service_for(session)
    try:
        plan = await service.prepare(to_request(body), session)
    except AuthorizationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except PlanningError as e:
        raise HTTPException(status_code=400, detail=str(e))

    bridge_time = None
    if plan.needs_bridge:
        origin = plan.source_chain if plan.mode == OperationMode.DEPOSIT else plan.vault_chain
        bridge_time = estimate_cross_chain_time(origin, plan.target_chain)

    data = plan.to_dict()
    return PlanResponse(
        mode=data["mode"],
        source_chain=plan.source_chain,
        target_chain=plan.target_chain,
        vault_chain=plan.vault_chain,
        needs_swap=plan.needs_swap,
        needs_bridge=plan.needs_bridge,
        needs_funding=plan.needs_funding,
        direct_path=plan.direct_path,
        funding_tier=data["funding_tier"],
        estimated_funding_amount=data["estimated_funding_amount"],
        estimated_duration_label=plan.estimated_duration_label,
        estimated_bridge_time=bridge_time,
        steps=[StepModel(**s.to_dict()) for s in plan.initial_states()],
    )


@router.post("/execute", response_model=ExecuteResponse)
async def execute_operation(
    body: OperationRequestModel,
    session: Session = Depends(require_session),
    runtime: OperationRuntime = Depends(get_runtime),
) -> ExecuteResponse:
    """Plan and run a deposit or withdrawal to completion.

    A failed step is reported in the response body, not as an HTTP error.
    """
    service = runtime.service_for(session)
    try:
        result = await service.run(to_request(body), session)
    except AuthorizationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except PlanningError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RelayWalletBusy as e:
        raise HTTPException(status_code=409, detail=str(e))

    data = result.to_dict()
    return ExecuteResponse(
        success=data["success"],
        mode=data["mode"],
        steps=[StepModel(**s) for s in data["steps"]],
        failed_step_id=data["failed_step_id"],
        error=data["error"],
        error_type=data["error_type"],
        tx_hashes=data["tx_hashes"],
    )


@router.get("/relay/{address}", response_model=RelayWalletResponse)
async def relay_wallet_state(
    address: str,
    chain_id: int = Query(..., description="Chain to read the balance on"),
    runtime: OperationRuntime = Depends(get_runtime),
) -> RelayWalletResponse:
    """Current funding state of a relay wallet."""
    if not is_supported_chain(chain_id):
        raise HTTPException(status_code=400, detail=f"Unsupported chain: {chain_id}")
    try:
        state = await runtime.funding_guard.get_state(address, chain_id)
    except BalanceReadError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return RelayWalletResponse(
        address=state.address,
        chain_id=state.chain_id,
        balance=str(state.formatted_balance),
        minimum_balance=str(state.minimum_balance),
        has_balance=state.has_balance,
        needs_funding=state.needs_funding,
        is_executing=state.is_executing,
        can_execute_operations=state.can_execute_operations,
    )
