"""Vault operation service.

Entry point for user-initiated deposits and withdrawals:

    session check -> amount check -> relay wallet state -> plan
        -> relay wallet lock -> execute
"""

import logging
from dataclasses import dataclass
from typing import Optional

from vaultflow.config import Settings, get_settings
from vaultflow.errors import PlanningError
from vaultflow.orchestrator.executor import StepExecutor
from vaultflow.orchestrator.funding import RelayWalletFundingGuard
from vaultflow.orchestrator.models import Asset, OperationMode, OperationPlan, TerminalResult
from vaultflow.orchestrator.planner import OperationPlanner
from vaultflow.orchestrator.progress import ProgressTracker
from vaultflow.services.base import BalanceReadError
from vaultflow.session import Session
from vaultflow.utils.locks import RelayWalletLock

logger = logging.getLogger(__name__)


@dataclass
class OperationRequest:
    """A user-initiated deposit or withdrawal.

    Attributes:
        mode: deposit or withdraw
        asset: Selected token
        amount: Amount in the asset's base units
        source_chain: Chain of the user's wallet
        target_chain: Chain receiving withdrawal proceeds
        available_balance: Balance the amount is checked against (wallet
            balance for deposits, vault position for withdrawals)
    """
    mode: OperationMode
    asset: Optional[Asset]
    amount: int
    source_chain: int
    target_chain: Optional[int] = None
    available_balance: Optional[int] = None


class VaultOperationService:
    """Plans and runs vault operations for one user wallet."""

    def __init__(
        self,
        executor: StepExecutor,
        funding_guard: RelayWalletFundingGuard,
        owner_address: str,
        planner: Optional[OperationPlanner] = None,
        settings: Optional[Settings] = None,
    ):
        self.executor = executor
        self.funding_guard = funding_guard
        self.owner_address = owner_address
        self.planner = planner or OperationPlanner()
        self.settings = settings or get_settings()

    async def prepare(self, request: OperationRequest, session: Session) -> OperationPlan:
        """Validate a request and plan it.

        Raises:
            AuthorizationError: Credential missing or expired
            PlanningError: No asset/target selected, or amount is invalid
        """
        session.ensure_valid()
        self._check_amount(request)

        vault_chain = self.settings.vault_chain_id
        relay_chain = request.source_chain if request.mode == OperationMode.DEPOSIT else vault_chain
        needs_funding = await self._relay_needs_funding(session, relay_chain)

        plan = self.planner.plan(
            request.mode,
            request.source_chain,
            vault_chain,
            request.asset,
            amount=request.amount,
            target_chain=request.target_chain,
            needs_funding=needs_funding,
        )
        if plan is None:
            if request.asset is None:
                raise PlanningError("Select an asset first")
            raise PlanningError("Select a target chain for the withdrawal")
        return plan

    async def execute(
        self,
        plan: OperationPlan,
        session: Session,
        tracker: Optional[ProgressTracker] = None,
    ) -> TerminalResult:
        """Execute a prepared plan while holding the relay wallet.

        Raises:
            RelayWalletBusy: Another flow owns the relay wallet
        """
        async with RelayWalletLock(
            session.relay_address,
            timeout=self.settings.relay_lock_timeout_seconds,
            operation=plan.mode.value,
        ):
            return await self.executor.execute(plan, session, self.owner_address, tracker)

    async def run(
        self,
        request: OperationRequest,
        session: Session,
        tracker: Optional[ProgressTracker] = None,
    ) -> TerminalResult:
        plan = await self.prepare(request, session)
        if tracker is None:
            tracker = ProgressTracker(plan.initial_states())
        return await self.execute(plan, session, tracker)

    def _check_amount(self, request: OperationRequest) -> None:
        if request.asset is None:
            raise PlanningError("Select an asset first")
        if request.amount <= 0:
            raise PlanningError("Amount must be greater than zero")
        if request.available_balance is not None and request.amount > request.available_balance:
            raise PlanningError(
                f"Amount {request.amount} exceeds available balance {request.available_balance}"
            )

    async def _relay_needs_funding(self, session: Session, chain_id: int) -> bool:
        try:
            state = await self.funding_guard.get_state(session.relay_address, chain_id)
        except BalanceReadError as e:
            # The funding step re-reads the balance and fails there if it still cannot
            logger.warning(f"Relay wallet balance unavailable, planning a funding step: {e}")
            return True
        return state.needs_funding
