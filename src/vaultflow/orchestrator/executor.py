"""Step executor.

Runs a plan's steps strictly in order. The first failure marks that step
``error`` and halts the flow; completed steps are never rolled back, so a
failed flow can leave funds in the relay wallet for manual recovery.
"""

import asyncio
import logging
import time
from typing import Optional

from vaultflow.config import Settings, get_settings
from vaultflow.errors import OperationError, OrchestrationError
from vaultflow.operations.base import FlowLedger, OperationContext
from vaultflow.operations.factory import OperationSet
from vaultflow.orchestrator.funding import RelayWalletFundingGuard
from vaultflow.orchestrator.models import (
    FundingResult,
    OperationMode,
    OperationPlan,
    StepId,
    StepResult,
    TerminalResult,
)
from vaultflow.orchestrator.progress import ProgressTracker
from vaultflow.session import Session

logger = logging.getLogger(__name__)


class StepExecutor:
    """Executes an OperationPlan step by step."""

    def __init__(
        self,
        operations: OperationSet,
        funding_guard: RelayWalletFundingGuard,
        settings: Optional[Settings] = None,
    ):
        self.operations = operations
        self.funding_guard = funding_guard
        self.settings = settings or get_settings()

    async def execute(
        self,
        plan: OperationPlan,
        session: Session,
        owner_address: str,
        tracker: Optional[ProgressTracker] = None,
    ) -> TerminalResult:
        """Run every step of ``plan``.

        Args:
            plan: Plan to execute
            session: Delegated signing session for relayed steps
            owner_address: The user's primary wallet address
            tracker: Progress tracker to report into (created if omitted)

        Returns:
            TerminalResult. Failures are reported in the result, not raised.
        """
        tracker = tracker or ProgressTracker(plan.initial_states())
        started_at = time.time()
        results: dict[StepId, StepResult] = {}

        start_chain = plan.source_chain if plan.mode == OperationMode.DEPOSIT else plan.vault_chain
        ledger = FlowLedger(
            token=plan.asset.address,
            amount=plan.amount,
            chain_id=start_chain,
            is_native=plan.asset.is_native,
        )
        ctx = OperationContext(
            session=session,
            plan=plan,
            ledger=ledger,
            owner_address=owner_address,
            settings=self.settings,
        )

        logger.info(
            f"Executing {plan.mode.value} plan: {[s.value for s in plan.step_ids]} "
            f"(relay {session.relay_address})"
        )

        try:
            for spec in plan.steps:
                tracker.mark_processing(spec.id)
                try:
                    if spec.id == StepId.FUND_PKP:
                        result = await self._fund(plan, session)
                    else:
                        operation = self.operations.for_step(spec.id, plan)
                        result = await operation.run(ctx, spec.id)
                except asyncio.CancelledError:
                    tracker.mark_error(spec.id, "Cancelled")
                    raise
                except OrchestrationError as e:
                    logger.error(f"Step {spec.id.value} failed: {e}")
                    tracker.mark_error(spec.id, str(e))
                    return self._result(False, plan, tracker, results, started_at, spec.id, e)
                except Exception as e:
                    logger.exception(f"Step {spec.id.value} failed unexpectedly")
                    error = OperationError(f"Unexpected failure: {e}", step_id=spec.id.value)
                    error.__cause__ = e
                    tracker.mark_error(spec.id, str(error))
                    return self._result(False, plan, tracker, results, started_at, spec.id, error)

                results[spec.id] = result
                ledger.apply(result)
                tracker.mark_completed(spec.id, tx_hash=result.tx_hash, message=self._describe(result))

            logger.info(f"{plan.mode.value.capitalize()} flow completed: {len(results)} step(s)")
            return self._result(True, plan, tracker, results, started_at)
        finally:
            tracker.close()

    async def _fund(self, plan: OperationPlan, session: Session) -> FundingResult:
        return await self.funding_guard.ensure_funded(
            relay_address=session.relay_address,
            required_amount=plan.estimated_funding_amount,
            is_cross_chain=plan.is_cross_chain,
            chain_id=plan.relay_chain,
        )

    @staticmethod
    def _describe(result: StepResult) -> Optional[str]:
        if isinstance(result, FundingResult):
            if not result.funded:
                return "Relay wallet already funded"
            if not result.verified:
                return "Funding sent, balance not yet confirmed"
        return None

    @staticmethod
    def _result(
        success: bool,
        plan: OperationPlan,
        tracker: ProgressTracker,
        results: dict[StepId, StepResult],
        started_at: float,
        failed_step: Optional[StepId] = None,
        cause: Optional[BaseException] = None,
    ) -> TerminalResult:
        return TerminalResult(
            success=success,
            plan=plan,
            steps=tracker.steps,
            results=dict(results),
            failed_step_id=failed_step,
            cause=cause,
            started_at=started_at,
            finished_at=time.time(),
        )
