"""Bridge the flow's token to another chain."""

import asyncio
import logging
from typing import Any, Optional

from vaultflow.chains import NATIVE_TOKEN, get_chain_name
from vaultflow.errors import OperationError
from vaultflow.operations.base import AssetOperation, OperationContext
from vaultflow.orchestrator.models import BridgeResult, OperationMode, StepId
from vaultflow.orchestrator.retry import RetryPolicy
from vaultflow.services.base import BridgeOrderStatus, BridgeParams, BridgeService, BridgeStatusSource
from vaultflow.session import ABILITY_BRIDGE

logger = logging.getLogger(__name__)


class BridgeOperation(AssetOperation):
    """Bridge via the deBridge ability.

    After execute, the step waits before the dependent step starts: either a
    fixed settle delay, or (when a status source is configured and polling
    is enabled) until the order is reported fulfilled.
    """

    ability = ABILITY_BRIDGE

    def __init__(
        self,
        settings,
        bridge: BridgeService,
        status_source: Optional[BridgeStatusSource] = None,
        status_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(settings)
        self.bridge = bridge
        self.status_source = status_source
        self.status_policy = status_policy or RetryPolicy(
            max_attempts=settings.bridge_status_attempts,
            interval=settings.bridge_status_interval,
        )

    @property
    def name(self) -> str:
        return "Bridge"

    def _params(self, ctx: OperationContext) -> BridgeParams:
        ledger = ctx.ledger
        plan = ctx.plan
        destination = plan.vault_chain if plan.mode == OperationMode.DEPOSIT else plan.target_chain

        return BridgeParams(
            source_chain=ledger.chain_id,
            destination_chain=destination,
            source_token=ledger.token,
            destination_token=NATIVE_TOKEN if ledger.is_native else ledger.token,
            amount=ledger.amount,
            recipient=ctx.relay_address,
            slippage_bps=self.settings.bridge_slippage_bps,
        )

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        params = self._params(ctx)
        if params.source_chain == params.destination_chain:
            raise OperationError("Bridge source and destination chains are the same", phase="precheck")
        return self.check_result(await self.bridge.precheck(params), "precheck")

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> BridgeResult:
        params = self._params(ctx)
        logger.info(
            f"Bridging {params.amount} of {params.source_token} from "
            f"{get_chain_name(params.source_chain)} to {get_chain_name(params.destination_chain)}"
        )
        payload = self.check_result(await self.bridge.execute(params), "execute")

        destination_amount = payload.get("destinationAmount")
        estimated_arrival = payload.get("estimatedArrival")
        return BridgeResult(
            tx_hash=self.require_field(payload, "txHash"),
            order_id=str(self.require_field(payload, "orderId")),
            source_chain=params.source_chain,
            destination_chain=params.destination_chain,
            token=params.source_token,
            amount=params.amount,
            destination_amount=int(destination_amount) if destination_amount is not None else None,
            estimated_arrival=float(estimated_arrival) if estimated_arrival is not None else None,
        )

    async def settle(self, ctx: OperationContext, result: BridgeResult) -> None:
        if self.settings.bridge_status_polling and self.status_source is not None:
            await self._wait_for_order(result)
            return

        logger.info(f"Waiting {self.settings.bridge_settle_seconds}s for bridge order {result.order_id}")
        await asyncio.sleep(self.settings.bridge_settle_seconds)

    async def _wait_for_order(self, result: BridgeResult) -> None:
        failed = False

        async def arrived() -> bool:
            nonlocal failed
            status = await self.status_source.get_status(result.order_id)
            if status == BridgeOrderStatus.FAILED:
                failed = True
                return True
            return status == BridgeOrderStatus.COMPLETED

        outcome = await self.status_policy.run(arrived, label=f"bridge order {result.order_id}")

        if failed:
            raise OperationError(
                f"Bridge order {result.order_id} failed", step_id=StepId.BRIDGE_TOKEN.value
            )
        if not outcome.satisfied:
            logger.warning(
                f"Bridge order {result.order_id} not fulfilled after {outcome.attempts} checks, proceeding"
            )
