"""Swap the flow's token to the vault's native asset."""

import logging
import time
from typing import Any

from vaultflow.chains import NATIVE_TOKEN
from vaultflow.operations.base import AssetOperation, OperationContext
from vaultflow.orchestrator.models import SwapResult
from vaultflow.services.base import DexService, SwapParams
from vaultflow.session import ABILITY_SWAP

logger = logging.getLogger(__name__)


class SwapOperation(AssetOperation):
    """Swap via the DEX ability. Output is always the native asset."""

    ability = ABILITY_SWAP

    def __init__(self, settings, dex: DexService):
        super().__init__(settings)
        self.dex = dex

    @property
    def name(self) -> str:
        return "Swap"

    def _params(self, ctx: OperationContext) -> SwapParams:
        ledger = ctx.ledger
        return SwapParams(
            token_in=ledger.token,
            token_out=NATIVE_TOKEN,
            amount_in=ledger.amount,
            recipient=ctx.relay_address,
            chain_id=ledger.chain_id,
            slippage_bps=self.settings.swap_slippage_bps,
            deadline=int(time.time()) + self.settings.swap_deadline_seconds,
        )

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        quote = self.check_result(await self.dex.precheck(self._params(ctx)), "precheck")
        if "amountOut" in quote:
            logger.info(f"Swap quote: {ctx.ledger.amount} {ctx.ledger.token} -> {quote['amountOut']} native")
        return quote

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> SwapResult:
        params = self._params(ctx)
        payload = self.check_result(await self.dex.execute(params), "execute")

        return SwapResult(
            tx_hash=self.require_field(payload, "txHash"),
            token_in=params.token_in,
            token_out=params.token_out,
            amount_in=params.amount_in,
            output_amount=int(self.require_field(payload, "outputAmount")),
            chain_id=params.chain_id,
        )
