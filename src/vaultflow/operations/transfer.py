"""Transfers between the user's wallet and the relay wallet."""

import asyncio
import logging
from typing import Any

from vaultflow.chains import get_chain_name
from vaultflow.errors import OperationError
from vaultflow.operations.base import AssetOperation, OperationContext, check_owner_balance
from vaultflow.orchestrator.models import TransferResult
from vaultflow.services.base import (
    BalanceReader,
    PrimaryWallet,
    TransferParams,
    TransferService,
)
from vaultflow.session import ABILITY_TRANSFER
from vaultflow.utils.units import format_amount

logger = logging.getLogger(__name__)


class TransferToRelayOperation(AssetOperation):
    """Move the selected asset from the user's wallet into the relay wallet.

    Signed by the user's primary wallet, so no delegated ability is needed.
    """

    def __init__(self, settings, primary_wallet: PrimaryWallet, balance_reader: BalanceReader):
        super().__init__(settings)
        self.primary_wallet = primary_wallet
        self.balance_reader = balance_reader

    @property
    def name(self) -> str:
        return "Transfer to relay wallet"

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        ledger = ctx.ledger
        if ledger.amount <= 0:
            raise OperationError("Transfer amount must be positive", phase="precheck")

        balance = await check_owner_balance(self.balance_reader, ctx)
        return {"balance": balance}

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> TransferResult:
        ledger = ctx.ledger
        asset = ctx.plan.asset
        logger.info(
            f"Transferring {format_amount(ledger.amount, asset.decimals)} {asset.symbol} "
            f"to relay wallet {ctx.relay_address} "
            f"on {get_chain_name(ledger.chain_id)}"
        )

        if ledger.is_native:
            receipt = await self.primary_wallet.send_native(ledger.chain_id, ctx.relay_address, ledger.amount)
        else:
            receipt = await self.primary_wallet.transfer_token(
                ledger.chain_id, ledger.token, ctx.relay_address, ledger.amount
            )

        if not receipt.status:
            raise OperationError(f"Transfer transaction {receipt.tx_hash} reverted")

        return TransferResult(
            tx_hash=receipt.tx_hash,
            token=ledger.token,
            amount=ledger.amount,
            recipient=ctx.relay_address,
            chain_id=ledger.chain_id,
        )

    async def settle(self, ctx: OperationContext, result) -> None:
        # Let the relay balance catch up before the relay spends it
        await asyncio.sleep(self.settings.transfer_settle_seconds)


class TransferToOwnerOperation(AssetOperation):
    """Return the withdrawn asset from the relay wallet to the user's wallet."""

    ability = ABILITY_TRANSFER

    def __init__(self, settings, transfer_service: TransferService):
        super().__init__(settings)
        self.transfer_service = transfer_service

    @property
    def name(self) -> str:
        return "Transfer to wallet"

    def _params(self, ctx: OperationContext) -> TransferParams:
        ledger = ctx.ledger
        return TransferParams(
            token=ledger.token,
            to=ctx.owner_address,
            amount=ledger.amount,
            chain_id=ledger.chain_id,
            is_native=ledger.is_native,
        )

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        result = await self.transfer_service.precheck(self._params(ctx))
        return self.check_result(result, "precheck")

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> TransferResult:
        params = self._params(ctx)
        payload = self.check_result(await self.transfer_service.execute(params), "execute")

        return TransferResult(
            tx_hash=self.require_field(payload, "txHash"),
            token=params.token,
            amount=params.amount,
            recipient=params.to,
            chain_id=params.chain_id,
        )
