"""Vault deposit and withdrawal operations."""

import logging
from typing import Any

from vaultflow.chains import get_chain_name, get_vault_address
from vaultflow.errors import OperationError
from vaultflow.operations.base import AssetOperation, OperationContext, check_owner_balance
from vaultflow.orchestrator.models import VaultResult
from vaultflow.services.base import (
    BalanceReader,
    PrimaryWallet,
    VaultCallParams,
    VaultService,
)
from vaultflow.session import ABILITY_CONTRACT

logger = logging.getLogger(__name__)


def resolve_vault(chain_id: int) -> str:
    vault = get_vault_address(chain_id)
    if vault is None:
        raise OperationError(f"No vault deployed on {get_chain_name(chain_id)}", phase="precheck")
    return vault


class VaultDepositOperation(AssetOperation):
    """Deposit what the relay wallet holds into the vault."""

    ability = ABILITY_CONTRACT

    def __init__(self, settings, vault: VaultService):
        super().__init__(settings)
        self.vault = vault

    @property
    def name(self) -> str:
        return "Vault deposit"

    def _params(self, ctx: OperationContext) -> VaultCallParams:
        ledger = ctx.ledger
        if ledger.chain_id != ctx.plan.vault_chain:
            raise OperationError(
                f"Funds are on {get_chain_name(ledger.chain_id)}, vault is on "
                f"{get_chain_name(ctx.plan.vault_chain)}",
                phase="precheck",
            )
        return VaultCallParams(
            vault_address=resolve_vault(ctx.plan.vault_chain),
            token=ledger.token,
            amount=ledger.amount,
            chain_id=ledger.chain_id,
            is_native=ledger.is_native,
            action="deposit",
        )

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        return self.check_result(await self.vault.precheck(self._params(ctx)), "precheck")

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> VaultResult:
        params = self._params(ctx)
        if not params.is_native:
            approval = self.check_result(await self.vault.approve_asset(params), "execute")
            logger.info(f"Vault approved for {params.amount} of {params.token}: {approval.get('txHash')}")
        payload = self.check_result(await self.vault.deposit_asset(params), "execute")
        return _vault_result(self, params, payload)


class VaultWithdrawOperation(AssetOperation):
    """Withdraw the selected vault asset into the relay wallet."""

    ability = ABILITY_CONTRACT

    def __init__(self, settings, vault: VaultService):
        super().__init__(settings)
        self.vault = vault

    @property
    def name(self) -> str:
        return "Vault withdrawal"

    def _params(self, ctx: OperationContext) -> VaultCallParams:
        plan = ctx.plan
        return VaultCallParams(
            vault_address=resolve_vault(plan.vault_chain),
            token=plan.asset.address,
            amount=plan.amount,
            chain_id=plan.vault_chain,
            is_native=plan.asset.is_native,
            action="withdraw",
        )

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        if ctx.plan.amount <= 0:
            raise OperationError("Withdrawal amount must be positive", phase="precheck")
        return self.check_result(await self.vault.precheck(self._params(ctx)), "precheck")

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> VaultResult:
        params = self._params(ctx)
        payload = self.check_result(await self.vault.withdraw_asset(params), "execute")
        return _vault_result(self, params, payload)


class DirectVaultDepositOperation(AssetOperation):
    """Deposit straight from the user's wallet when no relay work is needed."""

    def __init__(self, settings, primary_wallet: PrimaryWallet, balance_reader: BalanceReader):
        super().__init__(settings)
        self.primary_wallet = primary_wallet
        self.balance_reader = balance_reader

    @property
    def name(self) -> str:
        return "Direct vault deposit"

    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        ledger = ctx.ledger
        resolve_vault(ctx.plan.vault_chain)
        if ledger.amount <= 0:
            raise OperationError("Deposit amount must be positive", phase="precheck")

        balance = await check_owner_balance(self.balance_reader, ctx)
        return {"balance": balance}

    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> VaultResult:
        ledger = ctx.ledger
        vault_address = resolve_vault(ctx.plan.vault_chain)

        receipt = await self.primary_wallet.deposit_to_vault(
            ledger.chain_id, vault_address, ledger.token, ledger.amount, ledger.is_native
        )
        if not receipt.status:
            raise OperationError(f"Deposit transaction {receipt.tx_hash} reverted")

        return VaultResult(
            tx_hash=receipt.tx_hash,
            action="deposit",
            token=ledger.token,
            amount=ledger.amount,
            vault_address=vault_address,
            chain_id=ledger.chain_id,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )


def _vault_result(op: AssetOperation, params: VaultCallParams, payload: dict[str, Any]) -> VaultResult:
    block_number = payload.get("blockNumber")
    gas_used = payload.get("gasUsed")
    return VaultResult(
        tx_hash=op.require_field(payload, "txHash"),
        action=params.action,
        token=params.token,
        amount=params.amount,
        vault_address=params.vault_address,
        chain_id=params.chain_id,
        block_number=int(block_number) if block_number is not None else None,
        gas_used=int(gas_used) if gas_used is not None else None,
    )
