"""Operation planner.

Decides which sub-operations (swap, bridge) a deposit or withdrawal needs and
materializes the ordered step list. Planning is pure: identical inputs always
produce identical plans.
"""

import logging
from decimal import Decimal
from typing import Optional

from vaultflow.chains import get_chain_name, needs_cross_chain_operation
from vaultflow.orchestrator.models import (
    Asset,
    FundingTier,
    OperationMode,
    OperationPlan,
    StepId,
    StepSpec,
)

logger = logging.getLogger(__name__)

# Relay wallet gas budget per tier (native units). Fixed policy constants.
FUNDING_TIERS: dict[OperationMode, dict[FundingTier, Decimal]] = {
    OperationMode.DEPOSIT: {
        FundingTier.COMPLEX: Decimal("0.01"),
        FundingTier.MEDIUM: Decimal("0.007"),
        FundingTier.MINIMUM: Decimal("0.003"),
    },
    OperationMode.WITHDRAW: {
        FundingTier.COMPLEX: Decimal("0.008"),
        FundingTier.MEDIUM: Decimal("0.005"),
        FundingTier.MINIMUM: Decimal("0.002"),
    },
}

# Informational only, never used to gate execution
DURATION_LABELS: dict[tuple[bool, bool], str] = {
    (True, True): "8-12 minutes",
    (False, True): "5-8 minutes",
    (True, False): "3-5 minutes",
    (False, False): "2-3 minutes",
}


def select_funding_tier(needs_swap: bool, needs_bridge: bool) -> FundingTier:
    if needs_swap and needs_bridge:
        return FundingTier.COMPLEX
    if needs_swap or needs_bridge:
        return FundingTier.MEDIUM
    return FundingTier.MINIMUM


def estimate_duration(needs_swap: bool, needs_bridge: bool) -> str:
    return DURATION_LABELS[(needs_swap, needs_bridge)]


class OperationPlanner:
    """Builds OperationPlans for deposits and withdrawals."""

    def plan(
        self,
        mode: OperationMode,
        source_chain: int,
        vault_chain: int,
        asset: Optional[Asset],
        *,
        amount: int = 0,
        target_chain: Optional[int] = None,
        needs_funding: bool = False,
    ) -> Optional[OperationPlan]:
        """Plan an operation.

        Args:
            mode: deposit or withdraw
            source_chain: Chain of the user's wallet
            vault_chain: Chain where the vault is deployed
            asset: Selected token (wallet token for deposits, vault asset for withdrawals)
            amount: Amount in the asset's base units
            target_chain: Chain that receives withdrawal proceeds
            needs_funding: Whether the relay wallet currently needs gas

        Returns:
            The plan, or None when no asset (or withdrawal target) is selected
        """
        if asset is None:
            return None

        if mode == OperationMode.DEPOSIT:
            return self._plan_deposit(source_chain, vault_chain, asset, amount, needs_funding)

        if target_chain is None:
            return None
        return self._plan_withdraw(source_chain, vault_chain, target_chain, asset, amount, needs_funding)

    def _plan_deposit(
        self,
        source_chain: int,
        vault_chain: int,
        asset: Asset,
        amount: int,
        needs_funding: bool,
    ) -> OperationPlan:
        needs_bridge = needs_cross_chain_operation(source_chain, vault_chain)
        needs_swap = not asset.is_target_asset and needs_bridge
        direct_path = not needs_swap and not needs_bridge
        vault_name = get_chain_name(vault_chain)

        steps: list[StepSpec] = []
        if direct_path:
            # Same-chain deposit straight from the user's wallet, no relay wallet involved
            needs_funding = False
            steps.append(StepSpec(
                id=StepId.DEPOSIT_VAULT,
                title="Deposit to Vault",
                description=f"Deposit {asset.symbol} to the vault on {vault_name} from your wallet",
            ))
        else:
            tier_amount = FUNDING_TIERS[OperationMode.DEPOSIT][select_funding_tier(needs_swap, needs_bridge)]
            if needs_funding:
                steps.append(self._funding_step(tier_amount, needs_bridge))

            steps.append(StepSpec(
                id=StepId.TRANSFER_TO_PKP,
                title="Transfer to Relay Wallet" if asset.is_native else "Prepare Token Operations",
                description=(
                    f"Transfer {asset.symbol} to the relay wallet"
                    if asset.is_native
                    else f"Move {asset.symbol} to the relay wallet for delegated operations"
                ),
            ))
            if needs_swap:
                steps.append(StepSpec(
                    id=StepId.SWAP_TOKEN,
                    title="Swap to ETH",
                    description=f"Swap {asset.symbol} to ETH via relay wallet",
                ))
            if needs_bridge:
                steps.append(StepSpec(
                    id=StepId.BRIDGE_TOKEN,
                    title=f"Bridge to {vault_name}",
                    description=f"Bridge ETH to {vault_name} via relay wallet",
                ))
            steps.append(StepSpec(
                id=StepId.DEPOSIT_VAULT,
                title="Deposit to Vault",
                description="Deposit ETH to the vault via relay wallet",
            ))

        return self._build(
            OperationMode.DEPOSIT,
            source_chain=source_chain,
            target_chain=vault_chain,
            vault_chain=vault_chain,
            asset=asset,
            amount=amount,
            needs_swap=needs_swap,
            needs_bridge=needs_bridge,
            needs_funding=needs_funding,
            direct_path=direct_path,
            steps=steps,
        )

    def _plan_withdraw(
        self,
        source_chain: int,
        vault_chain: int,
        target_chain: int,
        asset: Asset,
        amount: int,
        needs_funding: bool,
    ) -> OperationPlan:
        # Funds must leave the vault before any conversion, so order is fixed
        needs_bridge = needs_cross_chain_operation(vault_chain, target_chain)
        needs_swap = not asset.is_target_asset
        tier_amount = FUNDING_TIERS[OperationMode.WITHDRAW][select_funding_tier(needs_swap, needs_bridge)]
        target_name = get_chain_name(target_chain)

        steps: list[StepSpec] = []
        if needs_funding:
            steps.append(self._funding_step(tier_amount, needs_bridge))

        steps.append(StepSpec(
            id=StepId.WITHDRAW_VAULT,
            title="Withdraw from Vault",
            description=f"Withdraw {asset.symbol} from the vault",
        ))
        if needs_swap:
            steps.append(StepSpec(
                id=StepId.SWAP_TOKEN,
                title="Swap Token",
                description=f"Swap {asset.symbol} to ETH",
            ))
        if needs_bridge:
            steps.append(StepSpec(
                id=StepId.BRIDGE_TOKEN,
                title="Bridge to Target Chain",
                description=f"Bridge to {target_name}",
            ))
        steps.append(StepSpec(
            id=StepId.TRANSFER_EOA,
            title="Transfer to Your Wallet",
            description="Transfer assets to your connected wallet",
        ))

        return self._build(
            OperationMode.WITHDRAW,
            source_chain=source_chain,
            target_chain=target_chain,
            vault_chain=vault_chain,
            asset=asset,
            amount=amount,
            needs_swap=needs_swap,
            needs_bridge=needs_bridge,
            needs_funding=needs_funding,
            direct_path=False,
            steps=steps,
        )

    @staticmethod
    def _funding_step(amount: Decimal, is_cross_chain: bool) -> StepSpec:
        if is_cross_chain:
            description = f"Transfer {amount} ETH to the relay wallet (cross-chain funding may take longer)"
        else:
            description = f"Transfer {amount} ETH to the relay wallet for gas fees"
        return StepSpec(id=StepId.FUND_PKP, title="Fund Relay Wallet", description=description)

    @staticmethod
    def _build(mode: OperationMode, *, steps: list[StepSpec], **fields) -> OperationPlan:
        tier = select_funding_tier(fields["needs_swap"], fields["needs_bridge"])
        plan = OperationPlan(
            mode=mode,
            steps=tuple(steps),
            funding_tier=tier,
            estimated_funding_amount=FUNDING_TIERS[mode][tier],
            estimated_duration_label=estimate_duration(fields["needs_swap"], fields["needs_bridge"]),
            **fields,
        )
        logger.debug(
            f"Planned {mode.value}: {[s.value for s in plan.step_ids]} "
            f"(swap={plan.needs_swap}, bridge={plan.needs_bridge}, tier={tier.value})"
        )
        return plan
