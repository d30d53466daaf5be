"""Factory for creating operations and the services behind them.

Creates real services when dry-run is disabled and credentials are present,
otherwise falls back to simulated services.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from vaultflow.config import Settings, get_settings
from vaultflow.operations.base import AssetOperation
from vaultflow.operations.bridge import BridgeOperation
from vaultflow.operations.swap import SwapOperation
from vaultflow.operations.transfer import TransferToOwnerOperation, TransferToRelayOperation
from vaultflow.operations.vault import (
    DirectVaultDepositOperation,
    VaultDepositOperation,
    VaultWithdrawOperation,
)
from vaultflow.orchestrator.models import OperationPlan, StepId
from vaultflow.services.base import (
    BalanceReader,
    BridgeService,
    BridgeStatusSource,
    DexService,
    PrimaryWallet,
    TransferService,
    VaultService,
)
from vaultflow.session import Session

logger = logging.getLogger(__name__)


@dataclass
class OperationSet:
    """One operation per step kind, bound for a single session."""
    transfer_to_relay: AssetOperation
    swap: AssetOperation
    bridge: AssetOperation
    vault_deposit: AssetOperation
    vault_withdraw: AssetOperation
    transfer_to_owner: AssetOperation
    direct_deposit: AssetOperation

    def for_step(self, step_id: StepId, plan: OperationPlan) -> AssetOperation:
        if step_id == StepId.DEPOSIT_VAULT:
            return self.direct_deposit if plan.direct_path else self.vault_deposit

        mapping = {
            StepId.TRANSFER_TO_PKP: self.transfer_to_relay,
            StepId.SWAP_TOKEN: self.swap,
            StepId.BRIDGE_TOKEN: self.bridge,
            StepId.WITHDRAW_VAULT: self.vault_withdraw,
            StepId.TRANSFER_EOA: self.transfer_to_owner,
        }
        if step_id not in mapping:
            raise KeyError(f"No operation handles step {step_id.value}")
        return mapping[step_id]


@dataclass
class DelegatedServices:
    dex: DexService
    bridge: BridgeService
    transfer: TransferService
    vault: VaultService
    bridge_status: Optional[BridgeStatusSource] = None


def create_balance_reader(settings: Optional[Settings] = None) -> BalanceReader:
    """Create the balance reader (RPC, or in-memory in dry-run mode)."""
    settings = settings or get_settings()

    if not settings.dry_run:
        from vaultflow.services.balance import RpcBalanceReader
        return RpcBalanceReader(settings)

    from vaultflow.services.dry_run import DryRunBalanceReader
    return DryRunBalanceReader()


def create_primary_wallet(
    settings: Optional[Settings] = None,
    balance_reader: Optional[BalanceReader] = None,
) -> PrimaryWallet:
    """Create the user's primary wallet.

    A local key wallet is used when a private key is configured and dry-run
    is off; otherwise a simulated wallet.
    """
    settings = settings or get_settings()

    if settings.has_primary_wallet and not settings.dry_run:
        try:
            from vaultflow.services.wallet import LocalPrimaryWallet
            return LocalPrimaryWallet(settings.primary_wallet_private_key, settings)
        except ValueError as e:
            logger.warning(f"Failed to load primary wallet key: {e}")

    from vaultflow.services.dry_run import DryRunBalanceReader, DryRunPrimaryWallet
    balances = balance_reader if isinstance(balance_reader, DryRunBalanceReader) else None
    return DryRunPrimaryWallet(balances)


def create_delegated_services(session: Session, settings: Optional[Settings] = None) -> DelegatedServices:
    """Create ability-backed services for a session."""
    settings = settings or get_settings()

    if not settings.dry_run:
        from vaultflow.services.abilities import (
            AbilityBridgeService,
            AbilityClient,
            AbilityDexService,
            AbilityTransferService,
            AbilityVaultService,
        )
        from vaultflow.services.debridge import DeBridgeStatusClient

        client = AbilityClient(settings.ability_service_url, settings.app_id, session)
        return DelegatedServices(
            dex=AbilityDexService(client),
            bridge=AbilityBridgeService(client),
            transfer=AbilityTransferService(client),
            vault=AbilityVaultService(client),
            bridge_status=DeBridgeStatusClient(settings.debridge_api_url),
        )

    from vaultflow.services.dry_run import (
        DryRunBridgeService,
        DryRunBridgeStatus,
        DryRunDexService,
        DryRunTransferService,
        DryRunVaultService,
    )
    return DelegatedServices(
        dex=DryRunDexService(),
        bridge=DryRunBridgeService(),
        transfer=DryRunTransferService(),
        vault=DryRunVaultService(),
        bridge_status=DryRunBridgeStatus(),
    )


def create_operation_set(
    services: DelegatedServices,
    primary_wallet: PrimaryWallet,
    balance_reader: BalanceReader,
    settings: Optional[Settings] = None,
) -> OperationSet:
    settings = settings or get_settings()
    return OperationSet(
        transfer_to_relay=TransferToRelayOperation(settings, primary_wallet, balance_reader),
        swap=SwapOperation(settings, services.dex),
        bridge=BridgeOperation(settings, services.bridge, services.bridge_status),
        vault_deposit=VaultDepositOperation(settings, services.vault),
        vault_withdraw=VaultWithdrawOperation(settings, services.vault),
        transfer_to_owner=TransferToOwnerOperation(settings, services.transfer),
        direct_deposit=DirectVaultDepositOperation(settings, primary_wallet, balance_reader),
    )
