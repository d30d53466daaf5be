"""Tests for asset movement operations."""

from unittest.mock import AsyncMock

import pytest

from conftest import OWNER_ADDRESS, RELAY_ADDRESS
from vaultflow.chains import ARBITRUM_SEPOLIA, BASE_SEPOLIA, ETHEREUM_SEPOLIA, NATIVE_TOKEN
from vaultflow.errors import AuthorizationError, OperationError
from vaultflow.operations.base import FlowLedger, OperationContext
from vaultflow.operations.bridge import BridgeOperation
from vaultflow.operations.swap import SwapOperation
from vaultflow.operations.transfer import TransferToOwnerOperation, TransferToRelayOperation
from vaultflow.operations.vault import (
    DirectVaultDepositOperation,
    VaultDepositOperation,
    VaultWithdrawOperation,
)
from vaultflow.orchestrator.models import (
    BridgeResult,
    OperationMode,
    StepId,
    SwapResult,
    VaultResult,
)
from vaultflow.orchestrator.planner import OperationPlanner
from vaultflow.orchestrator.retry import RetryPolicy
from vaultflow.services.base import AbilityResult, AbilityServiceError, BridgeOrderStatus
from vaultflow.services.dry_run import DryRunBridgeService, DryRunVaultService

planner = OperationPlanner()


def make_context(session, settings, plan, token, amount, chain_id, is_native=False):
    return OperationContext(
        session=session,
        plan=plan,
        ledger=FlowLedger(token=token, amount=amount, chain_id=chain_id, is_native=is_native),
        owner_address=OWNER_ADDRESS,
        settings=settings,
    )


@pytest.fixture
def deposit_plan(usdc):
    return planner.plan(OperationMode.DEPOSIT, ARBITRUM_SEPOLIA, BASE_SEPOLIA, usdc, amount=10**6)


class TestFlowLedger:
    def test_swap_output_becomes_native(self, usdc):
        ledger = FlowLedger(token=usdc.address, amount=100, chain_id=ARBITRUM_SEPOLIA, is_native=False)
        ledger.apply(SwapResult("0x1", usdc.address, NATIVE_TOKEN, 100, 95, ARBITRUM_SEPOLIA))

        assert ledger.token == NATIVE_TOKEN
        assert ledger.amount == 95
        assert ledger.is_native

    def test_bridge_moves_chain(self):
        ledger = FlowLedger(token=NATIVE_TOKEN, amount=95, chain_id=ARBITRUM_SEPOLIA, is_native=True)
        ledger.apply(BridgeResult("0x2", "order", ARBITRUM_SEPOLIA, BASE_SEPOLIA, NATIVE_TOKEN, 95))

        assert ledger.chain_id == BASE_SEPOLIA
        # No reported destination amount: the bridged amount carries over
        assert ledger.amount == 95

    def test_deposit_leaves_ledger_unchanged(self):
        ledger = FlowLedger(token=NATIVE_TOKEN, amount=95, chain_id=BASE_SEPOLIA, is_native=True)
        ledger.apply(VaultResult("0x3", "deposit", NATIVE_TOKEN, 95, "0xvault", BASE_SEPOLIA))

        assert ledger.amount == 95


class TestBridgeOperation:
    @pytest.mark.asyncio
    async def test_polls_status_when_enabled(self, settings, session, deposit_plan):
        settings.bridge_status_polling = True
        status = AsyncMock()
        status.get_status.side_effect = [BridgeOrderStatus.PENDING, BridgeOrderStatus.COMPLETED]
        operation = BridgeOperation(
            settings, DryRunBridgeService(), status, RetryPolicy(max_attempts=5, interval=0)
        )
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        result = await operation.run(ctx, StepId.BRIDGE_TOKEN)

        assert result.destination_chain == BASE_SEPOLIA
        assert status.get_status.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_order_fails_the_step(self, settings, session, deposit_plan):
        settings.bridge_status_polling = True
        status = AsyncMock()
        status.get_status.return_value = BridgeOrderStatus.FAILED
        operation = BridgeOperation(
            settings, DryRunBridgeService(), status, RetryPolicy(max_attempts=5, interval=0)
        )
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        with pytest.raises(OperationError) as exc_info:
            await operation.run(ctx, StepId.BRIDGE_TOKEN)
        assert exc_info.value.step_id == StepId.BRIDGE_TOKEN.value

    @pytest.mark.asyncio
    async def test_unfulfilled_order_proceeds_after_budget(self, settings, session, deposit_plan):
        settings.bridge_status_polling = True
        status = AsyncMock()
        status.get_status.return_value = BridgeOrderStatus.PENDING
        operation = BridgeOperation(
            settings, DryRunBridgeService(), status, RetryPolicy(max_attempts=3, interval=0)
        )
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        result = await operation.run(ctx, StepId.BRIDGE_TOKEN)

        assert result.order_id
        assert status.get_status.await_count == 3

    @pytest.mark.asyncio
    async def test_fixed_settle_delay_by_default(self, settings, session, deposit_plan):
        status = AsyncMock()
        operation = BridgeOperation(settings, DryRunBridgeService(), status)
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        await operation.run(ctx, StepId.BRIDGE_TOKEN)

        status.get_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_chain_bridge_is_rejected(self, settings, session, deposit_plan):
        bridge = AsyncMock()
        operation = BridgeOperation(settings, bridge)
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, BASE_SEPOLIA, True)

        with pytest.raises(OperationError):
            await operation.run(ctx, StepId.BRIDGE_TOKEN)
        bridge.precheck.assert_not_called()

    @pytest.mark.asyncio
    async def test_bridge_requires_order_id(self, settings, session, deposit_plan):
        bridge = AsyncMock()
        bridge.precheck.return_value = AbilityResult.ok()
        bridge.execute.return_value = AbilityResult.ok(txHash="0xabc")
        operation = BridgeOperation(settings, bridge)
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        with pytest.raises(OperationError, match="orderId"):
            await operation.run(ctx, StepId.BRIDGE_TOKEN)


class TestSwapOperation:
    @pytest.mark.asyncio
    async def test_swap_parameters(self, settings, session, deposit_plan, usdc):
        dex = AsyncMock()
        dex.precheck.return_value = AbilityResult.ok(amountOut="990")
        dex.execute.return_value = AbilityResult.ok(txHash="0xswap", outputAmount="985")
        ctx = make_context(session, settings, deposit_plan, usdc.address, 1000, ARBITRUM_SEPOLIA)

        result = await SwapOperation(settings, dex).run(ctx, StepId.SWAP_TOKEN)

        params = dex.execute.await_args.args[0]
        assert params.token_in == usdc.address
        assert params.token_out == NATIVE_TOKEN
        assert params.recipient == RELAY_ADDRESS
        assert params.slippage_bps == settings.swap_slippage_bps
        assert result.output_amount == 985

    @pytest.mark.asyncio
    async def test_unreachable_service(self, settings, session, deposit_plan, usdc):
        dex = AsyncMock()
        dex.precheck.side_effect = AbilityServiceError("connection refused")
        ctx = make_context(session, settings, deposit_plan, usdc.address, 1000, ARBITRUM_SEPOLIA)

        with pytest.raises(OperationError) as exc_info:
            await SwapOperation(settings, dex).run(ctx, StepId.SWAP_TOKEN)
        assert exc_info.value.phase == "precheck"

    @pytest.mark.parametrize("message", [
        "Relay wallet is not permitted to execute uniswap-swap",
        "authorization failed",
    ])
    def test_authorization_errors_are_recognised(self, settings, message):
        with pytest.raises(AuthorizationError):
            SwapOperation(settings, AsyncMock()).check_result(AbilityResult.fail(message), "execute")


class TestVaultOperations:
    @pytest.mark.asyncio
    async def test_deposit_requires_funds_on_vault_chain(self, settings, session, deposit_plan):
        vault = AsyncMock()
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        with pytest.raises(OperationError):
            await VaultDepositOperation(settings, vault).run(ctx, StepId.DEPOSIT_VAULT)
        vault.deposit_asset.assert_not_called()

    @pytest.mark.asyncio
    async def test_deposit_on_chain_without_vault(self, settings, session, eth):
        plan = planner.plan(OperationMode.DEPOSIT, ETHEREUM_SEPOLIA, ETHEREUM_SEPOLIA, eth, amount=10**15)
        ctx = make_context(session, settings, plan, NATIVE_TOKEN, 10**15, ETHEREUM_SEPOLIA, True)

        with pytest.raises(OperationError, match="No vault"):
            await VaultDepositOperation(settings, DryRunVaultService()).run(ctx, StepId.DEPOSIT_VAULT)

    @pytest.mark.asyncio
    async def test_native_deposit_sends_value(self, settings, session, deposit_plan):
        vault = AsyncMock()
        vault.precheck.return_value = AbilityResult.ok()
        vault.deposit_asset.return_value = AbilityResult.ok(txHash="0xdep", blockNumber=7)
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, BASE_SEPOLIA, True)

        result = await VaultDepositOperation(settings, vault).run(ctx, StepId.DEPOSIT_VAULT)

        params = vault.deposit_asset.await_args.args[0]
        assert params.is_native
        vault.approve_asset.assert_not_called()
        assert params.vault_address == "0x714CD1EBAfcD09d67B2605cE46b597876d3A0026"
        assert result.block_number == 7

    @pytest.mark.asyncio
    async def test_token_deposit_approves_vault_first(self, settings, session, deposit_plan, usdc):
        vault = DryRunVaultService()
        ctx = make_context(session, settings, deposit_plan, usdc.address, 10**6, BASE_SEPOLIA)

        await VaultDepositOperation(settings, vault).run(ctx, StepId.DEPOSIT_VAULT)

        assert vault.calls == [("approve", usdc.address, 10**6), ("deposit", usdc.address, 10**6)]

    @pytest.mark.asyncio
    async def test_failed_approval_stops_deposit(self, settings, session, deposit_plan, usdc):
        vault = AsyncMock()
        vault.precheck.return_value = AbilityResult.ok()
        vault.approve_asset.return_value = AbilityResult.fail("approve reverted")
        ctx = make_context(session, settings, deposit_plan, usdc.address, 10**6, BASE_SEPOLIA)

        with pytest.raises(OperationError, match="approve reverted"):
            await VaultDepositOperation(settings, vault).run(ctx, StepId.DEPOSIT_VAULT)
        vault.deposit_asset.assert_not_called()

    @pytest.mark.asyncio
    async def test_withdraw_uses_plan_asset(self, settings, session, usdc):
        plan = planner.plan(
            OperationMode.WITHDRAW, BASE_SEPOLIA, BASE_SEPOLIA, usdc, amount=500, target_chain=BASE_SEPOLIA
        )
        vault = AsyncMock()
        vault.precheck.return_value = AbilityResult.ok()
        vault.withdraw_asset.return_value = AbilityResult.ok(txHash="0xwd")
        ctx = make_context(session, settings, plan, usdc.address, 500, BASE_SEPOLIA)

        result = await VaultWithdrawOperation(settings, vault).run(ctx, StepId.WITHDRAW_VAULT)

        assert result.action == "withdraw"
        assert result.token == usdc.address
        assert result.amount == 500

    @pytest.mark.asyncio
    async def test_direct_deposit_checks_wallet_balance(self, settings, session, wallet, balances, eth):
        plan = planner.plan(OperationMode.DEPOSIT, BASE_SEPOLIA, BASE_SEPOLIA, eth, amount=10**18)
        balances.set_balance(OWNER_ADDRESS, BASE_SEPOLIA, 10**17)
        ctx = make_context(session, settings, plan, NATIVE_TOKEN, 10**18, BASE_SEPOLIA, True)

        with pytest.raises(OperationError, match="Insufficient balance"):
            await DirectVaultDepositOperation(settings, wallet, balances).run(ctx, StepId.DEPOSIT_VAULT)
        assert wallet.sent == []


class TestTransfers:
    @pytest.mark.asyncio
    async def test_transfer_to_relay_checks_balance(self, settings, session, wallet, balances, deposit_plan, usdc):
        balances.set_balance(OWNER_ADDRESS, ARBITRUM_SEPOLIA, 10, token=usdc.address)
        ctx = make_context(session, settings, deposit_plan, usdc.address, 10**6, ARBITRUM_SEPOLIA)

        with pytest.raises(OperationError) as exc_info:
            await TransferToRelayOperation(settings, wallet, balances).run(ctx, StepId.TRANSFER_TO_PKP)
        assert exc_info.value.phase == "precheck"

    @pytest.mark.asyncio
    async def test_transfer_to_relay_native(self, settings, session, wallet, balances, deposit_plan):
        ctx = make_context(session, settings, deposit_plan, NATIVE_TOKEN, 10**15, ARBITRUM_SEPOLIA, True)

        result = await TransferToRelayOperation(settings, wallet, balances).run(ctx, StepId.TRANSFER_TO_PKP)

        assert result.recipient == RELAY_ADDRESS
        assert wallet.sent[0][0] == "native"

    @pytest.mark.asyncio
    async def test_transfer_to_owner(self, settings, session, usdc):
        plan = planner.plan(
            OperationMode.WITHDRAW, BASE_SEPOLIA, BASE_SEPOLIA, usdc, amount=500, target_chain=BASE_SEPOLIA
        )
        transfers = AsyncMock()
        transfers.precheck.return_value = AbilityResult.ok()
        transfers.execute.return_value = AbilityResult.ok(txHash="0xout")
        ctx = make_context(session, settings, plan, usdc.address, 500, BASE_SEPOLIA)

        result = await TransferToOwnerOperation(settings, transfers).run(ctx, StepId.TRANSFER_EOA)

        params = transfers.execute.await_args.args[0]
        assert params.to == OWNER_ADDRESS
        assert result.tx_hash == "0xout"
