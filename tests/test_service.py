"""Tests for the vault operation service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import OWNER_ADDRESS, RELAY_ADDRESS, make_session
from vaultflow.chains import ARBITRUM_SEPOLIA, BASE_SEPOLIA
from vaultflow.errors import AuthorizationError, PlanningError, RelayWalletBusy
from vaultflow.orchestrator.models import OperationMode, StepId
from vaultflow.orchestrator.service import OperationRequest, VaultOperationService
from vaultflow.services.base import BalanceReadError
from vaultflow.utils.locks import RelayWalletLock


@pytest.fixture
def service(executor, funding_guard, settings):
    return VaultOperationService(executor, funding_guard, OWNER_ADDRESS, settings=settings)


def deposit(asset, amount=10**6, source=ARBITRUM_SEPOLIA, available=None):
    return OperationRequest(
        mode=OperationMode.DEPOSIT,
        asset=asset,
        amount=amount,
        source_chain=source,
        available_balance=available,
    )


class TestPreflight:
    @pytest.mark.asyncio
    async def test_expired_session_is_refused(self, service, usdc):
        session = make_session(expires_in=-60)

        with pytest.raises(AuthorizationError):
            await service.run(deposit(usdc), session)

    @pytest.mark.asyncio
    async def test_amount_above_available_balance(self, service, session, usdc):
        with pytest.raises(PlanningError):
            await service.prepare(deposit(usdc, amount=10**7, available=10**6), session)

    @pytest.mark.asyncio
    async def test_zero_amount(self, service, session, usdc):
        with pytest.raises(PlanningError):
            await service.prepare(deposit(usdc, amount=0), session)

    @pytest.mark.asyncio
    async def test_no_asset_selected(self, service, session):
        with pytest.raises(PlanningError):
            await service.prepare(deposit(None), session)

    @pytest.mark.asyncio
    async def test_withdrawal_without_target(self, service, session, eth):
        request = OperationRequest(
            mode=OperationMode.WITHDRAW, asset=eth, amount=10**17, source_chain=BASE_SEPOLIA
        )
        with pytest.raises(PlanningError):
            await service.prepare(request, session)


class TestPlanning:
    @pytest.mark.asyncio
    async def test_underfunded_relay_gets_funding_step(self, service, session, usdc, underfunded_relay):
        plan = await service.prepare(deposit(usdc), session)

        assert plan.needs_funding
        assert plan.step_ids[0] == StepId.FUND_PKP

    @pytest.mark.asyncio
    async def test_funded_relay_has_no_funding_step(self, service, session, usdc, funded_relay):
        plan = await service.prepare(deposit(usdc), session)

        assert not plan.needs_funding
        assert StepId.FUND_PKP not in plan.step_ids

    @pytest.mark.asyncio
    async def test_unreadable_relay_balance_plans_funding(self, executor, settings, session, usdc):
        guard = AsyncMock()
        guard.get_state.side_effect = BalanceReadError("rpc down")
        service = VaultOperationService(executor, guard, OWNER_ADDRESS, settings=settings)

        plan = await service.prepare(deposit(usdc), session)

        assert plan.needs_funding

    @pytest.mark.asyncio
    async def test_vault_chain_comes_from_settings(self, service, session, usdc, funded_relay):
        plan = await service.prepare(deposit(usdc), session)
        assert plan.vault_chain == BASE_SEPOLIA


class TestRun:
    @pytest.mark.asyncio
    async def test_full_deposit(self, service, session, usdc, underfunded_relay):
        result = await service.run(deposit(usdc), session)

        assert result.success, result.cause
        assert result.plan.step_ids[-1] == StepId.DEPOSIT_VAULT

    @pytest.mark.asyncio
    async def test_busy_relay_wallet_is_rejected(self, service, session, usdc, funded_relay):
        async with RelayWalletLock(RELAY_ADDRESS, operation="other flow"):
            with pytest.raises(RelayWalletBusy):
                await service.run(deposit(usdc), session)

    @pytest.mark.asyncio
    async def test_concurrent_flows_on_one_relay(self, service, session, usdc, funded_relay):
        results = await asyncio.gather(
            service.run(deposit(usdc), session),
            service.run(deposit(usdc), session),
            return_exceptions=True,
        )

        busy = [r for r in results if isinstance(r, RelayWalletBusy)]
        completed = [r for r in results if not isinstance(r, Exception)]
        assert len(busy) == 1
        assert len(completed) == 1 and completed[0].success

    @pytest.mark.asyncio
    async def test_different_relays_run_independently(self, service, session, usdc, funded_relay):
        other = make_session(address="0x" + "ef" * 20)

        results = await asyncio.gather(
            service.run(deposit(usdc), session),
            service.run(deposit(usdc), other),
        )

        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_lock_released_after_flow(self, service, session, usdc, funded_relay):
        await service.run(deposit(usdc), session)
        state = await service.funding_guard.get_state(RELAY_ADDRESS, ARBITRUM_SEPOLIA)
        assert not state.is_executing
