"""Tests for relay wallet funding and the retry policy."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from vaultflow.chains import BASE_SEPOLIA
from vaultflow.errors import FundingError, FundingTransferFailed, FundingVerificationFailed
from vaultflow.orchestrator.funding import RelayWalletFundingGuard
from vaultflow.orchestrator.retry import RetryPolicy
from vaultflow.services.base import BalanceReadError, BalanceReader, PrimaryWalletError, TxReceipt

RELAY = "0x" + "ab" * 20
ETH = 10**18
LOW = ETH // 10_000  # 0.0001 ETH
ENOUGH = ETH // 100  # 0.01 ETH


class ScriptedBalances(BalanceReader):
    """Returns balances from a script, repeating the last value."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def get_native_balance(self, address, chain_id):
        index = min(self.calls, len(self.values) - 1)
        self.calls += 1
        value = self.values[index]
        if isinstance(value, Exception):
            raise value
        return value

    async def get_token_balance(self, token, address, chain_id):
        return 0


def make_wallet(status=True):
    wallet = AsyncMock()
    wallet.address = "0x" + "cd" * 20
    wallet.send_native.return_value = TxReceipt(tx_hash="0xfund", status=status)
    return wallet


def make_guard(balances, wallet, settings):
    return RelayWalletFundingGuard(balances, wallet, settings)


class TestEnsureFunded:
    """Tests for RelayWalletFundingGuard.ensure_funded."""

    @pytest.mark.asyncio
    async def test_sufficient_balance_skips_transfer(self, settings):
        wallet = make_wallet()
        guard = make_guard(ScriptedBalances(ENOUGH), wallet, settings)

        result = await guard.ensure_funded(RELAY, Decimal("0.01"), False, BASE_SEPOLIA)

        assert not result.funded
        assert result.tx_hash is None
        wallet.send_native.assert_not_called()

    @pytest.mark.asyncio
    async def test_funds_and_verifies_same_chain(self, settings):
        wallet = make_wallet()
        balances = ScriptedBalances(LOW, LOW, ENOUGH)
        guard = make_guard(balances, wallet, settings)

        result = await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)

        assert result.funded and result.verified
        assert result.tx_hash == "0xfund"
        assert result.attempts == 2
        assert result.amount == 3 * 10**15
        wallet.send_native.assert_awaited_once_with(BASE_SEPOLIA, RELAY, 3 * 10**15)

    @pytest.mark.asyncio
    async def test_same_chain_verification_failure_is_fatal(self, settings):
        """Balance never reaches the minimum within 10 same-chain checks."""
        balances = ScriptedBalances(LOW)
        guard = make_guard(balances, make_wallet(), settings)

        with pytest.raises(FundingVerificationFailed) as exc_info:
            await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)

        assert exc_info.value.attempts == 10
        # One initial read plus one per verification attempt
        assert balances.calls == 11

    @pytest.mark.asyncio
    async def test_cross_chain_is_lenient_after_three_attempts(self, settings):
        balances = ScriptedBalances(LOW)
        guard = make_guard(balances, make_wallet(), settings)

        result = await guard.ensure_funded(RELAY, Decimal("0.01"), True, BASE_SEPOLIA)

        assert result.funded
        assert not result.verified
        assert result.attempts == 5
        assert balances.calls == 6

    @pytest.mark.asyncio
    async def test_cross_chain_below_leniency_threshold_is_fatal(self, settings):
        guard = RelayWalletFundingGuard(
            ScriptedBalances(LOW),
            make_wallet(),
            settings,
            cross_chain=RetryPolicy(max_attempts=2, interval=0, lenient_after=3),
        )

        with pytest.raises(FundingVerificationFailed) as exc_info:
            await guard.ensure_funded(RELAY, Decimal("0.01"), True, BASE_SEPOLIA)

        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_transfer_failure(self, settings):
        wallet = make_wallet()
        wallet.send_native.side_effect = PrimaryWalletError("insufficient funds for gas")
        guard = make_guard(ScriptedBalances(LOW), wallet, settings)

        with pytest.raises(FundingTransferFailed):
            await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)

    @pytest.mark.asyncio
    async def test_reverted_funding_transaction(self, settings):
        guard = make_guard(ScriptedBalances(LOW), make_wallet(status=False), settings)

        with pytest.raises(FundingTransferFailed):
            await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)

    @pytest.mark.asyncio
    async def test_unreadable_balance(self, settings):
        wallet = make_wallet()
        guard = make_guard(ScriptedBalances(BalanceReadError("rpc down")), wallet, settings)

        with pytest.raises(FundingError):
            await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)
        wallet.send_native.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_errors_during_verification_count_as_attempts(self, settings):
        balances = ScriptedBalances(LOW, BalanceReadError("timeout"), ENOUGH)
        guard = make_guard(balances, make_wallet(), settings)

        result = await guard.ensure_funded(RELAY, Decimal("0.003"), False, BASE_SEPOLIA)

        assert result.verified
        assert result.attempts == 2


class TestRelayWalletState:
    @pytest.mark.asyncio
    async def test_state_derivation(self, settings):
        guard = make_guard(ScriptedBalances(LOW), make_wallet(), settings)

        state = await guard.get_state(RELAY, BASE_SEPOLIA)

        assert state.has_balance
        assert state.needs_funding
        assert not state.can_execute_operations
        assert state.formatted_balance == Decimal("0.0001")

    @pytest.mark.asyncio
    async def test_funded_wallet_can_execute(self, settings):
        guard = make_guard(ScriptedBalances(ENOUGH), make_wallet(), settings)

        state = await guard.get_state(RELAY, BASE_SEPOLIA)

        assert not state.needs_funding
        assert state.can_execute_operations


class TestRetryPolicy:
    """Tests for the bounded retry policy."""

    @pytest.mark.asyncio
    async def test_stops_when_satisfied(self):
        sleeps = []

        async def sleep(delay):
            sleeps.append(delay)

        results = iter([False, False, True])
        policy = RetryPolicy(max_attempts=10, interval=2.0, sleep=sleep)

        outcome = await policy.run(lambda: _value(next(results)))

        assert outcome.satisfied
        assert outcome.attempts == 3
        assert sleeps == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_checks_before_waiting(self):
        sleeps = []

        async def sleep(delay):
            sleeps.append(delay)

        policy = RetryPolicy(max_attempts=10, interval=2.0, sleep=sleep)
        outcome = await policy.run(lambda: _value(True))

        assert outcome.satisfied
        assert outcome.attempts == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_never_exceeds_cap(self):
        calls = 0

        async def check():
            nonlocal calls
            calls += 1
            return False

        policy = RetryPolicy(max_attempts=5, interval=0)
        outcome = await policy.run(check)

        assert calls == 5
        assert not outcome.satisfied
        assert not outcome.accepted

    @pytest.mark.asyncio
    async def test_backoff(self):
        sleeps = []

        async def sleep(delay):
            sleeps.append(delay)

        policy = RetryPolicy(max_attempts=3, interval=1.0, backoff=2.0, sleep=sleep)
        await policy.run(lambda: _value(False))

        assert sleeps == [1.0, 2.0]

    @pytest.mark.parametrize("attempts,lenient", [(1, False), (2, False), (3, True), (5, True)])
    def test_leniency_threshold(self, attempts, lenient):
        policy = RetryPolicy(max_attempts=5, interval=0, lenient_after=3)
        assert policy.allows_leniency(attempts) == lenient

    def test_no_leniency_by_default(self):
        assert not RetryPolicy(max_attempts=10, interval=0).allows_leniency(10)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0, interval=1.0)


async def _value(value):
    return value
