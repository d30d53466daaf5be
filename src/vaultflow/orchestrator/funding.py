"""Relay wallet funding guard.

Makes sure the delegated relay wallet can pay gas before any relayed step
runs, topping it up from the user's primary wallet when it cannot.

Verification after a top-up is a bounded poll of the relay balance:
- same-chain: 10 checks, 2s apart, strict
- cross-chain: 5 checks, 3s apart; after at least 3 checks an unverified
  funding is accepted with a warning, since balance propagation around
  bridging infrastructure is slower and less reliable
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from vaultflow.config import Settings, get_settings
from vaultflow.errors import FundingError, FundingTransferFailed, FundingVerificationFailed
from vaultflow.orchestrator.models import FundingResult, RelayWalletState
from vaultflow.orchestrator.retry import RetryPolicy
from vaultflow.services.base import BalanceReadError, BalanceReader, PrimaryWallet, PrimaryWalletError
from vaultflow.utils.locks import is_relay_wallet_busy
from vaultflow.utils.units import to_base_units

logger = logging.getLogger(__name__)


def same_chain_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.funding_attempts_same_chain,
        interval=settings.funding_interval_same_chain,
    )


def cross_chain_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.funding_attempts_cross_chain,
        interval=settings.funding_interval_cross_chain,
        lenient_after=settings.funding_lenient_after,
    )


class RelayWalletFundingGuard:
    """Owns the relay wallet balance view and tops it up when needed."""

    def __init__(
        self,
        balance_reader: BalanceReader,
        primary_wallet: PrimaryWallet,
        settings: Optional[Settings] = None,
        same_chain: Optional[RetryPolicy] = None,
        cross_chain: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.balance_reader = balance_reader
        self.primary_wallet = primary_wallet
        self.minimum_balance: Decimal = self.settings.relay_minimum_balance
        self.same_chain_policy = same_chain or same_chain_policy(self.settings)
        self.cross_chain_policy = cross_chain or cross_chain_policy(self.settings)

    async def get_state(self, address: str, chain_id: int) -> RelayWalletState:
        """Read the relay balance and derive its funding state."""
        balance = await self.balance_reader.get_native_balance(address, chain_id)
        return RelayWalletState(
            address=address,
            chain_id=chain_id,
            balance=balance,
            minimum_balance=self.minimum_balance,
            is_executing=is_relay_wallet_busy(address),
        )

    async def ensure_funded(
        self,
        relay_address: str,
        required_amount: Decimal,
        is_cross_chain: bool,
        chain_id: int,
    ) -> FundingResult:
        """Top up the relay wallet if it is below the minimum balance.

        Args:
            relay_address: Relay wallet to fund
            required_amount: Native amount to send when funding is needed
            is_cross_chain: Selects the lenient cross-chain verification policy
            chain_id: Chain where the relay wallet pays gas

        Returns:
            FundingResult (``funded`` is False when no top-up was needed,
            ``verified`` is False when cross-chain leniency accepted it)

        Raises:
            FundingTransferFailed: The primary wallet transfer failed
            FundingVerificationFailed: Balance never reached the minimum
        """
        try:
            state = await self.get_state(relay_address, chain_id)
        except BalanceReadError as e:
            raise FundingError(f"Could not read relay wallet balance: {e}") from e

        if not state.needs_funding:
            logger.info(
                f"Relay wallet {relay_address} has {state.formatted_balance} ETH, no funding needed"
            )
            return FundingResult(tx_hash=None, amount=0, attempts=0, verified=True, funded=False)

        amount_wei = to_base_units(required_amount, 18)
        logger.info(
            f"Funding relay wallet {relay_address} with {required_amount} ETH on chain {chain_id} "
            f"(balance {state.formatted_balance} < minimum {self.minimum_balance})"
        )

        try:
            receipt = await asyncio.wait_for(
                self.primary_wallet.send_native(chain_id, relay_address, amount_wei),
                timeout=self.settings.operation_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise FundingTransferFailed(
                f"Relay wallet funding transfer timed out after {self.settings.operation_timeout_seconds}s"
            ) from e
        except PrimaryWalletError as e:
            raise FundingTransferFailed(f"Relay wallet funding transfer failed: {e}") from e

        if not receipt.status:
            raise FundingTransferFailed(f"Relay wallet funding transaction {receipt.tx_hash} reverted")

        logger.info(f"Funding transaction confirmed: {receipt.tx_hash}")

        policy = self.cross_chain_policy if is_cross_chain else self.same_chain_policy
        last_state = state

        async def funded() -> bool:
            nonlocal last_state
            try:
                last_state = await self.get_state(relay_address, chain_id)
            except BalanceReadError as e:
                logger.warning(f"Relay balance refresh failed: {e}")
                return False
            return not last_state.needs_funding

        outcome = await policy.run(funded, label=f"relay funding {relay_address}")

        if outcome.satisfied:
            return FundingResult(
                tx_hash=receipt.tx_hash,
                amount=amount_wei,
                attempts=outcome.attempts,
                verified=True,
            )

        if is_cross_chain and outcome.lenient:
            logger.warning(
                f"Relay funding verification incomplete for cross-chain operation after "
                f"{outcome.attempts} attempts (balance {last_state.formatted_balance} ETH), proceeding anyway"
            )
            return FundingResult(
                tx_hash=receipt.tx_hash,
                amount=amount_wei,
                attempts=outcome.attempts,
                verified=False,
            )

        raise FundingVerificationFailed(
            f"Relay wallet funding verification failed after {outcome.attempts} attempts. "
            f"Current balance: {last_state.formatted_balance} ETH",
            attempts=outcome.attempts,
            balance=str(last_state.formatted_balance),
        )
