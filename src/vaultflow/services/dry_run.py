"""Simulated services for dry-run mode.

No transaction is ever sent. Balances live in memory, and native transfers
from the simulated primary wallet credit the simulated balance reader, so a
full flow (including relay wallet funding verification) runs end to end.
"""

import logging
import secrets
from decimal import Decimal
from typing import Optional

from vaultflow.chains import NATIVE_TOKEN
from vaultflow.services.base import (
    AbilityResult,
    BalanceReader,
    BridgeOrderStatus,
    BridgeParams,
    BridgeService,
    BridgeStatusSource,
    DexService,
    PrimaryWallet,
    SwapParams,
    TransferParams,
    TransferService,
    TxReceipt,
    VaultCallParams,
    VaultService,
)

logger = logging.getLogger(__name__)

DRY_RUN_OWNER = "0x00000000000000000000000000000000d2e5a1e7"

# Default simulated balance for unknown addresses: 10 ETH / 10,000 units
DEFAULT_NATIVE_BALANCE = 10 * 10**18
DEFAULT_TOKEN_BALANCE = 10_000 * 10**18

SWAP_FEE = Decimal("0.003")
BRIDGE_FEE = Decimal("0.001")


def fake_tx_hash() -> str:
    return "0x" + secrets.token_hex(32)


class DryRunBalanceReader(BalanceReader):
    """In-memory balances keyed by (chain, token, address)."""

    def __init__(self, default_native: int = DEFAULT_NATIVE_BALANCE, default_token: int = DEFAULT_TOKEN_BALANCE):
        self.default_native = default_native
        self.default_token = default_token
        self._balances: dict[tuple[int, str, str], int] = {}

    def _key(self, chain_id: int, token: str, address: str) -> tuple[int, str, str]:
        return (chain_id, token.lower(), address.lower())

    def set_balance(self, address: str, chain_id: int, amount: int, token: str = NATIVE_TOKEN) -> None:
        self._balances[self._key(chain_id, token, address)] = amount

    def credit(self, address: str, chain_id: int, amount: int, token: str = NATIVE_TOKEN) -> None:
        key = self._key(chain_id, token, address)
        default = self.default_native if token == NATIVE_TOKEN else self.default_token
        self._balances[key] = self._balances.get(key, default) + amount

    async def get_native_balance(self, address: str, chain_id: int) -> int:
        return self._balances.get(self._key(chain_id, NATIVE_TOKEN, address), self.default_native)

    async def get_token_balance(self, token: str, address: str, chain_id: int) -> int:
        return self._balances.get(self._key(chain_id, token, address), self.default_token)


class DryRunPrimaryWallet(PrimaryWallet):
    """Simulated user wallet."""

    def __init__(self, balances: Optional[DryRunBalanceReader] = None, address: str = DRY_RUN_OWNER):
        self._address = address
        self.balances = balances
        self.sent: list[tuple[str, int, str, str, int]] = []

    @property
    def address(self) -> str:
        return self._address

    def _receipt(self) -> TxReceipt:
        return TxReceipt(tx_hash=fake_tx_hash(), status=True, block_number=1, gas_used=21000)

    async def send_native(self, chain_id: int, to: str, amount: int) -> TxReceipt:
        logger.info(f"[DRY RUN] send {amount} wei to {to} on chain {chain_id}")
        self.sent.append(("native", chain_id, NATIVE_TOKEN, to, amount))
        if self.balances is not None:
            self.balances.credit(to, chain_id, amount)
        return self._receipt()

    async def transfer_token(self, chain_id: int, token: str, to: str, amount: int) -> TxReceipt:
        logger.info(f"[DRY RUN] transfer {amount} of {token} to {to} on chain {chain_id}")
        self.sent.append(("token", chain_id, token, to, amount))
        if self.balances is not None:
            self.balances.credit(to, chain_id, amount, token=token)
        return self._receipt()

    async def deposit_to_vault(
        self,
        chain_id: int,
        vault_address: str,
        token: str,
        amount: int,
        is_native: bool,
    ) -> TxReceipt:
        logger.info(f"[DRY RUN] deposit {amount} of {token} into {vault_address} on chain {chain_id}")
        self.sent.append(("deposit", chain_id, token, vault_address, amount))
        return self._receipt()


class DryRunDexService(DexService):
    """Quotes every swap at 1:1 minus a 0.3% fee."""

    def _amount_out(self, params: SwapParams) -> int:
        return int(Decimal(params.amount_in) * (1 - SWAP_FEE))

    async def precheck(self, params: SwapParams) -> AbilityResult:
        if params.amount_in <= 0:
            return AbilityResult.fail("amountIn must be positive")
        return AbilityResult.ok(amountOut=str(self._amount_out(params)))

    async def execute(self, params: SwapParams) -> AbilityResult:
        logger.info(f"[DRY RUN] swap {params.amount_in} {params.token_in} -> {params.token_out}")
        return AbilityResult.ok(txHash=fake_tx_hash(), outputAmount=str(self._amount_out(params)))


class DryRunBridgeService(BridgeService):
    """Bridges arrive instantly minus a 0.1% fee."""

    async def precheck(self, params: BridgeParams) -> AbilityResult:
        if params.amount <= 0:
            return AbilityResult.fail("amount must be positive")
        return AbilityResult.ok(estimatedTime=60)

    async def execute(self, params: BridgeParams) -> AbilityResult:
        logger.info(
            f"[DRY RUN] bridge {params.amount} {params.source_token} "
            f"{params.source_chain} -> {params.destination_chain}"
        )
        return AbilityResult.ok(
            txHash=fake_tx_hash(),
            orderId=secrets.token_hex(32),
            destinationAmount=str(int(Decimal(params.amount) * (1 - BRIDGE_FEE))),
            estimatedArrival=60,
        )


class DryRunBridgeStatus(BridgeStatusSource):
    async def get_status(self, order_id: str) -> BridgeOrderStatus:
        return BridgeOrderStatus.COMPLETED


class DryRunTransferService(TransferService):
    async def precheck(self, params: TransferParams) -> AbilityResult:
        if params.amount <= 0:
            return AbilityResult.fail("amount must be positive")
        return AbilityResult.ok()

    async def execute(self, params: TransferParams) -> AbilityResult:
        logger.info(f"[DRY RUN] relay transfer {params.amount} {params.token} to {params.to}")
        return AbilityResult.ok(txHash=fake_tx_hash())


class DryRunVaultService(VaultService):
    def __init__(self):
        self.calls: list[tuple[str, str, int]] = []

    async def precheck(self, params: VaultCallParams) -> AbilityResult:
        if params.amount <= 0:
            return AbilityResult.fail("amount must be positive")
        return AbilityResult.ok()

    async def approve_asset(self, params: VaultCallParams) -> AbilityResult:
        logger.info(f"[DRY RUN] approve {params.amount} {params.token} for {params.vault_address}")
        self.calls.append(("approve", params.token, params.amount))
        return AbilityResult.ok(txHash=fake_tx_hash(), blockNumber=1, gasUsed=46000)

    async def deposit_asset(self, params: VaultCallParams) -> AbilityResult:
        logger.info(f"[DRY RUN] vault deposit {params.amount} {params.token}")
        self.calls.append(("deposit", params.token, params.amount))
        return AbilityResult.ok(txHash=fake_tx_hash(), blockNumber=1, gasUsed=120000)

    async def withdraw_asset(self, params: VaultCallParams) -> AbilityResult:
        logger.info(f"[DRY RUN] vault withdraw {params.amount} {params.token}")
        self.calls.append(("withdraw", params.token, params.amount))
        return AbilityResult.ok(txHash=fake_tx_hash(), blockNumber=1, gasUsed=90000)
