"""User primary wallet backed by a local private key.

Transactions are signed locally with eth-account and broadcast over JSON-RPC.
Every call waits for the receipt; a reverted receipt raises
TransactionReverted.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx
from eth_account import Account
from web3 import Web3

from vaultflow.config import Settings, get_settings
from vaultflow.orchestrator.retry import RetryPolicy
from vaultflow.services.base import PrimaryWallet, PrimaryWalletError, TransactionReverted, TxReceipt

logger = logging.getLogger(__name__)

TRANSFER_SIGNATURE = "transfer(address,uint256)"
DEPOSIT_SIGNATURE = "depositAsset(address,uint256)"
APPROVE_SIGNATURE = "approve(address,uint256)"
ALLOWANCE_SIGNATURE = "allowance(address,address)"

NATIVE_TRANSFER_GAS = 21000
DEFAULT_CALL_GAS = 250000


def function_selector(signature: str) -> str:
    return "0x" + bytes(Web3.keccak(text=signature)[:4]).hex()


def encode_address_amount(signature: str, address: str, amount: int) -> str:
    """Calldata for ``fn(address,uint256)``."""
    return (
        function_selector(signature)
        + address.lower().replace("0x", "").rjust(64, "0")
        + hex(amount)[2:].rjust(64, "0")
    )


def encode_addresses(signature: str, *addresses: str) -> str:
    """Calldata for ``fn(address,...)``."""
    return function_selector(signature) + "".join(
        address.lower().replace("0x", "").rjust(64, "0") for address in addresses
    )


class LocalPrimaryWallet(PrimaryWallet):
    """Signs with a private key held in configuration."""

    def __init__(
        self,
        private_key: str,
        settings: Optional[Settings] = None,
        receipt_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.account = Account.from_key(private_key)
        self.receipt_policy = receipt_policy or RetryPolicy(max_attempts=60, interval=2.0)
        self.transport = transport
        # One in-flight transaction per wallet keeps nonces sequential
        self._send_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self.account.address

    async def send_native(self, chain_id: int, to: str, amount: int) -> TxReceipt:
        logger.info(f"Sending {amount} wei to {to} on chain {chain_id}")
        return await self._send(chain_id, to=to, value=amount, data="0x", gas=NATIVE_TRANSFER_GAS)

    async def transfer_token(self, chain_id: int, token: str, to: str, amount: int) -> TxReceipt:
        logger.info(f"Transferring {amount} of {token} to {to} on chain {chain_id}")
        data = encode_address_amount(TRANSFER_SIGNATURE, to, amount)
        return await self._send(chain_id, to=token, value=0, data=data)

    async def deposit_to_vault(
        self,
        chain_id: int,
        vault_address: str,
        token: str,
        amount: int,
        is_native: bool,
    ) -> TxReceipt:
        if not is_native:
            await self._ensure_allowance(chain_id, token, vault_address, amount)

        logger.info(f"Depositing {amount} of {token} into vault {vault_address} on chain {chain_id}")
        data = encode_address_amount(DEPOSIT_SIGNATURE, token, amount)
        return await self._send(
            chain_id, to=vault_address, value=amount if is_native else 0, data=data
        )

    async def get_allowance(self, chain_id: int, token: str, spender: str) -> int:
        """ERC-20 allowance this wallet has granted to ``spender``."""
        data = encode_addresses(ALLOWANCE_SIGNATURE, self.address, spender)
        result = await self._rpc(
            self._rpc_url(chain_id),
            "eth_call",
            [{"to": Web3.to_checksum_address(token), "data": data}, "latest"],
        )
        return int(result, 16) if result and result != "0x" else 0

    async def _ensure_allowance(self, chain_id: int, token: str, spender: str, amount: int) -> None:
        allowance = await self.get_allowance(chain_id, token, spender)
        if allowance >= amount:
            logger.info(f"Token already approved: allowance={allowance}")
            return

        logger.info(f"Approving {amount} of {token} for {spender} on chain {chain_id}")
        data = encode_address_amount(APPROVE_SIGNATURE, spender, amount)
        await self._send(chain_id, to=token, value=0, data=data)

    def _rpc_url(self, chain_id: int) -> str:
        try:
            return self.settings.get_rpc_url(chain_id)
        except ValueError as e:
            raise PrimaryWalletError(str(e)) from e

    async def _send(self, chain_id: int, to: str, value: int, data: str, gas: Optional[int] = None) -> TxReceipt:
        rpc_url = self._rpc_url(chain_id)

        async with self._send_lock:
            nonce = int(await self._rpc(rpc_url, "eth_getTransactionCount", [self.address, "pending"]), 16)
            gas_price = int(await self._rpc(rpc_url, "eth_gasPrice", []), 16)

            tx: dict[str, Any] = {
                "nonce": nonce,
                "gasPrice": gas_price,
                "to": Web3.to_checksum_address(to),
                "value": value,
                "data": data,
                "chainId": chain_id,
            }
            if gas is None:
                estimate = await self._rpc(
                    rpc_url,
                    "eth_estimateGas",
                    [{"from": self.address, "to": tx["to"], "value": hex(value), "data": data}],
                )
                gas = int(int(estimate, 16) * 1.2) if estimate else DEFAULT_CALL_GAS
            tx["gas"] = gas

            signed = self.account.sign_transaction(tx)
            raw = signed.raw_transaction.hex()
            tx_hash = await self._rpc(
                rpc_url, "eth_sendRawTransaction", [raw if raw.startswith("0x") else f"0x{raw}"]
            )

        logger.info(f"Transaction broadcast: {tx_hash}")
        return await self._wait_for_receipt(rpc_url, tx_hash)

    async def _wait_for_receipt(self, rpc_url: str, tx_hash: str) -> TxReceipt:
        receipt: dict[str, Any] = {}

        async def mined() -> bool:
            nonlocal receipt
            receipt = await self._rpc(rpc_url, "eth_getTransactionReceipt", [tx_hash]) or {}
            return bool(receipt)

        outcome = await self.receipt_policy.run(mined, label=f"receipt {tx_hash}")
        if not outcome.satisfied:
            raise PrimaryWalletError(f"Transaction {tx_hash} not mined after {outcome.attempts} checks")

        result = TxReceipt(
            tx_hash=tx_hash,
            status=int(receipt.get("status", "0x0"), 16) == 1,
            block_number=int(receipt["blockNumber"], 16) if receipt.get("blockNumber") else None,
            gas_used=int(receipt["gasUsed"], 16) if receipt.get("gasUsed") else None,
        )
        if not result.status:
            raise TransactionReverted(tx_hash)
        return result

    async def _rpc(self, rpc_url: str, method: str, params: list) -> Any:
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.post(
                    rpc_url,
                    json={"jsonrpc": "2.0", "method": method, "params": params, "id": 1},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PrimaryWalletError(f"{method} failed: {e}") from e

        if "error" in data:
            raise PrimaryWalletError(f"{method} failed: {data['error']}")
        return data.get("result")
