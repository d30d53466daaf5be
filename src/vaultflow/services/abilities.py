"""Delegated ability services.

Each ability (swap, bridge, transfer, contract call) is exposed by the
delegation service over HTTP as two endpoints:

    POST {base}/abilities/{ability}/precheck
    POST {base}/abilities/{ability}/execute

with the session JWT as a bearer token. Responses are
``{"success": bool, "result": {...}, "runtimeError": str}``.
"""

import logging
from typing import Any, Optional

import httpx

from vaultflow.services.base import (
    AbilityResult,
    AbilityServiceError,
    BridgeParams,
    BridgeService,
    DexService,
    SwapParams,
    TransferParams,
    TransferService,
    VaultCallParams,
    VaultService,
)
from vaultflow.session import (
    ABILITY_BRIDGE,
    ABILITY_CONTRACT,
    ABILITY_SWAP,
    ABILITY_TRANSFER,
    Session,
)

logger = logging.getLogger(__name__)

# Minimal vault ABI for contract-interaction calls
VAULT_ABI = [
    {
        "name": "depositAsset",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "name": "withdrawAsset",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
]

ERC20_APPROVE_ABI = [
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class AbilityClient:
    """HTTP client for the delegated ability service."""

    def __init__(
        self,
        base_url: str,
        app_id: str,
        session: Session,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.session = session
        self.timeout = timeout
        self.transport = transport

    async def call(self, ability: str, phase: str, params: dict[str, Any]) -> AbilityResult:
        url = f"{self.base_url}/abilities/{ability}/{phase}"
        body = {
            "appId": self.app_id,
            "delegatorPkpEthAddress": self.session.relay_address,
            "params": params,
        }
        headers = {"Authorization": f"Bearer {self.session.credential}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Ability {ability} {phase} request failed: {e}")
            raise AbilityServiceError(f"{ability} {phase} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            if response.status_code >= 400:
                raise AbilityServiceError(
                    f"{ability} {phase} returned HTTP {response.status_code}"
                )
            raise AbilityServiceError(f"{ability} {phase} returned a malformed response")

        success = bool(data.get("success"))
        result = AbilityResult(
            success=success,
            result=data.get("result") or {},
            runtime_error=data.get("runtimeError") or data.get("error"),
        )
        if not success and not result.runtime_error:
            result.runtime_error = f"HTTP {response.status_code}"

        logger.debug(f"Ability {ability} {phase}: success={success}")
        return result


class AbilityDexService(DexService):
    """Uniswap swaps through the swap ability."""

    def __init__(self, client: AbilityClient):
        self.client = client

    def _params(self, params: SwapParams) -> dict[str, Any]:
        body = {
            "tokenIn": params.token_in,
            "tokenOut": params.token_out,
            "amountIn": str(params.amount_in),
            "recipient": params.recipient,
            "chainId": params.chain_id,
            "slippageBps": params.slippage_bps,
        }
        if params.deadline is not None:
            body["deadline"] = params.deadline
        return body

    async def precheck(self, params: SwapParams) -> AbilityResult:
        return await self.client.call(ABILITY_SWAP, "precheck", self._params(params))

    async def execute(self, params: SwapParams) -> AbilityResult:
        return await self.client.call(ABILITY_SWAP, "execute", self._params(params))


class AbilityBridgeService(BridgeService):
    """deBridge transfers through the bridge ability."""

    def __init__(self, client: AbilityClient):
        self.client = client

    def _params(self, params: BridgeParams) -> dict[str, Any]:
        return {
            "sourceChain": params.source_chain,
            "destinationChain": params.destination_chain,
            "sourceToken": params.source_token,
            "destinationToken": params.destination_token,
            "amount": str(params.amount),
            "recipientAddress": params.recipient,
            "slippageBps": params.slippage_bps,
        }

    async def precheck(self, params: BridgeParams) -> AbilityResult:
        return await self.client.call(ABILITY_BRIDGE, "precheck", self._params(params))

    async def execute(self, params: BridgeParams) -> AbilityResult:
        return await self.client.call(ABILITY_BRIDGE, "execute", self._params(params))


class AbilityTransferService(TransferService):
    """Relay-signed transfers through the transfer ability."""

    def __init__(self, client: AbilityClient):
        self.client = client

    def _params(self, params: TransferParams) -> dict[str, Any]:
        return {
            "tokenAddress": params.token,
            "to": params.to,
            "amount": str(params.amount),
            "chainId": params.chain_id,
            "isNative": params.is_native,
        }

    async def precheck(self, params: TransferParams) -> AbilityResult:
        return await self.client.call(ABILITY_TRANSFER, "precheck", self._params(params))

    async def execute(self, params: TransferParams) -> AbilityResult:
        return await self.client.call(ABILITY_TRANSFER, "execute", self._params(params))


class AbilityVaultService(VaultService):
    """Vault calls through the contract interaction ability."""

    def __init__(self, client: AbilityClient):
        self.client = client

    def _params(self, params: VaultCallParams, method: str) -> dict[str, Any]:
        return {
            "contractAddress": params.vault_address,
            "chainId": params.chain_id,
            "abi": VAULT_ABI,
            "functionName": method,
            "args": [params.token, str(params.amount)],
            "value": str(params.amount) if params.is_native and method == "depositAsset" else "0",
        }

    def _approve_params(self, params: VaultCallParams) -> dict[str, Any]:
        return {
            "contractAddress": params.token,
            "chainId": params.chain_id,
            "abi": ERC20_APPROVE_ABI,
            "functionName": "approve",
            "args": [params.vault_address, str(params.amount)],
            "value": "0",
        }

    async def precheck(self, params: VaultCallParams) -> AbilityResult:
        # A token deposit cannot be simulated before its approval exists
        if params.action == "deposit" and not params.is_native:
            return await self.client.call(ABILITY_CONTRACT, "precheck", self._approve_params(params))
        method = "depositAsset" if params.action == "deposit" else "withdrawAsset"
        return await self.client.call(ABILITY_CONTRACT, "precheck", self._params(params, method))

    async def approve_asset(self, params: VaultCallParams) -> AbilityResult:
        return await self.client.call(ABILITY_CONTRACT, "execute", self._approve_params(params))

    async def deposit_asset(self, params: VaultCallParams) -> AbilityResult:
        return await self.client.call(ABILITY_CONTRACT, "execute", self._params(params, "depositAsset"))

    async def withdraw_asset(self, params: VaultCallParams) -> AbilityResult:
        return await self.client.call(ABILITY_CONTRACT, "execute", self._params(params, "withdrawAsset"))
