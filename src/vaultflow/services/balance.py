"""On-chain balance reads over JSON-RPC."""

import logging
from typing import Optional

import httpx

from vaultflow.config import Settings, get_settings
from vaultflow.services.base import BalanceReadError, BalanceReader

logger = logging.getLogger(__name__)

# balanceOf(address)
BALANCE_OF_SELECTOR = "0x70a08231"


class RpcBalanceReader(BalanceReader):
    """Reads native and ERC-20 balances with eth_getBalance / eth_call."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.timeout = timeout
        self.transport = transport

    async def _rpc(self, chain_id: int, method: str, params: list) -> str:
        try:
            rpc_url = self.settings.get_rpc_url(chain_id)
        except ValueError as e:
            raise BalanceReadError(str(e)) from e

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    rpc_url,
                    json={"jsonrpc": "2.0", "method": method, "params": params, "id": 1},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BalanceReadError(f"{method} on chain {chain_id} failed: {e}") from e

        if "error" in data:
            raise BalanceReadError(f"{method} on chain {chain_id} failed: {data['error']}")
        result = data.get("result")
        if not isinstance(result, str):
            raise BalanceReadError(f"{method} on chain {chain_id} returned no result")
        return result

    async def get_native_balance(self, address: str, chain_id: int) -> int:
        result = await self._rpc(chain_id, "eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_token_balance(self, token: str, address: str, chain_id: int) -> int:
        data = BALANCE_OF_SELECTOR + address.lower().replace("0x", "").rjust(64, "0")
        result = await self._rpc(chain_id, "eth_call", [{"to": token, "data": data}, "latest"])
        if result in ("0x", ""):
            return 0
        return int(result, 16)
