"""deBridge order status client."""

import logging
from typing import Optional

import httpx

from vaultflow.services.base import BridgeOrderStatus, BridgeStatusSource

logger = logging.getLogger(__name__)

DEBRIDGE_API = "https://api.debridge.finance/v1"


class DeBridgeStatusClient(BridgeStatusSource):
    """Reads order state from the deBridge public API.

    ``fulfilled`` maps to completed, ``failed`` to failed, and anything
    else (including lookup errors) to pending.
    """

    def __init__(
        self,
        api_url: str = DEBRIDGE_API,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_status(self, order_id: str) -> BridgeOrderStatus:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.api_url}/order/{order_id}")
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"deBridge status lookup for {order_id} failed: {e}")
            return BridgeOrderStatus.PENDING

        state = str(data.get("status", "")).lower()
        if state == "fulfilled":
            return BridgeOrderStatus.COMPLETED
        if state == "failed":
            return BridgeOrderStatus.FAILED
        return BridgeOrderStatus.PENDING
