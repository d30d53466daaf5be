"""Base interface for asset movement operations.

Every operation is two-phase against its execution service:
1. precheck - validate parameters and simulate (quotes for swap/bridge)
2. execute  - submit the transaction and wait for its outcome

A failed precheck prevents execute. Each phase runs under a per-call
deadline. Operations are never retried automatically: retrying after a
successful execute could move funds twice.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from vaultflow.chains import NATIVE_TOKEN
from vaultflow.config import Settings
from vaultflow.errors import AuthorizationError, OperationError, OrchestrationError
from vaultflow.orchestrator.models import (
    BridgeResult,
    OperationPlan,
    StepId,
    StepResult,
    SwapResult,
    VaultResult,
)
from vaultflow.services.base import (
    AbilityResult,
    AbilityServiceError,
    BalanceReadError,
    BalanceReader,
    PrimaryWalletError,
)
from vaultflow.session import Session

logger = logging.getLogger(__name__)

# Service messages that mean the delegation itself is missing or revoked
AUTHORIZATION_MARKERS = (
    "not permitted to execute",
    "app delegatee",
    "authorization failed",
    "ethaddresstopkpid",
)


@dataclass
class FlowLedger:
    """What the flow currently holds and where.

    Starts as the user's selected asset and is advanced by each completed
    step, so a swap's output feeds the following bridge, and a bridge's
    destination chain feeds the deposit.
    """
    token: str
    amount: int
    chain_id: int
    is_native: bool

    def apply(self, result: StepResult) -> None:
        if isinstance(result, SwapResult):
            self.token = result.token_out
            self.amount = result.output_amount
            self.is_native = result.token_out == NATIVE_TOKEN
        elif isinstance(result, BridgeResult):
            self.chain_id = result.destination_chain
            if result.destination_amount is not None:
                self.amount = result.destination_amount
        elif isinstance(result, VaultResult) and result.action == "withdraw":
            self.token = result.token
            self.amount = result.amount
            self.chain_id = result.chain_id


@dataclass
class OperationContext:
    """Inputs available to an operation for one step."""
    session: Session
    plan: OperationPlan
    ledger: FlowLedger
    owner_address: str
    settings: Settings

    @property
    def relay_address(self) -> str:
        return self.session.relay_address


class AssetOperation(ABC):
    """A single step kind wrapped around an external execution service."""

    # Ability the delegation credential must grant (None for user-signed calls)
    ability: Optional[str] = None

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def precheck(self, ctx: OperationContext) -> dict[str, Any]:
        """Validate and simulate. Returns the quote (may be empty).

        Raises:
            OperationError: If the parameters are rejected
        """
        pass

    @abstractmethod
    async def execute(self, ctx: OperationContext, quote: dict[str, Any]) -> StepResult:
        """Submit the transaction and return its typed result."""
        pass

    async def settle(self, ctx: OperationContext, result: StepResult) -> None:
        """Wait for the effect of ``result`` to be usable by the next step."""
        return None

    async def run(self, ctx: OperationContext, step_id: StepId) -> StepResult:
        """Run precheck then execute then settle for one step.

        Raises:
            OperationError: precheck rejected, execute failed, or a deadline passed
            AuthorizationError: the delegation does not allow this ability
        """
        if self.ability:
            ctx.session.require_ability(self.ability)

        logger.info(f"[{step_id.value}] {self.name} precheck")
        quote = await self._call(self.precheck(ctx), step_id, "precheck")

        logger.info(f"[{step_id.value}] {self.name} execute")
        result = await self._call(self.execute(ctx, quote), step_id, "execute")

        await self.settle(ctx, result)
        return result

    async def _call(self, coro, step_id: StepId, phase: str):
        timeout = self.settings.operation_timeout_seconds
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise OperationError(
                f"{self.name} {phase} timed out after {timeout}s", step_id=step_id.value, phase=phase
            ) from e
        except OperationError as e:
            if e.step_id is None:
                e.step_id = step_id.value
                e.phase = phase
            raise
        except OrchestrationError:
            raise
        except (PrimaryWalletError, AbilityServiceError) as e:
            raise OperationError(
                f"{self.name} {phase} failed: {e}", step_id=step_id.value, phase=phase
            ) from e

    def check_result(self, result: AbilityResult, phase: str) -> dict[str, Any]:
        """Unwrap an AbilityResult or raise the matching error."""
        if result.success:
            return result.result or {}

        error = result.runtime_error or "Unknown error"
        if any(marker in error.lower() for marker in AUTHORIZATION_MARKERS):
            raise AuthorizationError(f"{self.name} not authorized: {error}", ability=self.ability)
        raise OperationError(f"{self.name} {phase} failed: {error}", phase=phase)

    def require_field(self, payload: dict[str, Any], key: str) -> Any:
        value = payload.get(key)
        if value in (None, ""):
            raise OperationError(f"{self.name} returned no {key}")
        return value


async def check_owner_balance(balance_reader: BalanceReader, ctx: OperationContext) -> int:
    """Make sure the user's wallet holds what the ledger is about to spend.

    Raises:
        OperationError: Balance unreadable or too low (precheck phase)
    """
    ledger = ctx.ledger
    try:
        if ledger.is_native:
            balance = await balance_reader.get_native_balance(ctx.owner_address, ledger.chain_id)
        else:
            balance = await balance_reader.get_token_balance(ledger.token, ctx.owner_address, ledger.chain_id)
    except BalanceReadError as e:
        raise OperationError(f"Could not read wallet balance: {e}", phase="precheck") from e

    if balance < ledger.amount:
        raise OperationError(f"Insufficient balance: have {balance}, need {ledger.amount}", phase="precheck")
    return balance
