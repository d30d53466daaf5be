"""Error taxonomy for vault operation flows.

Propagation:
- PlanningError / AuthorizationError: raised before any step runs.
- FundingError: raised by the relay wallet funding guard; aborts the flow at
  the ``fund-pkp`` step.
- OperationError: raised by an asset movement operation; the executor marks
  the current step ``error`` and halts.
"""

from typing import Optional


class OrchestrationError(Exception):
    """Base class for all orchestration failures."""

    pass


class PlanningError(OrchestrationError):
    """No asset/target selected, or amount exceeds the available balance."""

    pass


class AuthorizationError(OrchestrationError):
    """Session credential missing/expired, or an ability is not permitted."""

    def __init__(self, message: str, ability: Optional[str] = None):
        self.ability = ability
        super().__init__(message)


class FundingError(OrchestrationError):
    """Relay wallet could not be funded."""

    pass


class FundingTransferFailed(FundingError):
    """The primary wallet transfer to the relay wallet failed."""

    pass


class FundingVerificationFailed(FundingError):
    """Relay wallet balance never reached the minimum within the retry budget."""

    def __init__(self, message: str, attempts: int, balance: Optional[str] = None):
        self.attempts = attempts
        self.balance = balance
        super().__init__(message)


class OperationError(OrchestrationError):
    """An asset movement operation failed.

    Attributes:
        step_id: Id of the step whose operation failed
        phase: "precheck" or "execute"
    """

    def __init__(self, message: str, step_id: Optional[str] = None, phase: str = "execute"):
        self.step_id = step_id
        self.phase = phase
        super().__init__(message)


class RelayWalletBusy(OrchestrationError):
    """Another flow currently owns the relay wallet."""

    pass


class InvalidStepTransition(RuntimeError):
    """A step status change would break step ordering invariants."""

    pass
