"""Progress tracking for step execution.

The tracker holds an immutable tuple of StepStates and replaces it on every
update. Each update is published as a StepEvent to all subscribers, so
callers observe progress through an async event stream instead of
callbacks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from vaultflow.errors import InvalidStepTransition
from vaultflow.orchestrator.models import StepId, StepState, StepStatus

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass(frozen=True)
class StepEvent:
    """One step status change."""
    step_id: StepId
    status: StepStatus
    steps: tuple[StepState, ...]
    tx_hash: Optional[str] = None
    message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id.value,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class ProgressTracker:
    """Tracks step states and enforces step ordering.

    Invariants:
    - at most one step is processing
    - a step starts only after every earlier step completed
    - after the first error nothing else moves
    - completed steps are never revisited
    """

    def __init__(self, steps: tuple[StepState, ...]):
        self._steps = steps
        self._subscribers: list[asyncio.Queue] = []
        self.history: list[StepEvent] = []
        self.closed = False

    @property
    def steps(self) -> tuple[StepState, ...]:
        return self._steps

    @property
    def current_step(self) -> Optional[StepId]:
        for step in self._steps:
            if step.status == StepStatus.PROCESSING:
                return step.id
        return None

    @property
    def failed_step(self) -> Optional[StepId]:
        for step in self._steps:
            if step.status == StepStatus.ERROR:
                return step.id
        return None

    def get(self, step_id: StepId) -> StepState:
        return self._steps[self._index(step_id)]

    def mark_processing(self, step_id: StepId) -> None:
        index = self._index(step_id)
        self._check_not_failed(step_id)

        if self._steps[index].status != StepStatus.PENDING:
            raise InvalidStepTransition(f"{step_id.value} is {self._steps[index].status.value}, not pending")
        if self.current_step is not None:
            raise InvalidStepTransition(
                f"Cannot start {step_id.value} while {self.current_step.value} is processing"
            )
        for earlier in self._steps[:index]:
            if earlier.status != StepStatus.COMPLETED:
                raise InvalidStepTransition(
                    f"Cannot start {step_id.value} before {earlier.id.value} completes"
                )

        self._update(index, StepStatus.PROCESSING)

    def mark_completed(self, step_id: StepId, tx_hash: Optional[str] = None, message: Optional[str] = None) -> None:
        index = self._index(step_id)
        if self._steps[index].status != StepStatus.PROCESSING:
            raise InvalidStepTransition(f"{step_id.value} completed without being processed")
        self._update(index, StepStatus.COMPLETED, tx_hash, message)

    def mark_error(self, step_id: StepId, message: Optional[str] = None) -> None:
        index = self._index(step_id)
        self._check_not_failed(step_id)

        status = self._steps[index].status
        if status == StepStatus.COMPLETED:
            raise InvalidStepTransition(f"{step_id.value} already completed")
        if status == StepStatus.PENDING and self.current_step is not None:
            raise InvalidStepTransition(
                f"Cannot fail {step_id.value} while {self.current_step.value} is processing"
            )

        self._update(index, StepStatus.ERROR, message=message)

    def subscribe(self) -> AsyncIterator[StepEvent]:
        """Subscribe to step events.

        Registration happens immediately; the returned iterator yields every
        event published afterwards and stops when the tracker is closed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self.closed:
            queue.put_nowait(_CLOSED)
        else:
            self._subscribers.append(queue)
        return self._drain(queue)

    def close(self) -> None:
        """End all subscriptions."""
        if self.closed:
            return
        self.closed = True
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)
        self._subscribers.clear()

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[StepEvent]:
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            yield item

    def _index(self, step_id: StepId) -> int:
        for i, step in enumerate(self._steps):
            if step.id == step_id:
                return i
        raise KeyError(f"Step {step_id.value} is not part of this plan")

    def _check_not_failed(self, step_id: StepId) -> None:
        failed = self.failed_step
        if failed is not None:
            raise InvalidStepTransition(f"Cannot move {step_id.value}: {failed.value} already failed")

    def _update(
        self,
        index: int,
        status: StepStatus,
        tx_hash: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        updated = self._steps[index].transition(status, tx_hash)
        self._steps = self._steps[:index] + (updated,) + self._steps[index + 1:]

        event = StepEvent(
            step_id=updated.id,
            status=status,
            steps=self._steps,
            tx_hash=updated.tx_hash,
            message=message,
        )
        self.history.append(event)
        logger.info(
            f"Step {updated.id.value} -> {status.value}"
            + (f" ({updated.tx_hash})" if updated.tx_hash else "")
        )
        for queue in self._subscribers:
            queue.put_nowait(event)
