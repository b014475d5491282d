"""Pipeline state machine for sequencing identification steps.

Centralizes step dispatch, terminal transitions and persistence. Each step
returns a tagged StepResult; its per-step policy decides whether a failure
stops the run. The status record is saved after every step, and a step only
counts as completed once the save that carries its effects has happened.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from vidident.core.errors import VideoIdentifierError
from vidident.models import DiskRecord, StepOutcome, StepRecord, Terminal
from vidident.services.status_store import StatusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """Tagged outcome of one step."""

    outcome: StepOutcome
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "StepResult":
        return cls(StepOutcome.SUCCESS, message)

    @classmethod
    def skip(cls, message: str = "") -> "StepResult":
        return cls(StepOutcome.SKIP, message)

    @classmethod
    def fail(cls, message: str) -> "StepResult":
        return cls(StepOutcome.FAIL, message)

    @classmethod
    def unresolved(cls, message: str) -> "StepResult":
        return cls(StepOutcome.UNRESOLVED, message)

    @property
    def counts_as_completed(self) -> bool:
        return self.outcome in (StepOutcome.SUCCESS, StepOutcome.SKIP)


@dataclass(frozen=True)
class StepPolicy:
    number: int
    name: str
    fatal_on_failure: bool


STEPS = (
    StepPolicy(1, "extract_subtitles", fatal_on_failure=True),
    StepPolicy(2, "analyze_disk", fatal_on_failure=True),
    StepPolicy(3, "extract_dialogue", fatal_on_failure=True),
    StepPolicy(4, "extract_characters", fatal_on_failure=False),
    StepPolicy(5, "candidate_search", fatal_on_failure=True),
    StepPolicy(6, "movie_matching", fatal_on_failure=False),
    StepPolicy(7, "tv_matching", fatal_on_failure=False),
    StepPolicy(8, "hybrid_matching", fatal_on_failure=False),
    StepPolicy(9, "finalize", fatal_on_failure=True),
)

StepHandler = Callable[[DiskRecord], StepResult]


class PipelineStateMachine:
    """Runs the identification steps of one disc with resume and terminal handling."""

    # Define valid terminal transitions
    VALID_TRANSITIONS = {
        Terminal.NONE: {Terminal.UNKNOWN, Terminal.COMPLETED},
        Terminal.UNKNOWN: set(),  # Terminal state
        Terminal.COMPLETED: set(),  # Terminal state
    }

    def __init__(
        self,
        store: StatusStore,
        handlers: Mapping[int, StepHandler],
        steps: tuple[StepPolicy, ...] = STEPS,
    ):
        missing = [p.number for p in steps if p.number not in handlers]
        if missing:
            raise ValueError(f"No handler for step(s) {missing}")
        self._store = store
        self._handlers = handlers
        self._steps = steps

    def can_transition(self, from_state: Terminal, to_state: Terminal) -> bool:
        """Validate if terminal transition is allowed.

        Args:
            from_state: Current terminal flag
            to_state: Desired terminal flag

        Returns:
            True if transition is valid, False otherwise
        """
        if from_state == to_state:
            return True
        return to_state in self.VALID_TRANSITIONS.get(from_state, set())

    def transition(self, disk: DiskRecord, to_state: Terminal, reason: str | None = None) -> bool:
        """Perform a validated terminal transition and persist it.

        Moving to UNKNOWN also writes the manual-review marker with ``reason``.

        Returns:
            True if transition succeeded, False if invalid
        """
        from_state = disk.status.terminal
        if not self.can_transition(from_state, to_state):
            logger.warning(
                f"Invalid terminal transition for {disk.name}: "
                f"{from_state.value} -> {to_state.value}"
            )
            return False

        logger.info(f"Disc {disk.name} terminal transition: {from_state.value} -> {to_state.value}")
        disk.status.terminal = to_state
        if to_state == Terminal.UNKNOWN:
            disk.unresolved_reason = reason or disk.unresolved_reason or "Unresolved"
        self._store.save(disk)

        if to_state == Terminal.UNKNOWN:
            self._store.write_unknown(disk.unresolved_reason)
        return True

    def transition_to_unknown(self, disk: DiskRecord, reason: str) -> bool:
        """Convenience method to route a disc to manual review."""
        return self.transition(disk, Terminal.UNKNOWN, reason)

    def transition_to_completed(self, disk: DiskRecord) -> bool:
        return self.transition(disk, Terminal.COMPLETED)

    def pending_steps(self, disk: DiskRecord) -> list[StepPolicy]:
        return [p for p in self._steps if p.number not in disk.status.completed_steps]

    def record_step(self, disk: DiskRecord, policy: StepPolicy, result: StepResult) -> None:
        """Store a step outcome and persist the record.

        The step joins ``completed_steps`` in the same atomic save that carries
        the effects it made on the record.
        """
        status = disk.status
        status.steps[policy.number] = StepRecord(
            name=policy.name, outcome=result.outcome, message=result.message
        )
        if result.counts_as_completed:
            status.completed_steps.add(policy.number)
        self._store.save(disk)

    def fail(self, disk: DiskRecord, policy: StepPolicy, message: str) -> None:
        """Record a fatal error: sets ``error`` and routes the disc to manual review."""
        disk.status.error = f"Step {policy.number} ({policy.name}) failed: {message}"
        self.record_step(disk, policy, StepResult.fail(message))
        self.transition_to_unknown(disk, disk.status.error)

    def run(self, disk: DiskRecord) -> DiskRecord:
        """Run every pending step in order until the disc reaches a terminal state.

        Structural errors are recorded, then re-raised for the caller.
        """
        if disk.status.is_terminal:
            logger.info(
                f"Disc {disk.name} already terminal ({disk.status.terminal.value}), nothing to do"
            )
            return disk

        skipped = sorted(disk.status.completed_steps)
        if skipped:
            logger.info(f"Resuming {disk.name}: steps {skipped} already completed")

        for policy in self.pending_steps(disk):
            disk.status.current_step = policy.number
            logger.info(f"Step {policy.number}: {policy.name}")

            try:
                result = self._handlers[policy.number](disk)
            except VideoIdentifierError as e:
                if e.structural:
                    self.fail(disk, policy, str(e))
                    raise
                result = StepResult.fail(str(e))

            logger.info(
                f"Step {policy.number} {policy.name}: {result.outcome.value}"
                + (f" - {result.message}" if result.message else "")
            )

            if result.outcome == StepOutcome.UNRESOLVED:
                self.record_step(disk, policy, result)
                self.transition_to_unknown(disk, result.message)
                return disk

            if result.outcome == StepOutcome.FAIL and policy.fatal_on_failure:
                self.fail(disk, policy, result.message)
                return disk

            self.record_step(disk, policy, result)

        self.transition_to_completed(disk)
        return disk
