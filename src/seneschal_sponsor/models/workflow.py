"""Workflow states, progress events and terminal outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from seneschal_sponsor.models.commitment import ContentReference


class WorkflowState(str, Enum):
    """States of the sponsorship state machine."""

    IDLE = "idle"
    BUILDING = "building"
    AWAITING_SIGNATURE = "awaiting_signature"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    PUBLISHING = "publishing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# Stages whose failure means nothing was broadcast.
PRE_CHAIN_STATES = frozenset({
    WorkflowState.IDLE,
    WorkflowState.BUILDING,
    WorkflowState.AWAITING_SIGNATURE,
    WorkflowState.SUBMITTING,
})


@dataclass(frozen=True)
class WorkflowOutcome:
    """Terminal result of a run: Done with ids, or Failed(stage, cause)."""

    state: WorkflowState
    on_chain_id: str | None = None
    content_ref: ContentReference | None = None
    tx_hash: str | None = None
    failed_stage: WorkflowState | None = None
    cause: Exception | None = None
    onchain_effect: bool = False
    short_circuited: bool = False

    @property
    def success(self) -> bool:
        return self.state == WorkflowState.DONE

    @property
    def recoverable(self) -> bool:
        return bool(self.cause is not None and getattr(self.cause, "recoverable", False))


@dataclass(frozen=True)
class ProgressEvent:
    """One {stage, status} step of a run. The last event carries the outcome."""

    stage: WorkflowState
    status: str  # started | completed | skipped | failed | done
    detail: str = ""
    outcome: WorkflowOutcome | None = None
