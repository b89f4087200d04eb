"""Guided multi-turn entity workflows.

A pure state machine: no I/O, every operation returns a new ``WorkflowState``.
Each entity type has a fixed step sequence; the pointer moves one successor
at a time and stops on the first step that still needs input. Execution is
gated behind an explicit confirmation, and a failed execution ends the
workflow as ``cancelled``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from shared.errors import WorkflowTransitionError


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkflowStep(str, Enum):
    INIT = "init"
    COLLECT_NAME = "collect_name"
    COLLECT_DESCRIPTION = "collect_description"
    COLLECT_ASSIGNEE = "collect_assignee"
    COLLECT_DATE = "collect_date"
    COLLECT_CONFIRMATION = "collect_confirmation"
    EXECUTING = "executing"
    COMPLETE = "complete"


S = WorkflowStep

_BASIC = (S.INIT, S.COLLECT_NAME, S.COLLECT_DESCRIPTION, S.COLLECT_CONFIRMATION, S.EXECUTING, S.COMPLETE)

STEP_SEQUENCES: dict[str, tuple[WorkflowStep, ...]] = {
    "project": _BASIC,
    "task": (
        S.INIT,
        S.COLLECT_NAME,
        S.COLLECT_DESCRIPTION,
        S.COLLECT_ASSIGNEE,
        S.COLLECT_DATE,
        S.COLLECT_CONFIRMATION,
        S.EXECUTING,
        S.COMPLETE,
    ),
    "team": _BASIC,
    "organization": _BASIC,
    "department": _BASIC,
}

# the last step of each sequence is its own successor
SUCCESSORS: dict[str, dict[WorkflowStep, WorkflowStep]] = {
    entity: {step: seq[min(i + 1, len(seq) - 1)] for i, step in enumerate(seq)} for entity, seq in STEP_SEQUENCES.items()
}

STEP_FIELDS: dict[WorkflowStep, str] = {
    S.COLLECT_NAME: "name",
    S.COLLECT_DESCRIPTION: "description",
    S.COLLECT_ASSIGNEE: "assigneeId",
    S.COLLECT_DATE: "dueDate",
}

TASK_ONLY_STEPS = frozenset({S.COLLECT_ASSIGNEE, S.COLLECT_DATE})

STATUS_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({WorkflowStatus.COLLECTING, WorkflowStatus.CANCELLED}),
    WorkflowStatus.COLLECTING: frozenset({WorkflowStatus.COLLECTING, WorkflowStatus.CONFIRMING, WorkflowStatus.CANCELLED}),
    WorkflowStatus.CONFIRMING: frozenset({WorkflowStatus.EXECUTING, WorkflowStatus.CANCELLED}),
    WorkflowStatus.EXECUTING: frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED}),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.CANCELLED: frozenset(),
}

STEP_LABELS = {
    S.INIT: "Initialize",
    S.COLLECT_NAME: "Enter name",
    S.COLLECT_DESCRIPTION: "Enter description",
    S.COLLECT_ASSIGNEE: "Select assignee",
    S.COLLECT_DATE: "Set due date",
    S.COLLECT_CONFIRMATION: "Confirm",
    S.EXECUTING: "Executing",
    S.COMPLETE: "Complete",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WorkflowState:
    id: str
    status: WorkflowStatus
    current_step: WorkflowStep
    entity_type: str
    action: str
    collected: dict[str, Any] = field(default_factory=dict)
    visited: tuple[WorkflowStep, ...] = (S.INIT,)
    started_at: datetime = field(default_factory=_now)
    last_updated_at: datetime = field(default_factory=_now)
    confirmation_message: str | None = None
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status in (WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED)


def steps_for(entity_type: str) -> tuple[WorkflowStep, ...]:
    try:
        return STEP_SEQUENCES[entity_type]
    except KeyError:
        raise ValueError(f"unknown entity type: {entity_type}") from None


def advance(current_step: WorkflowStep, entity_type: str) -> WorkflowStep:
    """Next step in the entity's sequence; the same step at the end or for a step outside it."""
    steps_for(entity_type)
    return SUCCESSORS[entity_type].get(WorkflowStep(current_step), WorkflowStep(current_step))


def should_prompt_for_field(step: WorkflowStep | str, entity_type: str, collected: dict[str, Any]) -> bool:
    step = WorkflowStep(step)
    field_name = STEP_FIELDS.get(step)
    if field_name is None:
        return False
    if step in TASK_ONLY_STEPS and entity_type != "task":
        return False
    return not collected.get(field_name)


def merge_collected_data(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    return {**existing, **incoming}


def is_confirmation_step(step: WorkflowStep) -> bool:
    return step == S.COLLECT_CONFIRMATION


def is_collecting_step(step: WorkflowStep) -> bool:
    return step not in (S.INIT, S.COLLECT_CONFIRMATION, S.EXECUTING, S.COMPLETE)


def step_label(step: WorkflowStep) -> str:
    return STEP_LABELS.get(step, str(step))


def step_prompt(step: WorkflowStep, entity_type: str) -> str:
    prompts = {
        S.INIT: f"Let me help you create a new {entity_type}. I'll need a few details.",
        S.COLLECT_NAME: f"What would you like to name this {entity_type}?",
        S.COLLECT_DESCRIPTION: f"Please provide a description for this {entity_type}.",
        S.COLLECT_ASSIGNEE: "Who should be assigned to this task?",
        S.COLLECT_DATE: "When is this task due?",
        S.COLLECT_CONFIRMATION: f"I've collected all the information. Would you like me to proceed with creating this {entity_type}?",
        S.EXECUTING: f"Creating the {entity_type}...",
        S.COMPLETE: "I've completed the operation.",
    }
    return prompts.get(step, str(step))


def format_workflow_state(state: WorkflowState) -> str:
    lines = [
        f"**Workflow Status**: {state.status.value}",
        f"**Step**: {step_label(state.current_step)}",
        f"**Entity**: {state.entity_type}",
        f"**Action**: {state.action}",
    ]
    if state.collected:
        lines.append(f"**Collected Data**: {json.dumps(state.collected, indent=2)}")
    if state.error:
        lines.append(f"**Error**: {state.error}")
    return "\n".join(lines)


def _transition(state: WorkflowState, status: WorkflowStatus, **changes: Any) -> WorkflowState:
    if status not in STATUS_TRANSITIONS[state.status]:
        raise WorkflowTransitionError(f"workflow {state.id}: cannot go from {state.status.value} to {status.value}")
    return replace(state, status=status, last_updated_at=_now(), **changes)


def _settle(state: WorkflowState) -> WorkflowState:
    """Walk forward past INIT and every collecting step whose field is already known."""
    step = state.current_step
    visited = list(state.visited)
    while step == S.INIT or (is_collecting_step(step) and not should_prompt_for_field(step, state.entity_type, state.collected)):
        nxt = advance(step, state.entity_type)
        if nxt == step:
            break
        step = nxt
        visited.append(step)
    if is_confirmation_step(step):
        return _transition(
            state,
            WorkflowStatus.CONFIRMING,
            current_step=step,
            visited=tuple(visited),
            confirmation_message=step_prompt(step, state.entity_type),
        )
    return _transition(state, WorkflowStatus.COLLECTING, current_step=step, visited=tuple(visited))


def create_workflow(workflow_id: str, entity_type: str, action: str = "create") -> WorkflowState:
    steps_for(entity_type)
    return WorkflowState(
        id=workflow_id,
        status=WorkflowStatus.PENDING,
        current_step=S.INIT,
        entity_type=entity_type,
        action=action,
    )


def begin(state: WorkflowState, initial: dict[str, Any] | None = None) -> WorkflowState:
    if state.status != WorkflowStatus.PENDING:
        raise WorkflowTransitionError(f"workflow {state.id} already started")
    return _settle(replace(state, collected=merge_collected_data(state.collected, initial or {})))


def collect(state: WorkflowState, fields: dict[str, Any]) -> WorkflowState:
    if state.status != WorkflowStatus.COLLECTING:
        raise WorkflowTransitionError(f"workflow {state.id} is {state.status.value}, not collecting")
    return _settle(replace(state, collected=merge_collected_data(state.collected, fields)))


def confirm(state: WorkflowState) -> WorkflowState:
    if state.status != WorkflowStatus.CONFIRMING:
        raise WorkflowTransitionError(f"workflow {state.id} is {state.status.value}, nothing to confirm")
    step = advance(state.current_step, state.entity_type)
    return _transition(state, WorkflowStatus.EXECUTING, current_step=step, visited=(*state.visited, step))


def complete(state: WorkflowState) -> WorkflowState:
    step = advance(state.current_step, state.entity_type)
    return _transition(state, WorkflowStatus.COMPLETED, current_step=step, visited=(*state.visited, step))


def fail(state: WorkflowState, error: str) -> WorkflowState:
    if state.status != WorkflowStatus.EXECUTING:
        raise WorkflowTransitionError(f"workflow {state.id} is {state.status.value}, not executing")
    return _transition(state, WorkflowStatus.CANCELLED, error=error)


def cancel(state: WorkflowState) -> WorkflowState:
    if state.status == WorkflowStatus.EXECUTING:
        raise WorkflowTransitionError(f"workflow {state.id} is executing and cannot be cancelled")
    return _transition(state, WorkflowStatus.CANCELLED)


def tool_call_for(state: WorkflowState) -> tuple[str, dict[str, Any]]:
    """The single tools/call this workflow exists to produce."""
    return f"{state.action}_{state.entity_type}", dict(state.collected)
