from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from shared import workflow as wf
from shared.errors import WorkflowTransitionError
from shared.memory_store import MemoryStore
from shared.tool_client import ToolClient
from shared.workflow import WorkflowState, WorkflowStatus

logger = logging.getLogger(__name__)


class WorkflowCoordinator:
    """Drives guided workflows against a ``ToolClient``.

    Every public method returns a plain dict with an ``ok`` flag; transition
    errors and tool failures are reported, never raised.
    """

    def __init__(
        self,
        client: ToolClient,
        store: MemoryStore[WorkflowState] | None = None,
        *,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.client = client
        self.store: MemoryStore[WorkflowState] = store if store is not None else MemoryStore()
        self._id_factory = id_factory

    def get(self, workflow_id: str) -> WorkflowState | None:
        return self.store.get(workflow_id)

    @staticmethod
    def _view(state: WorkflowState, **extra: Any) -> dict[str, Any]:
        if state.status == WorkflowStatus.CONFIRMING:
            prompt = state.confirmation_message
        elif state.terminal:
            prompt = None
        else:
            prompt = wf.step_prompt(state.current_step, state.entity_type)
        return {
            "ok": state.status != WorkflowStatus.CANCELLED or state.error is None,
            "workflowId": state.id,
            "status": state.status.value,
            "step": state.current_step.value,
            "prompt": prompt,
            "collected": dict(state.collected),
            "summary": wf.format_workflow_state(state),
            **({"error": state.error} if state.error else {}),
            **extra,
        }

    @staticmethod
    def _error(message: str, workflow_id: str | None = None) -> dict[str, Any]:
        return {"ok": False, "workflowId": workflow_id, "error": message}

    async def _tool_available(self, tool_name: str) -> bool:
        tools = await self.client.list_tools()
        return any(t.get("name") == tool_name for t in tools)

    async def start(self, entity_type: str, initial: dict[str, Any] | None = None, *, action: str = "create") -> dict[str, Any]:
        try:
            state = wf.create_workflow(self._id_factory(), entity_type, action)
        except ValueError as exc:
            return self._error(str(exc))
        tool_name, _ = wf.tool_call_for(state)
        if not await self._tool_available(tool_name):
            return self._error(f"Tool '{tool_name}' is not available")
        state = wf.begin(state, initial)
        self.store.put(state.id, state)
        logger.info("workflow %s started: %s %s", state.id, action, entity_type)
        return self._view(state)

    async def reply(self, workflow_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        state = self.store.get(workflow_id)
        if state is None:
            return self._error(f"Workflow '{workflow_id}' not found", workflow_id)
        try:
            state = wf.collect(state, fields)
        except WorkflowTransitionError as exc:
            return self._error(str(exc), workflow_id)
        self.store.put(state.id, state)
        return self._view(state)

    async def confirm(self, workflow_id: str, *, headers: dict[str, str] | None = None) -> dict[str, Any]:
        state = self.store.get(workflow_id)
        if state is None:
            return self._error(f"Workflow '{workflow_id}' not found", workflow_id)
        try:
            state = wf.confirm(state)
        except WorkflowTransitionError as exc:
            return self._error(str(exc), workflow_id)
        # stored before the call so a second confirm sees EXECUTING
        self.store.put(state.id, state)

        tool_name, arguments = wf.tool_call_for(state)
        result = await self.client.call_tool(tool_name, arguments, headers=headers)
        if result.is_error:
            state = wf.fail(state, result.first_text or f"{tool_name} failed")
            logger.warning("workflow %s cancelled: %s", state.id, state.error)
        else:
            state = wf.complete(state)
            logger.info("workflow %s completed", state.id)
        self.store.put(state.id, state)
        return self._view(state, result=result.to_dict())

    def cancel(self, workflow_id: str) -> dict[str, Any]:
        state = self.store.get(workflow_id)
        if state is None:
            return self._error(f"Workflow '{workflow_id}' not found", workflow_id)
        try:
            state = wf.cancel(state)
        except WorkflowTransitionError as exc:
            return self._error(str(exc), workflow_id)
        self.store.put(state.id, state)
        return self._view(state)
