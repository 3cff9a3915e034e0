"""
Workflow Graph Walker

Executes a workflow graph against a browser session.

Starts at the start node and follows the first outgoing edge of each node
until an end node, a node without outgoing edges, or a failure. Coming back
to a node that already ran is a failure: the walk would repeat forever. Nodes run
strictly one after another; each node's outcome is reported to a RunRecorder.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from actions import ActionDispatcher, build_action
from browser_session import BrowserSession
from variable_bridge import flatten_properties, resolve_properties
from workflow_errors import ActionFailedError, InvalidWorkflowError, RunCancelledError
from workflow_models import LogEntry, NodeKind, RunStatus, Workflow, WorkflowNode

logger = logging.getLogger(__name__)


class RunRecorder(Protocol):
    """Receives node progress from the walker."""

    @property
    def cancelled(self) -> bool:
        ...

    def node_entered(self, node_id: str) -> None:
        ...

    def node_succeeded(self, entry: LogEntry) -> None:
        ...

    def node_failed(self, entry: LogEntry) -> None:
        ...


class WorkflowWalker:
    """Walks a workflow graph node by node."""

    def __init__(self, dispatcher: Optional[ActionDispatcher] = None):
        self.dispatcher = dispatcher or ActionDispatcher()

    async def run(
        self,
        workflow: Workflow,
        session: BrowserSession,
        recorder: RunRecorder,
        until_node_id: Optional[str] = None,
    ) -> RunStatus:
        """
        Execute the workflow. Returns COMPLETED; any node failure is raised.

        Args:
            workflow: Graph to walk
            session: Browser session owned by this run
            recorder: Progress sink (usually the run tracker's handle)
            until_node_id: Stop before entering this node

        Raises:
            InvalidWorkflowError: No start node, or the walk comes back to a node it already ran
            RunCancelledError: The recorder was cancelled between nodes
            EngineError: A node failed; already recorded as an error entry
        """
        node = workflow.start_node()
        if node is None:
            raise InvalidWorkflowError("No start node found in workflow")

        visited: set[str] = set()
        while node is not None:
            # Nodes that never touch the browser do not suspend on their own
            await asyncio.sleep(0)
            if recorder.cancelled:
                raise RunCancelledError()
            if until_node_id and node.id == until_node_id:
                logger.info(f"Reached node {node.id}, stopping")
                break

            recorder.node_entered(node.id)
            logger.info(f"Executing node {node.id} ({node.type})")

            entry = LogEntry(
                node_id=node.id,
                node_kind=node.kind.value,
                action=flatten_properties(node.properties).get("action") or node.type,
            )
            try:
                # Edges are followed by node id alone, so a revisit repeats forever
                if node.id in visited:
                    raise InvalidWorkflowError(f"Workflow loops back to node {node.id}")
                visited.add(node.id)
                props = resolve_properties(node, session.variables)
                entry.message, entry.details = await self._execute_node(node, props, session)
            except asyncio.CancelledError:
                entry.status = "error"
                entry.message = "Run cancelled"
                recorder.node_failed(entry)
                raise
            except Exception as e:
                entry.status = "error"
                entry.message = str(e) or e.__class__.__name__
                entry.details = {"errorKind": getattr(e, "error_kind", getattr(e, "kind", "ActionFailed"))}
                logger.error(f"Node {node.id} failed: {entry.message}")
                recorder.node_failed(entry)
                raise

            recorder.node_succeeded(entry)

            if node.kind is NodeKind.END:
                break
            node = workflow.next_node(node.id)

        return RunStatus.COMPLETED

    async def _execute_node(
        self, node: WorkflowNode, props: dict[str, Any], session: BrowserSession
    ) -> tuple[str, Any]:
        """Run one node, returning (log message, details)."""
        kind = node.kind

        if kind is NodeKind.ACTION or (kind is NodeKind.TASK and props.get("action")):
            action = build_action(props, node.type)
            result = await self.dispatcher.execute(action, session)
            if not result.success:
                raise ActionFailedError(result.error or "Action failed", error_kind=result.error_kind)
            if kind is NodeKind.TASK:
                return f"Successfully executed module action: {action.type}", result.result
            return f"Successfully executed {action.type}", result.result

        if kind is NodeKind.TASK:
            return f"Executed module: {props.get('moduleName') or 'Unknown'}", None
        if kind is NodeKind.START:
            return "Workflow started", None
        if kind is NodeKind.END:
            return "Workflow completed", None
        return f"Executed node type: {node.type}", None
