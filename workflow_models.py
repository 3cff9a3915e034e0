"""
Workflow data models.

Defines the JSON structure of workflow graphs sent by the editor, the typed
actions derived from their nodes, and the run records streamed back to
observers. Wire format is camelCase; snake_case is accepted on input too.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# --- Graph ---


class NodeKind(str, Enum):
    START = "start"
    END = "end"
    ACTION = "action"
    TASK = "task"
    PASSTHROUGH = "passthrough"


# Node type strings produced by the editors, mapped to engine kinds
_KIND_ALIASES = {
    "start": NodeKind.START,
    "start-node": NodeKind.START,
    "end": NodeKind.END,
    "end-node": NodeKind.END,
    "action": NodeKind.ACTION,
    "playwright": NodeKind.ACTION,
    "playwright-node": NodeKind.ACTION,
    "task": NodeKind.TASK,
}
# Nodes typed directly as an action name are action nodes for that action
for _action_type in (
    "open_tabs", "navigate", "click", "fill", "wait", "screenshot", "extract_text", "close_tab"
):
    _KIND_ALIASES[_action_type] = NodeKind.ACTION


class WorkflowNode(CamelModel):
    id: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value if value is not None else {}

    @property
    def kind(self) -> NodeKind:
        return _KIND_ALIASES.get(self.type, NodeKind.PASSTHROUGH)


class WorkflowEdge(CamelModel):
    id: str = ""
    source_node_id: str
    target_node_id: str

    @model_validator(mode="before")
    @classmethod
    def _accept_source_target(cls, data):
        # Some editors send {source, target} instead of {sourceNodeId, targetNodeId}
        if isinstance(data, dict):
            data = dict(data)
            if "sourceNodeId" not in data and "source_node_id" not in data and "source" in data:
                data["sourceNodeId"] = data.pop("source")
            if "targetNodeId" not in data and "target_node_id" not in data and "target" in data:
                data["targetNodeId"] = data.pop("target")
        return data


class Workflow(CamelModel):
    name: str = ""
    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def start_node(self) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.kind is NodeKind.START:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> list[WorkflowEdge]:
        return [e for e in self.edges if e.source_node_id == node_id]

    def next_node(self, node_id: str) -> Optional[WorkflowNode]:
        """
        Follow the first outgoing edge of ``node_id`` in declaration order.

        Any further outgoing edges are ignored: a run walks a single chain.
        Returns None when there is no edge or its target does not exist.
        """
        edges = self.outgoing_edges(node_id)
        if not edges:
            return None
        return self.get_node(edges[0].target_node_id)

    def browser_hint(self) -> Optional[str]:
        """browserType of the first action or task node, if it declares one."""
        for node in self.nodes:
            if node.kind in (NodeKind.ACTION, NodeKind.TASK):
                props = node.properties
                nested = props.get("properties")
                if isinstance(nested, dict) and nested.get("browserType"):
                    return nested["browserType"]
                return props.get("browserType")
        return None


# --- Actions ---


class FillItem(CamelModel):
    selector: str = ""
    text: str = ""


class OpenTabsAction(CamelModel):
    type: Literal["open_tabs"] = "open_tabs"
    count: int = 1
    urls: list[str] = Field(default_factory=list)


class NavigateAction(CamelModel):
    type: Literal["navigate"] = "navigate"
    url: str = ""
    page_index: int = 0


class ClickAction(CamelModel):
    type: Literal["click"] = "click"
    selector: str = ""
    page_index: int = 0


class FillAction(CamelModel):
    type: Literal["fill"] = "fill"
    selector: Optional[str] = None
    text: Optional[str] = None
    fill_items: Optional[list[FillItem]] = None
    page_index: int = 0


class WaitAction(CamelModel):
    type: Literal["wait"] = "wait"
    selector: Optional[str] = None
    milliseconds: Optional[int] = None
    page_index: int = 0


class ScreenshotAction(CamelModel):
    type: Literal["screenshot"] = "screenshot"
    path: Optional[str] = None
    full_page: bool = False
    page_index: int = 0


class ExtractTextAction(CamelModel):
    type: Literal["extract_text"] = "extract_text"
    selector: str = ""
    page_index: int = 0


class CloseTabAction(CamelModel):
    type: Literal["close_tab"] = "close_tab"
    page_index: int = 0


class UnknownActionSpec(CamelModel):
    """An action name the dispatcher has no handler for."""

    type: str
    params: dict[str, Any] = Field(default_factory=dict)


Action = Union[
    OpenTabsAction,
    NavigateAction,
    ClickAction,
    FillAction,
    WaitAction,
    ScreenshotAction,
    ExtractTextAction,
    CloseTabAction,
    UnknownActionSpec,
]


class ActionResult(CamelModel):
    success: bool
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


# --- Runs ---


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.FAILED}


class LogEntry(CamelModel):
    timestamp: int = Field(default_factory=now_ms)
    node_id: str
    node_kind: str
    action: str
    status: Literal["success", "error"] = "success"
    message: str = ""
    details: Any = None


class Run(CamelModel):
    id: str
    status: RunStatus = RunStatus.RUNNING
    current_node_id: Optional[str] = None
    completed_nodes: list[str] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    start_time: int = Field(default_factory=now_ms)
    end_time: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> "Run":
        """Detached deep copy safe to hand to readers and subscribers."""
        return self.model_copy(deep=True)
