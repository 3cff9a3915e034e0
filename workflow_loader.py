"""
Workflow loader.

Loads workflow graphs from JSON or YAML files and checks them before a run
is accepted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

import yaml
from pydantic import ValidationError

from actions import ACTION_NAMES, action_name
from variable_bridge import flatten_properties
from workflow_errors import InvalidWorkflowError
from workflow_models import NodeKind, Workflow


def parse_workflow(data: Any) -> Workflow:
    """
    Build a Workflow from decoded JSON/YAML data.

    Accepts either the graph itself ({nodes, edges}) or a wrapper holding it
    under a "workflow" key.

    Raises:
        InvalidWorkflowError: If the data is not a workflow graph
    """
    if isinstance(data, Workflow):
        return data
    if not isinstance(data, dict):
        raise InvalidWorkflowError("Workflow must be a mapping with 'nodes' and 'edges'")
    if "workflow" in data and "nodes" not in data:
        data = data["workflow"]
    try:
        return Workflow.model_validate(data)
    except ValidationError as e:
        raise InvalidWorkflowError(f"Invalid workflow: {e}") from e


def check_workflow(workflow: Workflow) -> None:
    """
    Reject workflows that cannot start.

    Raises:
        InvalidWorkflowError: If the graph is empty or has no start node
    """
    if not workflow.nodes:
        raise InvalidWorkflowError("Workflow has no nodes")
    if workflow.start_node() is None:
        raise InvalidWorkflowError("No start node found in workflow")


def load_workflow(file_path: str) -> Workflow:
    """
    Load a workflow from a .json, .yaml or .yml file.

    Raises:
        FileNotFoundError: If file doesn't exist
        InvalidWorkflowError: If the content is not a valid workflow
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Workflow file not found: {file_path}")

    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix.lower() == '.json':
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    workflow = parse_workflow(data)
    check_workflow(workflow)
    return workflow


def validate_workflow(workflow: Workflow) -> List[str]:
    """
    Validate a workflow and return a list of warnings (not errors).

    Args:
        workflow: Workflow to validate

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings = []
    node_ids = [n.id for n in workflow.nodes]

    seen = set()
    for node_id in node_ids:
        if node_id in seen:
            warnings.append(f"Duplicate node id: {node_id}")
        seen.add(node_id)

    for edge in workflow.edges:
        if edge.source_node_id not in seen:
            warnings.append(f"Edge {edge.id or '?'} starts at unknown node {edge.source_node_id}")
        if edge.target_node_id not in seen:
            warnings.append(f"Edge {edge.id or '?'} points to unknown node {edge.target_node_id}")

    # Only the first outgoing edge is followed
    for node in workflow.nodes:
        outgoing = workflow.outgoing_edges(node.id)
        if len(outgoing) > 1:
            ignored = ", ".join(e.target_node_id for e in outgoing[1:])
            warnings.append(f"Node {node.id} has {len(outgoing)} outgoing edges; branches to {ignored} are ignored")

    for node in workflow.nodes:
        declared = flatten_properties(node.properties).get("action")
        if node.kind is NodeKind.ACTION or (node.kind is NodeKind.TASK and declared):
            name = action_name(node.properties, node.type)
            if name not in ACTION_NAMES:
                warnings.append(f"Node {node.id} uses unknown action: {name}")

    # Walk the chain the engine would follow
    start = workflow.start_node()
    reachable = set()
    node = start
    while node is not None and node.id not in reachable:
        reachable.add(node.id)
        if node.kind is NodeKind.END:
            break
        node = workflow.next_node(node.id)
    if node is not None and node.id in reachable and node.kind is not NodeKind.END:
        warnings.append(f"Workflow loops back to node {node.id}; the run fails when it gets there")

    unreached = [n for n in node_ids if n not in reachable]
    if start is not None and unreached:
        warnings.append(f"Nodes never reached from the start node: {', '.join(unreached)}")

    if start is not None and not any(n.kind is NodeKind.END for n in workflow.nodes):
        warnings.append("No end node - the run ends at the last node without outgoing edges")

    return warnings
