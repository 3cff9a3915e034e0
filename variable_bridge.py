"""
Variable propagation between workflow nodes.

The only cross-node data flow: actions that move a page (navigate, click)
record the page's URL under ``currentUrl_<pageIndex>``; a later node that sets
``useCurrentUrl`` gets that URL as its ``url`` parameter.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from workflow_models import WorkflowNode

logger = logging.getLogger(__name__)

CURRENT_URL_PREFIX = "currentUrl_"


def current_url_key(page_index: int) -> str:
    return f"{CURRENT_URL_PREFIX}{page_index}"


def flatten_properties(properties: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge a nested ``properties`` mapping over the flat keys.

    Nested values win over flat ones and the nested key itself is dropped.
    Only one level is flattened.
    """
    flat = dict(properties)
    nested = flat.pop("properties", None)
    if isinstance(nested, Mapping):
        flat.update(nested)
    elif nested is not None:
        flat["properties"] = nested
    return flat


def page_index_of(properties: Mapping[str, Any]) -> int:
    value = properties.get("pageIndex")
    if value is None or value == "":
        return 0
    return int(value)


def resolve_properties(node: WorkflowNode, variables: Mapping[str, Any]) -> dict[str, Any]:
    """Return the effective properties of ``node`` for the current session state."""
    props = flatten_properties(node.properties)

    if props.get("useCurrentUrl"):
        page_index = page_index_of(props)
        current_url = variables.get(current_url_key(page_index))
        if current_url:
            logger.info(f"Node {node.id}: using current URL of page {page_index}: {current_url}")
            props["url"] = current_url
        else:
            logger.warning(
                f"Node {node.id}: no current URL recorded for page {page_index}, "
                f"using node URL: {props.get('url')}"
            )

    return props
