"""
Conversion of node properties into typed actions.

Node properties arrive as an open mapping whose shape depends on the editor
that produced it. build_action() picks the variant for the action name and
fills only the fields that variant knows about.
"""

from __future__ import annotations

from typing import Any, Mapping

from variable_bridge import flatten_properties, page_index_of
from workflow_models import (
    Action,
    ClickAction,
    CloseTabAction,
    ExtractTextAction,
    FillAction,
    FillItem,
    NavigateAction,
    OpenTabsAction,
    ScreenshotAction,
    UnknownActionSpec,
    WaitAction,
)


def _split_urls(value: Any) -> list[str]:
    if isinstance(value, str):
        return [u.strip() for u in value.split(",") if u.strip()]
    if isinstance(value, (list, tuple)):
        return [str(u).strip() for u in value if u and str(u).strip()]
    return []


def _fill_items(value: Any) -> list[FillItem]:
    items = value if isinstance(value, (list, tuple)) else [value]
    result = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        # The editor stores the text under "value"
        text = item.get("value") or item.get("text") or ""
        result.append(FillItem(selector=item.get("selector") or "", text=str(text)))
    return result


def _build_open_tabs(props: Mapping[str, Any]) -> OpenTabsAction:
    urls = _split_urls(props.get("urls"))
    if props.get("url"):
        urls = [props["url"]]
    return OpenTabsAction(count=int(props.get("count") or 1), urls=urls)


def _build_navigate(props: Mapping[str, Any]) -> NavigateAction:
    return NavigateAction(url=props.get("url") or "", page_index=page_index_of(props))


def _build_click(props: Mapping[str, Any]) -> ClickAction:
    return ClickAction(selector=props.get("selector") or "", page_index=page_index_of(props))


def _build_fill(props: Mapping[str, Any]) -> FillAction:
    if props.get("fillItems"):
        return FillAction(fill_items=_fill_items(props["fillItems"]), page_index=page_index_of(props))
    text = props.get("text") or props.get("value")
    return FillAction(
        selector=props.get("selector") or None,
        text=str(text) if text is not None else None,
        page_index=page_index_of(props),
    )


def _build_wait(props: Mapping[str, Any]) -> WaitAction:
    milliseconds = props.get("milliseconds")
    return WaitAction(
        selector=props.get("selector") or None,
        milliseconds=int(milliseconds) if milliseconds else None,
        page_index=page_index_of(props),
    )


def _build_screenshot(props: Mapping[str, Any]) -> ScreenshotAction:
    return ScreenshotAction(
        path=props.get("path") or None,
        full_page=bool(props.get("fullPage", False)),
        page_index=page_index_of(props),
    )


def _build_extract_text(props: Mapping[str, Any]) -> ExtractTextAction:
    return ExtractTextAction(selector=props.get("selector") or "", page_index=page_index_of(props))


def _build_close_tab(props: Mapping[str, Any]) -> CloseTabAction:
    return CloseTabAction(page_index=page_index_of(props))


_BUILDERS = {
    "open_tabs": _build_open_tabs,
    "navigate": _build_navigate,
    "click": _build_click,
    "fill": _build_fill,
    "wait": _build_wait,
    "screenshot": _build_screenshot,
    "extract_text": _build_extract_text,
    "close_tab": _build_close_tab,
}

ACTION_NAMES = tuple(_BUILDERS)


def action_name(properties: Mapping[str, Any], node_type: str) -> str:
    return flatten_properties(properties).get("action") or node_type


def build_action(properties: Mapping[str, Any], node_type: str = "") -> Action:
    """
    Build the typed action for a node.

    Args:
        properties: Node properties (flat or with one nested "properties" level)
        node_type: Raw node type, used as the action name when none is given

    Returns:
        One of the action variants; an UnknownActionSpec when the name has no
        builder (dispatching it fails with UnknownAction).
    """
    props = flatten_properties(properties)
    name = props.get("action") or node_type
    builder = _BUILDERS.get(name)
    if builder is None:
        return UnknownActionSpec(type=name, params=props)
    return builder(props)
