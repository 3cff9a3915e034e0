"""
Action Dispatcher

Performs one typed action against a browser session.

execute() never raises: every failure comes back as an ActionResult with
success=False, an error message and an error_kind (PageNotFound, ActionFailed,
UnknownAction, MissingInput). Only task cancellation propagates.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import engine_config
from browser_session import BrowserSession
from variable_bridge import current_url_key
from workflow_errors import (
    ActionFailedError,
    EngineError,
    MissingInputError,
    PageNotFoundError,
    UnknownActionError,
)
from workflow_models import (
    Action,
    ActionResult,
    ClickAction,
    CloseTabAction,
    ExtractTextAction,
    FillAction,
    NavigateAction,
    OpenTabsAction,
    ScreenshotAction,
    UnknownActionSpec,
    WaitAction,
)

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Executes actions with a bounded timeout on every browser call."""

    def __init__(self, timeout_ms: Optional[int] = None, wait_until: Optional[str] = None):
        self.timeout_ms = timeout_ms if timeout_ms is not None else engine_config.ACTION_TIMEOUT_MS
        self.wait_until = wait_until or engine_config.NAVIGATION_WAIT_UNTIL
        self._handlers = {
            "open_tabs": self._open_tabs,
            "navigate": self._navigate,
            "click": self._click,
            "fill": self._fill,
            "wait": self._wait,
            "screenshot": self._screenshot,
            "extract_text": self._extract_text,
            "close_tab": self._close_tab,
        }

    async def execute(self, action: Action, session: BrowserSession) -> ActionResult:
        logger.info(f"Executing action {action.type} on session {session.id}")
        handler = None if isinstance(action, UnknownActionSpec) else self._handlers.get(action.type)

        try:
            if handler is None:
                raise UnknownActionError(action.type)
            result = await handler(action, session)
        except EngineError as e:
            logger.warning(f"Action {action.type} failed: {e}")
            return ActionResult(success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            # Playwright errors: selector timeouts, navigation failures, closed pages
            message = str(e) or e.__class__.__name__
            logger.warning(f"Action {action.type} failed in the browser: {message}")
            return ActionResult(success=False, error=message, error_kind=ActionFailedError.kind)

        return ActionResult(success=True, result=result)

    async def _goto(self, page, url: str):
        await page.goto(url, wait_until=self.wait_until, timeout=self.timeout_ms)

    # --- Handlers ---

    async def _open_tabs(self, action: OpenTabsAction, session: BrowserSession) -> dict[str, Any]:
        to_create = max(action.count, len(action.urls))
        logger.info(f"Opening {to_create} tab(s): {action.urls}")

        created = 0
        for i in range(to_create):
            page = await session.new_page()
            created += 1
            if i < len(action.urls) and action.urls[i]:
                await self._goto(page, action.urls[i])

        return {"pagesCreated": created, "totalPages": len(session.pages)}

    async def _navigate(self, action: NavigateAction, session: BrowserSession) -> dict[str, Any]:
        index = action.page_index
        if session.has_page(index):
            page = session.page(index)
        elif index == len(session.pages):
            page = await session.new_page()
        else:
            raise PageNotFoundError(index)

        await self._goto(page, action.url)
        session.variables[current_url_key(index)] = page.url
        logger.info(f"Page {index} now at {page.url}")
        return {"url": page.url, "pageIndex": index}

    async def _click(self, action: ClickAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)
        await page.click(action.selector, timeout=self.timeout_ms)

        current_url = page.url
        session.variables[current_url_key(action.page_index)] = current_url
        logger.info(f"Page {action.page_index} at {current_url} after click")
        return {"selector": action.selector, "pageIndex": action.page_index, "currentUrl": current_url}

    async def _fill(self, action: FillAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)

        if action.fill_items:
            # Not atomic: a failing item leaves the earlier items filled
            filled = []
            for item in action.fill_items:
                await page.fill(item.selector, item.text, timeout=self.timeout_ms)
                filled.append({"selector": item.selector, "text": item.text})
            return {"fillItems": filled, "pageIndex": action.page_index}

        if action.selector:
            text = action.text or ""
            await page.fill(action.selector, text, timeout=self.timeout_ms)
            return {"selector": action.selector, "text": text, "pageIndex": action.page_index}

        raise MissingInputError("No fill items or selector provided")

    async def _wait(self, action: WaitAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)

        if action.selector:
            await page.wait_for_selector(action.selector, timeout=self.timeout_ms)
        elif action.milliseconds:
            await page.wait_for_timeout(action.milliseconds)

        return {"pageIndex": action.page_index}

    async def _screenshot(self, action: ScreenshotAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)

        if action.path:
            Path(action.path).parent.mkdir(parents=True, exist_ok=True)
        image = await page.screenshot(path=action.path, full_page=action.full_page, timeout=self.timeout_ms)

        return {"path": action.path, "size": len(image), "pageIndex": action.page_index}

    async def _extract_text(self, action: ExtractTextAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)
        text = await page.text_content(action.selector, timeout=self.timeout_ms)
        return {"text": text, "selector": action.selector, "pageIndex": action.page_index}

    async def _close_tab(self, action: CloseTabAction, session: BrowserSession) -> dict[str, Any]:
        page = session.page(action.page_index)
        await page.close()
        session.remove_page(action.page_index)
        return {"closedPageIndex": action.page_index, "remainingPages": len(session.pages)}
