"""
Browser sessions for workflow runs.

One BrowserSession per run: a browser instance, one browsing context, the
ordered list of pages the run has opened, and the variables carried between
steps. SessionManager launches and terminates them.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

import engine_config
from workflow_errors import PageNotFoundError

logger = logging.getLogger(__name__)


def resolve_engine(hint: Optional[str]) -> str:
    """Map a browserType hint onto a supported engine, falling back to the default."""
    if hint:
        engine = str(hint).strip().lower()
        if engine in engine_config.BROWSER_ENGINES:
            return engine
        logger.warning(f"Unknown browser engine '{hint}', using {engine_config.DEFAULT_BROWSER_ENGINE}")
    return engine_config.DEFAULT_BROWSER_ENGINE


class BrowserSession:
    """
    Mutable state owned by a single run.

    Pages are 0-indexed and dense: closing page i shifts every later page down
    by one, so indexes must not be cached across a close.
    """

    def __init__(
        self,
        context: BrowserContext,
        browser: Optional[Browser] = None,
        engine: str = "chromium",
        variables: Optional[dict[str, Any]] = None,
    ):
        self.id = uuid.uuid4().hex[:8]
        self.browser = browser
        self.context = context
        self.engine = engine
        self.pages: list[Page] = []
        self.variables: dict[str, Any] = dict(variables or {})
        self.closed = False

    def __repr__(self):
        return f"<BrowserSession {self.id} {self.engine} pages={len(self.pages)}>"

    def page(self, index: int) -> Page:
        if index < 0 or index >= len(self.pages):
            raise PageNotFoundError(index)
        return self.pages[index]

    def has_page(self, index: int) -> bool:
        return 0 <= index < len(self.pages)

    async def new_page(self) -> Page:
        page = await self.context.new_page()
        self.pages.append(page)
        return page

    def remove_page(self, index: int) -> Page:
        page = self.page(index)
        del self.pages[index]
        return page


class SessionManager:
    """Launches one browser per session and tears sessions down on request."""

    def __init__(self, headless: Optional[bool] = None):
        self.headless = engine_config.HEADLESS if headless is None else headless
        self._playwright: Optional[Playwright] = None
        self._sessions: dict[str, BrowserSession] = {}

    async def _driver(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def create(self, engine_hint: Optional[str] = None) -> BrowserSession:
        engine = resolve_engine(engine_hint)
        playwright = await self._driver()
        browser_type = getattr(playwright, engine)

        launch_kwargs: dict[str, Any] = {"headless": self.headless}
        if engine == "chromium":
            launch_kwargs["args"] = engine_config.BROWSER_ARGS

        browser = await browser_type.launch(**launch_kwargs)
        try:
            # no_viewport: pages take the (maximized) window size
            context = await browser.new_context(no_viewport=True)
            context.set_default_timeout(engine_config.ACTION_TIMEOUT_MS)
        except BaseException:
            # Cancellation too: nothing else holds this browser yet
            await self._close_browser(browser)
            raise

        session = BrowserSession(context, browser=browser, engine=engine)
        self._sessions[session.id] = session
        logger.info(f"Launched {engine} for session {session.id} (headless={self.headless})")
        return session

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except Exception as e:
            logger.warning(f"Error while closing browser: {e}")

    async def terminate(self, session: BrowserSession) -> None:
        """Close the session's browser. Errors are logged, never raised."""
        self._sessions.pop(session.id, None)
        if session.closed:
            return
        session.closed = True
        try:
            if session.browser is not None:
                await session.browser.close()
            else:
                await session.context.close()
            logger.info(f"Terminated session {session.id}")
        except Exception as e:
            logger.warning(f"Error while terminating session {session.id}: {e}")
        finally:
            session.pages.clear()

    async def close(self) -> None:
        """Terminate every live session and stop the Playwright driver."""
        for session in list(self._sessions.values()):
            await self.terminate(session)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error while stopping Playwright: {e}")
            self._playwright = None
