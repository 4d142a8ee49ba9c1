"""Playwright-backed browser and the tool registry the model drives it with."""
from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Literal, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
    TimeoutError as PlaywrightTimeout,
)

from exceptions import (
    BrowserError,
    BrowserNotStartedError,
    ElementNotFoundError,
    NavigationError,
)
from mission_types import FILE_EVENT_KEY

BrowserType = Literal["chromium", "firefox", "webkit"]
WaitState = Literal["load", "domcontentloaded", "networkidle"]

NOISY_TAGS = "script, style, meta, link, noscript, iframe, canvas, svg"
ALLOWED_ATTRIBUTES = (
    "href",
    "src",
    "type",
    "alt",
    "title",
    "placeholder",
    "name",
    "id",
    "class",
    "aria-label",
    "value",
)
DEFAULT_DOM_LIMIT = 100_000
DEFAULT_DOM_LIST_LIMIT = 3

# Clones the document so stripping never touches the live page.
# listLimit null keeps every child; otherwise long lists and containers are
# cut to listLimit children plus a data-collapsed marker.
_TRIMMED_DOM_JS = """({ noisy, allowed, listLimit }) => {
    const root = document.documentElement.cloneNode(true);
    root.querySelectorAll(noisy).forEach((el) => el.remove());
    const walker = document.createTreeWalker(root, NodeFilter.SHOW_COMMENT);
    const comments = [];
    while (walker.nextNode()) comments.push(walker.currentNode);
    comments.forEach((c) => c.remove());

    const keep = new Set(allowed);
    [root, ...root.querySelectorAll("*")].forEach((el) => {
        Array.from(el.attributes).forEach((attr) => {
            if (!keep.has(attr.name)) el.removeAttribute(attr.name);
        });
    });

    if (listLimit !== null) {
        root.querySelectorAll("ul, ol").forEach((list) => {
            const items = Array.from(list.children).filter((c) => c.tagName === "LI");
            if (items.length > listLimit) {
                items.slice(listLimit).forEach((c) => c.remove());
                list.insertAdjacentHTML("beforeend", '<li data-collapsed="true">[...truncated]</li>');
            }
        });
        root.querySelectorAll("div, section").forEach((box) => {
            const children = Array.from(box.children);
            if (children.length > listLimit) {
                children.slice(listLimit).forEach((c) => c.remove());
                box.insertAdjacentHTML("beforeend", '<div data-collapsed="true">[...truncated]</div>');
            }
        });
    }
    return root.outerHTML;
}"""


class ChromeBrowser:
    """Browser manager exposing the actions behind the mission tools."""

    def __init__(
        self,
        browser_type: BrowserType = "chromium",
        headless: bool = True,
        viewport_width: int = 1440,
        viewport_height: int = 900,
        screenshots_folder: str | Path | None = None,
        slow_mo: int = 0,
        dom_limit: int = DEFAULT_DOM_LIMIT,
        dom_list_limit: Optional[int] = DEFAULT_DOM_LIST_LIMIT,
        logger: Optional[logging.Logger] = None,
    ):
        self.browser_type = browser_type
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.screenshots_folder = Path(screenshots_folder) if screenshots_folder else Path("screenshots")
        self.slow_mo = slow_mo
        self.dom_limit = dom_limit
        self.dom_list_limit = dom_list_limit
        self.logger = logger or logging.getLogger("browser")

        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def _ensure_started(self) -> None:
        """Raise if browser not started."""
        if self.page is None:
            raise BrowserNotStartedError()

    async def start(self) -> None:
        """Start the browser with specified engine."""
        self._playwright = await async_playwright().start()

        browser_launcher = getattr(self._playwright, self.browser_type)
        launch_options: dict[str, Any] = {"headless": self.headless}
        if self.slow_mo > 0:
            launch_options["slow_mo"] = self.slow_mo

        self.browser = await browser_launcher.launch(**launch_options)
        self.context = await self.browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height}
        )
        self.page = await self.context.new_page()

        self.logger.info(f"Browser started: {self.browser_type} (headless={self.headless})")

    async def close(self) -> None:
        """Close the browser and clean up resources."""
        if self.page:
            await self.page.close()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self._playwright:
            await self._playwright.stop()
        self.page = None
        self.logger.info("Browser closed")

    # Actions

    async def navigate(self, url: str, wait_until: WaitState = "load", timeout: float = 30000) -> str:
        self._ensure_started()
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Navigation timed out: {url}", url=url, timeout=timeout) from e
        except Exception as e:
            raise NavigationError(f"Navigation failed: {e}", url=url) from e
        return f"Navigated to {url}"

    async def _wait_for(self, selector: str, timeout: float = 10000) -> None:
        try:
            await self.page.wait_for_selector(selector, state="visible", timeout=timeout)
        except PlaywrightTimeout as e:
            raise ElementNotFoundError(f"No visible element matches {selector}", selector=selector) from e

    async def fill(self, selector: str, text: str) -> str:
        self._ensure_started()
        await self._wait_for(selector)
        await self.page.fill(selector, text)
        return f"Filled {selector}"

    async def click(self, selector: str, wait_for: WaitState = "domcontentloaded", delay_ms: int = 2000) -> str:
        self._ensure_started()
        await self._wait_for(selector)
        await self.page.click(selector)
        try:
            await self.page.wait_for_load_state(wait_for, timeout=10000)
        except PlaywrightTimeout:
            self.logger.debug(f"Load state '{wait_for}' not reached after clicking {selector}")
        if delay_ms > 0:
            await self.page.wait_for_timeout(delay_ms)
        return f"Clicked {selector}"

    async def click_text(self, text: str, timeout: float = 10000) -> str:
        self._ensure_started()
        locator = self.page.get_by_text(text)
        if await locator.count() == 0:
            raise ElementNotFoundError(f"No element with visible text: {text}", selector=f"text={text}")
        try:
            await locator.first.click(timeout=timeout)
        except PlaywrightTimeout as e:
            raise BrowserError(f"Element with text '{text}' was not clickable", {"text": text}) from e
        return f"Clicked text: {text}"

    async def expand_menu(self, selector: str, delay_ms: int = 1000) -> str:
        self._ensure_started()
        await self._wait_for(selector)
        await self.page.click(selector)
        if delay_ms > 0:
            await self.page.wait_for_timeout(delay_ms)
        return f"Expanded menu {selector}"

    async def get_dom(self, limit: Optional[int] = None, exclude: bool = True) -> str:
        """
        Page HTML cut to ``limit`` chars.

        With ``exclude`` noisy tags, comments and non-whitelisted attributes
        are stripped and long lists and sections are collapsed.
        """
        self._ensure_started()
        if exclude:
            html = await self.page.evaluate(
                _TRIMMED_DOM_JS,
                {
                    "noisy": NOISY_TAGS,
                    "allowed": list(ALLOWED_ATTRIBUTES),
                    "listLimit": self.dom_list_limit,
                },
            )
        else:
            html = await self.page.content()
        html = re.sub(r">\s+<", "><", html or "")
        return html[: int(limit or self.dom_limit)]

    async def check_text(self, text: str) -> str:
        self._ensure_started()
        content = await self.page.content()
        return f"FOUND: {text}" if text in content else f"NOT FOUND: {text}"

    async def screenshot(self, label: Optional[str] = None, full_page: bool = False) -> str:
        """Save a PNG and return a file-event payload pointing at it."""
        self._ensure_started()
        safe_label = re.sub(r"[^A-Za-z0-9_-]+", "_", label or "screenshot").strip("_") or "screenshot"
        os.makedirs(self.screenshots_folder, exist_ok=True)
        path = self.screenshots_folder / f"{safe_label}_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.png"
        try:
            await self.page.screenshot(path=str(path), full_page=full_page)
        except Exception as e:
            raise BrowserError(f"Screenshot failed: {e}") from e
        self.logger.info(f"Screenshot saved to {path}")
        return json.dumps({FILE_EVENT_KEY: "screenshot", "path": str(path), "label": label})


# Registry entries: (browser, args) -> result

BrowserTool = Callable[[ChromeBrowser, Dict[str, Any]], Awaitable[str]]

BROWSER_TOOLS: Dict[str, BrowserTool] = {
    "navigate": lambda b, args: b.navigate(args["url"]),
    "fill": lambda b, args: b.fill(args["selector"], args.get("text", "")),
    "click": lambda b, args: b.click(
        args["selector"],
        wait_for=args.get("waitFor", "domcontentloaded"),
        delay_ms=int(args.get("delayMs", 2000)),
    ),
    "click_text": lambda b, args: b.click_text(args["text"]),
    "expand_menu": lambda b, args: b.expand_menu(args["selector"], delay_ms=int(args.get("delayMs", 1000))),
    "get_dom": lambda b, args: b.get_dom(limit=args.get("limit"), exclude=args.get("exclude", True)),
    "check_text": lambda b, args: b.check_text(args["text"]),
    "screenshot": lambda b, args: b.screenshot(label=args.get("label")),
}
