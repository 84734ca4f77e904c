"""Open pages ("tabs") and the content script injected into each."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from bs4 import BeautifulSoup

from ..errors import ContextUnavailableError, InputError
from ..http.protocols import HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# link_handler(filename, href): what a clicked download link does
LinkHandler = Callable[[str, str], Awaitable[Any]]


@dataclass(frozen=True)
class PageSnapshot:
    """
    What the content script captured.

    Attributes:
        dom: Serialized HTML of the whole page
        selection: Serialized HTML of the user's selection, if any
        url: Address of the page
    """

    dom: str
    selection: Optional[str] = None
    url: str = ""

    def selected_content(self, use_selection: bool) -> Optional[str]:
        """The selection markup when asked for and present, else None."""
        if use_selection and self.selection and self.selection.strip():
            return self.selection
        return None

    def to_payload(self) -> dict[str, Any]:
        return {"dom": self.dom, "selection": self.selection, "url": self.url}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PageSnapshot:
        return cls(dom=payload.get("dom") or "", selection=payload.get("selection"), url=payload.get("url") or "")


class ContentScript(Protocol):
    """Functions callable inside a page."""

    def get_selection_and_dom(self) -> PageSnapshot:
        ...

    async def click_download_link(self, filename: str, href: str) -> None:
        ...


class StaticPageScript:
    """
    Content script for a page loaded from markup.

    The selection is whatever ``selection_selector`` matches, standing in
    for the user's highlighted range.
    """

    def __init__(
        self,
        html: str,
        url: str,
        selection_selector: Optional[str] = None,
        link_handler: Optional[LinkHandler] = None,
    ) -> None:
        self._html = html
        self._url = url
        self._selection_selector = selection_selector
        self._link_handler = link_handler

    def get_selection_and_dom(self) -> PageSnapshot:
        selection = None
        if self._selection_selector:
            soup = BeautifulSoup(self._html, "html.parser")
            matched = soup.select(self._selection_selector)
            if matched:
                selection = "".join(str(element) for element in matched)
        return PageSnapshot(dom=self._html, selection=selection, url=self._url)

    async def click_download_link(self, filename: str, href: str) -> None:
        if self._link_handler is None:
            raise ContextUnavailableError(f"Page {self._url} cannot save links")
        await self._link_handler(filename, href)


@dataclass
class Tab:
    id: int
    url: str
    title: str
    script: ContentScript


def _page_title(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


class TabRegistry:
    """
    The set of open pages.

    Example:
        tabs = TabRegistry(client)
        tab = await tabs.open("https://example.com/article")
        snapshot = await tabs.execute(tab.id, lambda script: script.get_selection_and_dom())
    """

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        selection_selector: Optional[str] = None,
        link_handler: Optional[LinkHandler] = None,
    ) -> None:
        self._client = client
        self._selection_selector = selection_selector
        self._link_handler = link_handler
        self._tabs: dict[int, Tab] = {}
        self._ids = itertools.count(1)

    def add(self, url: str, html: str, title: Optional[str] = None) -> Tab:
        """Open a tab on markup that is already in memory."""
        script = StaticPageScript(html, url, self._selection_selector, self._link_handler)
        tab = Tab(id=next(self._ids), url=url, title=title if title is not None else _page_title(html), script=script)
        self._tabs[tab.id] = tab
        return tab

    async def open(self, url: str) -> Tab:
        """
        Load ``url`` into a new tab.

        Raises:
            InputError: If the page cannot be loaded
        """
        if self._client is None:
            raise InputError("No HTTP client to load pages")
        try:
            response = await self._client.get(url)
        except Exception as e:
            raise InputError(f"Could not load {url}: {e}") from e
        if not response.ok:
            raise InputError(f"Could not load {url}: HTTP {response.status_code}")
        return self.add(response.url or url, self._client.decode_content(response))

    def get(self, tab_id: int) -> Tab:
        """
        Raises:
            InputError: If no such tab is open
        """
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise InputError(f"No tab with id {tab_id}")
        return tab

    def close(self, tab_id: int) -> None:
        self._tabs.pop(tab_id, None)

    def query(self) -> list[Tab]:
        return list(self._tabs.values())

    async def execute(self, tab_id: int, func: Callable[[ContentScript], T]) -> T:
        """
        Run ``func`` against the tab's content script.

        Raises:
            ContextUnavailableError: If the tab is gone
        """
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise ContextUnavailableError(f"Tab {tab_id} is not available")
        result = func(tab.script)
        if hasattr(result, "__await__"):
            return await result
        return result
