"""
Element geometry extraction.

An element is reported when it is visible (computed style + offset size)
and on top: the topmost element at each of five sample points (corners
inset by 1px, plus the centre) is the element itself or one of its
descendants. Partial overlays at any one point exclude the element.

The rules run in two places behind the same QueryExecutor contract:
EXTRACT_SCRIPT is shipped into the live page in a single evaluate call,
and DomQueryExecutor applies the identical rules to any DomProvider.
Both return raw element facts; extract_boxes turns those into a Graph.
"""

import logging
from typing import Any, Protocol

from playwright.async_api import Page

from bbox_service.errors import SelectorError
from bbox_service.models import GEOMETRY_FIELDS, BoundingBox, Graph


logger = logging.getLogger(__name__)


NO_SELECTOR = "No Selector"
SAMPLE_INSET = 1


EXTRACT_SCRIPT = """({ source, targets, inset }) => {
    function queryAll(selector) {
        try {
            return Array.from(document.querySelectorAll(selector));
        } catch (e) {
            console.warn(`Invalid selector: ${selector}`);
            return [];
        }
    }

    function isVisible(el) {
        const style = window.getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') {
            return false;
        }
        return el.offsetWidth > 0 && el.offsetHeight > 0;
    }

    function samplePoints(r) {
        return [
            [r.left + inset, r.top + inset],
            [r.right - inset, r.top + inset],
            [r.left + inset, r.bottom - inset],
            [r.right - inset, r.bottom - inset],
            [r.left + r.width / 2, r.top + r.height / 2],
        ];
    }

    function isOnTop(el) {
        const rect = el.getBoundingClientRect();
        return samplePoints(rect).every(([x, y]) => {
            const topEl = document.elementFromPoint(x, y);
            return topEl !== null && (topEl === el || el.contains(topEl));
        });
    }

    function describe(el) {
        const r = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return {
            rect: {
                x: r.x, y: r.y, width: r.width, height: r.height,
                top: r.top, right: r.right, bottom: r.bottom, left: r.left,
            },
            id: el.id || '',
            classes: Array.from(el.classList || []),
            zIndex: style.zIndex,
            position: style.position,
        };
    }

    function collect(selector) {
        return queryAll(selector)
            .filter(el => isVisible(el) && isOnTop(el))
            .map(describe);
    }

    return {
        sources: collect(source),
        targets: targets.flatMap(collect),
    };
}"""


class QueryExecutor(Protocol):
    async def query(self, source: str, targets: list[str]) -> dict[str, list[dict]]:
        """Return ``{"sources": [...], "targets": [...]}`` raw element facts."""
        ...


class PageQueryExecutor:
    """Runs the extraction inside a live Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    async def query(self, source: str, targets: list[str]) -> dict[str, list[dict]]:
        return await self.page.evaluate(
            EXTRACT_SCRIPT,
            {"source": source, "targets": list(targets), "inset": SAMPLE_INSET},
        )


# ---------------------------------------------------------------------------
# Rule set over an abstract DOM
# ---------------------------------------------------------------------------

class DomProvider(Protocol):
    def query_selector_all(self, selector: str) -> list[Any]:
        """Matching elements in document order. Raises SelectorError on bad syntax."""
        ...

    def computed_style(self, element) -> dict[str, str]: ...

    def offset_size(self, element) -> tuple[float, float]: ...

    def bounding_rect(self, element) -> dict[str, float]: ...

    def element_from_point(self, x: float, y: float) -> Any | None: ...

    def contains(self, ancestor, node) -> bool: ...

    def element_id(self, element) -> str: ...

    def class_list(self, element) -> list[str]: ...


def is_visible(style: dict[str, str], offset_width: float, offset_height: float) -> bool:
    if style.get("display") == "none":
        return False
    if style.get("visibility") == "hidden":
        return False
    if str(style.get("opacity", "1")) == "0":
        return False
    return offset_width > 0 and offset_height > 0


def sample_points(rect: dict[str, float], inset: float = SAMPLE_INSET) -> list[tuple[float, float]]:
    left, top, right, bottom = rect["left"], rect["top"], rect["right"], rect["bottom"]
    return [
        (left + inset, top + inset),
        (right - inset, top + inset),
        (left + inset, bottom - inset),
        (right - inset, bottom - inset),
        (left + rect["width"] / 2, top + rect["height"] / 2),
    ]


def is_on_top(dom: DomProvider, element) -> bool:
    for x, y in sample_points(dom.bounding_rect(element)):
        top_el = dom.element_from_point(x, y)
        if top_el is None:
            return False
        if top_el is not element and not dom.contains(element, top_el):
            return False
    return True


class DomQueryExecutor:
    """Applies the in-page rules to a DomProvider."""

    def __init__(self, dom: DomProvider):
        self.dom = dom

    def _collect(self, selector: str) -> list[dict]:
        try:
            elements = self.dom.query_selector_all(selector)
        except SelectorError as e:
            logger.warning("[extractor] %s", e)
            return []

        found = []
        for el in elements:
            style = self.dom.computed_style(el)
            if not is_visible(style, *self.dom.offset_size(el)):
                continue
            if not is_on_top(self.dom, el):
                continue
            found.append({
                "rect": dict(self.dom.bounding_rect(el)),
                "id": self.dom.element_id(el),
                "classes": list(self.dom.class_list(el)),
                "zIndex": style.get("zIndex", "auto"),
                "position": style.get("position", "static"),
            })
        return found

    async def query(self, source: str, targets: list[str]) -> dict[str, list[dict]]:
        result = {"sources": self._collect(source), "targets": []}
        for selector in targets:
            result["targets"].extend(self._collect(selector))
        return result


# ---------------------------------------------------------------------------
# Raw facts -> boxes
# ---------------------------------------------------------------------------

def derive_selector(element_id: str, classes: list[str]) -> str:
    if element_id:
        return f"#{element_id}"
    classes = [c for c in classes if c]
    if classes:
        return "." + ".".join(classes)
    return NO_SELECTOR


def parse_z_index(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None  # "auto"


def _to_box(raw: dict, role: str, url: str, click_frequency: float | None) -> BoundingBox:
    rect = raw.get("rect") or {}
    return BoundingBox(
        selector=derive_selector(raw.get("id") or "", raw.get("classes") or []),
        role=role,
        z_index=parse_z_index(raw.get("zIndex")),
        position=raw.get("position") or "static",
        url=url,
        click_frequency=click_frequency,
        **{k: rect.get(k, 0) or 0 for k in GEOMETRY_FIELDS},
    )


async def extract_boxes(
    executor: QueryExecutor,
    source: str,
    targets: list[str],
    url: str,
    click_frequency: float | None = None,
) -> Graph:
    """Collect visible, unobstructed source and target boxes for one page."""
    raw = await executor.query(source, targets) or {}
    sources = [_to_box(r, "source", url, click_frequency) for r in raw.get("sources") or []]
    target_boxes = [_to_box(r, "target", url, click_frequency) for r in raw.get("targets") or []]
    logger.debug(
        "[extractor] %s: %d source / %d target boxes", url, len(sources), len(target_boxes)
    )
    return Graph(url=url, sources=sources, targets=target_boxes)
