"""
Per-box image capture.

Desktop rows get one clip of the page around each box (padded, clamped
at the origin). Mobile rows get an element-scoped image plus a viewport
image taken after scrolling the element to the centre. At most
``snapshot_concurrency`` captures run at once; the rest wait their turn
in submission order.

Mobile captures scroll the shared page, so the locate, scroll and
viewport screenshot of one box run under a page lock. The element is
located among the selector's matches by its document position, since a
derived selector such as ``.btn.primary`` can match several elements.
"""

import asyncio
import logging

from playwright.async_api import ElementHandle, Page

from bbox_service.config import Settings
from bbox_service.errors import SnapshotError
from bbox_service.extractor import NO_SELECTOR
from bbox_service.image_utils import screenshot_to_data_uri
from bbox_service.models import BoundingBox, Graph


logger = logging.getLogger(__name__)


SCROLL_OFFSET_SCRIPT = "() => [window.scrollX, window.scrollY]"

LOCATE_SCRIPT = """({ selector, x, y }) => {
    let best = null;
    let bestDistance = Infinity;
    for (const el of document.querySelectorAll(selector)) {
        const r = el.getBoundingClientRect();
        const distance = Math.abs(r.left + window.scrollX - x) + Math.abs(r.top + window.scrollY - y);
        if (distance < bestDistance) {
            best = el;
            bestDistance = distance;
        }
    }
    return best;
}"""

SCROLL_INTO_VIEW_SCRIPT = "(el) => el.scrollIntoView({ behavior: 'instant', block: 'center' })"


def padded_clip(box: BoundingBox, padding: int) -> dict[str, float]:
    return {
        "x": max(0, box.x - padding),
        "y": max(0, box.y - padding),
        "width": box.width + padding * 2,
        "height": box.height + padding * 2,
    }


class SnapshotCapturer:
    """Attaches snapshots to the boxes of one row's page."""

    def __init__(self, page: Page, mobile: bool, settings: Settings):
        self.page = page
        self.mobile = mobile
        self.settings = settings
        self._limiter = asyncio.Semaphore(settings.snapshot_concurrency)
        self._page_lock = asyncio.Lock()
        # scroll offset the boxes were measured at; read before the first scroll
        self._origin: tuple[float, float] | None = None

    def _encode(self, data: bytes) -> str:
        return screenshot_to_data_uri(
            data,
            compress=self.settings.snapshot_compress,
            max_width=self.settings.snapshot_max_width,
            quality=self.settings.snapshot_quality,
        )

    async def _capture_desktop(self, box: BoundingBox) -> dict:
        clip = padded_clip(box, self.settings.snapshot_padding)
        data = await self.page.screenshot(clip=clip)
        return {"snapshot": self._encode(data)}

    async def _locate(self, box: BoundingBox) -> ElementHandle | None:
        if self._origin is None:
            offset = await self.page.evaluate(SCROLL_OFFSET_SCRIPT) or (0, 0)
            self._origin = (offset[0], offset[1])
        origin_x, origin_y = self._origin

        handle = await self.page.evaluate_handle(
            LOCATE_SCRIPT,
            {"selector": box.selector, "x": box.x + origin_x, "y": box.y + origin_y},
        )
        return handle.as_element()

    async def _capture_mobile(self, box: BoundingBox) -> dict:
        if box.selector == NO_SELECTOR:
            raise SnapshotError(f"{box.url}: element has no addressable selector")

        async with self._page_lock:
            element = await self._locate(box)
            if element is None:
                raise SnapshotError(f"{box.url}: {box.selector} no longer in the DOM")
            element_data = await element.screenshot()
            await element.evaluate(SCROLL_INTO_VIEW_SCRIPT)
            viewport_data = await self.page.screenshot()

        return {
            "snapshot": self._encode(element_data),
            "viewport_snapshot": self._encode(viewport_data),
        }

    async def capture(self, box: BoundingBox) -> BoundingBox:
        if box.width <= 0 or box.height <= 0:
            return box

        async with self._limiter:
            try:
                if self.mobile:
                    update = await self._capture_mobile(box)
                else:
                    update = await self._capture_desktop(box)
            except Exception as e:
                logger.warning("[snapshots] Failed snapshot for %s: %s", box.selector, e)
                return box

        return box.model_copy(update=update)

    async def capture_all(self, boxes: list[BoundingBox]) -> list[BoundingBox]:
        return list(await asyncio.gather(*(self.capture(box) for box in boxes)))

    async def capture_graph(self, graph: Graph) -> Graph:
        captured = await self.capture_all([*graph.sources, *graph.targets])
        split = len(graph.sources)
        return graph.model_copy(update={"sources": captured[:split], "targets": captured[split:]})
