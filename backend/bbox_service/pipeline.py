"""
Resumable batch pipeline over a frozen row sequence.

Rows are processed strictly one at a time, in order. The returned cursor
counts rows scanned, not rows that produced output: a batch stops once
``quota`` non-empty graphs have been collected or the rows run out.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from playwright.async_api import Browser, Error as PlaywrightError, Page

from bbox_service.browser import BrowserManager, console_records, is_mobile, open_page
from bbox_service.config import Settings
from bbox_service.extractor import PageQueryExecutor, extract_boxes
from bbox_service.intersections import annotate
from bbox_service.models import BatchResult, Graph, Row
from bbox_service.sanitizer import sanitize_graph
from bbox_service.snapshots import SnapshotCapturer


logger = logging.getLogger(__name__)


RowProcessor = Callable[[Row], Awaitable[Graph | None]]


async def _relay_console(page: Page):
    async for record in console_records(page):
        logger.debug("[page-console] %s %s: %s", record.type, record.url, record.text)


async def process_row(browser: Browser, row: Row, settings: Settings) -> Graph | None:
    """
    Open the row's page, extract boxes and attach snapshots.

    Returns None when the page could not be loaded or evaluated.
    """
    async with open_page(browser, row.url, row.user_agent, settings) as page:
        if page is None:
            return None

        relay = asyncio.create_task(_relay_console(page))
        await asyncio.sleep(0)  # let the relay subscribe before the page script runs
        try:
            graph = await extract_boxes(
                PageQueryExecutor(page),
                row.source,
                settings.target_selectors,
                row.url,
                row.click_frequency,
            )
            capturer = SnapshotCapturer(page, is_mobile(row.user_agent), settings)
            return await capturer.capture_graph(graph)
        except PlaywrightError as e:
            logger.warning("[pipeline] Extraction failed for %s: %s", row.url, e.message)
            return None
        finally:
            relay.cancel()
            await asyncio.gather(relay, return_exceptions=True)


async def run_batch(
    rows: list[Row],
    offset: int,
    quota: int,
    processor: RowProcessor,
) -> BatchResult:
    if quota <= 0:
        raise ValueError("quota must be positive")

    total = len(rows)
    offset = min(max(offset, 0), total)
    results: list[Graph] = []

    while len(results) < quota and offset < total:
        graph = await processor(rows[offset])
        if graph is not None:
            cleaned = sanitize_graph(graph)
            if cleaned is not None:
                results.append(cleaned)
        offset += 1

    logger.info("[pipeline] Batch done: %d results, cursor %d/%d", len(results), offset, total)
    return BatchResult(results=results, cursor=offset, total=total)


class BatchPipeline:
    """Binds the shared browser and settings to run_batch."""

    def __init__(self, browser_manager: BrowserManager, settings: Settings):
        self.browser_manager = browser_manager
        self.settings = settings

    async def _process(self, row: Row) -> Graph | None:
        browser = await self.browser_manager.get_browser()
        return await process_row(browser, row, self.settings)

    async def run(
        self,
        rows: list[Row],
        offset: int = 0,
        with_intersections: bool = False,
    ) -> BatchResult:
        result = await run_batch(rows, offset, self.settings.batch_size, self._process)
        if with_intersections:
            result = result.model_copy(
                update={"results": [annotate(g) for g in result.results]}
            )
        return result
