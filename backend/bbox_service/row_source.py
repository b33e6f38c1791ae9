"""
Row source backed by the RUM bundles API.

One request per day in the range; each bundle event whose checkpoint
matches becomes a Row. Days are fetched concurrently and concatenated in
date order so the resulting sequence is deterministic.
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Protocol

import httpx

from bbox_service.config import Settings
from bbox_service.errors import UpstreamDataError
from bbox_service.models import Row


logger = logging.getLogger(__name__)


class RowSource(Protocol):
    async def fetch_rows(
        self,
        domain: str,
        start: date,
        end: date,
        checkpoint: str,
        domainkey: str | None = None,
    ) -> list[Row]: ...


def date_range(start: date, end: date) -> list[date]:
    days = []
    day = start
    while day <= end:
        days.append(day)
        day += timedelta(days=1)
    return days


def rows_from_bundles(payload: dict, checkpoint: str) -> list[Row]:
    rows = []
    for bundle in payload.get("rumBundles") or []:
        for event in bundle.get("events") or []:
            if event.get("checkpoint") != checkpoint or not event.get("source"):
                continue
            rows.append(Row(
                url=bundle["url"],
                source=event["source"],
                user_agent=bundle.get("userAgent"),
                weight=bundle.get("weight"),
            ))
    return rows


class BundlesRowSource:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client

    def _day_url(self, domain: str, day: date) -> str:
        return f"{self.settings.bundles_url.rstrip('/')}/{domain}/{day:%Y/%m/%d}"

    async def _fetch_day(
        self,
        client: httpx.AsyncClient,
        domain: str,
        day: date,
        checkpoint: str,
        domainkey: str,
    ) -> list[Row]:
        try:
            resp = await client.get(
                self._day_url(domain, day),
                params={"domainkey": domainkey, "checkpoint": checkpoint},
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise UpstreamDataError(f"Bundles fetch failed for {domain} {day}: {e}") from e
        except ValueError as e:
            raise UpstreamDataError(f"Bundles response for {domain} {day} is not JSON") from e

        try:
            return rows_from_bundles(payload, checkpoint)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise UpstreamDataError(f"Malformed bundles payload for {domain} {day}: {e}") from e

    async def fetch_rows(
        self,
        domain: str,
        start: date,
        end: date,
        checkpoint: str,
        domainkey: str | None = None,
    ) -> list[Row]:
        domainkey = domainkey if domainkey is not None else self.settings.bundles_domainkey
        days = date_range(start, end)

        if self._client is not None:
            per_day = await asyncio.gather(
                *(self._fetch_day(self._client, domain, d, checkpoint, domainkey) for d in days)
            )
        else:
            async with httpx.AsyncClient(timeout=self.settings.bundles_timeout) as client:
                per_day = await asyncio.gather(
                    *(self._fetch_day(client, domain, d, checkpoint, domainkey) for d in days)
                )

        rows = [row for day_rows in per_day for row in day_rows]
        logger.info("[row-source] %s %s..%s: %d rows over %d days", domain, start, end, len(rows), len(days))
        return rows
