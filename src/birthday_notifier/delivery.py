from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import httpx

from birthday_notifier.date_logic import utc_now
from birthday_notifier.models import DeliveryReport, MarkResult, Occurrence
from birthday_notifier.outbox_store import OutboxStore

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class DeliverySink(Protocol):
    async def deliver(self, occurrence: Occurrence) -> bool: ...


def build_webhook_body(occurrence: Occurrence) -> dict[str, Any]:
    return {
        "id": occurrence.occurrence_id,
        "person_id": occurrence.person_id,
        "message": occurrence.payload,
        "scheduled_at": occurrence.scheduled_at.astimezone(timezone.utc).isoformat(),
    }


class WebhookSink:
    """POSTs each occurrence as JSON; any transport problem is reported as False."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def deliver(self, occurrence: Occurrence) -> bool:
        body = build_webhook_body(occurrence)
        try:
            response = await asyncio.wait_for(
                self._client.post(self._url, json=body),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Webhook timed out for occurrence %s", occurrence.occurrence_id)
            return False
        except httpx.HTTPError as exc:
            LOGGER.warning("Webhook failed for occurrence %s: %s", occurrence.occurrence_id, exc)
            return False

        if not response.is_success:
            LOGGER.warning(
                "Webhook rejected occurrence %s with HTTP %s",
                occurrence.occurrence_id,
                response.status_code,
            )
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


class DeliveryLoop:
    """One pass over the due occurrences in the outbox.

    Failed deliveries stay pending and are picked up again on the next
    pass; there is no attempt limit or backoff.
    """

    def __init__(
        self,
        *,
        store: OutboxStore,
        sink: DeliverySink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._sink = sink
        self._batch_size = batch_size
        self._clock = clock

    async def _attempt(self, occurrence: Occurrence) -> bool:
        try:
            return bool(await self._sink.deliver(occurrence))
        except Exception:
            LOGGER.exception("Sink raised while delivering occurrence %s", occurrence.occurrence_id)
            return False

    async def run_once(self, now: datetime | None = None) -> DeliveryReport:
        due = self._store.list_due(now or self._clock(), self._batch_size)
        if not due:
            return DeliveryReport(attempted=0, delivered=0, failed=0)

        delivered = 0
        failed = 0
        for occurrence in due:
            if not await self._attempt(occurrence):
                failed += 1
                continue

            result = self._store.mark_delivered(occurrence.occurrence_id, self._clock())
            if result is MarkResult.NOT_FOUND:
                # Cleared by an edit or delete while the webhook call was in flight.
                LOGGER.warning("Delivered occurrence %s no longer exists", occurrence.occurrence_id)
            delivered += 1

        LOGGER.info("Delivered %s of %s due occurrence(s), %s failed", delivered, len(due), failed)
        return DeliveryReport(attempted=len(due), delivered=delivered, failed=failed)
