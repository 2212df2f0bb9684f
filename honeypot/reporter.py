"""
Reporting side of the honeypot.

- ReportClient: posts the final intelligence report to the evaluation endpoint.
- JobQueue: detached queue + worker task. The controller enqueues an
  extraction job and returns the chat reply right away; the worker runs the
  job later, so a slow or failing report can never delay a reply.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import requests

from honeypot.errors import ReportDeliveryError
from honeypot.models import ReportPayload


logger = logging.getLogger(__name__)


class ReportClient:
    """Fire-and-forget POST to the reporting callback. Never retried."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def send(self, payload: ReportPayload) -> None:
        logger.info("📡 SENDING REPORT for session %s", payload.sessionId)
        try:
            response = await asyncio.to_thread(
                requests.post,
                self.url,
                json=payload.model_dump(),
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as e:
            raise ReportDeliveryError(f"report for {payload.sessionId} failed: {e}") from e

        if response.status_code >= 400:
            raise ReportDeliveryError(
                f"report for {payload.sessionId} rejected with HTTP {response.status_code}"
            )
        logger.info("✅ REPORT SENT - session %s, status %s", payload.sessionId, response.status_code)


@dataclass(frozen=True)
class ExtractionJob:
    """Snapshot of a session taken at trigger time."""
    session_id: str
    transcript: str
    scammer_text: str
    total_messages: int
    engagement_seconds: int


class JobQueue:
    """Single-worker asyncio queue for extraction+report jobs."""

    def __init__(self, handler: Callable[[ExtractionJob], Awaitable[None]]):
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def enqueue(self, job: ExtractionJob) -> None:
        self._queue.put_nowait(job)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="report-worker")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def run_pending(self) -> None:
        """Process queued jobs inline, without a worker task."""
        while not self._queue.empty():
            job = self._queue.get_nowait()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: ExtractionJob) -> None:
        try:
            await self._handler(job)
        except Exception:
            logger.exception("❌ Extraction job failed for session %s", job.session_id)
