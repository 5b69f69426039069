"""
Source trigger - cooperative poll loop that starts pipeline executions.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

class SourceTrigger:
    """
    Polls a revision source and starts one execution per new revision.

    At most one execution is in flight. Revisions detected while it runs
    coalesce into a single pending revision (the latest one), which starts as
    soon as the current execution ends.
    """

    def __init__(
        self,
        source,
        start_run: Callable[[str], Awaitable[Any]],
        inbox,
        last_revision: Optional[str] = None,
    ):
        self.source = source
        self.start_run = start_run
        self.inbox = inbox
        self.last_revision = last_revision
        self.pending_revision: Optional[str] = None
        self.runs_started = 0
        self._inflight: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def poll_once(self) -> Optional[str]:
        """Check the source once. Returns the revision if it is new."""
        revision = await self.source.latest_revision()
        if revision == self.last_revision:
            return None

        logger.info(f"New revision detected: {revision}")
        self.last_revision = revision
        self.signal(revision)
        return revision

    def signal(self, revision: str):
        if self.busy:
            if self.pending_revision:
                logger.info(f"Replacing pending revision {self.pending_revision} with {revision}")
            self.pending_revision = revision
            return
        self._start(revision)

    def _start(self, revision: str):
        self.runs_started += 1
        self._inflight = asyncio.create_task(self._execute(revision))

    async def _execute(self, revision: str):
        try:
            await self.start_run(revision)
        except Exception as e:
            logger.exception(f"Pipeline execution for {revision} failed to run: {e}")
        finally:
            pending, self.pending_revision = self.pending_revision, None
            if pending and not self._stop.is_set():
                self._start(pending)

    async def run(self):
        """Main trigger loop; returns after stop()."""
        logger.info("Source trigger started")

        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.exception(f"Polling failed: {e}")

            await self._wait()

        logger.info("Source trigger stopped")

    async def _wait(self):
        waiter = asyncio.ensure_future(self.inbox.wait())
        stopper = asyncio.ensure_future(self._stop.wait())
        done, pending = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if waiter in done and waiter.exception() is not None:
            logger.error(f"Trigger inbox failed: {waiter.exception()}")
            await asyncio.sleep(5)

    def stop(self):
        self._stop.set()

    async def drain(self):
        """Wait for the in-flight execution and any pending one it hands off to."""
        while self.busy:
            await self._inflight
