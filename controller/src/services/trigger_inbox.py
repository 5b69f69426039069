"""
Wake-up signals for the source trigger.

The redis inbox lets the webhook endpoint nudge the trigger into polling
early. A pending flag set with NX guarantees that any number of nudges
between two polls collapse into one wake-up.
"""

import asyncio
import json
import math
from typing import Any, Dict

import redis.asyncio as redis

TRIGGER_WAKE = "crossdeploy:trigger:wake"
TRIGGER_PENDING = "crossdeploy:trigger:pending"

class IntervalInbox:
    """Plain poll interval."""

    def __init__(self, interval: float):
        self.interval = interval

    async def wait(self) -> bool:
        await asyncio.sleep(self.interval)
        return False

class RedisTriggerInbox:
    def __init__(self, client: redis.Redis, interval: float):
        self.client = client
        self.interval = interval

    async def wait(self) -> bool:
        """Block until nudged or the poll interval elapses. True if nudged."""
        result = await self.client.brpop(TRIGGER_WAKE, timeout=max(1, math.ceil(self.interval)))
        if result:
            await self.client.delete(TRIGGER_PENDING)
            return True
        return False

async def request_trigger(client: redis.Redis, payload: Dict[str, Any]) -> bool:
    """Ask the trigger to poll now. Returns False if a request is already pending."""
    if await client.set(TRIGGER_PENDING, json.dumps(payload), nx=True):
        await client.lpush(TRIGGER_WAKE, "1")
        return True
    return False
