"""
Redis trigger requests: the webhook nudges the controller's source trigger.
"""

import redis.asyncio as redis
from typing import Dict, Any, Optional
from datetime import datetime

from api.src.config import get_settings
from controller.src.services.trigger_inbox import TRIGGER_PENDING, TRIGGER_WAKE, request_trigger

settings = get_settings()

async def get_redis_client() -> redis.Redis:
    """Get async Redis client."""
    return redis.from_url(settings.redis_url, decode_responses=True)

async def enqueue_trigger(webhook_data: Dict[str, Any]) -> bool:
    """Ask the controller to poll the source now. False if a request is already pending."""
    client = await get_redis_client()

    payload = {
        "revision": webhook_data["commit_sha"],
        "repository": webhook_data["repo_full_name"],
        "branch": webhook_data["branch"],
        "pusher": webhook_data["pusher"],
        "requested_at": datetime.utcnow().isoformat(),
    }

    try:
        return await request_trigger(client, payload)
    finally:
        await client.aclose()

async def get_pending_trigger() -> Optional[str]:
    """Raw pending trigger request, if the controller has not picked it up yet."""
    client = await get_redis_client()

    try:
        return await client.get(TRIGGER_PENDING)
    finally:
        await client.aclose()

async def get_wake_queue_length() -> int:
    client = await get_redis_client()

    try:
        return await client.llen(TRIGGER_WAKE)
    finally:
        await client.aclose()
