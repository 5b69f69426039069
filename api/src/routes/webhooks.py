"""
GitHub webhook endpoints.

A push to the watched branch does not start a run by itself: it wakes the
controller's source trigger, which polls the branch head and coalesces
revisions with any execution already in flight.
"""

from fastapi import APIRouter, Request, HTTPException, Header
from typing import Optional
import logging

from api.src.config import get_settings
from api.src.models.run import TriggerResponse
from api.src.services.github import verify_signature, parse_webhook_payload, watches
from api.src.services.queue import enqueue_trigger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

async def process_push_event(payload: dict) -> TriggerResponse:
    """Process GitHub push event and wake the source trigger."""
    settings = get_settings()

    # Parse webhook payload
    webhook_data = parse_webhook_payload(payload)

    if not webhook_data["commit_sha"] or webhook_data["deleted"]:
        logger.warning("No commit SHA in webhook payload")
        return TriggerResponse(status="skipped", reason="No commit SHA")

    if not watches(webhook_data, settings.github_repository, settings.github_branch):
        return TriggerResponse(
            status="skipped",
            revision=webhook_data["commit_sha"],
            reason=f"{webhook_data['repo_full_name']}@{webhook_data['branch']} is not watched",
        )

    requested = await enqueue_trigger(webhook_data)
    logger.info(
        f"Push {webhook_data['commit_sha'][:12]} to {webhook_data['branch']} "
        f"{'requested a poll' if requested else 'joined a pending poll'}"
    )
    return TriggerResponse(
        status="triggered" if requested else "pending",
        revision=webhook_data["commit_sha"],
    )

@router.post("/github", response_model=TriggerResponse)
async def github_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid signature")

    # Parse JSON payload
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    # Handle different event types
    if x_github_event == "ping":
        return TriggerResponse(status="pong", reason="Webhook configured successfully")

    if x_github_event == "push":
        return await process_push_event(payload)

    # Ignore other events
    return TriggerResponse(status="ignored", reason=f"Event type '{x_github_event}' not handled")
