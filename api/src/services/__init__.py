from api.src.services.github import (
    verify_signature,
    parse_webhook_payload,
    watches,
)
from api.src.services.queue import (
    enqueue_trigger,
    get_pending_trigger,
    get_wake_queue_length,
)

__all__ = [
    "verify_signature",
    "parse_webhook_payload",
    "watches",
    "enqueue_trigger",
    "get_pending_trigger",
    "get_wake_queue_length",
]
