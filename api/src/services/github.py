"""
GitHub service for webhook validation and push parsing.
"""

import hmac
import hashlib
from typing import Optional, Dict, Any

from api.src.config import get_settings

settings = get_settings()

def verify_signature(payload: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    """Verify GitHub webhook signature."""
    secret = settings.github_webhook_secret if secret is None else secret
    if not secret:
        # Skip verification if no secret configured (development)
        return True
    if not signature:
        return False

    expected = "sha256=" + hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)

def parse_webhook_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Extract relevant info from GitHub webhook payload."""
    repo = payload.get("repository") or {}
    head_commit = payload.get("head_commit") or {}

    # Get branch from ref (refs/heads/main -> main)
    ref = payload.get("ref", "")
    branch = ref.replace("refs/heads/", "") if ref.startswith("refs/heads/") else ref

    return {
        "repo_name": repo.get("name", ""),
        "repo_full_name": repo.get("full_name", ""),
        "commit_sha": head_commit.get("id", payload.get("after", "")),
        "branch": branch,
        "commit_message": head_commit.get("message", ""),
        "pusher": (payload.get("pusher") or {}).get("name", ""),
        "deleted": bool(payload.get("deleted", False)),
    }

def watches(webhook_data: Dict[str, Any], repository: Optional[str], branch: str) -> bool:
    """True if the push concerns the watched repository and branch."""
    if repository and webhook_data["repo_full_name"].lower() != repository.lower():
        return False
    return webhook_data["branch"] == branch
