"""Version-control webhooks: pull request outcomes."""

import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ..deps import get_publish_service, get_settings_dep
from ..schemas import camelize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_signature(secret: str, payload: bytes, signature: Optional[str]) -> bool:
    """Check a ``sha256=<hex>`` HMAC header against the raw body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])


@router.post("/github")
async def github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(None),
    x_hub_signature_256: Optional[str] = Header(None),
    settings=Depends(get_settings_dep),
    publisher=Depends(get_publish_service),
):
    payload = await request.body()
    secret = settings.github.webhook_secret
    if secret and not verify_signature(secret, payload, x_hub_signature_256):
        logger.warning("Rejected webhook with a bad signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(payload or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Webhook payload must be a JSON object")

    if x_github_event != "pull_request" or event.get("action") != "closed":
        return {"status": "ignored"}

    pr = event.get("pull_request") or {}
    repo = (event.get("repository") or {}).get("full_name")
    number = pr.get("number") or event.get("number")
    if not repo or not number:
        raise HTTPException(status_code=400, detail="Missing repository or pull request number")

    result = publisher.record_outcome(repo, int(number), bool(pr.get("merged")))
    if result is None:
        return {"status": "ignored"}
    return camelize({"status": "recorded", "pull_request": result})
