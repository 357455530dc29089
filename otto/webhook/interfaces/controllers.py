"""
Webhook Controllers (API Routes)
================================

FastAPI route receiving GitHub webhook deliveries.

Controllers are thin - they verify, parse and hand off to the dispatcher.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from otto.config import DELIVERY_HEADER, EVENT_HEADER, SIGNATURE_HEADER, settings
from otto.core import EventParseException, SignatureVerificationException
from otto.shared.infrastructure.logging import get_logger
from otto.webhook.application import EventDispatcher, parse_event, verify_signature

logger = get_logger(__name__)
router = APIRouter(tags=["Webhook"])


# ========== Dependencies ==========

def get_webhook_secret() -> Optional[str]:
    """Shared secret for signature checks; overridden in tests."""
    return settings.webhook_secret


def get_dispatcher(request: Request) -> EventDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event dispatcher not initialized"
        )
    return dispatcher


# ========== Endpoints ==========

@router.post(
    "/webhook",
    summary="Receive a GitHub webhook delivery",
    responses={
        200: {"description": "Event accepted and dispatched"},
        400: {"description": "Body unreadable, not JSON, or invalid for its event type"},
        401: {"description": "Signature missing or invalid"},
    }
)
async def receive_webhook(
    request: Request,
    secret: Optional[str] = Depends(get_webhook_secret),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    Verify, parse and dispatch one delivery.

    The response only reflects verification and parsing; module handlers
    run after it is sent.
    """
    delivery_id = request.headers.get(DELIVERY_HEADER)
    event_type = request.headers.get(EVENT_HEADER, "")

    try:
        body = await request.body()
    except Exception as e:
        logger.warning("Failed to read webhook body", extra={"delivery_id": delivery_id, "error": str(e)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to read request body")

    try:
        verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER))
    except SignatureVerificationException as e:
        logger.warning(
            "Webhook signature rejected",
            extra={"delivery_id": delivery_id, "event_type": event_type, "reason": e.message}
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = parse_event(event_type, body)
    except EventParseException as e:
        logger.warning(
            "Webhook payload rejected",
            extra={"delivery_id": delivery_id, "event_type": event_type, "reason": e.message}
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    dispatcher.dispatch(event_type, event, body, delivery_id)

    logger.info("Webhook accepted", extra={"delivery_id": delivery_id, "event_type": event_type})
    return {"status": "accepted", "event": event_type}
