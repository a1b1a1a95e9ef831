"""
Payment gateway webhook route.

Every gateway posts its callbacks here; the gateway is recognized from the
payload shape. Responses follow what gateways expect:

- 200 {success: true} for processed, unmatched and unmapped callbacks
- 400 for malformed payloads (not worth redelivering)
- 500 for processing failures, so the gateway redelivers
"""
import json

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.database import get_db
from paysettle.logging_config import get_logger
from paysettle.sentry_config import capture_exception
from paysettle.services.event_log import EventLogError
from paysettle.services.gateway_normalizer import GatewaySnapshot, MalformedWebhookError, get_gateway_snapshot
from paysettle.services.settlement import SettlementError
from paysettle.services.webhook_processor import InboundWebhookProcessor

log = get_logger(component="payments_route")

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _response(status_code: int, success: bool, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": success, "message": message, **extra})


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    snapshot: GatewaySnapshot = Depends(get_gateway_snapshot),
    db: AsyncSession = Depends(get_db)
):
    """Receive a payment gateway callback."""
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        log.warning("gateway_webhook_invalid_json", size=len(raw))
        return _response(status.HTTP_400_BAD_REQUEST, False, "Invalid JSON")

    processor = InboundWebhookProcessor(db, snapshot)
    try:
        result = await processor.process(payload)
    except MalformedWebhookError as e:
        log.warning("gateway_webhook_malformed", error=str(e))
        return _response(status.HTTP_400_BAD_REQUEST, False, str(e))
    except (SettlementError, EventLogError) as e:
        log.error("gateway_webhook_processing_failed", error=str(e), exc_info=True)
        capture_exception(e)
        return _response(status.HTTP_500_INTERNAL_SERVER_ERROR, False, str(e))
    except Exception as e:
        log.error("gateway_webhook_unexpected_error", error=str(e), exc_info=True)
        capture_exception(e)
        return _response(status.HTTP_500_INTERNAL_SERVER_ERROR, False, "Internal error processing webhook")

    extra = {}
    if result.order_id:
        extra["order_id"] = result.order_id
    return _response(status.HTTP_200_OK, True, result.message, **extra)
