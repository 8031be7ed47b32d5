"""FastAPI routes."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from alertntfy.domain.models import WebhookPayload
from alertntfy.services.security import require_webhook_auth
from alertntfy.telemetry.logging import bind

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/hook", dependencies=[Depends(require_webhook_auth)])
async def handle_webhook(request: Request) -> Response:
    log = bind(logger, request_id=getattr(request.state, "request_id", "-"))
    log.info("Handling webhook")

    body = await request.body()
    log.debug("Received webhook request body=%s", body.decode("utf-8", errors="replace"))
    try:
        payload = WebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        log.error("Failed to unmarshal webhook payload: %s", exc)
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    if not payload.alerts:
        log.warning("Received an empty list of alerts")
        return Response(status_code=status.HTTP_200_OK)

    forwarder = request.app.state.forwarder
    if not request.app.state.config.ntfy.async_:
        delivered = await run_in_threadpool(forwarder.forward_alerts, payload.alerts, log)
        return Response(status_code=status.HTTP_200_OK if delivered else status.HTTP_502_BAD_GATEWAY)

    forwarder.submit(payload.alerts, log)
    return Response(status_code=status.HTTP_202_ACCEPTED)
