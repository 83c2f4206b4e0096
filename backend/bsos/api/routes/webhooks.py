"""Inbound Stripe webhook endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from bsos.billing.pipeline import WebhookPipeline, build_pipeline
from bsos.core.config import get_settings
from bsos.db.base import get_session_factory

router = APIRouter()


def get_webhook_pipeline() -> WebhookPipeline:
    return build_pipeline(get_session_factory(), get_settings())


@router.post("/webhooks/payments")
async def payment_webhook(request: Request, pipeline: WebhookPipeline = Depends(get_webhook_pipeline)):
    """Ingest one Stripe event.

    The body is read as raw bytes: the signature covers the exact payload.
    2xx acknowledges the delivery; any error status makes Stripe retry.
    The pipeline has already logged the outcome, so its body is returned as is.
    """
    payload = await request.body()
    sig_header = request.headers.get(get_settings().stripe_signature_header)

    result = await pipeline.process(payload, sig_header)
    return JSONResponse(status_code=result.status_code, content=result.body)
