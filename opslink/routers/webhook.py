"""
OpsLink Hosting - Stripe Webhook Router
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from opslink.components import Components, get_components
from opslink.errors import WebhookSignatureError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(request: Request, components: Components = Depends(get_components)):
    """Verify and reconcile a Stripe event. Provisioning retries run in a worker thread."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        result = await run_in_threadpool(components.reconciler.handle, payload, signature)
    except WebhookSignatureError as e:
        logger.warning(f"Webhook verification failed: {e.message}")
        return JSONResponse(status_code=400, content={"success": False, "message": "Webhook Error"})

    return {"received": True, "outcome": result.outcome.value}
