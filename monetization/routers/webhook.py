from __future__ import annotations

from fastapi import APIRouter, Request

from monetization.models import WebhookResp
from monetization.services import reconciler

router = APIRouter(tags=["webhook"])


@router.post("/webhook", response_model=WebhookResp)
async def stripe_webhook(req: Request):
    # Signature covers the exact bytes; never parse before verifying.
    payload = await req.body()
    return reconciler.handle(payload, req.headers.get("stripe-signature"))
