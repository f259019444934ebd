from __future__ import annotations

from fastapi import APIRouter, Depends

from monetization.auth.deps import get_authenticated_email, require_same_email
from monetization.core.normalize import normalize_email
from monetization.models import CheckoutReq, CheckoutResp, RedirectResp, VerificationCheckoutReq
from monetization.services import checkout

router = APIRouter(tags=["checkout"])


@router.post("/checkout", response_model=CheckoutResp)
async def create_checkout(body: CheckoutReq, email: str = Depends(get_authenticated_email)):
    viewer = require_same_email(body.viewer_email, email)
    session = checkout.build(
        body.mode,
        normalize_email(body.creator_email),
        viewer,
        target_id=body.target_id,
        source=body.source,
        return_path=body.return_path,
        amount_cents=body.amount_cents,
    )
    return {"redirect_url": session["url"], "session_id": session["session_id"]}


@router.post("/verification/checkout", response_model=RedirectResp)
async def verification_checkout(body: VerificationCheckoutReq, email: str = Depends(get_authenticated_email)):
    session = checkout.build_verification(email, body.tier)
    return {"url": session["url"]}


@router.post("/verification/portal", response_model=RedirectResp)
async def verification_portal(email: str = Depends(get_authenticated_email)):
    return checkout.build_portal(email)
