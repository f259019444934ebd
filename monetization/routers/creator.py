from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from monetization.auth.deps import get_authenticated_email, require_same_email
from monetization.core.normalize import normalize_email
from monetization.models import EarningsOut, PayoutStatusOut, ProfileOut, RedirectResp, VerificationOut
from monetization.services import payout, profiles, support_ledger, verification

router = APIRouter(tags=["creator"])


@router.get("/verification", response_model=VerificationOut)
async def get_verification(email: str = Query(...)):
    return verification.get_verification(normalize_email(email))


@router.get("/payout-status", response_model=PayoutStatusOut)
async def payout_status(
    email: Optional[str] = Query(None),
    refresh: bool = Query(False),
    auth_email: str = Depends(get_authenticated_email),
):
    return payout.get_payout_status(require_same_email(email, auth_email), refresh=refresh)


@router.post("/payout/onboard", response_model=RedirectResp)
async def payout_onboard(email: str = Depends(get_authenticated_email)):
    link = payout.start_onboarding(email)
    return {"url": link["url"]}


@router.post("/creator/activate", response_model=ProfileOut)
async def activate_creator(email: str = Depends(get_authenticated_email)):
    return profiles.activate_creator(email)


@router.get("/creator/earnings", response_model=EarningsOut)
async def creator_earnings(
    limit: int = Query(20, ge=1, le=100),
    email: str = Depends(get_authenticated_email),
):
    return support_ledger.creator_earnings(email, limit=limit)
