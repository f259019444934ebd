from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from monetization.auth.deps import get_authenticated_email, require_same_email
from monetization.models import BalanceOut, SpendReq, SpendResp
from monetization.services import credits

router = APIRouter(tags=["credits"])


@router.post("/spend", response_model=SpendResp)
async def spend(body: SpendReq, email: str = Depends(get_authenticated_email)):
    owner = require_same_email(body.email, email)
    return {"balance": credits.spend(owner, body.kind)}


@router.get("/balance", response_model=BalanceOut)
async def balance(email: Optional[str] = Query(None), auth_email: str = Depends(get_authenticated_email)):
    return credits.get_balance(require_same_email(email, auth_email))
