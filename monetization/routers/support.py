from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from monetization.auth.deps import get_authenticated_email
from monetization.core.normalize import normalize_email
from monetization.models import PaidActionResp, PaidReactionReq, PaidVoteReq, ReactionCountsOut
from monetization.services import support_ledger

router = APIRouter(tags=["support"])


@router.post("/reactions/paid", response_model=PaidActionResp)
async def paid_reaction(body: PaidReactionReq, email: str = Depends(get_authenticated_email)):
    target = f"{body.post_id.strip()}::{body.reaction.strip()}"
    return support_ledger.spend_and_record(email, "reaction", normalize_email(body.creator_email), body.source, target)


@router.get("/reactions/counts", response_model=ReactionCountsOut)
async def reaction_counts(post_id: str = Query(..., alias="postId", min_length=1)):
    return support_ledger.aggregate(post_id)


@router.post("/votes/paid", response_model=PaidActionResp)
async def paid_vote(body: PaidVoteReq, email: str = Depends(get_authenticated_email)):
    return support_ledger.spend_and_record(email, "vote", normalize_email(body.creator_email), body.source, body.target_id)
