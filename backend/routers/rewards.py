"""
Backend Router — Rewards (leaderboard variant)
=================================================

POST /rewards/submit       — Paid workout submission
POST /rewards/distribute   — Owner distribution (optionally emergency)
POST /rewards/upkeep       — Automation check + perform
POST /rewards/claim        — Pull pending rewards
GET  /rewards/config       — Reward configuration and next distribution
GET  /rewards/top          — Current top performers of the reward board
GET  /rewards/{user}       — Reward bookkeeping of a user
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from backend import config
from scoring.models import (
    LocalAbsScore,
    Payout,
    RewardConfigView,
    SubmissionReceipt,
    Txn,
    UserReward,
)

logger = logging.getLogger("backend.rewards")
router = APIRouter(prefix="/rewards", tags=["Rewards"])


class PaidSubmitRequest(BaseModel):
    sender: str
    value: int = Field(..., ge=0, description="Wei attached; must cover the submission fee")
    reps: int
    form_accuracy: int
    streak: int = Field(default=0, ge=0)
    duration: int = Field(default=0, ge=0)


class DistributeRequest(BaseModel):
    sender: str
    emergency: bool = False


class CallerRequest(BaseModel):
    sender: str


class DistributionResponse(BaseModel):
    trigger: str
    payouts: list[Payout]
    total_distributed: int
    remaining_pool: int


class UpkeepResponse(BaseModel):
    upkeep_needed: bool
    distribution: DistributionResponse | None = None


class ClaimResponse(BaseModel):
    user: str
    amount: int


def _distribution(trigger: str, payouts: list[Payout]) -> DistributionResponse:
    pool = config.get_deployment().leaderboard.state.reward_config.total_reward_pool
    return DistributionResponse(
        trigger=trigger,
        payouts=payouts,
        total_distributed=sum(p.amount for p in payouts),
        remaining_pool=pool,
    )


@router.post("/submit", response_model=SubmissionReceipt)
async def paid_submit(req: PaidSubmitRequest):
    leaderboard = config.get_deployment().leaderboard
    return leaderboard.submit_workout_session(
        Txn(sender=req.sender, value=req.value, timestamp=config.now()),
        req.reps,
        req.form_accuracy,
        req.streak,
        req.duration,
    )


@router.post("/distribute", response_model=DistributionResponse)
async def distribute(req: DistributeRequest):
    leaderboard = config.get_deployment().leaderboard
    txn = Txn(sender=req.sender, timestamp=config.now())
    if req.emergency:
        logger.warning("Emergency distribution requested by %s", req.sender[:10])
        return _distribution("emergency", leaderboard.emergency_distribute(txn))
    return _distribution("manual", leaderboard.distribute_rewards(txn))


@router.post("/upkeep", response_model=UpkeepResponse)
async def upkeep(req: CallerRequest):
    leaderboard = config.get_deployment().leaderboard
    now = config.now()
    needed, data = leaderboard.check_upkeep(now)
    if not needed:
        return UpkeepResponse(upkeep_needed=False)
    payouts = leaderboard.perform_upkeep(Txn(sender=req.sender, timestamp=now), data)
    return UpkeepResponse(upkeep_needed=True, distribution=_distribution("automatic", payouts))


@router.post("/claim", response_model=ClaimResponse)
async def claim(req: CallerRequest):
    leaderboard = config.get_deployment().leaderboard
    amount = leaderboard.claim_rewards(Txn(sender=req.sender, timestamp=config.now()))
    return ClaimResponse(user=req.sender.lower(), amount=amount)


@router.get("/config", response_model=RewardConfigView)
async def reward_config():
    return config.get_deployment().leaderboard.get_reward_config(config.now())


@router.get("/top", response_model=list[LocalAbsScore])
async def top_performers(limit: int = Query(default=10, ge=1, le=100)):
    return config.get_deployment().leaderboard.get_top_performers(limit)


@router.get("/{user}", response_model=UserReward)
async def user_rewards(user: str):
    return config.get_deployment().leaderboard.get_user_reward_info(user)
