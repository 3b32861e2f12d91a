"""
Backend Router — Leaderboard & Scores
========================================

GET /leaderboard     — Ranked hub leaderboard (computed at read time)
GET /scores/{user}   — Local, cross-chain and composite score of a user
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from backend import config
from leaderboard_engine.engine import LeaderboardEntry
from scoring.engine import ScoringEngine
from scoring.models import CompositeScore, CrossChainFitnessData, LocalAbsScore
from scoring.rules import performance_label

logger = logging.getLogger("backend.leaderboard")
router = APIRouter(tags=["Leaderboard"])


class LeaderboardResponse(BaseModel):
    total_users: int
    entries: list[LeaderboardEntry]


class ScoreResponse(BaseModel):
    user: str
    exists: bool
    local: LocalAbsScore
    cross_chain: CrossChainFitnessData
    composite: CompositeScore
    tier: str
    rank: Optional[int] = None
    explanation: str


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(limit: int = Query(default=10, ge=1, le=100)):
    index = config.get_leaderboard_index()
    return LeaderboardResponse(total_users=len(index), entries=index.top_performers(limit))


@router.get("/scores/{user}", response_model=ScoreResponse)
async def get_score(user: str):
    hub = config.get_deployment().hub
    local, exists = hub.get_user_abs_score_safe(user)
    composite = hub.get_total_score(user)

    return ScoreResponse(
        user=user.lower(),
        exists=exists,
        local=local,
        cross_chain=hub.get_cross_chain_data(user),
        composite=composite,
        tier=performance_label(composite.total_score),
        rank=config.get_leaderboard_index().rank_of(user),
        explanation=ScoringEngine.explain(composite),
    )
