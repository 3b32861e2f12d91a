"""
Backend Router — Submission
==============================

POST /submit           — Record a workout on the hub (requests analysis)
GET  /sessions/{user}  — Workout sessions of a user, with analysis status
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from backend import config
from scoring.models import Txn, WorkoutSession
from scoring.rules import DEFAULT_LATITUDE, DEFAULT_LONGITUDE

logger = logging.getLogger("backend.submission")
router = APIRouter(tags=["Submission"])


class SubmitRequest(BaseModel):
    sender: str = Field(..., description="Submitting wallet (0x-prefixed)")
    reps: int
    form_accuracy: int
    streak: int = Field(default=0, ge=0)
    duration: int = Field(default=0, ge=0)
    latitude: int = Field(default=DEFAULT_LATITUDE, description="Degrees × 1e6")
    longitude: int = Field(default=DEFAULT_LONGITUDE, description="Degrees × 1e6")


class SubmitResponse(BaseModel):
    success: bool
    user: str
    session_index: int
    request_id: Optional[str] = None
    total_score: int
    timestamp: int


class SessionsResponse(BaseModel):
    user: str
    session_count: int
    sessions: list[WorkoutSession]


@router.post("/submit", response_model=SubmitResponse)
async def submit_workout(req: SubmitRequest):
    """Submit a workout session to the hub."""
    hub = config.get_deployment().hub
    timestamp = config.now()

    receipt = hub.submit_workout_session(
        Txn(sender=req.sender, timestamp=timestamp),
        req.reps,
        req.form_accuracy,
        req.streak,
        req.duration,
        req.latitude,
        req.longitude,
    )
    user = req.sender.lower()
    logger.info("Submitted session #%d for %s", receipt.session_index, user[:10])

    return SubmitResponse(
        success=True,
        user=user,
        session_index=receipt.session_index,
        request_id=receipt.request_id,
        total_score=hub.get_total_score(user).total_score,
        timestamp=timestamp,
    )


@router.get("/sessions/{user}", response_model=SessionsResponse)
async def get_sessions(user: str):
    sessions = config.get_deployment().hub.get_user_sessions(user)
    return SessionsResponse(user=user.lower(), session_count=len(sessions), sessions=sessions)
