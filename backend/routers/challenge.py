"""
Backend Router — Daily Challenge & Hub Automation
====================================================

GET  /challenge                  — Current daily challenge
POST /challenge/request          — Owner request for a new challenge (VRF)
POST /challenge/fulfill          — Deliver random words as the VRF coordinator
GET  /challenge/user/{user}      — Completion and bonus of a user
GET  /challenge/weather          — Seasonal and regional weather bonuses
POST /challenge/upkeep           — Hub automation check + perform
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from backend import config
from scoring.models import ChallengeType, Txn
from scoring.rules import REGIONAL_BONUS_BPS
from smart_contracts.imperfect_abs.chainlink import RandomWordsResult
from smart_contracts.imperfect_abs.codec import decode_upkeep_flags

logger = logging.getLogger("backend.challenge")
router = APIRouter(prefix="/challenge", tags=["Challenge"])


class ChallengeResponse(BaseModel):
    challenge_type: ChallengeType
    target: int
    bonus_multiplier: int
    expires_at: int
    active: bool
    description: str


class CallerRequest(BaseModel):
    sender: str


class ChallengeRequestResponse(BaseModel):
    request_id: int


class VRFFulfillRequest(BaseModel):
    request_id: int
    random_words: Optional[list[int]] = None


class UserChallengeResponse(BaseModel):
    user: str
    completed: bool
    bonus_earned: int


class WeatherBonusResponse(BaseModel):
    seasonal_bonus_bps: int
    last_update: int
    regional_bonus_bps: dict[str, int]


class HubUpkeepResponse(BaseModel):
    weather_update_needed: bool
    challenge_update_needed: bool
    weather_updated: bool = False
    challenge_requested: bool = False


@router.get("", response_model=ChallengeResponse)
async def current_challenge():
    challenge = config.get_deployment().hub.get_current_challenge(config.now())
    return ChallengeResponse(**challenge.model_dump(), description=challenge.describe())


@router.post("/request", response_model=ChallengeRequestResponse)
async def request_challenge(req: CallerRequest):
    hub = config.get_deployment().hub
    request_id = hub.manual_challenge_update(Txn(sender=req.sender, timestamp=config.now()))
    return ChallengeRequestResponse(request_id=request_id)


@router.post("/fulfill", response_model=RandomWordsResult)
async def fulfill(req: VRFFulfillRequest):
    result = config.get_deployment().run_vrf(req.request_id, config.now(), req.random_words)
    if result.callback_error:
        logger.warning("VRF callback for %d reverted: %s", req.request_id, result.callback_error)
    return result


@router.get("/user/{user}", response_model=UserChallengeResponse)
async def user_challenge(user: str):
    hub = config.get_deployment().hub
    return UserChallengeResponse(
        user=user.lower(),
        completed=hub.has_completed_challenge(user),
        bonus_earned=hub.get_challenge_bonus(user),
    )


@router.get("/weather", response_model=WeatherBonusResponse)
async def weather_bonuses():
    hub = config.get_deployment().hub
    return WeatherBonusResponse(
        seasonal_bonus_bps=hub.get_seasonal_bonus(),
        last_update=hub.state.last_weather_update,
        regional_bonus_bps={region: hub.get_regional_bonus(region) for region in REGIONAL_BONUS_BPS},
    )


@router.post("/upkeep", response_model=HubUpkeepResponse)
async def upkeep(req: CallerRequest):
    hub = config.get_deployment().hub
    now = config.now()
    needed, data = hub.check_upkeep(now)
    weather_needed, challenge_needed = decode_upkeep_flags(data)
    response = HubUpkeepResponse(
        weather_update_needed=weather_needed, challenge_update_needed=challenge_needed
    )
    if needed:
        response.weather_updated, response.challenge_requested = hub.perform_upkeep(
            Txn(sender=req.sender, timestamp=now), data
        )
    return response
