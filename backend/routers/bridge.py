"""
Backend Router — Cross-Chain Bridge
======================================

POST /bridge/{chain}/remote-score   — Set a score on the chain's fitness ledger
POST /bridge/{chain}/user           — Bridge one user's score to the hub
POST /bridge/{chain}/batch          — Best-effort batch bridge
GET  /bridge/{chain}/info/{user}    — Bridge status of a user
GET  /bridge/{chain}/fee/{user}     — Fee quote for bridging a user
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from backend import config
from scoring.models import BatchBridgeReceipt, BridgeReceipt, Txn, UserBridgeInfo
from smart_contracts.imperfect_abs.bridge import FitnessCCIPBridge
from smart_contracts.imperfect_abs.codec import normalize_address

logger = logging.getLogger("backend.bridge")
router = APIRouter(prefix="/bridge", tags=["Bridge"])


class RemoteScoreRequest(BaseModel):
    user: str
    pushups: int = Field(default=0, ge=0)
    squats: int = Field(default=0, ge=0)


class BridgeUserRequest(BaseModel):
    sender: str
    user: str
    value: int = Field(..., ge=0, description="Wei attached to pay the CCIP fee")


class BridgeBatchRequest(BaseModel):
    sender: str
    users: list[str]
    value: int = Field(..., ge=0)


class FeeQuote(BaseModel):
    user: str
    fee: int


def _bridge(chain: str) -> FitnessCCIPBridge:
    try:
        return config.get_deployment().bridge_for(chain)
    except (KeyError, ValueError):
        raise HTTPException(status_code=404, detail=f"Unknown chain '{chain}'")


@router.post("/{chain}/remote-score")
async def set_remote_score(chain: str, req: RemoteScoreRequest):
    _bridge(chain)
    user = normalize_address(req.user)
    ledger = config.get_deployment().remote_ledger_for(chain)
    ledger.set_score(user, req.pushups, req.squats, config.now())
    return {"chain": chain.lower(), "user": user, "score": req.pushups + req.squats}


@router.post("/{chain}/user", response_model=BridgeReceipt)
async def bridge_user(chain: str, req: BridgeUserRequest):
    bridge = _bridge(chain)
    return bridge.bridge_user_data(
        Txn(sender=req.sender, value=req.value, timestamp=config.now()), req.user
    )


@router.post("/{chain}/batch", response_model=BatchBridgeReceipt)
async def bridge_batch(chain: str, req: BridgeBatchRequest):
    bridge = _bridge(chain)
    receipt = bridge.bridge_multiple_users(
        Txn(sender=req.sender, value=req.value, timestamp=config.now()), req.users
    )
    logger.info(
        "Batch on %s: %d bridged, %d skipped", chain, len(receipt.bridged_users), len(receipt.skipped_users)
    )
    return receipt


@router.get("/{chain}/info/{user}", response_model=UserBridgeInfo)
async def bridge_info(chain: str, user: str):
    return _bridge(chain).get_user_bridge_info(user, config.now())


@router.get("/{chain}/fee/{user}", response_model=FeeQuote)
async def fee_quote(chain: str, user: str):
    return FeeQuote(user=user.lower(), fee=_bridge(chain).get_estimated_fee(user))

