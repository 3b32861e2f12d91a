"""
Imperfect Abs — FastAPI Backend
=================================

REST API over a local deployment of the Imperfect Abs contracts:
hub submissions and oracle analysis, cross-chain bridging, and the
fee & reward leaderboard.

Endpoints:
    POST /submit              — Submit a workout to the hub
    GET  /sessions/{user}     — Sessions and analysis status
    GET  /scores/{user}       — Composite score breakdown
    GET  /leaderboard         — Ranked leaderboard
    POST /oracle/...          — Functions DON simulation
    POST /bridge/{chain}/...  — CCIP bridge per remote chain
    POST /rewards/...         — Paid submissions, distribution, claims
    GET  /challenge/...       — VRF daily challenge, weather bonuses, hub upkeep

Run:
    uvicorn backend.main:app --reload --port 8000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import config
from backend.routers import bridge, challenge, leaderboard, oracle, rewards, submission
from smart_contracts.imperfect_abs.errors import ContractError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("backend")

# ─────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Imperfect Abs API",
    description="Cross-chain fitness leaderboard with oracle-enhanced scoring",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────────────
@app.exception_handler(ContractError)
async def contract_error_handler(request: Request, exc: ContractError) -> JSONResponse:
    logger.info("%s %s reverted: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ─────────────────────────────────────────────────────────────────────────────
# Routers
# ─────────────────────────────────────────────────────────────────────────────
app.include_router(submission.router)
app.include_router(leaderboard.router)
app.include_router(oracle.router)
app.include_router(bridge.router)
app.include_router(rewards.router)
app.include_router(challenge.router)


@app.get("/")
async def root():
    deployment = config.get_deployment()
    return {
        "name": "Imperfect Abs API",
        "version": "1.0.0",
        "hub": deployment.hub.address,
        "leaderboard": deployment.leaderboard.address,
        "chains": sorted(slot.value for slot in deployment.bridges),
    }
