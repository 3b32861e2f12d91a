"""
Backend Router — Oracle
=========================

GET  /oracle/pending              — Outstanding Functions requests
POST /oracle/fulfill              — Deliver a raw DON response / error
POST /oracle/run/{request_id}     — Run the weather job and deliver its result
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from backend import config
from smart_contracts.imperfect_abs.chainlink import FulfillmentResult, FunctionsCommitment

logger = logging.getLogger("backend.oracle")
router = APIRouter(prefix="/oracle", tags=["Oracle"])


class FulfillRequest(BaseModel):
    request_id: str
    response: str = Field(default="", description="UTF-8 response body")
    err: str = Field(default="", description="DON error message, empty on success")


@router.get("/pending", response_model=list[FunctionsCommitment])
async def pending_requests():
    return config.get_deployment().functions_router.pending_requests


@router.post("/fulfill", response_model=FulfillmentResult)
async def fulfill(req: FulfillRequest):
    """Deliver a response exactly as the DON would."""
    result = config.get_deployment().functions_router.fulfill(
        req.request_id,
        req.response.encode("utf-8"),
        req.err.encode("utf-8"),
        config.now(),
    )
    if result.callback_error:
        logger.warning("Callback for %s… reverted: %s", req.request_id[:12], result.callback_error)
    return result


@router.post("/run/{request_id}", response_model=FulfillmentResult)
async def run_analysis(request_id: str):
    """Execute the weather-enhanced scoring job for a pending request."""
    deployment = config.get_deployment()
    if deployment.functions_router.get_commitment(request_id) is None:
        raise HTTPException(status_code=404, detail=f"No pending request {request_id}")
    try:
        return await deployment.run_oracle(request_id, config.now())
    except Exception as exc:
        logger.error("Oracle run failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=502, detail=str(exc))
