"""
Backend — Shared Configuration
================================

Environment settings and the shared local deployment used by every
router.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from leaderboard_engine.engine import LeaderboardEngine
from scoring.models import CrossChainSlot, FeeConfig, RewardConfig
from scoring.rules import (
    DISTRIBUTION_PERIOD,
    FUNCTIONS_GAS_LIMIT,
    LEADERBOARD_SHARE,
    OWNER_SHARE,
    SUBMISSION_FEE,
    TOP_PERFORMERS_COUNT,
    ChainSelectors,
)
from smart_contracts.imperfect_abs.deploy_config import LocalDeployment, deploy

logger = logging.getLogger("backend.config")

# ─────────────────────────────────────────────────────────────────────────────
# Load .env
# ─────────────────────────────────────────────────────────────────────────────
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────
OWNER_ADDRESS = os.getenv("OWNER_ADDRESS", "0x" + "0" * 39 + "1")
WEATHERXM_API_KEY = os.getenv("WEATHERXM_API_KEY") or None

SUBMISSION_FEE_WEI = int(os.getenv("SUBMISSION_FEE_WEI", str(SUBMISSION_FEE)))
OWNER_SHARE_PCT = int(os.getenv("OWNER_SHARE_PCT", str(OWNER_SHARE)))
LEADERBOARD_SHARE_PCT = int(os.getenv("LEADERBOARD_SHARE_PCT", str(LEADERBOARD_SHARE)))
REWARD_PERIOD_SECONDS = int(os.getenv("REWARD_PERIOD_SECONDS", str(DISTRIBUTION_PERIOD)))
TOP_PERFORMERS = int(os.getenv("TOP_PERFORMERS", str(TOP_PERFORMERS_COUNT)))
AUTO_DISTRIBUTION = os.getenv("AUTO_DISTRIBUTION", "false").lower() in ("1", "true", "yes")
FUNCTIONS_GAS = int(os.getenv("FUNCTIONS_GAS_LIMIT", str(FUNCTIONS_GAS_LIMIT)))

# The Monad selector has changed between testnet releases
MONAD_CHAIN_SELECTOR = int(os.getenv("MONAD_CHAIN_SELECTOR", str(ChainSelectors.MONAD_TESTNET)))

# ─────────────────────────────────────────────────────────────────────────────
# Shared deployment (singleton)
# ─────────────────────────────────────────────────────────────────────────────
_deployment: Optional[LocalDeployment] = None
_leaderboard_index: Optional[LeaderboardEngine] = None


def now() -> int:
    return int(time.time())


def get_deployment() -> LocalDeployment:
    """Lazy-init the local deployment."""
    global _deployment, _leaderboard_index

    if _deployment is None:
        _deployment = deploy(
            OWNER_ADDRESS,
            deployed_at=now(),
            fee_config=FeeConfig(
                submission_fee=SUBMISSION_FEE_WEI,
                owner_share=OWNER_SHARE_PCT,
                leaderboard_share=LEADERBOARD_SHARE_PCT,
            ),
            reward_config=RewardConfig(
                distribution_period=REWARD_PERIOD_SECONDS,
                top_performers_count=TOP_PERFORMERS,
                last_distribution=now(),
                auto_distribution=AUTO_DISTRIBUTION,
            ),
            remote_chains={
                CrossChainSlot.POLYGON: ChainSelectors.POLYGON,
                CrossChainSlot.BASE: ChainSelectors.BASE,
                CrossChainSlot.CELO: ChainSelectors.CELO,
                CrossChainSlot.MONAD: MONAD_CHAIN_SELECTOR,
            },
            weatherxm_api_key=WEATHERXM_API_KEY,
            functions_gas_limit=FUNCTIONS_GAS,
        )
        _leaderboard_index = LeaderboardEngine(contract=_deployment.hub.address)
        _leaderboard_index.attach(_deployment.events)
        logger.info("Local deployment initialized — owner: %s", _deployment.owner)

    return _deployment


def get_leaderboard_index() -> LeaderboardEngine:
    get_deployment()
    return _leaderboard_index  # type: ignore[return-value]


def reset_deployment() -> None:
    """Drop the shared deployment; the next access deploys afresh."""
    global _deployment, _leaderboard_index
    _deployment = None
    _leaderboard_index = None
