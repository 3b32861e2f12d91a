"""
Imperfect Abs — Contract State
================================

Explicit storage structs for each contract. Handlers receive the state
object they mutate; nothing lives in module globals.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from pydantic import BaseModel, Field

from scoring.models import (
    BridgeNetworkConfig,
    CrossChainFitnessData,
    CrossChainSlot,
    DailyChallenge,
    FeeConfig,
    LocalAbsScore,
    PendingRequest,
    RewardConfig,
    UserReward,
    WorkoutSession,
)
from smart_contracts.imperfect_abs.errors import NotOwner, ReentrantCall


class OwnedState(BaseModel):
    owner: str
    # Reentrancy flag shared by every guarded entrypoint of one contract
    locked: bool = False


class LedgerState(OwnedState):
    """Local score ledger shared by the hub and the leaderboard contract."""
    scores: dict[str, LocalAbsScore] = Field(default_factory=dict)
    sessions: dict[str, list[WorkoutSession]] = Field(default_factory=dict)
    last_submission_time: dict[str, int] = Field(default_factory=dict)
    leaderboard: list[str] = Field(default_factory=list)
    user_index: dict[str, int] = Field(default_factory=dict)   # 1-based


class HubState(LedgerState):
    cross_chain: dict[str, CrossChainFitnessData] = Field(default_factory=dict)
    chain_slots: dict[int, CrossChainSlot] = Field(default_factory=dict)
    allowed_senders: dict[int, str] = Field(default_factory=dict)
    pending_requests: dict[str, PendingRequest] = Field(default_factory=dict)
    functions_source: str = ""
    subscription_id: int = 0
    gas_limit: int = 0

    # Daily challenge (VRF) and automation
    current_challenge: Optional[DailyChallenge] = None
    challenge_request_id: Optional[int] = None
    challenge_requested_at: int = 0
    challenge_completed: set[str] = Field(default_factory=set)
    challenge_bonus_earned: dict[str, int] = Field(default_factory=dict)
    vrf_subscription_id: int = 0
    vrf_key_hash: str = ""
    last_challenge_update: int = 0
    last_weather_update: int = 0
    seasonal_bonus_bps: int = 0
    regional_bonus_bps: dict[str, int] = Field(default_factory=dict)


class LeaderboardState(LedgerState):
    fee_config: FeeConfig
    reward_config: RewardConfig
    user_rewards: dict[str, UserReward] = Field(default_factory=dict)
    owner_balance: int = 0


class BridgeState(OwnedState):
    network: BridgeNetworkConfig
    last_bridged_score: dict[str, int] = Field(default_factory=dict)
    last_bridge_time: dict[str, int] = Field(default_factory=dict)
    messages_sent: int = 0
    last_message_id: Optional[str] = None


def only_owner(state: OwnedState, caller: str) -> None:
    if caller.lower() != state.owner.lower():
        raise NotOwner(caller)


@contextmanager
def non_reentrant(state: OwnedState) -> Iterator[None]:
    if state.locked:
        raise ReentrantCall()
    state.locked = True
    try:
        yield
    finally:
        state.locked = False
