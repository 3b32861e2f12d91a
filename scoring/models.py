"""
Imperfect Abs Scoring — Data Models
=====================================

Shared Pydantic models for workout submissions, cross-chain scores,
rewards and bridge bookkeeping.
These models define the protocol's data layer between all modules.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from scoring.rules import ZERO_ADDRESS, ChallengeRules


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────
class CrossChainSlot(str, Enum):
    POLYGON = "polygon"
    BASE = "base"
    CELO = "celo"
    MONAD = "monad"


class AnalysisStatus(str, Enum):
    SUBMITTED = "submitted"
    ANALYSIS_REQUESTED = "analysis-requested"
    ANALYSIS_COMPLETED = "analysis-completed"
    ANALYSIS_FAILED = "analysis-failed"


class CallErrorKind(str, Enum):
    REVERTED = "reverted"
    NOT_FOUND = "not-found"
    UNSUPPORTED = "unsupported"


class ChallengeType(IntEnum):
    REPS = 0
    DURATION = 1
    STREAK = 2
    ACCURACY = 3
    COMBO = 4


# ─────────────────────────────────────────────────────────────────────────────
# Transaction Context
# ─────────────────────────────────────────────────────────────────────────────
class Txn(BaseModel):
    """Caller, attached value (wei) and block timestamp of one call."""
    sender: str
    value: int = Field(default=0, ge=0)
    timestamp: int = Field(ge=0)


# ─────────────────────────────────────────────────────────────────────────────
# Local Ledger Models
# ─────────────────────────────────────────────────────────────────────────────
class LocalAbsScore(BaseModel):
    """Aggregated workout statistics for one address."""
    user: str
    total_reps: int = 0
    average_form_accuracy: int = 0
    best_streak: int = 0
    sessions_completed: int = 0
    timestamp: int = 0


class WorkoutSession(BaseModel):
    """Snapshot of one submission plus its asynchronous enhancement slot.

    ``reps`` through ``longitude`` never change after submission. The
    enhancement fields are written once, by the oracle callback.
    """
    reps: int
    form_accuracy: int
    streak: int
    duration: int
    timestamp: int
    latitude: int
    longitude: int
    status: AnalysisStatus = AnalysisStatus.SUBMITTED
    enhanced_score: int = 0
    analysis_complete: bool = False
    weather_conditions: str = ""
    temperature: int = 0
    weather_bonus: int = 0


class PendingRequest(BaseModel):
    """Links an outstanding oracle request back to its session."""
    user: str
    session_index: int
    requested_at: int


class SubmissionReceipt(BaseModel):
    session_index: int
    request_id: Optional[str] = None
    refund: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Cross-Chain Models
# ─────────────────────────────────────────────────────────────────────────────
class CrossChainFitnessData(BaseModel):
    """One score slot per remote chain. Slots are overwritten, never summed."""
    polygon_score: int = 0
    base_score: int = 0
    celo_score: int = 0
    monad_score: int = 0
    last_update: int = 0

    def get_slot(self, slot: CrossChainSlot) -> int:
        return getattr(self, f"{slot.value}_score")

    def set_slot(self, slot: CrossChainSlot, score: int) -> None:
        setattr(self, f"{slot.value}_score", score)

    def slot_values(self) -> list[int]:
        return [self.get_slot(slot) for slot in CrossChainSlot]


class CompositeScore(BaseModel):
    """Breakdown of the final ranking number."""
    base_local_score: int
    cross_chain_sum: int
    active_chains: int
    bonus_bps: int
    total_score: int


# ─────────────────────────────────────────────────────────────────────────────
# CCIP Message Models
# ─────────────────────────────────────────────────────────────────────────────
class EVM2AnyMessage(BaseModel):
    """Outbound CCIP message as built by the sender."""
    receiver: str
    data: bytes
    fee_token: str = ZERO_ADDRESS
    gas_limit: int = 0


class Any2EVMMessage(BaseModel):
    """Inbound CCIP message as delivered to the receiver."""
    message_id: str
    source_chain_selector: int
    sender: str
    data: bytes


# ─────────────────────────────────────────────────────────────────────────────
# Bridge Models
# ─────────────────────────────────────────────────────────────────────────────
class RemoteScore(BaseModel):
    """Score row of a remote fitness ledger."""
    user: str
    pushups: int = 0
    squats: int = 0
    timestamp: int = 0
    exists: bool = True

    @property
    def total(self) -> int:
        return self.pushups + self.squats


class CallResult(BaseModel):
    """Tagged outcome of an external call that degrades instead of failing."""
    ok: bool
    value: Any = None
    error_kind: Optional[CallErrorKind] = None
    error: Optional[str] = None


class BridgeNetworkConfig(BaseModel):
    router: str
    source_chain_selector: int
    destination_chain_selector: int
    destination_receiver: str
    fitness_contract: str
    is_active: bool = True


class UserBridgeInfo(BaseModel):
    last_score: int
    last_time: int
    current_score: int
    can_bridge: bool


class BridgeReceipt(BaseModel):
    message_id: str
    user: str
    score: int
    fee: int
    refund: int = 0


class BatchBridgeReceipt(BaseModel):
    message_ids: list[str] = []
    bridged_users: list[str] = []
    skipped_users: list[str] = []
    total_fees: int = 0
    refund: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Reward Models (leaderboard variant)
# ─────────────────────────────────────────────────────────────────────────────
class FeeConfig(BaseModel):
    submission_fee: int = Field(ge=0)
    owner_share: int = Field(ge=0, le=100)
    leaderboard_share: int = Field(ge=0, le=100)


class RewardConfig(BaseModel):
    distribution_period: int = Field(gt=0)
    top_performers_count: int = Field(gt=0)
    last_distribution: int = 0
    total_reward_pool: int = 0
    auto_distribution: bool = False


class RewardConfigView(RewardConfig):
    time_until_next_distribution: int = 0


class UserReward(BaseModel):
    total_earned: int = 0
    last_claimed: int = 0
    current_period_earned: int = 0
    rank: int = 0
    pending_amount: int = 0


class Payout(BaseModel):
    user: str
    rank: int
    amount: int


# ─────────────────────────────────────────────────────────────────────────────
# Daily Challenge & Automation Models
# ─────────────────────────────────────────────────────────────────────────────
class DailyChallenge(BaseModel):
    """One VRF-generated challenge; ``bonus_multiplier`` is in basis points."""
    challenge_type: ChallengeType
    target: int
    bonus_multiplier: int
    expires_at: int
    active: bool = False

    def is_met_by(self, session: WorkoutSession) -> bool:
        if self.challenge_type == ChallengeType.REPS:
            return session.reps >= self.target
        if self.challenge_type == ChallengeType.DURATION:
            return session.duration >= self.target
        if self.challenge_type == ChallengeType.STREAK:
            return session.streak >= self.target
        if self.challenge_type == ChallengeType.ACCURACY:
            return session.form_accuracy >= self.target
        return (
            session.reps >= self.target
            and session.form_accuracy >= ChallengeRules.COMBO_MIN_ACCURACY
        )

    def describe(self) -> str:
        if self.challenge_type == ChallengeType.REPS:
            return f"Complete {self.target} reps"
        if self.challenge_type == ChallengeType.DURATION:
            minutes, seconds = divmod(self.target, 60)
            return f"Workout for at least {minutes}:{seconds:02d}"
        if self.challenge_type == ChallengeType.STREAK:
            return f"Reach a {self.target} day streak"
        if self.challenge_type == ChallengeType.ACCURACY:
            return f"Achieve {self.target}% form accuracy"
        return f"Complete {self.target} reps with {ChallengeRules.COMBO_MIN_ACCURACY}%+ accuracy"

