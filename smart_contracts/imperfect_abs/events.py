"""
Imperfect Abs — Contract Events
=================================

Events emitted by the hub, the leaderboard contract and the bridges.

Ranking is not kept on-chain: every score change emits
``LeaderboardUpdated`` and off-chain indexers (see
``leaderboard_engine``) build the ordered view from those notifications.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel

logger = logging.getLogger("events")


class ContractEvent(BaseModel):
    contract: str
    timestamp: int


class WorkoutSubmitted(ContractEvent):
    user: str
    session_index: int
    reps: int
    form_accuracy: int
    streak: int


class LeaderboardUpdated(ContractEvent):
    """Score-changed notification for off-chain indexers."""
    user: str
    total_score: int
    sessions_completed: int


class AnalysisRequested(ContractEvent):
    request_id: str
    user: str
    session_index: int


class AnalysisCompleted(ContractEvent):
    request_id: str
    user: str
    session_index: int
    enhanced_score: int
    weather_conditions: str
    temperature: int
    weather_bonus: int


class AnalysisFailed(ContractEvent):
    request_id: str
    user: str
    session_index: int
    fallback_score: int
    error: str


class CrossChainScoreReceived(ContractEvent):
    message_id: str
    source_chain_selector: int
    user: str
    score: int


class DailyChallengeGenerated(ContractEvent):
    request_id: int
    challenge_type: int
    target: int
    bonus_multiplier: int
    expires_at: int


class ChallengeCompleted(ContractEvent):
    user: str
    session_index: int
    bonus_earned: int


class WeatherBonusesUpdated(ContractEvent):
    month: int
    seasonal_bonus_bps: int


class MessageSent(ContractEvent):
    message_id: str
    destination_chain_selector: int
    receiver: str
    user: str
    score: int
    fees: int


class RewardsDistributed(ContractEvent):
    total_distributed: int
    recipients: int
    trigger: str


class RewardClaimed(ContractEvent):
    user: str
    amount: int


E = TypeVar("E", bound=ContractEvent)


class EventLog:
    """Append-only event log with synchronous subscribers."""

    def __init__(self) -> None:
        self.entries: list[ContractEvent] = []
        self._subscribers: list[Callable[[ContractEvent], None]] = []

    def emit(self, event: ContractEvent) -> None:
        self.entries.append(event)
        logger.debug("%s %s", type(event).__name__, event.model_dump())
        for subscriber in self._subscribers:
            subscriber(event)

    def subscribe(self, callback: Callable[[ContractEvent], None]) -> None:
        self._subscribers.append(callback)

    def of_type(self, event_type: type[E], contract: Optional[str] = None) -> list[E]:
        return [
            e for e in self.entries
            if isinstance(e, event_type) and (contract is None or e.contract == contract)
        ]

    def last(self, event_type: type[E]) -> Optional[E]:
        matches = self.of_type(event_type)
        return matches[-1] if matches else None

    def __len__(self) -> int:
        return len(self.entries)
