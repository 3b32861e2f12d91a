"""
Leaderboard Engine — Ranking Read Model
=========================================

Builds the ranked leaderboard off-chain from ``LeaderboardUpdated``
notifications. The contracts only keep an unordered registration list,
so ordering is computed here, at read time.

Capabilities:
    • Replay an existing event log, then follow it live
    • Latest score per user (each event carries the full total)
    • Top-N selection without sorting the whole board
    • Rank lookup for a single user
    • Tier label per entry
"""

from __future__ import annotations

import heapq
import logging
from typing import Optional

from pydantic import BaseModel

from scoring.rules import performance_label
from smart_contracts.imperfect_abs.events import ContractEvent, EventLog, LeaderboardUpdated

logger = logging.getLogger("leaderboard_engine")


class LeaderboardEntry(BaseModel):
    user: str
    total_score: int
    sessions_completed: int
    last_update: int
    tier: str
    previous_score: int = 0
    rank: int = 0

    @property
    def change(self) -> int:
        return self.total_score - self.previous_score


class LeaderboardEngine:
    """Indexes LeaderboardUpdated events of one contract (or of all)."""

    def __init__(self, contract: Optional[str] = None) -> None:
        self.contract = contract
        self._entries: dict[str, LeaderboardEntry] = {}
        self._first_seen: dict[str, int] = {}

    def attach(self, events: EventLog) -> None:
        """Replay what ``events`` already holds, then follow new emissions."""
        for event in events.of_type(LeaderboardUpdated, contract=self.contract):
            self.apply(event)
        events.subscribe(self.apply)

    def apply(self, event: ContractEvent) -> None:
        if not isinstance(event, LeaderboardUpdated):
            return
        if self.contract is not None and event.contract != self.contract:
            return

        previous = self._entries.get(event.user)
        if previous is None:
            self._first_seen[event.user] = len(self._first_seen)

        self._entries[event.user] = LeaderboardEntry(
            user=event.user,
            total_score=event.total_score,
            sessions_completed=event.sessions_completed,
            last_update=event.timestamp,
            tier=performance_label(event.total_score),
            previous_score=previous.total_score if previous else 0,
        )
        logger.debug("Indexed %s → %d", event.user[:10] + "…", event.total_score)

    def _sort_key(self, user: str) -> tuple[int, int]:
        # Higher score first, earlier registrant wins ties
        return (self._entries[user].total_score, -self._first_seen[user])

    def top_performers(self, n: int) -> list[LeaderboardEntry]:
        top = heapq.nlargest(n, self._entries, key=self._sort_key)
        return [
            self._entries[user].model_copy(update={"rank": rank})
            for rank, user in enumerate(top, start=1)
        ]

    def rank_of(self, user: str) -> Optional[int]:
        """1-based rank, or None if the user never appeared."""
        user = user.lower()
        if user not in self._entries:
            return None
        key = self._sort_key(user)
        return 1 + sum(1 for other in self._entries if self._sort_key(other) > key)

    def entry(self, user: str) -> Optional[LeaderboardEntry]:
        user = user.lower()
        found = self._entries.get(user)
        if found is None:
            return None
        return found.model_copy(update={"rank": self.rank_of(user)})

    def __len__(self) -> int:
        return len(self._entries)
