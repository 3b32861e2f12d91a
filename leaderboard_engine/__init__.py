"""Leaderboard Engine — Package."""

from leaderboard_engine.engine import LeaderboardEngine, LeaderboardEntry

__all__ = ["LeaderboardEngine", "LeaderboardEntry"]
