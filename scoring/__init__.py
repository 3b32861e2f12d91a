"""Imperfect Abs Scoring — Package."""

from scoring.models import (
    CompositeScore,
    CrossChainFitnessData,
    CrossChainSlot,
    LocalAbsScore,
    Txn,
    WorkoutSession,
)

__all__ = [
    "CompositeScore",
    "CrossChainFitnessData",
    "CrossChainSlot",
    "LocalAbsScore",
    "Txn",
    "WorkoutSession",
]
