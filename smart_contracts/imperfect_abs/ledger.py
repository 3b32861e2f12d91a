"""
Imperfect Abs — Local Score Ledger
====================================

Per-address workout aggregates and session history.

Both the hub and the leaderboard contract delegate to these handlers.
Every check runs before the first write, so a rejected submission leaves
the ledger untouched.
"""

from __future__ import annotations

import logging

from scoring.models import LocalAbsScore, WorkoutSession
from scoring.rules import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    MAX_FORM_ACCURACY,
    MAX_REPS_PER_SESSION,
    SUBMISSION_COOLDOWN,
)
from smart_contracts.imperfect_abs.codec import normalize_address
from smart_contracts.imperfect_abs.errors import (
    CooldownActive,
    InvalidAccuracy,
    InvalidDuration,
    InvalidReps,
    InvalidStreak,
)
from smart_contracts.imperfect_abs.state import LedgerState

logger = logging.getLogger("ledger")


def time_until_next_submission(state: LedgerState, user: str, now: int) -> int:
    next_allowed = state.last_submission_time.get(user, 0) + SUBMISSION_COOLDOWN
    return max(0, next_allowed - now)


def validate_submission(
    state: LedgerState,
    user: str,
    reps: int,
    form_accuracy: int,
    now: int,
    streak: int = 0,
    duration: int = 0,
) -> None:
    if reps <= 0 or reps > MAX_REPS_PER_SESSION:
        raise InvalidReps(reps, MAX_REPS_PER_SESSION)
    if form_accuracy < 0 or form_accuracy > MAX_FORM_ACCURACY:
        raise InvalidAccuracy(form_accuracy, MAX_FORM_ACCURACY)
    if streak < 0:
        raise InvalidStreak(streak)
    if duration < 0:
        raise InvalidDuration(duration)
    remaining = time_until_next_submission(state, user, now)
    if remaining > 0:
        raise CooldownActive(remaining, SUBMISSION_COOLDOWN)


def record_submission(
    state: LedgerState,
    user: str,
    reps: int,
    form_accuracy: int,
    streak: int,
    duration: int,
    now: int,
    latitude: int = DEFAULT_LATITUDE,
    longitude: int = DEFAULT_LONGITUDE,
) -> int:
    """Validate and record one workout. Returns the new session index."""
    user = normalize_address(user)
    validate_submission(state, user, reps, form_accuracy, now, streak=streak, duration=duration)

    sessions = state.sessions.setdefault(user, [])
    sessions.append(WorkoutSession(
        reps=reps,
        form_accuracy=form_accuracy,
        streak=streak,
        duration=duration,
        timestamp=now,
        latitude=latitude,
        longitude=longitude,
    ))

    score = state.scores.get(user)
    if score is None:
        state.scores[user] = LocalAbsScore(
            user=user,
            total_reps=reps,
            average_form_accuracy=form_accuracy,
            best_streak=streak,
            sessions_completed=1,
            timestamp=now,
        )
    else:
        count = score.sessions_completed
        score.average_form_accuracy = (
            score.average_form_accuracy * count + form_accuracy
        ) // (count + 1)
        score.total_reps += reps
        score.best_streak = max(score.best_streak, streak)
        score.sessions_completed = count + 1
        score.timestamp = now

    state.last_submission_time[user] = now
    logger.info(
        "Workout recorded for %s: %d reps @ %d%% — session #%d",
        user[:10] + "…", reps, form_accuracy, len(sessions) - 1,
    )
    return len(sessions) - 1


def register_on_leaderboard(state: LedgerState, user: str) -> bool:
    """Append ``user`` once; positions are never reassigned."""
    if user in state.user_index:
        return False
    state.leaderboard.append(user)
    state.user_index[user] = len(state.leaderboard)
    return True


def get_user_abs_score_safe(state: LedgerState, user: str) -> tuple[LocalAbsScore, bool]:
    score = state.scores.get(user.lower())
    if score is None:
        return LocalAbsScore(user=user.lower()), False
    return score, True


def get_user_sessions(state: LedgerState, user: str) -> list[WorkoutSession]:
    return list(state.sessions.get(user.lower(), []))
