"""
Imperfect Abs — Contract Errors
=================================

One exception class per contract revert reason.

Every error carries a machine-readable ``code`` plus the diagnostic
values of the failed check in ``details`` (current vs. limit), so
callers can branch on it without parsing English messages.
"""

from __future__ import annotations

from typing import Any


class ContractError(Exception):
    """Base class for all contract reverts."""
    http_status: int = 400
    code: str = "CONTRACT_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# ─────────────────────────────────────────────────────────────────────────────
# Input validation
# ─────────────────────────────────────────────────────────────────────────────
class InvalidReps(ContractError):
    http_status = 422
    code = "INVALID_REPS"

    def __init__(self, reps: int, max_reps: int):
        super().__init__(
            message=f"Reps must be between 1 and {max_reps}. Received {reps}.",
            details={"reps": reps, "max_reps": max_reps},
        )


class InvalidAccuracy(ContractError):
    http_status = 422
    code = "INVALID_ACCURACY"

    def __init__(self, accuracy: int, max_accuracy: int):
        super().__init__(
            message=f"Form accuracy must be at most {max_accuracy}. Received {accuracy}.",
            details={"accuracy": accuracy, "max_accuracy": max_accuracy},
        )


class InvalidStreak(ContractError):
    http_status = 422
    code = "INVALID_STREAK"

    def __init__(self, streak: int):
        super().__init__(
            message=f"Streak must not be negative. Received {streak}.",
            details={"streak": streak, "min_streak": 0},
        )


class InvalidDuration(ContractError):
    http_status = 422
    code = "INVALID_DURATION"

    def __init__(self, duration: int):
        super().__init__(
            message=f"Duration must not be negative. Received {duration} seconds.",
            details={"duration": duration, "min_duration": 0},
        )


class SessionNotFound(ContractError):
    http_status = 404
    code = "SESSION_NOT_FOUND"

    def __init__(self, user: str, session_index: int, session_count: int):
        super().__init__(
            message=f"{user} has no session #{session_index} ({session_count} recorded).",
            details={"user": user, "session_index": session_index, "session_count": session_count},
        )


class InvalidUser(ContractError):
    http_status = 422
    code = "INVALID_USER"

    def __init__(self, user: str):
        super().__init__(
            message=f"Invalid user address: {user!r}.",
            details={"user": user},
        )


class BatchTooLarge(ContractError):
    http_status = 422
    code = "BATCH_TOO_LARGE"

    def __init__(self, max_items: int, received: int):
        super().__init__(
            message=f"Batch exceeds maximum size of {max_items} users. Received {received}.",
            details={"max_items": max_items, "received": received},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Rate limits
# ─────────────────────────────────────────────────────────────────────────────
class CooldownActive(ContractError):
    http_status = 429
    code = "COOLDOWN_ACTIVE"

    def __init__(self, remaining: int, cooldown: int):
        super().__init__(
            message=f"Cooldown active. Can submit again in {remaining} seconds.",
            details={"remaining": remaining, "cooldown": cooldown},
        )


class BridgeCooldownActive(ContractError):
    http_status = 429
    code = "BRIDGE_COOLDOWN_ACTIVE"

    def __init__(self, user: str, remaining: int):
        super().__init__(
            message=f"Bridge cooldown active for {user}. Retry in {remaining} seconds.",
            details={"user": user, "remaining": remaining},
        )


class DistributionNotDue(ContractError):
    http_status = 409
    code = "DISTRIBUTION_NOT_DUE"

    def __init__(self, remaining: int):
        super().__init__(
            message=f"Next reward distribution is due in {remaining} seconds.",
            details={"remaining": remaining},
        )


class UpkeepNotNeeded(ContractError):
    http_status = 409
    code = "UPKEEP_NOT_NEEDED"

    def __init__(self, weather_remaining: int, challenge_remaining: int):
        super().__init__(
            message=(
                f"No upkeep due: weather update in {weather_remaining} seconds, "
                f"challenge update in {challenge_remaining} seconds."
            ),
            details={"weather_remaining": weather_remaining, "challenge_remaining": challenge_remaining},
        )


class ChallengeUpdatePending(ContractError):
    http_status = 409
    code = "CHALLENGE_UPDATE_PENDING"

    def __init__(self, request_id: int):
        super().__init__(
            message=f"Randomness request {request_id} for the next challenge is still pending.",
            details={"request_id": request_id},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Authorization
# ─────────────────────────────────────────────────────────────────────────────
class NotOwner(ContractError):
    http_status = 403
    code = "NOT_OWNER"

    def __init__(self, caller: str):
        super().__init__(
            message=f"Only the owner can call this function (caller {caller}).",
            details={"caller": caller},
        )


class UnauthorizedChain(ContractError):
    http_status = 403
    code = "UNAUTHORIZED_CHAIN"

    def __init__(self, chain_selector: int):
        super().__init__(
            message=f"Source chain {chain_selector} is not allowlisted.",
            details={"chain_selector": chain_selector},
        )


class UnauthorizedSender(ContractError):
    http_status = 403
    code = "UNAUTHORIZED_SENDER"

    def __init__(self, chain_selector: int, sender: str):
        super().__init__(
            message=f"Sender {sender} is not allowlisted for chain {chain_selector}.",
            details={"chain_selector": chain_selector, "sender": sender},
        )


class InvalidRouter(ContractError):
    http_status = 403
    code = "INVALID_ROUTER"

    def __init__(self, caller: str):
        super().__init__(
            message=f"Caller {caller} is not the configured router.",
            details={"caller": caller},
        )


class InvalidCoordinator(ContractError):
    http_status = 403
    code = "INVALID_COORDINATOR"

    def __init__(self, caller: str, coordinator: str):
        super().__init__(
            message=f"Only the VRF coordinator {coordinator} can fulfill (caller {caller}).",
            details={"caller": caller, "coordinator": coordinator},
        )


class InvalidConfig(ContractError):
    http_status = 422
    code = "INVALID_CONFIG"

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(message=f"Invalid configuration: {reason}.", details=details)


class ReentrantCall(ContractError):
    http_status = 409
    code = "REENTRANT_CALL"

    def __init__(self):
        super().__init__(message="Reentrant call rejected.")


# ─────────────────────────────────────────────────────────────────────────────
# Oracle / parsing
# ─────────────────────────────────────────────────────────────────────────────
class InvalidFormat(ContractError):
    http_status = 422
    code = "INVALID_FORMAT"

    def __init__(self, value: str, reason: str):
        super().__init__(
            message=f"Cannot parse {value!r}: {reason}.",
            details={"value": value, "reason": reason},
        )


class InvalidJson(ContractError):
    http_status = 422
    code = "INVALID_JSON"

    def __init__(self, field: str, raw: str | None = None):
        super().__init__(
            message=f"Oracle response is missing or has a malformed '{field}' field.",
            details={"field": field, "raw": raw} if raw is not None else {"field": field},
        )


class InvalidPayload(ContractError):
    http_status = 422
    code = "INVALID_PAYLOAD"

    def __init__(self, expected: int, received: int):
        super().__init__(
            message=f"Payload must be {expected} bytes. Received {received}.",
            details={"expected": expected, "received": received},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Funds
# ─────────────────────────────────────────────────────────────────────────────
class NotEnoughBalance(ContractError):
    http_status = 402
    code = "NOT_ENOUGH_BALANCE"

    def __init__(self, current_balance: int, calculated_fees: int):
        super().__init__(
            message=f"Supplied {current_balance} wei, fee is {calculated_fees} wei.",
            details={"current_balance": current_balance, "calculated_fees": calculated_fees},
        )


class InsufficientFee(ContractError):
    http_status = 402
    code = "INSUFFICIENT_FEE"

    def __init__(self, sent: int, required: int):
        super().__init__(
            message=f"Submission fee is {required} wei. Received {sent}.",
            details={"sent": sent, "required": required},
        )


class NoRewardsToDistribute(ContractError):
    http_status = 409
    code = "NO_REWARDS_TO_DISTRIBUTE"

    def __init__(self, pool: int, participants: int):
        super().__init__(
            message="Reward pool is empty or there are no eligible participants.",
            details={"pool": pool, "participants": participants},
        )


class NoPendingRewards(ContractError):
    http_status = 409
    code = "NO_PENDING_REWARDS"

    def __init__(self, user: str):
        super().__init__(
            message=f"No pending rewards for {user}.",
            details={"user": user},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Bridge state
# ─────────────────────────────────────────────────────────────────────────────
class BridgeInactive(ContractError):
    http_status = 409
    code = "BRIDGE_INACTIVE"

    def __init__(self):
        super().__init__(message="Bridge is not active.")


class ScoreBelowThreshold(ContractError):
    http_status = 409
    code = "SCORE_BELOW_THRESHOLD"

    def __init__(self, score: int, threshold: int):
        super().__init__(
            message=f"Score {score} is below the bridge threshold of {threshold}.",
            details={"score": score, "threshold": threshold},
        )


class NoNewScore(ContractError):
    http_status = 409
    code = "NO_NEW_SCORE"

    def __init__(self, current_score: int, last_bridged_score: int):
        super().__init__(
            message=f"Score {current_score} is not above the last bridged score {last_bridged_score}.",
            details={"current_score": current_score, "last_bridged_score": last_bridged_score},
        )


class UnsupportedDestination(ContractError):
    http_status = 422
    code = "UNSUPPORTED_DESTINATION"

    def __init__(self, chain_selector: int):
        super().__init__(
            message=f"Destination chain {chain_selector} is not supported by the router.",
            details={"chain_selector": chain_selector},
        )
