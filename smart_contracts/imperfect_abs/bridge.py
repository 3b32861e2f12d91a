"""
Imperfect Abs — Fitness CCIP Bridge
=====================================

Deployed on each remote chain. Reads a user's score from the local
fitness contract and forwards it to the hub over CCIP.

  • Remote reads try ``get_user_score_safe`` first and fall back to the
    legacy ``get_user_score``; if both revert the score is 0.
  • A user is bridged only when the bridge is active, the per-user
    cooldown has elapsed, the score reaches MIN_SCORE_THRESHOLD and the
    score is strictly greater than the last bridged one.
  • Batches are best-effort: ineligible users are skipped and the batch
    stops at the first fee it cannot afford. Unused value is refunded.
"""

from __future__ import annotations

import logging
from typing import Optional

from scoring.models import (
    BatchBridgeReceipt,
    BridgeNetworkConfig,
    BridgeReceipt,
    CallErrorKind,
    CallResult,
    EVM2AnyMessage,
    Txn,
    UserBridgeInfo,
)
from scoring.rules import (
    BRIDGE_COOLDOWN,
    CCIP_GAS_LIMIT,
    MAX_BATCH_SIZE,
    MIN_SCORE_THRESHOLD,
    ZERO_ADDRESS,
)
from smart_contracts.imperfect_abs.chainlink import (
    CCIPRouter,
    ExternalCallReverted,
    RemoteFitnessLedger,
    derive_address,
)
from smart_contracts.imperfect_abs.codec import encode_score_payload, is_address, normalize_address
from smart_contracts.imperfect_abs.errors import (
    BatchTooLarge,
    BridgeCooldownActive,
    BridgeInactive,
    ContractError,
    NoNewScore,
    NotEnoughBalance,
    ScoreBelowThreshold,
)
from smart_contracts.imperfect_abs.events import EventLog, MessageSent
from smart_contracts.imperfect_abs.state import BridgeState, non_reentrant, only_owner

logger = logging.getLogger("bridge")


class FitnessCCIPBridge:
    """Forwards remote-chain fitness scores to the Avalanche hub."""

    def __init__(
        self,
        owner: str,
        router: CCIPRouter,
        fitness_contract: RemoteFitnessLedger,
        destination_chain_selector: int,
        destination_receiver: str,
        events: Optional[EventLog] = None,
        address: Optional[str] = None,
    ) -> None:
        self.router = router
        self.fitness_contract = fitness_contract
        self.address = address or derive_address(f"fitness-bridge:{router.chain_selector}")
        self.events = events if events is not None else EventLog()
        self.state = BridgeState(
            owner=normalize_address(owner),
            network=BridgeNetworkConfig(
                router=router.address,
                source_chain_selector=router.chain_selector,
                destination_chain_selector=destination_chain_selector,
                destination_receiver=destination_receiver,
                fitness_contract=fitness_contract.address,
            ),
        )

    # ── Remote read ───────────────────────────────────────────────────
    def read_remote_score(self, user: str) -> CallResult:
        """Two-tier read of ``pushups + squats``.

        Fallback policy: a revert of the safe accessor falls through to
        the legacy accessor; a revert of both yields ``value=0``.
        """
        try:
            row = self.fitness_contract.get_user_score_safe(user)
            if not row.exists:
                return CallResult(ok=True, value=0, error_kind=CallErrorKind.NOT_FOUND)
            return CallResult(ok=True, value=row.total)
        except ExternalCallReverted as exc:
            logger.debug("getUserScoreSafe reverted for %s: %s", user[:10], exc)

        try:
            row = self.fitness_contract.get_user_score(user)
            return CallResult(ok=True, value=row.total, error_kind=CallErrorKind.UNSUPPORTED)
        except ExternalCallReverted as exc:
            logger.warning("Both score accessors reverted for %s: %s", user[:10], exc)
            return CallResult(ok=False, value=0, error_kind=CallErrorKind.REVERTED, error=str(exc))

    def get_current_score(self, user: str) -> int:
        return self.read_remote_score(user).value

    # ── Eligibility ───────────────────────────────────────────────────
    def _check_eligible(self, user: str, score: int, now: int) -> None:
        last_time = self.state.last_bridge_time.get(user)
        if last_time is not None and now < last_time + BRIDGE_COOLDOWN:
            raise BridgeCooldownActive(user, last_time + BRIDGE_COOLDOWN - now)
        if score < MIN_SCORE_THRESHOLD:
            raise ScoreBelowThreshold(score, MIN_SCORE_THRESHOLD)
        last_score = self.state.last_bridged_score.get(user, 0)
        if score <= last_score:
            raise NoNewScore(score, last_score)

    def _build_message(self, user: str, score: int, now: int) -> EVM2AnyMessage:
        return EVM2AnyMessage(
            receiver=self.state.network.destination_receiver,
            data=encode_score_payload(user, score, now),
            gas_limit=CCIP_GAS_LIMIT,
        )

    def _send(self, user: str, score: int, fee: int, message: EVM2AnyMessage, now: int) -> str:
        network = self.state.network
        message_id = self.router.ccip_send(
            Txn(sender=self.address, value=fee, timestamp=now),
            network.destination_chain_selector,
            message,
        )
        self.state.last_bridged_score[user] = score
        self.state.last_bridge_time[user] = now
        self.state.messages_sent += 1
        self.state.last_message_id = message_id

        self.events.emit(MessageSent(
            contract=self.address,
            timestamp=now,
            message_id=message_id,
            destination_chain_selector=network.destination_chain_selector,
            receiver=network.destination_receiver,
            user=user,
            score=score,
            fees=fee,
        ))
        logger.info("Bridged %s score %d — message %s… (fee %d)", user[:10] + "…", score, message_id[:12], fee)
        return message_id

    # ── Entrypoints ───────────────────────────────────────────────────
    def bridge_user_data(self, txn: Txn, user: str) -> BridgeReceipt:
        """Bridge one user's score. ``txn.value`` pays the CCIP fee."""
        with non_reentrant(self.state):
            if not self.state.network.is_active:
                raise BridgeInactive()
            user = normalize_address(user)
            now = txn.timestamp

            score = self.get_current_score(user)
            self._check_eligible(user, score, now)

            message = self._build_message(user, score, now)
            fee = self.router.get_fee(self.state.network.destination_chain_selector, message)
            if txn.value < fee:
                raise NotEnoughBalance(txn.value, fee)

            message_id = self._send(user, score, fee, message, now)
            return BridgeReceipt(
                message_id=message_id,
                user=user,
                score=score,
                fee=fee,
                refund=txn.value - fee,
            )

    def bridge_multiple_users(self, txn: Txn, users: list[str]) -> BatchBridgeReceipt:
        """Best-effort batch: bridges the affordable prefix of eligible users."""
        if len(users) > MAX_BATCH_SIZE:
            raise BatchTooLarge(MAX_BATCH_SIZE, len(users))

        with non_reentrant(self.state):
            if not self.state.network.is_active:
                raise BridgeInactive()
            now = txn.timestamp
            remaining = txn.value
            receipt = BatchBridgeReceipt()

            for raw_user in users:
                if not is_address(raw_user) or raw_user.lower() == ZERO_ADDRESS:
                    receipt.skipped_users.append(raw_user)
                    continue
                user = raw_user.lower()

                score = self.get_current_score(user)
                try:
                    self._check_eligible(user, score, now)
                except ContractError as exc:
                    logger.debug("Skipping %s in batch: %s", user[:10], exc.code)
                    receipt.skipped_users.append(user)
                    continue

                message = self._build_message(user, score, now)
                fee = self.router.get_fee(self.state.network.destination_chain_selector, message)
                if remaining < fee:
                    logger.info("Batch stopped at %s — %d wei left, fee %d", user[:10], remaining, fee)
                    break

                receipt.message_ids.append(self._send(user, score, fee, message, now))
                receipt.bridged_users.append(user)
                receipt.total_fees += fee
                remaining -= fee

            receipt.refund = remaining
            return receipt

    # ── Views ─────────────────────────────────────────────────────────
    def get_estimated_fee(self, user: str) -> int:
        user = normalize_address(user)
        message = self._build_message(user, self.get_current_score(user), 0)
        return self.router.get_fee(self.state.network.destination_chain_selector, message)

    def get_user_bridge_info(self, user: str, now: int) -> UserBridgeInfo:
        user = normalize_address(user)
        score = self.get_current_score(user)
        try:
            self._check_eligible(user, score, now)
            can_bridge = self.state.network.is_active
        except ContractError:
            can_bridge = False
        return UserBridgeInfo(
            last_score=self.state.last_bridged_score.get(user, 0),
            last_time=self.state.last_bridge_time.get(user, 0),
            current_score=score,
            can_bridge=can_bridge,
        )

    def get_network_config(self) -> BridgeNetworkConfig:
        return self.state.network.model_copy()

    # ── Owner ─────────────────────────────────────────────────────────
    def set_bridge_active(self, txn: Txn, active: bool) -> None:
        only_owner(self.state, txn.sender)
        self.state.network.is_active = active
        logger.info("Bridge %s %s", self.address[:10], "activated" if active else "paused")

    def update_destination(self, txn: Txn, chain_selector: int, receiver: str) -> None:
        only_owner(self.state, txn.sender)
        self.state.network.destination_chain_selector = chain_selector
        self.state.network.destination_receiver = receiver
