"""
Imperfect Abs — Hub Contract
==============================

Central leaderboard on Avalanche: local workout submissions, oracle
enhancement and cross-chain score slots.

Session lifecycle:
    Submitted → AnalysisRequested → AnalysisCompleted | AnalysisFailed

  • A submission is validated and recorded first; the oracle request is
    sent afterwards and may never be answered. Such a session simply
    keeps ``analysis_complete = False``.
  • Oracle request ids are single-use. A callback for an unknown or
    already consumed id is ignored.
  • A malformed oracle response reverts the callback only; the original
    submission is never affected.
  • Each remote chain owns one score slot per user. An inbound CCIP
    message overwrites that slot (last delivery wins, no sequence
    numbers). To accumulate instead, ``apply_cross_chain_update`` would
    have to add to the slot rather than replace it.
  • The daily challenge is derived from one VRF word and lasts 24 h. A
    user completes it at most once; the bonus earned is tallied on its
    own and does not enter the composite score.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from scoring.engine import ScoringEngine, calculate_base_score
from scoring.models import (
    AnalysisStatus,
    Any2EVMMessage,
    ChallengeType,
    CompositeScore,
    CrossChainFitnessData,
    CrossChainSlot,
    DailyChallenge,
    LocalAbsScore,
    PendingRequest,
    SubmissionReceipt,
    Txn,
    WorkoutSession,
)
from scoring.rules import (
    CHALLENGE_DURATION,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    FUNCTIONS_GAS_LIMIT,
    REGIONAL_BONUS_BPS,
    VRF_KEY_HASH,
    VRF_REQUEST_TIMEOUT,
    WEATHER_ANALYSIS_JOB,
    WEATHER_UPDATE_INTERVAL,
    ChallengeRules,
    ScoreWeights,
    seasonal_bonus_bps,
)
from smart_contracts.imperfect_abs import ledger
from smart_contracts.imperfect_abs.chainlink import (
    FunctionsRequestError,
    FunctionsRouter,
    VRFCoordinator,
    VRFRequestError,
    derive_address,
)
from smart_contracts.imperfect_abs.codec import (
    decode_score_payload,
    decode_upkeep_flags,
    encode_upkeep_flags,
    normalize_address,
)
from smart_contracts.imperfect_abs.errors import (
    ChallengeUpdatePending,
    InvalidCoordinator,
    InvalidFormat,
    InvalidJson,
    InvalidRouter,
    SessionNotFound,
    UnauthorizedChain,
    UnauthorizedSender,
    UpkeepNotNeeded,
)
from smart_contracts.imperfect_abs.events import (
    AnalysisCompleted,
    AnalysisFailed,
    AnalysisRequested,
    ChallengeCompleted,
    CrossChainScoreReceived,
    DailyChallengeGenerated,
    EventLog,
    LeaderboardUpdated,
    WeatherBonusesUpdated,
    WorkoutSubmitted,
)
from smart_contracts.imperfect_abs.state import HubState, only_owner
from smart_contracts.imperfect_abs.strings import (
    extract_json_value,
    format_coordinate,
    parse_int,
    parse_uint,
)

logger = logging.getLogger("hub")


# ─────────────────────────────────────────────────────────────────────────────
# Oracle response parsing
# ─────────────────────────────────────────────────────────────────────────────
class AnalysisResult(BaseModel):
    conditions: str
    temperature: int
    weather_bonus: int
    score: int


def parse_analysis_response(response: bytes) -> AnalysisResult:
    """Parse ``{"conditions","temperature","weatherBonus","score"}``.

    Raises InvalidJson naming the first missing or malformed field.
    """
    try:
        text = response.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidJson("response", response.hex())

    conditions = extract_json_value(text, "conditions")
    if not conditions:
        raise InvalidJson("conditions", text)

    numbers: dict[str, int] = {}
    for field, parser in (
        ("temperature", parse_int),
        ("weatherBonus", parse_uint),
        ("score", parse_uint),
    ):
        raw = extract_json_value(text, field)
        try:
            numbers[field] = parser(raw)
        except InvalidFormat:
            raise InvalidJson(field, text)

    return AnalysisResult(
        conditions=conditions,
        temperature=numbers["temperature"],
        weather_bonus=numbers["weatherBonus"],
        score=numbers["score"],
    )


# ─────────────────────────────────────────────────────────────────────────────
# Daily challenge generation
# ─────────────────────────────────────────────────────────────────────────────
def generate_challenge(random_word: int, now: int) -> DailyChallenge:
    """Derive type, target and bonus from independent bit ranges of one word."""
    challenge_type = ChallengeType((random_word & 0xFF) % ChallengeRules.TYPE_COUNT)
    low, high = ChallengeRules.TARGET_RANGES[challenge_type]
    target = low + ((random_word >> ChallengeRules.TARGET_SHIFT) & 0xFFFF) % (high - low + 1)

    bonus_steps = (ChallengeRules.MAX_BONUS_BPS - ChallengeRules.MIN_BONUS_BPS) // ChallengeRules.BONUS_STEP_BPS + 1
    bonus_bits = (random_word >> ChallengeRules.BONUS_SHIFT) & 0xFF
    bonus = ChallengeRules.MIN_BONUS_BPS + (bonus_bits % bonus_steps) * ChallengeRules.BONUS_STEP_BPS

    return DailyChallenge(
        challenge_type=challenge_type,
        target=target,
        bonus_multiplier=bonus,
        expires_at=now + CHALLENGE_DURATION,
        active=True,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Contract
# ─────────────────────────────────────────────────────────────────────────────
class ImperfectAbsHub:
    """Hub contract: local ledger, oracle consumer and CCIP receiver.

    Entrypoints
    -----------
    submit_workout_session(txn, reps, form_accuracy, streak, duration, lat, lon)
        Record a workout and request its weather-enhanced analysis.
    handle_oracle_fulfillment(txn, request_id, response, err)
        Functions router callback.
    ccip_receive(txn, message)
        CCIP router delivery of a remote chain score.
    raw_fulfill_random_words(txn, request_id, random_words)
        VRF coordinator callback; turns one random word into the daily challenge.
    check_upkeep(now) / perform_upkeep(txn, perform_data)
        Automation: 6-hourly weather bonus refresh and the daily challenge request.
    get_total_score(user) → CompositeScore
        Local + cross-chain score with multi-chain bonus.
    """

    def __init__(
        self,
        owner: str,
        functions_router: FunctionsRouter,
        ccip_router_address: str,
        subscription_id: int = 0,
        gas_limit: int = FUNCTIONS_GAS_LIMIT,
        source: str = WEATHER_ANALYSIS_JOB,
        events: Optional[EventLog] = None,
        address: Optional[str] = None,
        vrf_coordinator: Optional[VRFCoordinator] = None,
        vrf_subscription_id: int = 0,
        vrf_key_hash: str = VRF_KEY_HASH,
    ) -> None:
        self.address = address or derive_address("imperfect-abs-hub")
        self.functions_router = functions_router
        self.vrf_coordinator = vrf_coordinator
        self.ccip_router_address = ccip_router_address
        self.events = events if events is not None else EventLog()
        self.engine = ScoringEngine()
        self.state = HubState(
            owner=normalize_address(owner),
            functions_source=source,
            subscription_id=subscription_id,
            gas_limit=gas_limit,
            vrf_subscription_id=vrf_subscription_id,
            vrf_key_hash=vrf_key_hash,
            regional_bonus_bps=dict(REGIONAL_BONUS_BPS),
        )

    # ── Submission ────────────────────────────────────────────────────
    def submit_workout_session(
        self,
        txn: Txn,
        reps: int,
        form_accuracy: int,
        streak: int,
        duration: int,
        latitude: int = DEFAULT_LATITUDE,
        longitude: int = DEFAULT_LONGITUDE,
    ) -> SubmissionReceipt:
        """Record a workout for ``txn.sender`` and request its analysis."""
        user = normalize_address(txn.sender)
        now = txn.timestamp

        session_index = ledger.record_submission(
            self.state, user, reps, form_accuracy, streak, duration, now,
            latitude=latitude, longitude=longitude,
        )
        ledger.register_on_leaderboard(self.state, user)

        self.events.emit(WorkoutSubmitted(
            contract=self.address,
            timestamp=now,
            user=user,
            session_index=session_index,
            reps=reps,
            form_accuracy=form_accuracy,
            streak=streak,
        ))
        self._emit_leaderboard_update(user, now)
        self._check_challenge(user, session_index, now)

        request_id = self._request_analysis(user, session_index, now)
        return SubmissionReceipt(session_index=session_index, request_id=request_id)

    def request_analysis(self, txn: Txn, user: str, session_index: int) -> Optional[str]:
        """Owner-triggered re-request for a session still lacking analysis."""
        only_owner(self.state, txn.sender)
        user = normalize_address(user)
        sessions = self.state.sessions.get(user, [])
        if not 0 <= session_index < len(sessions):
            raise SessionNotFound(user, session_index, len(sessions))
        if sessions[session_index].analysis_complete:
            logger.info("Session %s#%d already analysed", user[:10], session_index)
            return None

        # Requests whose callback reverted are never redelivered by the router
        stale = [
            request_id for request_id, pending in self.state.pending_requests.items()
            if pending.user == user and pending.session_index == session_index
        ]
        for request_id in stale:
            del self.state.pending_requests[request_id]
        if stale:
            logger.info("Dropped %d stale request(s) for %s#%d", len(stale), user[:10], session_index)
        return self._request_analysis(user, session_index, txn.timestamp)

    def _request_analysis(self, user: str, session_index: int, now: int) -> Optional[str]:
        session = self.state.sessions[user][session_index]
        args = [
            str(session.reps),
            str(session.form_accuracy),
            str(session.duration),
            format_coordinate(session.latitude),
            format_coordinate(session.longitude),
        ]
        try:
            request_id = self.functions_router.send_request(
                Txn(sender=self.address, timestamp=now),
                self.state.functions_source,
                args,
                self.state.subscription_id,
                self.state.gas_limit,
            )
        except FunctionsRequestError as exc:
            # Fallback: the session keeps its base score until re-requested.
            logger.warning("Analysis request for %s#%d not sent: %s", user[:10], session_index, exc.message)
            return None

        self.state.pending_requests[request_id] = PendingRequest(
            user=user, session_index=session_index, requested_at=now
        )
        session.status = AnalysisStatus.ANALYSIS_REQUESTED
        self.events.emit(AnalysisRequested(
            contract=self.address,
            timestamp=now,
            request_id=request_id,
            user=user,
            session_index=session_index,
        ))
        return request_id

    # ── Oracle callback ───────────────────────────────────────────────
    def handle_oracle_fulfillment(
        self, txn: Txn, request_id: str, response: bytes, err: bytes
    ) -> None:
        if txn.sender != self.functions_router.address:
            raise InvalidRouter(txn.sender)
        self.fulfill_request(request_id, response, err, txn.timestamp)

    def fulfill_request(self, request_id: str, response: bytes, err: bytes, now: int) -> None:
        pending = self.state.pending_requests.get(request_id)
        if pending is None:
            logger.debug("Ignoring fulfillment for unknown request %s…", request_id[:12])
            return

        session = self.state.sessions[pending.user][pending.session_index]
        if session.analysis_complete:
            del self.state.pending_requests[request_id]
            logger.info("Session %s#%d already analysed — result dropped", pending.user[:10], pending.session_index)
            return

        if err:
            fallback = calculate_base_score(session.reps, session.form_accuracy, session.streak)
            session.enhanced_score = fallback
            session.analysis_complete = True
            session.status = AnalysisStatus.ANALYSIS_FAILED
            del self.state.pending_requests[request_id]
            self.events.emit(AnalysisFailed(
                contract=self.address,
                timestamp=now,
                request_id=request_id,
                user=pending.user,
                session_index=pending.session_index,
                fallback_score=fallback,
                error=err.decode("utf-8", errors="replace"),
            ))
            logger.info("Analysis failed for %s#%d — fallback score %d", pending.user[:10], pending.session_index, fallback)
            return

        result = parse_analysis_response(response)

        self._apply_analysis(session, result)
        del self.state.pending_requests[request_id]
        self.events.emit(AnalysisCompleted(
            contract=self.address,
            timestamp=now,
            request_id=request_id,
            user=pending.user,
            session_index=pending.session_index,
            enhanced_score=result.score,
            weather_conditions=result.conditions,
            temperature=result.temperature,
            weather_bonus=result.weather_bonus,
        ))
        self._emit_leaderboard_update(pending.user, now)
        logger.info(
            "Analysis for %s#%d: score %d (%s, %d°F, +%d%%)",
            pending.user[:10], pending.session_index, result.score,
            result.conditions, result.temperature, result.weather_bonus,
        )

    @staticmethod
    def _apply_analysis(session: WorkoutSession, result: AnalysisResult) -> None:
        session.enhanced_score = result.score
        session.weather_conditions = result.conditions
        session.temperature = result.temperature
        session.weather_bonus = result.weather_bonus
        session.analysis_complete = True
        session.status = AnalysisStatus.ANALYSIS_COMPLETED

    # ── Cross-chain ───────────────────────────────────────────────────
    def ccip_receive(self, txn: Txn, message: Any2EVMMessage) -> None:
        if txn.sender != self.ccip_router_address:
            raise InvalidRouter(txn.sender)

        selector = message.source_chain_selector
        if selector not in self.state.chain_slots:
            raise UnauthorizedChain(selector)
        allowed_sender = self.state.allowed_senders.get(selector)
        if allowed_sender and message.sender.lower() != allowed_sender:
            raise UnauthorizedSender(selector, message.sender)

        user, score, _ = decode_score_payload(message.data)
        self.apply_cross_chain_update(user, score, selector, txn.timestamp)
        self.events.emit(CrossChainScoreReceived(
            contract=self.address,
            timestamp=txn.timestamp,
            message_id=message.message_id,
            source_chain_selector=selector,
            user=user,
            score=score,
        ))

    def apply_cross_chain_update(
        self, user: str, score: int, source_chain_selector: int, now: int
    ) -> None:
        """Overwrite the slot of ``source_chain_selector`` for ``user``."""
        slot = self.state.chain_slots.get(source_chain_selector)
        if slot is None:
            raise UnauthorizedChain(source_chain_selector)
        user = normalize_address(user)

        data = self.state.cross_chain.setdefault(user, CrossChainFitnessData())
        data.set_slot(slot, score)
        data.last_update = now
        ledger.register_on_leaderboard(self.state, user)

        logger.info("Cross-chain %s score for %s set to %d", slot.value, user[:10] + "…", score)
        self._emit_leaderboard_update(user, now)

    # ── Daily challenge (VRF) ─────────────────────────────────────────
    def manual_challenge_update(self, txn: Txn) -> int:
        """Owner request for a new daily challenge. Returns the VRF request id."""
        only_owner(self.state, txn.sender)
        return self._request_challenge(txn.timestamp)

    def _challenge_request_pending(self, now: int) -> bool:
        return (
            self.state.challenge_request_id is not None
            and now < self.state.challenge_requested_at + VRF_REQUEST_TIMEOUT
        )

    def _request_challenge(self, now: int) -> int:
        if self._challenge_request_pending(now):
            raise ChallengeUpdatePending(self.state.challenge_request_id)
        if self.vrf_coordinator is None:
            raise VRFRequestError("coordinator not configured", self.state.vrf_subscription_id)

        request_id = self.vrf_coordinator.request_random_words(
            Txn(sender=self.address, timestamp=now),
            self.state.vrf_key_hash,
            self.state.vrf_subscription_id,
        )
        if self.state.challenge_request_id is not None:
            logger.warning("VRF request %d unanswered, replaced", self.state.challenge_request_id)
        self.state.challenge_request_id = request_id
        self.state.challenge_requested_at = now
        logger.info("Daily challenge requested (VRF %d)", request_id)
        return request_id

    def raw_fulfill_random_words(self, txn: Txn, request_id: int, random_words: list[int]) -> None:
        coordinator = self.vrf_coordinator.address if self.vrf_coordinator else ""
        if txn.sender != coordinator:
            raise InvalidCoordinator(txn.sender, coordinator)
        self.fulfill_random_words(request_id, random_words, txn.timestamp)

    def fulfill_random_words(self, request_id: int, random_words: list[int], now: int) -> None:
        if request_id != self.state.challenge_request_id:
            logger.debug("Ignoring randomness for unknown request %d", request_id)
            return
        self.state.challenge_request_id = None
        if not random_words:
            logger.warning("VRF request %d returned no words; challenge unchanged", request_id)
            return

        challenge = generate_challenge(random_words[0], now)
        self.state.current_challenge = challenge
        self.state.challenge_completed = set()
        self.state.last_challenge_update = now
        self.events.emit(DailyChallengeGenerated(
            contract=self.address,
            timestamp=now,
            request_id=request_id,
            challenge_type=int(challenge.challenge_type),
            target=challenge.target,
            bonus_multiplier=challenge.bonus_multiplier,
            expires_at=challenge.expires_at,
        ))
        logger.info(
            "Daily challenge: %s (+%d bps) until %d",
            challenge.describe(), challenge.bonus_multiplier, challenge.expires_at,
        )

    def _check_challenge(self, user: str, session_index: int, now: int) -> None:
        challenge = self.state.current_challenge
        if challenge is None or now >= challenge.expires_at:
            return
        if user in self.state.challenge_completed:
            return
        session = self.state.sessions[user][session_index]
        if not challenge.is_met_by(session):
            return

        base = calculate_base_score(session.reps, session.form_accuracy, session.streak)
        bonus = base * challenge.bonus_multiplier // ScoreWeights.BPS_DENOMINATOR
        self.state.challenge_completed.add(user)
        self.state.challenge_bonus_earned[user] = self.state.challenge_bonus_earned.get(user, 0) + bonus
        self.events.emit(ChallengeCompleted(
            contract=self.address,
            timestamp=now,
            user=user,
            session_index=session_index,
            bonus_earned=bonus,
        ))
        logger.info("%s completed the daily challenge (+%d)", user[:10] + "…", bonus)

    def get_current_challenge(self, now: int) -> DailyChallenge:
        """The latest challenge; ``active`` is false once it has expired."""
        challenge = self.state.current_challenge
        if challenge is None:
            return DailyChallenge(
                challenge_type=ChallengeType.REPS, target=0, bonus_multiplier=0, expires_at=0
            )
        return challenge.model_copy(update={"active": now < challenge.expires_at})

    def has_completed_challenge(self, user: str) -> bool:
        return user.lower() in self.state.challenge_completed

    def get_challenge_bonus(self, user: str) -> int:
        return self.state.challenge_bonus_earned.get(user.lower(), 0)

    # ── Weather bonuses ───────────────────────────────────────────────
    def manual_weather_update(self, txn: Txn) -> int:
        only_owner(self.state, txn.sender)
        return self._update_weather(txn.timestamp)

    def _update_weather(self, now: int) -> int:
        month = datetime.fromtimestamp(now, tz=timezone.utc).month
        bonus = seasonal_bonus_bps(month)
        self.state.seasonal_bonus_bps = bonus
        self.state.last_weather_update = now
        self.events.emit(WeatherBonusesUpdated(
            contract=self.address,
            timestamp=now,
            month=month,
            seasonal_bonus_bps=bonus,
        ))
        logger.info("Weather bonuses updated: month %d, seasonal +%d bps", month, bonus)
        return bonus

    def get_seasonal_bonus(self) -> int:
        return self.state.seasonal_bonus_bps

    def get_regional_bonus(self, region: str) -> int:
        return self.state.regional_bonus_bps.get(region.lower(), 0)

    # ── Automation ────────────────────────────────────────────────────
    def _weather_remaining(self, now: int) -> int:
        return max(0, self.state.last_weather_update + WEATHER_UPDATE_INTERVAL - now)

    def _challenge_remaining(self, now: int) -> int:
        challenge = self.state.current_challenge
        return max(0, challenge.expires_at - now) if challenge else 0

    def check_upkeep(self, now: int) -> tuple[bool, bytes]:
        """Returns ``(upkeep_needed, abi(weather_update_needed, challenge_update_needed))``."""
        weather_needed = self._weather_remaining(now) == 0
        challenge_needed = (
            self._challenge_remaining(now) == 0
            and not self._challenge_request_pending(now)
        )
        return weather_needed or challenge_needed, encode_upkeep_flags(weather_needed, challenge_needed)

    def perform_upkeep(self, txn: Txn, perform_data: bytes) -> tuple[bool, bool]:
        """Run the flagged updates that are still due. Returns what was done."""
        weather_flag, challenge_flag = decode_upkeep_flags(perform_data)
        _, current = self.check_upkeep(txn.timestamp)
        weather_due, challenge_due = decode_upkeep_flags(current)

        update_weather = weather_flag and weather_due
        update_challenge = challenge_flag and challenge_due
        if not (update_weather or update_challenge):
            raise UpkeepNotNeeded(self._weather_remaining(txn.timestamp), self._challenge_remaining(txn.timestamp))

        if update_weather:
            self._update_weather(txn.timestamp)
        if update_challenge:
            try:
                self._request_challenge(txn.timestamp)
            except VRFRequestError as exc:
                # Retried on the next upkeep
                logger.warning("Challenge request not sent: %s", exc.message)
                update_challenge = False
        return update_weather, update_challenge

    # ── Owner configuration ───────────────────────────────────────────
    def allowlist_source_chain(
        self,
        txn: Txn,
        chain_selector: int,
        slot: CrossChainSlot,
        sender: Optional[str] = None,
    ) -> None:
        only_owner(self.state, txn.sender)
        self.state.chain_slots[chain_selector] = slot
        if sender:
            self.state.allowed_senders[chain_selector] = normalize_address(sender)
        else:
            self.state.allowed_senders.pop(chain_selector, None)

    def remove_source_chain(self, txn: Txn, chain_selector: int) -> None:
        only_owner(self.state, txn.sender)
        self.state.chain_slots.pop(chain_selector, None)
        self.state.allowed_senders.pop(chain_selector, None)

    def update_functions_config(
        self, txn: Txn, source: str, subscription_id: int, gas_limit: int
    ) -> None:
        only_owner(self.state, txn.sender)
        self.state.functions_source = source
        self.state.subscription_id = subscription_id
        self.state.gas_limit = gas_limit

    # ── Views ─────────────────────────────────────────────────────────
    def is_chain_allowlisted(self, chain_selector: int) -> bool:
        return chain_selector in self.state.chain_slots

    def get_total_score(self, user: str) -> CompositeScore:
        user = user.lower()
        return self.engine.score(
            self.state.scores.get(user), self.state.cross_chain.get(user)
        )

    def get_cross_chain_data(self, user: str) -> CrossChainFitnessData:
        return self.state.cross_chain.get(user.lower(), CrossChainFitnessData())

    def get_user_abs_score_safe(self, user: str) -> tuple[LocalAbsScore, bool]:
        return ledger.get_user_abs_score_safe(self.state, user)

    def get_user_sessions(self, user: str) -> list[WorkoutSession]:
        return ledger.get_user_sessions(self.state, user)

    def get_time_until_next_submission(self, user: str, now: int) -> int:
        return ledger.time_until_next_submission(self.state, user.lower(), now)

    def get_leaderboard(self) -> list[LocalAbsScore]:
        """Registered users in registration order (not ranked)."""
        return [
            self.state.scores.get(user, LocalAbsScore(user=user))
            for user in self.state.leaderboard
        ]

    @staticmethod
    def calculate_composite_score(reps: int, form_accuracy: int, streak: int) -> int:
        return calculate_base_score(reps, form_accuracy, streak)

    def _emit_leaderboard_update(self, user: str, now: int) -> None:
        local = self.state.scores.get(user)
        self.events.emit(LeaderboardUpdated(
            contract=self.address,
            timestamp=now,
            user=user,
            total_score=self.get_total_score(user).total_score,
            sessions_completed=local.sessions_completed if local else 0,
        ))
