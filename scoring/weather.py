"""
Imperfect Abs Scoring — Weather-Enhanced Analysis Job
=======================================================

The off-chain computation the Functions DON runs for each submission.

Input args (all strings, as the hub formats them):
    [reps, form_accuracy, duration, latitude, longitude]

Output: compact JSON bytes
    {"conditions": str, "temperature": int, "weatherBonus": int, "score": int}

Flow:
    1. Validate args (reps 0–500, accuracy 0–100, duration 0–3600,
       latitude ±90, longitude ±180)
    2. Base score = min(100, floor(reps·2 + accuracy·0.8))
    3. If a WeatherXM key is configured, fetch the caller's device data
       and fall back to the public station search near the coordinates
    4. Apply temperature / humidity / wind / condition multipliers
    5. score = round(base · multiplier), weatherBonus = round((m − 1)·100)

Weather failures never fail the job: the base score is returned with
``conditions = "unknown"``. Only invalid arguments produce an error.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from scoring.rules import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    MAX_FORM_ACCURACY,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    WEATHERXM_API,
    WeatherWeights,
)
from smart_contracts.imperfect_abs.errors import InvalidFormat
from smart_contracts.imperfect_abs.strings import format_coordinate, parse_coordinate, parse_uint

logger = logging.getLogger("scoring.weather")

W = WeatherWeights


class AnalysisError(Exception):
    """The job rejected its arguments; returned to the hub as ``err``."""


class WorkoutArgs(BaseModel):
    reps: int = 0
    form_accuracy: int = 0
    duration: int = 0
    latitude: int = DEFAULT_LATITUDE      # fixed-point ×1e6
    longitude: int = DEFAULT_LONGITUDE


class WeatherObservation(BaseModel):
    temperature: int                      # °F
    humidity: Optional[float] = None      # %
    wind_speed: Optional[float] = None    # m/s
    condition: str = W.DEFAULT_CONDITION


class AnalysisResponse(BaseModel):
    conditions: str
    temperature: int
    weather_bonus: int
    score: int
    base_score: int
    multiplier: float

    def encode(self) -> bytes:
        """Contract-facing JSON, compact and in the field order the hub reads."""
        return json.dumps(
            {
                "conditions": self.conditions,
                "temperature": self.temperature,
                "weatherBonus": self.weather_bonus,
                "score": self.score,
            },
            separators=(",", ":"),
        ).encode("utf-8")


# ─────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ─────────────────────────────────────────────────────────────────────────────
def js_round(value: float) -> int:
    """Half-up rounding (``Math.round``), not Python's banker's rounding."""
    return math.floor(value + 0.5)


def base_analysis_score(reps: int, form_accuracy: int) -> int:
    return min(W.MAX_BASE_SCORE, math.floor(reps * W.REP_FACTOR + form_accuracy * W.ACCURACY_FACTOR))


def compute_weather_multiplier(obs: WeatherObservation) -> float:
    """Combine the weather bonuses into one multiplier (≥ 1.0).

    Temperature bands are exclusive; humidity, wind and adverse
    conditions can only raise the result.
    """
    t = obs.temperature
    multiplier = 1.0

    for upper, value in (W.FREEZING, W.COLD, W.COOL):
        if t < upper:
            multiplier = value
            break
    else:
        for lower, value in (W.EXTREME_HEAT, W.HOT, W.WARM):
            if t > lower:
                multiplier = value
                break

    if obs.humidity is not None and obs.humidity > W.HUMID_MIN_HUMIDITY and t > W.HUMID_MIN_TEMPERATURE:
        multiplier = max(multiplier, W.HUMID)

    if obs.wind_speed is not None and obs.wind_speed > W.WINDY_MIN_SPEED:
        multiplier = max(multiplier, W.WINDY)

    condition = obs.condition.lower()
    if any(word in condition for word in W.ADVERSE_CONDITIONS):
        multiplier = max(multiplier, W.ADVERSE)

    return multiplier


def parse_args(args: list[str]) -> WorkoutArgs:
    """Validate the DON arguments. Missing trailing args take defaults."""

    def _arg(i: int) -> Optional[str]:
        return args[i] if i < len(args) and args[i] != "" else None

    parsed = WorkoutArgs()
    limits = (
        ("reps", W.MAX_REPS, "Invalid reps"),
        ("form_accuracy", MAX_FORM_ACCURACY, "Invalid form accuracy"),
        ("duration", W.MAX_DURATION, "Invalid duration"),
    )
    for i, (field, maximum, message) in enumerate(limits):
        raw = _arg(i)
        if raw is None:
            continue
        try:
            value = parse_uint(raw)
        except InvalidFormat:
            raise AnalysisError(message)
        if value > maximum:
            raise AnalysisError(message)
        setattr(parsed, field, value)

    for i, field, bound, message in (
        (3, "latitude", MAX_LATITUDE, "Invalid latitude"),
        (4, "longitude", MAX_LONGITUDE, "Invalid longitude"),
    ):
        raw = _arg(i)
        if raw is None:
            continue
        try:
            value = parse_coordinate(raw)
        except InvalidFormat:
            raise AnalysisError(message)
        if not -bound <= value <= bound:
            raise AnalysisError(message)
        setattr(parsed, field, value)

    return parsed


def _observation_from(entry: dict[str, Any]) -> Optional[WeatherObservation]:
    current = entry.get("current_weather")
    if not current or current.get("temperature") is None:
        return None
    return WeatherObservation(
        temperature=js_round(current["temperature"] * 9 / 5 + 32),
        humidity=current.get("humidity"),
        wind_speed=current.get("wind_speed"),
        condition=current.get("icon") or W.DEFAULT_CONDITION,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Analyzer
# ─────────────────────────────────────────────────────────────────────────────
class WeatherAnalyzer:
    """Runs the weather-enhanced scoring job.

    Usage:
        analyzer = WeatherAnalyzer(api_key=os.getenv("WEATHERXM_API_KEY"))
        response, err = await analyzer.run(["50", "90", "300", "40.712800", "-74.006000"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = WEATHERXM_API,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 8.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    async def fetch_weather(self, latitude: int, longitude: int) -> Optional[WeatherObservation]:
        """Authenticated device data first, public station search as fallback."""
        if not self.api_key:
            logger.info("No WeatherXM API key configured — using base score")
            return None

        lat, lon = format_coordinate(latitude), format_coordinate(longitude)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                r = await client.get(
                    f"{self.base_url}/me/devices",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                if r.status_code == 200:
                    data = r.json()
                    if data:
                        return _observation_from(data[0])
                    return None
                logger.warning("WeatherXM devices returned %d — trying public stations", r.status_code)

                r = await client.get(
                    f"{self.base_url}/stations/search",
                    params={"lat": lat, "lon": lon, "limit": 1},
                )
                if r.status_code == 200:
                    data = r.json()
                    if data:
                        return _observation_from(data[0])
                else:
                    logger.warning("WeatherXM station search returned %d", r.status_code)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("WeatherXM fetch failed: %s", exc)
        return None

    async def analyze(self, args: list[str]) -> AnalysisResponse:
        workout = parse_args(args)
        base = base_analysis_score(workout.reps, workout.form_accuracy)

        obs = await self.fetch_weather(workout.latitude, workout.longitude)
        if obs is None:
            multiplier = 1.0
            conditions = W.UNKNOWN_CONDITION
            temperature = W.DEFAULT_TEMPERATURE
        else:
            multiplier = compute_weather_multiplier(obs)
            conditions = obs.condition
            temperature = obs.temperature

        response = AnalysisResponse(
            conditions=conditions,
            temperature=temperature,
            weather_bonus=js_round((multiplier - 1) * 100),
            score=js_round(base * multiplier),
            base_score=base,
            multiplier=multiplier,
        )
        logger.info(
            "Analysis: base %d × %.2f = %d (%s, %d°F)",
            base, multiplier, response.score, conditions, temperature,
        )
        return response

    async def run(self, args: list[str]) -> tuple[bytes, bytes]:
        """DON-style result: ``(response, b"")`` or ``(b"", err)``."""
        try:
            result = await self.analyze(args)
        except AnalysisError as exc:
            logger.warning("Analysis rejected args %s: %s", args, exc)
            return b"", str(exc).encode("utf-8")
        return result.encode(), b""
