"""
Imperfect Abs Scoring — Rules & Constants
===========================================

Protocol constants shared by the contracts, the scoring engine and the
off-chain analysis job. All limits, weights, chain selectors and fee
defaults are defined here.
No magic numbers elsewhere.
"""

from __future__ import annotations

# ─────────────────────────────────────────────────────────────────────────────
# Submission Limits
# ─────────────────────────────────────────────────────────────────────────────
MAX_REPS_PER_SESSION = 500
MAX_FORM_ACCURACY = 100
SUBMISSION_COOLDOWN = 60           # seconds between submissions per user

ZERO_ADDRESS = "0x" + "0" * 40

# Default workout location (NYC), fixed-point degrees × 1e6
DEFAULT_LATITUDE = 40_712_800
DEFAULT_LONGITUDE = -74_006_000
COORDINATE_SCALE = 1_000_000
COORDINATE_DECIMALS = 6
MAX_LATITUDE = 90 * COORDINATE_SCALE
MAX_LONGITUDE = 180 * COORDINATE_SCALE


# ─────────────────────────────────────────────────────────────────────────────
# Integer Bounds (EVM word sizes)
# ─────────────────────────────────────────────────────────────────────────────
UINT256_MAX = 2**256 - 1
INT256_MAX = 2**255 - 1
INT256_MIN = -(2**255)
UINT64_MAX = 2**64 - 1


# ─────────────────────────────────────────────────────────────────────────────
# Composite Score Weights
# ─────────────────────────────────────────────────────────────────────────────
class ScoreWeights:
    """Integer weights of calculate_base_score."""

    POINTS_PER_REP = 10
    ACCURACY_DIVISOR = 10
    POINTS_PER_STREAK = 25

    # Multi-chain participation bonus
    BONUS_BPS_PER_EXTRA_CHAIN = 1000   # 10% per additional active chain
    BPS_DENOMINATOR = 10_000


# ─────────────────────────────────────────────────────────────────────────────
# CCIP Chain Selectors
# ─────────────────────────────────────────────────────────────────────────────
class ChainSelectors:
    """CCIP chain selectors of the hub and the remote fitness chains."""

    AVALANCHE_FUJI = 14767482510784806043
    POLYGON = 4051577828743386545
    BASE = 15971525489660198786
    CELO = 1346049177634351622
    MONAD_TESTNET = 2183018362218727504


# ─────────────────────────────────────────────────────────────────────────────
# Bridge
# ─────────────────────────────────────────────────────────────────────────────
MIN_SCORE_THRESHOLD = 10
BRIDGE_COOLDOWN = 3600             # seconds between bridges per user
MAX_BATCH_SIZE = 10
CCIP_GAS_LIMIT = 200_000

# Simulated router pricing (wei)
CCIP_BASE_FEE = 10**15
CCIP_FEE_PER_BYTE = 10**11


# ─────────────────────────────────────────────────────────────────────────────
# Chainlink Functions
# ─────────────────────────────────────────────────────────────────────────────
FUNCTIONS_GAS_LIMIT = 300_000
FUNCTIONS_DON_ID = "fun-avalanche-fuji-1"
WEATHER_ANALYSIS_JOB = "weather-enhanced-scoring"


# ─────────────────────────────────────────────────────────────────────────────
# Fees & Rewards (leaderboard variant)
# ─────────────────────────────────────────────────────────────────────────────
SUBMISSION_FEE = 10**16            # 0.01 AVAX
OWNER_SHARE = 20                   # percent of each fee kept by the owner
LEADERBOARD_SHARE = 80             # percent of each fee added to the pool
DISTRIBUTION_PERIOD = 7 * 86400
TOP_PERFORMERS_COUNT = 10
RANK_WEIGHT_UNIT = 100


# ─────────────────────────────────────────────────────────────────────────────
# Weather Analysis (off-chain DON job)
# ─────────────────────────────────────────────────────────────────────────────
class WeatherWeights:
    """Weather multipliers applied by the analysis job.

    Temperatures are Fahrenheit. Cold and hot bands are exclusive; the
    humidity, wind and adverse-condition bonuses only ever raise the
    multiplier.
    """

    # Cold bands (upper bound, multiplier)
    FREEZING = (32, 1.25)
    COLD = (45, 1.20)
    COOL = (55, 1.10)

    # Hot bands (lower bound, multiplier)
    EXTREME_HEAT = (95, 1.20)
    HOT = (85, 1.15)
    WARM = (75, 1.05)

    HUMID_MIN_HUMIDITY = 80
    HUMID_MIN_TEMPERATURE = 70
    HUMID = 1.15

    WINDY_MIN_SPEED = 10
    WINDY = 1.10

    ADVERSE = 1.20
    ADVERSE_CONDITIONS = ("rain", "snow", "storm")

    # Analysis-side base score
    REP_FACTOR = 2
    ACCURACY_FACTOR = 0.8
    MAX_BASE_SCORE = 100

    # Input limits
    MAX_REPS = 500
    MAX_DURATION = 3600

    DEFAULT_CONDITION = "clear"        # station reported no icon
    UNKNOWN_CONDITION = "unknown"      # no weather data at all
    DEFAULT_TEMPERATURE = 70


WEATHERXM_API = "https://api.weatherxm.com/api/v1"


# ─────────────────────────────────────────────────────────────────────────────
# Hub Automation
# ─────────────────────────────────────────────────────────────────────────────
WEATHER_UPDATE_INTERVAL = 6 * 3600
CHALLENGE_DURATION = 86400         # one daily challenge per VRF request

# Seasonal bonus by UTC month, basis points
SEASONAL_BONUS_BPS = {
    12: 1000, 1: 1000, 2: 1000,    # winter
    6: 800, 7: 800, 8: 800,        # summer heat
    3: 500, 11: 500,               # transition months
}
DEFAULT_SEASONAL_BONUS_BPS = 200

REGIONAL_BONUS_BPS = {
    "temperate": 200,
    "tropical": 600,
    "desert": 1000,
    "arctic": 1200,
    "mountain": 800,
    "coastal": 300,
}


def seasonal_bonus_bps(month: int) -> int:
    return SEASONAL_BONUS_BPS.get(month, DEFAULT_SEASONAL_BONUS_BPS)


# ─────────────────────────────────────────────────────────────────────────────
# Chainlink VRF (daily challenges)
# ─────────────────────────────────────────────────────────────────────────────
VRF_KEY_HASH = "0xc799bd1e3bd4d1a41cd4968997a4e03dfd2a3c7c04b695881138580163f42887"
VRF_CALLBACK_GAS_LIMIT = 200_000
VRF_REQUEST_CONFIRMATIONS = 3
VRF_MAX_NUM_WORDS = 500
VRF_NUM_WORDS = 1
VRF_REQUEST_TIMEOUT = 3600        # an unanswered request may be replaced after this


class ChallengeRules:
    """Daily challenge derivation from one random word.

    Target ranges are inclusive and indexed by challenge type value:
    reps, duration (seconds), streak, accuracy (%), combo reps.
    """

    TYPE_COUNT = 5

    # Word layout: type in bits 0-7, target in bits 8-23, bonus in bits 24-31
    TARGET_SHIFT = 8
    BONUS_SHIFT = 24
    TARGET_RANGES = ((20, 100), (60, 600), (3, 30), (70, 95), (10, 50))

    # Bonus multiplier in basis points, in steps of BONUS_STEP_BPS
    MIN_BONUS_BPS = 500
    MAX_BONUS_BPS = 2000
    BONUS_STEP_BPS = 100

    COMBO_MIN_ACCURACY = 90


# ─────────────────────────────────────────────────────────────────────────────
# Performance Tiers
# ─────────────────────────────────────────────────────────────────────────────
def performance_label(score: int) -> str:
    """Return a human-readable tier for a composite score."""
    if score >= 10_000:
        return "Legendary"
    if score >= 5_000:
        return "Elite"
    if score >= 1_000:
        return "Strong"
    if score >= 100:
        return "Active"
    return "Beginner"
