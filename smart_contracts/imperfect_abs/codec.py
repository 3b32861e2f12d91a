"""
Imperfect Abs — CCIP Payload Codec
====================================

Bridge → hub messages carry ``abi.encode(address user, uint256 score,
uint256 timestamp)``. Hub automation passes
``abi.encode(bool weatherUpdateNeeded, bool challengeUpdateNeeded)``
from check_upkeep to perform_upkeep.

Wire format (96 bytes, three 32-byte big-endian words):
    [0:32]   user address, left-padded with 12 zero bytes
    [32:64]  score      (uint256)
    [64:96]  timestamp  (uint256)
"""

from __future__ import annotations

import re

from scoring.rules import UINT256_MAX, ZERO_ADDRESS
from smart_contracts.imperfect_abs.errors import InvalidFormat, InvalidPayload, InvalidUser

WORD_SIZE = 32
ADDRESS_SIZE = 20
SCORE_PAYLOAD_SIZE = 3 * WORD_SIZE
UPKEEP_PAYLOAD_SIZE = 2 * WORD_SIZE

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


# ─────────────────────────────────────────────────────────────────────────────
# Addresses
# ─────────────────────────────────────────────────────────────────────────────
def is_address(value: str) -> bool:
    return bool(value) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: str, allow_zero: bool = False) -> str:
    """Lower-case a 0x-prefixed 20-byte hex address, rejecting anything else."""
    if not is_address(value):
        raise InvalidUser(value)
    address = value.lower()
    if address == ZERO_ADDRESS and not allow_zero:
        raise InvalidUser(value)
    return address


# ─────────────────────────────────────────────────────────────────────────────
# Words
# ─────────────────────────────────────────────────────────────────────────────
def _uint_word(value: int) -> bytes:
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"value out of uint256 range: {value}")
    return value.to_bytes(WORD_SIZE, "big")


def _address_word(address: str) -> bytes:
    raw = bytes.fromhex(normalize_address(address, allow_zero=True)[2:])
    return bytes(WORD_SIZE - ADDRESS_SIZE) + raw


# ─────────────────────────────────────────────────────────────────────────────
# Score payload
# ─────────────────────────────────────────────────────────────────────────────
def encode_score_payload(user: str, score: int, timestamp: int) -> bytes:
    return _address_word(user) + _uint_word(score) + _uint_word(timestamp)


def decode_score_payload(data: bytes) -> tuple[str, int, int]:
    """Decode ``(user, score, timestamp)``; the payload length must be exact."""
    if len(data) != SCORE_PAYLOAD_SIZE:
        raise InvalidPayload(SCORE_PAYLOAD_SIZE, len(data))

    address_word = data[0:WORD_SIZE]
    if any(address_word[: WORD_SIZE - ADDRESS_SIZE]):
        raise InvalidUser("0x" + address_word.hex())
    user = "0x" + address_word[WORD_SIZE - ADDRESS_SIZE :].hex()

    score = int.from_bytes(data[WORD_SIZE : 2 * WORD_SIZE], "big")
    timestamp = int.from_bytes(data[2 * WORD_SIZE : 3 * WORD_SIZE], "big")
    return user, score, timestamp


# ─────────────────────────────────────────────────────────────────────────────
# Upkeep perform data
# ─────────────────────────────────────────────────────────────────────────────
def encode_upkeep_flags(weather_update_needed: bool, challenge_update_needed: bool) -> bytes:
    return _uint_word(int(weather_update_needed)) + _uint_word(int(challenge_update_needed))


def decode_upkeep_flags(data: bytes) -> tuple[bool, bool]:
    """Decode ``(weather_update_needed, challenge_update_needed)``.

    Each word must be exactly 0 or 1, as the ABI decoder enforces for bools.
    """
    if len(data) != UPKEEP_PAYLOAD_SIZE:
        raise InvalidPayload(UPKEEP_PAYLOAD_SIZE, len(data))
    flags = []
    for offset in (0, WORD_SIZE):
        word = int.from_bytes(data[offset : offset + WORD_SIZE], "big")
        if word > 1:
            raise InvalidFormat(data.hex(), "bool word out of range")
        flags.append(bool(word))
    return flags[0], flags[1]
