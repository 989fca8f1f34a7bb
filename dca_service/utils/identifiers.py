"""Identifier generation utilities.

Schedule ids follow the 24-hex-char document id layout (4-byte creation time
followed by 8 random bytes); transaction hashes follow the EVM 0x + 64 hex form.
"""

import re
import secrets
import time
from typing import Optional

SCHEDULE_ID_PATTERN = re.compile(r"^[a-f0-9]{24}$")
TX_HASH_PATTERN = re.compile(r"^0x[a-f0-9]{64}$")


def generate_schedule_id(timestamp: Optional[float] = None) -> str:
    """Generate a unique schedule id.

    Format: 8 hex chars of unix seconds + 16 random hex chars
    Example: 65f1c2a9e4b0a1b2c3d4e5f6

    Args:
        timestamp: Creation time in unix seconds (defaults to now)

    Returns:
        24 character lower-case hex string
    """
    seconds = int(time.time() if timestamp is None else timestamp)
    return f"{seconds & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def generate_tx_hash() -> str:
    """Generate a random transaction hash (0x + 64 hex chars)."""
    return "0x" + secrets.token_hex(32)


def validate_schedule_id(schedule_id: str) -> bool:
    """Check schedule id format."""
    if not schedule_id or not isinstance(schedule_id, str):
        return False
    return bool(SCHEDULE_ID_PATTERN.match(schedule_id))


def validate_tx_hash(tx_hash: str) -> bool:
    """Check transaction hash format (lower-case hex only)."""
    if not tx_hash or not isinstance(tx_hash, str):
        return False
    return bool(TX_HASH_PATTERN.match(tx_hash))


def extract_schedule_timestamp(schedule_id: str) -> Optional[int]:
    """Extract the creation time embedded in a schedule id.

    Args:
        schedule_id: Schedule id

    Returns:
        Unix seconds, or None if the id is malformed
    """
    if not validate_schedule_id(schedule_id):
        return None
    return int(schedule_id[:8], 16)
