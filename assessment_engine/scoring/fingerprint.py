"""
Context Fingerprint
assessment_engine/scoring/fingerprint.py

Opaque digest over the inputs a subject's narrative is built from.

    canonical = "v1|sessions=<n>|<latest>|episodes=<m>|<latest>"
    digest    = sha256(canonical).hexdigest()

Timestamps are normalized to UTC ISO-8601 so the digest depends only on
persisted state.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

FINGERPRINT_VERSION = "v1"


@dataclass(frozen=True)
class FingerprintInputs:
    completed_sessions: int
    latest_session_at: Optional[datetime]
    completed_episodes: int
    latest_episode_at: Optional[datetime]


def _iso(ts: Optional[datetime]) -> str:
    if ts is None:
        return "-"
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def canonical_string(inputs: FingerprintInputs) -> str:
    return "|".join(
        [
            FINGERPRINT_VERSION,
            f"sessions={inputs.completed_sessions}",
            _iso(inputs.latest_session_at),
            f"episodes={inputs.completed_episodes}",
            _iso(inputs.latest_episode_at),
        ]
    )


def compute_digest(inputs: FingerprintInputs) -> str:
    return hashlib.sha256(canonical_string(inputs).encode("utf-8")).hexdigest()
