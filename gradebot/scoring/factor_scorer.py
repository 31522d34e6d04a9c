"""Banded factor scoring with memoized, deterministic jitter.

Each raw factor is mapped to its band center, shifted by a small noise term
and clamped to [30, 100]. The noise is drawn once per
(event_id, fingerprint, factor) from a generator seeded by a digest of that
key, then stored with the cache entry. Re-scoring the same fingerprint reuses
the stored draw, so a cache hit can never produce a different score.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping

import numpy as np

from gradebot.models import BandedFactorSet, FactorSet, FactorType
from gradebot.scoring.bands import SCORE_CEILING, SCORE_FLOOR, lookup_band

logger = logging.getLogger(__name__)

DEFAULT_JITTER_AMPLITUDE = 3.0


def _seed_for(event_id: str, fingerprint: str, factor: FactorType) -> int:
    key = f"{event_id}|{fingerprint}|{factor.value}".encode("utf-8")
    return int.from_bytes(hashlib.sha256(key).digest()[:8], "big")


def draw_jitter(
    event_id: str,
    fingerprint: str,
    factor: FactorType,
    amplitude: float = DEFAULT_JITTER_AMPLITUDE,
) -> float:
    """Draw U(-amplitude, +amplitude) for one (event, fingerprint, factor) key.

    Same key -> same value, in any process.
    """
    if amplitude <= 0:
        return 0.0
    rng = np.random.default_rng(_seed_for(event_id, fingerprint, factor))
    return float(rng.uniform(-amplitude, amplitude))


def draw_jitter_set(
    event_id: str,
    fingerprint: str,
    amplitude: float = DEFAULT_JITTER_AMPLITUDE,
) -> dict[str, float]:
    """Jitter for all six factors, keyed by FactorType value."""
    return {
        factor.value: draw_jitter(event_id, fingerprint, factor, amplitude)
        for factor in FactorType
    }


def score_factor(factor: FactorType, raw: float, jitter: float = 0.0) -> int:
    band = lookup_band(factor, raw)
    score = round(band.center + jitter)
    return max(SCORE_FLOOR, min(SCORE_CEILING, score))


def score_factors(raw: FactorSet, jitter: Mapping[str, float] | None = None) -> BandedFactorSet:
    """Map a raw FactorSet to a BandedFactorSet.

    Missing jitter entries count as zero noise.
    """
    jitter = jitter or {}
    scores = {
        factor.value: score_factor(factor, raw.raw_for(factor), jitter.get(factor.value, 0.0))
        for factor in FactorType
    }
    return BandedFactorSet(**scores)
