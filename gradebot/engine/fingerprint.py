"""Information-state fingerprint: the cache key that decides when a grade may change.

Built only from input data (information state + quote), never from the wall
clock of the call, so the same facts produce the same token across polls and
restarts. The time bucket is measured from the quote's observed_at to the
scheduled start.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import asdict, dataclass

from gradebot.errors import InvalidOddsError
from gradebot.models import EventStatus, InformationState, MarketQuote
from gradebot.odds.converter import implied_probability

DEFAULT_LINE_MOVE_BUCKET = 0.02
DEFAULT_TIME_BUCKETS_HOURS = (24.0, 8.0, 3.0, 1.0, 0.5)

INVALID_BUCKET = -1
UNKNOWN_TIME_BUCKET = "unknown"
STARTED_TIME_BUCKET = "started"


@dataclass(frozen=True)
class InformationFingerprint:
    starter_confirmed: bool
    lineup_posted: bool
    status: str
    bookmaker: str
    home_bucket: int
    away_bucket: int
    time_bucket: str

    @property
    def token(self) -> str:
        payload = json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def price_bucket(odds: int | None, width: float = DEFAULT_LINE_MOVE_BUCKET) -> int:
    """Bucket index of the implied probability; sub-width line noise stays in one bucket."""
    if odds is None:
        return INVALID_BUCKET
    try:
        p = implied_probability(odds)
    except InvalidOddsError:
        return INVALID_BUCKET
    # 浮動小数誤差で境界を跨がないよう丸めてから floor
    return math.floor(round(p / width, 9))


def time_bucket(
    quote: MarketQuote,
    state: InformationState,
    buckets_hours: tuple[float, ...] | list[float] = DEFAULT_TIME_BUCKETS_HOURS,
) -> str:
    """Coarse time-to-start label, e.g. ">24h", "3-8h", "<0.5h", "started"."""
    if state.status != EventStatus.SCHEDULED:
        return STARTED_TIME_BUCKET
    if state.start_time is None:
        return UNKNOWN_TIME_BUCKET

    hours = (state.start_time - quote.observed_at).total_seconds() / 3600
    if hours <= 0:
        return STARTED_TIME_BUCKET

    bounds = sorted(buckets_hours, reverse=True)
    for i, bound in enumerate(bounds):
        if hours > bound:
            if i == 0:
                return f">{bound:g}h"
            return f"{bound:g}-{bounds[i - 1]:g}h"
    return f"<{bounds[-1]:g}h"


def compute_fingerprint(
    state: InformationState,
    quote: MarketQuote,
    line_move_bucket: float = DEFAULT_LINE_MOVE_BUCKET,
    time_buckets_hours: tuple[float, ...] | list[float] = DEFAULT_TIME_BUCKETS_HOURS,
) -> InformationFingerprint:
    return InformationFingerprint(
        starter_confirmed=state.starter_confirmed,
        lineup_posted=state.lineup_posted,
        status=state.status.value,
        bookmaker=quote.bookmaker,
        home_bucket=price_bucket(quote.home_moneyline, line_move_bucket),
        away_bucket=price_bucket(quote.away_moneyline, line_move_bucket),
        time_bucket=time_bucket(quote, state, time_buckets_hours),
    )
