"""The Odds API connector: MLB bookmaker payloads -> validated MarketQuote variants."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from gradebot.config import settings
from gradebot.errors import QuoteValidationError
from gradebot.models import MarketQuote, MoneylineQuote, SpreadQuote, TotalQuote

logger = logging.getLogger(__name__)

DEFAULT_MARKETS = ["h2h", "spreads", "totals"]


# --- Raw payload models (boundary validation) ---


class RawOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    price: int
    point: float | None = None


class RawMarket(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    outcomes: list[RawOutcome]


class RawBookmaker(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    last_update: datetime | None = None
    markets: list[RawMarket] = []

    @field_validator("last_update")
    @classmethod
    def require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class RawEvent(BaseModel):
    """Event envelope. Bookmakers stay raw so one bad book can be skipped alone."""

    model_config = ConfigDict(frozen=True)

    id: str
    home_team: str
    away_team: str
    commence_time: datetime | None = None
    bookmakers: list[dict] = []


# --- Mapping ---


def _by_name(market: RawMarket) -> dict[str, RawOutcome]:
    return {o.name: o for o in market.outcomes}


def _moneyline(market: RawMarket, home: str, away: str, book: str) -> MoneylineQuote:
    outcomes = _by_name(market)
    if home not in outcomes or away not in outcomes:
        raise QuoteValidationError(book, f"h2h outcomes {sorted(outcomes)} do not match {home} / {away}")
    return MoneylineQuote(home_price=outcomes[home].price, away_price=outcomes[away].price)


def _spread(market: RawMarket, home: str, away: str, book: str) -> SpreadQuote:
    outcomes = _by_name(market)
    h, a = outcomes.get(home), outcomes.get(away)
    if h is None or a is None or h.point is None or a.point is None:
        raise QuoteValidationError(book, "spread outcomes missing team or point")
    return SpreadQuote(home_point=h.point, home_price=h.price, away_point=a.point, away_price=a.price)


def _total(market: RawMarket, book: str) -> TotalQuote:
    outcomes = _by_name(market)
    over, under = outcomes.get("Over"), outcomes.get("Under")
    if over is None or under is None or over.point is None:
        raise QuoteValidationError(book, "totals outcomes missing Over/Under or point")
    return TotalQuote(point=over.point, over_price=over.price, under_price=under.price)


def _bookmaker_quote(event: RawEvent, raw_book: dict, fetched_at: datetime) -> MarketQuote:
    book_key = str(raw_book.get("key", "?"))
    try:
        book = RawBookmaker.model_validate(raw_book)
    except ValidationError as e:
        raise QuoteValidationError(book_key, f"{e.error_count()} validation errors") from e

    markets = {m.key: m for m in book.markets}
    moneyline = spread = total = None
    # 表記ゆれを避けるため home/away はチーム名で対応付ける (順序に依存しない)
    if "h2h" in markets:
        moneyline = _moneyline(markets["h2h"], event.home_team, event.away_team, book.key)
    if "spreads" in markets:
        spread = _spread(markets["spreads"], event.home_team, event.away_team, book.key)
    if "totals" in markets:
        total = _total(markets["totals"], book.key)

    return MarketQuote(
        event_id=event.id,
        bookmaker=book.key,
        observed_at=book.last_update or fetched_at,
        home_team=event.home_team,
        away_team=event.away_team,
        moneyline=moneyline,
        spread=spread,
        total=total,
    )


def parse_event_quotes(raw: dict, fetched_at: datetime | None = None) -> list[MarketQuote]:
    """Validate one event payload into one MarketQuote per bookmaker.

    A malformed bookmaker is logged and skipped; a malformed envelope raises
    QuoteValidationError.
    """
    fetched_at = fetched_at or datetime.now(timezone.utc)
    try:
        event = RawEvent.model_validate(raw)
    except ValidationError as e:
        raise QuoteValidationError("<event>", f"{e.error_count()} validation errors") from e

    quotes: list[MarketQuote] = []
    for raw_book in event.bookmakers:
        try:
            quotes.append(_bookmaker_quote(event, raw_book, fetched_at))
        except QuoteValidationError as e:
            logger.warning("Skipping bookmaker for %s: %s", event.id, e, extra={"event_id": event.id})
    return quotes


def fetch_market_quotes(
    sport: str | None = None,
    regions: list[str] | None = None,
    markets: list[str] | None = None,
) -> dict[str, list[MarketQuote]]:
    """Fetch odds from The Odds API, keyed by event id."""
    if not settings.odds_api_key:
        raise ValueError("ODDS_API_KEY not set in .env")

    sport = sport or settings.odds_sport
    regions = regions or settings.odds_regions
    markets = markets or DEFAULT_MARKETS

    resp = httpx.get(
        f"{settings.odds_api_url}/sports/{sport}/odds",
        params={
            "apiKey": settings.odds_api_key,
            "regions": ",".join(regions),
            "markets": ",".join(markets),
            "oddsFormat": "american",
        },
        timeout=settings.odds_timeout_sec,
    )
    resp.raise_for_status()

    remaining = resp.headers.get("x-requests-remaining", "?")
    logger.info("Odds API requests remaining: %s", remaining)

    fetched_at = datetime.now(timezone.utc)
    result: dict[str, list[MarketQuote]] = {}
    for raw in resp.json():
        try:
            quotes = parse_event_quotes(raw, fetched_at)
        except QuoteValidationError as e:
            logger.warning("Skipping event payload: %s", e)
            continue
        result[str(raw["id"])] = quotes

    logger.info("Fetched quotes for %d %s events", len(result), sport)
    return result


def select_quote(
    quotes: Iterable[MarketQuote] | None,
    preference: Iterable[str] | None = None,
) -> MarketQuote | None:
    """First preferred bookmaker carrying a moneyline, else the first quote that has one."""
    candidates = [q for q in quotes or () if q.moneyline is not None]
    if not candidates:
        return None
    by_book = {q.bookmaker: q for q in reversed(candidates)}
    for book in preference if preference is not None else settings.bookmaker_preference:
        if book in by_book:
            return by_book[book]
    return candidates[0]
