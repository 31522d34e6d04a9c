from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # The Odds API
    odds_api_key: str = ""
    odds_api_url: str = "https://api.the-odds-api.com/v4"
    odds_sport: str = "baseball_mlb"
    odds_regions: list[str] = ["us"]
    odds_timeout_sec: float = 30.0

    # 先頭から順に優先 (該当なしなら moneyline を持つ最初の quote)
    bookmaker_preference: list[str] = ["draftkings", "fanduel", "betmgm", "williamhill_us"]

    # === Edge anchoring ===
    anchor_below: float = 0.05  # implied - 0.05 まで
    anchor_above: float = 0.08  # implied + 0.08 まで
    probability_floor: float = 0.25
    probability_ceiling: float = 0.75
    edge_floor: float = -0.05  # これ未満の edge は public view から除外

    # === Sizing ===
    kelly_cap: float = 0.05

    # === Factor scoring ===
    jitter_amplitude: float = 3.0

    # === Fingerprint ===
    line_move_bucket: float = 0.02  # implied prob の bucket 幅 (pick'em 付近で約 10 cents)
    time_buckets_hours: list[float] = [24.0, 8.0, 3.0, 1.0, 0.5]

    # === Stability cache ===
    cache_retention_hours: float = 24.0
    recompute_timeout_sec: float = 10.0
    closed_event_policy: str = "historical"  # "historical" | "empty"
    grade_cache_db_path: str = ""  # 空なら in-memory

    # === Views ===
    public_min_grade: str = "F"
    max_grade_step: int | None = None  # None = 無制限


settings = Settings()
