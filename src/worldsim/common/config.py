from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

ENV_PREFIX = "WORLDSIM_"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class DebtSettings:
    first_warning_day: int = 0
    warning_day: int = 3
    final_warning_day: int = 4
    imprisonment_day: int = 5
    diversion_ceiling: int = 25_000
    community_service_sessions: int = 10
    community_service_days: int = 7
    base_sentence_days: int = 3
    debt_per_extra_day: int = 10_000
    base_sentence_cap: int = 14
    recidivism_factor: float = 1.5
    recidivism_multiplier_cap: float = 3.0
    sentence_cap: int = 21
    failed_service_factor: float = 1.5
    starting_behavior: int = 50
    failed_service_behavior: int = 30


@dataclass
class PrisonSettings:
    daily_behavior_gain: int = 1
    song_behavior_bonus: int = 2
    max_song_bonus: int = 5
    # (min score, share of sentence credited) checked top down
    early_release_tiers: tuple[tuple[int, float], ...] = ((90, 0.25), (75, 0.15), (60, 0.10))
    event_chance: float = 0.15
    rarity_weights: Mapping[str, float] = field(
        default_factory=lambda: {"common": 5.0, "uncommon": 3.0, "rare": 1.0, "legendary": 0.5}
    )
    escape_base_chance: float = 0.02
    max_escape_opportunities: int = 3


@dataclass
class OfferSettings:
    max_partners_per_run: int = 50
    max_bands_per_run: int = 75
    max_offers_per_partner: int = 3
    max_pending_per_band: int = 5
    default_cooldown_days: int = 7
    partner_cooldown_hours: int = 12
    min_expiry_days: int = 5
    max_expiry_days: int = 11
    default_base_offer: int = 5_000
    contract_days: int = 90
    expiry_notice_hours: int = 48
    tier_weights: Mapping[str, float] = field(
        default_factory=lambda: {"emerging": 0.8, "growth": 1.0, "established": 1.25, "titan": 1.5}
    )
    slot_multipliers: Mapping[str, float] = field(
        default_factory=lambda: {"general": 1.0, "venue": 1.05, "tour": 1.12, "festival": 1.2}
    )
    payout_slot_rates: Mapping[str, float] = field(
        default_factory=lambda: {"festival": 0.15, "tour": 0.12, "venue": 0.08, "fame_gain": 0.0}
    )
    momentum_bonus_cap: float = 2.0
    pr_min_fame: int = 50
    pr_film_min_fame: int = 25_000
    pr_max_pending: int = 5
    pr_expiry_days: int = 7


@dataclass
class RadioSettings:
    review_delay_hours: int = 24
    batch_size: int = 200
    base_acceptance: float = 0.30
    quality_bonus: float = 0.20
    genre_bonus: float = 0.20
    hype_bonus: float = 0.15
    regional_bonus: float = 0.10
    hype_threshold: int = 50
    strong_regional_fame: int = 500
    max_acceptance: float = 0.95


@dataclass
class DemoSettings:
    review_delay_hours: int = 24
    batch_size: int = 200
    base_threshold: float = 30.0
    reputation_weight: float = 0.3
    genre_bonus: float = 15.0
    score_noise: float = 20.0

@dataclass
class GrowthSettings:
    profile_fame_range: tuple[int, int] = (0, 2)
    xp_per_fame_point: int = 100
    max_profile_activity_bonus: int = 5
    band_fame_range: tuple[int, int] = (1, 5)
    band_fans_range: tuple[int, int] = (5, 25)
    fame_per_recent_gig: int = 2
    recent_gig_days: int = 7
    fame_to_fans_rate: float = 0.01
    member_share: float = 0.5
    reference_population: int = 1_000_000
    market_factor_bounds: tuple[float, float] = (0.5, 2.0)
    fame_reference: int = 5_000
    fan_saturation_per_seat: int = 10
    reference_ticket_price: float = 25.0
    base_daily_sales_fraction: float = 0.05
    sales_noise: tuple[float, float] = (0.8, 1.2)


@dataclass
class ShiftSettings:
    clock_in_window_minutes: int = 15
    min_health: int = 20
    min_energy: int = 10


@dataclass
class SchedulerSettings:
    enabled: bool = False
    poll_seconds: float = 1.0
    # job name -> seconds between runs
    intervals: Mapping[str, float] = field(
        default_factory=lambda: {
            "scheduled-activities": 60.0,
            "auto-clock-in-shifts": 300.0,
            "review-radio-submissions": 3600.0,
            "demo-review": 3600.0,
            "brand-sponsorships": 3600.0,
            "brand-offer-expiry": 3600.0,
            "daily-simulation": 86400.0,
        }
    )


@dataclass
class Settings:
    db_path: Path
    feed_base_url: str | None = None
    random_seed: int | None = None
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")
    debt: DebtSettings = field(default_factory=DebtSettings)
    prison: PrisonSettings = field(default_factory=PrisonSettings)
    offers: OfferSettings = field(default_factory=OfferSettings)
    radio: RadioSettings = field(default_factory=RadioSettings)
    demos: DemoSettings = field(default_factory=DemoSettings)
    growth: GrowthSettings = field(default_factory=GrowthSettings)
    shifts: ShiftSettings = field(default_factory=ShiftSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        raw_path = env.get(ENV_PREFIX + "DB_PATH")
        if raw_path:
            db_path = Path(raw_path).expanduser().resolve()
        else:
            db_path = (Path.cwd() / "worldsim.db").resolve()

        seed_raw = env.get(ENV_PREFIX + "RANDOM_SEED")
        try:
            random_seed = int(seed_raw) if seed_raw else None
        except ValueError:
            random_seed = None

        origins_env = env.get(ENV_PREFIX + "CORS_ORIGINS", "")
        origins = tuple(origin.strip() for origin in origins_env.split(",") if origin.strip())

        debt = DebtSettings(
            diversion_ceiling=_env_int(env, "DEBT_DIVERSION_CEILING", DebtSettings.diversion_ceiling),
            community_service_sessions=_env_int(env, "COMMUNITY_SERVICE_SESSIONS", DebtSettings.community_service_sessions),
            sentence_cap=_env_int(env, "SENTENCE_CAP_DAYS", DebtSettings.sentence_cap),
        )
        radio = RadioSettings(
            review_delay_hours=_env_int(env, "RADIO_REVIEW_DELAY_HOURS", RadioSettings.review_delay_hours),
            base_acceptance=_env_float(env, "RADIO_BASE_ACCEPTANCE", RadioSettings.base_acceptance),
        )
        scheduler = SchedulerSettings(
            enabled=_env_bool(env, "SCHEDULER_ENABLED", False),
            poll_seconds=_env_float(env, "SCHEDULER_POLL_SECONDS", SchedulerSettings.poll_seconds),
        )

        settings = cls(
            db_path=db_path,
            feed_base_url=env.get(ENV_PREFIX + "FEED_BASE_URL") or None,
            random_seed=random_seed,
            debt=debt,
            radio=radio,
            scheduler=scheduler,
        )
        if origins:
            settings.cors_origins = origins
        return settings
