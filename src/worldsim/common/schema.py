from __future__ import annotations

WORLD_SCHEMA = """
CREATE TABLE IF NOT EXISTS job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name TEXT NOT NULL,
    function_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    triggered_by TEXT,
    request_id TEXT,
    request_payload TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    duration_ms INTEGER,
    processed_count INTEGER NOT NULL DEFAULT 0,
    error_count INTEGER NOT NULL DEFAULT 0,
    items_affected INTEGER,
    result_summary TEXT,
    error_message TEXT
);

CREATE TABLE IF NOT EXISTS cities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    country TEXT,
    population INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    display_name TEXT NOT NULL,
    cash INTEGER NOT NULL DEFAULT 0,
    health INTEGER NOT NULL DEFAULT 100,
    energy INTEGER NOT NULL DEFAULT 100,
    fame INTEGER NOT NULL DEFAULT 0,
    fans INTEGER NOT NULL DEFAULT 0,
    experience INTEGER NOT NULL DEFAULT 0,
    current_city_id INTEGER REFERENCES cities(id),
    is_imprisoned INTEGER NOT NULL DEFAULT 0,
    total_imprisonments INTEGER NOT NULL DEFAULT 0,
    debt_started_at TEXT,
    created_at TEXT
);

CREATE TRIGGER IF NOT EXISTS tr_profiles_debt_settled
    AFTER UPDATE OF cash ON profiles
    WHEN NEW.cash >= 0 AND NEW.debt_started_at IS NOT NULL
BEGIN
    UPDATE profiles SET debt_started_at = NULL WHERE id = NEW.id;
END;

CREATE TABLE IF NOT EXISTS experience_ledger (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    activity_type TEXT NOT NULL,
    xp_amount INTEGER NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER,
    band_id INTEGER,
    category TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    metadata TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    genre TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    leader_profile_id INTEGER REFERENCES profiles(id),
    city_id INTEGER REFERENCES cities(id),
    fame REAL NOT NULL DEFAULT 0,
    total_fans INTEGER NOT NULL DEFAULT 0,
    band_balance INTEGER NOT NULL DEFAULT 0,
    chemistry INTEGER NOT NULL DEFAULT 0,
    fame_momentum REAL NOT NULL DEFAULT 0,
    event_attendance_score REAL NOT NULL DEFAULT 0,
    chart_momentum REAL NOT NULL DEFAULT 0,
    brand_flags TEXT,
    max_deals INTEGER NOT NULL DEFAULT 3,
    last_offer_at TEXT
);

CREATE TABLE IF NOT EXISTS band_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    role TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    UNIQUE(band_id, profile_id)
);

CREATE TABLE IF NOT EXISTS band_city_fame (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    city_id INTEGER NOT NULL REFERENCES cities(id),
    fame INTEGER NOT NULL DEFAULT 0,
    UNIQUE(band_id, city_id)
);

CREATE TABLE IF NOT EXISTS band_fame_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    fame_gained REAL NOT NULL,
    event_type TEXT NOT NULL,
    event_data TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS band_earnings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    amount INTEGER NOT NULL,
    source TEXT NOT NULL,
    description TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS growth_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    growth_date TEXT NOT NULL,
    fame_gained INTEGER NOT NULL DEFAULT 0,
    fans_gained INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE(entity_type, entity_id, growth_date)
);

CREATE TABLE IF NOT EXISTS venues (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    city_id INTEGER REFERENCES cities(id),
    capacity INTEGER NOT NULL DEFAULT 100
);

CREATE TABLE IF NOT EXISTS gigs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    venue_id INTEGER NOT NULL REFERENCES venues(id),
    scheduled_date TEXT NOT NULL,
    ticket_price REAL NOT NULL DEFAULT 20,
    tickets_sold INTEGER NOT NULL DEFAULT 0,
    attendance INTEGER,
    earnings INTEGER,
    status TEXT NOT NULL DEFAULT 'scheduled',
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS ticket_sales_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    gig_id INTEGER NOT NULL REFERENCES gigs(id),
    sale_date TEXT NOT NULL,
    tickets_sold INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE(gig_id, sale_date)
);

CREATE TABLE IF NOT EXISTS rehearsals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    scheduled_start TEXT,
    scheduled_end TEXT,
    chemistry_gain INTEGER NOT NULL DEFAULT 2,
    status TEXT NOT NULL DEFAULT 'scheduled',
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    profile_id INTEGER REFERENCES profiles(id),
    band_id INTEGER REFERENCES bands(id),
    genre TEXT,
    quality_score INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft',
    hype INTEGER NOT NULL DEFAULT 0,
    streams INTEGER NOT NULL DEFAULT 0,
    revenue INTEGER NOT NULL DEFAULT 0,
    total_radio_plays INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS recording_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL REFERENCES songs(id),
    band_id INTEGER REFERENCES bands(id),
    quality_gain INTEGER NOT NULL DEFAULT 5,
    status TEXT NOT NULL DEFAULT 'scheduled',
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    city_id INTEGER REFERENCES cities(id),
    hourly_wage INTEGER NOT NULL DEFAULT 15,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    work_days TEXT,
    health_impact INTEGER NOT NULL DEFAULT 5,
    energy_impact INTEGER NOT NULL DEFAULT 10,
    xp_per_shift INTEGER NOT NULL DEFAULT 10,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS player_employment (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    job_id INTEGER NOT NULL REFERENCES jobs(id),
    status TEXT NOT NULL DEFAULT 'employed',
    auto_clock_in INTEGER NOT NULL DEFAULT 0,
    shifts_completed INTEGER NOT NULL DEFAULT 0,
    total_earnings INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS shift_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    job_id INTEGER NOT NULL REFERENCES jobs(id),
    shift_date TEXT NOT NULL,
    clock_in_time TEXT NOT NULL,
    clock_out_time TEXT,
    earnings INTEGER,
    status TEXT NOT NULL DEFAULT 'in_progress',
    UNIQUE(profile_id, job_id, shift_date)
);

CREATE TABLE IF NOT EXISTS scheduled_activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    activity_type TEXT NOT NULL,
    title TEXT NOT NULL,
    scheduled_start TEXT NOT NULL,
    scheduled_end TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'scheduled',
    metadata TEXT,
    linked_gig_id INTEGER REFERENCES gigs(id),
    linked_rehearsal_id INTEGER REFERENCES rehearsals(id),
    linked_recording_id INTEGER REFERENCES recording_sessions(id),
    linked_job_shift_id INTEGER REFERENCES shift_history(id),
    actual_start TEXT,
    actual_end TEXT,
    failure_reason TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activities_status_start
    ON scheduled_activities (status, scheduled_start);

CREATE TABLE IF NOT EXISTS prisons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    city_id INTEGER REFERENCES cities(id),
    security_level INTEGER NOT NULL DEFAULT 1,
    escape_difficulty INTEGER NOT NULL DEFAULT 5
);

CREATE TABLE IF NOT EXISTS imprisonments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    prison_id INTEGER NOT NULL REFERENCES prisons(id),
    reason TEXT NOT NULL,
    debt_amount INTEGER NOT NULL DEFAULT 0,
    sentence_days INTEGER NOT NULL,
    remaining_days INTEGER NOT NULL,
    imprisoned_at TEXT NOT NULL,
    release_date TEXT NOT NULL,
    behavior_score INTEGER NOT NULL DEFAULT 50,
    good_behavior_days_earned INTEGER NOT NULL DEFAULT 0,
    cellmate_name TEXT,
    cellmate_skill TEXT,
    cellmate_skill_bonus INTEGER NOT NULL DEFAULT 0,
    escape_attempts INTEGER NOT NULL DEFAULT 0,
    escape_opportunities INTEGER NOT NULL DEFAULT 0,
    last_behavior_update TEXT,
    last_event_roll_date TEXT,
    status TEXT NOT NULL DEFAULT 'imprisoned',
    released_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_imprisonments_open
    ON imprisonments (profile_id)
    WHERE status = 'imprisoned';

CREATE TABLE IF NOT EXISTS criminal_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    imprisonment_id INTEGER REFERENCES imprisonments(id),
    offense TEXT NOT NULL,
    sentence_served_days INTEGER NOT NULL DEFAULT 0,
    behavior_rating TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS community_service_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    debt_amount INTEGER NOT NULL,
    required_busking_sessions INTEGER NOT NULL,
    completed_sessions INTEGER NOT NULL DEFAULT 0,
    deadline TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    resolved_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_community_service_active
    ON community_service_assignments (profile_id)
    WHERE status = 'active';

CREATE TABLE IF NOT EXISTS debt_notices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id INTEGER NOT NULL REFERENCES profiles(id),
    debt_started_at TEXT NOT NULL,
    notice_day INTEGER NOT NULL,
    severity TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(profile_id, debt_started_at, notice_day)
);

CREATE TABLE IF NOT EXISTS prison_event_types (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    rarity TEXT NOT NULL DEFAULT 'common',
    min_behavior INTEGER NOT NULL DEFAULT 0,
    max_behavior INTEGER NOT NULL DEFAULT 100,
    behavior_change INTEGER NOT NULL DEFAULT 0,
    health_change INTEGER NOT NULL DEFAULT 0,
    cash_change INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS prison_event_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    imprisonment_id INTEGER NOT NULL REFERENCES imprisonments(id),
    event_type_id INTEGER REFERENCES prison_event_types(id),
    kind TEXT NOT NULL DEFAULT 'event',
    event_date TEXT NOT NULL,
    event_details TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brand_partners (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    wealth_tier TEXT NOT NULL DEFAULT 'growth',
    size_index REAL NOT NULL DEFAULT 0,
    fame_floor INTEGER NOT NULL DEFAULT 0,
    cooldown_days INTEGER,
    focus_slots TEXT,
    exclusivity_categories TEXT,
    targeting_flags TEXT,
    base_offer INTEGER,
    available_budget INTEGER NOT NULL DEFAULT 0,
    cooldown_until TEXT,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS brand_offers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    brand_id INTEGER NOT NULL REFERENCES brand_partners(id),
    offer_type TEXT NOT NULL DEFAULT 'general',
    exclusivity_category TEXT,
    payout INTEGER NOT NULL,
    terms TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    expires_at TEXT NOT NULL,
    expiration_notification_sent INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    responded_at TEXT
);

CREATE TABLE IF NOT EXISTS brand_contracts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    offer_id INTEGER REFERENCES brand_offers(id),
    band_id INTEGER NOT NULL REFERENCES bands(id),
    brand_id INTEGER NOT NULL REFERENCES brand_partners(id),
    offer_type TEXT NOT NULL DEFAULT 'general',
    exclusivity_category TEXT,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    payout_terms TEXT,
    total_value INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'active',
    termination_reason TEXT,
    created_at TEXT NOT NULL,
    ended_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_brand_contracts_active_category
    ON brand_contracts (band_id, exclusivity_category)
    WHERE status = 'active' AND exclusivity_category IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS ux_brand_contracts_active_brand
    ON brand_contracts (band_id, brand_id)
    WHERE status = 'active';

CREATE TABLE IF NOT EXISTS brand_contract_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL,
    brand_id INTEGER,
    offer_id INTEGER,
    contract_id INTEGER,
    event_type TEXT NOT NULL,
    event_details TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brand_payouts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    contract_id INTEGER NOT NULL REFERENCES brand_contracts(id),
    band_id INTEGER NOT NULL,
    event_type TEXT NOT NULL,
    event_reference TEXT,
    base_amount INTEGER NOT NULL DEFAULT 0,
    bonus_amount INTEGER NOT NULL DEFAULT 0,
    amount INTEGER NOT NULL DEFAULT 0,
    fame_delta REAL NOT NULL DEFAULT 0,
    paid_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pr_media_outlets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    media_type TEXT NOT NULL,
    min_fame_required INTEGER NOT NULL DEFAULT 0,
    base_payment INTEGER NOT NULL DEFAULT 500,
    fame_boost INTEGER NOT NULL DEFAULT 10,
    fan_boost INTEGER NOT NULL DEFAULT 50,
    duration_hours INTEGER NOT NULL DEFAULT 2,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS pr_media_offers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    band_id INTEGER NOT NULL REFERENCES bands(id),
    outlet_id INTEGER NOT NULL REFERENCES pr_media_outlets(id),
    media_type TEXT NOT NULL,
    proposed_date TEXT NOT NULL,
    duration_hours INTEGER NOT NULL DEFAULT 2,
    compensation INTEGER NOT NULL DEFAULT 0,
    fame_boost INTEGER NOT NULL DEFAULT 0,
    fan_boost INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    expires_at TEXT NOT NULL,
    activity_id INTEGER,
    created_at TEXT NOT NULL,
    responded_at TEXT,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS radio_stations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    city_id INTEGER REFERENCES cities(id),
    quality_level INTEGER NOT NULL DEFAULT 1,
    accepted_genres TEXT,
    min_fame_required INTEGER NOT NULL DEFAULT 0,
    listener_base INTEGER NOT NULL DEFAULT 1000,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS radio_shows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    station_id INTEGER NOT NULL REFERENCES radio_stations(id),
    show_name TEXT NOT NULL,
    time_slot TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS radio_playlists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    show_id INTEGER NOT NULL REFERENCES radio_shows(id),
    song_id INTEGER NOT NULL REFERENCES songs(id),
    week_start_date TEXT NOT NULL,
    times_played INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    added_at TEXT NOT NULL,
    UNIQUE(show_id, song_id, week_start_date)
);

CREATE TABLE IF NOT EXISTS radio_plays (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER REFERENCES radio_playlists(id),
    song_id INTEGER NOT NULL REFERENCES songs(id),
    station_id INTEGER NOT NULL REFERENCES radio_stations(id),
    show_id INTEGER REFERENCES radio_shows(id),
    listeners INTEGER NOT NULL DEFAULT 0,
    hype_gained INTEGER NOT NULL DEFAULT 0,
    streams_boost INTEGER NOT NULL DEFAULT 0,
    sales_boost INTEGER NOT NULL DEFAULT 0,
    played_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS radio_submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER REFERENCES songs(id),
    station_id INTEGER REFERENCES radio_stations(id),
    profile_id INTEGER REFERENCES profiles(id),
    band_id INTEGER REFERENCES bands(id),
    status TEXT NOT NULL DEFAULT 'pending',
    rejection_reason TEXT,
    submitted_at TEXT NOT NULL,
    reviewed_at TEXT,
    week_submitted TEXT
);

CREATE TABLE IF NOT EXISTS releases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    band_id INTEGER REFERENCES bands(id),
    profile_id INTEGER REFERENCES profiles(id),
    release_status TEXT NOT NULL DEFAULT 'planned',
    released_at TEXT
);

CREATE TABLE IF NOT EXISTS record_labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    genre_focus TEXT,
    reputation_score INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS label_deal_types (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label_id INTEGER NOT NULL REFERENCES record_labels(id),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS demo_submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER REFERENCES songs(id),
    label_id INTEGER REFERENCES record_labels(id),
    band_id INTEGER REFERENCES bands(id),
    artist_profile_id INTEGER REFERENCES profiles(id),
    status TEXT NOT NULL DEFAULT 'pending',
    rejection_reason TEXT,
    contract_offer_id INTEGER,
    submitted_at TEXT NOT NULL,
    reviewed_at TEXT
);

CREATE TABLE IF NOT EXISTS artist_label_contracts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label_id INTEGER NOT NULL REFERENCES record_labels(id),
    deal_type_id INTEGER REFERENCES label_deal_types(id),
    band_id INTEGER REFERENCES bands(id),
    artist_profile_id INTEGER REFERENCES profiles(id),
    demo_submission_id INTEGER UNIQUE REFERENCES demo_submissions(id),
    status TEXT NOT NULL DEFAULT 'offered',
    advance_amount INTEGER NOT NULL,
    royalty_artist_pct INTEGER NOT NULL,
    royalty_label_pct INTEGER NOT NULL,
    single_quota INTEGER NOT NULL,
    album_quota INTEGER NOT NULL,
    release_quota INTEGER NOT NULL,
    term_months INTEGER NOT NULL,
    termination_fee_pct INTEGER NOT NULL,
    manufacturing_covered INTEGER NOT NULL DEFAULT 1,
    territories TEXT,
    contract_value INTEGER NOT NULL,
    created_at TEXT NOT NULL
);
"""
