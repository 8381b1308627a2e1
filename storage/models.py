"""SQLite schema, as an ordered list of versioned migrations."""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""

CREATE_BOT_STATE_TABLE = """
CREATE TABLE IF NOT EXISTS bot_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    bot_a_virtual_usd REAL NOT NULL DEFAULT 230.0 CHECK (bot_a_virtual_usd >= 0),
    bot_b_virtual_usd REAL NOT NULL DEFAULT 0.0 CHECK (bot_b_virtual_usd >= 0),
    bot_a_cycle_number INTEGER NOT NULL DEFAULT 1,
    bot_a_cycle_target REAL NOT NULL DEFAULT 200.0 CHECK (bot_a_cycle_target >= 0),
    bot_a_last_reset TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

CREATE_TRADES_TABLE = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT NOT NULL,
    bot TEXT NOT NULL CHECK (bot IN ('A', 'B')),
    pair TEXT NOT NULL,
    side TEXT NOT NULL CHECK (side IN ('buy', 'sell')),
    size REAL NOT NULL CHECK (size >= 0),
    entry_price REAL NOT NULL CHECK (entry_price >= 0),
    exit_price REAL CHECK (exit_price IS NULL OR exit_price >= 0),
    pnl REAL,
    mcs REAL NOT NULL DEFAULT 0,
    is_paper INTEGER NOT NULL DEFAULT 1,
    reason TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
)
"""

CREATE_SENTIMENT_TABLE = """
CREATE TABLE IF NOT EXISTS sentiment_readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fgi_value INTEGER NOT NULL CHECK (fgi_value BETWEEN 0 AND 100),
    trend_score REAL NOT NULL,
    mcs REAL NOT NULL CHECK (mcs BETWEEN 0 AND 1),
    created_at TEXT NOT NULL
)
"""

CREATE_MONTHLY_REPORTS_TABLE = """
CREATE TABLE IF NOT EXISTS monthly_reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    month TEXT NOT NULL UNIQUE,
    bot_b_start_balance REAL NOT NULL CHECK (bot_b_start_balance >= 0),
    bot_b_end_balance REAL NOT NULL CHECK (bot_b_end_balance >= 0),
    donation_amount REAL NOT NULL CHECK (donation_amount >= 0),
    total_trades INTEGER NOT NULL DEFAULT 0,
    total_pnl REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
)
"""

CREATE_BALANCE_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS balance_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL CHECK (type IN ('start', 'daily', 'weekly', 'monthly')),
    period_key TEXT NOT NULL,
    balance REAL NOT NULL CHECK (balance >= 0),
    timestamp TEXT NOT NULL,
    UNIQUE (type, period_key)
)
"""

CREATE_CONFIGURATION_TABLE = """
CREATE TABLE IF NOT EXISTS configuration (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL
)
"""

# Values shown on the dashboard; runtime behaviour reads Config and the bot classes.
CONFIGURATION_DEFAULTS = [
    ("bot_a_min_mcs", "0.4", "Minimum MCS for Bot A to trade"),
    ("bot_b_min_mcs", "0.5", "Minimum MCS for Bot B to trade"),
    ("bot_a_cycle_seed", "30", "Bot A balance after a completed cycle"),
    ("bot_a_transfer_amount", "200", "Amount moved to Bot B per completed cycle"),
    ("bot_b_donation_pct", "0.5", "Share of Bot B monthly profit donated"),
    ("bot_b_max_daily_trades", "2", "Bot B daily trade limit"),
    ("min_btc_volume", "0.0001", "Exchange minimum BTC order volume"),
]

# (version, name, statements). Applied in order, each exactly once.
MIGRATIONS: list[tuple[int, str, list[str]]] = [
    (1, "create core tables", [
        CREATE_BOT_STATE_TABLE,
        CREATE_TRADES_TABLE,
        CREATE_SENTIMENT_TABLE,
        CREATE_MONTHLY_REPORTS_TABLE,
        CREATE_BALANCE_SNAPSHOTS_TABLE,
        CREATE_CONFIGURATION_TABLE,
    ]),
    (2, "add bot b columns", [
        "ALTER TABLE bot_state ADD COLUMN bot_b_enabled INTEGER NOT NULL DEFAULT 0",
        "ALTER TABLE bot_state ADD COLUMN bot_b_triggered INTEGER NOT NULL DEFAULT 0",
        "ALTER TABLE bot_state ADD COLUMN bot_b_monthly_start_usd REAL NOT NULL DEFAULT 0",
        "ALTER TABLE bot_state ADD COLUMN bot_b_last_month_reset TEXT",
    ]),
    (3, "create indexes", [
        "CREATE INDEX IF NOT EXISTS idx_trades_bot_created ON trades (bot, created_at)",
        "CREATE INDEX IF NOT EXISTS idx_sentiment_created ON sentiment_readings (created_at)",
    ]),
]

# Columns verified after migrating; the bots cannot run without them.
REQUIRED_BOT_STATE_COLUMNS = {
    "bot_a_virtual_usd",
    "bot_b_virtual_usd",
    "bot_a_cycle_number",
    "bot_a_cycle_target",
    "bot_a_last_reset",
    "bot_b_enabled",
    "bot_b_triggered",
    "bot_b_monthly_start_usd",
    "bot_b_last_month_reset",
    "created_at",
    "updated_at",
}
