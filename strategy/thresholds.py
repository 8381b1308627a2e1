"""Configurable constants for the sentiment and strategy layer."""

# Fear & greed upper bounds -> base confidence score
FGI_BUCKETS = [
    (20, 0.1),
    (40, 0.3),
    (60, 0.6),
    (80, 0.8),
]
FGI_TOP_SCORE = 1.0

# Trend scoring: price vs EMA over hourly candles
EMA_PERIOD = 200
TREND_INTERVAL_MINUTES = 60
TREND_DEADBAND = 0.02
TREND_SCORE = 0.2

# Returned whenever the score cannot be computed
NEUTRAL_MCS = 0.5
NEUTRAL_FGI = 50

# Bot A: aggressive, cycles
BOT_A_MIN_MCS = 0.4
BOT_A_CYCLE_SEED = 30.0
BOT_A_TRANSFER_TO_B = 200.0
BOT_A_MIN_TRADE_USD = 10.0
BOT_A_ETH_TRADE_CHANCE = 0.7

# Bot A share of balance risked per trade, by MCS floor
BOT_A_RISK_TIERS = [
    (0.7, 0.05),
    (0.4, 0.02),
]
BOT_A_RISK_FLOOR = 0.01

# Bot A trades per day, by MCS floor
BOT_A_DAILY_TRADE_TIERS = [
    (0.8, 6),
    (0.6, 3),
    (0.4, 1),
]

# Bot B: conservative, donations
BOT_B_MIN_MCS = 0.5
BOT_B_SIGNAL_MIN_MCS = 0.7
BOT_B_ETH_MIN_MCS = 0.8
BOT_B_MAX_DAILY_TRADES = 2
BOT_B_POSITION_PCT = 0.005
BOT_B_MIN_TRADE_USD = 25.0
BOT_B_ETH_TRADE_CHANCE = 0.5
BOT_B_DONATION_PCT = 0.5

# Exchange minimum order volume
MIN_BTC_VOLUME = 0.0001
