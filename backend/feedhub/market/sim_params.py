"""Constants for the probability walk and the synthetic order book."""

# Rolling window of displayed history points per entity
HISTORY_CAP = 30

# Backfilled points are spaced this many simulated minutes apart
BACKFILL_SPACING_MINUTES = 5

# Entity id used when a subscriber supplies none
DEFAULT_ENTITY_ID = "default"

# Probability walk
# base level is drawn from [BASE_LEVEL_MIN, BASE_LEVEL_MIN + BASE_LEVEL_SPAN)
BASE_LEVEL_MIN = 40.0
BASE_LEVEL_SPAN = 40.0
PROBABILITY_FLOOR = 5
PROBABILITY_CEILING = 95

# level = keep * level + (1 - keep) * base + (rand - 0.5) * shock
BACKFILL_KEEP = 0.85
BACKFILL_SHOCK = 6.0
LIVE_KEEP = 0.9
LIVE_SHOCK = 4.0

# Order book
BOOK_DEPTH = 5  # Levels per side
MIN_PRICE = 0.0001
MAX_MID_PRICE = 0.99
DEFAULT_MID_PRICE = 0.5
TICK_FRACTION = 0.02  # tick size as a fraction of the mid-price
DRIFT_TICKS = 0.5  # mid-price drift per update is at most +/- DRIFT_TICKS/2 ticks
SIZE_MIN = 2000.0
SIZE_SPAN = 5000.0
SIZE_JITTER = 0.1  # +/- 10% perturbation of the previous size

# Streaming cadence (seconds)
HISTORY_TICK_SECONDS = 2.0
BOOK_TICK_SECONDS = 3.0
