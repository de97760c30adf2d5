"""Constants used throughout the BTC Fee Tracker application."""

# Fee source (mempool.space REST API)
DEFAULT_API_BASE_URL = "https://mempool.space/api/v1"
FEES_ENDPOINT = "/fees/recommended"
BLOCK_HEIGHT_ENDPOINT = "/blocks/tip/height"
MEMPOOL_BLOCKS_ENDPOINT = "/fees/mempool-blocks"

# Network timeouts
DEFAULT_HTTP_TIMEOUT_SECS = 10

# Default configuration values
DEFAULT_POLL_SECS = 30  # Background update period
DEFAULT_CACHE_TTL_SECS = 5 * 60  # Cached snapshot is trusted for 5 minutes
DEFAULT_ALERT_COOLDOWN_SECS = 15 * 60  # Minimum gap between two alerts

# Log rotation defaults
DEFAULT_LOG_MAX_BYTES = 10_485_760  # 10MB
DEFAULT_LOG_BACKUP_COUNT = 30

# Priority tiers (keys of the /fees/recommended response)
PRIORITY_FASTEST = "fastestFee"
PRIORITY_HALF_HOUR = "halfHourFee"
PRIORITY_HOUR = "hourFee"
PRIORITIES = (PRIORITY_FASTEST, PRIORITY_HALF_HOUR, PRIORITY_HOUR)

PRIORITY_DESCRIPTIONS = {
    PRIORITY_HOUR: "Low (~60 min)",
    PRIORITY_HALF_HOUR: "Medium (~30 min)",
    PRIORITY_FASTEST: "High (~10 min)",
}

# Fee level thresholds (sat/vB) for value-based status messaging
FEE_LEVEL_LOW_BELOW = 10
FEE_LEVEL_HIGH_ABOVE = 50

# Alert threshold bounds (sat/vB), lower bound exclusive
ALERT_THRESHOLD_MAX = 1000

# Badge
BADGE_MAX_VALUE = 99
BADGE_OVERFLOW_TEXT = "99+"
BADGE_ERROR_TEXT = "?"
BADGE_FOREGROUND = "#FFFFFF"

COLOR_FEE_LOW = "#10B981"  # Emerald-500
COLOR_FEE_MEDIUM = "#F59E0B"  # Amber-500
COLOR_FEE_HIGH = "#EF4444"  # Red-500
COLOR_ERROR = "#6B7280"  # Gray-500

# Settings storage
SETTINGS_KEY = "btc_fee_tracker_settings"

# Notifications
NOTIFICATION_ID = "btc_fee_alert"
NOTIFICATION_TITLE = "BTC Fee Alert"
NOTIFICATION_MESSAGE_TEMPLATE = "Bitcoin fees dropped to {value} sat/vB - great time to transact!"
TEST_NOTIFICATION_ID = "btc_fee_test"
TEST_NOTIFICATION_MESSAGE = "Test notification - fee alerts are working."
