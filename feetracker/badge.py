"""Badge policy: map a fee snapshot and selected tier to badge text and colors."""

from dataclasses import dataclass
from typing import Optional, Union
from .constants import (
    BADGE_ERROR_TEXT,
    BADGE_FOREGROUND,
    BADGE_MAX_VALUE,
    BADGE_OVERFLOW_TEXT,
    COLOR_ERROR,
    COLOR_FEE_HIGH,
    COLOR_FEE_LOW,
    COLOR_FEE_MEDIUM,
    FEE_LEVEL_HIGH_ABOVE,
    FEE_LEVEL_LOW_BELOW,
    PRIORITY_FASTEST,
    PRIORITY_HALF_HOUR,
    PRIORITY_HOUR,
)
from .fees import FeeSnapshot, round_fee
from .settings_store import Settings

LEVEL_LOW = "low"
LEVEL_MEDIUM = "medium"
LEVEL_HIGH = "high"
LEVEL_ERROR = "error"


@dataclass(frozen=True)
class BadgeConfig:
    """Rendering-independent badge description."""
    text: str               # at most 3 glyphs, or "?" for errors
    color: str              # foreground
    background_color: str
    level: str              # low / medium / high, "error" for the error badge


# The badge level describes the urgency of the chosen tier, not the fee value,
# so the color only changes when the user changes tier.
PRIORITY_LEVELS = {
    PRIORITY_HOUR: LEVEL_LOW,
    PRIORITY_HALF_HOUR: LEVEL_MEDIUM,
    PRIORITY_FASTEST: LEVEL_HIGH,
}

LEVEL_COLORS = {
    LEVEL_LOW: COLOR_FEE_LOW,
    LEVEL_MEDIUM: COLOR_FEE_MEDIUM,
    LEVEL_HIGH: COLOR_FEE_HIGH,
}

STATUS_MESSAGES = {
    LEVEL_LOW: "Fees are low - great time for transactions!",
    LEVEL_MEDIUM: "Fees are moderate - good time for transactions",
    LEVEL_HIGH: "Fees are high - consider waiting if possible",
}


def level_from_value(value: float) -> str:
    """
    Classify an absolute fee rate.

    Used for status messaging only; badge colors come from the tier.

    Args:
        value: Fee rate in sat/vB

    Returns:
        "low" below 10, "medium" up to 50, "high" above
    """
    if value < FEE_LEVEL_LOW_BELOW:
        return LEVEL_LOW
    if value <= FEE_LEVEL_HIGH_ABOVE:
        return LEVEL_MEDIUM
    return LEVEL_HIGH


def level_from_priority(priority: str) -> str:
    """Map a priority tier to its badge level."""
    try:
        return PRIORITY_LEVELS[priority]
    except KeyError:
        raise ValueError(f"Unknown priority: {priority}")


def format_badge_text(value: float) -> str:
    """Rounded fee as text, "99+" when it does not fit the badge."""
    rounded = round_fee(value)
    if rounded > BADGE_MAX_VALUE:
        return BADGE_OVERFLOW_TEXT
    return str(rounded)


def compute_badge(snapshot: FeeSnapshot, settings: Union[Settings, str]) -> BadgeConfig:
    """
    Build the badge for a snapshot and the selected priority.

    Args:
        snapshot: Current fee snapshot
        settings: Settings (its selected_priority is used) or a priority key

    Returns:
        BadgeConfig with text from the fee value and colors from the tier
    """
    priority = settings if isinstance(settings, str) else settings.selected_priority
    level = level_from_priority(priority)
    return BadgeConfig(
        text=format_badge_text(snapshot.value_for(priority)),
        color=BADGE_FOREGROUND,
        background_color=LEVEL_COLORS[level],
        level=level,
    )


def error_badge() -> BadgeConfig:
    """Badge shown when fee data could not be fetched."""
    return BadgeConfig(
        text=BADGE_ERROR_TEXT,
        color=BADGE_FOREGROUND,
        background_color=COLOR_ERROR,
        level=LEVEL_ERROR,
    )


def fee_status_message(value: float) -> str:
    """Human readable status for an absolute fee rate."""
    return STATUS_MESSAGES[level_from_value(value)]


def format_time_ago(last_update: Optional[float], now: float) -> str:
    """
    Describe how long ago the cache was refreshed.

    Args:
        last_update: Epoch seconds of the last update (0/None = never)
        now: Current epoch seconds
    """
    if not last_update:
        return "Never"
    mins = int((now - last_update) // 60)
    if mins < 1:
        return "Just now"
    if mins == 1:
        return "1 minute ago"
    if mins < 60:
        return f"{mins} minutes ago"
    hours = mins // 60
    if hours == 1:
        return "1 hour ago"
    return f"{hours} hours ago"
