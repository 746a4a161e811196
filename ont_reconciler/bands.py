"""Band classification of discovered radio and WLAN instances."""

import re
from typing import Any, Optional

from .models import Band


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

STANDARD_FREQUENCY_LABELS = {
    "2.4GHz": Band.BAND_2_4,
    "5GHz": Band.BAND_5,
    "6GHz": Band.BAND_6,
}


def parse_channel(raw: Any) -> int:
    """Parse a channel number the way device firmwares report it.

    Leading digits are taken ("36 (auto)" is 36); anything unparseable is 0.
    """
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    match = _LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else 0


def max_possible_channel(possible_channels_raw: Optional[str]) -> int:
    """Highest channel upper bound in a PossibleChannels list such as ``"1-11"`` or ``"36,40;44"``."""
    if not possible_channels_raw:
        return 0

    max_channel = 0
    for segment in str(possible_channels_raw).replace(";", ",").split(","):
        segment = segment.strip()
        if not segment:
            continue
        upper = parse_channel(segment.split("-")[-1])
        max_channel = max(max_channel, upper)
    return max_channel


def classify_band(channel: Any, possible_channels_raw: Optional[str] = "") -> Band:
    """Classify a legacy WLAN instance into a band.

    The PossibleChannels range is authoritative whenever it yields a positive
    upper bound. Otherwise the current channel alone decides, and 6 GHz
    channels below 178 are reported as 5 GHz.
    """
    max_channel = max_possible_channel(possible_channels_raw)
    if max_channel > 177:
        return Band.BAND_6
    if max_channel > 14:
        return Band.BAND_5
    if max_channel > 0:
        return Band.BAND_2_4

    ch = parse_channel(channel)
    if ch > 177:
        return Band.BAND_6
    if ch >= 36:
        return Band.BAND_5
    if 1 <= ch <= 14:
        return Band.BAND_2_4
    return Band.UNKNOWN


def classify_frequency_band(label: Optional[str]) -> Band:
    """Classify a unified-model radio by its OperatingFrequencyBand string."""
    if not label:
        return Band.UNKNOWN

    label = str(label).strip()
    if label in STANDARD_FREQUENCY_LABELS:
        return STANDARD_FREQUENCY_LABELS[label]

    # non-standard strings
    if "2.4" in label:
        return Band.BAND_2_4
    if "5" in label and "2" not in label and "6" not in label:
        return Band.BAND_5
    if "6" in label and "60" not in label:
        return Band.BAND_6
    return Band.UNKNOWN
