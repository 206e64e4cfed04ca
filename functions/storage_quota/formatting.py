"""
Human-readable byte counts for quota messages and the storage indicator.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from shared.constants import STORAGE_DANGER_PERCENT, STORAGE_WARNING_PERCENT
from shared.types import UsageSummary

BYTE_UNITS = ("Bytes", "KB", "MB", "GB")
KILO = 1024


def format_bytes(num_bytes: int | float, decimals: int = 2) -> str:
    """
    Formats a byte count, e.g. 1536 -> "1.5 KB".

    Values of 1024^4 and above stay in GB. Trailing zeros are dropped, so
    5 GiB renders as "5 GB".
    """
    if num_bytes <= 0:
        return "0 Bytes"
    decimals = max(0, decimals)

    unit_index = 0
    while unit_index < len(BYTE_UNITS) - 1 and num_bytes >= KILO ** (unit_index + 1):
        unit_index += 1

    # Exact halves round up: 1152 bytes is "1.13 KB".
    scaled = Decimal(num_bytes) / Decimal(KILO) ** unit_index
    value = format(scaled.quantize(Decimal(1).scaleb(-decimals), ROUND_HALF_UP), "f")
    if "." in value:
        value = value.rstrip("0").rstrip(".")
    return f"{value} {BYTE_UNITS[unit_index]}"


def usage_level(percentage: float) -> str:
    if percentage > STORAGE_DANGER_PERCENT:
        return "danger"
    if percentage > STORAGE_WARNING_PERCENT:
        return "warning"
    return "ok"


def usage_summary(used_bytes: int, limit_bytes: int) -> UsageSummary:
    percentage = (used_bytes / limit_bytes) * 100 if limit_bytes else 0.0
    return UsageSummary(
        used_bytes=used_bytes,
        limit_bytes=limit_bytes,
        percentage=round(percentage, 1),
        level=usage_level(percentage),
        used_formatted=format_bytes(used_bytes),
        limit_formatted=format_bytes(limit_bytes),
    )
