"""Statistical aggregation for latency probes and transfer rates.

Pure functions only.  Durations are in seconds, sizes in bytes.
"""

from __future__ import annotations

from typing import Sequence


def trip_time(durations: Sequence[float]) -> float:
    """Aggregate probe round trips into an approximate one-way trip time.

    The sum is divided by twice the sample count, so the result is a trip
    time and not a ping or RTT.  Historical results were computed this way.
    """
    if not durations:
        raise ValueError("trip_time needs at least one probe duration")
    return sum(durations) / (len(durations) * 2)


def bits_per_second(size: int, duration: float) -> float:
    """Return the transfer rate in bit/s, or 0.0 when no time elapsed."""
    if duration <= 0:
        return 0.0
    return size * 8 / duration


def kilobits_per_second(size: int, duration: float) -> int:
    """Return the rate in kbit/s, truncated to an integer."""
    return int(bits_per_second(size, duration) / 1000)


def megabits_per_second(size: int, duration: float) -> float:
    return kilobits_per_second(size, duration) / 1000


def megabytes_per_second(size: int, duration: float) -> float:
    return kilobits_per_second(size, duration) / 8 / 1000


def format_speed(kbps: float) -> str:
    """Human-readable speed string."""
    if kbps >= 1_000_000:
        return f"{kbps / 1_000_000:.2f} Gbps"
    if kbps >= 1000:
        return f"{kbps / 1000:.2f} Mbps"
    return f"{kbps:.0f} kbps"
